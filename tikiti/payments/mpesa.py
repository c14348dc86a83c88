"""
Adaptateur M-Pesa Daraja (STK push, rail "push").

- initiate: jeton OAuth (client credentials) puis STK push CustomerPayBillOnline; l'acheteur valide
  sur son téléphone, aucun résultat synchrone. Référence = CheckoutRequestID.
- parse_webhook: Body.stkCallback; ResultCode 0 = succès (MpesaReceiptNumber), sinon échec (ResultDesc).
  Authenticité: jeton partagé passé dans l'URL de callback (?token=...), comparé en temps constant.
- fetch_status: STK push query; seuls les ResultCode définitifs donnent un échec, les autres
  (transaction encore en cours) laissent la commande pending.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional
import base64
import hmac
import logging

import httpx

from tikiti import config
from tikiti.errors import ProviderError, ReconciliationAmbiguity, ValidationError
from tikiti.orders.models import Order
from tikiti.payments.base import FlowShape, Outcome, PaymentAdapter, PaymentSignal, ProviderHandle
from tikiti.utils.currency import provider_amount, to_decimal

logger = logging.getLogger(__name__)

# ResultCode définitifs de la STK push query: solde insuffisant, transaction expirée, annulée par
# l'acheteur, téléphone injoignable, PIN invalide. Les autres (4999 "still under processing"...) restent en attente.
TERMINAL_FAILURE_CODES = frozenset({"1", "1019", "1032", "1037", "2001"})

# Daraja attend l'heure de Nairobi (UTC+3, sans heure d'été)
EAT = timezone(timedelta(hours=3))

def account_reference(order_id: str) -> str:
    return f"TIKITI-{order_id[:8].upper()}"

class MpesaAdapter(PaymentAdapter):
    name = "mpesa"
    flow = FlowShape.PUSH

    def __init__(
        self,
        http: Optional[httpx.Client] = None,
        *,
        base_url: Optional[str] = None,
        consumer_key: Optional[str] = None,
        consumer_secret: Optional[str] = None,
        shortcode: Optional[str] = None,
        passkey: Optional[str] = None,
        callback_url: Optional[str] = None,
        callback_token: Optional[str] = None,
    ):
        super().__init__(http)
        self.base_url = (base_url or config.MPESA_BASE_URL).rstrip("/")
        self.consumer_key = consumer_key if consumer_key is not None else config.MPESA_CONSUMER_KEY
        self.consumer_secret = consumer_secret if consumer_secret is not None else config.MPESA_CONSUMER_SECRET
        self.shortcode = shortcode if shortcode is not None else config.MPESA_SHORTCODE
        self.passkey = passkey if passkey is not None else config.MPESA_PASSKEY
        self.callback_url = callback_url or config.MPESA_CALLBACK_URL
        self.callback_token = callback_token if callback_token is not None else config.MPESA_CALLBACK_TOKEN

    def _access_token(self) -> str:
        data = self._request(
            "GET",
            f"{self.base_url}/oauth/v1/generate",
            params={"grant_type": "client_credentials"},
            auth=(self.consumer_key, self.consumer_secret),
        )
        token = data.get("access_token")
        if not token:
            raise ProviderError(self.name, "M-Pesa authentication failed")
        return token

    def _password(self, timestamp: str) -> str:
        raw = f"{self.shortcode}{self.passkey}{timestamp}".encode("utf-8")
        return base64.b64encode(raw).decode("ascii")

    @staticmethod
    def _timestamp() -> str:
        return datetime.now(EAT).strftime("%Y%m%d%H%M%S")

    def initiate(
        self, order: Order, phone_number: Optional[str] = None, customer_email: Optional[str] = None
    ) -> ProviderHandle:
        phone = phone_number or order.phone_number
        if not phone:
            raise ValidationError("Phone number is required for M-Pesa", code="missing_phone")

        token = self._access_token()
        timestamp = self._timestamp()
        data = self._request(
            "POST",
            f"{self.base_url}/mpesa/stkpush/v1/processrequest",
            headers={"Authorization": f"Bearer {token}"},
            json={
                "BusinessShortCode": self.shortcode,
                "Password": self._password(timestamp),
                "Timestamp": timestamp,
                "TransactionType": "CustomerPayBillOnline",
                "Amount": provider_amount(order.grand_total, order.currency),
                "PartyA": phone,
                "PartyB": self.shortcode,
                "PhoneNumber": phone,
                "CallBackURL": self.callback_url,
                "AccountReference": account_reference(order.id),
                "TransactionDesc": "Tikiti Event Ticket",
            },
        )
        if str(data.get("ResponseCode")) != "0":
            raise ProviderError(self.name, f"M-Pesa error: {data.get('ResponseDescription') or 'request rejected'}")
        reference = data.get("CheckoutRequestID")
        if not reference:
            raise ProviderError(self.name, "M-Pesa did not return a checkout request id")

        logger.info("payments.mpesa.initiate order_id=%s ref=%s", order.id, reference)
        return ProviderHandle(
            provider=self.name,
            reference=reference,
            flow=self.flow,
            message=data.get("CustomerMessage") or "Check your phone and enter your M-Pesa PIN",
            extra={"merchant_request_id": data.get("MerchantRequestID")},
        )

    def _check_callback_token(self, query: Mapping[str, str]) -> None:
        if not self.callback_token:
            raise ReconciliationAmbiguity(self.name, "Callback token is not configured")
        supplied = str(query.get("token") or "")
        if not hmac.compare_digest(supplied.encode("utf-8"), self.callback_token.encode("utf-8")):
            raise ReconciliationAmbiguity(self.name, "Callback token mismatch")

    def parse_webhook(self, body: bytes, headers: Mapping[str, str], query: Mapping[str, str]) -> PaymentSignal:
        self._check_callback_token(query)
        payload = self._json_body(self.name, body)
        stk = (payload.get("Body") or {}).get("stkCallback")
        if not isinstance(stk, dict) or not stk.get("CheckoutRequestID"):
            raise ReconciliationAmbiguity(self.name, "Missing stkCallback")
        try:
            result_code = int(stk.get("ResultCode"))
        except (TypeError, ValueError):
            raise ReconciliationAmbiguity(self.name, "Missing ResultCode")

        reference = str(stk["CheckoutRequestID"])
        if result_code != 0:
            return PaymentSignal(
                provider=self.name,
                provider_reference=reference,
                outcome=Outcome.FAILURE,
                reason=stk.get("ResultDesc") or f"ResultCode {result_code}",
            )

        items = (stk.get("CallbackMetadata") or {}).get("Item") or []
        meta: Dict[str, Any] = {i.get("Name"): i.get("Value") for i in items if isinstance(i, dict)}
        amount = meta.get("Amount")
        return PaymentSignal(
            provider=self.name,
            provider_reference=reference,
            outcome=Outcome.SUCCESS,
            confirmation_id=str(meta.get("MpesaReceiptNumber") or "") or None,
            amount=to_decimal(amount) if amount is not None else None,
            currency="KES",
        )

    def fetch_status(self, order: Order) -> Optional[PaymentSignal]:
        if not order.provider_reference:
            return None
        token = self._access_token()
        timestamp = self._timestamp()
        data = self._request(
            "POST",
            f"{self.base_url}/mpesa/stkpushquery/v1/query",
            headers={"Authorization": f"Bearer {token}"},
            json={
                "BusinessShortCode": self.shortcode,
                "Password": self._password(timestamp),
                "Timestamp": timestamp,
                "CheckoutRequestID": order.provider_reference,
            },
        )
        result_code = data.get("ResultCode")
        if result_code is None:
            return None
        if str(result_code) == "0":
            return PaymentSignal(
                provider=self.name,
                provider_reference=order.provider_reference,
                outcome=Outcome.SUCCESS,
            )
        if str(result_code) not in TERMINAL_FAILURE_CODES:
            logger.info(
                "payments.mpesa.fetch_status not final ref=%s code=%s", order.provider_reference, result_code
            )
            return None
        return PaymentSignal(
            provider=self.name,
            provider_reference=order.provider_reference,
            outcome=Outcome.FAILURE,
            reason=data.get("ResultDesc") or f"ResultCode {result_code}",
        )
