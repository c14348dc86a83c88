"""
Adaptateur Flutterwave (carte + Airtel Money, rail "redirect").

- tx_ref = TIKITI-<order id>, connu avant l'appel et tagué comme référence fournisseur.
- Carte: lien de paiement hébergé (/payments) qui gère la 3DS; Airtel: charge mobile money (/charges).
- Webhook: en-tête verif-hash == FLUTTERWAVE_WEBHOOK_HASH, PUIS vérification serveur à serveur de la
  transaction (/transactions/{id}/verify); seul le résultat vérifié fait foi.
"""
from typing import Any, Dict, Mapping, Optional
import hmac
import logging

import httpx

from tikiti import config
from tikiti.errors import ProviderError, ReconciliationAmbiguity
from tikiti.orders.models import Order
from tikiti.payments.base import FlowShape, Outcome, PaymentAdapter, PaymentSignal, ProviderHandle
from tikiti.utils.currency import provider_amount, to_decimal

logger = logging.getLogger(__name__)

TX_REF_PREFIX = "TIKITI-"
AIRTEL_CHARGE_TYPES = {"UGX": "mobile_money_uganda", "TZS": "mobile_money_tanzania"}
DEFAULT_AIRTEL_CHARGE_TYPE = "mobile_money_uganda"

def tx_ref_for(order_id: str) -> str:
    return f"{TX_REF_PREFIX}{order_id}"

def order_id_from_tx_ref(tx_ref: str) -> Optional[str]:
    return tx_ref[len(TX_REF_PREFIX):] if tx_ref and tx_ref.startswith(TX_REF_PREFIX) else None

class FlutterwaveAdapter(PaymentAdapter):
    name = "flutterwave"
    flow = FlowShape.REDIRECT

    def __init__(
        self,
        method: str = "card",
        http: Optional[httpx.Client] = None,
        *,
        base_url: Optional[str] = None,
        secret_key: Optional[str] = None,
        webhook_hash: Optional[str] = None,
    ):
        super().__init__(http)
        if method not in ("card", "airtel"):
            raise ValueError(f"Unsupported Flutterwave method: {method}")
        self.method = method
        self.base_url = (base_url or config.FLUTTERWAVE_BASE_URL).rstrip("/")
        self.secret_key = secret_key if secret_key is not None else config.FLUTTERWAVE_SECRET_KEY
        self.webhook_hash = webhook_hash if webhook_hash is not None else config.FLUTTERWAVE_WEBHOOK_HASH

    @property
    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.secret_key}"}

    def initiate(
        self, order: Order, phone_number: Optional[str] = None, customer_email: Optional[str] = None
    ) -> ProviderHandle:
        tx_ref = tx_ref_for(order.id)
        payload: Dict[str, Any] = {
            "tx_ref": tx_ref,
            "amount": provider_amount(order.grand_total, order.currency),
            "currency": order.currency,
            "redirect_url": f"{config.BASE_URL}{config.ORDER_CONFIRMED_PATH}?orderId={order.id}",
            "customer": {"email": customer_email or "", "phonenumber": phone_number or order.phone_number or ""},
            "meta": {"order_id": order.id, "user_id": order.user_id},
            "customizations": {"title": "Tikiti", "description": f"{order.ticket_count} ticket(s)"},
        }

        if self.method == "card":
            data = self._request("POST", f"{self.base_url}/payments", headers=self._headers, json=payload)
            redirect_url = (data.get("data") or {}).get("link")
            message = "Redirecting to payment page"
        else:
            charge_type = AIRTEL_CHARGE_TYPES.get(order.currency, DEFAULT_AIRTEL_CHARGE_TYPE)
            payload.update({"phone_number": phone_number or order.phone_number, "network": "AIRTEL"})
            data = self._request(
                "POST", f"{self.base_url}/charges", params={"type": charge_type}, headers=self._headers, json=payload
            )
            body = data.get("data") or {}
            redirect_url = ((data.get("meta") or {}).get("authorization") or {}).get("redirect") or body.get("redirect_url")
            message = "Check your phone for the Airtel Money prompt"

        if data.get("status") != "success":
            raise ProviderError(self.name, data.get("message") or "Flutterwave could not start the payment")
        if self.method == "card" and not redirect_url:
            raise ProviderError(self.name, "Flutterwave did not return a payment link")

        logger.info("payments.flutterwave.initiate order_id=%s method=%s ref=%s", order.id, self.method, tx_ref)
        return ProviderHandle(
            provider=self.name,
            reference=tx_ref,
            flow=self.flow,
            redirect_url=redirect_url,
            message=message,
            extra={"method": self.method},
        )

    def signal_from_transaction(self, tx: Dict[str, Any]) -> Optional[PaymentSignal]:
        """Transaction vérifiée -> signal; None tant qu'elle n'est pas finale."""
        tx_ref = str(tx.get("tx_ref") or "")
        status = str(tx.get("status") or "").lower()
        if not tx_ref:
            return None
        if status == "successful":
            amount = tx.get("amount")
            return PaymentSignal(
                provider=self.name,
                provider_reference=tx_ref,
                outcome=Outcome.SUCCESS,
                order_id=order_id_from_tx_ref(tx_ref),
                confirmation_id=str(tx.get("id")) if tx.get("id") is not None else None,
                amount=to_decimal(amount) if amount is not None else None,
                currency=str(tx.get("currency") or "").upper() or None,
            )
        if status in ("failed", "cancelled"):
            return PaymentSignal(
                provider=self.name,
                provider_reference=tx_ref,
                outcome=Outcome.FAILURE,
                order_id=order_id_from_tx_ref(tx_ref),
                reason=tx.get("processor_response") or status,
            )
        return None

    def verify_transaction(self, transaction_id: str) -> Dict[str, Any]:
        data = self._request("GET", f"{self.base_url}/transactions/{transaction_id}/verify", headers=self._headers)
        return data.get("data") or {}

    def parse_webhook(self, body: bytes, headers: Mapping[str, str], query: Mapping[str, str]) -> PaymentSignal:
        signature = str(headers.get("verif-hash") or "")
        if not self.webhook_hash or not hmac.compare_digest(signature.encode("utf-8"), self.webhook_hash.encode("utf-8")):
            raise ReconciliationAmbiguity(self.name, "verif-hash mismatch")

        payload = self._json_body(self.name, body)
        if payload.get("event") != "charge.completed":
            raise ReconciliationAmbiguity(self.name, f"Ignored event {payload.get('event')!r}")
        tx = payload.get("data") or {}
        if not tx.get("id") or not tx.get("tx_ref"):
            raise ReconciliationAmbiguity(self.name, "Missing transaction id or tx_ref")

        try:
            verified = self.verify_transaction(str(tx["id"]))
        except ProviderError as e:
            raise ReconciliationAmbiguity(self.name, f"Verification call failed: {e.message}")
        if str(verified.get("tx_ref") or "") != str(tx["tx_ref"]):
            raise ReconciliationAmbiguity(self.name, "Verified transaction does not match tx_ref")

        signal = self.signal_from_transaction(verified)
        if signal is None:
            raise ReconciliationAmbiguity(self.name, f"Transaction not final (status={verified.get('status')!r})")
        return signal

    def fetch_status(self, order: Order) -> Optional[PaymentSignal]:
        if not order.provider_reference:
            return None
        data = self._request(
            "GET",
            f"{self.base_url}/transactions/verify_by_reference",
            params={"tx_ref": order.provider_reference},
            headers=self._headers,
        )
        return self.signal_from_transaction(data.get("data") or {})
