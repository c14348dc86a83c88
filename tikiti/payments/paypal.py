"""
Adaptateur PayPal (rail "two_phase": création puis capture après approbation de l'acheteur).
"""
from typing import Any, Dict, Optional
import logging

import httpx

from tikiti import config
from tikiti.errors import ProviderError, ReconciliationAmbiguity
from tikiti.orders.models import Order
from tikiti.payments.base import FlowShape, Outcome, PaymentAdapter, PaymentSignal, ProviderHandle
from tikiti.utils.currency import provider_amount, to_decimal

logger = logging.getLogger(__name__)

class PayPalAdapter(PaymentAdapter):
    name = "paypal"
    flow = FlowShape.TWO_PHASE

    def __init__(
        self,
        http: Optional[httpx.Client] = None,
        *,
        base_url: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
    ):
        super().__init__(http)
        self.base_url = (base_url or config.PAYPAL_BASE_URL).rstrip("/")
        self.client_id = client_id if client_id is not None else config.PAYPAL_CLIENT_ID
        self.client_secret = client_secret if client_secret is not None else config.PAYPAL_CLIENT_SECRET

    def _auth_headers(self) -> Dict[str, str]:
        data = self._request(
            "POST",
            f"{self.base_url}/v1/oauth2/token",
            data={"grant_type": "client_credentials"},
            auth=(self.client_id, self.client_secret),
        )
        token = data.get("access_token")
        if not token:
            raise ProviderError(self.name, "PayPal authentication failed")
        return {"Authorization": f"Bearer {token}"}

    def create_provider_order(self, order_id: str, amount: Any, currency: str) -> str:
        """Crée l'ordre PayPal (intent CAPTURE, reference_id = commande Tikiti) et retourne son id."""
        data = self._request(
            "POST",
            f"{self.base_url}/v2/checkout/orders",
            headers=self._auth_headers(),
            json={
                "intent": "CAPTURE",
                "purchase_units": [{
                    "reference_id": order_id,
                    "amount": {"currency_code": currency, "value": str(provider_amount(amount, currency))},
                    "description": "Tikiti Event Ticket",
                }],
                "application_context": {
                    "brand_name": "Tikiti",
                    "shipping_preference": "NO_SHIPPING",
                    "user_action": "PAY_NOW",
                },
            },
        )
        provider_order_id = data.get("id")
        if not provider_order_id:
            raise ProviderError(self.name, "PayPal did not return an order id")
        return provider_order_id

    def initiate(
        self, order: Order, phone_number: Optional[str] = None, customer_email: Optional[str] = None
    ) -> ProviderHandle:
        provider_order_id = self.create_provider_order(order.id, order.grand_total, order.currency)
        logger.info("payments.paypal.initiate order_id=%s paypal_order_id=%s", order.id, provider_order_id)
        return ProviderHandle(
            provider=self.name,
            reference=provider_order_id,
            flow=self.flow,
            message="Approve the payment in the PayPal window",
            extra={"paypal_order_id": provider_order_id},
        )

    def _signal_from_order(self, data: Dict[str, Any], provider_order_id: str, order_id: Optional[str]) -> Optional[PaymentSignal]:
        units = data.get("purchase_units") or [{}]
        unit = units[0] or {}
        reference_id = unit.get("reference_id")
        if order_id and reference_id and reference_id != order_id:
            raise ReconciliationAmbiguity(self.name, "PayPal reference_id does not match the order")

        status = str(data.get("status") or "").upper()
        if status == "COMPLETED":
            captures = ((unit.get("payments") or {}).get("captures")) or [{}]
            capture = captures[0] or {}
            amount = (capture.get("amount") or unit.get("amount") or {})
            return PaymentSignal(
                provider=self.name,
                provider_reference=provider_order_id,
                outcome=Outcome.SUCCESS,
                order_id=reference_id or order_id,
                confirmation_id=capture.get("id"),
                amount=to_decimal(amount["value"]) if amount.get("value") is not None else None,
                currency=amount.get("currency_code"),
            )
        if status == "VOIDED":
            return PaymentSignal(
                provider=self.name,
                provider_reference=provider_order_id,
                outcome=Outcome.FAILURE,
                order_id=reference_id or order_id,
                reason="PayPal order voided",
            )
        return None

    def capture_provider_order(self, provider_order_id: str, order_id: str) -> Optional[PaymentSignal]:
        """
        Capture après approbation.
        - COMPLETED -> signal de succès
        - tout autre statut -> None (la commande reste pending, jamais completed par défaut)
        """
        data = self._request(
            "POST",
            f"{self.base_url}/v2/checkout/orders/{provider_order_id}/capture",
            headers={**self._auth_headers(), "Content-Type": "application/json"},
            json={},
        )
        signal = self._signal_from_order(data, provider_order_id, order_id)
        if signal is None or signal.outcome is not Outcome.SUCCESS:
            logger.warning(
                "payments.paypal.capture not completed order_id=%s paypal_order_id=%s status=%s",
                order_id, provider_order_id, data.get("status"),
            )
            return None
        return signal

    def fetch_status(self, order: Order) -> Optional[PaymentSignal]:
        if not order.provider_reference:
            return None
        data = self._request(
            "GET",
            f"{self.base_url}/v2/checkout/orders/{order.provider_reference}",
            headers=self._auth_headers(),
        )
        return self._signal_from_order(data, order.provider_reference, order.id)
