"""
Adaptateur Stripe Checkout (cartes internationales, rail "redirect", devises USD/GBP/EUR).

- initiate: session Checkout hébergée, client_reference_id = commande; référence = id de session
- parse_webhook: signature Stripe-Signature validée par stripe.Webhook.construct_event
- fetch_status: relit la session (payment_status / status)
"""
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional
import logging

import stripe

from tikiti import config
from tikiti.errors import ProviderError, ReconciliationAmbiguity
from tikiti.orders.models import Order
from tikiti.payments.base import FlowShape, Outcome, PaymentAdapter, PaymentSignal, ProviderHandle
from tikiti.utils.currency import decimals_for, quantize

logger = logging.getLogger(__name__)

SUCCESS_EVENTS = ("checkout.session.completed", "checkout.session.async_payment_succeeded")
FAILURE_EVENTS = ("checkout.session.expired", "checkout.session.async_payment_failed")

# module tikiti.payments.stripe_client
def require_stripe():
    """Configure stripe.api_key; sans clé, les appels échouent côté SDK (ProviderError)."""
    if config.STRIPE_SECRET_KEY:
        stripe.api_key = config.STRIPE_SECRET_KEY
    return stripe

def _field(obj: Any, key: str) -> Any:
    """Champ d'un objet Stripe lu par indice (les StripeObject ne sont plus des dict); None s'il est absent."""
    try:
        return obj[key]
    except (KeyError, TypeError):
        return None

def to_minor_units(amount: Decimal, currency: str) -> int:
    return int(quantize(amount, currency).scaleb(decimals_for(currency)))

def from_minor_units(value: Any, currency: str) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(int(value)).scaleb(-decimals_for(currency))

class StripeAdapter(PaymentAdapter):
    name = "stripe"
    flow = FlowShape.REDIRECT

    def __init__(self, http=None, *, webhook_secret: Optional[str] = None):
        super().__init__(http)
        self.webhook_secret = webhook_secret if webhook_secret is not None else config.STRIPE_WEBHOOK_SECRET

    def initiate(
        self, order: Order, phone_number: Optional[str] = None, customer_email: Optional[str] = None
    ) -> ProviderHandle:
        require_stripe()
        params: Dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [{
                "price_data": {
                    "currency": order.currency.lower(),
                    "unit_amount": to_minor_units(order.grand_total, order.currency),
                    "product_data": {"name": f"Tikiti order {order.id[:8].upper()} ({order.ticket_count} ticket(s))"},
                },
                "quantity": 1,
            }],
            "success_url": f"{config.BASE_URL}{config.ORDER_CONFIRMED_PATH}?orderId={order.id}",
            "cancel_url": f"{config.BASE_URL}{config.CHECKOUT_CANCEL_PATH}",
            "client_reference_id": order.id,
            "metadata": {"order_id": order.id, "user_id": order.user_id},
        }
        if customer_email:
            params["customer_email"] = customer_email
        try:
            session = stripe.checkout.Session.create(**params)
        except stripe.StripeError as e:
            logger.warning("payments.stripe.initiate failed order_id=%s: %s", order.id, e)
            raise ProviderError(self.name, "Stripe could not start the payment")

        logger.info("payments.stripe.initiate order_id=%s session_id=%s", order.id, session["id"])
        return ProviderHandle(
            provider=self.name,
            reference=session["id"],
            flow=self.flow,
            redirect_url=_field(session, "url"),
            message="Redirecting to payment page",
        )

    def _signal_from_session(self, session: Any, event_type: str) -> Optional[PaymentSignal]:
        order_id = _field(session, "client_reference_id") or _field(_field(session, "metadata"), "order_id")
        currency = str(_field(session, "currency") or "").upper() or None
        common = {"provider": self.name, "provider_reference": session["id"], "order_id": order_id}

        paid = _field(session, "payment_status") == "paid"
        if event_type in SUCCESS_EVENTS and (paid or event_type.endswith("async_payment_succeeded")):
            return PaymentSignal(
                outcome=Outcome.SUCCESS,
                confirmation_id=_field(session, "payment_intent"),
                amount=from_minor_units(_field(session, "amount_total"), currency or "USD"),
                currency=currency,
                **common,
            )
        if event_type in FAILURE_EVENTS:
            return PaymentSignal(outcome=Outcome.FAILURE, reason=event_type.rsplit(".", 1)[-1], **common)
        return None

    def parse_webhook(self, body: bytes, headers: Mapping[str, str], query: Mapping[str, str]) -> PaymentSignal:
        if not self.webhook_secret:
            raise ReconciliationAmbiguity(self.name, "Webhook secret is not configured")
        sig_header = headers.get("stripe-signature") or ""
        try:
            event = stripe.Webhook.construct_event(body, sig_header, self.webhook_secret)
        except (ValueError, stripe.StripeError) as e:
            raise ReconciliationAmbiguity(self.name, f"Invalid Stripe signature: {e}")

        event_type = event["type"]
        session = event["data"]["object"]
        signal = self._signal_from_session(session, event_type)
        if signal is None:
            raise ReconciliationAmbiguity(self.name, f"Ignored event {event_type!r}")
        return signal

    def fetch_status(self, order: Order) -> Optional[PaymentSignal]:
        if not order.provider_reference:
            return None
        require_stripe()
        try:
            session = stripe.checkout.Session.retrieve(order.provider_reference)
        except stripe.StripeError as e:
            raise ProviderError(self.name, f"Stripe status lookup failed: {e}")
        if _field(session, "payment_status") == "paid":
            return self._signal_from_session(session, "checkout.session.completed")
        if _field(session, "status") == "expired":
            return self._signal_from_session(session, "checkout.session.expired")
        return None
