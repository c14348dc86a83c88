"""
Choix de l'adaptateur:
- par moyen de paiement (checkout): mpesa, card, airtel, paypal, stripe
- par fournisseur (webhooks, interrogation): mpesa, flutterwave, paypal, stripe
"""
from typing import Union

from tikiti.orders.models import PaymentMethod
from tikiti.payments.base import PaymentAdapter
from tikiti.payments.flutterwave import FlutterwaveAdapter
from tikiti.payments.mpesa import MpesaAdapter
from tikiti.payments.paypal import PayPalAdapter
from tikiti.payments.stripe_client import StripeAdapter

PROVIDERS = ("mpesa", "flutterwave", "paypal", "stripe")

def get_adapter(method: Union[PaymentMethod, str]) -> PaymentAdapter:
    method = PaymentMethod(method)
    if method is PaymentMethod.MPESA:
        return MpesaAdapter()
    if method in (PaymentMethod.CARD, PaymentMethod.AIRTEL):
        return FlutterwaveAdapter(method.value)
    if method is PaymentMethod.PAYPAL:
        return PayPalAdapter()
    if method is PaymentMethod.STRIPE:
        return StripeAdapter()
    raise ValueError(f"No payment rail for method {method.value}")

def adapter_for_provider(provider: str) -> PaymentAdapter:
    if provider == "mpesa":
        return MpesaAdapter()
    if provider == "flutterwave":
        return FlutterwaveAdapter()
    if provider == "paypal":
        return PayPalAdapter()
    if provider == "stripe":
        return StripeAdapter()
    raise ValueError(f"Unknown payment provider: {provider}")
