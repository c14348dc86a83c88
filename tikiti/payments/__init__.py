"""
Module 'payments' (feature-first): point d'entrée public.
Réunit le contrat des adaptateurs, les rails (M-Pesa, Flutterwave, PayPal, Stripe) et le registre.
"""

from .base import FlowShape, Outcome, PaymentAdapter, PaymentSignal, ProviderHandle
from .flutterwave import FlutterwaveAdapter
from .mpesa import MpesaAdapter
from .paypal import PayPalAdapter
from .registry import PROVIDERS, adapter_for_provider, get_adapter
from .stripe_client import StripeAdapter

__all__ = [
    # contrat
    "FlowShape",
    "Outcome",
    "PaymentAdapter",
    "PaymentSignal",
    "ProviderHandle",
    # rails
    "FlutterwaveAdapter",
    "MpesaAdapter",
    "PayPalAdapter",
    "StripeAdapter",
    # registre
    "PROVIDERS",
    "adapter_for_provider",
    "get_adapter",
]
