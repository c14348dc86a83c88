"""
Arithmétique monétaire partagée par le panier, la matérialisation et les adaptateurs.

- Tous les montants sont des Decimal; l'arrondi est "half-up" à l'unité d'affichage
  de la devise (0 décimale pour les shillings, 2 sinon).
- platform_fee est la SEULE fonction de calcul de commission: le panier (niveau commande)
  et les billets (niveau unitaire) l'appellent tous les deux.
"""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Dict, List, Union

from tikiti.config import PLATFORM_FEE_RATE

CURRENCY_CONFIG: Dict[str, Dict[str, Any]] = {
    "KES": {"symbol": "Ksh", "name": "Kenyan Shilling", "decimals": 0},
    "UGX": {"symbol": "UGX", "name": "Ugandan Shilling", "decimals": 0},
    "TZS": {"symbol": "TZS", "name": "Tanzanian Shilling", "decimals": 0},
    "USD": {"symbol": "$", "name": "US Dollar", "decimals": 2},
    "GBP": {"symbol": "£", "name": "British Pound", "decimals": 2},
    "EUR": {"symbol": "€", "name": "Euro", "decimals": 2},
}

Number = Union[Decimal, int, float, str]


def decimals_for(currency: str) -> int:
    config = CURRENCY_CONFIG.get((currency or "").upper())
    return config["decimals"] if config else 2


def to_decimal(value: Number) -> Decimal:
    """
    Convertit une valeur (str|int|float|Decimal) en Decimal.
    - Les float passent par str() pour éviter 0.1 -> 0.1000000000000000055...
    - Lève ValueError si la valeur n'est pas numérique.
    """
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, AttributeError):
        raise ValueError(f"Montant invalide: {value!r}")


def quantize(amount: Number, currency: str) -> Decimal:
    exponent = Decimal(1).scaleb(-decimals_for(currency))
    return to_decimal(amount).quantize(exponent, rounding=ROUND_HALF_UP)


def platform_fee(amount: Number, currency: str) -> Decimal:
    return quantize(to_decimal(amount) * PLATFORM_FEE_RATE, currency)


def provider_amount(amount: Number, currency: str) -> Union[int, str]:
    """
    Montant au format attendu par les rails:
    - devise à 0 décimale: entier (M-Pesa refuse les décimales)
    - sinon: chaîne à 2 décimales ("12.50")
    """
    value = quantize(amount, currency)
    if decimals_for(currency) == 0:
        return int(value)
    return f"{value:.2f}"


def to_storage(amount: Number, currency: str) -> str:
    """Sérialisation stable pour Supabase (colonnes numeric) et les réponses JSON."""
    return str(quantize(amount, currency))


def format_currency(amount: Number, currency: str) -> str:
    config = CURRENCY_CONFIG.get((currency or "").upper())
    if not config:
        return str(amount)
    value = quantize(amount, currency)
    return f"{config['symbol']} {value:,.{config['decimals']}f}"


def payment_methods_for_currency(currency: str) -> List[str]:
    code = (currency or "").upper()
    if code == "KES":
        return ["mpesa", "airtel", "card", "paypal"]
    if code in ("UGX", "TZS"):
        return ["airtel", "card", "paypal"]
    # USD, GBP, EUR: acheteurs internationaux
    return ["card", "paypal", "stripe"]
