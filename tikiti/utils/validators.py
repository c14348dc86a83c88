import re

from tikiti.errors import ValidationError

# Indicatif + format mobile par devise de paiement (Kenya, Ouganda, Tanzanie)
_MOBILE_FORMATS = {
    "KES": ("254", re.compile(r"^254[17]\d{8}$")),
    "UGX": ("256", re.compile(r"^2567\d{8}$")),
    "TZS": ("255", re.compile(r"^255[67]\d{8}$")),
}

def normalize_phone(v: str, currency: str = "KES") -> str:
    """
    Normalise un numéro pour les paiements push (M-Pesa/Airtel):
    0712345678 / +254712345678 / 254712345678 -> 254712345678
    - L'indicatif dépend de la devise (KES -> 254, UGX -> 256, TZS -> 255)
    - Lève ValidationError si le numéro reste mal formé.
    """
    prefix, pattern = _MOBILE_FORMATS.get((currency or "").upper(), _MOBILE_FORMATS["KES"])
    raw = re.sub(r"[\s\-()]", "", v or "")
    if raw.startswith("+"):
        raw = raw[1:]
    if raw.startswith("0"):
        raw = prefix + raw[1:]
    if not pattern.match(raw):
        raise ValidationError("Invalid phone number", code="invalid_phone")
    return raw
