"""
Erreurs métier du backend Tikiti.

Chaque erreur porte un code stable (pour le front) et le statut HTTP à renvoyer.
Le mapping HTTP est fait par app_setup.exceptions; la logique métier ne lève jamais
d'HTTPException directement.
"""
from typing import Optional


class TikitiError(Exception):
    code = "error"
    status_code = 400

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class ValidationError(TikitiError):
    """Entrée mal formée (champ manquant, téléphone invalide...), rejetée avant tout appel externe."""
    code = "validation_error"
    status_code = 400


class VirtualNotSupported(ValidationError):
    code = "virtual_not_supported"

    def __init__(self, event_id: str):
        super().__init__("This event does not offer virtual tickets")
        self.event_id = event_id


class InventoryError(TikitiError):
    code = "inventory_error"
    status_code = 409


class InsufficientInventory(InventoryError):
    """
    Stock insuffisant pour un type de billet.
    - remaining == 0: "Sold out"
    - sinon: "Only N left"
    """
    code = "insufficient_inventory"

    def __init__(self, ticket_type_id: str, remaining: int):
        remaining = max(int(remaining), 0)
        message = "Sold out" if remaining == 0 else f"Only {remaining} left"
        super().__init__(message)
        self.ticket_type_id = ticket_type_id
        self.remaining = remaining

    @property
    def sold_out(self) -> bool:
        return self.remaining == 0


class NotFound(TikitiError):
    code = "not_found"
    status_code = 404


class OrderNotFound(NotFound):
    code = "order_not_found"

    def __init__(self, order_id: str):
        super().__init__("Order not found")
        self.order_id = order_id


class OrderStateError(TikitiError):
    code = "order_state"
    status_code = 409


class ProviderError(TikitiError):
    """Échec côté rail de paiement (HTTP, timeout, réponse non OK). Réessayable."""
    code = "provider_error"
    status_code = 502

    def __init__(self, provider: str, message: str):
        super().__init__(message)
        self.provider = provider


class ReconciliationAmbiguity(TikitiError):
    """Signal non vérifiable: journalisé, acquitté au fournisseur, aucun changement d'état."""
    code = "reconciliation_ambiguity"
    status_code = 200

    def __init__(self, provider: str, message: str):
        super().__init__(message)
        self.provider = provider


class MaterializationError(TikitiError):
    code = "materialization_failed"
    status_code = 500
