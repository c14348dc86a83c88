"""
Interface commune des rails de paiement.

Un adaptateur expose trois capacités, quel que soit le rail:
- initiate(order, phone_number, customer_email) -> ProviderHandle (référence fournisseur + éventuelle redirection)
- parse_webhook(body, headers, query) -> PaymentSignal (lève ReconciliationAmbiguity si non vérifiable)
- fetch_status(order) -> PaymentSignal | None (interrogation serveur à serveur)

Le réconciliateur ne connaît que PaymentSignal {provider, provider_reference, outcome}.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Optional
import json
import logging

import httpx

from tikiti.config import HTTP_TIMEOUT_SECONDS
from tikiti.errors import ProviderError, ReconciliationAmbiguity
from tikiti.orders.models import Order

logger = logging.getLogger(__name__)


class FlowShape(str, Enum):
    PUSH = "push"
    REDIRECT = "redirect"
    TWO_PHASE = "two_phase"


class Outcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class ProviderHandle:
    provider: str
    reference: str
    flow: FlowShape
    redirect_url: Optional[str] = None
    message: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "reference": self.reference,
            "flow": self.flow.value,
            "redirect_url": self.redirect_url,
            "message": self.message,
            **self.extra,
        }


@dataclass(frozen=True)
class PaymentSignal:
    """Signal vérifié venant d'un rail: succès ou échec d'une référence fournisseur."""
    provider: str
    provider_reference: str
    outcome: Outcome
    order_id: Optional[str] = None
    confirmation_id: Optional[str] = None
    reason: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None


class PaymentAdapter(ABC):
    name: str = ""
    flow: FlowShape = FlowShape.REDIRECT

    def __init__(self, http: Optional[httpx.Client] = None):
        self._http = http

    @property
    def http(self) -> httpx.Client:
        if self._http is None:
            self._http = httpx.Client(timeout=HTTP_TIMEOUT_SECONDS)
        return self._http

    @abstractmethod
    def initiate(
        self, order: Order, phone_number: Optional[str] = None, customer_email: Optional[str] = None
    ) -> ProviderHandle: ...

    def parse_webhook(self, body: bytes, headers: Mapping[str, str], query: Mapping[str, str]) -> PaymentSignal:
        raise ReconciliationAmbiguity(self.name, "This rail does not accept webhooks")

    def fetch_status(self, order: Order) -> Optional[PaymentSignal]:
        return None

    # --- helpers HTTP partagés ---
    def _request(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        """
        Appel REST vers le rail.
        - Erreur réseau / timeout / statut non 2xx -> ProviderError (réessayable)
        - Retourne le corps JSON décodé ({} si vide)
        """
        try:
            resp = self.http.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("payments.%s request failed %s %s: %s", self.name, method, url, e)
            raise ProviderError(self.name, f"{self.name} is unreachable, please try again")
        if resp.status_code >= 400:
            logger.warning("payments.%s %s %s -> %s %s", self.name, method, url, resp.status_code, resp.text[:500])
            raise ProviderError(self.name, f"{self.name} rejected the request ({resp.status_code})")
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError:
            raise ProviderError(self.name, f"{self.name} returned an unreadable response")

    @staticmethod
    def _json_body(provider: str, body: bytes) -> Dict[str, Any]:
        try:
            data = json.loads(body or b"{}")
        except ValueError:
            raise ReconciliationAmbiguity(provider, "Webhook body is not valid JSON")
        if not isinstance(data, dict):
            raise ReconciliationAmbiguity(provider, "Webhook body is not a JSON object")
        return data
