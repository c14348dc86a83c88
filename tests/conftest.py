import os

# Réglages de test AVANT l'import de l'app (tikiti.config lit l'environnement à l'import)
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")
os.environ["PAYOUT_JOB_ENABLED"] = "0"
os.environ.setdefault("SUPABASE_URL", "https://project.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "service-key-for-tests")
os.environ.setdefault("QR_SIGNING_SECRET", "qr-secret-for-tests")
os.environ.setdefault("MPESA_CALLBACK_TOKEN", "mpesa-callback-token")
os.environ.setdefault("FLUTTERWAVE_WEBHOOK_HASH", "flw-hash-for-tests")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")

import copy
from typing import Any, Callable, Dict, Generator, List, Optional

import pytest
from fastapi.testclient import TestClient

from tikiti.app import app as fastapi_app
from tikiti.cart import service as cart_service
from tikiti.cart.models import Cart
from tikiti.events.models import Event
from tikiti.orders import repository as orders_repo
from tikiti.orders import service as orders_service
from tikiti.utils.security import require_admin, require_organizer, require_user

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "/tests/unit/" in nodeid or nodeid.startswith("tests/unit/"):
            item.add_marker(pytest.mark.unit)
        elif "/tests/integration/" in nodeid or nodeid.startswith("tests/integration/"):
            item.add_marker(pytest.mark.integration)


# --- Double en mémoire du client Supabase (PostgREST) ---

class FakeResponse:
    def __init__(self, data: List[Dict[str, Any]]):
        self.data = data


class FakeQuery:
    """Sous-ensemble du query builder postgrest utilisé par les repositories."""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table_name = table
        self.op = "select"
        self.payload: Any = None
        self.filters: List[Callable[[Dict[str, Any]], bool]] = []
        self._order: Optional[tuple] = None
        self._limit: Optional[int] = None

    def select(self, *columns, **kwargs):
        self.op = "select"
        return self

    def insert(self, rows):
        self.op = "insert"
        self.payload = rows
        return self

    def update(self, values):
        self.op = "update"
        self.payload = values
        return self

    def delete(self):
        self.op = "delete"
        return self

    def eq(self, column, value):
        self.filters.append(lambda r: r.get(column) == value)
        return self

    def neq(self, column, value):
        self.filters.append(lambda r: r.get(column) != value)
        return self

    def in_(self, column, values):
        values = list(values)
        self.filters.append(lambda r: r.get(column) in values)
        return self

    def is_(self, column, value):
        expected = None if value in (None, "null") else value
        self.filters.append(lambda r: r.get(column) is expected)
        return self

    def lt(self, column, value):
        self.filters.append(lambda r: r.get(column) is not None and r.get(column) < value)
        return self

    def order(self, column, desc=False, **kwargs):
        self._order = (column, desc)
        return self

    def limit(self, n):
        self._limit = n
        return self

    def _matching(self) -> List[Dict[str, Any]]:
        rows = self.db.tables.setdefault(self.table_name, [])
        return [r for r in rows if all(f(r) for f in self.filters)]

    def execute(self) -> FakeResponse:
        self.db.calls.append((self.table_name, self.op))
        failure = self.db.failures.get((self.table_name, self.op))
        if failure is not None:
            raise failure

        rows = self.db.tables.setdefault(self.table_name, [])
        if self.op == "insert":
            new_rows = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = [copy.deepcopy(r) for r in new_rows]
            rows.extend(inserted)
            return FakeResponse(copy.deepcopy(inserted))
        if self.op == "update":
            matched = self._matching()
            for r in matched:
                r.update(copy.deepcopy(self.payload))
            return FakeResponse(copy.deepcopy(matched))
        if self.op == "delete":
            matched = self._matching()
            self.db.tables[self.table_name] = [r for r in rows if r not in matched]
            return FakeResponse(copy.deepcopy(matched))

        matched = self._matching()
        if self._order:
            column, desc = self._order
            matched = sorted(matched, key=lambda r: (r.get(column) is None, r.get(column) or ""), reverse=desc)
        if self._limit is not None:
            matched = matched[: self._limit]
        return FakeResponse(copy.deepcopy(matched))


class FakeSupabase:
    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.failures: Dict[tuple, Exception] = {}
        self.calls: List[tuple] = []

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def fail(self, table: str, op: str, exc: Optional[Exception] = None) -> None:
        """Injecte une erreur sur (table, opération)."""
        self.failures[(table, op)] = exc or RuntimeError(f"{table}.{op} failed")

    def heal(self) -> None:
        self.failures.clear()

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.get(table, [])

    def row(self, table: str, row_id: str) -> Optional[Dict[str, Any]]:
        return next((r for r in self.rows(table) if r.get("id") == row_id), None)


@pytest.fixture(autouse=True)
def fake_db(monkeypatch) -> FakeSupabase:
    """Remplace les deux clients Supabase (anon et service) par le même double en mémoire."""
    db = FakeSupabase()
    monkeypatch.setattr("tikiti.infra.supabase_client.get_supabase", lambda: db)
    monkeypatch.setattr("tikiti.infra.supabase_client.get_service_supabase", lambda: db)
    return db


# --- Données de test ---

def event_row(
    event_id: str = "evt-1",
    *,
    title: str = "Nairobi Jazz Night",
    organizer_id: str = "org-1",
    currency: str = "KES",
    has_virtual_tickets: bool = False,
    ticket_types: Optional[List[Dict[str, Any]]] = None,
    venue_capacity: int = 500,
) -> Dict[str, Any]:
    return {
        "id": event_id,
        "title": title,
        "organizer_id": organizer_id,
        "currency": currency,
        "has_virtual_tickets": has_virtual_tickets,
        "ticket_types": ticket_types if ticket_types is not None else [
            {"id": "regular", "name": "Regular", "price": "1000", "quantity": 100, "sold": 0},
            {"id": "vip", "name": "VIP", "price": "2500", "quantity": 10, "sold": 8},
        ],
        "image_url": None,
        "venue_capacity": venue_capacity,
        "current_capacity": 0,
    }


@pytest.fixture
def seed_event(fake_db) -> Callable[..., Event]:
    def _seed(event_id: str = "evt-1", **kwargs) -> Event:
        row = event_row(event_id, **kwargs)
        fake_db.tables.setdefault("events", []).append(row)
        return Event.from_row(row)
    return _seed


@pytest.fixture
def make_cart(seed_event) -> Callable[..., Cart]:
    """Panier construit par les réducteurs à partir d'événements semés dans le double."""
    def _make(*selections, **event_kwargs) -> Cart:
        cart = Cart()
        events: Dict[str, Event] = {}
        for sel in selections or [("evt-1", "regular", 2, False)]:
            event_id, ticket_type_id, quantity, is_virtual = sel
            if event_id not in events:
                events[event_id] = seed_event(event_id, **event_kwargs.get(event_id, {}))
            event = events[event_id]
            cart = cart_service.add_line(cart, event, event.ticket_type(ticket_type_id), quantity, is_virtual)
        return cart
    return _make


@pytest.fixture
def pending_order(make_cart, fake_db):
    """Commande M-Pesa pending (2 billets Regular à 1000 KES) avec sa référence fournisseur."""
    def _create(reference: str = "ws_CO_123", provider: str = "mpesa", method: str = "mpesa", cart: Optional[Cart] = None):
        order, tickets = orders_service.materialize_order(
            cart or make_cart(),
            user_id="test-user",
            payment_method=method,
            phone_number="0712345678",
        )
        assert orders_repo.set_provider_reference(order.id, provider, reference)
        return orders_repo.get_order(order.id)
    return _create


# --- Application et authentification ---

@pytest.fixture(scope="session")
def app():
    return fastapi_app


@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c


TEST_USER: Dict[str, Any] = {
    "id": "test-user",
    "email": "test@example.com",
    "role": "user",
    "token": "fake-token",
}


# Simuler un utilisateur authentifié pour les endpoints protégés
@pytest.fixture(autouse=True)
def _override_require_user(app):
    app.dependency_overrides[require_user] = lambda: dict(TEST_USER)
    try:
        yield
    finally:
        app.dependency_overrides.pop(require_user, None)


@pytest.fixture
def authenticated_admin_client(app, client):
    app.dependency_overrides[require_admin] = lambda: {"id": "admin-user-id", "role": "admin", "email": "admin@example.com"}
    yield client
    app.dependency_overrides.pop(require_admin, None)


@pytest.fixture
def organizer_client(app, client):
    app.dependency_overrides[require_organizer] = lambda: {"id": "org-1", "role": "organizer", "email": "org@example.com"}
    yield client
    app.dependency_overrides.pop(require_organizer, None)
