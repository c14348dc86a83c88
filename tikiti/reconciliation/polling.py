"""
Attente bornée du statut terminal d'une commande (repli quand le webhook tarde).

Lecture seule: l'attente n'écrit jamais; un délai dépassé est rendu à l'appelant
(timed_out=True) et la commande reste pending jusqu'à un webhook tardif ou l'expiration.
"""
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union
import asyncio
import inspect

from tikiti.config import PAYMENT_POLL_INTERVAL_SECONDS, PAYMENT_POLL_MAX_ATTEMPTS
from tikiti.orders.models import PaymentStatus

MaybeAwaitable = Union[Any, Awaitable[Any]]


@dataclass(frozen=True)
class PollResult:
    status: Optional[PaymentStatus]
    attempts: int
    timed_out: bool = False
    cancelled: bool = False

    def to_dict(self):
        return {
            "payment_status": self.status.value if self.status else None,
            "attempts": self.attempts,
            "timed_out": self.timed_out,
            "cancelled": self.cancelled,
        }


async def _resolve(value: MaybeAwaitable) -> Any:
    return await value if inspect.isawaitable(value) else value


async def wait_for_terminal_status(
    fetch: Callable[[], MaybeAwaitable],
    *,
    interval: float = PAYMENT_POLL_INTERVAL_SECONDS,
    max_attempts: int = PAYMENT_POLL_MAX_ATTEMPTS,
    is_cancelled: Optional[Callable[[], MaybeAwaitable]] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> PollResult:
    """
    Interroge `fetch` (statut courant ou None) jusqu'à un statut terminal.
    - au plus max_attempts lectures, espacées de `interval` secondes
    - is_cancelled() vrai (ex: client déconnecté) -> arrêt immédiat, cancelled=True
    """
    status: Optional[PaymentStatus] = None
    attempts = 0
    for attempts in range(1, max(int(max_attempts), 1) + 1):
        if is_cancelled is not None and await _resolve(is_cancelled()):
            return PollResult(status, attempts - 1, cancelled=True)
        status = await _resolve(fetch())
        if status is not None and status.is_terminal:
            return PollResult(status, attempts)
        if attempts < max_attempts:
            await sleep(interval)
    return PollResult(status, attempts, timed_out=True)
