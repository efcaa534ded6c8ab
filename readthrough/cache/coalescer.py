"""
In-flight load tracking so that each (namespace, key) has at most one loader
running at a time.

A synchronous miss that finds a load already in flight waits for it and
shares its outcome. A background refresh that finds one simply does nothing.
"""
import threading
import time
import logging
from typing import Dict, Optional, Any, Tuple
from dataclasses import dataclass, field

logger = logging.getLogger("cache.coalescer")

TicketKey = Tuple[str, str]


@dataclass
class RefreshTicket:
    """Tracks an in-progress load for one (namespace, key)."""
    namespace: str
    key: str
    background: bool = False
    in_flight: bool = True
    event: threading.Event = field(default_factory=threading.Event, repr=False)
    result: Optional[Any] = field(default=None, repr=False)
    error: Optional[BaseException] = None
    started_at: float = field(default_factory=time.monotonic)
    waiter_count: int = 0

    @property
    def identity(self) -> TicketKey:
        return (self.namespace, self.key)


class RequestCoalescer:
    """
    Issues and retires RefreshTickets.

    Pattern:
    - The first caller for a key gets a ticket and performs the load
    - Later synchronous callers for the same key wait on the ticket's Event
    - Later background refreshes for the same key are dropped
    - When the load completes, the ticket is removed and all waiters receive
      the same result or exception

    Usage:
        ticket, is_owner = coalescer.join_or_start("students", "p1")
        if not is_owner:
            return coalescer.wait(ticket)
        try:
            value = loader()
        except Exception as e:
            coalescer.finish(ticket, error=e)
            raise
        coalescer.finish(ticket, result=value)
    """

    def __init__(self, timeout: float = 30.0):
        """
        Initialize the coalescer.

        Args:
            timeout: Max seconds to wait for an in-flight load
        """
        self._in_flight: Dict[TicketKey, RefreshTicket] = {}
        self._lock = threading.Lock()
        self._timeout = timeout

    def join_or_start(self, namespace: str, key: str) -> Tuple[RefreshTicket, bool]:
        """
        Either join an existing in-flight load or start a new one.

        Returns:
            (ticket, is_owner) - the owner must call finish()
        """
        identity = (namespace, key)
        with self._lock:
            ticket = self._in_flight.get(identity)
            if ticket is not None:
                ticket.waiter_count += 1
                logger.debug(
                    f"Coalescing load for {namespace}:{key} "
                    f"(waiters: {ticket.waiter_count})"
                )
                return ticket, False
            ticket = RefreshTicket(namespace=namespace, key=key)
            self._in_flight[identity] = ticket
        logger.debug(f"Initiating load for {namespace}:{key}")
        return ticket, True

    def try_start(self, namespace: str, key: str) -> Optional[RefreshTicket]:
        """
        Start a background refresh unless a load for the key is in flight.

        Returns:
            The new ticket, or None if one already exists
        """
        identity = (namespace, key)
        with self._lock:
            if identity in self._in_flight:
                logger.debug(f"Already refreshing: {namespace}:{key}")
                return None
            ticket = RefreshTicket(namespace=namespace, key=key, background=True)
            self._in_flight[identity] = ticket
        return ticket

    def finish(
        self,
        ticket: RefreshTicket,
        result: Any = None,
        error: Optional[BaseException] = None,
    ) -> None:
        """Record the outcome, retire the ticket and wake every waiter."""
        ticket.result = result
        ticket.error = error
        with self._lock:
            if self._in_flight.get(ticket.identity) is ticket:
                del self._in_flight[ticket.identity]
            ticket.in_flight = False
        ticket.event.set()

    def wait(self, ticket: RefreshTicket) -> Any:
        """
        Wait for another caller's load and share its outcome.

        Raises:
            TimeoutError: If the load does not finish within the timeout
            Exception: The loader's own exception, if it failed
        """
        completed = ticket.event.wait(timeout=self._timeout)

        if not completed:
            logger.error(f"Timeout waiting for in-flight load: {ticket.namespace}:{ticket.key}")
            raise TimeoutError(
                f"Load for {ticket.namespace}:{ticket.key} timed out after {self._timeout}s"
            )

        if ticket.error is not None:
            raise ticket.error

        return ticket.result

    def is_in_flight(self, namespace: str, key: str) -> bool:
        with self._lock:
            return (namespace, key) in self._in_flight

    def waiter_count(self, namespace: str, key: str) -> int:
        """Callers currently waiting on the in-flight load for a key."""
        with self._lock:
            ticket = self._in_flight.get((namespace, key))
            return ticket.waiter_count if ticket is not None else 0

    def in_flight_count(self, namespace: Optional[str] = None) -> int:
        """Number of in-flight loads, optionally for one namespace."""
        with self._lock:
            if namespace is None:
                return len(self._in_flight)
            return sum(1 for ns, _ in self._in_flight if ns == namespace)

    def get_stats(self) -> Dict[str, Any]:
        """Get coalescer statistics."""
        now = time.monotonic()
        with self._lock:
            tickets = list(self._in_flight.values())
        return {
            "active_requests": len(tickets),
            "active_keys": [f"{t.namespace}:{t.key}" for t in tickets],
            "background_refreshes": sum(1 for t in tickets if t.background),
            "oldest_age_seconds": round(max((now - t.started_at for t in tickets), default=0.0), 3),
        }
