"""Bounded mDNS discovery: query, collect for a while, return a snapshot.

Brief:
  A DiscoverySession moves through IDLE -> SENDING -> WAITING and ends in
  COMPLETED or FAILED. The query is sent `send_count` times, `send_interval`
  seconds apart; a separate wait timer started alongside the first send ends
  the session. Responses are kept per responder address (the latest one wins)
  and filtered by the requested names once the wait timer fires.

Inputs:
  - MulticastTransport shared with the monitoring channel

Outputs:
  - List[ServiceDescriptor] per discovery call
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, field_validator
from pydantic import ValidationError as PydanticValidationError

from .codec import Message, ReceivedMessage, compose
from .descriptor import ServiceDescriptor
from .errors import ConcurrencyError, TransportError, ValidationError
from .transport import Consumer, MulticastTransport

logger = logging.getLogger(__name__)

DEFAULT_WAIT = 3
DEFAULT_SEND_COUNT = 3
DEFAULT_SEND_INTERVAL = 1.0
MAX_NAMES = 255


class DiscoveryState(enum.Enum):
    IDLE = "idle"
    SENDING = "sending"
    WAITING = "waiting"
    COMPLETED = "completed"
    FAILED = "failed"


_ACTIVE_STATES = (DiscoveryState.SENDING, DiscoveryState.WAITING)


class DiscoveryRequest(BaseModel):
    """Brief: Validated discovery parameters.

    Inputs:
      - names: non-empty string, or non-empty list (at most 255) of non-empty strings
      - wait: positive whole number of seconds

    Outputs:
      - DiscoveryRequest with `names` normalized to a tuple
    """

    names: Tuple[str, ...]
    wait: int = DEFAULT_WAIT

    @field_validator("names", mode="before")
    @classmethod
    def _normalize_names(cls, v: Any) -> Tuple[str, ...]:
        if isinstance(v, str):
            if not v:
                raise ValueError("The `name` must be a non-empty string.")
            return (v,)
        if isinstance(v, (list, tuple)):
            if not v:
                raise ValueError("The `name` must be a non-empty array.")
            if len(v) > MAX_NAMES:
                raise ValueError(f"The `name` can include up to {MAX_NAMES} elements.")
            if not all(isinstance(n, str) and n for n in v):
                raise ValueError("The `name` must be an array of non-empty strings.")
            return tuple(v)
        raise ValueError("The `name` must be a string or an array of strings.")

    @field_validator("names")
    @classmethod
    def _check_labels(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        # One trailing dot (the root) is allowed; any other empty label is not.
        for name in v:
            if not all(_strip_root(name).split(".")):
                raise ValueError(f"The `name` {name!r} contains an empty label.")
        return v

    @field_validator("wait", mode="before")
    @classmethod
    def _check_wait(cls, v: Any) -> int:
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise ValueError("The `wait` must be a positive integer.")
        if v <= 0 or v != int(v):
            raise ValueError("The `wait` must be a positive integer.")
        return int(v)


def validate_request(names: Any, wait: Any = DEFAULT_WAIT) -> DiscoveryRequest:
    """
    Brief: Validate caller parameters without touching the network.

    Inputs:
      - names: service name or list of service names
      - wait: seconds to collect responses

    Outputs:
      - DiscoveryRequest

    Raises:
      - ValidationError: with a description of every rejected field
    """
    try:
        return DiscoveryRequest(names=names, wait=wait)
    except PydanticValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg'].removeprefix('Value error, ')}"
            for err in exc.errors()
        )
        raise ValidationError(details) from None


def _strip_root(name: str) -> str:
    return name[:-1] if name.endswith(".") else name


class DiscoverySession:
    """
    Brief: State for one in-flight discovery.

    Inputs:
      - request: validated DiscoveryRequest
      - transport: acquired MulticastTransport used for sends
      - query: composed query bytes
      - send_count/send_interval: retry schedule

    Outputs:
      - DiscoverySession; await `wait()` then read `results()`
    """

    def __init__(
        self,
        request: DiscoveryRequest,
        transport: MulticastTransport,
        query: bytes,
        *,
        send_count: int = DEFAULT_SEND_COUNT,
        send_interval: float = DEFAULT_SEND_INTERVAL,
    ) -> None:
        self.names: Tuple[str, ...] = request.names
        self.wait_seconds = request.wait
        self.state = DiscoveryState.IDLE
        self.responses: Dict[str, Message] = {}
        self.sends = 0

        self._targets: FrozenSet[str] = frozenset(_strip_root(n) for n in request.names)
        self._transport = transport
        self._query = query
        self._send_count = send_count
        self._send_interval = send_interval
        self._source_address: Optional[str] = None
        self._loop = asyncio.get_running_loop()
        self._done: asyncio.Future = self._loop.create_future()
        self._send_timer: Optional[asyncio.TimerHandle] = None
        self._wait_timer: Optional[asyncio.TimerHandle] = None

    def start(self) -> None:
        self._source_address = self._transport.source_address
        self.state = DiscoveryState.SENDING
        self._wait_timer = self._loop.call_later(self.wait_seconds, self._on_wait_expired)
        self._send_query()

    async def wait(self) -> None:
        await self._done

    def on_message(self, received: ReceivedMessage) -> None:
        if self.state not in _ACTIVE_STATES:
            return
        if not self.is_answer(received):
            return
        self.responses[received.address] = received.message

    def on_error(self, exc: Exception) -> None:
        if self.state in _ACTIVE_STATES:
            err = TransportError(f"mDNS socket error: {exc}")
            err.__cause__ = exc
            self._fail(err)

    def is_answer(self, received: ReceivedMessage) -> bool:
        """A response to a standard query that did not come from ourselves."""
        if received.address == self._source_address:
            return False
        header = received.message.header
        return header.qr and header.opcode == 0

    def matches(self, message: Message) -> bool:
        return any(rr.name in self._targets for rr in message.answers)

    def results(self) -> List[ServiceDescriptor]:
        return [
            ServiceDescriptor.from_message(address, message)
            for address, message in self.responses.items()
            if self.matches(message)
        ]

    def close(self) -> None:
        """Cancel timers and drop collected responses."""
        self._cancel_timers()
        self.responses.clear()
        if self.state not in (DiscoveryState.COMPLETED, DiscoveryState.FAILED):
            self.state = DiscoveryState.FAILED
        if not self._done.done():
            self._done.cancel()

    def _send_query(self) -> None:
        self._send_timer = None
        if self.state not in _ACTIVE_STATES:
            return
        try:
            self._transport.send(self._query)
        except TransportError as exc:
            self._fail(exc)
            return
        self.sends += 1
        logger.debug("Sent mDNS query %d/%d for %s", self.sends, self._send_count, ", ".join(self.names))
        if self.sends < self._send_count:
            self._send_timer = self._loop.call_later(self._send_interval, self._send_query)
        else:
            self.state = DiscoveryState.WAITING

    def _on_wait_expired(self) -> None:
        self._wait_timer = None
        if self._done.done():
            return
        self._cancel_timers()
        self.state = DiscoveryState.COMPLETED
        self._done.set_result(None)

    def _fail(self, exc: Exception) -> None:
        if self._done.done():
            return
        self._cancel_timers()
        self.state = DiscoveryState.FAILED
        self._done.set_exception(exc)

    def _cancel_timers(self) -> None:
        for timer in (self._send_timer, self._wait_timer):
            if timer is not None:
                timer.cancel()
        self._send_timer = None
        self._wait_timer = None


class DiscoveryEngine:
    """
    Brief: Runs one discovery at a time over a shared MulticastTransport.

    Inputs:
      - transport: MulticastTransport
      - default_wait: seconds used when discover() gets no wait
      - send_count: number of times the query is sent
      - send_interval: seconds between sends

    Outputs:
      - DiscoveryEngine instance

    Example:
      >>> engine = DiscoveryEngine(MulticastTransport())
      >>> await engine.discover("_googlecast._tcp.local", wait=2)
      [ServiceDescriptor(address='192.168.1.20', ...)]
    """

    def __init__(
        self,
        transport: MulticastTransport,
        *,
        default_wait: int = DEFAULT_WAIT,
        send_count: int = DEFAULT_SEND_COUNT,
        send_interval: float = DEFAULT_SEND_INTERVAL,
    ) -> None:
        self._transport = transport
        self.default_wait = default_wait
        self.send_count = send_count
        self.send_interval = send_interval
        self._session: Optional[DiscoverySession] = None

    @property
    def is_running(self) -> bool:
        return self._session is not None

    @property
    def state(self) -> DiscoveryState:
        return self._session.state if self._session is not None else DiscoveryState.IDLE

    async def discover(
        self,
        names: Union[str, Sequence[str]],
        wait: Optional[int] = None,
    ) -> List[ServiceDescriptor]:
        """
        Brief: Query for `names` and return responders that answered for them.

        Inputs:
          - names: service name or list of names (e.g. "_googlecast._tcp.local")
          - wait: seconds to collect responses (default: default_wait)

        Outputs:
          - List[ServiceDescriptor] in order of first response per address

        Raises:
          - ConcurrencyError: another discovery is in flight
          - ValidationError: invalid names or wait
          - TransportError: the socket could not be opened or written to
        """
        if self._session is not None:
            raise ConcurrencyError("The discovery process is running.")
        request = validate_request(names, self.default_wait if wait is None else wait)
        try:
            query = compose(request.names)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        session = DiscoverySession(
            request,
            self._transport,
            query,
            send_count=self.send_count,
            send_interval=self.send_interval,
        )
        self._session = session
        logger.info("Discovering %s for %ds", ", ".join(request.names), request.wait)
        try:
            await self._transport.acquire(Consumer.DISCOVERY, session.on_message, session.on_error)
            session.start()
            await session.wait()
            found = session.results()
            logger.info(
                "Discovery finished: %d of %d responders matched",
                len(found),
                len(session.responses),
            )
            return found
        finally:
            session.close()
            self._transport.release(Consumer.DISCOVERY)
            self._session = None
