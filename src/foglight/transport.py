"""Shared multicast UDP transport for discovery and monitoring.

Brief:
  One socket bound to the mDNS port and joined to the mDNS group serves both
  the discovery engine and the monitoring channel. Each of them registers as
  a Consumer; the socket opens on the first registration and closes when the
  last consumer releases it.

Inputs:
  - group/port: multicast destination (224.0.0.251:5353 by default)
  - interfaces: callable returning local interface addresses
  - socket_factory: callable opening the bound, joined socket

Outputs:
  - MulticastTransport instance dispatching ReceivedMessage objects
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
import socket
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .codec import MDNS_GROUP, MDNS_PORT, ReceivedMessage, parse
from .errors import TransportError
from .netif import InterfaceAddress, list_interfaces, select_source_address

logger = logging.getLogger(__name__)

MessageHandler = Callable[[ReceivedMessage], None]
ErrorHandler = Callable[[Exception], None]
InterfaceProvider = Callable[[], Mapping[str, Sequence[InterfaceAddress]]]
SocketFactory = Callable[[str, str, int], socket.socket]


class Consumer(enum.Enum):
    DISCOVERY = "discovery"
    MONITORING = "monitoring"


class TransportState(enum.Enum):
    IDLE = "idle"
    DISCOVERY_ONLY = "discovery_only"
    MONITORING_ONLY = "monitoring_only"
    BOTH = "both"


def open_multicast_socket(
    source_address: str,
    group: str,
    port: int,
    *,
    ttl: int = 255,
) -> socket.socket:
    """
    Brief: Open a non-blocking UDP socket bound to `port` and joined to `group`.

    Inputs:
      - source_address: local IPv4 address of the interface to join/send on
      - group: multicast group address
      - port: UDP port to bind (shared with other mDNS stacks via SO_REUSEADDR)
      - ttl: multicast TTL for outgoing queries

    Outputs:
      - socket.socket ready for asyncio's create_datagram_endpoint

    Raises:
      - OSError: bind, membership or option failures (the socket is closed)
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        if hasattr(socket, "SO_REUSEPORT"):
            with contextlib.suppress(OSError):
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
        sock.bind(("", port))
        mreq = socket.inet_aton(group) + socket.inet_aton(source_address)
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, mreq)
        sock.setsockopt(
            socket.IPPROTO_IP, socket.IP_MULTICAST_IF, socket.inet_aton(source_address)
        )
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, ttl)
        sock.setblocking(False)
    except OSError:
        sock.close()
        raise
    return sock


class _MulticastProtocol(asyncio.DatagramProtocol):
    def __init__(self, owner: "MulticastTransport") -> None:
        self._owner = owner

    def datagram_received(self, data: bytes, addr) -> None:
        self._owner.dispatch(data, addr[0])

    def error_received(self, exc: Exception) -> None:
        self._owner._dispatch_error(exc)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        if exc is not None:
            logger.debug("mDNS socket closed with error: %s", exc)


class MulticastTransport:
    """
    Brief: Reference-counted owner of the mDNS multicast socket.

    Inputs:
      - group: multicast group address
      - port: UDP port (5353)
      - interfaces: provider used for source address selection
      - socket_factory: (source_address, group, port) -> socket.socket
      - source_address: optional fixed source address overriding selection

    Outputs:
      - MulticastTransport instance

    Example:
      >>> transport = MulticastTransport()
      >>> await transport.acquire(Consumer.MONITORING, print)
      >>> transport.release(Consumer.MONITORING)
    """

    def __init__(
        self,
        group: str = MDNS_GROUP,
        port: int = MDNS_PORT,
        *,
        interfaces: InterfaceProvider = list_interfaces,
        socket_factory: SocketFactory = open_multicast_socket,
        source_address: Optional[str] = None,
    ) -> None:
        self.group = group
        self.port = int(port)
        self._interfaces = interfaces
        self._socket_factory = socket_factory
        self._configured_source = source_address
        self._source_address: Optional[str] = None
        self._endpoint: Optional[asyncio.DatagramTransport] = None
        self._consumers: Dict[Consumer, Tuple[MessageHandler, Optional[ErrorHandler]]] = {}
        self._open_lock = asyncio.Lock()

    @property
    def source_address(self) -> Optional[str]:
        return self._source_address

    @property
    def is_listening(self) -> bool:
        return self._endpoint is not None

    @property
    def state(self) -> TransportState:
        discovering = Consumer.DISCOVERY in self._consumers
        monitoring = Consumer.MONITORING in self._consumers
        if discovering and monitoring:
            return TransportState.BOTH
        if discovering:
            return TransportState.DISCOVERY_ONLY
        if monitoring:
            return TransportState.MONITORING_ONLY
        return TransportState.IDLE

    def in_use_by(self, consumer: Consumer) -> bool:
        return consumer in self._consumers

    async def acquire(
        self,
        consumer: Consumer,
        on_message: MessageHandler,
        on_error: Optional[ErrorHandler] = None,
    ) -> None:
        """
        Brief: Register `consumer` and make sure the socket is listening.

        Inputs:
          - consumer: Consumer.DISCOVERY or Consumer.MONITORING
          - on_message: called with every decoded ReceivedMessage
          - on_error: optional, called with asynchronous socket errors

        Outputs:
          - None

        Raises:
          - TransportError: no usable source address, or the socket could not
            be opened; nothing stays registered in that case
        """
        async with self._open_lock:
            if self._endpoint is None:
                await self._open()
            self._consumers[consumer] = (on_message, on_error)
        logger.debug("mDNS transport acquired by %s (%s)", consumer.value, self.state.value)

    def release(self, consumer: Consumer) -> None:
        """
        Brief: Drop `consumer`; close the socket once no consumer remains.

        Inputs:
          - consumer: the Consumer releasing its usage

        Outputs:
          - None; close failures are logged and swallowed
        """
        self._consumers.pop(consumer, None)
        if self._consumers:
            logger.debug("mDNS transport released by %s, still %s", consumer.value, self.state.value)
            return
        self._close()

    def send(self, payload: bytes) -> None:
        endpoint = self._endpoint
        if endpoint is None or endpoint.is_closing():
            raise TransportError("mDNS transport is not open")
        try:
            endpoint.sendto(payload, (self.group, self.port))
        except (OSError, RuntimeError, ValueError) as exc:
            raise TransportError(f"failed to send to {self.group}:{self.port}: {exc}") from exc

    def dispatch(self, data: bytes, address: str) -> None:
        """
        Brief: Decode one datagram and hand it to every registered consumer.

        Inputs:
          - data: datagram payload
          - address: sender IP address

        Outputs:
          - None; undecodable datagrams are dropped
        """
        message = parse(data)
        if message is None:
            logger.debug("Dropped undecodable datagram from %s (%d bytes)", address, len(data))
            return
        received = ReceivedMessage(address=address, message=message)
        handlers: List[Tuple[Consumer, MessageHandler]] = [
            (consumer, pair[0]) for consumer, pair in self._consumers.items()
        ]
        for consumer, handler in handlers:
            try:
                handler(received)
            except Exception:
                logger.exception("mDNS %s handler failed for datagram from %s", consumer.value, address)

    def _dispatch_error(self, exc: Exception) -> None:
        logger.warning("mDNS socket error: %s", exc)
        for _, on_error in list(self._consumers.values()):
            if on_error is not None:
                on_error(exc)

    async def _open(self) -> None:
        try:
            source = self._configured_source or select_source_address(self._interfaces())
        except OSError as exc:
            raise TransportError(f"cannot enumerate network interfaces: {exc}") from exc
        if not source:
            raise TransportError("no non-loopback IPv4 interface available for mDNS")

        try:
            sock = self._socket_factory(source, self.group, self.port)
        except OSError as exc:
            raise TransportError(
                f"cannot join {self.group}:{self.port} on {source}: {exc}"
            ) from exc

        loop = asyncio.get_running_loop()
        try:
            endpoint, _ = await loop.create_datagram_endpoint(
                lambda: _MulticastProtocol(self), sock=sock
            )
        except OSError as exc:
            sock.close()
            raise TransportError(f"cannot listen on {self.group}:{self.port}: {exc}") from exc
        except BaseException:
            sock.close()
            raise

        self._endpoint = endpoint
        self._source_address = source
        logger.info("Listening for mDNS on %s:%d via %s", self.group, self.port, source)

    def _close(self) -> None:
        endpoint = self._endpoint
        self._endpoint = None
        self._source_address = None
        if endpoint is None:
            return
        try:
            endpoint.close()
        except Exception as exc:
            logger.debug("Ignoring error while closing mDNS socket: %s", exc)
        else:
            logger.info("Stopped listening for mDNS on %s:%d", self.group, self.port)
