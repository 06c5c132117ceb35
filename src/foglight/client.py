from __future__ import annotations

import functools
import logging
from typing import List, Optional, Sequence, Union

from .config.config_schema import FoglightConfig
from .descriptor import ServiceDescriptor
from .discovery import DiscoveryEngine, DiscoveryState
from .monitor import MonitoringChannel, Subscriber
from .netif import list_interfaces
from .transport import (
    InterfaceProvider,
    MulticastTransport,
    SocketFactory,
    TransportState,
    open_multicast_socket,
)

logger = logging.getLogger(__name__)


class DnsSd:
    """
    Brief: mDNS / DNS-SD client owning one shared transport.

    Inputs:
      - config: FoglightConfig (defaults when omitted)
      - interfaces: interface provider used for source address selection
      - socket_factory: optional override for opening the multicast socket

    Outputs:
      - DnsSd instance; discovery and monitoring can run at the same time and
        share the same socket

    Example:
      >>> async with DnsSd() as dnssd:
      ...     devices = await dnssd.discover("_googlecast._tcp.local", wait=2)
    """

    def __init__(
        self,
        config: Optional[FoglightConfig] = None,
        *,
        interfaces: InterfaceProvider = list_interfaces,
        socket_factory: Optional[SocketFactory] = None,
    ) -> None:
        self.config = config or FoglightConfig()
        tcfg = self.config.transport
        dcfg = self.config.discovery
        factory = socket_factory or functools.partial(
            open_multicast_socket, ttl=tcfg.multicast_ttl
        )
        self.transport = MulticastTransport(
            tcfg.group,
            tcfg.port,
            interfaces=interfaces,
            socket_factory=factory,
            source_address=tcfg.source_address,
        )
        self.engine = DiscoveryEngine(
            self.transport,
            default_wait=dcfg.wait,
            send_count=dcfg.send_count,
            send_interval=dcfg.send_interval,
        )
        self.monitor = MonitoringChannel(self.transport)

    @property
    def discovery_state(self) -> DiscoveryState:
        return self.engine.state

    @property
    def transport_state(self) -> TransportState:
        return self.transport.state

    @property
    def is_monitoring(self) -> bool:
        return self.monitor.active

    async def discover(
        self,
        names: Union[str, Sequence[str]],
        wait: Optional[int] = None,
    ) -> List[ServiceDescriptor]:
        return await self.engine.discover(names, wait)

    async def start_monitoring(self) -> None:
        await self.monitor.start()

    async def stop_monitoring(self) -> None:
        await self.monitor.stop()

    def subscribe(self, callback: Subscriber) -> None:
        self.monitor.subscribe(callback)

    def unsubscribe(self) -> None:
        self.monitor.unsubscribe()

    async def close(self) -> None:
        """Stop monitoring and drop the subscriber; an in-flight discovery finishes on its own."""
        self.monitor.unsubscribe()
        await self.monitor.stop()

    async def __aenter__(self) -> "DnsSd":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
