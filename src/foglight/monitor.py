"""Passive monitoring: forward every decoded mDNS message to a subscriber."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .codec import ReceivedMessage
from .errors import TransportError
from .transport import Consumer, MulticastTransport

logger = logging.getLogger(__name__)

Subscriber = Callable[[ReceivedMessage], None]


class MonitoringChannel:
    """
    Brief: Delivers decoded messages to one subscriber while monitoring is on.

    Inputs:
      - transport: MulticastTransport shared with the discovery engine

    Outputs:
      - MonitoringChannel instance

    Notes:
      - No address, opcode or name filtering is applied; every message that
        decodes is delivered, tagged with the sender address.
      - Delivery stops as soon as stop() or unsubscribe() is called.
    """

    def __init__(self, transport: MulticastTransport) -> None:
        self._transport = transport
        self._subscriber: Optional[Subscriber] = None
        self._active = False
        self._generation = 0

    @property
    def active(self) -> bool:
        return self._active

    def subscribe(self, callback: Subscriber) -> None:
        """Register `callback`, replacing any previous subscriber."""
        self._subscriber = callback

    def unsubscribe(self) -> None:
        self._subscriber = None

    async def start(self) -> None:
        """
        Brief: Begin monitoring; a no-op when already active.

        Inputs:
          - None

        Outputs:
          - None

        Raises:
          - TransportError: the shared socket could not be opened; monitoring
            stays inactive
        """
        if self._active:
            return
        generation = self._generation
        try:
            await self._transport.acquire(Consumer.MONITORING, self._deliver)
        except TransportError:
            self._release()
            raise
        if generation != self._generation:
            # stop() was called while the socket was opening.
            self._release()
            logger.debug("mDNS monitoring stopped before start completed")
            return
        self._active = True
        logger.info("mDNS monitoring started")

    async def stop(self) -> None:
        """Stop monitoring. Never raises, even when monitoring never started."""
        was_active = self._active
        self._active = False
        self._generation += 1
        self._release()
        if was_active:
            logger.info("mDNS monitoring stopped")

    def _release(self) -> None:
        try:
            self._transport.release(Consumer.MONITORING)
        except Exception as exc:
            logger.debug("Ignoring error while releasing mDNS transport: %s", exc)

    def _deliver(self, received: ReceivedMessage) -> None:
        if not self._active:
            return
        subscriber = self._subscriber
        if subscriber is None:
            return
        try:
            subscriber(received)
        except Exception:
            logger.exception("mDNS monitoring subscriber failed for message from %s", received.address)
