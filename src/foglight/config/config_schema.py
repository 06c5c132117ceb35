"""Typed configuration models for foglight.

Brief:
  The YAML configuration is validated into these pydantic models before any
  socket is opened. Every section is optional; defaults reproduce standard
  mDNS behaviour (224.0.0.251:5353, three queries one second apart, a three
  second collection window).
"""

from __future__ import annotations

import ipaddress
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..classifiers.registry import DEFAULT_CLASSIFIERS
from ..codec import MDNS_GROUP, MDNS_PORT


class TransportConfig(BaseModel):
    """Brief: Multicast socket settings.

    Inputs:
      - group: IPv4 multicast group (default 224.0.0.251).
      - port: UDP port (default 5353).
      - source_address: Optional local IPv4 address to use instead of the
        longest-prefix interface selection.
      - multicast_ttl: TTL for outgoing queries (mDNS uses 255).

    Outputs:
      - TransportConfig instance.
    """

    model_config = ConfigDict(extra="forbid")

    group: str = Field(default=MDNS_GROUP)
    port: int = Field(default=MDNS_PORT, ge=1, le=65535)
    source_address: Optional[str] = None
    multicast_ttl: int = Field(default=255, ge=1, le=255)

    @field_validator("group", "source_address")
    @classmethod
    def _ipv4(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return str(ipaddress.IPv4Address(str(v).strip()))


class DiscoveryConfig(BaseModel):
    """Brief: Discovery retry and collection timing.

    Inputs:
      - wait: default collection window in whole seconds.
      - send_count: how many times each query is sent.
      - send_interval: seconds between query sends.

    Outputs:
      - DiscoveryConfig instance.
    """

    model_config = ConfigDict(extra="forbid")

    wait: int = Field(default=3, gt=0)
    send_count: int = Field(default=3, ge=1)
    send_interval: float = Field(default=1.0, gt=0)


class FoglightConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    transport: TransportConfig = Field(default_factory=TransportConfig)
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
    classifiers: List[str] = Field(default_factory=lambda: list(DEFAULT_CLASSIFIERS))
    logging: Dict[str, Any] = Field(default_factory=dict)
