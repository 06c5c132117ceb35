"""Local interface enumeration and multicast source address selection."""

from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence

import ifaddr

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InterfaceAddress:
    """Brief: One address configured on a local network interface.

    Inputs (constructor fields):
      - address: textual IP address
      - netmask: textual netmask ("255.255.255.0" for IPv4, prefix form for IPv6)
      - family: "IPv4" or "IPv6"
      - internal: True for loopback addresses

    Outputs:
      - InterfaceAddress instance
    """

    address: str
    netmask: str
    family: str = "IPv4"
    internal: bool = False


def list_interfaces() -> Dict[str, List[InterfaceAddress]]:
    """
    Brief: Enumerate local interfaces and their addresses via ifaddr.

    Inputs:
      - None

    Outputs:
      - dict: interface name -> list of InterfaceAddress, in adapter order
    """
    out: Dict[str, List[InterfaceAddress]] = {}
    for adapter in ifaddr.get_adapters():
        entries: List[InterfaceAddress] = []
        for ip in adapter.ips:
            if isinstance(ip.ip, str):
                addr = ipaddress.IPv4Address(ip.ip)
                netmask = str(ipaddress.IPv4Network(f"0.0.0.0/{ip.network_prefix}").netmask)
                entries.append(
                    InterfaceAddress(
                        address=str(addr),
                        netmask=netmask,
                        family="IPv4",
                        internal=addr.is_loopback,
                    )
                )
            else:
                addr6 = ipaddress.IPv6Address(ip.ip[0])
                entries.append(
                    InterfaceAddress(
                        address=str(addr6),
                        netmask=f"/{ip.network_prefix}",
                        family="IPv6",
                        internal=addr6.is_loopback,
                    )
                )
        out[adapter.name] = entries
    return out


def prefix_length(netmask: str) -> int:
    """
    Brief: Count the leading one bits of a dotted IPv4 netmask.

    Inputs:
      - netmask: e.g. "255.255.255.0"

    Outputs:
      - int: number of contiguous leading one bits (24 for the example)

    Example:
      >>> prefix_length("255.255.240.0")
      20
    """
    value = int(ipaddress.IPv4Address(netmask))
    bits = 0
    for shift in range(31, -1, -1):
        if not (value >> shift) & 1:
            break
        bits += 1
    return bits


def select_source_address(
    interfaces: Mapping[str, Sequence[InterfaceAddress]],
) -> Optional[str]:
    """
    Brief: Pick the local IPv4 address used to join and send to the mDNS group.

    Inputs:
      - interfaces: mapping of interface name -> addresses (see list_interfaces)

    Outputs:
      - str: the non-internal IPv4 address with the longest netmask prefix;
        ties keep the first one encountered. None when no address qualifies
        (a zero-length prefix never qualifies).
    """
    best: Optional[str] = None
    best_bits = 0
    for name, entries in interfaces.items():
        for entry in entries:
            if entry.family != "IPv4" or entry.internal:
                continue
            try:
                addr = ipaddress.IPv4Address(entry.address)
                bits = prefix_length(entry.netmask)
            except ValueError:
                logger.debug("Ignoring unparsable address %r on %s", entry, name)
                continue
            if bits > best_bits:
                best, best_bits = str(addr), bits
    return best
