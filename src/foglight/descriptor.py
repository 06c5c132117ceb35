from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .codec import (
    TYPE_A,
    TYPE_PTR,
    TYPE_SRV,
    TYPE_TXT,
    ARecord,
    Message,
    PTRRecord,
    ResourceRecord,
    SRVRecord,
    TXTRecord,
)


@dataclass(frozen=True)
class ServiceSummary:
    """Brief: Port and service labels derived from an SRV record.

    Inputs (constructor fields):
      - port: SRV port
      - protocol: transport label without underscores ("tcp")
      - type: service label without underscores ("googlecast")

    Outputs:
      - ServiceSummary instance
    """

    port: int
    protocol: str
    type: str

    @classmethod
    def from_record(cls, record: ResourceRecord) -> Optional["ServiceSummary"]:
        """
        Brief: Build a summary from an SRV record owner name.

        Inputs:
          - record: SRV ResourceRecord, e.g. owner "Living Room._googlecast._tcp.local"

        Outputs:
          - ServiceSummary, or None when the record is not SRV or its owner
            name has fewer than three labels

        Example:
          >>> # owner "Living Room._googlecast._tcp.local", port 8009
          >>> # -> ServiceSummary(port=8009, protocol="tcp", type="googlecast")
        """
        if not isinstance(record.rdata, SRVRecord):
            return None
        labels = record.name.split(".")
        labels.reverse()
        if len(labels) < 3:
            return None
        return cls(
            port=record.rdata.port,
            protocol=labels[1].lstrip("_"),
            type=labels[2].lstrip("_"),
        )


@dataclass(frozen=True)
class ServiceDescriptor:
    """Brief: One discovered responder, summarized for callers.

    Inputs (constructor fields):
      - address: IP address the response came from
      - fqdn: first PTR target in the message, else the responder address
      - service: ServiceSummary from the first SRV record, if any
      - message: the raw decoded Message, for classification
      - host_address: first A record address in the message, if any

    Outputs:
      - ServiceDescriptor instance
    """

    address: str
    fqdn: str
    service: Optional[ServiceSummary]
    message: Message
    host_address: Optional[str] = None

    @classmethod
    def from_message(cls, address: str, message: Message) -> "ServiceDescriptor":
        fqdn = address
        ptrs = message.records_of_type(TYPE_PTR)
        if ptrs and isinstance(ptrs[0].rdata, PTRRecord):
            fqdn = ptrs[0].rdata.target

        service = None
        srvs = message.records_of_type(TYPE_SRV)
        if srvs:
            service = ServiceSummary.from_record(srvs[0])

        host_address = None
        a_records = message.records_of_type(TYPE_A)
        if a_records and isinstance(a_records[0].rdata, ARecord):
            host_address = a_records[0].rdata.address

        return cls(
            address=address,
            fqdn=fqdn,
            service=service,
            message=message,
            host_address=host_address,
        )

    @property
    def txt(self) -> Dict[str, Optional[str]]:
        """Key/value pairs of the first TXT record ({} when there is none)."""
        for rr in self.message.records_of_type(TYPE_TXT):
            if isinstance(rr.rdata, TXTRecord):
                return rr.rdata.as_dict()
        return {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "fqdn": self.fqdn,
            "host_address": self.host_address,
            "service": (
                None
                if self.service is None
                else {
                    "port": self.service.port,
                    "protocol": self.service.protocol,
                    "type": self.service.type,
                }
            ),
            "txt": self.txt,
            "packet": self.message.to_dict(),
        }
