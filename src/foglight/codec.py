"""DNS wire-format codec for mDNS / DNS-SD traffic.

Brief:
  Composes multicast DNS query messages and decodes response messages,
  including name decompression and typed rdata for the record types that
  DNS-SD relies on (A, AAAA, PTR, TXT, SRV). Every other record type is kept
  as raw rdata bytes. Wire handling is built on dnslib (DNSRecord, DNSBuffer).

Inputs:
  - Service names (compose) or raw datagram bytes (parse)

Outputs:
  - Query bytes ready for sendto(), or an immutable Message (None when the
    datagram is malformed or truncated)
"""

from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from dnslib import AAAA, CLASS, PTR, QTYPE, RR, SRV, TXT, A, DNSHeader, DNSQuestion, DNSRecord
from dnslib.bimap import BimapError
from dnslib.buffer import BufferError as DNSBufferError
from dnslib.dns import DNSError
from dnslib.label import DNSBuffer, DNSLabel, DNSLabelError

logger = logging.getLogger(__name__)

MDNS_GROUP = "224.0.0.251"
MDNS_PORT = 5353

TYPE_A = QTYPE.A
TYPE_PTR = QTYPE.PTR
TYPE_TXT = QTYPE.TXT
TYPE_AAAA = QTYPE.AAAA
TYPE_SRV = QTYPE.SRV
CLASS_IN = CLASS.IN

# mDNS reuses the top bit of the class field: unicast-response in questions,
# cache-flush in resource records (RFC 6762 sections 5.4 and 10.2).
_CLASS_TOP_BIT = 0x8000

# Header size, and the smallest question (root name + type/class) and
# record (root name + type/class/ttl/rdlength) encodings.
_HEADER_LEN = 12
_MIN_QUESTION_LEN = 5
_MIN_RR_LEN = 11

MAX_LABEL_LEN = 63
MAX_NAME_LEN = 255


class DecodeError(ValueError):
    """Raised internally when a datagram is structurally inconsistent."""


@dataclass(frozen=True)
class Header:
    """Brief: Decoded DNS message header.

    Inputs (constructor fields):
      - id: transaction id
      - qr: True for responses
      - opcode: 4-bit opcode (0 == standard query)
      - aa/tc/rd/ra: header flag bits
      - rcode: 4-bit response code
      - qdcount/ancount/nscount/arcount: section counts

    Outputs:
      - Header instance
    """

    id: int
    qr: bool
    opcode: int
    aa: bool
    tc: bool
    rd: bool
    ra: bool
    rcode: int
    qdcount: int
    ancount: int
    nscount: int
    arcount: int

    @classmethod
    def from_dnslib(cls, header: DNSHeader) -> "Header":
        return cls(
            id=header.id,
            qr=bool(header.qr),
            opcode=header.opcode,
            aa=bool(header.aa),
            tc=bool(header.tc),
            rd=bool(header.rd),
            ra=bool(header.ra),
            rcode=header.bitmap & 0x000F,
            qdcount=header.q,
            ancount=header.a,
            nscount=header.auth,
            arcount=header.ar,
        )


@dataclass(frozen=True)
class Question:
    name: str
    qtype: int
    qclass: int = CLASS_IN
    unicast_response: bool = False

    @property
    def type_name(self) -> str:
        return _type_name(self.qtype)


@dataclass(frozen=True)
class ARecord:
    address: str


@dataclass(frozen=True)
class AAAARecord:
    address: str


@dataclass(frozen=True)
class PTRRecord:
    target: str


@dataclass(frozen=True)
class TXTRecord:
    """Brief: TXT rdata as ordered key/value pairs.

    Inputs (constructor fields):
      - pairs: tuple of (key, value) where value is None for key-only entries

    Outputs:
      - TXTRecord instance

    Example:
      >>> TXTRecord(pairs=(("md", "Chromecast"), ("flag", None))).as_dict()
      {'md': 'Chromecast', 'flag': None}
    """

    pairs: Tuple[Tuple[str, Optional[str]], ...]

    def as_dict(self) -> Dict[str, Optional[str]]:
        # Later duplicates win, matching how TXT lookups are usually consumed.
        return {k: v for k, v in self.pairs}

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        for k, v in self.pairs:
            if k == key:
                return v
        return default


@dataclass(frozen=True)
class SRVRecord:
    priority: int
    weight: int
    port: int
    target: str


@dataclass(frozen=True)
class RawRecord:
    data: bytes


RData = Union[ARecord, AAAARecord, PTRRecord, TXTRecord, SRVRecord, RawRecord]


@dataclass(frozen=True)
class ResourceRecord:
    """Brief: One answer/authority/additional record with typed rdata.

    Inputs (constructor fields):
      - name: owner name (dotted, no trailing dot)
      - rtype: numeric record type
      - rclass: record class with the mDNS cache-flush bit removed
      - ttl: time to live in seconds
      - rdata: ARecord | AAAARecord | PTRRecord | TXTRecord | SRVRecord | RawRecord
      - cache_flush: True when the mDNS cache-flush bit was set

    Outputs:
      - ResourceRecord instance
    """

    name: str
    rtype: int
    rclass: int
    ttl: int
    rdata: RData
    cache_flush: bool = False

    @property
    def type_name(self) -> str:
        return _type_name(self.rtype)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type_name,
            "class": self.rclass,
            "ttl": self.ttl,
            "cache_flush": self.cache_flush,
            "rdata": _rdata_to_json(self.rdata),
        }


@dataclass(frozen=True)
class Message:
    """Brief: Immutable decoded DNS message.

    Inputs (constructor fields):
      - header: Header
      - questions/answers/authorities/additionals: tuples in wire order

    Outputs:
      - Message instance
    """

    header: Header
    questions: Tuple[Question, ...] = ()
    answers: Tuple[ResourceRecord, ...] = ()
    authorities: Tuple[ResourceRecord, ...] = ()
    additionals: Tuple[ResourceRecord, ...] = ()

    @property
    def is_response(self) -> bool:
        return self.header.qr

    def records(self) -> Iterable[ResourceRecord]:
        """Yield records from answers, authorities and additionals in order."""
        yield from self.answers
        yield from self.authorities
        yield from self.additionals

    def records_of_type(self, rtype: int) -> List[ResourceRecord]:
        return [rr for rr in self.records() if rr.rtype == rtype]

    def to_dict(self) -> Dict[str, Any]:
        h = self.header
        return {
            "header": {
                "id": h.id,
                "qr": int(h.qr),
                "opcode": h.opcode,
                "aa": int(h.aa),
                "tc": int(h.tc),
                "rd": int(h.rd),
                "ra": int(h.ra),
                "rcode": h.rcode,
                "qdcount": h.qdcount,
                "ancount": h.ancount,
                "nscount": h.nscount,
                "arcount": h.arcount,
            },
            "questions": [
                {"name": q.name, "type": q.type_name, "class": q.qclass}
                for q in self.questions
            ],
            "answers": [rr.to_dict() for rr in self.answers],
            "authorities": [rr.to_dict() for rr in self.authorities],
            "additionals": [rr.to_dict() for rr in self.additionals],
        }


@dataclass(frozen=True)
class ReceivedMessage:
    """A decoded Message tagged with the address of the host that sent it."""

    address: str
    message: Message


def _type_name(rtype: int) -> str:
    return QTYPE.get(rtype, f"TYPE{rtype}")


def _rdata_to_json(rdata: RData) -> Any:
    if isinstance(rdata, (ARecord, AAAARecord)):
        return rdata.address
    if isinstance(rdata, PTRRecord):
        return rdata.target
    if isinstance(rdata, TXTRecord):
        return rdata.as_dict()
    if isinstance(rdata, SRVRecord):
        return {
            "priority": rdata.priority,
            "weight": rdata.weight,
            "port": rdata.port,
            "target": rdata.target,
        }
    return rdata.data.hex()



# --------------------------------------------------------------------------
# Composition
# --------------------------------------------------------------------------


def _to_label(name: str) -> DNSLabel:
    labels = []
    size = 1
    for label in name.split("."):
        if not label:
            continue
        raw = label.encode("utf-8")
        if len(raw) > MAX_LABEL_LEN:
            raise ValueError(f"label {label!r} in {name!r} exceeds {MAX_LABEL_LEN} bytes")
        size += len(raw) + 1
        labels.append(raw)
    if size > MAX_NAME_LEN:
        raise ValueError(f"name {name!r} exceeds {MAX_NAME_LEN} bytes")
    return DNSLabel(labels)


def encode_name(name: str) -> bytes:
    """
    Brief: Encode a dotted name as an uncompressed DNS label sequence.

    Inputs:
      - name: dotted name; empty labels (leading/trailing/double dots) are dropped

    Outputs:
      - bytes: length-prefixed labels terminated by the root label

    Raises:
      - ValueError: a label exceeds 63 bytes or the name exceeds 255 bytes

    Example:
      >>> encode_name("_http._tcp.local")
      b'\\x05_http\\x04_tcp\\x05local\\x00'
    """
    buffer = DNSBuffer()
    try:
        buffer.encode_name(_to_label(name))
    except DNSLabelError as exc:
        raise ValueError(str(exc)) from exc
    return bytes(buffer.data)


def compose(
    names: Sequence[str],
    *,
    transaction_id: int = 0,
    qtype: int = TYPE_PTR,
) -> bytes:
    """
    Brief: Build one mDNS query message asking for every name in `names`.

    Inputs:
      - names: service names such as "_googlecast._tcp.local"
      - transaction_id: header id (mDNS queries conventionally use 0)
      - qtype: question type; PTR solicits DNS-SD service answers

    Outputs:
      - bytes: header + one question (class IN) per name, no records

    Example:
      >>> len(compose(["_http._tcp.local"]))
      34
    """
    record = DNSRecord(DNSHeader(id=transaction_id & 0xFFFF, bitmap=0))
    for name in names:
        record.add_question(DNSQuestion(_to_label(name), qtype, CLASS_IN))
    try:
        return bytes(record.pack())
    except DNSLabelError as exc:
        raise ValueError(str(exc)) from exc


# --------------------------------------------------------------------------
# Parsing
# --------------------------------------------------------------------------

_RDATA_TYPES = {TYPE_A: A, TYPE_AAAA: AAAA, TYPE_PTR: PTR, TYPE_TXT: TXT, TYPE_SRV: SRV}


def _name_text(label: DNSLabel) -> str:
    """
    Brief: Convert a decoded DNSLabel to a dotted name without trailing dot.

    Inputs:
      - label: DNSLabel produced by DNSBuffer.decode_name

    Outputs:
      - str: dotted name

    Raises:
      - DecodeError: a label longer than 63 bytes (reserved label types
        decode that way) or a name longer than 255 bytes
    """
    size = 1
    for part in label.label:
        if len(part) > MAX_LABEL_LEN:
            raise DecodeError(f"label of {len(part)} bytes")
        size += len(part) + 1
    if size > MAX_NAME_LEN:
        raise DecodeError("name exceeds 255 bytes")
    return ".".join(part.decode("utf-8", errors="replace") for part in label.label)


def _txt_pairs(segments: Iterable[bytes]) -> TXTRecord:
    pairs: List[Tuple[str, Optional[str]]] = []
    for seg in segments:
        if not seg:
            continue
        if b"=" in seg:
            key, value = seg.split(b"=", 1)
            pairs.append(
                (key.decode("utf-8", errors="replace"), value.decode("utf-8", errors="replace"))
            )
        else:
            pairs.append((seg.decode("utf-8", errors="replace"), None))
    return TXTRecord(pairs=tuple(pairs))


def _convert_rdata(rtype: int, rdata: Any) -> RData:
    """
    Brief: Map dnslib rdata onto the foglight rdata variants.

    Inputs:
      - rtype: record type
      - rdata: object returned by RR.parse ('' for an empty rdata)

    Outputs:
      - RData variant

    Raises:
      - DecodeError: rdata does not have the shape its type requires
    """
    expected = _RDATA_TYPES[rtype]
    if rtype == TYPE_TXT and rdata == "":
        return TXTRecord(pairs=())
    if not isinstance(rdata, expected):
        raise DecodeError(f"empty {QTYPE.get(rtype)} rdata")
    if rtype in (TYPE_A, TYPE_AAAA):
        raw = bytes(rdata.data)
        if rtype == TYPE_A and len(raw) == 4:
            return ARecord(address=str(ipaddress.IPv4Address(raw)))
        if rtype == TYPE_AAAA and len(raw) == 16:
            return AAAARecord(address=str(ipaddress.IPv6Address(raw)))
        raise DecodeError(f"{QTYPE.get(rtype)} rdata of {len(raw)} bytes")
    if rtype == TYPE_PTR:
        return PTRRecord(target=_name_text(rdata.label))
    if rtype == TYPE_SRV:
        return SRVRecord(
            priority=rdata.priority,
            weight=rdata.weight,
            port=rdata.port,
            target=_name_text(rdata.target),
        )
    return _txt_pairs(rdata.data)


def _read_question(buffer: DNSBuffer) -> Question:
    q = DNSQuestion.parse(buffer)
    return Question(
        name=_name_text(q.qname),
        qtype=q.qtype,
        qclass=q.qclass & ~_CLASS_TOP_BIT,
        unicast_response=bool(q.qclass & _CLASS_TOP_BIT),
    )


def _read_record(buffer: DNSBuffer) -> ResourceRecord:
    """
    Brief: Decode one resource record, checking rdata against its rdlength.

    Inputs:
      - buffer: DNSBuffer positioned at the record's owner name

    Outputs:
      - ResourceRecord; the buffer is left just past the rdata

    Notes:
      - A/AAAA/PTR/TXT/SRV rdata is parsed with dnslib's RR.parse; any other
        type is kept as raw bytes without interpreting it.
    """
    start = buffer.offset
    name = _name_text(buffer.decode_name())
    rtype, rclass, ttl, rdlength = buffer.unpack("!HHIH")
    end = buffer.offset + rdlength
    if end > len(buffer.data):
        raise DecodeError("rdata length exceeds remaining bytes")

    if rtype in _RDATA_TYPES:
        buffer.offset = start
        rr = RR.parse(buffer)
        if buffer.offset != end:
            raise DecodeError(f"{QTYPE.get(rtype)} rdata does not match rdlength {rdlength}")
        rdata: RData = _convert_rdata(rtype, rr.rdata)
    else:
        rdata = RawRecord(data=bytes(buffer.get(rdlength)))

    return ResourceRecord(
        name=name,
        rtype=rtype,
        rclass=rclass & ~_CLASS_TOP_BIT,
        ttl=ttl,
        rdata=rdata,
        cache_flush=bool(rclass & _CLASS_TOP_BIT),
    )


def _decode(data: bytes) -> Message:
    if len(data) < _HEADER_LEN:
        raise DecodeError(f"datagram shorter than header ({len(data)} bytes)")
    buffer = DNSBuffer(data)
    header = DNSHeader.parse(buffer)
    record_count = header.a + header.auth + header.ar
    minimum = header.q * _MIN_QUESTION_LEN + record_count * _MIN_RR_LEN
    if minimum > len(data) - _HEADER_LEN:
        raise DecodeError("declared counts exceed datagram length")

    questions = tuple(_read_question(buffer) for _ in range(header.q))
    sections = [
        tuple(_read_record(buffer) for _ in range(count))
        for count in (header.a, header.auth, header.ar)
    ]
    return Message(
        header=Header.from_dnslib(header),
        questions=questions,
        answers=sections[0],
        authorities=sections[1],
        additionals=sections[2],
    )


def parse(data: bytes) -> Optional[Message]:
    """
    Brief: Decode a DNS datagram into a Message.

    Inputs:
      - data: raw datagram bytes

    Outputs:
      - Message when every section decodes exactly as the header declares,
        otherwise None (the datagram should be discarded)

    Example:
      >>> parse(b"\\x00\\x01") is None
      True
      >>> [q.name for q in parse(compose(["_ipp._tcp.local"])).questions]
      ['_ipp._tcp.local']
    """
    try:
        return _decode(bytes(data))
    except (DecodeError, DNSError, DNSBufferError, BimapError, RecursionError) as exc:
        logger.debug("Discarding malformed datagram: %s", exc)
        return None
