"""
Brief: Tests for foglight.codec compose/parse and name handling.

Inputs:
  - None

Outputs:
  - None
"""

import struct

import dns.message
import dns.rdatatype
import dnslib
import pytest

from foglight.codec import (
    CLASS_IN,
    TYPE_A,
    TYPE_AAAA,
    TYPE_PTR,
    TYPE_SRV,
    TYPE_TXT,
    AAAARecord,
    ARecord,
    PTRRecord,
    RawRecord,
    SRVRecord,
    TXTRecord,
    compose,
    encode_name,
    parse,
)
from foglight.discovery import validate_request
from packets import CAST_SERVICE, cast_response


def _rr(name, rtype, rclass, rdata, ttl=120):
    return encode_name(name) + struct.pack("!HHIH", rtype, rclass, ttl, len(rdata)) + rdata


def _response(records, *, flags=0x8400):
    return struct.pack("!HHHHHH", 0, flags, 0, len(records), 0, 0) + b"".join(records)


def test_compose_then_parse_returns_requested_names():
    """
    Brief: parse(compose(names)) yields one PTR/IN question per name, in order.

    Inputs:
      - names: two service names, one with a trailing dot

    Outputs:
      - None: Asserts question names, types and header fields
    """
    names = ["_googlecast._tcp.local", "_airplay._tcp.local."]
    msg = parse(compose(names))
    assert msg is not None
    assert [q.name for q in msg.questions] == ["_googlecast._tcp.local", "_airplay._tcp.local"]
    assert all(q.qtype == TYPE_PTR and q.qclass == CLASS_IN for q in msg.questions)
    assert msg.header.id == 0
    assert msg.header.qr is False
    assert msg.header.qdcount == 2
    assert msg.answers == () and msg.additionals == ()


def test_compose_is_readable_by_dnspython():
    wire = compose(["_ipp._tcp.local"], transaction_id=0x1234)
    ref = dns.message.from_wire(wire)
    assert ref.id == 0x1234
    assert len(ref.question) == 1
    assert ref.question[0].name.to_text() == "_ipp._tcp.local."
    assert ref.question[0].rdtype == dns.rdatatype.PTR


def test_compose_is_readable_by_dnslib():
    record = dnslib.DNSRecord.parse(compose(["_googlecast._tcp.local", "_hue._tcp.local."]))
    assert [str(q.qname) for q in record.questions] == ["_googlecast._tcp.local.", "_hue._tcp.local."]
    assert all(q.qtype == dnslib.QTYPE.PTR and q.qclass == dnslib.CLASS.IN for q in record.questions)
    assert record.header.qr == 0
    assert record.header.id == 0


def test_parse_dnslib_response_with_compressed_names():
    """
    Brief: A response packed by dnslib (names compressed) decodes to typed rdata.

    Inputs:
      - wire: PTR answer plus SRV (cache-flush), TXT and A additionals

    Outputs:
      - None: Asserts every record and the header flags
    """
    instance = "hue-bridge._hue._tcp.local"
    reply = dnslib.DNSRecord(dnslib.DNSHeader(id=0, bitmap=0, qr=1, aa=1))
    reply.add_answer(
        dnslib.RR("_hue._tcp.local", dnslib.QTYPE.PTR, ttl=4500, rdata=dnslib.PTR(instance))
    )
    reply.add_ar(
        dnslib.RR(
            instance,
            dnslib.QTYPE.SRV,
            rclass=0x8001,
            ttl=120,
            rdata=dnslib.SRV(priority=0, weight=0, port=443, target="hue.local"),
        )
    )
    reply.add_ar(
        dnslib.RR(instance, dnslib.QTYPE.TXT, rdata=dnslib.TXT([b"bridgeid=001788", b"modelid=BSB002"]))
    )
    reply.add_ar(dnslib.RR("hue.local", dnslib.QTYPE.A, rdata=dnslib.A("192.168.1.30")))

    msg = parse(reply.pack())
    assert msg is not None
    assert msg.header.qr is True and msg.header.aa is True and msg.header.rd is False
    assert (msg.header.ancount, msg.header.arcount) == (1, 3)

    (ptr,) = msg.answers
    assert ptr.name == "_hue._tcp.local"
    assert ptr.ttl == 4500
    assert ptr.rdata == PTRRecord(target=instance)

    srv, txt, a = msg.additionals
    assert srv.name == instance
    assert srv.cache_flush is True and srv.rclass == CLASS_IN
    assert srv.rdata == SRVRecord(priority=0, weight=0, port=443, target="hue.local")
    assert txt.rdata.pairs == (("bridgeid", "001788"), ("modelid", "BSB002"))
    assert a.rdata == ARecord(address="192.168.1.30")


@pytest.mark.parametrize(
    "names",
    [
        ["_googlecast._tcp.local"],
        ["_airplay._tcp.local.", "_raop._tcp.local"],
        ["Living Room._googlecast._tcp.local"],
    ],
)
def test_accepted_names_survive_compose_and_parse(names):
    """
    Brief: Every name discovery accepts comes back from parse(compose()) unchanged.

    Inputs:
      - names: valid names, optionally with one trailing dot

    Outputs:
      - None: Asserts the parsed question names equal the requested ones
    """
    request = validate_request(names)
    msg = parse(compose(request.names))
    assert [q.name for q in msg.questions] == [n.rstrip(".") for n in names]


def test_encode_name_drops_empty_labels():
    assert encode_name("..a..b.") == b"\x01a\x01b\x00"
    assert encode_name("") == b"\x00"


def test_encode_name_rejects_long_labels_and_names():
    with pytest.raises(ValueError):
        encode_name("a" * 64 + ".local")
    with pytest.raises(ValueError):
        encode_name(".".join(["a" * 60] * 5))


def test_parse_dnspython_response_decodes_all_rdata_types():
    """
    Brief: A compressed response built by dnspython decodes into typed rdata.

    Inputs:
      - wire: cast_response() with PTR, TXT, SRV, A and AAAA records

    Outputs:
      - None: Asserts every record and its fields
    """
    msg = parse(cast_response(ident=7))
    assert msg is not None
    assert msg.header.id == 7
    assert msg.header.qr is True and msg.header.aa is True
    assert msg.header.opcode == 0

    (ptr,) = msg.answers
    assert ptr.name == CAST_SERVICE
    assert ptr.rdata == PTRRecord(target="Living Room._googlecast._tcp.local")

    by_type = {rr.rtype: rr for rr in msg.additionals}
    txt = by_type[TYPE_TXT].rdata
    assert isinstance(txt, TXTRecord)
    assert txt.pairs == (("md", "Chromecast"), ("fn", "Living Room"), ("flag", None))
    assert txt.get("md") == "Chromecast"
    assert txt.get("missing", "x") == "x"

    srv = by_type[TYPE_SRV]
    assert srv.name == "Living Room._googlecast._tcp.local"
    assert srv.rdata == SRVRecord(priority=0, weight=0, port=8009, target="living-room.local")

    assert by_type[TYPE_A].rdata == ARecord(address="192.168.1.20")
    assert by_type[TYPE_AAAA].rdata == AAAARecord(address="fe80::1")
    assert by_type[TYPE_TXT].type_name == "TXT"


def test_parse_splits_cache_flush_and_unicast_response_bits():
    question = encode_name("_hap._tcp.local") + struct.pack("!HH", TYPE_PTR, 0x8001)
    record = _rr("host.local", TYPE_A, 0x8001, bytes([10, 0, 0, 1]))
    data = struct.pack("!HHHHHH", 0, 0x8400, 1, 1, 0, 0) + question + record

    msg = parse(data)
    assert msg is not None
    assert msg.questions[0].unicast_response is True
    assert msg.questions[0].qclass == CLASS_IN
    rr = msg.answers[0]
    assert rr.cache_flush is True
    assert rr.rclass == CLASS_IN
    assert rr.rdata == ARecord(address="10.0.0.1")


def test_parse_keeps_unknown_types_as_raw_bytes():
    msg = parse(_response([_rr("x.local", 65280, 1, b"\x01\x02\x03")]))
    assert msg is not None
    assert msg.answers[0].rdata == RawRecord(data=b"\x01\x02\x03")
    assert msg.answers[0].type_name == "TYPE65280"
    assert msg.answers[0].to_dict()["rdata"] == "010203"


def test_parse_txt_skips_empty_segments():
    rdata = b"\x00\x03a=b\x00\x04flag"
    msg = parse(_response([_rr("x.local", TYPE_TXT, 1, rdata)]))
    assert msg.answers[0].rdata.pairs == (("a", "b"), ("flag", None))


@pytest.mark.parametrize(
    "data",
    [
        b"",
        b"\x00\x01\x02",
        # counts exceed the datagram
        struct.pack("!HHHHHH", 0, 0x8400, 10, 0, 0, 0),
        struct.pack("!HHHHHH", 0, 0x8400, 0, 3, 0, 0) + b"\x00" * 11,
    ],
)
def test_parse_rejects_short_or_overcounted_datagrams(data):
    assert parse(data) is None


def test_parse_rejects_truncated_query():
    assert parse(compose(["_ipp._tcp.local"])[:-1]) is None


def test_parse_rejects_pointer_loop():
    """
    Brief: A compression pointer that refers to itself is rejected.

    Inputs:
      - data: one answer whose owner name is a pointer to offset 12

    Outputs:
      - None: Asserts parse returns None instead of looping
    """
    data = struct.pack("!HHHHHH", 0, 0x8400, 0, 1, 0, 0) + b"\xc0\x0c" + struct.pack(
        "!HHIH", TYPE_A, 1, 120, 4
    ) + b"\x0a\x00\x00\x01"
    assert parse(data) is None


def test_parse_rejects_pointer_out_of_range():
    data = _response([b"\xc0\xff" + struct.pack("!HHIH", TYPE_A, 1, 120, 4) + b"\x00" * 4])
    assert parse(data) is None


def test_parse_rejects_deep_pointer_chain():
    # 3000 pointers, each referring to the one before it, hidden in raw rdata.
    owner = encode_name("x.local")
    start = 12 + len(owner) + 10
    chain = b"".join(
        struct.pack("!H", 0xC000 | (12 if k == 0 else start + 2 * (k - 1))) for k in range(3000)
    )
    last = struct.pack("!H", 0xC000 | (start + len(chain) - 2))
    records = [
        owner + struct.pack("!HHIH", 65280, 1, 120, len(chain)) + chain,
        last + struct.pack("!HHIH", TYPE_A, 1, 120, 4) + b"\x0a\x00\x00\x01",
    ]
    assert parse(_response(records)) is None


def test_parse_rejects_bad_rdata_lengths():
    assert parse(_response([_rr("x.local", TYPE_A, 1, b"\x01\x02\x03")])) is None
    assert parse(_response([_rr("x.local", TYPE_AAAA, 1, b"\x00" * 4)])) is None
    # PTR target runs past its rdlength
    assert parse(_response([_rr("x.local", TYPE_PTR, 1, b"\x05")])) is None
    # rdlength larger than what remains
    rr = encode_name("x.local") + struct.pack("!HHIH", TYPE_A, 1, 120, 40) + b"\x00" * 4
    assert parse(_response([rr])) is None


def test_parse_follows_pointers_inside_rdata():
    # PTR target "inst" + pointer back to the owner name at offset 12
    rdata = b"\x04inst\xc0\x0c"
    msg = parse(_response([_rr("_svc._tcp.local", TYPE_PTR, 1, rdata)]))
    assert msg.answers[0].rdata == PTRRecord(target="inst._svc._tcp.local")


def test_message_to_dict_is_json_friendly():
    msg = parse(cast_response())
    out = msg.to_dict()
    assert out["header"]["qr"] == 1
    assert out["answers"][0]["type"] == "PTR"
    assert out["answers"][0]["rdata"] == "Living Room._googlecast._tcp.local"
    srv = [rr for rr in out["additionals"] if rr["type"] == "SRV"][0]
    assert srv["rdata"]["port"] == 8009
