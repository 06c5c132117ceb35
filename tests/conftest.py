"""
Brief: Global pytest configuration and shared fixtures.

Inputs:
  - None

Outputs:
  - None
"""

import asyncio
import os
import signal
import socket
import sys

import pytest

# Ensure 'src' is on sys.path so 'foglight' package is importable in tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from foglight.netif import InterfaceAddress  # noqa: E402


def _alarm_handler(signum, frame):
    """
    Brief: Signal handler that raises TimeoutError when alarm triggers.

    Inputs:
      - signum: signal number (int)
      - frame: current frame (ignored)

    Outputs:
      - None: Raises TimeoutError to fail the test
    """
    raise TimeoutError("Test exceeded 10 seconds")


# Install handler if supported on this platform
if hasattr(signal, "SIGALRM"):
    signal.signal(signal.SIGALRM, _alarm_handler)


@pytest.fixture(autouse=True)
def enforce_test_timeout():
    """
    Brief: Enforce a hard 10-second timeout for each test.

    Inputs:
      - None

    Outputs:
      - None: Cancels alarm after test
    """
    if hasattr(signal, "SIGALRM"):
        signal.alarm(10)
        try:
            yield
        finally:
            signal.alarm(0)
    else:
        yield


def fake_interfaces():
    return {
        "lo": [InterfaceAddress("127.0.0.1", "255.0.0.0", "IPv4", True)],
        "eth0": [
            InterfaceAddress("192.0.2.5", "255.255.255.0"),
            InterfaceAddress("fe80::1", "/64", "IPv6", False),
        ],
    }


def no_interfaces():
    return {"lo": [InterfaceAddress("127.0.0.1", "255.0.0.0", "IPv4", True)]}


class LoopbackSocketFactory:
    """
    Brief: Socket factory opening unicast loopback sockets instead of joining a group.

    Inputs:
      - None

    Outputs:
      - Callable (source_address, group, port) -> socket.socket; records calls
    """

    def __init__(self):
        self.calls = []
        self.sockets = []

    def __call__(self, source_address, group, port):
        self.calls.append((source_address, group, port))
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.bind(("127.0.0.1", 0))
        sock.setblocking(False)
        self.sockets.append(sock)
        return sock


@pytest.fixture
def socket_factory():
    return LoopbackSocketFactory()


class Responder(asyncio.DatagramProtocol):
    """
    Brief: Loopback stand-in for an mDNS responder.

    Inputs:
      - reply: bytes sent back to the querier for every query (None: stay silent)

    Outputs:
      - Protocol recording received queries in `queries`
    """

    def __init__(self, reply=None):
        self.reply = reply
        self.queries = []
        self.transport = None

    def connection_made(self, transport):
        self.transport = transport

    def datagram_received(self, data, addr):
        self.queries.append(data)
        if self.reply is not None:
            self.transport.sendto(self.reply, addr)


async def start_responder(reply=None):
    """
    Brief: Open a Responder on 127.0.0.1 with an ephemeral port.

    Inputs:
      - reply: bytes answered to every query

    Outputs:
      - (endpoint, protocol, port)
    """
    loop = asyncio.get_running_loop()
    endpoint, protocol = await loop.create_datagram_endpoint(
        lambda: Responder(reply), local_addr=("127.0.0.1", 0)
    )
    port = endpoint.get_extra_info("sockname")[1]
    return endpoint, protocol, port
