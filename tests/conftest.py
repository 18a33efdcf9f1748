import socket

import pytest

from disco import DiscoError, Subscription, broadcast, resolve
from disco.transport.multicast import _open_multicast_socket

# Multicast tests loop datagrams back through the loopback interface
INTERFACE = '127.0.0.1'
GROUP_IP = '239.255.77.77'


def free_udp_port() -> int:
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.bind(('', 0))
        return sock.getsockname()[1]
    finally:
        sock.close()


class UnicastSender:
    """Sends datagrams straight to a loopback socket."""

    def __init__(self, address):
        self.address = address
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)

    def send(self, text):
        self.send_bytes(text.encode('utf-8'))

    def send_bytes(self, data):
        self._sock.sendto(data, self.address)

    def close(self):
        self._sock.close()


@pytest.fixture
def loopback_socket():
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(('127.0.0.1', 0))
    yield sock
    sock.close()


@pytest.fixture
def sender(loopback_socket):
    sender = UnicastSender(loopback_socket.getsockname())
    yield sender
    sender.close()


@pytest.fixture
async def loopback_subscription(loopback_socket):
    """A Subscription reading unicast datagrams, no multicast needed."""
    subscription = Subscription(loopback_socket, address='127.0.0.1')
    yield subscription
    await subscription.close()


@pytest.fixture
def group():
    """
    A fresh multicast group address.

    Skips the test when this host cannot deliver multicast over loopback.
    Plain sockets keep it usable from sync tests (CliRunner runs its own loop).
    """
    address = f'{GROUP_IP}:{free_udp_port()}'
    host, port = resolve(address)
    try:
        sock = _open_multicast_socket(host, port, INTERFACE)
    except OSError as e:
        pytest.skip(f'multicast loopback unavailable: {e}')

    try:
        sock.settimeout(1.0)
        broadcast(address, 'ping', interface=INTERFACE)
        data, _ = sock.recvfrom(64)
    except (DiscoError, OSError) as e:
        pytest.skip(f'multicast loopback unavailable: {e}')
    finally:
        sock.close()

    if data != b'ping':
        pytest.skip('multicast loopback unavailable')

    return address
