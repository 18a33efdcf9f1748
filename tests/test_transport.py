import asyncio
import errno

import pytest

from disco import (
    AddressResolutionError,
    MessageTooLargeError,
    ReadError,
    SocketError,
    Subscription,
    broadcast,
    resolve,
    subscribe,
)

from .conftest import INTERFACE, free_udp_port

TIMEOUT = 2.0


@pytest.mark.parametrize('addr, expected', [
    ('192.168.0.1:1234', ('192.168.0.1', 1234)),
    ('192.168.0.1:', ('192.168.0.1', 0)),
    (':1234', ('', 1234)),
    (':', ('', 0)),
    ('224.0.0.1:9999', ('224.0.0.1', 9999)),
    ('localhost:80', ('127.0.0.1', 80)),
])
def test_resolve(addr, expected):
    assert resolve(addr) == expected


@pytest.mark.parametrize('addr', [
    '192.168.0.1',
    '192.168.0.1:70000',
    '192.168.0.1:port',
    '192.168.0.1:-1',
    '256.0.0.1:1234',
    '',
])
def test_resolve_rejects(addr):
    with pytest.raises(AddressResolutionError):
        resolve(addr)


def test_broadcast_bad_address():
    with pytest.raises(AddressResolutionError):
        broadcast('224.0.0.1', 'hello')


def test_broadcast_refuses_oversized_payload():
    with pytest.raises(MessageTooLargeError) as info:
        broadcast('224.0.0.1:9999', 'x' * 100, max_datagram_size=64)
    assert info.value.size == 100
    assert info.value.limit == 64


async def test_subscribe_bad_address():
    with pytest.raises(AddressResolutionError):
        await subscribe('224.0.0.1')


async def test_subscribe_non_multicast_address():
    with pytest.raises(SocketError):
        await subscribe(f'127.0.0.1:{free_udp_port()}')


async def test_subscription_delivers_message_and_source(loopback_subscription, sender):
    sender.send('hello')

    datagram = await asyncio.wait_for(loopback_subscription.receive(), TIMEOUT)

    assert datagram.ok
    assert datagram.message == 'hello'
    host, port = datagram.source.rsplit(':', 1)
    assert host == '127.0.0.1'
    assert int(port) > 0


async def test_subscription_preserves_order(loopback_subscription, sender):
    for text in ('one', 'two', 'three'):
        sender.send(text)

    received = []
    async for datagram in loopback_subscription:
        received.append(datagram.message)
        if len(received) == 3:
            break

    assert received == ['one', 'two', 'three']


async def test_oversized_datagram_reported_not_truncated(loopback_socket, sender):
    subscription = Subscription(loopback_socket, max_datagram_size=16)
    try:
        sender.send('x' * 32)
        sender.send('small')

        first = await asyncio.wait_for(subscription.receive(), TIMEOUT)
        second = await asyncio.wait_for(subscription.receive(), TIMEOUT)
    finally:
        await subscription.close()

    assert isinstance(first.error, MessageTooLargeError)
    assert first.message == ''
    assert second.ok
    assert second.message == 'small'


async def test_datagram_at_limit_is_accepted(loopback_socket, sender):
    subscription = Subscription(loopback_socket, max_datagram_size=16)
    try:
        sender.send('y' * 16)
        datagram = await asyncio.wait_for(subscription.receive(), TIMEOUT)
    finally:
        await subscription.close()

    assert datagram.message == 'y' * 16


async def test_close_ends_iteration(loopback_subscription):
    await loopback_subscription.close()

    assert loopback_subscription.closed
    assert await loopback_subscription.receive() is None
    assert [d async for d in loopback_subscription] == []


async def test_close_wakes_waiting_consumer(loopback_subscription):
    waiter = asyncio.create_task(loopback_subscription.receive())
    await asyncio.sleep(0.05)

    await loopback_subscription.close()

    assert await asyncio.wait_for(waiter, TIMEOUT) is None


async def test_close_is_idempotent(loopback_subscription):
    await loopback_subscription.close()
    await loopback_subscription.close()
    assert loopback_subscription.closed


async def test_close_before_first_read_releases_socket(loopback_socket):
    subscription = Subscription(loopback_socket)

    await subscription.close()

    assert loopback_socket.fileno() == -1


async def test_undecodable_datagram_is_dropped(loopback_subscription, sender):
    sender.send_bytes(b'\xff\xfe')
    sender.send('ok')

    datagram = await asyncio.wait_for(loopback_subscription.receive(), TIMEOUT)

    assert datagram.ok
    assert datagram.message == 'ok'


async def test_read_error_is_terminal(loopback_socket, monkeypatch):
    calls = []

    async def failing_recvfrom(sock, size):
        calls.append(size)
        raise OSError(errno.EBADF, 'Bad file descriptor')

    monkeypatch.setattr(asyncio.get_running_loop(), 'sock_recvfrom', failing_recvfrom)

    subscription = Subscription(loopback_socket, address='test')
    datagram = await asyncio.wait_for(subscription.receive(), TIMEOUT)

    assert isinstance(datagram.error, ReadError)
    assert isinstance(datagram.error.__cause__, OSError)
    assert subscription.closed
    assert await subscription.receive() is None

    # The loop stopped after the first failure
    await asyncio.sleep(0.05)
    assert len(calls) == 1
    await subscription.close()


async def test_subscriber_receives_broadcast(group):
    async with await subscribe(group, interface=INTERFACE) as subscription:
        broadcast(group, 'hello', interface=INTERFACE)
        datagram = await asyncio.wait_for(subscription.receive(), TIMEOUT)

    assert datagram.message == 'hello'
    assert subscription.closed


async def test_every_subscriber_sees_each_broadcast(group):
    first = await subscribe(group, interface=INTERFACE)
    second = await subscribe(group, interface=INTERFACE)
    try:
        broadcast(group, 'fan-out', interface=INTERFACE)

        a = await asyncio.wait_for(first.receive(), TIMEOUT)
        b = await asyncio.wait_for(second.receive(), TIMEOUT)
    finally:
        await first.close()
        await second.close()

    assert a.message == 'fan-out'
    assert b.message == 'fan-out'
