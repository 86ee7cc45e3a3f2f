import asyncio

import pytest

from uki.args import Args, Command, CustomHandshake, Protocol
from uki.cipher import Cipher
from uki.handler import handle, handshake, relay

KEY = Cipher(b"k3y")


class FakeStream:
    def __init__(self, chunks=(), block=False):
        self.chunks = list(chunks)
        self.block = block
        self.written = []
        self.exact_sizes = []

    async def read(self, size):
        if self.chunks:
            return self.chunks.pop(0)[:size]
        if self.block:
            await asyncio.Event().wait()
        return b""

    async def read_exact(self, size):
        self.exact_sizes.append(size)
        return b"\0" * size

    async def write_all(self, data):
        self.written.append(bytes(data))

    async def close(self):
        pass


def make_args(command=Command.CLIENT, **kw):
    base = dict(
        listen=("127.0.0.1", 0),
        remote=("127.0.0.1", 1),
        protocol=Protocol.TCP,
        command=command,
        encryption=KEY,
    )
    base.update(kw)
    return Args(**base)


@pytest.mark.asyncio
async def test_client_encrypts_outbound_and_first_packet():
    peer = FakeStream([b"hello"])
    remote = FakeStream(block=True)
    await relay(("127.0.0.1", 9), peer, remote, make_args(), b"first")
    assert remote.written == [KEY.encrypt(b"first"), KEY.encrypt(b"hello")]


@pytest.mark.asyncio
async def test_server_decrypts_outbound():
    peer = FakeStream([KEY.encrypt(b"data")])
    remote = FakeStream(block=True)
    await relay(("127.0.0.1", 9), peer, remote, make_args(Command.SERVER), None)
    assert remote.written == [b"data"]


@pytest.mark.asyncio
async def test_remote_traffic_forwarded_unchanged():
    peer = FakeStream(block=True)
    remote = FakeStream([b"reply"])
    await relay(("127.0.0.1", 9), peer, remote, make_args(), None)
    assert peer.written == [b"reply"]


@pytest.mark.asyncio
async def test_deadline_ends_relay():
    peer = FakeStream(block=True)
    remote = FakeStream(block=True)
    await asyncio.wait_for(
        relay(("127.0.0.1", 9), peer, remote, make_args(deadline=0), None), 2
    )
    assert peer.written == [] and remote.written == []


@pytest.mark.asyncio
async def test_handshake_client_and_server():
    hs = CustomHandshake(request=b"REQ", response=b"RESPONSE")
    peer, remote = FakeStream(), FakeStream()
    await handshake(peer, remote, make_args(custom_handshake=hs))
    assert remote.written == [b"REQ"]
    assert remote.exact_sizes == [len(b"RESPONSE")]

    peer, remote = FakeStream(), FakeStream()
    await handshake(peer, remote, make_args(Command.SERVER, custom_handshake=hs))
    assert peer.exact_sizes == [len(b"REQ")]
    assert peer.written == [b"RESPONSE"]
    assert remote.written == []


@pytest.mark.asyncio
async def test_handshake_absent_does_nothing():
    peer, remote = FakeStream(), FakeStream()
    await handshake(peer, remote, make_args())
    assert peer.written == remote.written == []


@pytest.mark.asyncio
async def test_tcp_forwarding_end_to_end():
    received = asyncio.Queue()

    async def backend(reader, writer):
        received.put_nowait(await reader.read(100))
        writer.close()

    server = await asyncio.start_server(backend, "127.0.0.1", 0)
    backend_port = server.sockets[0].getsockname()[1]

    import socket

    probe = socket.socket()
    probe.bind(("127.0.0.1", 0))
    listen_port = probe.getsockname()[1]
    probe.close()

    args = make_args(listen=("127.0.0.1", listen_port), remote=("127.0.0.1", backend_port))
    task = asyncio.create_task(handle(args))
    try:
        for _ in range(50):
            try:
                reader, writer = await asyncio.open_connection("127.0.0.1", listen_port)
                break
            except OSError:
                await asyncio.sleep(0.02)
        writer.write(b"payload")
        await writer.drain()
        data = await asyncio.wait_for(received.get(), 2)
        assert data == KEY.encrypt(b"payload")
        writer.close()
    finally:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        server.close()