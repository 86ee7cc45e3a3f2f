"""Byte streams over TCP, UDP flows and UDP-over-TCP framing."""

from __future__ import annotations

import asyncio
import ipaddress
import socket
from typing import Any

Address = tuple[str, int]


class TcpStream:
    """A connected TCP stream."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._reader = reader
        self._writer = writer

    @property
    def peer_address(self) -> Address:
        """Address of the other end."""
        return tuple(self._writer.get_extra_info("peername")[:2])

    def set_nodelay(self) -> None:
        """Disable Nagle's algorithm on the underlying socket."""
        sock = self._writer.get_extra_info("socket")
        if sock is not None:
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

    async def read(self, size: int) -> bytes:
        """Read up to ``size`` bytes; ``b''`` means end of stream."""
        return await self._reader.read(size)

    async def write_all(self, data: bytes) -> None:
        """Write all of ``data``."""
        self._writer.write(data)
        await self._writer.drain()

    async def read_exact(self, size: int) -> bytes:
        """Read exactly ``size`` bytes or raise :class:`asyncio.IncompleteReadError`."""
        return await self._reader.readexactly(size)

    async def close(self) -> None:
        """Close the connection."""
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except OSError:
            pass


async def open_tcp(address: Address) -> TcpStream:
    """Connect to ``address`` with TCP_NODELAY set."""
    stream = TcpStream(*await asyncio.open_connection(address[0], address[1]))
    stream.set_nodelay()
    return stream


class _Chunked:
    """Reading in whole chunks, as datagrams arrive; subclasses supply ``_next``."""

    def __init__(self) -> None:
        self._pending = b""

    async def _receive(self) -> bytes:
        if self._pending:
            data, self._pending = self._pending, b""
            return data
        return await self._next()  # type: ignore[attr-defined]

    async def _read_chunk(self, size: int) -> bytes:
        return (await self._receive())[:size]

    async def _read_exact(self, size: int) -> bytes:
        buffer = bytearray()
        while len(buffer) < size:
            chunk = await self._receive()
            if not chunk:
                raise asyncio.IncompleteReadError(bytes(buffer), size)
            buffer += chunk
        self._pending = bytes(buffer[size:])
        return bytes(buffer[:size])


class _DatagramStream(_Chunked):
    """A flow fed with datagrams, closed after ``timeout`` idle seconds."""

    def __init__(self, timeout: float) -> None:
        super().__init__()
        self._timeout = timeout
        self._queue: asyncio.Queue[bytes | Exception] = asyncio.Queue()
        self._closed = False

    def _feed(self, item: bytes | Exception) -> None:
        if not self._closed:
            self._queue.put_nowait(item)

    async def _next(self) -> bytes:
        if self._closed and self._queue.empty():
            return b""
        try:
            item = await asyncio.wait_for(self._queue.get(), self._timeout or None)
        except TimeoutError:
            raise TimeoutError(f"udp flow idle for {self._timeout} seconds") from None
        if isinstance(item, Exception):
            raise item
        return item

    def _check_open(self) -> None:
        if self._closed:
            raise ConnectionError("udp flow is closed")

    def _mark_closed(self) -> None:
        if not self._closed:
            self._queue.put_nowait(b"")
            self._closed = True


class _ListenerProtocol(asyncio.DatagramProtocol):
    def __init__(self, listener: UdpListener) -> None:
        self._listener = listener

    def datagram_received(self, data: bytes, addr: Any) -> None:
        self._listener._dispatch(data, tuple(addr[:2]))


class UdpListener:
    """A bound UDP socket that splits incoming datagrams into per-peer flows."""

    def __init__(self, timeout: float) -> None:
        self._timeout = timeout
        self._transport: asyncio.DatagramTransport | None = None
        self._peers: dict[Address, UdpPeerStream] = {}
        self._new: asyncio.Queue[tuple[bytes, UdpPeerStream, Address]] = asyncio.Queue()

    @property
    def address(self) -> Address:
        """The bound local address."""
        assert self._transport is not None
        return tuple(self._transport.get_extra_info("sockname")[:2])

    def _dispatch(self, data: bytes, addr: Address) -> None:
        peer = self._peers.get(addr)
        if peer is not None:
            peer._feed(data)
        else:
            peer = self._peers[addr] = UdpPeerStream(self, addr, self._timeout)
            self._new.put_nowait((data, peer, addr))

    def _send(self, data: bytes, addr: Address) -> None:
        if self._transport is None or self._transport.is_closing():
            raise ConnectionError("udp listener is closed")
        self._transport.sendto(data, addr)

    async def accept(self) -> tuple[bytes, UdpPeerStream, Address]:
        """Wait for a new peer; return its first datagram, its flow and its address."""
        return await self._new.get()

    async def close(self) -> None:
        """Close the socket and every peer flow."""
        for peer in list(self._peers.values()):
            await peer.close()
        if self._transport is not None:
            self._transport.close()


async def bind_udp_listener(address: Address, timeout: float) -> UdpListener:
    """Bind a :class:`UdpListener` on ``address``."""
    listener = UdpListener(timeout)
    listener._transport, _ = await asyncio.get_running_loop().create_datagram_endpoint(
        lambda: _ListenerProtocol(listener), local_addr=address
    )
    return listener


class UdpPeerStream(_DatagramStream):
    """The flow of datagrams from one peer of a :class:`UdpListener`."""

    def __init__(self, listener: UdpListener, address: Address, timeout: float) -> None:
        super().__init__(timeout)
        self._listener = listener
        self.address = address

    async def read(self, size: int) -> bytes:
        """Read one datagram, truncated to ``size`` bytes; ``b''`` at end of stream."""
        return await self._read_chunk(size)

    async def read_exact(self, size: int) -> bytes:
        """Read exactly ``size`` bytes, gathering datagrams as needed."""
        return await self._read_exact(size)

    async def write_all(self, data: bytes) -> None:
        """Send ``data`` to the peer as a single datagram."""
        self._check_open()
        self._listener._send(bytes(data), self.address)

    async def close(self) -> None:
        """Stop receiving from this peer."""
        self._listener._peers.pop(self.address, None)
        self._mark_closed()


class _RemoteProtocol(asyncio.DatagramProtocol):
    def __init__(self, stream: UdpRemoteStream) -> None:
        self._stream = stream

    def datagram_received(self, data: bytes, addr: Any) -> None:
        self._stream._feed(data)

    def error_received(self, exc: Exception) -> None:
        self._stream._feed(exc)


class UdpRemoteStream(_DatagramStream):
    """A UDP socket connected to a single remote address."""

    def __init__(self, timeout: float) -> None:
        super().__init__(timeout)
        self._transport: asyncio.DatagramTransport | None = None

    async def read(self, size: int) -> bytes:
        """Read one datagram, truncated to ``size`` bytes; ``b''`` at end of stream."""
        return await self._read_chunk(size)

    async def read_exact(self, size: int) -> bytes:
        """Read exactly ``size`` bytes, gathering datagrams as needed."""
        return await self._read_exact(size)

    async def write_all(self, data: bytes) -> None:
        """Send ``data`` to the remote as a single datagram."""
        self._check_open()
        assert self._transport is not None
        self._transport.sendto(bytes(data))

    async def close(self) -> None:
        """Close the socket."""
        self._mark_closed()
        if self._transport is not None:
            self._transport.close()


async def open_udp_remote(remote: Address, timeout: float) -> UdpRemoteStream:
    """Open a UDP socket bound to any local address of the remote's family."""
    local = ("0.0.0.0", 0) if ipaddress.ip_address(remote[0]).version == 4 else ("::", 0)
    stream = UdpRemoteStream(timeout)
    stream._transport, _ = await asyncio.get_running_loop().create_datagram_endpoint(
        lambda: _RemoteProtocol(stream), local_addr=local, remote_addr=remote
    )
    return stream


class UotStream(_Chunked):
    """Datagrams carried over a byte stream, each prefixed by a 2-byte big-endian length."""

    def __init__(self, inner: Any) -> None:
        super().__init__()
        self._inner = inner

    async def _next(self) -> bytes:
        try:
            header = await self._inner.read_exact(2)
        except asyncio.IncompleteReadError as err:
            if not err.partial:
                return b""
            raise
        return await self._inner.read_exact(int.from_bytes(header, "big"))

    async def read(self, size: int) -> bytes:
        """Read one framed datagram, truncated to ``size`` bytes; ``b''`` at end of stream."""
        return await self._read_chunk(size)

    async def read_exact(self, size: int) -> bytes:
        """Read exactly ``size`` bytes, gathering datagrams as needed."""
        return await self._read_exact(size)

    async def write_all(self, data: bytes) -> None:
        """Send ``data`` as one framed datagram."""
        if len(data) > 0xFFFF:
            raise ValueError(f"datagram of {len(data)} bytes is too large")
        await self._inner.write_all(len(data).to_bytes(2, "big") + bytes(data))

    async def close(self) -> None:
        """Close the underlying stream."""
        await self._inner.close()