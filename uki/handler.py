"""Accepting peers and relaying their traffic to the remote."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from uki.args import Args, Command, Protocol
from uki.streams import (
    TcpStream,
    UotStream,
    bind_udp_listener,
    open_tcp,
    open_udp_remote,
)

__all__ = ["handle", "handshake", "relay"]

logger = logging.getLogger("uki")

_NO_DEADLINE = 84600 * 365


def _fmt(addr: tuple[str, int]) -> str:
    host, port = addr[0], addr[1]
    return f"[{host}]:{port}" if ":" in host else f"{host}:{port}"


async def handle(args: Args) -> None:
    """Listen on ``args.listen`` and forward every peer to ``args.remote``."""
    logger.info("listening on %s", _fmt(args.listen))
    if args.protocol is Protocol.UDP or (
        args.protocol is Protocol.UOT and args.command is Command.CLIENT
    ):
        await _serve_udp(args)
    else:
        await _serve_tcp(args)


async def _serve_udp(args: Args) -> None:
    listener = await bind_udp_listener(args.listen, args.timeout)
    tasks: set[asyncio.Task[None]] = set()
    try:
        while True:
            data, peer, addr = await listener.accept()
            logger.debug("accepting new peer: %s", _fmt(addr))
            task = asyncio.create_task(_new_peer(addr, args, peer, data))
            tasks.add(task)
            task.add_done_callback(tasks.discard)
    finally:
        await listener.close()


async def _serve_tcp(args: Args) -> None:
    async def accepted(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        peer = TcpStream(reader, writer)
        addr = peer.peer_address
        try:
            peer.set_nodelay()
        except OSError as err:
            logger.error("%s tcp nodelay set failed: %s", _fmt(addr), err)
            await peer.close()
            return
        logger.debug("accepting new peer: %s", _fmt(addr))
        await _new_peer(addr, args, peer, None)

    server = await asyncio.start_server(accepted, args.listen[0], args.listen[1])
    async with server:
        await server.serve_forever()


async def _new_peer(
    peer_addr: tuple[str, int], args: Args, peer: Any, first_packet: bytes | None
) -> None:
    logger.info("new peer: %s", _fmt(peer_addr))
    opened: list[Any] = []
    try:
        if args.protocol is Protocol.TCP:
            remote = await open_tcp(args.remote)
            opened.append(remote)
            await handshake(peer, remote, args)
        elif args.protocol is Protocol.UOT and args.command is Command.CLIENT:
            tcp = await open_tcp(args.remote)
            opened.append(tcp)
            await handshake(peer, tcp, args)
            remote = UotStream(tcp)
        else:
            remote = await open_udp_remote(args.remote, args.timeout)
            opened.append(remote)
            await handshake(peer, remote, args)
            if args.protocol is Protocol.UOT:
                peer = UotStream(peer)
    except (OSError, EOFError, ValueError) as err:
        logger.error("error creating remote socket: %s", err)
        for stream in opened:
            await stream.close()
        await peer.close()
        return
    try:
        await relay(peer_addr, peer, remote, args, first_packet)
    finally:
        await remote.close()
        await peer.close()


async def handshake(peer: Any, remote: Any, args: Args) -> None:
    """Exchange the custom handshake, if one is configured."""
    custom = args.custom_handshake
    if custom is None:
        return
    if args.command is Command.CLIENT:
        await remote.write_all(custom.request)
        await remote.read_exact(len(custom.response))
    else:
        await peer.read_exact(len(custom.request))
        await peer.write_all(custom.response)


async def _pump(src: Any, dst: Any, size: int, transform: Any, label: str) -> None:
    while True:
        try:
            data = await src.read(size)
        except (OSError, EOFError) as err:
            logger.error("%s read failed: %s", label, err)
            return
        if not data:
            logger.error("%s read received EOF", label)
            return
        try:
            await dst.write_all(transform(data))
        except (OSError, EOFError, ValueError) as err:
            logger.error("%s write error: %s", label, err)
            return


async def relay(
    peer_addr: tuple[str, int], peer: Any, remote: Any, args: Args, first_packet: bytes | None
) -> None:
    """Relay traffic both ways until either side ends or the deadline passes.

    Traffic from the peer is encrypted (client) or decrypted (server); traffic
    from the remote is forwarded as is.
    """
    cipher = args.encryption
    outbound = cipher.encrypt if args.command is Command.CLIENT else cipher.decrypt
    name = _fmt(peer_addr)

    if first_packet is not None:
        try:
            await remote.write_all(outbound(first_packet))
        except (OSError, EOFError, ValueError) as err:
            logger.error("peer %s failed sending first packet to remote: %s", name, err)
            return

    duration = args.deadline if args.deadline is not None else _NO_DEADLINE
    tasks = {
        asyncio.create_task(_pump(peer, remote, args.mtu, outbound, f"peer {name}")),
        asyncio.create_task(_pump(remote, peer, args.mtu, bytes, f"peer {name} remote")),
    }
    try:
        done, _ = await asyncio.wait(
            tasks, timeout=duration, return_when=asyncio.FIRST_COMPLETED
        )
        if not done:
            logger.error("peer %s reached deadline", name)
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)