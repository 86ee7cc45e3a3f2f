"""Command-line entry point."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from collections.abc import Sequence
from pathlib import Path

from uki.args import parse_args
from uki.handler import handle

__all__ = ["configure_logging", "daemonize", "main"]


def configure_logging(level: int, log_path: Path | None) -> None:
    """Send log records at ``level`` and above to ``log_path`` or standard error."""
    if log_path is not None:
        try:
            handler: logging.Handler = logging.FileHandler(log_path, mode="w")
        except OSError as err:
            raise RuntimeError(f"could not create log file {log_path}") from err
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    logging.basicConfig(level=level, handlers=[handler], force=True)


def daemonize() -> None:
    """Detach from the terminal and run in the background with ``/tmp`` as working directory."""
    try:
        if hasattr(os, "setsid"):
            try:
                os.setsid()
            except PermissionError:
                # Already a process group leader; stay in the current session.
                pass
        if hasattr(signal, "SIGHUP"):
            signal.signal(signal.SIGHUP, signal.SIG_IGN)
        os.chdir("/tmp")
        os.umask(0o027)
        with open(os.devnull, "rb") as devnull_in, open(os.devnull, "ab") as devnull_out:
            os.dup2(devnull_in.fileno(), 0)
            os.dup2(devnull_out.fileno(), 1)
            os.dup2(devnull_out.fileno(), 2)
    except OSError as err:
        raise RuntimeError(f"daemonize failed: {err}") from err


def main(argv: Sequence[str] | None = None) -> None:
    """Parse arguments, set up logging and run the forwarder."""
    args = parse_args(argv)
    configure_logging(args.log_level, args.log_path)
    if args.daemonize:
        daemonize()
    try:
        asyncio.run(handle(args))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()