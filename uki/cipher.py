"""Symmetric packet ciphers applied to relayed traffic."""

from __future__ import annotations

from dataclasses import dataclass

__all__ = ["Cipher", "parse_cipher"]


@dataclass(frozen=True)
class Cipher:
    """A packet cipher: plain passthrough when ``key`` is empty, repeating-key XOR otherwise."""

    key: bytes = b""

    def __post_init__(self) -> None:
        object.__setattr__(self, "key", bytes(self.key))

    @property
    def plain(self) -> bool:
        """True when the cipher leaves data untouched."""
        return not self.key

    def _apply(self, data: bytes | bytearray | memoryview) -> bytes:
        data = bytes(data)
        if self.plain or not data:
            return data
        size = len(data)
        repeats = -(-size // len(self.key))
        stream = (self.key * repeats)[:size]
        mixed = int.from_bytes(data, "big") ^ int.from_bytes(stream, "big")
        return mixed.to_bytes(size, "big")

    def encrypt(self, data: bytes | bytearray | memoryview) -> bytes:
        """Return ``data`` encrypted."""
        return self._apply(data)

    def decrypt(self, data: bytes | bytearray | memoryview) -> bytes:
        """Return ``data`` decrypted."""
        return self._apply(data)


def parse_cipher(text: str) -> Cipher:
    """Parse a ``'<method>:<arg>'`` specification; an empty string means no encryption."""
    if not text:
        return Cipher()

    method, sep, data = text.partition(":")
    if not sep:
        raise ValueError("needs two parts, 'method:data'")

    if method == "xor":
        if not data:
            raise ValueError("xor key should be provided. format: 'xor:<key>'")
        return Cipher(data.encode("utf-8"))

    raise ValueError(f"{method} encryption is not supported.")