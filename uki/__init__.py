"""UDP and TCP packet forwarder with optional XOR obfuscation and UDP-over-TCP tunnelling."""

__version__ = "0.3.2"
__all__ = ["__version__"]