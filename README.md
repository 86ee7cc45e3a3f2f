# uki

`uki` forwards UDP or TCP traffic from a listening address to a remote
address. It can obfuscate the payload with a repeating XOR key. It can also
carry UDP datagrams over a TCP connection ("uot"), which helps where UDP is
blocked or throttled. It runs on asyncio and needs nothing outside the
standard library.

A typical setup runs one instance as a **client** near the application and
another as a **server** near the real destination. Traffic that arrives from a
peer is encrypted by the client before it is forwarded. The server decrypts
such traffic before it is forwarded. Traffic coming back from the remote is
passed on to the peer unchanged.

## Installation

```
pip install .
```

## Usage

```
uki --listen <addr:port> --remote <addr:port> --protocol {udp,tcp,uot} [options] {client,server}
```

The same command can be started as `python -m uki.cli`.

Examples:

```
# Server side: accept UDP-over-TCP on port 9000, deliver UDP to a local service
uki --listen 0.0.0.0:9000 --remote 127.0.0.1:51820 --protocol uot --encryption xor:placeholder server

# Client side: accept UDP locally, tunnel it over TCP to the server
uki --listen 127.0.0.1:51821 --remote 192.0.2.10:9000 --protocol uot --encryption xor:placeholder client
```

Addresses take the form `a.b.c.d:port` for IPv4 and `[v6]:port` for IPv6.
Use `[::]:8080` as the listen address to listen on IPv6.

With `uot`, the client listens for UDP and sends each datagram to the server
over TCP. Each datagram is prefixed there by a 2-byte big-endian length. The
server listens for TCP and delivers the datagrams to the remote over UDP.

### Options

| Option | Meaning |
| --- | --- |
| `-l`, `--listen` | Address to listen on (required). |
| `-r`, `--remote` | Address to forward to, IPv4 or IPv6 (required). |
| `--protocol` | `udp`, `tcp`, or `uot` (UDP over TCP) (required). |
| `--deadline SECONDS` | Close each connection this many seconds after relaying starts. |
| `--timeout SECONDS` | Close UDP flows that stay idle this long (default 20; `0` disables it). |
| `--encryption METHOD:ARG` | Payload encryption. Only `xor:<key>` is supported, e.g. `xor:placeholder`. It must match on both ends. |
| `--custom-handshake REQ,RESP` | Paths of two files. The client sends the request bytes and then reads as many bytes as the response file holds. The server reads as many bytes as the request file holds and then sends the response bytes. It must match on both ends. |
| `--daemonize` | Detach from the terminal; see below. |
| `--log-level LEVEL` | `trace`, `debug`, `info`, `warn` or `error`, or `5` to `1` (default `error`). |
| `--log-path PATH` | Write logs to this file instead of standard error. The file is truncated on start. |
| `--mtu BYTES` | Largest read size per datagram or chunk (default 4096). |
| `--version` | Print the version and exit. |

The last argument picks the role: `client` or `server`.

### About `--daemonize`

`--daemonize` does the following:

- It starts a new session where it can.
- It ignores `SIGHUP`.
- It changes the working directory to `/tmp`.
- It redirects the standard streams to the null device.

It does **not** fork. To put the process in the background, start it with
the shell's `&` or with a service manager. Use `--log-path` to keep the logs.

## Library use

The modules can be used on their own.

`uki.cipher` holds `Cipher` and `parse_cipher`. A `Cipher` with an empty key
leaves data unchanged.

```python
from uki.cipher import parse_cipher

cipher = parse_cipher("xor:placeholder")
hidden = cipher.encrypt(b"hello")
assert cipher.decrypt(hidden) == b"hello"
```

`uki.args.parse_args` turns a command line into a frozen `Args` dataclass.
`build_parser` returns the underlying `argparse` parser. The helpers
`parse_socket_addr`, `parse_encryption`, `parse_handshake` and
`parse_log_level` parse single option values.

`uki.streams` provides these async byte streams. Each has `read`,
`read_exact`, `write_all` and `close`.

- `TcpStream`, opened with `open_tcp`.
- `UdpListener`, bound with `bind_udp_listener`. It splits incoming datagrams
  into one `UdpPeerStream` per peer.
- `UdpRemoteStream`, opened with `open_udp_remote`.
- `UotStream`, which frames datagrams over another stream.

`uki.handler.handle` runs the forwarder for an `Args` object:

```python
import asyncio
from uki.args import parse_args
from uki.handler import handle

asyncio.run(handle(parse_args(["-l", "127.0.0.1:9000", "-r", "127.0.0.1:9001",
                               "--protocol", "udp", "client"])))
```

`uki.handler` also provides `handshake` and `relay`, which handle a single
connection. `uki.cli` provides `main`, `configure_logging` and `daemonize`.

## Running the tests

```
pip install ".[test]"
pytest
```