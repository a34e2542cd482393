"""Pooled keep-alive HTTP/1.1 client with per-host connection limits."""

from __future__ import annotations

import logging
import socket
import threading
import time
from dataclasses import dataclass, field
from typing import BinaryIO, Optional

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONNS_PER_HOST = 512
DEFAULT_MAX_IDLE_CONN_DURATION = 10.0
DIAL_TIMEOUT = 3.0

_MAX_LINE = 65536


@dataclass
class HTTPOption:
    """Connection and transfer limits for one upstream host.

    Durations are in seconds; a non-positive timeout disables it.
    """

    max_conns: int = 8
    max_conn_duration: float = 60.0
    max_idle_conn_duration: float = 30.0
    read_buffer_size: int = 512
    write_buffer_size: int = 256
    read_timeout: float = 30.0
    write_timeout: float = 30.0
    max_response_body_size: int = 10 * 1024 * 1024


def default_http_option() -> HTTPOption:
    """Return the default client options."""
    return HTTPOption()


@dataclass
class HTTPRequest:
    """An outgoing request."""

    method: str = "GET"
    uri: str = "/"
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    connection_close: bool = False

    def header(self, name: str) -> Optional[str]:
        lowered = name.lower()
        return next((v for k, v in self.headers.items() if k.lower() == lowered), None)


@dataclass
class HTTPResponse:
    """A response read from an upstream host."""

    status: int = 0
    reason: str = ""
    version: str = "HTTP/1.1"
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: bytes = b""

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Return the first header called ``name``, ignoring case."""
        lowered = name.lower()
        return next((v for k, v in self.headers if k.lower() == lowered), default)

    @property
    def connection_close(self) -> bool:
        tokens = {t.strip().lower() for t in (self.header("Connection") or "").split(",")}
        if "close" in tokens:
            return True
        return self.version == "HTTP/1.0" and "keep-alive" not in tokens


class NoFreeConnectionsError(RuntimeError):
    """Raised when a host already has its maximum number of connections in use."""

    def __init__(self) -> None:
        super().__init__("no free connections available to host")


class _Conn:
    def __init__(self, sock: socket.socket, option: HTTPOption) -> None:
        self.sock = sock
        self.reader: BinaryIO = sock.makefile("rb", buffering=max(option.read_buffer_size, 1))
        self.writer: BinaryIO = sock.makefile("wb", buffering=max(option.write_buffer_size, 1))
        self.created = time.monotonic()
        self.last_use = self.created

    def close(self) -> None:
        for stream in (self.reader, self.writer):
            try:
                stream.close()
            except OSError:
                pass
        try:
            self.sock.close()
        except OSError:
            pass


def _dial(addr: str) -> socket.socket:
    host, sep, port = addr.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"invalid address: {addr!r}")
    host = host.strip("[]")
    return socket.create_connection((host, int(port)), timeout=DIAL_TIMEOUT)


class _HostClients:
    def __init__(self, option: HTTPOption) -> None:
        self.option = option
        self.last_use_time = 0.0
        self._lock = threading.Lock()
        self._conns: list[_Conn] = []
        self._conns_count = 0
        self._cleaner_running = False
        self._stopped = threading.Event()

    def acquire(self, addr: str) -> _Conn:
        with self._lock:
            if self._conns:
                return self._conns.pop()
            max_conns = self.option.max_conns if self.option.max_conns > 0 else DEFAULT_MAX_CONNS_PER_HOST
            if self._conns_count >= max_conns:
                raise NoFreeConnectionsError()
            self._conns_count += 1
            start_cleaner = self._conns_count == 1

        try:
            conn = _Conn(_dial(addr), self.option)
        except BaseException:
            self._dec_conns_count()
            raise

        if start_cleaner:
            with self._lock:
                if not self._cleaner_running:
                    self._cleaner_running = True
                    threading.Thread(target=self._clean_conns, name="conns-cleaner", daemon=True).start()
        return conn

    def release(self, conn: _Conn) -> None:
        conn.last_use = time.monotonic()
        with self._lock:
            self._conns.append(conn)

    def close_conn(self, conn: _Conn) -> None:
        self._dec_conns_count()
        conn.close()

    def close(self) -> None:
        self._stopped.set()
        with self._lock:
            idle, self._conns = self._conns, []
            self._conns_count -= len(idle)
        for conn in idle:
            conn.close()

    def _dec_conns_count(self) -> None:
        with self._lock:
            self._conns_count -= 1

    def _clean_conns(self) -> None:
        max_idle = self.option.max_idle_conn_duration
        if max_idle <= 0:
            max_idle = DEFAULT_MAX_IDLE_CONN_DURATION
        while True:
            now = time.monotonic()
            with self._lock:
                expired = 0
                for conn in self._conns:
                    if now - conn.last_use <= max_idle:
                        break
                    expired += 1
                must_stop = self._conns_count == expired
                stale, self._conns = self._conns[:expired], self._conns[expired:]
                if must_stop:
                    self._cleaner_running = False
            for conn in stale:
                self.close_conn(conn)
            if must_stop or self._stopped.wait(max_idle):
                break
        with self._lock:
            self._cleaner_running = False


def _encode_request(request: HTTPRequest, addr: str, close: bool) -> bytes:
    method = request.method.upper()
    lines = [f"{method} {request.uri or '/'} HTTP/1.1"]
    if request.header("Host") is None:
        lines.append(f"Host: {addr}")
    lines.extend(f"{name}: {value}" for name, value in request.headers.items()
                 if name.lower() != "connection")
    if request.header("Content-Length") is None and (
        request.body or method in ("POST", "PUT", "PATCH")
    ):
        lines.append(f"Content-Length: {len(request.body)}")
    if close:
        lines.append("Connection: close")
    head = "\r\n".join(lines) + "\r\n\r\n"
    return head.encode("latin-1") + request.body


def _read_line(reader: BinaryIO) -> bytes:
    line = reader.readline(_MAX_LINE + 1)
    if not line:
        raise ConnectionError("connection closed before the response was complete")
    if len(line) > _MAX_LINE:
        raise ValueError("response line too long")
    return line


def _read_exact(reader: BinaryIO, size: int) -> bytes:
    data = reader.read(size)
    if data is None or len(data) < size:
        raise ConnectionError("connection closed before the response body was complete")
    return data


def _check_limit(size: int, limit: int) -> None:
    if limit > 0 and size > limit:
        raise ValueError("body size exceeds the given limit")


def _read_head(reader: BinaryIO) -> HTTPResponse:
    while True:
        status_line = _read_line(reader).decode("latin-1").rstrip("\r\n")
        parts = status_line.split(" ", 2)
        if len(parts) < 2 or not parts[0].startswith("HTTP/") or not parts[1].isdigit():
            raise ValueError(f"malformed status line: {status_line!r}")
        response = HTTPResponse(
            status=int(parts[1]),
            reason=parts[2] if len(parts) > 2 else "",
            version=parts[0],
        )
        while True:
            line = _read_line(reader)
            if line in (b"\r\n", b"\n"):
                break
            name, sep, value = line.decode("latin-1").partition(":")
            if not sep:
                raise ValueError(f"malformed header line: {line!r}")
            response.headers.append((name.strip(), value.strip()))
        if 100 <= response.status < 200 and response.status != 101:
            continue
        return response


def _read_chunked(reader: BinaryIO, limit: int) -> bytes:
    chunks = []
    total = 0
    while True:
        size_text = _read_line(reader).decode("latin-1").split(";", 1)[0].strip()
        try:
            size = int(size_text, 16)
        except ValueError:
            raise ValueError(f"malformed chunk size: {size_text!r}") from None
        if size == 0:
            while _read_line(reader) not in (b"\r\n", b"\n"):
                pass
            return b"".join(chunks)
        total += size
        _check_limit(total, limit)
        chunks.append(_read_exact(reader, size))
        _read_line(reader)


def _read_response(reader: BinaryIO, skip_body: bool, limit: int) -> tuple[HTTPResponse, bool]:
    """Read one response; the flag tells whether the body ran to end of stream."""
    response = _read_head(reader)
    if skip_body or response.status in (204, 304):
        return response, False

    encoding = (response.header("Transfer-Encoding") or "").lower()
    if "chunked" in encoding:
        response.body = _read_chunked(reader, limit)
        return response, False

    length = response.header("Content-Length")
    if length is not None:
        try:
            size = int(length)
        except ValueError:
            raise ValueError(f"malformed content length: {length!r}") from None
        _check_limit(size, limit)
        response.body = _read_exact(reader, size)
        return response, False

    chunks = []
    total = 0
    while True:
        data = reader.read1(65536)
        if not data:
            break
        total += len(data)
        _check_limit(total, limit)
        chunks.append(data)
    response.body = b"".join(chunks)
    return response, True


class FastHTTPClient:
    """HTTP client keeping a pool of keep-alive connections per address."""

    def __init__(self, default_option: Optional[HTTPOption] = None) -> None:
        self.default_option = default_option if default_option is not None else default_http_option()
        self._lock = threading.Lock()
        self._host_clients: dict[str, _HostClients] = {}

    def do(self, request: HTTPRequest, addr: str, option: Optional[HTTPOption] = None) -> HTTPResponse:
        """Send ``request`` to ``addr`` ("host:port") and return its response."""
        if request is None:
            raise ValueError("request must not be None")
        opt = option if option is not None else self.default_option

        with self._lock:
            hc = self._host_clients.get(addr)
            if hc is None:
                hc = _HostClients(opt)
                self._host_clients[addr] = hc
        hc.last_use_time = time.monotonic()

        conn = hc.acquire(addr)
        reset_connection = (
            opt.max_conn_duration > 0
            and time.monotonic() - conn.created > opt.max_conn_duration
            and not request.connection_close
        )

        try:
            conn.sock.settimeout(opt.write_timeout if opt.write_timeout > 0 else None)
            conn.writer.write(_encode_request(request, addr, request.connection_close or reset_connection))
            conn.writer.flush()

            conn.sock.settimeout(opt.read_timeout if opt.read_timeout > 0 else None)
            skip_body = request.method.upper() == "HEAD"
            response, read_to_eof = _read_response(conn.reader, skip_body, opt.max_response_body_size)
        except BaseException:
            hc.close_conn(conn)
            raise

        if reset_connection or request.connection_close or response.connection_close or read_to_eof:
            hc.close_conn(conn)
        else:
            hc.release(conn)
        return response

    def close(self) -> None:
        """Close idle connections and stop background cleaners."""
        with self._lock:
            clients, self._host_clients = list(self._host_clients.values()), {}
        for hc in clients:
            hc.close()

    def __enter__(self) -> "FastHTTPClient":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()