"""Named timings in milliseconds, optionally sent as UDP packets to a viewer."""

from __future__ import annotations

import socket
import struct
import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from types import MappingProxyType

SEND_INTERVAL_MS = 10000
"""Minimum gap between two packets, compared against microsecond clock readings."""

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 45454

_HEADER = struct.Struct("<iQ")
_VALUE = struct.Struct("<f")


def current_system_time() -> int:
    """Wall-clock time in microseconds since the epoch."""
    return time.time_ns() // 1000


class Stopwatch:
    """Collects named durations and sends them over UDP."""

    def __init__(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> None:
        self._address = (host, port)
        self._socket = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        now = current_system_time()
        self.signature = now
        self._current_send = now
        self._last_send = now
        self._timings: dict[str, float] = {}
        self._tick_timings: dict[str, int] = {}

    @property
    def timings(self) -> Mapping[str, float]:
        """Recorded timings in milliseconds, keyed by name."""
        return MappingProxyType(self._timings)

    def add_timing(self, name: str, duration: int) -> None:
        """Record a duration given in microseconds; zero or negative is ignored."""
        if duration > 0:
            self._timings[name] = duration / 1000.0

    def set_custom_signature(self, signature: int) -> None:
        """Replace the signature that identifies this stopwatch in packets."""
        self.signature = signature

    def print_all(self) -> None:
        """Print every timing in name order, then an empty line."""
        for name, value in sorted(self._timings.items()):
            print(f"{name}: {value:g}ms")
        print()

    def pulse(self, name: str) -> None:
        """Mark ``name`` with the value 1."""
        self._timings[name] = 1.0

    def send_all(self) -> None:
        """Send all timings if enough time has passed since the last packet."""
        self._current_send = current_system_time()
        if self._current_send - self._last_send > SEND_INTERVAL_MS:
            packet = self.serialise_timings()
            try:
                self._socket.sendto(packet, self._address)
            except OSError:
                pass
            self._last_send = self._current_send

    def tick(self, name: str, start: int) -> None:
        """Remember the start time (microseconds) of ``name``."""
        self._tick_timings[name] = start

    def tock(self, name: str, end: int) -> None:
        """Record the time since the matching :meth:`tick`, if positive."""
        duration = (end - self._tick_timings.setdefault(name, 0)) / 1000.0
        if duration > 0:
            self._timings[name] = duration

    def serialise_timings(self) -> bytes:
        """Packet: int32 size, uint64 signature, then NUL-terminated names with float32 values."""
        body = b"".join(
            name.encode("utf-8") + b"\0" + _VALUE.pack(value)
            for name, value in sorted(self._timings.items())
        )
        size = _HEADER.size + len(body)
        return _HEADER.pack(size, self.signature & 0xFFFFFFFFFFFFFFFF) + body

    @contextmanager
    def measure(self, name: str) -> Iterator[None]:
        """Time the body of a ``with`` block under ``name``."""
        start = current_system_time()
        try:
            yield
        finally:
            self.add_timing(name, current_system_time() - start)

    def close(self) -> None:
        """Close the UDP socket."""
        self._socket.close()

    def __enter__(self) -> Stopwatch:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


_instance: Stopwatch | None = None


def get_stopwatch() -> Stopwatch:
    """The shared stopwatch, created on first use."""
    global _instance
    if _instance is None:
        _instance = Stopwatch()
    return _instance