"""The packed surfel record: three float4 blocks of position, colour/time and normal."""

from __future__ import annotations

import struct
from dataclasses import dataclass

_LAYOUT = struct.Struct("<12f")

SIZE = _LAYOUT.size
"""Bytes per surfel record."""


def encode_color(r: int, g: int, b: int) -> float:
    """Pack 8-bit RGB channels into one float holding a 24-bit integer."""
    for channel in (r, g, b):
        if not 0 <= channel <= 255:
            raise ValueError(f"colour channel {channel} is outside 0..255")
    return float((int(r) << 16) | (int(g) << 8) | int(b))


def decode_color(value: float) -> tuple[int, int, int]:
    """Unpack a float made by :func:`encode_color` into RGB channels."""
    packed = int(round(value))
    if not 0 <= packed <= 0xFFFFFF:
        raise ValueError(f"{value} is not an encoded colour")
    return (packed >> 16) & 0xFF, (packed >> 8) & 0xFF, packed & 0xFF


@dataclass
class Surfel:
    position: tuple[float, float, float] = (0.0, 0.0, 0.0)
    confidence: float = 0.0
    color: float = 0.0
    init_time: float = 0.0
    timestamp: float = 0.0
    normal: tuple[float, float, float] = (0.0, 0.0, 0.0)
    radius: float = 0.0

    def pack(self) -> bytes:
        """The surfel as 12 little-endian float32 values; the unused slot is zero."""
        return _LAYOUT.pack(
            *self.position,
            self.confidence,
            self.color,
            0.0,
            self.init_time,
            self.timestamp,
            *self.normal,
            self.radius,
        )

    @classmethod
    def unpack(cls, data: bytes) -> Surfel:
        """Read one surfel record."""
        if len(data) != SIZE:
            raise ValueError(f"a surfel takes {SIZE} bytes, got {len(data)}")
        v = _LAYOUT.unpack(data)
        return cls(
            position=(v[0], v[1], v[2]),
            confidence=v[3],
            color=v[4],
            init_time=v[6],
            timestamp=v[7],
            normal=(v[8], v[9], v[10]),
            radius=v[11],
        )