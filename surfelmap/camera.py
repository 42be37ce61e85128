"""Process-wide image resolution and pinhole intrinsics."""

from __future__ import annotations

from dataclasses import dataclass

_instances: dict[type, object] = {}


@dataclass(frozen=True)
class Resolution:
    width: int
    height: int

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError("the resolution has not been initialised")

    @property
    def cols(self) -> int:
        return self.width

    @property
    def rows(self) -> int:
        return self.height

    @property
    def num_pixels(self) -> int:
        return self.width * self.height


@dataclass(frozen=True)
class Intrinsics:
    fx: float
    fy: float
    cx: float
    cy: float

    def __post_init__(self) -> None:
        if self.fx == 0 or self.fy == 0:
            raise ValueError("the intrinsics have not been initialised")


def get_resolution(width: int = 0, height: int = 0) -> Resolution:
    """The shared resolution; the first call fixes it, later arguments are ignored."""
    instance = _instances.get(Resolution)
    if instance is None:
        instance = _instances[Resolution] = Resolution(width, height)
    return instance


def get_intrinsics(
    fx: float = 0.0, fy: float = 0.0, cx: float = 0.0, cy: float = 0.0
) -> Intrinsics:
    """The shared intrinsics; the first call fixes them, later arguments are ignored."""
    instance = _instances.get(Intrinsics)
    if instance is None:
        instance = _instances[Intrinsics] = Intrinsics(fx, fy, cx, cy)
    return instance