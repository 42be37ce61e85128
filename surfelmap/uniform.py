"""Named shader uniform values."""

from __future__ import annotations

import enum
import numbers

import numpy as np


class UniformType(enum.Enum):
    INT = enum.auto()
    FLOAT = enum.auto()
    VEC2 = enum.auto()
    VEC3 = enum.auto()
    VEC4 = enum.auto()
    MAT4 = enum.auto()
    NONE = enum.auto()


_SHAPES = {
    (2,): UniformType.VEC2,
    (3,): UniformType.VEC3,
    (4,): UniformType.VEC4,
    (4, 4): UniformType.MAT4,
}


class Uniform:
    """A uniform name with a value; the type follows from the value."""

    def __init__(self, name: str, value) -> None:
        self.name = name
        if isinstance(value, (bool, numbers.Integral)):
            self.type = UniformType.INT
            self.value = int(value)
        elif isinstance(value, numbers.Real):
            self.type = UniformType.FLOAT
            self.value = float(np.float32(value))
        elif isinstance(value, (str, bytes)):
            raise TypeError(f"uniform {name!r} cannot hold text")
        else:
            array = np.asarray(value, dtype=np.float32)
            try:
                self.type = _SHAPES[array.shape]
            except KeyError:
                raise ValueError(
                    f"uniform {name!r} has unsupported shape {array.shape}"
                ) from None
            self.value = array

    def __repr__(self) -> str:
        return f"Uniform({self.name!r}, {self.type.name})"