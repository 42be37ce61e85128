"""A row-major image stored as a flat array of pixels."""

from __future__ import annotations

import numpy as np


class Img:
    """A ``rows`` x ``cols`` image of ``dtype`` pixels.

    Without ``data`` the image owns a zeroed buffer; with ``data`` it wraps it.
    """

    def __init__(self, rows: int, cols: int, dtype, data=None) -> None:
        if rows < 0 or cols < 0:
            raise ValueError("image dimensions must not be negative")
        self.rows = rows
        self.cols = cols
        self.dtype = np.dtype(dtype)
        self.owned = data is None
        count = rows * cols
        if self.owned:
            self.data = np.zeros(count, dtype=self.dtype)
        else:
            array = np.asarray(data, dtype=self.dtype.base)
            if array.size != count * max(1, int(np.prod(self.dtype.shape))):
                raise ValueError("data does not match the image size")
            self.data = array.reshape((count,) + self.dtype.shape)

    def at(self, *args):
        """Pixel at flat index ``i`` or at ``(row, col)``; vector pixels are views."""
        if len(args) == 1:
            (index,) = args
            if not 0 <= index < self.rows * self.cols:
                raise IndexError(f"pixel {index} is outside the image")
        elif len(args) == 2:
            row, col = args
            if not (0 <= row < self.rows and 0 <= col < self.cols):
                raise IndexError(f"pixel ({row}, {col}) is outside the image")
            index = self.cols * row + col
        else:
            raise TypeError("at() takes an index or a row and a column")
        return self.data[index]