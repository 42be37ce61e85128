"""Command-line lookups and the directories the program works from."""

from __future__ import annotations

import os
import re
import sys
from collections.abc import Sequence
from pathlib import Path

_INT_PREFIX = re.compile(r"\s*[+-]?\d+")
_FLOAT_PREFIX = re.compile(
    r"\s*[+-]?(?:infinity|inf|nan|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)",
    re.IGNORECASE,
)

SHADER_DIR_ENV = "SURFELMAP_SHADER_DIR"


def _to_int(text: str) -> int:
    match = _INT_PREFIX.match(text)
    return int(match.group()) if match else 0


def _to_float(text: str) -> float:
    match = _FLOAT_PREFIX.match(text)
    return float(match.group()) if match else 0.0


class Parse:
    """Finds option values in an argument list and locates program directories."""

    def __init__(self, shader_dir: str | os.PathLike | None = None) -> None:
        if shader_dir is None:
            shader_dir = os.environ.get(
                SHADER_DIR_ENV, str(Path(__file__).resolve().parent / "shaders")
            )
        self._shader_dir = str(shader_dir)

    def find_arg(self, argv: Sequence[str], name: str) -> int:
        """Index of ``name`` in ``argv``, skipping the program name; -1 if absent."""
        for index, value in enumerate(argv):
            if index > 0 and value == name:
                return index
        return -1

    def arg(self, argv: Sequence[str], name: str, default=None):
        """The value after ``name``, converted like ``default``; ``default`` if absent.

        Integers and floats are read from the value's leading digits, and text
        without any becomes zero.
        """
        index = self.find_arg(argv, name) + 1
        if not 0 < index < len(argv):
            return default
        text = argv[index]
        if isinstance(default, bool) or isinstance(default, int):
            return _to_int(text)
        if isinstance(default, float):
            return _to_float(text)
        return text

    def shader_dir(self) -> str:
        """The shader directory; it must exist."""
        if not os.path.exists(self._shader_dir):
            raise FileNotFoundError(f"shader directory not found: {self._shader_dir}")
        return self._shader_dir

    def base_dir(self) -> str:
        """The running program's path up to its last ``build`` directory."""
        program = os.path.abspath(sys.argv[0]) if sys.argv and sys.argv[0] else ""
        marker = f"{os.sep}build{os.sep}"
        cut = program.rfind(marker)
        return program if cut < 0 else program[:cut]


_instance: Parse | None = None


def get_parse() -> Parse:
    """The shared parser, created on first use."""
    global _instance
    if _instance is None:
        _instance = Parse()
    return _instance