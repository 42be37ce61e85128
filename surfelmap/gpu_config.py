"""Thread and block counts for the tracking reductions, tuned per GPU model."""

from __future__ import annotations

from dataclasses import dataclass

_Pair = tuple[int, int]

# name -> (icp step, rgb step, rgb residual, so3 step), each (threads, blocks)
_DEVICES: dict[str, tuple[_Pair, _Pair, _Pair, _Pair]] = {
    "GeForce GTX 780 Ti": ((128, 112), (128, 112), (256, 336), (160, 64)),
    "GeForce GTX 880M": ((512, 16), (512, 16), (256, 64), (384, 16)),
    "GeForce GTX 980": ((512, 32), (160, 64), (128, 512), (240, 48)),
    "GeForce GTX 970": ((128, 48), (160, 64), (128, 272), (96, 64)),
    "GeForce GTX 965M": ((256, 32), (224, 16), (384, 480), (160, 32)),
    "GeForce GTX 675MX": ((128, 80), (128, 48), (128, 80), (128, 32)),
    "Quadro K620M": ((32, 48), (128, 16), (448, 48), (32, 48)),
    "GeForce GTX TITAN": ((128, 96), (112, 96), (256, 416), (128, 64)),
    "GeForce GTX TITAN X": ((256, 96), (256, 64), (96, 496), (432, 48)),
    "GeForce GTX 980 Ti": ((320, 64), (128, 96), (224, 384), (432, 48)),
    "GeForce GTX 1070": ((64, 240), (128, 96), (256, 464), (256, 48)),
    "GeForce GTX 1050 with Max-Q Design": ((64, 240), (32, 112), (48, 352), (64, 80)),
}

_TABLES = ("ICP Step", "RGB Step", "RGB Res", "SO3 Step")


@dataclass(frozen=True)
class GPUConfig:
    icp_step_threads: int = 128
    icp_step_blocks: int = 112
    rgb_step_threads: int = 128
    rgb_step_blocks: int = 112
    rgb_res_threads: int = 256
    rgb_res_blocks: int = 336
    so3_step_threads: int = 160
    so3_step_blocks: int = 64

    @classmethod
    def for_device(cls, name: str) -> GPUConfig:
        """Settings for the GPU called ``name``; unknown models keep the defaults."""
        entry = _DEVICES.get(name)
        if entry is None:
            for table in _TABLES:
                print(
                    f'Your GPU "{name}" isn\'t in the {table} performance database, '
                    "please add it"
                )
            return cls()
        (icp_t, icp_b), (rgb_t, rgb_b), (res_t, res_b), (so3_t, so3_b) = entry
        return cls(icp_t, icp_b, rgb_t, rgb_b, res_t, res_b, so3_t, so3_b)


def known_devices() -> tuple[str, ...]:
    """Names of the GPU models with tuned settings."""
    return tuple(_DEVICES)