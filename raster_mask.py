"""
raster_mask.py

Binary pixel mask consumed by the circle extractor.

A mask is a fixed-size grid of filled/unfilled pixels. The rasterizer builds
one from an 8-bit intensity buffer (optionally padded with a row stride), and
the extractor erases disks from it as circles are emitted. Nothing else
mutates a mask.
"""

from __future__ import annotations
from typing import Optional, Sequence, Union
import numpy as np


DEFAULT_THRESHOLD = 1   # any ink counts as filled


class RasterMask:
    """Row-major boolean grid with bounds-checked lookup.

    Out-of-bounds coordinates read as unfilled. The only permitted mutation
    is :meth:`clear_disk`.
    """

    def __init__(self, cells: np.ndarray):
        arr = np.asarray(cells)
        if arr.ndim != 2:
            raise ValueError(f"mask must be 2D, got shape {arr.shape}")
        h, w = arr.shape
        if w <= 0 or h <= 0:
            raise ValueError(f"mask must have positive width and height, got {w}x{h}")
        self._cells = np.array(arr, dtype=bool, copy=True)

    # -------------------------
    # Constructors
    # -------------------------
    @classmethod
    def blank(cls, width: int, height: int, filled: bool = False) -> "RasterMask":
        if width <= 0 or height <= 0:
            raise ValueError(f"mask must have positive width and height, got {width}x{height}")
        return cls(np.full((height, width), filled, dtype=bool))

    @classmethod
    def from_intensity(cls, intensity: np.ndarray, threshold: int = DEFAULT_THRESHOLD) -> "RasterMask":
        """Threshold an (H, W) intensity array: pixels >= threshold are filled."""
        arr = np.asarray(intensity)
        if arr.ndim != 2:
            raise ValueError(f"intensity must be 2D, got shape {arr.shape}")
        if arr.dtype.kind in "ub":
            arr = arr.astype(np.int64)  # thresholds may fall outside uint8
        return cls(arr >= threshold)

    @classmethod
    def from_buffer(cls,
                    data: Union[bytes, bytearray, memoryview, Sequence[int], np.ndarray],
                    width: int,
                    height: int,
                    stride: Optional[int] = None,
                    threshold: int = DEFAULT_THRESHOLD) -> "RasterMask":
        """
        Build a mask from a flat row-major 8-bit buffer.

        Pixel (x, y) lives at ``data[y * stride + x]``; ``stride`` defaults to
        ``width`` and may exceed it when rows are padded (as with cairo or
        FreeType bitmaps). Padding bytes are ignored.
        """
        if width <= 0 or height <= 0:
            raise ValueError(f"mask must have positive width and height, got {width}x{height}")
        stride = width if stride is None else int(stride)
        if stride < width:
            raise ValueError(f"stride ({stride}) must be >= width ({width})")

        if isinstance(data, (bytes, bytearray, memoryview)):
            flat = np.frombuffer(data, dtype=np.uint8)
        else:
            flat = np.asarray(data).ravel()
        needed = (height - 1) * stride + width
        if flat.size < needed:
            raise ValueError(f"buffer too small: {flat.size} < {needed} for {width}x{height} stride {stride}")

        if flat.size < height * stride:
            # last row may be unpadded
            flat = np.concatenate([flat, np.zeros(height * stride - flat.size, dtype=flat.dtype)])
        rows = flat[:height * stride].reshape(height, stride)
        return cls.from_intensity(rows[:, :width], threshold)

    # -------------------------
    # Geometry
    # -------------------------
    @property
    def width(self) -> int:
        return int(self._cells.shape[1])

    @property
    def height(self) -> int:
        return int(self._cells.shape[0])

    @property
    def shape(self):
        return self._cells.shape

    @property
    def cells(self) -> np.ndarray:
        """Read-only (H, W) view of the filled flags."""
        view = self._cells.view()
        view.flags.writeable = False
        return view

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def filled(self, x: int, y: int) -> bool:
        return self.in_bounds(x, y) and bool(self._cells[y, x])

    def count_filled(self) -> int:
        return int(np.count_nonzero(self._cells))

    def is_empty(self) -> bool:
        return not self._cells.any()

    def copy(self) -> "RasterMask":
        return RasterMask(self._cells)

    # -------------------------
    # Mutation
    # -------------------------
    def clear_disk(self, cx: int, cy: int, r: int) -> int:
        """
        Unfill every pixel with (x-cx)^2 + (y-cy)^2 < r^2.

        Parts of the disk outside the grid are ignored. Returns the number of
        pixels that were filled before clearing.
        """
        if r <= 0:
            return 0
        x0 = max(0, cx - r + 1)
        x1 = min(self.width, cx + r)
        y0 = max(0, cy - r + 1)
        y1 = min(self.height, cy + r)
        if x0 >= x1 or y0 >= y1:
            return 0

        ys, xs = np.ogrid[y0:y1, x0:x1]
        disk = (xs - cx) ** 2 + (ys - cy) ** 2 < r * r
        window = self._cells[y0:y1, x0:x1]
        cleared = int(np.count_nonzero(window & disk))
        window[disk] = False
        return cleared

    def __repr__(self) -> str:
        return f"RasterMask({self.width}x{self.height}, filled={self.count_filled()})"
