from math import isqrt

import numpy as np
import pytest

from raster_mask import RasterMask


def brute_radius_map(cells: np.ndarray, bound: int = None) -> np.ndarray:
    """Reference local radius for every pixel, by exhaustive search."""
    cells = np.asarray(cells, dtype=bool)
    h, w = cells.shape
    if bound is None:
        bound = min(w, h) // 2
    ys, xs = np.indices((h, w))
    cap = np.minimum.reduce([xs, w - xs, ys, h - ys, np.full((h, w), bound)])
    out = np.zeros((h, w), dtype=np.int64)
    empty_y, empty_x = np.nonzero(~cells)
    for y in range(h):
        for x in range(w):
            if not cells[y, x]:
                continue
            if empty_y.size == 0:
                out[y, x] = cap[y, x]
                continue
            d2 = int(((empty_y - y) ** 2 + (empty_x - x) ** 2).min())
            out[y, x] = min(int(cap[y, x]), isqrt(d2 - 1))
    return out


def blob_cells(seed: int, width: int, height: int, blobs: int = 6) -> np.ndarray:
    """Union of random disks and rectangles, roughly glyph-like."""
    rng = np.random.default_rng(seed)
    ys, xs = np.indices((height, width))
    cells = np.zeros((height, width), dtype=bool)
    for _ in range(blobs):
        cx, cy = rng.integers(0, width), rng.integers(0, height)
        r = rng.integers(2, max(3, min(width, height) // 3))
        cells |= (xs - cx) ** 2 + (ys - cy) ** 2 <= r * r
    for _ in range(blobs // 2):
        x0, y0 = rng.integers(0, width - 2), rng.integers(0, height - 2)
        cells[y0:y0 + rng.integers(2, height // 2), x0:x0 + rng.integers(2, width // 2)] = True
    return cells


@pytest.fixture
def blob_mask():
    return RasterMask(blob_cells(7, 40, 30))
