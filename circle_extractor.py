"""
circle_extractor.py

Greedy maximal-circle extraction over a :class:`~raster_mask.RasterMask`.

Each step finds the globally largest disk that fits inside the remaining
filled pixels, emits it, erases it from the mask, and lowers the pruning
bound to the radius just emitted. Extraction ends when the best disk is
smaller than ``min_radius``.

Radius semantics used by every strategy:
  - fill radius: largest r such that no unfilled pixel lies at distance <= r
    (``isqrt(d2 - 1)`` for squared distance d2 to the nearest unfilled
    pixel). Pixels outside the grid count as filled for this sub-test.
  - edge cap: ``min(x, W - x, y, H - y)``, which keeps the emitted open disk
    (distance < r) inside the grid.
  - pruning bound: radius of the previous circle (or the initial hint).
The local radius of a pixel is the minimum of the three. Ties between pixels
go to the first one in row-major scan order (smallest y, then smallest x).
"""

from __future__ import annotations
from dataclasses import dataclass
from functools import lru_cache
from math import isqrt
from typing import Dict, Iterator, List, Optional, Tuple, Type
import numpy as np
import cv2
import scipy.ndimage as ndi

from raster_mask import RasterMask


DEFAULT_MIN_RADIUS = 1
DEFAULT_STRATEGY = "transform"


# =========================
# Data types
# =========================
@dataclass(frozen=True)
class Circle:
    x: int
    y: int
    radius: int

    @property
    def diameter(self) -> int:
        return 2 * self.radius

    @property
    def area(self) -> float:
        return float(np.pi * self.radius * self.radius)

    def contains(self, px: int, py: int) -> bool:
        """Strict disk test, matching what :meth:`RasterMask.clear_disk` erases."""
        return (px - self.x) ** 2 + (py - self.y) ** 2 < self.radius * self.radius

    def as_tuple(self) -> Tuple[int, int, int]:
        return (self.x, self.y, self.radius)


@dataclass
class SearchState:
    """Pruning cache for one extraction: never grows between steps."""
    last_radius: int
    steps: int = 0


# =========================
# Helpers
# =========================
def edge_caps(width: int, height: int) -> np.ndarray:
    """(H, W) array of min(x, W - x, y, H - y)."""
    xs = np.arange(width, dtype=np.int64)
    ys = np.arange(height, dtype=np.int64)
    cap_x = np.minimum(xs, width - xs)
    cap_y = np.minimum(ys, height - ys)
    return np.minimum(cap_y[:, None], cap_x[None, :])


def fill_radius_from_d2(d2: np.ndarray) -> np.ndarray:
    """Vectorized ``isqrt(d2 - 1)``, 0 where d2 == 0."""
    n = np.maximum(np.asarray(d2, dtype=np.int64) - 1, 0)
    r = np.floor(np.sqrt(n.astype(np.float64))).astype(np.int64)
    # float sqrt can be off by one for large n
    r -= (r * r > n).astype(np.int64)
    r += ((r + 1) * (r + 1) <= n).astype(np.int64)
    return r


@lru_cache(maxsize=1024)
def ring_offsets(r: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Lattice offsets (dx, dy) with (r-1)^2 < dx^2 + dy^2 <= r^2.

    One quadrant is walked column by column with integer square roots, then
    mirrored. Rings 1..r together cover every point of the closed disk of
    radius r exactly once, unlike a plain Bresenham outline which leaves gaps.
    """
    pts = set()
    inner2 = (r - 1) * (r - 1)
    for dx in range(r + 1):
        outer = isqrt(r * r - dx * dx)
        inner = isqrt(inner2 - dx * dx) if dx * dx <= inner2 else -1
        for dy in range(inner + 1, outer + 1):
            pts.update({(dx, dy), (-dx, dy), (dx, -dy), (-dx, -dy)})
    ordered = sorted(pts)
    dxs = np.array([p[0] for p in ordered], dtype=np.int64)
    dys = np.array([p[1] for p in ordered], dtype=np.int64)
    return dxs, dys


# =========================
# Search strategies
# =========================
class RadiusStrategy:
    """
    Base strategy: scan every pixel in row-major order and compute its local
    radius by searching for the nearest unfilled pixel inside a window of
    half-size ``limit`` (the per-pixel edge cap and pruning bound).

    Pixels whose limit cannot beat the current best are skipped, and the pass
    stops as soon as a pixel reaches the global bound, since nothing later in
    scan order could win the tie.
    """
    name = "window"

    def local_radius(self, cells: np.ndarray, x: int, y: int, limit: int) -> int:
        if limit <= 0 or not cells[y, x]:
            return 0
        h, w = cells.shape
        y0, y1 = max(0, y - limit), min(h, y + limit + 1)
        x0, x1 = max(0, x - limit), min(w, x + limit + 1)
        empty_y, empty_x = np.nonzero(~cells[y0:y1, x0:x1])
        if empty_y.size == 0:
            return limit
        d2 = int(((empty_y + (y0 - y)) ** 2 + (empty_x + (x0 - x)) ** 2).min())
        return min(limit, isqrt(d2 - 1))

    def find_greatest(self, cells: np.ndarray, limit: np.ndarray) -> Circle:
        bound = int(limit.max()) if limit.size else 0
        best = Circle(0, 0, 0)
        if bound <= 0:
            return best
        for y in range(cells.shape[0]):
            row_limit = limit[y]
            for x in np.flatnonzero(cells[y] & (row_limit > best.radius)):
                lim = int(row_limit[x])
                if lim <= best.radius:
                    continue
                r = self.local_radius(cells, int(x), y, lim)
                if r > best.radius:
                    best = Circle(int(x), y, r)
                    if r >= bound:
                        return best
        return best


class RingStrategy(RadiusStrategy):
    """
    Grow a candidate radius from 1 and test only the newly covered ring of
    lattice points each time; the first ring touching an unfilled pixel ends
    the walk. Cost is proportional to the disk actually tested.
    """
    name = "ring"

    def local_radius(self, cells: np.ndarray, x: int, y: int, limit: int) -> int:
        if limit <= 0 or not cells[y, x]:
            return 0
        h, w = cells.shape
        for r in range(1, limit + 1):
            dxs, dys = ring_offsets(r)
            xs = dxs + x
            ys = dys + y
            inside = (xs >= 0) & (xs < w) & (ys >= 0) & (ys < h)
            if not cells[ys[inside], xs[inside]].all():
                return r - 1
        return limit


class TransformStrategy(RadiusStrategy):
    """Exact Euclidean distance transform for the whole mask at once (scipy)."""
    name = "transform"

    def squared_distances(self, cells: np.ndarray, pad: int) -> np.ndarray:
        iy, ix = ndi.distance_transform_edt(cells, return_distances=False, return_indices=True)
        ys, xs = np.indices(cells.shape)
        return (iy - ys).astype(np.int64) ** 2 + (ix - xs).astype(np.int64) ** 2

    def radius_map(self, cells: np.ndarray, limit: np.ndarray) -> np.ndarray:
        if not cells.any():
            return np.zeros(cells.shape, dtype=np.int64)
        if cells.all():
            return limit.astype(np.int64, copy=True)
        pad = int(limit.max()) + 1
        radii = fill_radius_from_d2(self.squared_distances(cells, pad))
        radii = np.minimum(radii, limit)
        radii[~cells] = 0
        return radii

    def local_radius(self, cells: np.ndarray, x: int, y: int, limit: int) -> int:
        return int(self.radius_map(cells, np.full(cells.shape, limit, dtype=np.int64))[y, x])

    def find_greatest(self, cells: np.ndarray, limit: np.ndarray) -> Circle:
        radii = self.radius_map(cells, limit)
        idx = int(np.argmax(radii))   # first maximum in row-major order
        y, x = divmod(idx, cells.shape[1])
        return Circle(x, y, int(radii[y, x]))


class OpenCVStrategy(TransformStrategy):
    """
    Same as :class:`TransformStrategy` using ``cv2.distanceTransform`` with the
    precise L2 mask. The mask is padded with filled pixels so the image border
    never acts as an unfilled neighbour.
    """
    name = "opencv"

    def squared_distances(self, cells: np.ndarray, pad: int) -> np.ndarray:
        padded = np.pad(cells, pad, mode="constant", constant_values=True).astype(np.uint8)
        dist = cv2.distanceTransform(padded, cv2.DIST_L2, cv2.DIST_MASK_PRECISE)
        dist = dist[pad:pad + cells.shape[0], pad:pad + cells.shape[1]].astype(np.float64)
        return np.rint(dist * dist).astype(np.int64)


STRATEGIES: Dict[str, Type[RadiusStrategy]] = {
    "transform": TransformStrategy,
    "opencv": OpenCVStrategy,
    "window": RadiusStrategy,
    "ring": RingStrategy,
}


def make_strategy(name: str) -> RadiusStrategy:
    try:
        return STRATEGIES[name]()
    except KeyError:
        raise ValueError(f"Unknown strategy {name!r}; expected one of {sorted(STRATEGIES)}") from None


# =========================
# Extractor
# =========================
class CircleExtractor:
    """
    Greedy largest-first circle packing.

    Args:
        min_radius: Smallest circle worth emitting; extraction stops once the
            best remaining circle is smaller. Must be >= 1.
        max_radius_hint: Initial pruning bound. Defaults to
            ``min(W, H) // 2``, which no circle can exceed. A smaller value
            clips the result.
        strategy: One of :data:`STRATEGIES`. All strategies give identical
            circles; they differ only in cost.
        verbose: Print one ``[EXTRACT]`` line per emitted circle.
    """

    def __init__(self,
                 min_radius: int = DEFAULT_MIN_RADIUS,
                 max_radius_hint: Optional[int] = None,
                 strategy: str = DEFAULT_STRATEGY,
                 verbose: bool = False):
        if int(min_radius) != min_radius or min_radius < 1:
            raise ValueError(f"min_radius must be a positive integer, got {min_radius!r}")
        if max_radius_hint is not None and (int(max_radius_hint) != max_radius_hint or max_radius_hint < 1):
            raise ValueError(f"max_radius_hint must be a positive integer, got {max_radius_hint!r}")
        self.min_radius = int(min_radius)
        self.max_radius_hint = None if max_radius_hint is None else int(max_radius_hint)
        self.strategy = make_strategy(strategy)
        self.verbose = verbose
        self.state: Optional[SearchState] = None

    def initial_bound(self, mask: RasterMask) -> int:
        if self.max_radius_hint is not None:
            return self.max_radius_hint
        return min(mask.width, mask.height) // 2

    def find_greatest(self, mask: RasterMask, bound: Optional[int] = None) -> Circle:
        """Largest circle in the current mask, no larger than ``bound``."""
        if bound is None:
            bound = self.initial_bound(mask)
        limit = np.minimum(edge_caps(mask.width, mask.height), bound)
        return self.strategy.find_greatest(mask.cells, limit)

    def local_radius(self, mask: RasterMask, x: int, y: int, bound: Optional[int] = None) -> int:
        """Largest radius a circle centred on (x, y) could have right now."""
        if not mask.in_bounds(x, y):
            return 0
        if bound is None:
            bound = self.initial_bound(mask)
        cap = min(x, mask.width - x, y, mask.height - y, bound)
        return self.strategy.local_radius(mask.cells, x, y, cap)

    def extract(self, mask: RasterMask) -> Iterator[Circle]:
        """
        Lazily yield circles largest-first, erasing each from ``mask`` before
        it is yielded.

        Arguments are checked here rather than on first iteration. The
        returned iterator cannot be restarted; stop draining it to cancel.
        """
        if not isinstance(mask, RasterMask):
            raise TypeError(f"expected RasterMask, got {type(mask).__name__}")
        state = SearchState(last_radius=self.initial_bound(mask))
        self.state = state
        return self._run(mask, state)

    def _run(self, mask: RasterMask, state: SearchState) -> Iterator[Circle]:
        while state.last_radius >= self.min_radius:
            circle = self.find_greatest(mask, state.last_radius)
            if circle.radius < self.min_radius:
                break
            mask.clear_disk(circle.x, circle.y, circle.radius)
            state.last_radius = circle.radius
            state.steps += 1
            if self.verbose:
                print(f"[EXTRACT] step={state.steps} center=({circle.x},{circle.y}) radius={circle.radius}")
            yield circle

    def extract_all(self, mask: RasterMask) -> List[Circle]:
        return list(self.extract(mask))


def extract_circles(mask: RasterMask,
                    min_radius: int = DEFAULT_MIN_RADIUS,
                    max_radius_hint: Optional[int] = None,
                    strategy: str = DEFAULT_STRATEGY) -> Iterator[Circle]:
    """Shortcut for ``CircleExtractor(...).extract(mask)``."""
    return CircleExtractor(min_radius, max_radius_hint, strategy).extract(mask)
