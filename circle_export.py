"""
circle_export.py

Writers for extracted circles: SVG circle list, CSV layout, the glyph atlas
index, and PNG previews for eyeballing a glyph before and after extraction.
"""

from __future__ import annotations
import csv
import os
from typing import Dict, Iterable, List, Sequence, Tuple
import xml.etree.ElementTree as ET
import numpy as np
import cv2

from circle_extractor import Circle


DEFAULT_FILL = "#800080"
CSV_FIELDS = ["index", "cx", "cy", "radius"]

# Preview drawing
PREVIEW_GLYPH_GRAY = 80
PREVIEW_FILL_BGR = (128, 0, 128)
PREVIEW_OUTLINE_DARKEN = 0.7
DRAW_FILLED_THICKNESS = -1
DRAW_OUTLINE_THICKNESS = 1
DRAW_LINE_TYPE = cv2.LINE_AA


def _ensure_parent(path: str) -> None:
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)


def summarize_radii(circles: Iterable[Circle]) -> List[Tuple[int, int]]:
    """[(radius, count)] sorted by radius, largest first."""
    counts: Dict[int, int] = {}
    for c in circles:
        counts[c.radius] = counts.get(c.radius, 0) + 1
    return sorted(counts.items(), key=lambda t: -t[0])


def write_circles_svg(svg_path: str,
                      circles: Sequence[Circle],
                      width: int,
                      height: int,
                      fill: str = DEFAULT_FILL) -> None:
    """
    Write circles as an SVG document sized to the glyph canvas.

    Circles keep emission order, so larger circles are drawn first.
    """
    svg = ET.Element(
        "svg",
        xmlns="http://www.w3.org/2000/svg",
        width=str(int(width)),
        height=str(int(height)),
    )
    for c in circles:
        ET.SubElement(svg, "circle", cx=str(c.x), cy=str(c.y), r=str(c.radius), fill=fill)

    ET.indent(svg, space="  ")
    _ensure_parent(svg_path)
    ET.ElementTree(svg).write(svg_path, encoding="utf-8", xml_declaration=True)


def write_circles_csv(csv_path: str, circles: Sequence[Circle]) -> None:
    _ensure_parent(csv_path)
    with open(csv_path, "w", newline="") as f:
        w = csv.DictWriter(f, fieldnames=CSV_FIELDS)
        w.writeheader()
        for idx, c in enumerate(circles):
            w.writerow({"index": idx, "cx": c.x, "cy": c.y, "radius": c.radius})


def write_atlas(atlas_path: str, entries: Iterable[Tuple[int, str]]) -> None:
    """
    Write the atlas index: for each glyph a blank line, its character code,
    and the name of its SVG file.
    """
    _ensure_parent(atlas_path)
    with open(atlas_path, "w", encoding="utf-8") as f:
        for code, name in entries:
            f.write(f"\n{int(code)}\n{name}\n")


def read_atlas(atlas_path: str) -> List[Tuple[int, str]]:
    with open(atlas_path, "r", encoding="utf-8") as f:
        lines = [ln for ln in f.read().split("\n") if ln != ""]
    if len(lines) % 2:
        raise ValueError(f"Malformed atlas (odd number of lines): {atlas_path}")
    return [(int(lines[i]), lines[i + 1]) for i in range(0, len(lines), 2)]


def render_preview(cells: np.ndarray, circles: Sequence[Circle]) -> np.ndarray:
    """BGR image: filled pixels in gray with circles drawn on top."""
    h, w = cells.shape
    canvas = np.zeros((h, w, 3), dtype=np.uint8)
    canvas[np.asarray(cells, dtype=bool)] = PREVIEW_GLYPH_GRAY
    outline = tuple(int(v * PREVIEW_OUTLINE_DARKEN) for v in PREVIEW_FILL_BGR)
    for c in circles:
        # cv2 draws closed disks; radius - 1 keeps the drawing inside the open disk
        r = max(0, c.radius - 1)
        cv2.circle(canvas, (c.x, c.y), r, PREVIEW_FILL_BGR, thickness=DRAW_FILLED_THICKNESS, lineType=DRAW_LINE_TYPE)
        cv2.circle(canvas, (c.x, c.y), r, outline, thickness=DRAW_OUTLINE_THICKNESS, lineType=DRAW_LINE_TYPE)
    return canvas


def write_preview_png(png_path: str, cells: np.ndarray, circles: Sequence[Circle] = ()) -> None:
    _ensure_parent(png_path)
    ok = cv2.imwrite(png_path, render_preview(cells, circles))
    if not ok:
        raise RuntimeError(f"Failed to save preview image: {png_path}")
