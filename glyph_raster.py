"""
glyph_raster.py

Turns a font glyph (or a pre-rendered grayscale image) into a
:class:`~raster_mask.RasterMask`.

Glyphs are drawn with Pillow's FreeType binding onto an 8-bit canvas whose
proportions follow a monospace cell, left-aligned on the bottom baseline.
Thresholding is either a fixed intensity cut or a two-cluster KMeans split of
the intensities (ink vs. background).
"""

from __future__ import annotations
import os
from typing import Dict, Optional, Tuple, Union
import numpy as np
import cv2
from PIL import Image, ImageDraw, ImageFont
from sklearn.cluster import KMeans

from raster_mask import RasterMask, DEFAULT_THRESHOLD


# =========================
# Canvas geometry
# =========================
FONT_WIDTH = 0.6            # advance width / em, Liberation Mono
FONT_HEIGHT = 0.68          # cap height / em
HEIGHT = 256
WIDTH = int(HEIGHT * FONT_WIDTH / FONT_HEIGHT)

DEFAULT_FONT_PATH = "LiberationMono-Regular.ttf"

THRESHOLD_MODES = {"fixed", "kmeans"}
KMEANS_N_INIT = 10
KMEANS_RANDOM_STATE = 42

FontType = Union[ImageFont.FreeTypeFont, ImageFont.ImageFont]


# =========================
# Glyph naming
# =========================
SPECIAL_GLYPH_NAMES: Dict[str, str] = {
    " ": "_space",
    ".": "_period",
    ":": "_colon",
    ",": "_comma",
    ";": "_semicolon",
    "(": "_openparenthesis",
    ")": "_closeparenthesis",
    "[": "_opensquarebrackets",
    "]": "_closesquarebrackets",
    "*": "_star",
    "!": "_exclamation",
    "?": "_question",
    "'": "_singlequote",
    '"': "_doublequote",
}

DEFAULT_GLYPHS = (
    "".join(SPECIAL_GLYPH_NAMES)
    + "0123456789"
    + "abcdefghijklmnopqrstuvwxyz"
    + "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
)


def glyph_file_stem(glyph: str) -> str:
    """File stem for a glyph: the character itself, or a name for punctuation."""
    if len(glyph) != 1:
        raise ValueError(f"glyph must be a single character, got {glyph!r}")
    if glyph in SPECIAL_GLYPH_NAMES:
        return SPECIAL_GLYPH_NAMES[glyph]
    if glyph.isalnum() and glyph.isascii():
        return glyph
    return f"_u{ord(glyph):04x}"


# =========================
# Font rendering
# =========================
def font_size_for(height: int = HEIGHT, font_height: float = FONT_HEIGHT) -> float:
    return height / font_height


def canvas_size(height: int = HEIGHT,
                font_width: float = FONT_WIDTH,
                font_height: float = FONT_HEIGHT) -> Tuple[int, int]:
    """(width, height) of the glyph canvas."""
    return int(height * font_width / font_height), int(height)


def load_font(font_path: Optional[str], size: float) -> FontType:
    """
    Load a TrueType/OpenType font at ``size`` pixels per em.

    ``None`` selects Pillow's bundled font, so the pipeline runs without any
    font installed.
    """
    if font_path is None:
        return ImageFont.load_default(size=int(round(size)))
    if not os.path.isfile(font_path):
        raise FileNotFoundError(f"Font file not found: {font_path}")
    return ImageFont.truetype(font_path, size=int(round(size)))


def rasterize_glyph(glyph: str, font: FontType, width: int = WIDTH, height: int = HEIGHT) -> np.ndarray:
    """Render ``glyph`` onto an 8-bit canvas; returns an (H, W) uint8 array."""
    img = Image.new("L", (width, height), 0)
    draw = ImageDraw.Draw(img)
    draw.text((0, height), glyph, fill=255, font=font, anchor="ls")
    return np.asarray(img, dtype=np.uint8)


def load_image_intensity(img_path: str) -> np.ndarray:
    """Read an image as 8-bit grayscale; bright pixels are ink."""
    img = cv2.imread(img_path, cv2.IMREAD_GRAYSCALE)
    if img is None:
        raise RuntimeError(f"Image loading failed for path: {img_path}")
    return img


# =========================
# Thresholding
# =========================
def kmeans_threshold(intensity: np.ndarray) -> int:
    """
    Split intensities into two clusters and return the lowest intensity of
    the brighter one. Flat images have no ink and return 256.
    """
    values = np.asarray(intensity, dtype=np.float32).reshape(-1, 1)
    if values.size == 0 or values.min() == values.max():
        return 256
    kmeans = KMeans(n_clusters=2, n_init=KMEANS_N_INIT, random_state=KMEANS_RANDOM_STATE)
    labels = kmeans.fit_predict(values)
    ink = int(np.argmax(kmeans.cluster_centers_.ravel()))
    return int(values[labels == ink].min())


def threshold_intensity(intensity: np.ndarray,
                        mode: str = "fixed",
                        value: int = DEFAULT_THRESHOLD) -> RasterMask:
    """Convert intensities to a mask using ``mode`` ("fixed" or "kmeans")."""
    if mode not in THRESHOLD_MODES:
        raise ValueError(f"threshold.mode must be one of {sorted(THRESHOLD_MODES)}")
    if mode == "kmeans":
        value = kmeans_threshold(intensity)
    return RasterMask.from_intensity(intensity, threshold=value)


def glyph_mask(glyph: str,
               font: FontType,
               width: int = WIDTH,
               height: int = HEIGHT,
               threshold_mode: str = "fixed",
               threshold_value: int = DEFAULT_THRESHOLD) -> Tuple[np.ndarray, RasterMask]:
    """Rasterize and threshold one glyph; returns (intensity, mask)."""
    intensity = rasterize_glyph(glyph, font, width, height)
    return intensity, threshold_intensity(intensity, threshold_mode, threshold_value)
