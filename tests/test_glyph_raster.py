import cv2
import numpy as np
import pytest

from glyph_raster import (
    DEFAULT_GLYPHS, HEIGHT, WIDTH, canvas_size, font_size_for, glyph_file_stem,
    glyph_mask, kmeans_threshold, load_font, load_image_intensity,
    rasterize_glyph, threshold_intensity,
)


@pytest.fixture(scope="module")
def font():
    return load_font(None, 120)


def test_canvas_follows_monospace_cell():
    assert (WIDTH, HEIGHT) == (225, 256)
    assert canvas_size() == (225, 256)
    assert font_size_for(256, 0.68) == pytest.approx(376.47, abs=0.01)


@pytest.mark.parametrize("glyph,stem", [
    (" ", "_space"), (".", "_period"), ('"', "_doublequote"), ("'", "_singlequote"),
    ("[", "_opensquarebrackets"), ("a", "a"), ("Z", "Z"), ("7", "7"), ("~", "_u007e"),
])
def test_glyph_file_stem(glyph, stem):
    assert glyph_file_stem(glyph) == stem


def test_glyph_file_stem_rejects_strings():
    with pytest.raises(ValueError):
        glyph_file_stem("ab")


def test_default_glyph_set():
    assert len(DEFAULT_GLYPHS) == len(set(DEFAULT_GLYPHS)) == 76
    assert len({glyph_file_stem(g) for g in DEFAULT_GLYPHS}) == 76


def test_missing_font_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_font(str(tmp_path / "nope.ttf"), 40)


def test_rasterize_draws_ink_above_baseline(font):
    intensity = rasterize_glyph("H", font, 100, 120)
    assert intensity.shape == (120, 100)
    assert intensity.dtype == np.uint8
    assert intensity.max() == 255
    rows = np.nonzero(intensity.any(axis=1))[0]
    assert rows.max() >= 100              # glyph sits on the bottom baseline


def test_space_has_no_ink(font):
    intensity, mask = glyph_mask(" ", font, 100, 120)
    assert intensity.max() == 0
    assert mask.is_empty()


def test_fixed_threshold():
    intensity = np.array([[0, 10], [100, 255]], dtype=np.uint8)
    assert threshold_intensity(intensity).count_filled() == 3
    assert threshold_intensity(intensity, "fixed", 128).count_filled() == 1


def test_kmeans_threshold_splits_ink_from_noise():
    rng = np.random.default_rng(0)
    intensity = rng.integers(0, 30, size=(40, 40)).astype(np.uint8)
    intensity[10:30, 10:30] = rng.integers(200, 256, size=(20, 20))
    t = kmeans_threshold(intensity)
    assert 30 <= t <= 200
    mask = threshold_intensity(intensity, "kmeans")
    assert mask.count_filled() == 400
    assert mask.filled(15, 15) and not mask.filled(5, 5)


def test_kmeans_threshold_on_flat_image_is_empty():
    flat = np.full((8, 8), 42, dtype=np.uint8)
    assert threshold_intensity(flat, "kmeans").is_empty()


def test_unknown_threshold_mode():
    with pytest.raises(ValueError):
        threshold_intensity(np.zeros((2, 2), dtype=np.uint8), "otsu")


def test_load_image_intensity(tmp_path):
    img = np.zeros((20, 30), dtype=np.uint8)
    img[5:15, 5:25] = 255
    path = str(tmp_path / "glyph.png")
    assert cv2.imwrite(path, img)
    loaded = load_image_intensity(path)
    assert loaded.shape == (20, 30)
    assert np.array_equal(loaded, img)


def test_load_image_intensity_missing(tmp_path):
    with pytest.raises(RuntimeError):
        load_image_intensity(str(tmp_path / "missing.png"))
