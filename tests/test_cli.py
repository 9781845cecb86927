import json
import os

import cv2
import numpy as np
import pytest
import yaml

from circle_export import read_atlas
from fractabubble_cli import (
    DEFAULTS, apply_cli_overrides, build_parser, bubble_glyph, load_config,
    main, normalize_config, run, tuplify,
)


def last_json(out):
    return json.loads(out.strip().splitlines()[-1])


def small_cfg(tmp_path, **extra):
    raw = {"height": 64, "min_radius": 2, "outdir": str(tmp_path / "glyphs"), **extra}
    return normalize_config(raw)


# =========================
# Configuration
# =========================
def test_defaults_normalize():
    cfg = normalize_config(None)
    assert cfg["min_radius"] == 5
    assert cfg["strategy"] == "transform"
    assert cfg["font_size"] == pytest.approx(256 / 0.68)
    assert cfg["threshold"] == {"mode": "fixed", "value": 1}
    assert cfg["jobs"] == 1


def test_threshold_merges_over_defaults():
    cfg = normalize_config({"threshold": {"mode": "KMeans"}})
    assert cfg["threshold"] == {"mode": "kmeans", "value": 1}


@pytest.mark.parametrize("raw", [
    {"colour": "red"},
    {"strategy": "guess"},
    {"min_radius": 0},
    {"max_radius_hint": 0},
    {"threshold": {"mode": "otsu"}},
    {"threshold": {"level": 3}},
    {"height": 0},
    {"glyphs": ""},
])
def test_bad_config_values(raw):
    with pytest.raises(ValueError):
        normalize_config(raw)


def test_load_config_reads_yaml(tmp_path):
    path = tmp_path / "cfg.yaml"
    path.write_text(yaml.safe_dump({"min_radius": 3, "threshold": {"value": 64}}))
    assert load_config(str(path)) == {"min_radius": 3, "threshold": {"value": 64}}
    assert load_config(None) == {}
    (tmp_path / "empty.yaml").write_text("")
    assert load_config(str(tmp_path / "empty.yaml")) == {}


def test_cli_flags_override_config():
    args = build_parser().parse_args(["--min-radius", "7", "--glyphs", "xy", "--png", "--strategy", "ring"])
    cfg = apply_cli_overrides({"min_radius": 3, "glyphs": "abc", "outdir": "keep"}, args)
    assert cfg["min_radius"] == 7
    assert cfg["glyphs"] == "xy"
    assert cfg["strategy"] == "ring"
    assert cfg["export_png"] is True
    assert cfg["outdir"] == "keep"
    assert "export_csv" not in cfg


def test_tuplify():
    assert tuplify({"a": (1, (2, 3)), "b": [(4,)]}) == {"a": [1, [2, 3]], "b": [[4]]}


# =========================
# Pipeline
# =========================
def test_bubble_glyph_writes_svg(tmp_path):
    cfg = small_cfg(tmp_path, export_csv=True, export_png=True)
    result = bubble_glyph("o", cfg)
    assert "error" not in result, result.get("error")
    assert result["code"] == ord("o")
    assert result["image_size"] == (56, 64)
    assert os.path.isfile(result["svg"])
    assert os.path.isfile(result["csv"])
    assert os.path.isfile(result["preview"])
    assert os.path.isfile(os.path.join(cfg["outdir"], "o_before.png"))
    radii = [r for _, _, r in result["circles"]]
    assert radii and radii == sorted(radii, reverse=True)
    assert min(radii) >= 2
    assert result["filled_after"] < result["filled_before"]


def test_bubble_glyph_reports_errors(tmp_path):
    cfg = small_cfg(tmp_path, font_path=str(tmp_path / "missing.ttf"))
    result = bubble_glyph("a", cfg)
    assert result["glyph"] == "a"
    assert "Font file not found" in result["error"]


def test_run_writes_atlas(tmp_path):
    cfg = small_cfg(tmp_path, glyphs="l. l")
    summary = run(cfg)
    assert summary["errors"] == 0
    names = [r["name"] for r in summary["results"]]
    assert names == ["l", "_period", "_space"]
    assert read_atlas(summary["atlas"]) == [(108, "l.svg"), (46, "_period.svg"), (32, "_space.svg")]
    space = summary["results"][2]
    assert space["circles"] == []


def test_run_image(tmp_path):
    img = np.zeros((100, 100), dtype=np.uint8)
    cv2.circle(img, (50, 50), 20, 255, thickness=-1)
    path = str(tmp_path / "disk.png")
    assert cv2.imwrite(path, img)
    summary = run(small_cfg(tmp_path, image_path=path))
    result = summary["results"][0]
    assert summary["errors"] == 0
    assert result["name"] == "disk"
    x, y, r = result["circles"][0]
    assert abs(x - 50) <= 2 and abs(y - 50) <= 2
    assert 18 <= r <= 21


# =========================
# main()
# =========================
def test_main_end_to_end(tmp_path, capsys):
    outdir = tmp_path / "out"
    cfg_path = tmp_path / "cfg.yaml"
    cfg_path.write_text(yaml.safe_dump({"height": 64, "min_radius": 2, "threshold": {"value": 128}}))
    code = main(["--config", str(cfg_path), "--glyphs", "i", "--outdir", str(outdir), "--csv"])
    out = capsys.readouterr().out
    assert code == 0
    assert "[STEP] RASTERIZE_GLYPH" in out
    summary = last_json(out)
    assert summary["errors"] == 0
    assert summary["results"][0]["glyph"] == "i"
    assert (outdir / "i.svg").is_file()
    assert (outdir / "i_circles.csv").is_file()
    assert (outdir / "atlas").is_file()


def test_main_bad_config(tmp_path, capsys):
    cfg_path = tmp_path / "cfg.yaml"
    cfg_path.write_text("min_radius: 0\n")
    assert main(["--config", str(cfg_path)]) == 1
    assert "Failed to read config" in last_json(capsys.readouterr().out)["error"]


def test_main_missing_config(tmp_path, capsys):
    assert main(["--config", str(tmp_path / "nope.yaml")]) == 1
    assert "error" in last_json(capsys.readouterr().out)


def test_defaults_cover_every_cli_key():
    args = build_parser().parse_args([])
    assert set(apply_cli_overrides({}, args)) <= set(DEFAULTS)
