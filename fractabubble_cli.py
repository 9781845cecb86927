#!/usr/bin/env python3

"""
fractabubble_cli.py

CLI tools for turning font glyphs into sets of filled circles.

Each glyph is rasterized onto a monospace-proportioned canvas, thresholded to
a binary mask, and then repeatedly carved: the largest circle that still fits
inside the remaining ink is recorded and erased until no circle reaches the
minimum radius. The circles are written as an SVG per glyph, and an atlas
index maps character codes to SVG files.

Typical usage:
    $ python3 fractabubble_cli.py --config config.yaml
    $ python3 fractabubble_cli.py --font LiberationMono-Regular.ttf --glyphs abc

The public entry point is :func:`main`.

Outputs per run (in ``outdir``):
  - <name>.svg                (one per glyph: <circle cx cy r fill>)
  - <name>_circles.csv        (optional: index, cx, cy, radius)
  - <name>_before.png         (optional: the thresholded glyph)
  - <name>_after.png          (optional: residual ink + circles)
  - atlas                     (char code / svg file name pairs)
and prints a JSON summary to stdout (optionally pretty).
"""

from __future__ import annotations
import argparse, json, os
from concurrent.futures import ProcessPoolExecutor
from functools import lru_cache
from itertools import repeat
from typing import Any, Dict, List, Optional
import numpy as np
import yaml

from raster_mask import DEFAULT_THRESHOLD
from circle_extractor import CircleExtractor, STRATEGIES, DEFAULT_STRATEGY
from glyph_raster import (
    DEFAULT_GLYPHS, FONT_HEIGHT, FONT_WIDTH, HEIGHT, THRESHOLD_MODES,
    canvas_size, font_size_for, glyph_file_stem, load_font, load_image_intensity,
    rasterize_glyph, threshold_intensity,
)
from circle_export import (
    DEFAULT_FILL, summarize_radii, write_atlas, write_circles_csv,
    write_circles_svg, write_preview_png,
)

# =========================
# Configurable defaults
# =========================
MIN_RADIUS = 5

DEFAULTS: Dict[str, Any] = {
    "font_path": None,              # None -> Pillow's bundled font
    "font_size": None,              # None -> height / font_height
    "height": HEIGHT,
    "font_width": FONT_WIDTH,
    "font_height": FONT_HEIGHT,
    "glyphs": DEFAULT_GLYPHS,
    "image_path": None,             # process one pre-rendered image instead of glyphs
    "min_radius": MIN_RADIUS,
    "max_radius_hint": None,
    "strategy": DEFAULT_STRATEGY,
    "threshold": {"mode": "fixed", "value": DEFAULT_THRESHOLD},
    "outdir": "glyphs",
    "fill": DEFAULT_FILL,
    "export_csv": False,
    "export_png": False,
    "atlas_name": "atlas",
    "jobs": 1,
    "verbose": False,
}


# =========================
# Utility helpers
# =========================
def announce(step: str, inputs: Dict[str, Any]):
    """Log a structured event to stdout before a significant call."""
    print(f"[STEP] {step} | inputs: " + ", ".join(f"{k}={v}" for k, v in inputs.items()))

def ensure_bool(cond: bool, msg: str):
    if not cond:
        raise RuntimeError(msg)

def tuplify(o):
    """Convert tuples to lists (recursively) for JSON printing."""
    if isinstance(o, tuple):
        return [tuplify(v) for v in o]
    if isinstance(o, list):
        return [tuplify(v) for v in o]
    if isinstance(o, dict):
        return {k: tuplify(v) for k, v in o.items()}
    return o


# =========================
# Configuration
# =========================
def normalize_config(raw: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Merge ``raw`` over :data:`DEFAULTS` and coerce/validate every value."""
    raw = dict(raw or {})
    unknown = set(raw) - set(DEFAULTS)
    if unknown:
        raise ValueError(f"Unknown config keys: {sorted(unknown)}")

    cfg = {**DEFAULTS, **{k: v for k, v in raw.items() if k != "threshold"}}
    thr = {**DEFAULTS["threshold"], **(raw.get("threshold") or {})}
    if set(thr) - {"mode", "value"}:
        raise ValueError(f"Unknown threshold keys: {sorted(set(thr) - {'mode', 'value'})}")
    thr["mode"] = str(thr["mode"]).lower()
    thr["value"] = int(thr["value"])
    if thr["mode"] not in THRESHOLD_MODES:
        raise ValueError(f"threshold.mode must be one of {sorted(THRESHOLD_MODES)}")
    cfg["threshold"] = thr

    cfg["height"] = int(cfg["height"])
    cfg["font_width"] = float(cfg["font_width"])
    cfg["font_height"] = float(cfg["font_height"])
    if cfg["height"] <= 0 or cfg["font_width"] <= 0 or cfg["font_height"] <= 0:
        raise ValueError("height, font_width and font_height must be > 0")
    cfg["font_size"] = (font_size_for(cfg["height"], cfg["font_height"])
                        if cfg["font_size"] is None else float(cfg["font_size"]))

    cfg["glyphs"] = str(cfg["glyphs"])
    if not cfg["image_path"] and not cfg["glyphs"]:
        raise ValueError("glyphs must not be empty")
    cfg["min_radius"] = int(cfg["min_radius"])
    if cfg["min_radius"] < 1:
        raise ValueError("min_radius must be >= 1")
    if cfg["max_radius_hint"] is not None:
        cfg["max_radius_hint"] = int(cfg["max_radius_hint"])
        if cfg["max_radius_hint"] < 1:
            raise ValueError("max_radius_hint must be >= 1")
    cfg["strategy"] = str(cfg["strategy"])
    if cfg["strategy"] not in STRATEGIES:
        raise ValueError(f"strategy must be one of {sorted(STRATEGIES)}")
    cfg["jobs"] = max(1, int(cfg["jobs"]))
    for key in ("export_csv", "export_png", "verbose"):
        cfg[key] = bool(cfg[key])
    cfg["outdir"] = str(cfg["outdir"])
    cfg["atlas_name"] = str(cfg["atlas_name"])
    cfg["fill"] = str(cfg["fill"])
    return cfg


def load_config(path: Optional[str]) -> Dict[str, Any]:
    """Read a YAML config file (``None`` -> empty)."""
    if path is None:
        return {}
    with open(path, "r") as f:
        cfg = yaml.safe_load(f)
    if cfg is None:
        return {}
    if not isinstance(cfg, dict):
        raise ValueError(f"Config root must be a mapping: {path}")
    return cfg


def apply_cli_overrides(cfg: Dict[str, Any], args: argparse.Namespace) -> Dict[str, Any]:
    """Command-line flags win over config file values."""
    out = dict(cfg)
    overrides = {
        "font_path": args.font,
        "glyphs": args.glyphs,
        "image_path": args.image,
        "min_radius": args.min_radius,
        "max_radius_hint": args.max_radius_hint,
        "strategy": args.strategy,
        "outdir": args.outdir,
        "jobs": args.jobs,
    }
    out.update({k: v for k, v in overrides.items() if v is not None})
    for flag, key in (("csv", "export_csv"), ("png", "export_png"), ("verbose", "verbose")):
        if getattr(args, flag):
            out[key] = True
    return out


# =========================
# Pipeline
# =========================
@lru_cache(maxsize=8)
def _font(font_path: Optional[str], size: float):
    return load_font(font_path, size)


def bubble_intensity(name: str, intensity: np.ndarray, cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Threshold, extract, and export one intensity image under file stem ``name``."""
    thr = cfg["threshold"]
    mask = threshold_intensity(intensity, thr["mode"], thr["value"])
    h, w = mask.height, mask.width
    filled_before = mask.count_filled()
    outdir = cfg["outdir"]
    os.makedirs(outdir, exist_ok=True)

    if cfg["export_png"]:
        write_preview_png(os.path.join(outdir, f"{name}_before.png"), mask.cells)

    announce("EXTRACT_CIRCLES", {"name": name, "size": (w, h), "filled": filled_before,
                                 "min_radius": cfg["min_radius"], "strategy": cfg["strategy"]})
    extractor = CircleExtractor(
        min_radius=cfg["min_radius"],
        max_radius_hint=cfg["max_radius_hint"],
        strategy=cfg["strategy"],
        verbose=cfg["verbose"],
    )
    circles = extractor.extract_all(mask)
    print(f"[OK] {name}: {len(circles)} circles.")
    if not circles:
        print(f"[WARN] {name}: no circle reached min_radius={cfg['min_radius']}.")

    svg_path = os.path.join(outdir, f"{name}.svg")
    write_circles_svg(svg_path, circles, w, h, fill=cfg["fill"])
    result: Dict[str, Any] = {
        "name": name,
        "svg": svg_path,
        "image_size": (w, h),
        "circles": [c.as_tuple() for c in circles],
        "circle_size_counts": summarize_radii(circles),
        "filled_before": filled_before,
        "filled_after": mask.count_filled(),
    }

    if cfg["export_csv"]:
        csv_path = os.path.join(outdir, f"{name}_circles.csv")
        write_circles_csv(csv_path, circles)
        result["csv"] = csv_path
    if cfg["export_png"]:
        after_path = os.path.join(outdir, f"{name}_after.png")
        write_preview_png(after_path, mask.cells, circles)
        result["preview"] = after_path
    return result


def bubble_glyph(glyph: str, cfg: Dict[str, Any]) -> Dict[str, Any]:
    """
    Rasterize one glyph and extract its circles.

    Returns the result dict, or ``{"glyph": ..., "error": ...}`` if anything
    failed; one bad glyph never aborts a run.
    """
    try:
        ensure_bool(len(glyph) == 1, f"Glyph must be a single character, got {glyph!r}")
        width, height = canvas_size(cfg["height"], cfg["font_width"], cfg["font_height"])
        announce("RASTERIZE_GLYPH", {"glyph": repr(glyph), "font": cfg["font_path"], "size": (width, height)})
        font = _font(cfg["font_path"], cfg["font_size"])
        intensity = rasterize_glyph(glyph, font, width, height)
        result = bubble_intensity(glyph_file_stem(glyph), intensity, cfg)
        return {"glyph": glyph, "code": ord(glyph), **result}
    except Exception as e:
        return {"glyph": glyph, "error": str(e)}


def bubble_image(img_path: str, cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Extract circles from a pre-rendered grayscale image (bright = ink)."""
    try:
        announce("LOAD_IMAGE", {"img_path": img_path})
        intensity = load_image_intensity(img_path)
        name = os.path.splitext(os.path.basename(img_path))[0]
        return {"image": img_path, **bubble_intensity(name, intensity, cfg)}
    except Exception as e:
        return {"image": img_path, "error": str(e)}


def run(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Process every configured glyph (or the configured image) and write the atlas."""
    if cfg["image_path"]:
        result = bubble_image(cfg["image_path"], cfg)
        return {"outdir": cfg["outdir"], "results": [result],
                "errors": int("error" in result)}

    glyphs = list(dict.fromkeys(cfg["glyphs"]))   # unique, in order
    ensure_bool(len(glyphs) > 0, "No glyphs to process.")
    announce("RUN", {"glyphs": len(glyphs), "jobs": cfg["jobs"], "outdir": cfg["outdir"]})

    if cfg["jobs"] > 1:
        with ProcessPoolExecutor(max_workers=cfg["jobs"]) as pool:
            results: List[Dict[str, Any]] = list(pool.map(bubble_glyph, glyphs, repeat(cfg)))
    else:
        results = [bubble_glyph(g, cfg) for g in glyphs]

    errors = [r for r in results if "error" in r]
    for r in errors:
        print(f"[WARN] glyph {r['glyph']!r} failed: {r['error']}")

    atlas_path = os.path.join(cfg["outdir"], cfg["atlas_name"])
    write_atlas(atlas_path, [(r["code"], os.path.basename(r["svg"])) for r in results if "error" not in r])
    print(f"[OK] Atlas saved: {atlas_path}")

    return {"outdir": cfg["outdir"], "atlas": atlas_path, "results": results, "errors": len(errors)}


# =========================
# CLI
# =========================
def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Convert font glyphs into greedy maximal-circle packings (SVG).")
    p.add_argument("--config", help="Path to YAML config file (e.g., config.yaml).")
    p.add_argument("--font", help="TrueType/OpenType font file (default: Pillow's bundled font).")
    p.add_argument("--glyphs", help="Characters to convert.")
    p.add_argument("--image", help="Process one grayscale image instead of font glyphs.")
    p.add_argument("--min-radius", type=int, dest="min_radius", help="Smallest circle radius to emit.")
    p.add_argument("--max-radius-hint", type=int, dest="max_radius_hint", help="Initial pruning bound.")
    p.add_argument("--strategy", choices=sorted(STRATEGIES), help="Local-radius search strategy.")
    p.add_argument("--outdir", help="Output directory.")
    p.add_argument("--jobs", type=int, help="Worker processes (one glyph per task).")
    p.add_argument("--csv", action="store_true", help="Also write a CSV per glyph.")
    p.add_argument("--png", action="store_true", help="Also write before/after preview PNGs.")
    p.add_argument("--verbose", action="store_true", help="Print every extracted circle.")
    p.add_argument("--pretty", action="store_true", help="Pretty-print JSON output.")
    return p


def main(argv: Optional[List[str]] = None) -> int:
    """
    Entry point for the command-line interface.

    Reads the optional YAML config, applies command-line overrides, runs the
    pipeline, and prints a JSON summary to stdout. Returns a process exit
    code: 0 on success, 1 if the config was unusable or any glyph failed.
    """
    args = build_parser().parse_args(argv)

    try:
        cfg = normalize_config(apply_cli_overrides(load_config(args.config), args))
    except (OSError, TypeError, ValueError, yaml.YAMLError) as e:
        print(json.dumps({"error": f"Failed to read config: {e}"}))
        return 1

    summary = run(cfg)
    print(json.dumps(tuplify(summary), indent=2 if args.pretty else None))
    return 1 if summary["errors"] else 0


if __name__ == "__main__":
    raise SystemExit(main())
