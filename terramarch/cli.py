"""CLI for rendering the marching-cubes terrain headless or interactively."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import PRESETS, TerrainParams, add_preset_arg, preset_params, resolve_preset
from .density import SHAPE_MODES
from .export import save_obj, save_volume_slice
from .interactive import InteractiveConfig, add_interactive_args, run_interactive
from .logging_config import setup_logging
from .scene import RenderContext, TerrainScene

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Terramarch marching-cubes terrain")
    parser.add_argument("--size", type=int, default=None, help="Grid edge length N")
    parser.add_argument("--mode", choices=list(SHAPE_MODES), default=None)
    add_preset_arg(parser, PRESETS)
    parser.add_argument("--params", type=Path, default=None, help="JSON file with TerrainParams")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--octaves", type=int, default=None)
    parser.add_argument("--frequency", type=float, default=None)
    parser.add_argument("--iso-level", dest="iso_level", type=float, default=None)
    parser.add_argument("--wireframe", action="store_true", help="Draw mesh edges only")
    parser.add_argument("--static", action="store_true", help="Do not animate the field")
    parser.add_argument("--frames", type=int, default=3, help="Headless frame count")
    parser.add_argument("--dt", type=float, default=1.0 / 30.0, help="Seconds between frames")
    parser.add_argument("--no-gpu", action="store_true", help="Force the CPU backend")
    parser.add_argument("--output", type=Path, default=None, help="Directory for OBJ/PPM output")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--log-file", default=None)
    add_interactive_args(parser)
    return parser


def _load_params(args) -> TerrainParams:
    if args.params is not None:
        base = TerrainParams.from_json(args.params)
    else:
        base = preset_params(resolve_preset(args.preset, PRESETS, fallback="default"))
    return TerrainParams.from_args(args, base=base)


def run_headless(scene: TerrainScene, frames: int, dt: float,
                 output: Optional[Path] = None) -> List[int]:
    """Render ``frames`` frames and return their triangle counts."""
    counts = []
    for i in range(frames):
        # Headless frames always rebuild so every output reflects its own time
        scene.params.regenerate = True
        mesh = scene.render(RenderContext(elapsed=i * dt, delta=dt))
        counts.append(mesh.triangle_count)
        print(f"frame {i:03d}: {mesh.triangle_count} triangles in {scene.last_frame_ms:.1f} ms")

        if output is not None:
            save_obj(mesh, output / f"frame_{i:03d}.obj")
            save_volume_slice(scene.field.values, scene.field.size,
                              output / f"density_{i:03d}.ppm", axis=1)
    return counts


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level, args.log_file)

    try:
        params = _load_params(args)
        scene = TerrainScene(params, use_gpu=False if args.no_gpu else None)
    except (ValueError, OSError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    logger.info(
        f"Terrain {scene.field.size}³ ({params.mode}), backend {scene.field.status.name}"
    )
    try:
        if args.interactive:
            run_interactive(scene, InteractiveConfig.from_args(args))
        else:
            run_headless(scene, max(0, args.frames), args.dt, args.output)
    finally:
        scene.dispose()
    return 0


if __name__ == "__main__":
    sys.exit(main())
