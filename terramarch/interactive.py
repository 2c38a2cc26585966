"""matplotlib viewer that animates a terrain scene with frame timing."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
import itertools
import logging
import time

import numpy as np

from .scene import RenderContext

logger = logging.getLogger(__name__)

_BASE_COLOR = np.array([0x88, 0xA0, 0xFF], dtype=np.float32) / 255.0
_LIGHT_DIRECTION = np.array([20.0, 30.0, 10.0]) / np.linalg.norm([20.0, 30.0, 10.0])
_AMBIENT = 0.35


def add_interactive_args(parser) -> None:
    parser.add_argument("--interactive", action="store_true", help="Run interactive view")
    parser.add_argument("--fps", type=float, default=30.0, help="Target FPS")
    parser.add_argument("--speed", type=float, default=1.0, help="Animation speed multiplier")
    parser.add_argument("--elev", type=float, default=30.0, help="Camera elevation (degrees)")
    parser.add_argument("--azim", type=float, default=-60.0, help="Camera azimuth (degrees)")


@dataclass
class InteractiveConfig:
    title: str = "Terramarch"
    target_fps: float = 30.0
    speed: float = 1.0
    elev: float = 30.0
    azim: float = -60.0
    figure_size: float = 8.0

    @classmethod
    def from_args(cls, args, title: Optional[str] = None) -> "InteractiveConfig":
        return cls(
            title=title or "Terramarch",
            target_fps=max(1.0, getattr(args, "fps", 30.0)),
            speed=max(0.1, getattr(args, "speed", 1.0)),
            elev=getattr(args, "elev", 30.0),
            azim=getattr(args, "azim", -60.0),
        )


def shade_faces(normals: np.ndarray) -> np.ndarray:
    """Lambert-shaded RGB colour per face normal."""
    diffuse = np.clip(normals @ _LIGHT_DIRECTION, 0.0, 1.0)
    intensity = _AMBIENT + (1.0 - _AMBIENT) * diffuse
    return np.clip(intensity[:, None] * _BASE_COLOR[None, :], 0.0, 1.0)


def run_interactive(scene, config: InteractiveConfig) -> None:
    try:
        import matplotlib.pyplot as plt
        from matplotlib.animation import FuncAnimation
        from mpl_toolkits.mplot3d.art3d import Poly3DCollection
    except Exception:
        print("matplotlib is not available; cannot display interactive output.")
        return

    fig = plt.figure(figsize=(config.figure_size, config.figure_size))
    fig.patch.set_facecolor("#181920")
    ax = fig.add_subplot(projection="3d")
    ax.set_facecolor("#181920")
    ax.set_axis_off()
    ax.view_init(elev=config.elev, azim=config.azim)

    size = scene.field.size
    ax.set_xlim(0, size - 1)
    ax.set_ylim(0, size - 1)
    ax.set_zlim(0, size - 1)
    ax.set_box_aspect((1, 1, 1))

    target_ms = 1000.0 / max(1.0, config.target_fps)
    start = time.perf_counter()
    last_time = start
    ema_ms = target_ms
    collection = None

    def update(frame):
        nonlocal last_time, ema_ms, collection
        now = time.perf_counter()
        dt_ms = (now - last_time) * 1000.0
        last_time = now
        ema_ms = ema_ms * 0.9 + dt_ms * 0.1
        if ema_ms > target_ms * 1.1:
            logger.debug(f"Frame {frame}: {ema_ms:.1f} ms average over {target_ms:.1f} ms budget")

        context = RenderContext(
            elapsed=(now - start) * config.speed,
            delta=dt_ms / 1000.0,
        )
        mesh = scene.render(context)

        if collection is not None:
            collection.remove()
            collection = None

        if not mesh.is_empty:
            # Grid y is "up"; matplotlib's vertical axis is z
            triangles = mesh.triangles()[:, :, [0, 2, 1]]
            if scene.params.wireframe:
                collection = Poly3DCollection(
                    triangles, facecolors="none", edgecolors=_BASE_COLOR, linewidths=0.3
                )
            else:
                normals = mesh.face_normals()[:, [0, 2, 1]]
                collection = Poly3DCollection(
                    triangles, facecolors=shade_faces(normals), linewidths=0
                )
            ax.add_collection3d(collection)

        ax.set_title(
            f"{config.title}  |  {mesh.triangle_count} tris  |  {ema_ms:.0f} ms",
            color="white",
        )
        return ()

    scene.on_activate()
    anim = FuncAnimation(
        fig,
        update,
        frames=itertools.count(),
        interval=max(1, int(target_ms)),
        blit=False,
        repeat=True,
        cache_frame_data=False,
    )
    try:
        plt.show(block=True)
    finally:
        scene.on_deactivate()
