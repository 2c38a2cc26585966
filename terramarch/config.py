"""Flat tunable-parameter record for the terrain scene, plus named presets."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

from .density import SHAPE_MODES, DensityFieldSettings

_SETTINGS_FIELDS = tuple(f.name for f in fields(DensityFieldSettings))


@dataclass
class TerrainParams:
    """
    Everything an external control panel can touch between frames.

    Fields mirror DensityFieldSettings plus the scene switches. The
    ``regenerate`` flag is a one-shot trigger: the scene clears it after
    rebuilding.
    """
    size: int = 48
    frequency: float = 0.1
    amplitude: float = 1.0
    octaves: int = 4
    persistence: float = 0.5
    lacunarity: float = 2.0
    ridge_sharpness: float = 0.6
    time_scale: float = 0.35
    seed: int = 42
    mode: str = "terrain"
    wireframe: bool = False
    animate: bool = True
    iso_level: float = 0.0
    regenerate: bool = False

    def to_settings(self) -> DensityFieldSettings:
        return DensityFieldSettings(**{name: getattr(self, name) for name in _SETTINGS_FIELDS})

    def apply_to(self, settings: DensityFieldSettings) -> DensityFieldSettings:
        """Copy tunables onto an existing settings object in place."""
        for name in _SETTINGS_FIELDS:
            setattr(settings, name, getattr(self, name))
        return settings

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TerrainParams":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown terrain parameters: {', '.join(unknown)}")
        params = cls(**data)
        if params.mode not in SHAPE_MODES:
            raise ValueError(
                f"Unknown shape mode {params.mode!r}. Available: {', '.join(SHAPE_MODES)}"
            )
        return params

    @classmethod
    def from_json(cls, path) -> "TerrainParams":
        with open(path, "r") as f:
            return cls.from_dict(json.load(f))

    def save(self, path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def from_args(cls, args, base: Optional["TerrainParams"] = None) -> "TerrainParams":
        """Override ``base`` with any CLI options that were actually given."""
        params = replace(base) if base is not None else cls()
        for name in ("size", "mode", "iso_level", "seed", "octaves", "frequency"):
            value = getattr(args, name, None)
            if value is not None:
                setattr(params, name, value)
        if getattr(args, "wireframe", False):
            params.wireframe = True
        if getattr(args, "static", False):
            params.animate = False
        return params


PRESETS: Dict[str, Dict[str, Any]] = {
    "default": {},
    "ridges": {
        "frequency": 2.5,
        "octaves": 5,
        "ridge_sharpness": 1.4,
        "persistence": 0.55,
        "iso_level": 0.5,
    },
    "dunes": {
        "frequency": 1.2,
        "octaves": 3,
        "ridge_sharpness": 0.35,
        "persistence": 0.4,
        "time_scale": 0.15,
        "iso_level": 0.6,
    },
    "sphere": {
        "mode": "sphere",
        "animate": False,
    },
}


def add_preset_arg(parser, presets=PRESETS, default: Optional[str] = None,
                   dest: str = "preset") -> None:
    parser.add_argument(
        "--preset",
        choices=list(presets),
        default=default,
        dest=dest,
        help="Preset name",
    )


def resolve_preset(value: Optional[str], presets=PRESETS,
                   fallback: Optional[str] = None) -> Optional[str]:
    if value is None:
        return fallback
    if value not in presets:
        raise ValueError(f"Unknown preset '{value}'. Available: {', '.join(presets)}")
    return value


def preset_params(name: str) -> TerrainParams:
    """Build TerrainParams for a named preset."""
    resolve_preset(name)
    return replace(TerrainParams(), **PRESETS[name])
