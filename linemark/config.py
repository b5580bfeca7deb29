"""
Configuration management for linemark workspaces.

The configuration is stored as a TOML file (``linemark.toml``) in the
workspace root. It supplies the color palette, unicode markers, the
default shape and the two rendering styles that force all decorations
to be re-derived when they change.

Nothing in here is fatal: invalid entries are logged and replaced by
defaults.
"""

import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import tomli_w

from .persistence import STORAGE_DIRNAME, STORAGE_FILENAME
from .types import (
    DEFAULT_SHAPE,
    FALLBACK_COLOR,
    FALLBACK_COLOR_NAME,
    SHAPES,
    normalize_color,
)

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "linemark.toml"
CONFIG_VERSION = 1

OVERVIEW_RULER_LANES = ("center", "full", "left", "right")
RULER_DISABLED = "none"
DEFAULT_OVERVIEW_RULER_LANE = "center"
DEFAULT_LINE_END_LABEL_TYPE = "bordered"
DEFAULT_SAVE_DELAY = 0.5


@dataclass
class LinemarkConfig:
    """Complete workspace configuration."""
    path: Path
    version: int = CONFIG_VERSION
    colors: dict[str, str] = field(default_factory=lambda: {FALLBACK_COLOR_NAME: FALLBACK_COLOR})
    unicode_markers: dict[str, str] = field(default_factory=dict)
    default_shape: str = DEFAULT_SHAPE
    # None means "no overview ruler mark"
    overview_ruler_lane: Optional[str] = DEFAULT_OVERVIEW_RULER_LANE
    line_end_label_type: str = DEFAULT_LINE_END_LABEL_TYPE
    save_delay: float = DEFAULT_SAVE_DELAY
    storage: str = f"{STORAGE_DIRNAME}/{STORAGE_FILENAME}"

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    @property
    def storage_path(self) -> Path:
        storage = Path(self.storage)
        if storage.is_absolute():
            return storage
        return self.path / storage

    def exists(self) -> bool:
        return self.config_path.exists()


def style_changed(old: LinemarkConfig, new: LinemarkConfig) -> bool:
    """True if switching from *old* to *new* requires redoing all decorations."""
    return (
        old.overview_ruler_lane != new.overview_ruler_lane
        or old.line_end_label_type != new.line_end_label_type
    )


def _parse_colors(section: Any) -> dict[str, str]:
    colors: dict[str, str] = {}
    if not isinstance(section, dict):
        logger.warning("Ignoring [colors]: expected a table")
        section = {}
    for name, value in section.items():
        try:
            colors[name] = normalize_color(str(value))
        except ValueError:
            logger.warning("Ignoring invalid color %r for %r", value, name)
    if not colors:
        colors[FALLBACK_COLOR_NAME] = FALLBACK_COLOR
    return colors


def _parse_markers(section: Any) -> dict[str, str]:
    if not isinstance(section, dict):
        logger.warning("Ignoring [unicode_markers]: expected a table")
        return {}
    markers = {}
    for name, glyph in section.items():
        if isinstance(glyph, str) and glyph:
            markers[name] = glyph
        else:
            logger.warning("Ignoring invalid unicode marker %r", name)
    return markers


def load_config(root: Path) -> LinemarkConfig:
    """
    Load configuration from a workspace root.

    A missing file yields the defaults.

    Raises:
        ValueError: If the file is not valid TOML or its version is newer
            than supported
    """
    root = Path(root)
    config_path = root / CONFIG_FILENAME
    if not config_path.exists():
        return LinemarkConfig(path=root)

    with open(config_path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid {CONFIG_FILENAME}: {e}") from e

    section = data.get("linemark", {})
    version = section.get("version", CONFIG_VERSION)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    default_shape = section.get("default_shape", DEFAULT_SHAPE)
    if default_shape not in SHAPES:
        logger.warning("Unknown default_shape %r, using %r", default_shape, DEFAULT_SHAPE)
        default_shape = DEFAULT_SHAPE

    lane = section.get("overview_ruler_lane", DEFAULT_OVERVIEW_RULER_LANE)
    if lane == RULER_DISABLED:
        lane = None
    elif lane not in OVERVIEW_RULER_LANES:
        logger.warning("Unknown overview_ruler_lane %r, ruler marks disabled", lane)
        lane = None

    save_delay = section.get("save_delay", DEFAULT_SAVE_DELAY)
    if isinstance(save_delay, bool) or not isinstance(save_delay, (int, float)) or save_delay < 0:
        logger.warning("Invalid save_delay %r, using %s", save_delay, DEFAULT_SAVE_DELAY)
        save_delay = DEFAULT_SAVE_DELAY

    return LinemarkConfig(
        path=root,
        version=version,
        colors=_parse_colors(data.get("colors", {})),
        unicode_markers=_parse_markers(data.get("unicode_markers", {})),
        default_shape=default_shape,
        overview_ruler_lane=lane,
        line_end_label_type=str(section.get("line_end_label_type", DEFAULT_LINE_END_LABEL_TYPE)),
        save_delay=float(save_delay),
        storage=str(section.get("storage", f"{STORAGE_DIRNAME}/{STORAGE_FILENAME}")),
    )


def save_config(config: LinemarkConfig) -> None:
    """Write configuration to the workspace root."""
    config.path.mkdir(parents=True, exist_ok=True)

    section: dict[str, Any] = {
        "version": config.version,
        "default_shape": config.default_shape,
        "overview_ruler_lane": config.overview_ruler_lane or RULER_DISABLED,
        "line_end_label_type": config.line_end_label_type,
        "save_delay": config.save_delay,
        "storage": config.storage,
    }

    data = {
        "linemark": section,
        "colors": dict(config.colors),
        "unicode_markers": dict(config.unicode_markers),
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)
