"""Helper utilities for loading and normalising configuration inputs."""
from __future__ import annotations

import logging
import math
import warnings
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .errors import ConfigurationError
from .schema import Config

logger = logging.getLogger(__name__)


def parse_override_value(raw: str) -> Any:
    """Parse a CLI override value into a Python object."""

    text = raw.strip()
    lower = text.lower()
    if lower in {"true", "false"}:
        return lower == "true"
    if lower in {"none", "null"}:
        return None
    if lower == "nan":
        return math.nan
    if text.startswith("[") and text.endswith("]"):
        inner = text[1:-1].strip()
        if not inner:
            return []
        return [parse_override_value(part) for part in inner.split(",")]
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        return text


def apply_overrides_dict(payload: Dict[str, Any], overrides: Sequence[str]) -> Dict[str, Any]:
    """Apply dotted-path ``path=value`` overrides to a configuration dictionary.

    Integer path segments index into lists, e.g. ``cells.0.t_e=2e4``.
    """

    for item in overrides or ():
        key, sep, value_str = item.partition("=")
        if not sep:
            raise ConfigurationError(f"Invalid override '{item}'; expected path=value")
        parts = [segment for segment in key.strip().split(".") if segment]
        if not parts:
            raise ConfigurationError(f"Invalid override '{item}'; empty path")
        target: Any = payload
        for segment in parts[:-1]:
            if isinstance(target, list):
                target = target[_list_index(target, segment, item)]
            elif isinstance(target, dict):
                if segment not in target or target[segment] is None:
                    target[segment] = {}
                target = target[segment]
            else:
                raise ConfigurationError(f"Cannot traverse into non-mapping for override '{item}' at '{segment}'")
        final_key = parts[-1]
        value = parse_override_value(value_str)
        if isinstance(target, list):
            target[_list_index(target, final_key, item)] = value
        elif isinstance(target, dict):
            target[final_key] = value
        else:
            raise ConfigurationError(f"Cannot set override '{item}'; target is not a mapping")
    return payload


def _list_index(target: list, segment: str, item: str) -> int:
    try:
        index = int(segment)
    except ValueError:
        raise ConfigurationError(f"Override '{item}' needs an integer index at '{segment}'") from None
    if not -len(target) <= index < len(target):
        raise ConfigurationError(f"Override '{item}' index {index} out of range")
    return index


def load_config(path: Path, overrides: Optional[Sequence[str]] = None) -> Config:
    """Load a YAML configuration file into a :class:`Config` instance."""

    from ruamel.yaml import YAML

    yaml = YAML(typ="safe")
    source_path = Path(path).resolve()
    if not source_path.exists():
        raise ConfigurationError(f"configuration file '{source_path}' not found")
    with source_path.open("r", encoding="utf-8") as fh:
        data = yaml.load(fh)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError("configuration root must be a mapping")
    if overrides:
        data = apply_overrides_dict(data, overrides)
    logger.debug("loaded configuration from %s", source_path)
    return Config(**data)


def read_overrides_file(path: Path) -> List[str]:
    """Return the ``path=value`` lines of an overrides file, skipping blanks and comments."""

    overrides: List[str] = []
    with Path(path).open("r", encoding="utf-8") as fh:
        for line in fh:
            text = line.strip()
            if text and not text.startswith("#"):
                overrides.append(text)
    return overrides


def configure_logging(level: int, suppress_warnings: bool = False) -> None:
    """Configure root logging and optionally silence Python warnings."""

    logging.basicConfig(level=level)
    root = logging.getLogger()
    root.setLevel(level)
    if suppress_warnings:
        warnings.filterwarnings("ignore")
    logging.captureWarnings(True)


__all__ = [
    "parse_override_value",
    "apply_overrides_dict",
    "load_config",
    "read_overrides_file",
    "configure_logging",
]
