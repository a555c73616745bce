from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .errors import InvalidDimensions
from .postprocess import DecodeConfig


DEFAULT_INPUT_SIZE = 640


@dataclass(frozen=True)
class LetterboxConfig:
    input_size: int = DEFAULT_INPUT_SIZE
    color: Tuple[int, int, int] = (114, 114, 114)

    def __post_init__(self) -> None:
        if self.input_size <= 0:
            raise InvalidDimensions(f"input_size must be positive, got {self.input_size}")
        if len(self.color) != 3 or any(not 0 <= int(c) <= 255 for c in self.color):
            raise ValueError("color must be three values in [0, 255]")


@dataclass(frozen=True)
class PipelineConfig:
    schema_version: int = 1
    letterbox: LetterboxConfig = LetterboxConfig()
    decode: DecodeConfig = DecodeConfig()
    class_names: Optional[Path] = None
    notes: Optional[str] = None

    def __post_init__(self) -> None:
        if self.schema_version != 1:
            raise ValueError("pipeline config schema_version must be 1")


def _require_int(payload: Dict[str, Any], key: str) -> int:
    if key not in payload:
        raise ValueError(f"Missing required key: {key}")
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer")
    return int(value)


def _optional_number(payload: Dict[str, Any], key: str, default: float) -> float:
    if key not in payload or payload[key] is None:
        return float(default)
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    return float(value)


def _optional_int(payload: Dict[str, Any], key: str, default: int) -> int:
    if key not in payload or payload[key] is None:
        return int(default)
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be an integer")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"{key} must be an integer")
    return int(value)


def _optional_int_list(payload: Dict[str, Any], key: str) -> Optional[List[int]]:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, list) or any(isinstance(v, bool) or not isinstance(v, int) for v in value):
        raise ValueError(f"{key} must be a list of integers")
    return [int(v) for v in value]


def load_pipeline_config(path: Path) -> PipelineConfig:
    """
    Load a JSON pipeline config. Relative `class_names` paths resolve against the config file.
    """

    if not path.exists():
        raise FileNotFoundError(f"Pipeline config not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid pipeline config JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Pipeline config must be a JSON object")

    allowed = {
        "schema_version",
        "input_size",
        "score_threshold",
        "iou_threshold",
        "max_detections",
        "class_ids",
        "class_names",
        "notes",
    }
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise ValueError(f"Unknown pipeline config keys: {unknown}")

    schema_version = _require_int(payload, "schema_version")
    defaults = DecodeConfig()
    decode = DecodeConfig(
        score_threshold=_optional_number(payload, "score_threshold", defaults.score_threshold),
        iou_threshold=_optional_number(payload, "iou_threshold", defaults.iou_threshold),
        max_detections=_optional_int(payload, "max_detections", defaults.max_detections),
        class_ids=_optional_int_list(payload, "class_ids"),
    )
    letterbox = LetterboxConfig(input_size=_optional_int(payload, "input_size", DEFAULT_INPUT_SIZE))

    class_names = payload.get("class_names")
    class_names_path: Optional[Path] = None
    if class_names is not None:
        if not isinstance(class_names, str) or not class_names.strip():
            raise ValueError("class_names must be a non-empty string")
        class_names_path = Path(class_names)
        if not class_names_path.is_absolute():
            class_names_path = (path.parent / class_names_path).resolve()

    notes = payload.get("notes")
    if notes is not None and not isinstance(notes, str):
        raise ValueError("notes must be a string if provided")

    return PipelineConfig(
        schema_version=schema_version,
        letterbox=letterbox,
        decode=decode,
        class_names=class_names_path,
        notes=notes,
    )


def configure_logging(verbose: bool = False) -> None:
    """
    Console logging for command-line entry points. The library itself installs no handlers.
    """

    root = logging.getLogger("detect_kit")
    if root.handlers:
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
