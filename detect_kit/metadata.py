from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List, Sequence, Union


PathLike = Union[str, Path]

# Ids index a dense table; sparse mappings beyond this are rejected rather than expanded.
MAX_CLASS_ID = 65535


def class_name(class_names: Sequence[str], class_id: int) -> str:
    """
    Display name for `class_id`; `cls_<id>` when the table has no entry.
    """

    if 0 <= class_id < len(class_names):
        return class_names[class_id]
    return f"cls_{class_id}"


def _dense(names: Dict[int, str]) -> List[str]:
    if not names:
        return []
    size = max(names) + 1
    if size > MAX_CLASS_ID + 1:
        raise ValueError(f"Class id {size - 1} exceeds the supported maximum of {MAX_CLASS_ID}.")
    return [names.get(i, f"cls_{i}") for i in range(size)]


def _parse_names_yaml(path: Path) -> Dict[int, str]:
    """
    Parse the lightweight `metadata.yaml` format:

        names:
          0: person
          1: bicycle
          ...

    Kept dependency-free on purpose; only the `names:` block is read.
    """

    names: Dict[int, str] = {}
    in_names = False

    with open(path, "r", encoding="utf-8") as f:
        for raw in f:
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            if line == "names:":
                in_names = True
                continue
            if not in_names:
                continue
            # A new top-level key ends the block.
            if not raw[:1].isspace():
                break

            # Parse "id: label"
            if ":" not in line:
                continue
            left, right = line.split(":", 1)
            left = left.strip()
            right = right.strip().strip("'").strip('"')
            if not left.isdigit():
                continue
            names[int(left)] = right

    return names


def _parse_names_json(path: Path) -> List[str]:
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid class names JSON: {path}") from exc

    if isinstance(payload, dict) and "names" in payload:
        payload = payload["names"]
    if isinstance(payload, list):
        if not all(isinstance(item, str) for item in payload):
            raise ValueError(f"Class names must be strings: {path}")
        return list(payload)
    if isinstance(payload, dict):
        names: Dict[int, str] = {}
        for key, value in payload.items():
            if not str(key).isdigit() or not isinstance(value, str):
                raise ValueError(f"Class names mapping must be {{id: name}}: {path}")
            names[int(key)] = value
        return _dense(names)
    raise ValueError(f"Class names must be a JSON list or object: {path}")


def load_class_names(path: PathLike) -> List[str]:
    """
    Load an ordered class-name table (index = class id).

    Accepts `classes.json` (a list, an {id: name} object, or {"names": ...}) and
    the `names:` block of `metadata.yaml`. Ids missing from a mapping get
    synthetic `cls_<id>` names.
    """

    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Class names file not found: {p}")
    if p.suffix.lower() == ".json":
        return _parse_names_json(p)
    return _dense(_parse_names_yaml(p))
