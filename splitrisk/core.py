"""Core primitives for SplitRisk.

This module provides the small utilities the rest of the package leans on:
- YAML/JSON loading with consistent encoding
- Canonical JSON serialization (sorted keys, no floats) for event digests
- Duration parsing for schedule configuration
- Path resolution relative to the repository root

Design principles:
- Pure functions where possible
- No global mutable state
- Explicit error handling
"""

from __future__ import annotations

import hashlib
import json
import pathlib
import re
from typing import Any

import yaml

# Repository root, computed once at module load
REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
SCHEMAS_DIR = REPO_ROOT / "schemas"


def sha256_bytes(data: bytes) -> str:
    """Compute SHA-256 hash of bytes, returning lowercase hex string."""
    return hashlib.sha256(data).hexdigest()


def load_yaml(path: pathlib.Path) -> Any:
    """Load YAML file with UTF-8 encoding."""
    return yaml.safe_load(pathlib.Path(path).read_text(encoding="utf-8"))


def load_json(path: pathlib.Path) -> Any:
    """Load JSON file with UTF-8 encoding."""
    return json.loads(pathlib.Path(path).read_text(encoding="utf-8"))


def load_document(path: pathlib.Path) -> Any:
    """Load a YAML or JSON document, dispatching on the file suffix."""
    p = pathlib.Path(path)
    if p.suffix.lower() == ".json":
        return load_json(p)
    return load_yaml(p)


def canonical_json_bytes(obj: Any) -> bytes:
    """Serialize object to canonical JSON bytes.

    Properties:
    - Keys sorted lexicographically
    - No whitespace
    - UTF-8 encoded
    - Floats rejected (amounts are integers in base units)
    """
    def _reject_floats(o: Any, path: str = "") -> None:
        if isinstance(o, float):
            raise ValueError(f"Float not allowed in canonical JSON at {path}")
        if isinstance(o, dict):
            for k, v in o.items():
                _reject_floats(v, f"{path}.{k}")
        if isinstance(o, list):
            for i, v in enumerate(o):
                _reject_floats(v, f"{path}[{i}]")

    _reject_floats(obj)
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


def parse_duration_seconds(duration: str) -> int:
    """Parse duration string to seconds.

    Supported formats:
    - Shorthand: "30s", "15m", "2h", "7d"
    - ISO8601 subset: "PT1H", "PT30M", "P1D"
    - Plain integer (seconds)

    Returns 0 for empty or unparseable input.
    """
    s = str(duration or "").strip()
    if not s:
        return 0

    # Plain integer
    if re.fullmatch(r"\d+", s):
        return int(s)

    # Shorthand: 30s, 15m, 2h, 7d
    m = re.fullmatch(r"(?i)(\d+)\s*([smhd])", s)
    if m:
        n, unit = int(m.group(1)), m.group(2).lower()
        return n * {"s": 1, "m": 60, "h": 3600, "d": 86400}[unit]

    # ISO8601 PnD
    m = re.fullmatch(r"(?i)P(\d+)D", s)
    if m:
        return int(m.group(1)) * 86400

    # ISO8601 PTnHnMnS
    m = re.fullmatch(r"(?i)PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?", s)
    if m and any(m.groups()):
        h = int(m.group(1) or 0)
        mi = int(m.group(2) or 0)
        sec = int(m.group(3) or 0)
        return h * 3600 + mi * 60 + sec

    return 0


def now_unix() -> int:
    """Return the current wall-clock time as integer unix seconds."""
    from datetime import datetime, timezone
    return int(datetime.now(timezone.utc).timestamp())


def iso8601_from_unix(ts: int) -> str:
    """Render unix seconds as an ISO8601 UTC timestamp."""
    from datetime import datetime, timezone
    return datetime.fromtimestamp(int(ts), tz=timezone.utc).isoformat(timespec="seconds")
