import json
import math
from typing import Optional, Tuple

DEFAULT_KEY = "value"
_KEY_FIELDS = ("key", "name", "metric")
_VALUE_FIELDS = ("value", "nanos", "duration", "latency")


def parse_observation(line: str, default_key: str = DEFAULT_KEY) -> Optional[Tuple[str, float]]:
    """
    Returns (key, value) for one input line, or None for blank lines and # comments.
    Accepts a bare number, a "key value" pair, or a JSON object carrying one of
    value/nanos/duration/latency (and optionally key/name/metric).
    Raises ValueError for anything else.
    """
    line = line.strip()
    if not line or line.startswith("#"):
        return None

    if line.startswith("{"):
        try:
            obj = json.loads(line)
        except json.JSONDecodeError as exc:
            raise ValueError(f"invalid JSON: {exc}") from exc
        key = next((obj[f] for f in _KEY_FIELDS if obj.get(f) is not None), default_key)
        raw = next((obj[f] for f in _VALUE_FIELDS if obj.get(f) is not None), None)
        if raw is None:
            raise ValueError(f"no numeric field among {', '.join(_VALUE_FIELDS)}")
        return str(key), _to_float(raw)

    parts = line.split()
    if len(parts) == 1:
        return default_key, _to_float(parts[0])
    if len(parts) == 2:
        return parts[0], _to_float(parts[1])
    raise ValueError(f"expected 'value' or 'key value', got {len(parts)} fields")


def _to_float(raw: object) -> float:
    if isinstance(raw, bool):
        raise ValueError(f"not a number: {raw!r}")
    try:
        value = float(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"not a number: {raw!r}") from exc
    if math.isnan(value):
        raise ValueError("NaN is not an observation")
    return value
