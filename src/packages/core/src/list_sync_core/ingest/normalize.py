"""Record normalization utilities."""
import json
from typing import Any


def normalize_value(v: Any) -> Any:
    """Normalize a value to JSON-serializable types."""
    if v is None:
        return None
    if isinstance(v, (str, int, float, bool)):
        return v
    if isinstance(v, dict):
        return {str(k): normalize_value(x) for k, x in v.items()}
    if isinstance(v, list):
        return [normalize_value(x) for x in v]
    return str(v)


def flatten_profile(record: dict[str, Any]) -> dict[str, Any]:
    """Flatten a source profile into a single-level record.

    Profiles shaped like ``{"id": ..., "attributes": {...}}`` expose their
    attributes at the top level. Nested objects such as ``location`` or
    ``properties`` are reachable both as dotted keys (``location.city``) and,
    when the key is free, by their leaf name.
    """
    flat: dict[str, Any] = {}
    attributes = record.get("attributes")
    if isinstance(attributes, dict):
        base = {k: v for k, v in record.items() if k != "attributes"}
        base.update(attributes)
    else:
        base = dict(record)

    for key, value in base.items():
        key = str(key)
        if isinstance(value, dict):
            for sub_key, sub_value in value.items():
                flat[f"{key}.{sub_key}"] = _scalar(sub_value)
            continue
        flat[key] = _scalar(value)

    for key, value in base.items():
        if isinstance(value, dict):
            for sub_key, sub_value in value.items():
                flat.setdefault(str(sub_key), _scalar(sub_value))
    return flat


def _scalar(v: Any) -> Any:
    v = normalize_value(v)
    if isinstance(v, (dict, list)):
        return json.dumps(v) if v else ""
    return v
