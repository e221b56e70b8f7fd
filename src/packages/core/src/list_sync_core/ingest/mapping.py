"""Field mapping from source profiles to destination contacts."""
import re
from dataclasses import dataclass, field
from typing import Any, Iterable

from list_sync_core.ingest.normalize import flatten_profile

DEFAULT_KEY_FIELD = "mobile"
DEFAULT_FALLBACK_FIELDS = ("phone_number",)

_PHONE_NOISE = re.compile(r"[\s\-()]")
_PHONE_SHAPE = re.compile(r"^\+?[0-9]+$")


@dataclass(frozen=True)
class MappedRecord:
    """A destination record, or a rejection."""

    record: dict[str, Any] | None
    rejected: bool


@dataclass
class MappingResult:
    valid: list[dict[str, Any]] = field(default_factory=list)
    skipped: int = 0
    unusual_numbers: int = 0


def _blank(value: Any) -> bool:
    return value is None or str(value).strip() == ""


def normalize_mobile(phone: Any) -> str:
    """Strip spaces, dashes and parentheses from a phone number."""
    return _PHONE_NOISE.sub("", str(phone or ""))


def is_valid_mobile(phone: Any) -> bool:
    """Loose mobile check: optional '+', then 8 to 15 digits."""
    clean = normalize_mobile(phone)
    if not _PHONE_SHAPE.match(clean):
        return False
    return 8 <= len(clean.lstrip("+")) <= 15


def map_record(
    record: dict[str, Any],
    field_mappings: dict[str, str],
    key_field: str = DEFAULT_KEY_FIELD,
    fallback_fields: Iterable[str] = DEFAULT_FALLBACK_FIELDS,
) -> MappedRecord:
    """Map one source record onto destination fields.

    ``field_mappings`` maps destination field -> source field. The record is
    rejected when the key field ends up empty after trying the fallbacks.
    """
    if not isinstance(record, dict):
        return MappedRecord(record=None, rejected=True)
    flat = flatten_profile(record)

    out: dict[str, Any] = {}
    for dest_field, source_field in field_mappings.items():
        if not source_field:
            continue
        value = flat.get(source_field)
        if value is not None:
            out[dest_field] = value

    if _blank(out.get(key_field)):
        for name in fallback_fields:
            if not _blank(flat.get(name)):
                out[key_field] = flat[name]
                break

    if _blank(out.get(key_field)):
        return MappedRecord(record=None, rejected=True)
    out[key_field] = str(out[key_field]).strip()
    return MappedRecord(record=out, rejected=False)


def map_records(
    records: Iterable[dict[str, Any]],
    field_mappings: dict[str, str],
    key_field: str = DEFAULT_KEY_FIELD,
    fallback_fields: Iterable[str] = DEFAULT_FALLBACK_FIELDS,
) -> MappingResult:
    """Map a batch of records, counting rejections as skipped."""
    fallback_fields = tuple(fallback_fields)
    result = MappingResult()
    for record in records:
        mapped = map_record(record, field_mappings, key_field, fallback_fields)
        if mapped.rejected:
            result.skipped += 1
            continue
        if not is_valid_mobile(mapped.record[key_field]):
            result.unusual_numbers += 1
        result.valid.append(mapped.record)
    return result


def can_supply_key(field_mappings: dict[str, str], key_field: str = DEFAULT_KEY_FIELD) -> bool:
    """Whether the mapping table names a source field for the key field.

    Fallback fields only fill the key for records whose mapped value is
    empty; they never stand in for a missing mapping.
    """
    source_field = field_mappings.get(key_field)
    return bool(source_field and source_field.strip())


def destination_columns(
    field_mappings: dict[str, str], key_field: str = DEFAULT_KEY_FIELD
) -> list[str]:
    """Destination columns in mapping order with the key field first."""
    columns = [key_field]
    for dest_field in field_mappings:
        if dest_field not in columns:
            columns.append(dest_field)
    return columns
