"""Ingest module for profile normalization and field mapping."""
from list_sync_core.ingest.mapping import (
    MappedRecord,
    MappingResult,
    map_record,
    map_records,
    can_supply_key,
    destination_columns,
    is_valid_mobile,
    normalize_mobile,
)
from list_sync_core.ingest.normalize import flatten_profile, normalize_value

__all__ = [
    "MappedRecord",
    "MappingResult",
    "map_record",
    "map_records",
    "can_supply_key",
    "destination_columns",
    "is_valid_mobile",
    "normalize_mobile",
    "flatten_profile",
    "normalize_value",
]
