"""Centralised Supabase table and column configuration for defect analytics.

The analytics provider reads defects and the order, fabric, style and wash
recipe graph hanging off them. Every table and column identifier it uses is
declared here so that deployments can point the engine at differently named
tables without touching the query code. Identifiers without a mapping fall
back to the name supplied by the caller, and the whole registry can be
overridden with the ``SUPABASE_SCHEMA_JSON`` environment variable.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping


@dataclass(frozen=True)
class SupabaseTable:
    """Configuration for a Supabase table."""

    name: str
    columns: Mapping[str, str] = field(default_factory=dict)


def _named_table(name: str, *extra: str) -> SupabaseTable:
    columns = {column: column for column in ("id", "name", *extra)}
    return SupabaseTable(name=name, columns=columns)


# Default table and column mappings, used when no environment override is
# supplied.
_DEFAULT_SUPABASE_SCHEMA: Dict[str, SupabaseTable] = {
    "defects": SupabaseTable(
        name="defects",
        columns={
            "id": "id",
            "order_id": "order_id",
            "defect_type_id": "defect_type_id",
            "defect_name_id": "defect_name_id",
            "defect_place_id": "defect_place_id",
            "defect_process_id": "defect_process_id",
            "production_line": "production_line",
            "severity": "severity",
            "status": "status",
            "defect_count": "defect_count",
            "detected_date": "detected_date",
            "resolved_date": "resolved_date",
        },
    ),
    "orders": SupabaseTable(
        name="orders",
        columns={
            "id": "id",
            "order_no": "order_no",
            "order_qty": "order_qty",
            "key_no": "key_no",
            "article_no": "article_no",
            "fabric_id": "fabric_id",
            "style_id": "style_id",
            "brand_id": "brand_id",
        },
    ),
    "fabrics": _named_table("fabrics", "code"),
    "fabric_compositions": SupabaseTable(
        name="fabric_compositions",
        columns={
            "id": "id",
            "fabric_id": "fabric_id",
            "composition_item_id": "composition_item_id",
            "value": "value",
        },
    ),
    "composition_items": _named_table("composition_items"),
    "styles": _named_table("styles", "style_no", "brand_id"),
    "brands": _named_table("brands"),
    "wash_recipes": SupabaseTable(
        name="wash_recipes",
        columns={
            "id": "id",
            "order_id": "order_id",
            "wash_type": "wash_type",
            "wash_code": "wash_code",
            "date": "date",
        },
    ),
    "steps": SupabaseTable(
        name="steps",
        columns={
            "id": "id",
            "wash_recipe_id": "wash_recipe_id",
            "temp": "temp",
            "liters": "liters",
            "time": "time",
        },
    ),
    "step_items": SupabaseTable(
        name="step_items",
        columns={"id": "id", "step_id": "step_id", "chemical_item_id": "chemical_item_id"},
    ),
    "chemical_items": _named_table("chemical_items"),
    "recipe_processes": SupabaseTable(
        name="recipe_processes",
        columns={
            "id": "id",
            "wash_recipe_id": "wash_recipe_id",
            "laundry_process_id": "laundry_process_id",
        },
    ),
    "laundry_processes": _named_table("laundry_processes", "type"),
    "defect_types": _named_table("defect_types"),
    "defect_names": _named_table("defect_names", "defect_type_id"),
    "defect_places": _named_table("defect_places"),
    "defect_processes": _named_table("defect_processes"),
}


def _normalise_columns(columns: Any) -> Dict[str, str]:
    """Return a string-to-string column mapping from ``columns``."""

    if not isinstance(columns, Mapping):
        return {}
    return {
        str(logical): str(actual)
        for logical, actual in columns.items()
        if isinstance(logical, str) and isinstance(actual, str)
    }


def load_schema(raw_schema: str | None = None) -> Dict[str, SupabaseTable]:
    """Merge the JSON overrides in ``raw_schema`` over the default schema.

    Malformed JSON or entries without a table name are ignored.
    """

    schema = dict(_DEFAULT_SUPABASE_SCHEMA)
    if not raw_schema:
        return schema

    try:
        parsed = json.loads(raw_schema)
    except json.JSONDecodeError:
        return schema

    if not isinstance(parsed, Mapping):
        return schema

    for identifier, entry in parsed.items():
        if not isinstance(identifier, str) or not isinstance(entry, Mapping):
            continue

        name = entry.get("name")
        if not isinstance(name, str) or not name:
            continue

        columns = _normalise_columns(entry.get("columns", {}))
        schema[identifier] = SupabaseTable(name=name, columns=columns)

    return schema


SUPABASE_SCHEMA: Dict[str, SupabaseTable] = load_schema(os.getenv("SUPABASE_SCHEMA_JSON"))


def table_name(identifier: str) -> str:
    """Return the configured Supabase table name for ``identifier``."""

    table = SUPABASE_SCHEMA.get(identifier)
    if table:
        return table.name
    return identifier


def column_name(table_identifier: str, column_identifier: str) -> str:
    """Return the configured column name for ``table_identifier``."""

    table = SUPABASE_SCHEMA.get(table_identifier)
    if table and column_identifier in table.columns:
        return table.columns[column_identifier]
    return column_identifier
