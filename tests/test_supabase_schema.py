import json
import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from config import supabase_schema
from config.supabase_schema import column_name, load_schema, table_name


def test_defaults_fall_back_to_identifier():
    assert table_name("wash_recipes") == "wash_recipes"
    assert column_name("defects", "detected_date") == "detected_date"
    assert table_name("not_configured") == "not_configured"
    assert column_name("orders", "unknown_column") == "unknown_column"


def test_json_overrides_replace_tables():
    raw = json.dumps(
        {
            "defects": {"name": "qa_defects", "columns": {"detected_date": "found_at", "bad": 3}},
            "orders": {"columns": {"id": "order_pk"}},
            "ignored": "not a mapping",
        }
    )

    schema = load_schema(raw)

    assert schema["defects"].name == "qa_defects"
    assert schema["defects"].columns == {"detected_date": "found_at"}
    assert schema["orders"].name == "orders"
    assert "ignored" not in schema


def test_malformed_override_keeps_defaults(monkeypatch):
    assert load_schema("{not json") == load_schema(None)

    monkeypatch.setitem(
        supabase_schema.SUPABASE_SCHEMA,
        "defects",
        supabase_schema.SupabaseTable(name="qa_defects", columns={"severity": "level"}),
    )
    assert table_name("defects") == "qa_defects"
    assert column_name("defects", "severity") == "level"
