from datetime import date, datetime
from typing import Any, Tuple

from flask import current_app

from config.supabase_schema import column_name, table_name

ORDER_ID_CHUNK_SIZE = 200


def _get_client():
    """Return the configured Supabase client."""
    return current_app.config["SUPABASE"]


def _ensure_supabase_client() -> Tuple[Any, str | None]:
    """Return the configured Supabase client or an explanatory error.

    Returns:
        tuple: (client, error). When Supabase is unavailable the client will be
        ``None`` and ``error`` will contain a message explaining the failure.
    """

    supabase = current_app.config.get("SUPABASE")
    if not supabase or not hasattr(supabase, "table"):
        return None, (
            "Supabase client is not configured. Set SUPABASE_URL and SUPABASE_"
            "SERVICE_KEY to enable defect analytics."
        )
    return supabase, None


def _page_size() -> int:
    return int(current_app.config.get("ANALYTICS_PAGE_SIZE") or 1000)


def _normalize_date_for_query(value: date | datetime | str | None) -> str | None:
    """Return an ISO formatted date string for Supabase filters."""

    if not value:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _embed(alias: str, identifier: str, inner: str = "*") -> str:
    """Return a PostgREST embedded resource ``alias:table(inner)``."""

    return f"{alias}:{table_name(identifier)}({inner})"


def _recipe_select() -> str:
    chemical = _embed("chemical", "chemical_items")
    steps = _embed("steps", "steps", f"*,{_embed('step_items', 'step_items', f'*,{chemical}')}")
    processes = _embed(
        "recipe_processes",
        "recipe_processes",
        f"*,{_embed('laundry_process', 'laundry_processes')}",
    )
    return f"*,{steps},{processes}"


def _defect_select() -> str:
    compositions = _embed(
        "fabric_compositions",
        "fabric_compositions",
        f"*,{_embed('composition_item', 'composition_items')}",
    )
    order = _embed(
        "order",
        "orders",
        ",".join(
            [
                "*",
                _embed("fabric", "fabrics", f"*,{compositions}"),
                _embed("style", "styles", f"*,{_embed('brand', 'brands')}"),
                _embed("brand", "brands"),
                _embed("wash_recipes", "wash_recipes", _recipe_select()),
            ]
        ),
    )
    return ",".join(
        [
            "*",
            order,
            _embed("defect_type", "defect_types"),
            _embed("defect_name", "defect_names"),
            _embed("defect_place", "defect_places"),
            _embed("defect_process", "defect_processes"),
        ]
    )


def _fetch_paginated_rows(
    table: str,
    *,
    select: str = "*",
    date_column: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    order_column: str | None = None,
    page_size: int = 1000,
) -> list[dict]:
    """Fetch all rows from ``table`` applying optional range filters.

    Supabase caps responses to 1,000 rows by default.  This helper fetches data
    in ``page_size`` chunks while reapplying the requested range filters so that
    large defect snapshots do not truncate results.
    """

    if page_size <= 0:
        raise ValueError("page_size must be greater than zero")

    supabase = _get_client()
    rows: list[dict] = []
    offset = 0
    table_name_value = table_name(table)
    date_column_value = column_name(table, date_column) if date_column else None

    while True:
        query = supabase.table(table_name_value).select(select)
        if order_column:
            query = query.order(column_name(table, order_column))
        if date_column_value and start_date:
            query = query.gte(date_column_value, start_date)
        if date_column_value and end_date:
            query = query.lte(date_column_value, end_date)
        query = query.range(offset, offset + page_size - 1)

        response = query.execute()
        batch = response.data or []
        rows.extend(batch)

        if len(batch) < page_size:
            break
        offset += page_size

    return rows


def fetch_defects(filters=None) -> tuple[list[dict] | None, str | None]:
    """Return defect rows with every relation the analytics views resolve.

    Only the detected-date range is pushed down to Supabase; the remaining
    filters are applied by the analytics engine so that views which ignore a
    filter (severity trends, for example) see the full date-bounded set.
    """

    supabase, error = _ensure_supabase_client()
    if error:
        return None, error

    start_value = _normalize_date_for_query(getattr(filters, "start_date", None))
    end_value = _normalize_date_for_query(getattr(filters, "end_date", None))
    if end_value:
        end_value = f"{end_value}T23:59:59.999999"

    try:
        rows = _fetch_paginated_rows(
            "defects",
            select=_defect_select(),
            date_column="detected_date",
            start_date=start_value,
            end_date=end_value,
            order_column="detected_date",
            page_size=_page_size(),
        )
    except Exception as exc:  # pragma: no cover - network errors
        return None, f"Failed to fetch defects: {exc}"
    return rows, None


def fetch_orders(order_ids: list[str]) -> tuple[list[dict] | None, str | None]:
    """Return ``{id, order_no, order_qty}`` rows for ``order_ids``."""

    supabase, error = _ensure_supabase_client()
    if error:
        return None, error

    ids = [str(order_id) for order_id in dict.fromkeys(order_ids or []) if order_id]
    if not ids:
        return [], None

    id_column = column_name("orders", "id")
    fields = ",".join(
        [id_column, column_name("orders", "order_no"), column_name("orders", "order_qty")]
    )
    rows: list[dict] = []
    try:
        for start in range(0, len(ids), ORDER_ID_CHUNK_SIZE):
            chunk = ids[start : start + ORDER_ID_CHUNK_SIZE]
            response = (
                supabase.table(table_name("orders"))
                .select(fields)
                .in_(id_column, chunk)
                .execute()
            )
            rows.extend(response.data or [])
    except Exception as exc:  # pragma: no cover - network errors
        return None, f"Failed to fetch orders: {exc}"
    return rows, None


def fetch_wash_recipes(order_ids: list[str] | None = None) -> tuple[list[dict] | None, str | None]:
    """Return wash recipes with their steps, chemicals and laundry processes."""

    supabase, error = _ensure_supabase_client()
    if error:
        return None, error

    try:
        if order_ids is None:
            rows = _fetch_paginated_rows(
                "wash_recipes", select=_recipe_select(), page_size=_page_size()
            )
        else:
            rows = []
            order_column = column_name("wash_recipes", "order_id")
            ids = [str(order_id) for order_id in dict.fromkeys(order_ids) if order_id]
            for start in range(0, len(ids), ORDER_ID_CHUNK_SIZE):
                response = (
                    supabase.table(table_name("wash_recipes"))
                    .select(_recipe_select())
                    .in_(order_column, ids[start : start + ORDER_ID_CHUNK_SIZE])
                    .execute()
                )
                rows.extend(response.data or [])
    except Exception as exc:  # pragma: no cover - network errors
        return None, f"Failed to fetch wash recipes: {exc}"
    return rows, None


def fetch_defect_types() -> tuple[list[dict] | None, str | None]:
    """Return the defect type catalogue as ``{id, name}`` rows."""

    supabase, error = _ensure_supabase_client()
    if error:
        return None, error

    try:
        id_column = column_name("defect_types", "id")
        name_column = column_name("defect_types", "name")
        response = (
            supabase.table(table_name("defect_types"))
            .select(f"{id_column},{name_column}")
            .execute()
        )
    except Exception as exc:  # pragma: no cover - network errors
        return None, f"Failed to fetch defect types: {exc}"

    catalog = []
    for row in response.data or []:
        raw_id = row.get(id_column)
        if raw_id is None:
            continue
        catalog.append({"id": str(raw_id), "name": str(row.get(name_column) or "").strip()})
    return catalog, None


class SupabaseRecordProvider:
    """Record provider reading from the application's Supabase client.

    Methods look up the module level fetch functions at call time so tests
    can monkeypatch them individually. Each call runs inside ``app``'s
    application context because the wash views fetch from worker threads.
    """

    def __init__(self, app):
        self.app = app

    def _call(self, fn, *args):
        with self.app.app_context():
            return fn(*args)

    def fetch_defects(self, filters=None):
        return self._call(fetch_defects, filters)

    def fetch_orders(self, order_ids):
        return self._call(fetch_orders, order_ids)

    def fetch_wash_recipes(self, order_ids=None):
        return self._call(fetch_wash_recipes, order_ids)

    def fetch_defect_types(self):
        return self._call(fetch_defect_types)
