"""Resolve defect records and their joined relations into defaulted views.

Defect rows arrive either straight from Supabase (snake_case columns with
embedded relations) or from a JSON snapshot using the dashboard's camelCase
names, and any relation along the way may be missing, ``None`` or only an id
string. The helpers here normalise all of that into frozen dataclasses whose
fields are always populated, so the aggregation code can dot into them
without guarding every access.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping

from .filters import parse_datetime

logger = logging.getLogger(__name__)

UNKNOWN_FABRIC = "Unknown Fabric"
UNKNOWN_STYLE = "Unknown Style"
UNKNOWN_BRAND = "Unknown Brand"
UNKNOWN_COMPOSITION = "Unknown Composition"
UNKNOWN_TYPE = "Unknown Type"
UNKNOWN_DEFECT = "Unknown Defect"
UNKNOWN_PLACE = "Unknown Location"
UNKNOWN_PROCESS = "Unknown Process"
UNKNOWN_LINE = "Unknown Line"
UNKNOWN_ORDER = "Unknown Order"
UNKNOWN_WASH_TYPE = "Unknown Wash Type"
UNKNOWN_CHEMICAL = "Unknown Chemical"
NOT_AVAILABLE = "N/A"


def _pick(row: Mapping[str, Any] | None, *names: str):
    """Return the first non-empty value found under any of ``names``."""

    if not isinstance(row, Mapping):
        return None
    for name in names:
        if name in row:
            value = row.get(name)
            if value not in (None, ""):
                return value
    return None


def _to_number(value, *, default: float | None = 0.0) -> float | None:
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip().replace(",", "")
        if not text:
            return default
        try:
            number = float(text)
        except ValueError:
            return default
    if math.isnan(number) or math.isinf(number):
        return default
    return number


def _identifier(value) -> str | None:
    if isinstance(value, Mapping):
        value = _pick(value, "id", "_id")
    if value in (None, ""):
        return None
    return str(value)


def _as_list(value) -> list:
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def record_weight(record) -> int:
    """Return the defect weight: ``defectCount`` when usable, else 1."""

    raw = record.weight if isinstance(record, ResolvedDefect) else _pick(
        record, "defect_count", "defectCount"
    )
    count = _to_number(raw, default=None)
    if count is None or count < 1:
        return 1
    return int(count)


@dataclass(frozen=True)
class NamedRef:
    id: str | None
    name: str


@dataclass(frozen=True)
class ResolvedComposition:
    id: str | None
    name: str
    value: float


@dataclass(frozen=True)
class ResolvedFabric:
    id: str | None
    name: str
    code: str
    compositions: tuple[ResolvedComposition, ...] = ()

    @property
    def key(self) -> str:
        return self.id or self.name

    @property
    def dominant_composition(self) -> ResolvedComposition:
        """Composition item with the highest value; the first one wins ties."""

        dominant: ResolvedComposition | None = None
        for item in self.compositions:
            if dominant is None or item.value > dominant.value:
                dominant = item
        return dominant or ResolvedComposition(id=None, name="Unknown", value=0.0)

    @property
    def composition_label(self) -> str:
        if not self.compositions:
            return UNKNOWN_COMPOSITION
        return ", ".join(f"{item.value:g}% {item.name}" for item in self.compositions)


@dataclass(frozen=True)
class ResolvedStyle:
    id: str | None
    name: str
    style_no: str
    brand: NamedRef

    @property
    def key(self) -> str:
        return self.id or self.name


@dataclass(frozen=True)
class ResolvedLine:
    name: str
    efficiency: float | None = None
    line_number: str | None = None


@dataclass(frozen=True)
class ResolvedStep:
    temp: float | None
    liters: float | None
    time: float | None
    chemicals: tuple[NamedRef, ...] = ()


@dataclass(frozen=True)
class ResolvedProcess:
    id: str | None
    name: str
    type: str


@dataclass(frozen=True)
class ResolvedRecipe:
    id: str | None
    wash_type: str
    wash_code: str
    date: datetime | None
    order_id: str | None
    order_no: str
    order_qty: float
    article_no: str
    steps: tuple[ResolvedStep, ...] = ()
    processes: tuple[ResolvedProcess, ...] = ()

    def samples(self, attribute: str) -> list[float | None]:
        """Raw per-step samples for ``temp``, ``liters`` or ``time``."""

        return [getattr(step, attribute) for step in self.steps]

    @property
    def chemicals(self) -> list[NamedRef]:
        seen: dict[str, NamedRef] = {}
        for step in self.steps:
            for chemical in step.chemicals:
                seen.setdefault(chemical.id or chemical.name, chemical)
        return list(seen.values())


@dataclass(frozen=True)
class ResolvedOrder:
    id: str | None
    order_no: str
    order_qty: float
    key_no: str
    article_no: str
    fabric: ResolvedFabric
    style: ResolvedStyle
    brand: NamedRef
    wash_recipes: tuple[ResolvedRecipe, ...] = ()


@dataclass(frozen=True)
class ResolvedDefect:
    id: str | None
    severity: str | None
    status: str | None
    detected_date: datetime | None
    resolved_date: datetime | None
    weight: int
    order: ResolvedOrder
    defect_type: NamedRef
    defect_name: NamedRef
    defect_place: NamedRef
    defect_process: NamedRef
    production_line: ResolvedLine = field(default_factory=lambda: ResolvedLine(UNKNOWN_LINE))

    @property
    def has_order(self) -> bool:
        return self.order.id is not None


def _named(value, default_name: str) -> NamedRef:
    if isinstance(value, Mapping):
        return NamedRef(id=_identifier(value), name=str(_pick(value, "name") or default_name))
    return NamedRef(id=_identifier(value), name=default_name)


def resolve_fabric(value) -> ResolvedFabric:
    if not isinstance(value, Mapping):
        return ResolvedFabric(id=_identifier(value), name=UNKNOWN_FABRIC, code=NOT_AVAILABLE)

    compositions: list[ResolvedComposition] = []
    raw_items = _pick(value, "fabric_compositions", "fabricCompositions", "compositions")
    for comp in _as_list(raw_items):
        if not isinstance(comp, Mapping):
            continue
        item = _pick(comp, "composition_item", "compositionItem")
        if isinstance(item, Mapping):
            item_id = _identifier(item)
            name = str(_pick(item, "name") or UNKNOWN_COMPOSITION)
        else:
            item_id = _identifier(item)
            name = str(_pick(comp, "name") or UNKNOWN_COMPOSITION)
        compositions.append(
            ResolvedComposition(id=item_id, name=name, value=_to_number(_pick(comp, "value")))
        )

    return ResolvedFabric(
        id=_identifier(value),
        name=str(_pick(value, "name") or UNKNOWN_FABRIC),
        code=str(_pick(value, "code") or NOT_AVAILABLE),
        compositions=tuple(compositions),
    )


def resolve_style(value) -> ResolvedStyle:
    if not isinstance(value, Mapping):
        return ResolvedStyle(
            id=_identifier(value),
            name=UNKNOWN_STYLE,
            style_no=NOT_AVAILABLE,
            brand=NamedRef(None, UNKNOWN_BRAND),
        )
    return ResolvedStyle(
        id=_identifier(value),
        name=str(_pick(value, "name") or UNKNOWN_STYLE),
        style_no=str(_pick(value, "style_no", "styleNo") or NOT_AVAILABLE),
        brand=_named(_pick(value, "brand"), UNKNOWN_BRAND),
    )


def resolve_production_line(value) -> ResolvedLine:
    """Model ``productionLine`` as ``{name, efficiency?}``.

    The field is usually a bare label or id-like string; a dict is accepted
    when a caller has joined it, but no lookup is ever attempted.
    """

    if isinstance(value, Mapping):
        line_number = _pick(value, "line_number", "lineNumber")
        name = _pick(value, "name") or line_number
        return ResolvedLine(
            name=str(name) if name is not None else UNKNOWN_LINE,
            efficiency=_to_number(_pick(value, "efficiency"), default=None),
            line_number=str(line_number) if line_number is not None else None,
        )
    if value in (None, ""):
        return ResolvedLine(UNKNOWN_LINE)
    return ResolvedLine(name=str(value).strip() or UNKNOWN_LINE)


def _resolve_step(value: Mapping) -> ResolvedStep:
    chemicals: list[NamedRef] = []
    items = _pick(value, "step_items", "stepItems", "chemicals")
    for item in _as_list(items):
        if not isinstance(item, Mapping):
            continue
        chemical = _pick(item, "chemical", "chemical_item", "chemicalItem", "chemicalItemId")
        if chemical is None and _pick(item, "name"):
            chemical = item
        chemicals.append(_named(chemical, UNKNOWN_CHEMICAL))
    return ResolvedStep(
        temp=_to_number(_pick(value, "temp", "temperature"), default=None),
        liters=_to_number(_pick(value, "liters", "litres"), default=None),
        time=_to_number(_pick(value, "time", "duration"), default=None),
        chemicals=tuple(chemicals),
    )


def _resolve_process(value: Mapping) -> ResolvedProcess:
    laundry = _pick(value, "laundry_process", "laundryProcess", "laundryProcessId")
    source = laundry if isinstance(laundry, Mapping) else value
    name = _pick(source, "name") or UNKNOWN_PROCESS
    process_type = _pick(source, "type") or _pick(value, "recipe_process_type", "recipeProcessType")
    return ResolvedProcess(
        id=_identifier(laundry) or _identifier(value),
        name=str(name),
        type=str(process_type or NOT_AVAILABLE),
    )


def resolve_wash_recipe(record, *, order: ResolvedOrder | None = None) -> ResolvedRecipe | None:
    """Resolve one wash recipe; ``order`` supplies fallbacks for nested recipes."""

    if not isinstance(record, Mapping):
        return None

    order_ref = _pick(record, "order", "order_id", "orderId")
    order_row = order_ref if isinstance(order_ref, Mapping) else {}
    order_id = _identifier(order_ref) or (order.id if order else None)

    steps = tuple(
        _resolve_step(step)
        for step in _as_list(_pick(record, "steps", "wash_steps", "washSteps"))
        if isinstance(step, Mapping)
    )
    processes = tuple(
        _resolve_process(process)
        for process in _as_list(
            _pick(record, "recipe_processes", "recipeProcesses", "recipeProcessId")
        )
        if isinstance(process, Mapping)
    )

    order_no = _pick(order_row, "order_no", "orderNo") or (order.order_no if order else None)
    article_no = _pick(order_row, "article_no", "articleNo") or (order.article_no if order else None)
    order_qty = _to_number(_pick(order_row, "order_qty", "orderQty"), default=None)
    if order_qty is None:
        order_qty = order.order_qty if order else 0.0

    return ResolvedRecipe(
        id=_identifier(record),
        wash_type=str(_pick(record, "wash_type", "washType") or UNKNOWN_WASH_TYPE),
        wash_code=str(_pick(record, "wash_code", "washCode") or NOT_AVAILABLE),
        date=parse_datetime(_pick(record, "date")),
        order_id=order_id,
        order_no=str(order_no or UNKNOWN_ORDER),
        order_qty=order_qty,
        article_no=str(article_no or NOT_AVAILABLE),
        steps=steps,
        processes=processes,
    )


def group_recipes_by_order(records: Iterable[Mapping]) -> dict[str, tuple[ResolvedRecipe, ...]]:
    """Resolve a batch of wash recipes and index them by order id."""

    grouped: dict[str, list[ResolvedRecipe]] = {}
    skipped = 0
    for record in records or []:
        recipe = resolve_wash_recipe(record)
        if recipe is None or recipe.order_id is None:
            skipped += 1
            continue
        grouped.setdefault(recipe.order_id, []).append(recipe)
    if skipped:
        logger.warning("Skipped %d wash recipes without an order reference", skipped)
    return {order_id: tuple(recipes) for order_id, recipes in grouped.items()}


def resolve_order(
    value,
    *,
    recipes_by_order: Mapping[str, tuple[ResolvedRecipe, ...]] | None = None,
) -> ResolvedOrder:
    """Resolve an order and the sub-graph the analytics rely on.

    When ``recipes_by_order`` is given the order's wash recipes come only
    from that lookup; otherwise the nested ``wash_recipes`` relation is used.
    """

    row = value if isinstance(value, Mapping) else {}
    base = ResolvedOrder(
        id=_identifier(value),
        order_no=str(_pick(row, "order_no", "orderNo") or UNKNOWN_ORDER),
        order_qty=_to_number(_pick(row, "order_qty", "orderQty")),
        key_no=str(_pick(row, "key_no", "keyNo") or NOT_AVAILABLE),
        article_no=str(_pick(row, "article_no", "articleNo") or NOT_AVAILABLE),
        fabric=resolve_fabric(_pick(row, "fabric")),
        style=resolve_style(_pick(row, "style")),
        brand=_named(_pick(row, "brand"), UNKNOWN_BRAND),
    )

    if recipes_by_order is not None:
        recipes = recipes_by_order.get(base.id, ()) if base.id else ()
    else:
        nested = _pick(row, "wash_recipes", "washRecipes")
        if isinstance(nested, Mapping):
            nested = [nested]
        recipes = tuple(
            recipe
            for recipe in (resolve_wash_recipe(item, order=base) for item in _as_list(nested))
            if recipe is not None
        )

    return ResolvedOrder(
        id=base.id,
        order_no=base.order_no,
        order_qty=base.order_qty,
        key_no=base.key_no,
        article_no=base.article_no,
        fabric=base.fabric,
        style=base.style,
        brand=base.brand,
        wash_recipes=tuple(recipes),
    )


def resolve_defect(
    record,
    *,
    recipes_by_order: Mapping[str, tuple[ResolvedRecipe, ...]] | None = None,
) -> ResolvedDefect:
    """Return a fully defaulted view of one defect record. Never raises."""

    row = record if isinstance(record, Mapping) else {}
    return ResolvedDefect(
        id=_identifier(row),
        severity=_pick(row, "severity"),
        status=_pick(row, "status"),
        detected_date=parse_datetime(_pick(row, "detected_date", "detectedDate")),
        resolved_date=parse_datetime(_pick(row, "resolved_date", "resolvedDate")),
        weight=record_weight(row),
        order=resolve_order(
            _pick(row, "order", "order_id", "orderId"),
            recipes_by_order=recipes_by_order,
        ),
        defect_type=_named(_pick(row, "defect_type", "defectType"), UNKNOWN_TYPE),
        defect_name=_named(_pick(row, "defect_name", "defectName"), UNKNOWN_DEFECT),
        defect_place=_named(_pick(row, "defect_place", "defectPlace"), UNKNOWN_PLACE),
        defect_process=_named(_pick(row, "defect_process", "defectProcess"), UNKNOWN_PROCESS),
        production_line=resolve_production_line(_pick(row, "production_line", "productionLine")),
    )


def resolve_defects(
    records: Iterable,
    *,
    recipes_by_order: Mapping[str, tuple[ResolvedRecipe, ...]] | None = None,
) -> list[ResolvedDefect]:
    resolved = [resolve_defect(record, recipes_by_order=recipes_by_order) for record in records or []]
    logger.debug("Resolved %d defect records", len(resolved))
    return resolved
