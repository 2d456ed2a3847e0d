"""Generic list-query builder.

Turns untrusted query-string parameters into filter / search / sort /
projection / pagination directives, then applies them to a SQLAlchemy
``select``. Building is pure; nothing here touches the database.

    ?categories=Fiction,History      -> row must hold *both* tags
    ?page_count[gte]=300             -> page_count >= 300
    ?q=potter harry                  -> every word in title (or subtitle)
    ?sort=-average_rating,title      -> descending rating, then title
    ?fields=title,authors            -> only those columns (plus id)
    ?page=2&limit=20                 -> offset 20, limit 20
"""

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

from sqlalchemy import JSON, Boolean, DateTime, Integer, Numeric, Select, and_, or_
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.sql.expression import ColumnElement, literal

from mediashelf.config import settings
from mediashelf.errors import ValidationError

ParamValue = Union[str, Sequence[str]]

RESERVED_PARAMS = frozenset({"page", "sort", "limit", "fields", "q"})
RANGE_OPERATORS = ("gte", "gt", "lte", "lt")
DEFAULT_SEARCH_FIELDS = ("title", "subtitle")

_RANGE_KEY = re.compile(r"^(?P<field>[A-Za-z_][A-Za-z0-9_]*)\[(?P<op>gte|gt|lte|lt)\]$")


# ── Array containment ────────────────────────────────────────────

class json_contains_all(ColumnElement):
    """True when a JSON array column holds every one of ``values``."""

    type = Boolean()
    inherit_cache = False

    def __init__(self, column, values: Iterable[Any]):
        self.column = column
        self.values = list(values)


@compiles(json_contains_all)
def _compile_json_each(element, compiler, **kw):
    if not element.values:
        return "1 = 1"
    column = compiler.process(element.column, **kw)
    clauses = [
        f"EXISTS (SELECT 1 FROM json_each({column}) WHERE json_each.value = {compiler.process(literal(v), **kw)})"
        for v in element.values
    ]
    return "(" + " AND ".join(clauses) + ")"


@compiles(json_contains_all, "postgresql")
def _compile_jsonb_contains(element, compiler, **kw):
    if not element.values:
        return "true"
    column = compiler.process(element.column, **kw)
    values = compiler.process(literal(json.dumps(element.values)), **kw)
    return f"(CAST({column} AS JSONB) @> CAST({values} AS JSONB))"


# ── Parsed query ─────────────────────────────────────────────────

@dataclass(frozen=True)
class Condition:
    """One filter directive. ``op`` is eq | all | gte | gt | lte | lt."""
    field: str
    op: str
    values: tuple[str, ...]


@dataclass
class ListQuery:
    """Directives extracted from request parameters."""
    conditions: list[Condition] = field(default_factory=list)
    search_terms: list[str] = field(default_factory=list)
    sort: list[tuple[str, bool]] = field(default_factory=list)   # (field, descending)
    fields: list[str] = field(default_factory=list)               # empty: all visible fields
    page: int = 1
    limit: int = 100

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    def project(self, record: dict, model) -> dict:
        """Apply the ``fields`` allow-list to a serialized row.

        Keys that are not columns of ``model`` (hydrated relations, counters)
        are left alone; ``id`` is always kept.
        """
        if not self.fields:
            return record
        columns = set(model.__table__.c.keys())
        return {
            k: v for k, v in record.items()
            if k == "id" or k in self.fields or k not in columns
        }

    def meta(self, count: int) -> dict:
        return {"page": self.page, "limit": self.limit, "count": count}


# ── Building (pure) ──────────────────────────────────────────────

def _last(value: ParamValue) -> str:
    if isinstance(value, str):
        return value
    return value[-1] if value else ""


def _split_values(value: ParamValue) -> tuple[list[str], bool]:
    """Return (values, multi). Repeated keys and comma lists are multi-valued."""
    if not isinstance(value, str):
        return [v.strip() for v in value if v.strip()], True
    if "," in value:
        return [v.strip() for v in value.split(",") if v.strip()], True
    return [value.strip()], False


def _positive_int(value: Optional[ParamValue], default: int) -> int:
    if value is None:
        return default
    try:
        number = int(_last(value))
    except ValueError:
        return default
    return number if number > 0 else default


def build_list_query(
    params: Mapping[str, ParamValue],
    default_sort: str = "-created_at",
    default_limit: Optional[int] = None,
    max_limit: Optional[int] = None,
) -> ListQuery:
    """Translate request parameters into a ``ListQuery``."""
    default_limit = default_limit or settings.query_default_limit
    max_limit = max_limit or settings.query_max_limit

    conditions = []
    for key, raw in params.items():
        if key in RESERVED_PARAMS:
            continue
        match = _RANGE_KEY.match(key)
        if match:
            conditions.append(Condition(match["field"], match["op"], (_last(raw).strip(),)))
            continue
        values, multi = _split_values(raw)
        if not values:
            continue
        conditions.append(Condition(key, "all" if multi else "eq", tuple(values)))

    search_terms = _last(params.get("q", "")).split()

    sort_spec = _last(params.get("sort", "")) or default_sort
    sort = [
        (name.lstrip("-").strip(), name.strip().startswith("-"))
        for name in sort_spec.split(",")
        if name.strip().lstrip("-")
    ]

    fields = [f.strip() for f in _last(params.get("fields", "")).split(",") if f.strip()]

    return ListQuery(
        conditions=conditions,
        search_terms=search_terms,
        sort=sort,
        fields=fields,
        page=_positive_int(params.get("page"), 1),
        limit=min(_positive_int(params.get("limit"), default_limit), max_limit),
    )


# ── Applying to SQLAlchemy ───────────────────────────────────────

def _resolve_column(model, name: str):
    name = model.__filter_aliases__.get(name, name)
    columns = model.__table__.c
    if name not in columns or name in model.__hidden_fields__ or name in model.__private_fields__:
        raise ValidationError(f"Unknown field '{name}'.")
    return columns[name]


def _coerce(column, value: str):
    column_type = column.type
    try:
        if isinstance(column_type, Boolean):
            lowered = value.lower()
            if lowered in ("true", "1", "yes"):
                return True
            if lowered in ("false", "0", "no"):
                return False
            raise ValueError(value)
        if isinstance(column_type, Integer):
            return int(value)
        if isinstance(column_type, Numeric):
            return float(value)
        if isinstance(column_type, DateTime):
            moment = datetime.fromisoformat(value)
            # Timestamps are stored in UTC; asyncpg refuses naive values for timestamptz
            return moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)
    except ValueError:
        raise ValidationError(f"Invalid value '{value}' for field '{column.name}'.")
    return value


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _condition_clause(model, condition: Condition):
    column = _resolve_column(model, condition.field)
    is_array = isinstance(column.type, JSON)

    if condition.op in ("eq", "all"):
        if is_array:
            return json_contains_all(column, condition.values)
        clauses = [column == _coerce(column, v) for v in condition.values]
        return clauses[0] if len(clauses) == 1 else and_(*clauses)

    if is_array:
        raise ValidationError(f"Range filters are not supported on '{column.name}'.")
    value = _coerce(column, condition.values[0])
    return {
        "gte": column >= value,
        "gt": column > value,
        "lte": column <= value,
        "lt": column < value,
    }[condition.op]


def apply_list_query(
    stmt: Select,
    model,
    query: ListQuery,
    search_fields: Sequence[str] = DEFAULT_SEARCH_FIELDS,
) -> Select:
    """Apply filters, text search, sort and pagination to ``stmt``."""
    clauses = [_condition_clause(model, c) for c in query.conditions]
    if clauses:
        stmt = stmt.where(*clauses)

    if query.search_terms:
        columns = [model.__table__.c[name] for name in search_fields if name in model.__table__.c]
        if not columns:
            raise ValidationError("Text search is not supported for this collection.")
        stmt = stmt.where(or_(*(
            and_(*(col.ilike(f"%{_escape_like(term)}%", escape="\\") for term in query.search_terms))
            for col in columns
        )))

    for name in query.fields:
        _resolve_column(model, name)

    order_by = []
    for name, descending in query.sort:
        column = _resolve_column(model, name)
        order_by.append(column.desc() if descending else column.asc())
    id_column = model.__table__.c["id"]
    if "id" not in (name for name, _ in query.sort):
        # Ids are monotonic per process, which keeps equal timestamps stable
        primary_desc = query.sort[0][1] if query.sort else True
        order_by.append(id_column.desc() if primary_desc else id_column.asc())

    return stmt.order_by(*order_by).offset(query.skip).limit(query.limit)
