from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping

from fastapi import HTTPException
from sqlalchemy import asc, desc

from app.core.config import settings
from app.schemas.query import (
    COMPARISON_OPS,
    RESERVED_PARAMS,
    FilterClause,
    ListQuery,
    Page,
    Projection,
    SortClause,
)
from app.services.document_store import DocumentQuery

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_PARAM_KEY_RE = re.compile(r"^(?P<field>[A-Za-z_][A-Za-z0-9_]*)(?:\[(?P<op>[^\[\]]*)\])?$")


def _bad_query(detail: str) -> HTTPException:
    return HTTPException(status_code=400, detail=detail)


def _bad_filter_value(column_key: str, kind: str) -> HTTPException:
    return _bad_query(f'Invalid filter value for field "{column_key}" ({kind})')


def _param_items(params: Mapping[str, Any] | Iterable[tuple[str, Any]]) -> list[tuple[str, str]]:
    multi_items = getattr(params, "multi_items", None)
    if callable(multi_items):
        return [(str(k), str(v)) for k, v in multi_items()]
    if isinstance(params, Mapping):
        items: list[tuple[str, str]] = []
        for key, value in params.items():
            if isinstance(value, (list, tuple)):
                items.extend((str(key), str(v)) for v in value)
            elif value is not None:
                items.append((str(key), str(value)))
        return items
    return [(str(k), str(v)) for k, v in params]


def _last(items: list[tuple[str, str]], key: str) -> str | None:
    values = [value for name, value in items if name == key]
    return values[-1] if values else None


def parse_filters(items: list[tuple[str, str]]) -> tuple[FilterClause, ...]:
    equals: dict[str, list[str]] = {}
    comparisons: dict[tuple[str, str], str] = {}
    order: list[tuple[str, str]] = []
    for key, value in items:
        if key in RESERVED_PARAMS:
            continue
        match = _PARAM_KEY_RE.fullmatch(key)
        if match is None:
            raise _bad_query(f'Invalid query parameter "{key}"')
        field, op = match.group("field"), match.group("op")
        if op is None:
            if field not in equals:
                equals[field] = []
                order.append((field, "eq"))
            equals[field].append(value)
            continue
        if op not in COMPARISON_OPS:
            raise _bad_query(f'Unsupported filter operator "{op}" for field "{field}"')
        if (field, op) not in comparisons:
            order.append((field, op))
        comparisons[(field, op)] = value

    clauses: list[FilterClause] = []
    for field, op in order:
        if op == "eq":
            values = equals[field]
            if len(values) == 1:
                clauses.append(FilterClause(field=field, op="eq", value=values[0]))
            else:
                clauses.append(FilterClause(field=field, op="in", value=tuple(values)))
        else:
            clauses.append(FilterClause(field=field, op=op, value=comparisons[(field, op)]))
    return tuple(clauses)


def _split_csv(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


def _checked_field(name: str, param: str) -> str:
    if not _FIELD_RE.fullmatch(name):
        raise _bad_query(f'Invalid field "{name}" in "{param}"')
    return name


def parse_sort(raw: str | None) -> tuple[SortClause, ...]:
    if not raw or not _split_csv(raw):
        return ListQuery().sort
    clauses = []
    for token in _split_csv(raw):
        if token.startswith("-"):
            clauses.append(SortClause(field=_checked_field(token[1:], "sort"), dir="desc"))
        else:
            clauses.append(SortClause(field=_checked_field(token.lstrip("+"), "sort"), dir="asc"))
    return tuple(clauses)


def parse_projection(raw: str | None) -> Projection:
    if not raw or not _split_csv(raw):
        return Projection()
    tokens = _split_csv(raw)
    excluded = [token[1:] for token in tokens if token.startswith("-")]
    included = [token for token in tokens if not token.startswith("-")]
    if excluded and included:
        raise _bad_query("Projection cannot mix included and excluded fields")
    if excluded:
        return Projection(include=(), exclude=tuple(_checked_field(name, "fields") for name in excluded))
    return Projection(include=tuple(_checked_field(name, "fields") for name in included), exclude=())


def _positive_int(name: str, raw: str | None, default: int, maximum: int | None = None) -> int:
    if raw is None or str(raw).strip() == "":
        return default
    try:
        value = int(str(raw).strip())
    except ValueError:
        raise _bad_query(f'Query parameter "{name}" must be a positive integer')
    if value < 1:
        raise _bad_query(f'Query parameter "{name}" must be a positive integer')
    if maximum is not None and value > maximum:
        raise _bad_query(f'Query parameter "{name}" must not exceed {maximum}')
    return value


def parse_page(page: str | None, limit: str | None) -> Page:
    return Page(
        page=_positive_int("page", page, 1),
        limit=_positive_int("limit", limit, settings.DEFAULT_PAGE_LIMIT, settings.MAX_PAGE_LIMIT),
    )


def parse_list_query(params: Mapping[str, Any] | Iterable[tuple[str, Any]]) -> ListQuery:
    items = _param_items(params)
    return ListQuery(
        filters=parse_filters(items),
        sort=parse_sort(_last(items, "sort")),
        projection=parse_projection(_last(items, "fields")),
        page=parse_page(_last(items, "page"), _last(items, "limit")),
    )


def with_base_filter(list_query: ListQuery, clause: FilterClause) -> ListQuery:
    """Put ``clause`` in front of the request filters unless the request already filters that field."""
    if any(existing.field == clause.field for existing in list_query.filters):
        return list_query
    return list_query.model_copy(update={"filters": (clause,) + list_query.filters})


def _coerce_bool_filter_value(column_key: str, value):
    if isinstance(value, bool):
        return value
    text = str(value or "").strip().lower()
    if text in {"1", "true", "yes", "y"}:
        return True
    if text in {"0", "false", "no", "n"}:
        return False
    raise _bad_filter_value(column_key, "boolean")


def _coerce_number_filter_value(column_key: str, value, python_type):
    if value is None:
        return None
    if python_type in {int, float} and isinstance(value, (int, float)):
        return python_type(value)
    if python_type is Decimal and isinstance(value, Decimal):
        return value
    text = str(value).strip()
    if not text:
        raise _bad_filter_value(column_key, "number")
    try:
        if python_type is int:
            return int(text)
        if python_type is float:
            return float(text)
        if python_type is Decimal:
            return Decimal(text)
        return python_type(text)
    except (ValueError, TypeError, InvalidOperation):
        raise _bad_filter_value(column_key, "number")


def _coerce_date_filter_value(column_key: str, value):
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    text = str(value or "").strip()
    if not text:
        raise _bad_filter_value(column_key, "date")
    try:
        # Accept either YYYY-MM-DD or full ISO datetime and take its date part.
        if "T" in text or " " in text:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        return date.fromisoformat(text)
    except ValueError:
        raise _bad_filter_value(column_key, "date")


def _coerce_datetime_filter_value(column_key: str, value):
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value or "").strip()
        if not text:
            raise _bad_filter_value(column_key, "datetime")
        try:
            if "T" not in text and " " not in text and len(text) == 10:
                # Date-only filter value for timestamp columns -> start of the day.
                parsed = datetime.combine(date.fromisoformat(text), datetime.min.time())
            else:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            raise _bad_filter_value(column_key, "datetime")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _column_python_type(column):
    try:
        return column.property.columns[0].type.python_type
    except NotImplementedError:
        return None


def coerce_filter_value(column, value):
    python_type = _column_python_type(column)
    if python_type is None:
        return value
    if python_type is uuid.UUID:
        if isinstance(value, uuid.UUID):
            return value
        try:
            return uuid.UUID(str(value or "").strip())
        except ValueError:
            raise _bad_query(f'Invalid UUID in filter for field "{column.key}"')
    if python_type is bool:
        return _coerce_bool_filter_value(column.key, value)
    if python_type in {int, float, Decimal}:
        return _coerce_number_filter_value(column.key, value, python_type)
    if python_type is date:
        return _coerce_date_filter_value(column.key, value)
    if python_type is datetime:
        return _coerce_datetime_filter_value(column.key, value)
    return value


def _is_date_only_filter_literal(raw_value) -> bool:
    if isinstance(raw_value, date) and not isinstance(raw_value, datetime):
        return True
    if not isinstance(raw_value, str):
        return False
    text = raw_value.strip()
    if not text or "T" in text or " " in text:
        return False
    try:
        date.fromisoformat(text)
        return True
    except ValueError:
        return False


def filter_condition(col, clause: FilterClause):
    if clause.op == "in":
        return col.in_([coerce_filter_value(col, item) for item in clause.value])
    value = coerce_filter_value(col, clause.value)
    if clause.op == "eq":
        if _column_python_type(col) is datetime and _is_date_only_filter_literal(clause.value):
            return (col >= value) & (col < value + timedelta(days=1))
        return col == value
    if clause.op == "gte":
        return col >= value
    if clause.op == "gt":
        return col > value
    if clause.op == "lte":
        return col <= value
    return col < value


@dataclass(frozen=True)
class QueryShaper:
    """Applies a ``ListQuery`` to a ``DocumentQuery``; every step returns a new shaper."""

    query: DocumentQuery
    list_query: ListQuery

    def filter(self) -> "QueryShaper":
        conditions = [filter_condition(self.query.column(clause.field), clause) for clause in self.list_query.filters]
        if not conditions:
            return self
        return replace(self, query=self.query.match(*conditions))

    def sort(self) -> "QueryShaper":
        clauses = [
            asc(self.query.column(item.field)) if item.dir == "asc" else desc(self.query.column(item.field))
            for item in self.list_query.sort
        ]
        return replace(self, query=self.query.sort_by(*clauses))

    def limit_fields(self) -> "QueryShaper":
        projection = self.list_query.projection
        return replace(self, query=self.query.project(include=projection.include, exclude=projection.exclude))

    def paginate(self) -> "QueryShaper":
        page = self.list_query.page
        return replace(self, query=self.query.window(page.skip, page.limit))


def shape_query(base: DocumentQuery, list_query: ListQuery) -> DocumentQuery:
    return QueryShaper(base, list_query).filter().sort().limit_fields().paginate().query


def build_query(base: DocumentQuery, params: Mapping[str, Any] | Iterable[tuple[str, Any]]) -> DocumentQuery:
    return shape_query(base, parse_list_query(params))
