from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable

from sqlalchemy.inspection import inspect as sa_inspect


@dataclass(frozen=True)
class Populate:
    """Related records to expand: relationship ``path``, its exposed ``select`` fields, nested expansions."""

    path: str
    select: tuple[str, ...] = ()
    populate: tuple["Populate", ...] = ()


def serialize_value(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: serialize_value(val) for key, val in value.items()}
    if isinstance(value, list):
        return [serialize_value(item) for item in value]
    if isinstance(value, tuple):
        return [serialize_value(item) for item in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, Decimal):
        return float(value)
    return value


def hidden_fields(model: type) -> frozenset[str]:
    return frozenset(getattr(model, "__hidden_fields__", ()))


def column_keys(model: type) -> list[str]:
    return [attr.key for attr in sa_inspect(model).column_attrs]


def relationship_keys(model: type) -> list[str]:
    return [rel.key for rel in sa_inspect(model).relationships]


def document_to_dict(
    row: Any,
    *,
    include: Iterable[str] = (),
    exclude: Iterable[str] = (),
    populate: Iterable[Populate] = (),
) -> dict[str, Any]:
    model = type(row)
    hidden = hidden_fields(model)
    include = tuple(include)
    excluded = set(exclude) | hidden
    pk_keys = [column.key for column in sa_inspect(model).primary_key]

    if include:
        keys = pk_keys + [key for key in column_keys(model) if key in include and key not in pk_keys]
    else:
        keys = column_keys(model)
    payload = {key: serialize_value(getattr(row, key)) for key in keys if key not in excluded}

    if not include:
        for name in getattr(model, "__virtuals__", ()):
            if name not in excluded:
                payload[name] = serialize_value(getattr(row, name))

    for item in populate:
        if include and item.path not in include:
            continue
        if item.path in excluded:
            continue
        related = getattr(row, item.path)
        if related is None:
            payload[item.path] = None
        elif isinstance(related, (list, tuple, set)):
            payload[item.path] = [
                document_to_dict(child, include=item.select, populate=item.populate) for child in related
            ]
        else:
            payload[item.path] = document_to_dict(related, include=item.select, populate=item.populate)
    return payload
