from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from typing import Any, Callable, Iterable, Protocol

from fastapi import HTTPException
from pydantic import BaseModel
from sqlalchemy import Select, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.inspection import inspect as sa_inspect
from sqlalchemy.orm import Session, defer, load_only, selectinload
from sqlalchemy.sql.sqltypes import JSON

from app.models.common import utcnow
from app.services.serialization import (
    Populate,
    column_keys,
    document_to_dict,
    hidden_fields,
    relationship_keys,
    serialize_value,
)


def _pk_column(model: type):
    pk = sa_inspect(model).primary_key
    if len(pk) != 1:
        raise ValueError(f"{model.__name__}: only single-column primary keys are supported")
    return pk[0]


def pk_value(model: type, row_id: Any) -> Any:
    if isinstance(row_id, uuid.UUID):
        return row_id
    try:
        python_type = _pk_column(model).type.python_type
    except NotImplementedError:
        python_type = str
    if python_type is uuid.UUID:
        try:
            return uuid.UUID(str(row_id))
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid id: {row_id}")
    if python_type is int:
        try:
            return int(str(row_id))
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid id: {row_id}")
    return row_id


def loader_option(model: type, item: Populate):
    if item.path not in relationship_keys(model):
        raise ValueError(f"{model.__name__} has no relationship {item.path!r}")
    attr = getattr(model, item.path)
    option = selectinload(attr)
    if item.populate:
        target = attr.property.mapper.class_
        option = option.options(*(loader_option(target, child) for child in item.populate))
    return option


class DocumentStore(Protocol):
    """Backing-store capabilities the handler factory relies on."""

    def create(self, payload: dict[str, Any]) -> Any:
        ...

    def find(self, *conditions: Any) -> "DocumentQuery":
        ...

    def find_by_id(self, row_id: Any, populate: Iterable[Populate] = ()) -> Any | None:
        ...

    def find_by_id_and_update(self, row_id: Any, payload: dict[str, Any], *, run_validators: bool = True) -> Any | None:
        ...

    def find_by_id_and_delete(self, row_id: Any) -> Any | None:
        ...


@dataclass(frozen=True)
class Collection:
    """Stateless handle to one mapped model; ``bind`` it to a session to get a store."""

    model: type
    schema: type[BaseModel] | None = None
    auto_populate: tuple[Populate, ...] = ()
    scope: Callable[[type], list] | None = None
    # called after flush with the row and its column values before the write (None on create)
    after_write: Callable[[Session, Any, dict[str, Any] | None], None] | None = None

    def conditions(self) -> list:
        if self.scope is None:
            return []
        return list(self.scope(self.model))

    def loader_options(self, populate: Iterable[Populate]) -> list:
        return [loader_option(self.model, item) for item in populate]

    def serialize(self, row: Any, populate: Iterable[Populate] = ()) -> dict[str, Any]:
        return document_to_dict(row, populate=self.auto_populate + tuple(populate))

    def bind(self, session: Session) -> "SqlAlchemyStore":
        return SqlAlchemyStore(self, session)


@dataclass(frozen=True)
class DocumentQuery:
    """Immutable chainable read query; nothing touches the database until ``all``/``count``."""

    collection: Collection
    session: Session
    stmt: Select
    include: tuple[str, ...] = ()
    exclude: tuple[str, ...] = ()

    @property
    def model(self) -> type:
        return self.collection.model

    def column(self, name: str):
        if name in hidden_fields(self.model) or name not in column_keys(self.model):
            raise HTTPException(status_code=400, detail=f'Unknown field "{name}"')
        return getattr(self.model, name)

    def _populated_paths(self) -> set[str]:
        return {item.path for item in self.collection.auto_populate}

    def _relationship_columns(self, name: str) -> list:
        mapper = sa_inspect(self.model)
        rel = mapper.relationships[name]
        return [getattr(self.model, mapper.get_property_by_column(col).key) for col in rel.local_columns]

    def match(self, *conditions) -> "DocumentQuery":
        return replace(self, stmt=self.stmt.where(*conditions))

    def sort_by(self, *clauses) -> "DocumentQuery":
        return replace(self, stmt=self.stmt.order_by(*clauses))

    def project(self, include: Iterable[str] = (), exclude: Iterable[str] = ()) -> "DocumentQuery":
        include = tuple(include)
        exclude = tuple(exclude)
        populated = self._populated_paths()
        stmt = self.stmt
        if include:
            columns = []
            for name in include:
                if name in populated:
                    columns.extend(self._relationship_columns(name))
                else:
                    columns.append(self.column(name))
            stmt = stmt.options(load_only(*columns))
        elif exclude:
            deferred = [self.column(name) for name in exclude if name not in populated]
            if deferred:
                stmt = stmt.options(*(defer(column) for column in deferred))
        return replace(self, stmt=stmt, include=include, exclude=exclude)

    def window(self, skip: int, limit: int) -> "DocumentQuery":
        return replace(self, stmt=self.stmt.offset(skip).limit(limit))

    def active_populate(self) -> tuple[Populate, ...]:
        return tuple(
            item
            for item in self.collection.auto_populate
            if (not self.include or item.path in self.include) and item.path not in self.exclude
        )

    def all(self) -> list[Any]:
        stmt = self.stmt.options(*self.collection.loader_options(self.active_populate()))
        return list(self.session.scalars(stmt).all())

    def count(self) -> int:
        stmt = self.stmt.order_by(None).limit(None).offset(None)
        return int(self.session.scalar(select(func.count()).select_from(stmt.subquery())) or 0)

    def serialize(self, row: Any) -> dict[str, Any]:
        return document_to_dict(row, include=self.include, exclude=self.exclude, populate=self.active_populate())


class SqlAlchemyStore:
    def __init__(self, collection: Collection, session: Session):
        self.collection = collection
        self.session = session

    @property
    def model(self) -> type:
        return self.collection.model

    def find(self, *conditions: Any) -> DocumentQuery:
        stmt = select(self.model).where(*self.collection.conditions(), *conditions)
        return DocumentQuery(self.collection, self.session, stmt)

    def find_by_id(self, row_id: Any, populate: Iterable[Populate] = ()) -> Any | None:
        return self._by_pk(row_id, self.collection.conditions(), populate)

    def _by_pk(self, row_id: Any, conditions: list, populate: Iterable[Populate] = ()) -> Any | None:
        stmt = (
            select(self.model)
            .where(_pk_column(self.model) == pk_value(self.model, row_id), *conditions)
            .options(*self.collection.loader_options(self.collection.auto_populate + tuple(populate)))
            .execution_options(populate_existing=True)
        )
        return self.session.scalars(stmt).first()

    def create(self, payload: dict[str, Any]) -> Any:
        data = self._validated(payload)
        row = self.model()
        self._assign(row, data)
        self.session.add(row)
        self._commit(row)
        self.session.refresh(row)
        return row

    def find_by_id_and_update(self, row_id: Any, payload: dict[str, Any], *, run_validators: bool = True) -> Any | None:
        row = self.find_by_id(row_id)
        if row is None:
            return None
        if run_validators and self.collection.schema is not None:
            data = self._validated_update(row, payload)
        else:
            data = self._writable(payload)
        previous = self._snapshot(row)
        self._assign(row, data)
        if hasattr(row, "version"):
            row.version = int(row.version or 0) + 1
        if hasattr(row, "updated_at"):
            row.updated_at = utcnow()
        self._commit(row, previous)
        # the write may move the row out of the collection scope
        return self._by_pk(row_id, [])

    def find_by_id_and_delete(self, row_id: Any) -> Any | None:
        row = self.find_by_id(row_id)
        if row is None:
            return None
        previous = self._snapshot(row)
        self.session.delete(row)
        self._commit(row, previous)
        return row

    def _commit(self, row: Any, previous: dict[str, Any] | None = None) -> None:
        try:
            self.session.flush()
            if self.collection.after_write is not None:
                self.collection.after_write(self.session, row, previous)
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise

    def _validated(self, payload: dict[str, Any]) -> dict[str, Any]:
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Request body must be a JSON object")
        schema = self.collection.schema
        if schema is not None:
            return schema.model_validate(payload).model_dump(exclude_unset=True)
        return self._writable(payload)

    def _writable(self, payload: dict[str, Any]) -> dict[str, Any]:
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Request body must be a JSON object")
        writable = set(column_keys(self.model)) | set(relationship_keys(self.model))
        unknown = sorted(set(payload) - writable)
        if unknown:
            raise HTTPException(status_code=400, detail="Unknown fields: " + ", ".join(unknown))
        return dict(payload)

    def _snapshot(self, row: Any) -> dict[str, Any]:
        return {key: getattr(row, key) for key in column_keys(self.model)}

    def _validated_update(self, row: Any, payload: dict[str, Any]) -> dict[str, Any]:
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Request body must be a JSON object")
        schema = self.collection.schema
        current = {name: self._current_value(row, name) for name in schema.model_fields}
        validated = schema.model_validate({**current, **payload})
        return {key: value for key, value in validated.model_dump().items() if key in payload}

    def _current_value(self, row: Any, name: str) -> Any:
        if name in relationship_keys(self.model):
            related = getattr(row, name)
            if isinstance(related, list):
                return [item.id for item in related]
            return related.id if related is not None else None
        return getattr(row, name, None)

    def _assign(self, row: Any, data: dict[str, Any]) -> None:
        mapper = sa_inspect(self.model)
        for key, value in data.items():
            if key in mapper.relationships:
                target = mapper.relationships[key].mapper.class_
                setattr(row, key, self._resolve_related(target, key, value))
                continue
            column = mapper.columns[key]
            if isinstance(column.type, JSON):
                value = serialize_value(value)
            setattr(row, key, value)

    def _resolve_related(self, target: type, key: str, value: Any) -> Any:
        if value is None:
            return None
        if not isinstance(value, (list, tuple)):
            related = self.session.get(target, pk_value(target, value))
            if related is None:
                raise HTTPException(status_code=400, detail=f"Invalid {key}: {value}")
            return related
        rows = []
        for item in value:
            related = self.session.get(target, pk_value(target, item))
            if related is None:
                raise HTTPException(status_code=400, detail=f"Invalid {key}: {item}")
            rows.append(related)
        return rows
