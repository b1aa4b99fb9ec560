"""Endpoint factories shared by every resource router.

Each factory takes a ``ResourceDescriptor`` and returns a plain FastAPI endpoint.
Path parameters are read from ``request.path_params`` so one endpoint works for
``/reviews/{id}`` and ``/tours/{tour_id}/reviews/{id}`` alike.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping

from fastapi import Body, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.schemas.query import FilterClause
from app.services.document_store import Collection
from app.services.query_shaper import parse_list_query, shape_query, with_base_filter
from app.services.serialization import Populate

NOT_FOUND_MESSAGE = "No document found with that id"
PAGE_NOT_FOUND_MESSAGE = "This page does not exist"


@dataclass(frozen=True)
class ResourceDescriptor:
    collection: Collection
    populate: tuple[Populate, ...] = ()
    # (path parameter, field): /tours/{tour_id}/reviews lists only that tour's reviews
    parent: tuple[str, str] | None = None
    prepare_payload: Callable[[Request, dict[str, Any]], dict[str, Any]] | None = None


def success(data: Any = None, *, status_code: int = 200, results: int | None = None, **extra: Any) -> JSONResponse:
    content: dict[str, Any] = {"status": "success"}
    if results is not None:
        content["results"] = results
    content.update(extra)
    content["data"] = data
    return JSONResponse(status_code=status_code, content=content)


def _row_id(request: Request, resolve_id: Callable[[Request], Any] | None) -> Any:
    if resolve_id is not None:
        return resolve_id(request)
    return request.path_params.get("id")


def _not_found() -> HTTPException:
    return HTTPException(status_code=404, detail=NOT_FOUND_MESSAGE)


def create_one(resource: ResourceDescriptor):
    def handler(request: Request, payload: dict[str, Any] = Body(...), db: Session = Depends(get_db)):
        if resource.prepare_payload is not None:
            payload = resource.prepare_payload(request, dict(payload))
        doc = resource.collection.bind(db).create(payload)
        return success({"data": resource.collection.serialize(doc)}, status_code=201)

    return handler


def get_one(resource: ResourceDescriptor, *, resolve_id: Callable[[Request], Any] | None = None):
    def handler(request: Request, db: Session = Depends(get_db)):
        doc = resource.collection.bind(db).find_by_id(_row_id(request, resolve_id), populate=resource.populate)
        if doc is None:
            raise _not_found()
        return success({"data": resource.collection.serialize(doc, populate=resource.populate)})

    return handler


def get_all(resource: ResourceDescriptor, *, params: Mapping[str, str] | None = None, check_page_bounds: bool = False):
    """``params`` pins query parameters over whatever the client sent (route aliases).

    With ``check_page_bounds`` a page past the last matching record is a 404
    instead of an empty list.
    """

    def handler(request: Request, db: Session = Depends(get_db)):
        items = list(request.query_params.multi_items())
        if params:
            items = [(key, value) for key, value in items if key not in params] + list(params.items())
        list_query = parse_list_query(items)
        if resource.parent is not None:
            param, field = resource.parent
            parent_id = request.path_params.get(param)
            if parent_id:
                list_query = with_base_filter(list_query, FilterClause(field=field, op="eq", value=parent_id))
        query = shape_query(resource.collection.bind(db).find(), list_query)
        page = list_query.page
        if check_page_bounds and page.page > 1 and page.skip >= query.count():
            raise HTTPException(status_code=404, detail=PAGE_NOT_FOUND_MESSAGE)
        docs = query.all()
        return success({"data": [query.serialize(doc) for doc in docs]}, results=len(docs))

    return handler


def update_one(resource: ResourceDescriptor, *, resolve_id: Callable[[Request], Any] | None = None):
    def handler(request: Request, payload: dict[str, Any] = Body(...), db: Session = Depends(get_db)):
        doc = resource.collection.bind(db).find_by_id_and_update(
            _row_id(request, resolve_id), payload, run_validators=True
        )
        if doc is None:
            raise _not_found()
        return success({"data": resource.collection.serialize(doc)})

    return handler


def delete_one(resource: ResourceDescriptor, *, resolve_id: Callable[[Request], Any] | None = None):
    def handler(request: Request, db: Session = Depends(get_db)):
        doc = resource.collection.bind(db).find_by_id_and_delete(_row_id(request, resolve_id))
        if doc is None:
            raise _not_found()
        return Response(status_code=204)

    return handler
