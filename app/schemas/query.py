from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Literal, Tuple

Op = Literal["eq", "in", "gte", "gt", "lte", "lt"]
Dir = Literal["asc", "desc"]

RESERVED_PARAMS = frozenset({"page", "sort", "limit", "fields"})
COMPARISON_OPS = ("gte", "gt", "lte", "lt")
DEFAULT_SORT_FIELD = "created_at"
VERSION_FIELD = "version"

class FilterClause(BaseModel):
    model_config = ConfigDict(frozen=True)
    field: str
    op: Op = "eq"
    value: Any

class SortClause(BaseModel):
    model_config = ConfigDict(frozen=True)
    field: str
    dir: Dir = "asc"

class Projection(BaseModel):
    model_config = ConfigDict(frozen=True)
    include: Tuple[str, ...] = ()
    exclude: Tuple[str, ...] = (VERSION_FIELD,)

class Page(BaseModel):
    model_config = ConfigDict(frozen=True)
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1)

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

class ListQuery(BaseModel):
    model_config = ConfigDict(frozen=True)
    filters: Tuple[FilterClause, ...] = ()
    sort: Tuple[SortClause, ...] = (SortClause(field=DEFAULT_SORT_FIELD, dir="desc"),)
    projection: Projection = Projection()
    page: Page = Page()
