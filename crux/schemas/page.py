from pydantic import BaseModel, Field
from typing import Any, List

class PageMeta(BaseModel):
    page: int = Field(ge=1)
    page_size: int = Field(gt=0)
    total_entries: int = Field(ge=0)
    total_pages: int = Field(ge=1)

class Page(PageMeta):
    entries: List[Any] = []

    @classmethod
    def from_meta(cls, meta: PageMeta, entries: List[Any]) -> "Page":
        return cls(entries=entries, **meta.model_dump())
