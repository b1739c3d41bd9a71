from __future__ import annotations

from dataclasses import dataclass, field

from tagmap.domain.models import Tag, TagStatusRecord


@dataclass(frozen=True)
class TagView:
    # Tag plus ledger-derived state read from one snapshot.
    tag: Tag
    status: TagStatusRecord
    history: list[TagStatusRecord]


@dataclass(frozen=True)
class TagPage:
    items: list[TagView]
    next_cursor: str | None = None


@dataclass(frozen=True)
class TagWriteResult:
    view: TagView
    image_upload_number: int = 0
    image_upload_urls: list[str] = field(default_factory=list)
    # None when the write did not ask for image deletion.
    image_delete_status: bool | None = None
