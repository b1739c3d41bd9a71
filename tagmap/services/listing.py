from __future__ import annotations

from typing import Any

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import aliased
from sqlalchemy.sql import ColumnElement

from tagmap.core.config import get_settings
from tagmap.core.errors import ValidationError
from tagmap.domain.models import Tag, TagStatusRecord
from tagmap.domain.schemas import PageParams
from tagmap.domain.views import TagPage, TagView
from tagmap.persistence.repos import status as status_repo
from tagmap.services.cursor import PageCursor, TagOrder


SCOPE_UNARCHIVED = "tags.unarchived"
SCOPE_USER_HISTORY = "tags.user_history"


def _current_record_id() -> ColumnElement[Any]:
    # Latest ledger entry per tag; evaluated inside the listing statement so filter and
    # returned status come from the same snapshot.
    return (
        select(TagStatusRecord.id)
        .where(TagStatusRecord.tag_id == Tag.id)
        .order_by(TagStatusRecord.created_at.desc(), TagStatusRecord.id.desc())
        .limit(1)
        .correlate(Tag)
        .scalar_subquery()
    )


def _initial_record_creator() -> ColumnElement[Any]:
    return (
        select(TagStatusRecord.created_by)
        .where(TagStatusRecord.tag_id == Tag.id)
        .order_by(TagStatusRecord.created_at, TagStatusRecord.id)
        .limit(1)
        .correlate(Tag)
        .scalar_subquery()
    )


class ListingService:
    """Read-only, cursor-paginated views over ledger-derived tag state.

    Default order is tag creation time descending with the tag id as a
    tie-breaker. Because the cursor pins the last (created_at, id) pair,
    tags inserted ahead of it between requests never leak into later pages.
    ``status_changed_at`` ordering is available but only stable while the
    paged tags do not change status.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        archived_status: str | None = None,
        cursor_secret: str | None = None,
        default_page_size: int | None = None,
        max_page_size: int | None = None,
    ) -> None:
        settings = get_settings()
        self._session_factory = session_factory
        self._archived_status = archived_status or settings.archived_status
        self._cursor_secret = cursor_secret or settings.cursor_secret
        self._default_page_size = default_page_size or settings.default_page_size
        self._max_page_size = max_page_size or settings.max_page_size

    async def list_unarchived(
        self, params: PageParams | None = None, *, sort: str | None = None
    ) -> TagPage:
        current = aliased(TagStatusRecord, name="current_status")
        return await self._page(
            scope=SCOPE_UNARCHIVED,
            params=params,
            sort=sort,
            current=current,
            filters=[current.status_name != self._archived_status],
        )

    async def get_user_history(
        self, uid: str, params: PageParams | None = None, *, sort: str | None = None
    ) -> TagPage:
        if not uid:
            raise ValidationError("uid is required")
        current = aliased(TagStatusRecord, name="current_status")
        return await self._page(
            scope=f"{SCOPE_USER_HISTORY}:{uid}",
            params=params,
            sort=sort,
            current=current,
            filters=[_initial_record_creator() == uid],
        )

    def _resolve_page_size(self, params: PageParams | None) -> int:
        page_size = params.page_size if params is not None else None
        if page_size is None:
            return self._default_page_size
        if page_size < 1 or page_size > self._max_page_size:
            raise ValidationError(f"page_size must be between 1 and {self._max_page_size}")
        return page_size

    async def _page(
        self,
        *,
        scope: str,
        params: PageParams | None,
        sort: str | None,
        current: Any,
        filters: list[ColumnElement[bool]],
    ) -> TagPage:
        page_size = self._resolve_page_size(params)
        order = TagOrder.parse(sort)
        sort_column = current.created_at if order.key == "status_changed_at" else Tag.created_at

        stmt: Select[Any] = (
            select(Tag, current).join(current, current.id == _current_record_id()).where(*filters)
        )
        token = params.cursor if params is not None else None
        if token:
            cursor = PageCursor.decode(token, self._cursor_secret, scope=scope, order=order)
            stmt = stmt.where(order.after(sort_column, Tag.id, cursor))
        stmt = stmt.order_by(*order.order_by(sort_column, Tag.id)).limit(page_size + 1)

        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()
            has_more = len(rows) > page_size
            rows = rows[:page_size]
            histories = await status_repo.list_records_for_tags(session, [tag.id for tag, _ in rows])

        items: list[TagView] = []
        for tag, status in rows:
            # Cut history at the record the filter saw as current so one response never
            # shows a tag in two different states.
            history = [record for record in histories.get(tag.id, []) if record.id <= status.id]
            items.append(TagView(tag=tag, status=status, history=history))

        next_cursor = None
        if has_more and items:
            next_cursor = PageCursor.after_view(items[-1], scope=scope, order=order).encode(
                self._cursor_secret
            )
        return TagPage(items=items, next_cursor=next_cursor)
