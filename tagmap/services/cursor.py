from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import and_, or_
from sqlalchemy.sql import ColumnElement

from tagmap.core.errors import ValidationError
from tagmap.domain.models import as_utc
from tagmap.domain.views import TagView


CURSOR_VERSION = 1
SORT_KEYS = ("created_at", "status_changed_at")


class CursorError(ValidationError):
    pass


@dataclass(frozen=True)
class TagOrder:
    """Listing order: one timestamp key, with the tag id breaking ties in the same direction."""

    key: str = "created_at"
    descending: bool = True

    @classmethod
    def parse(cls, raw: str | None) -> TagOrder:
        raw = (raw or "").strip()
        if not raw:
            return cls()
        descending = raw.startswith("-")
        key = raw[1:] if descending else raw
        if key not in SORT_KEYS:
            raise CursorError(f"Unsupported sort field: {key}")
        return cls(key=key, descending=descending)

    @property
    def token(self) -> str:
        return f"-{self.key}" if self.descending else self.key

    def position_of(self, view: TagView) -> datetime:
        if self.key == "status_changed_at":
            return as_utc(view.status.created_at)
        return as_utc(view.tag.created_at)

    def order_by(self, column: ColumnElement[Any], id_column: ColumnElement[Any]) -> list[Any]:
        if self.descending:
            return [column.desc(), id_column.desc()]
        return [column.asc(), id_column.asc()]

    def after(
        self,
        column: ColumnElement[Any],
        id_column: ColumnElement[Any],
        cursor: PageCursor,
    ) -> ColumnElement[bool]:
        # Rows strictly past the cursor row in this order.
        if self.descending:
            return or_(column < cursor.at, and_(column == cursor.at, id_column < cursor.tag_id))
        return or_(column > cursor.at, and_(column == cursor.at, id_column > cursor.tag_id))


def _sign(raw: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), raw, hashlib.sha256).hexdigest()


@dataclass(frozen=True)
class PageCursor:
    """Signed position of the last tag on a page, bound to one listing and one order."""

    scope: str
    order: str
    at: datetime
    tag_id: str

    @classmethod
    def after_view(cls, view: TagView, *, scope: str, order: TagOrder) -> PageCursor:
        return cls(scope=scope, order=order.token, at=order.position_of(view), tag_id=view.tag.id)

    def encode(self, secret: str) -> str:
        payload = {
            "v": CURSOR_VERSION,
            "scope": self.scope,
            "order": self.order,
            "at": self.at.isoformat(),
            "id": self.tag_id,
        }
        raw = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
        encoded = base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")
        return f"{encoded}.{_sign(raw, secret)}"

    @classmethod
    def decode(cls, token: str, secret: str, *, scope: str, order: TagOrder) -> PageCursor:
        try:
            encoded, signature = token.split(".", 1)
        except ValueError as exc:
            raise CursorError("Invalid cursor format") from exc
        try:
            raw = base64.urlsafe_b64decode((encoded + "=" * (-len(encoded) % 4)).encode("ascii"))
        except (ValueError, binascii.Error) as exc:
            raise CursorError("Invalid cursor encoding") from exc
        if not hmac.compare_digest(_sign(raw, secret), signature):
            raise CursorError("Invalid cursor signature")
        try:
            payload = json.loads(raw.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise CursorError("Invalid cursor payload") from exc
        if not isinstance(payload, dict) or payload.get("v") != CURSOR_VERSION:
            raise CursorError("Cursor version mismatch")
        # A cursor only resumes the listing and order that issued it.
        if payload.get("scope") != scope:
            raise CursorError("Cursor scope mismatch")
        if payload.get("order") != order.token:
            raise CursorError("Cursor sort mismatch")
        at, tag_id = payload.get("at"), payload.get("id")
        if not isinstance(at, str) or not isinstance(tag_id, str):
            raise CursorError("Cursor position missing")
        try:
            parsed = datetime.fromisoformat(at)
        except ValueError as exc:
            raise CursorError("Invalid cursor timestamp") from exc
        return cls(scope=scope, order=order.token, at=as_utc(parsed), tag_id=tag_id)
