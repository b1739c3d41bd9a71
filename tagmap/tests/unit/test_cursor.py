from __future__ import annotations

import base64
import hashlib
import hmac
import json
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from tagmap.core.errors import ValidationError
from tagmap.services.cursor import CURSOR_VERSION, CursorError, PageCursor, TagOrder


_NEWEST = TagOrder()
_AT = datetime(2026, 2, 9, tzinfo=timezone.utc)


def _cursor(**overrides) -> PageCursor:
    fields = {"scope": "tags.unarchived", "order": _NEWEST.token, "at": _AT, "tag_id": "tag-1"}
    fields.update(overrides)
    return PageCursor(**fields)


def _signed(payload: dict, secret: str = "secret") -> str:
    raw = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), raw, hashlib.sha256).hexdigest()
    return f"{base64.urlsafe_b64encode(raw).decode('ascii').rstrip('=')}.{signature}"


def test_cursor_roundtrip() -> None:
    token = _cursor().encode("secret")
    decoded = PageCursor.decode(token, "secret", scope="tags.unarchived", order=_NEWEST)
    assert decoded == _cursor()


def test_cursor_invalid_signature() -> None:
    token = _cursor().encode("secret")
    with pytest.raises(CursorError):
        PageCursor.decode(token, "other", scope="tags.unarchived", order=_NEWEST)


def test_cursor_rejects_garbage() -> None:
    with pytest.raises(CursorError):
        PageCursor.decode("not-a-cursor", "secret", scope="tags.unarchived", order=_NEWEST)
    with pytest.raises(CursorError):
        PageCursor.decode("%%%.abc", "secret", scope="tags.unarchived", order=_NEWEST)


def test_cursor_error_is_validation_error() -> None:
    assert issubclass(CursorError, ValidationError)


def test_cursor_scope_mismatch_rejected() -> None:
    token = _cursor().encode("secret")
    with pytest.raises(CursorError):
        PageCursor.decode(token, "secret", scope="tags.user_history:alice", order=_NEWEST)


def test_cursor_sort_mismatch_rejected() -> None:
    token = _cursor().encode("secret")
    with pytest.raises(CursorError):
        PageCursor.decode(token, "secret", scope="tags.unarchived", order=TagOrder.parse("created_at"))


def test_cursor_version_mismatch_rejected() -> None:
    token = _signed(
        {
            "v": CURSOR_VERSION + 1,
            "scope": "tags.unarchived",
            "order": "-created_at",
            "at": _AT.isoformat(),
            "id": "tag-1",
        }
    )
    with pytest.raises(CursorError):
        PageCursor.decode(token, "secret", scope="tags.unarchived", order=_NEWEST)


def test_cursor_without_position_rejected() -> None:
    token = _signed({"v": CURSOR_VERSION, "scope": "tags.unarchived", "order": "-created_at"})
    with pytest.raises(CursorError):
        PageCursor.decode(token, "secret", scope="tags.unarchived", order=_NEWEST)


def test_order_parse_defaults_and_rejects_unknown() -> None:
    assert TagOrder.parse(None) == TagOrder("created_at", descending=True)
    assert TagOrder.parse("  ") == TagOrder("created_at", descending=True)
    assert TagOrder.parse("-status_changed_at") == TagOrder("status_changed_at", descending=True)
    assert TagOrder.parse("created_at").token == "created_at"
    with pytest.raises(CursorError):
        TagOrder.parse("location_name")


def test_cursor_position_follows_order() -> None:
    changed = datetime(2026, 3, 1, 12, 0)
    view = SimpleNamespace(
        tag=SimpleNamespace(id="tag-9", created_at=_AT),
        status=SimpleNamespace(created_at=changed),
    )
    by_created = PageCursor.after_view(view, scope="tags.unarchived", order=_NEWEST)
    by_change = PageCursor.after_view(
        view, scope="tags.unarchived", order=TagOrder.parse("-status_changed_at")
    )
    assert by_created.at == _AT
    assert by_created.tag_id == "tag-9"
    # Naive timestamps read back from SQLite are treated as UTC.
    assert by_change.at == changed.replace(tzinfo=timezone.utc)
    assert by_change.order == "-status_changed_at"
