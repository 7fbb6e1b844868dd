"""
Opaque continuation cursors for keyset pagination.

A cursor is the URL-safe base64 encoding of a small JSON object holding the
last returned row's sort key. Clients must treat it as opaque.
"""

import base64
import binascii
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Sequence, TypeVar

from sqlalchemy import and_, or_

from voicejournal.shared.exceptions import ValidationError

T = TypeVar("T")


@dataclass(frozen=True)
class PageKey:
    """Sort key of the last row on a page (newest-first ordering)."""

    created_at: datetime
    key: str


def encode_cursor(page_key: PageKey) -> str:
    payload = {"createdAt": page_key.created_at.isoformat(), "key": page_key.key}
    raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def decode_cursor(cursor: str) -> PageKey:
    """Decode a cursor produced by encode_cursor.

    Raises:
        ValidationError: If the cursor is malformed.
    """
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        data: Any = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
        return PageKey(
            created_at=datetime.fromisoformat(data["createdAt"]),
            key=str(data["key"]),
        )
    except (binascii.Error, UnicodeError, ValueError, KeyError, TypeError) as exc:
        raise ValidationError(message="Invalid cursor") from exc


def keyset_before(created_col: Any, key_col: Any, after: PageKey) -> Any:
    """WHERE clause selecting rows strictly after ``after`` in newest-first order."""
    return or_(
        created_col < after.created_at,
        and_(created_col == after.created_at, key_col < after.key),
    )


def split_page(rows: Sequence[T], limit: int, key_of: Callable[[T], PageKey]) -> tuple[list[T], str | None]:
    """Trim a ``limit + 1`` fetch to one page and derive the next cursor.

    Returns:
        Tuple of (page rows, next cursor or None when this is the last page).
    """
    page = list(rows[:limit])
    if len(rows) <= limit or not page:
        return page, None
    return page, encode_cursor(key_of(page[-1]))


def clamp_page_size(limit: int | None, default: int, maximum: int) -> int:
    if limit is None:
        return default
    return max(1, min(limit, maximum))
