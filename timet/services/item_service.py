"""Item service: start, stop, edit and query tracked items.

Every write sets ``updated_at`` so the sync merge can tell which copy of a row is
newer.  Deletion is a soft delete; read operations never return tombstones.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select

from timet.exceptions import ItemNotFoundError
from timet.models import Item
from timet.schemas import TrackedItem
from timet.services.datetime_service import now_timestamp, parse_time_of_day

if TYPE_CHECKING:
    from sqlalchemy import Select
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("tag", "notes", "start", "end")


def _to_record(item: Item) -> TrackedItem:
    return TrackedItem.model_validate(item, from_attributes=True)


def _touch(item: Item, now: int) -> None:
    """Advance ``updated_at`` without ever moving it backwards."""
    item.updated_at = max(now, item.updated_at or 0)


def _live_items() -> Select[tuple[Item]]:
    return select(Item).where(Item.deleted == 0)


def _find(session: Session, item_id: int) -> Item:
    item = session.scalars(_live_items().where(Item.id == item_id)).first()
    if item is None:
        raise ItemNotFoundError(item_id)
    return item


def get_item(session: Session, item_id: int) -> TrackedItem:
    """Return a live item by id; raises ItemNotFoundError."""
    return _to_record(_find(session, item_id))


def last_item(session: Session) -> TrackedItem | None:
    """Return the most recently created live item."""
    item = session.scalars(_live_items().order_by(Item.id.desc()).limit(1)).first()
    return _to_record(item) if item is not None else None


def running_item(session: Session) -> TrackedItem | None:
    """Return the item whose timer is still running, if any."""
    item = session.scalars(
        _live_items().where(Item.end.is_(None)).order_by(Item.start.desc()).limit(1)
    ).first()
    return _to_record(item) if item is not None else None


def list_items(session: Session, since: int, until: int) -> list[TrackedItem]:
    """Return live items started in ``[since, until)``, oldest first."""
    items = session.scalars(
        _live_items()
        .where(Item.start >= since, Item.start < until)
        .order_by(Item.start, Item.id)
    ).all()
    return [_to_record(item) for item in items]


def start_item(
    session: Session,
    tag: str,
    notes: str | None = None,
    pomodoro: int = 0,
    now: int | None = None,
) -> TrackedItem:
    """Start a new timer. Raises ValueError if one is already running."""
    tag = tag.strip()
    if not tag:
        raise ValueError("Tag must not be empty")
    if pomodoro < 0:
        raise ValueError("Pomodoro minutes must not be negative")
    current = running_item(session)
    if current is not None:
        raise ValueError(f"Already tracking '{current.tag}' (item {current.id})")

    now = now if now is not None else now_timestamp()
    item = Item(
        start=now,
        end=None,
        tag=tag,
        notes=notes,
        pomodoro=pomodoro,
        updated_at=now,
        created_at=now,
        deleted=0,
    )
    session.add(item)
    session.commit()
    logger.info("Started item %d (%s)", item.id, tag)
    return _to_record(item)


def stop_item(
    session: Session,
    notes: str | None = None,
    now: int | None = None,
) -> TrackedItem | None:
    """Stop the running timer. Returns None when nothing is running."""
    current = running_item(session)
    if current is None:
        return None

    now = now if now is not None else now_timestamp()
    item = _find(session, current.id)
    item.end = max(now, item.start)
    if notes is not None:
        item.notes = notes
    _touch(item, now)
    session.commit()
    logger.info("Stopped item %d", item.id)
    return _to_record(item)


def resume_item(
    session: Session,
    item_id: int | None = None,
    now: int | None = None,
) -> TrackedItem:
    """Start a new timer with the tag and notes of ``item_id`` (or the last item)."""
    source = get_item(session, item_id) if item_id is not None else last_item(session)
    if source is None:
        raise ValueError("Nothing to resume")
    return start_item(session, source.tag, source.notes, source.pomodoro, now=now)


def delete_item(session: Session, item_id: int, now: int | None = None) -> TrackedItem:
    """Soft-delete an item so the deletion propagates on the next sync."""
    item = _find(session, item_id)
    item.deleted = 1
    _touch(item, now if now is not None else now_timestamp())
    session.commit()
    logger.info("Deleted item %d", item_id)
    return _to_record(item)


def update_item(
    session: Session,
    item_id: int,
    field: str,
    value: str,
    now: int | None = None,
) -> TrackedItem:
    """Edit one field of an item.

    ``start`` and ``end`` take a time of day (``HH:MM[:SS]``) on the item's own
    date.  Raises ValueError for unknown fields or inconsistent times.
    """
    if field not in EDITABLE_FIELDS:
        raise ValueError(f"Field must be one of: {', '.join(EDITABLE_FIELDS)}")
    now = now if now is not None else now_timestamp()
    item = _find(session, item_id)

    if field == "tag":
        if not value.strip():
            raise ValueError("Tag must not be empty")
        item.tag = value.strip()
    elif field == "notes":
        item.notes = value
    else:
        reference = item.end if field == "end" and item.end is not None else item.start
        timestamp = parse_time_of_day(value, reference)
        if timestamp > now:
            raise ValueError("Time cannot be in the future")
        start = timestamp if field == "start" else item.start
        end = timestamp if field == "end" else item.end
        if end is not None and end <= start:
            raise ValueError("End time must be after start time")
        item.start, item.end = start, end

    _touch(item, now)
    session.commit()
    logger.info("Updated %s of item %d", field, item_id)
    return _to_record(item)
