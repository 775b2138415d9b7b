"""
Field normalization for legacy Firebase records.

Every function here is pure: it reads a raw string-keyed mapping and returns
a canonical pydantic record. Missing or unrecognized values are replaced by
documented defaults and logged at DEBUG; nothing in this module raises for a
malformed record.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Optional

from taskboard.schemas import (
    CanonicalAssignee,
    CanonicalContact,
    CanonicalSubtask,
    CanonicalTask,
    CanonicalUser,
)
from taskboard.string_utils import make_initials, normalize_email
from taskboard.types import Priority, TaskStatus

logger = logging.getLogger(__name__)

STATUS_TOKENS = {
    "toDo": TaskStatus.TODO,
    "inProgress": TaskStatus.IN_PROGRESS,
    "awaitFeedback": TaskStatus.AWAITING_FEEDBACK,
    "done": TaskStatus.DONE,
}

PRIORITY_SYNONYMS = {
    "urgent": Priority.HIGH,
}

DMY_DATE_PATTERN = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")


def field_value(raw: Mapping[str, Any], *aliases: str, default: Any = None) -> Any:
    """
    Return the value of the first alias present in ``raw``.

    ``None`` and blank strings count as absent, so a later alias can fill in
    for an earlier one left empty by the legacy client. Falls back to
    ``default`` when no alias carries a value.
    """
    for alias in aliases:
        value = raw.get(alias)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return default


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_status(token: Any) -> TaskStatus:
    if isinstance(token, str):
        if token in STATUS_TOKENS:
            return STATUS_TOKENS[token]
        try:
            return TaskStatus(token)
        except ValueError:
            pass
    logger.debug("Unrecognized status token %r, defaulting to todo", token)
    return TaskStatus.TODO


def normalize_priority(token: Any) -> Priority:
    if token is None:
        return Priority.MEDIUM
    key = str(token).strip().lower()
    if key in PRIORITY_SYNONYMS:
        return PRIORITY_SYNONYMS[key]
    try:
        return Priority(key)
    except ValueError:
        logger.debug("Unrecognized priority token %r, defaulting to medium", token)
        return Priority.MEDIUM


def normalize_due_date(value: Any) -> Optional[date]:
    """Accept ``YYYY-MM-DD`` (optionally with a time part) or ``DD/MM/YYYY``."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = _text(value)
    if not text:
        return None
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    match = DMY_DATE_PATTERN.match(text)
    if match:
        day, month, year = (int(part) for part in match.groups())
        try:
            return date(year, month, day)
        except ValueError:
            pass
    logger.debug("Unparseable due date %r, leaving empty", value)
    return None


def _entries(value: Any) -> list[Any]:
    """
    Flatten a legacy collection field into a list.

    Firebase stores arrays with holes as objects keyed by index ("0", "2"),
    so both shapes are accepted. Null holes are dropped.
    """
    if value is None:
        return []
    if isinstance(value, Mapping):
        items: Iterable[Any] = [
            value[key] for key in sorted(value, key=_index_sort_key)
        ]
    elif isinstance(value, (list, tuple)):
        items = value
    else:
        items = [value]
    return [item for item in items if item is not None]


def _index_sort_key(key: Any) -> tuple[int, Any]:
    text = str(key)
    return (0, int(text)) if text.isdecimal() else (1, text)


def _bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes", "done"}
    return bool(value)


def normalize_subtask(entry: Any) -> CanonicalSubtask:
    if isinstance(entry, Mapping):
        return CanonicalSubtask(
            title=_text(field_value(entry, "title", "Title")),
            is_completed=_bool(
                field_value(entry, "completed", "is_completed", "done", default=False)
            ),
        )
    return CanonicalSubtask(title=_text(entry))


def normalize_assignee(entry: Any) -> Optional[CanonicalAssignee]:
    """
    A bare string may be a contact key or a display name, so it fills both.
    Mapping entries keep their ``id`` and ``name`` apart.
    """
    if isinstance(entry, Mapping):
        key = _text(field_value(entry, "id", "key"))
        name = _text(field_value(entry, "name"))
    else:
        key = name = _text(entry)
    if key is None and name is None:
        return None
    return CanonicalAssignee(key=key, name=name)


def normalize_user(raw: Mapping[str, Any]) -> CanonicalUser:
    name = _text(field_value(raw, "name"))
    password = field_value(raw, "password")
    return CanonicalUser(
        name=name,
        email=normalize_email(field_value(raw, "mail", "email")),
        password=str(password) if password is not None else None,
        initials=make_initials(name),
    )


def normalize_contact(raw: Mapping[str, Any]) -> CanonicalContact:
    name = _text(field_value(raw, "name"))
    return CanonicalContact(
        name=name,
        email=normalize_email(field_value(raw, "email", "mail")),
        phone=_text(field_value(raw, "telefonnummer", "phone")),
        color=_text(field_value(raw, "color")),
        initials=make_initials(name),
        owner_ref=_text(field_value(raw, "owner", "ownerId", "userId")),
    )


def normalize_task(raw: Mapping[str, Any]) -> CanonicalTask:
    assignees = []
    for entry in _entries(field_value(raw, "AssignedTo")):
        assignee = normalize_assignee(entry)
        if assignee is None:
            logger.debug("Dropping empty assignee entry %r", entry)
            continue
        assignees.append(assignee)

    return CanonicalTask(
        title=_text(field_value(raw, "Title", "title")),
        description=_text(field_value(raw, "Description", "description")),
        due_date=normalize_due_date(field_value(raw, "DueDate", "dueDate")),
        priority=normalize_priority(field_value(raw, "Prio", "priority")),
        category=_text(field_value(raw, "Category", "category")),
        status=normalize_status(field_value(raw, "PositionID", "status")),
        creator_ref=_text(field_value(raw, "CreatedBy", "creatorId", "userId")),
        subtasks=tuple(
            normalize_subtask(entry) for entry in _entries(field_value(raw, "Subtasks"))
        ),
        assignees=tuple(assignees),
    )
