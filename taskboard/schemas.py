"""
Pydantic schemas for normalized legacy records.

These are the canonical shapes the loader writes; every legacy alias and
token has already been resolved by ``taskboard.normalize``.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from taskboard.types import Priority, TaskStatus


class CanonicalUser(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = Field(default=None, repr=False)
    initials: str = ""


class CanonicalContact(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    color: Optional[str] = None
    initials: str = ""
    owner_ref: Optional[str] = None


class CanonicalSubtask(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Left empty when the legacy entry has no title; the insert then fails.
    title: Optional[str] = None
    is_completed: bool = False


class CanonicalAssignee(BaseModel):
    """One legacy assignment entry: a contact key, a display name, or both."""

    model_config = ConfigDict(frozen=True)

    key: Optional[str] = None
    name: Optional[str] = None

    @property
    def label(self) -> str:
        return self.name or self.key or ""


class CanonicalTask(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[date] = None
    priority: Priority = Priority.MEDIUM
    category: Optional[str] = None
    status: TaskStatus = TaskStatus.TODO
    creator_ref: Optional[str] = None
    subtasks: tuple[CanonicalSubtask, ...] = ()
    # In legacy order.
    assignees: tuple[CanonicalAssignee, ...] = ()
