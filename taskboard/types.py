"""
Enumerations shared by the schemas, the relational client and the migration.
"""

from __future__ import annotations

from enum import Enum


class TaskStatus(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    AWAITING_FEEDBACK = "awaiting_feedback"
    DONE = "done"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class EntityType(str, Enum):
    USER = "user"
    CONTACT = "contact"
    TASK = "task"


class MigrationState(str, Enum):
    NOT_STARTED = "NotStarted"
    MIGRATING_USERS = "MigratingUsers"
    MIGRATING_CONTACTS = "MigratingContacts"
    MIGRATING_TASKS = "MigratingTasks"
    COMPLETED = "Completed"
    FAILED = "Failed"
