"""
Relational data layer for users, contacts and tasks.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional, Protocol, Sequence

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    case,
    create_engine,
    delete,
    event,
    func,
    select,
    text,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker

from taskboard.errors import PersistenceConflict, RelationalTransactionFailure
from taskboard.passwords import check_password, hash_password
from taskboard.string_utils import make_initials, normalize_email
from taskboard.types import Priority, TaskStatus


class DbClient(Protocol):
    """Interface for relational access used by the migration and the API layer."""

    def ping(self) -> None:
        ...

    def upsert_user(
        self, name: str, email: str, initials: str, password_hash: str
    ) -> tuple[int, bool]:
        ...

    def create_user(self, name: str, email: str, password: str) -> "UserRecord":
        ...

    def get_user(self, user_id: int) -> Optional["UserRecord"]:
        ...

    def authenticate(self, email: str, password: str) -> Optional["UserRecord"]:
        ...

    def create_contact(
        self,
        owner_user_id: int,
        name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        color: Optional[str] = None,
    ) -> "ContactRecord":
        ...

    def get_contact(
        self, owner_user_id: int, contact_id: int
    ) -> Optional["ContactRecord"]:
        ...

    def find_contact(
        self, owner_user_id: int, name: str, email: Optional[str]
    ) -> Optional["ContactRecord"]:
        ...

    def find_contact_id_by_name(
        self, name: str, owner_user_id: Optional[int] = None
    ) -> Optional[int]:
        ...

    def list_contacts(self, owner_user_id: int) -> list["ContactRecord"]:
        ...

    def update_contact(
        self,
        owner_user_id: int,
        contact_id: int,
        *,
        name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Optional["ContactRecord"]:
        ...

    def delete_contact(self, owner_user_id: int, contact_id: int) -> bool:
        ...

    def create_task(
        self,
        creator_user_id: int,
        *,
        title: Optional[str],
        description: Optional[str] = None,
        due_date: Optional[date] = None,
        priority: Priority | str = Priority.MEDIUM,
        category: Optional[str] = None,
        status: TaskStatus | str = TaskStatus.TODO,
        subtasks: Iterable[tuple[Optional[str], bool]] = (),
        contact_ids: Iterable[int] = (),
        require_owned_contacts: bool = True,
    ) -> "TaskRecord":
        ...

    def get_task(self, creator_user_id: int, task_id: int) -> Optional["TaskRecord"]:
        ...

    def list_tasks(self, creator_user_id: int) -> list["TaskRecord"]:
        ...

    def update_task(
        self,
        creator_user_id: int,
        task_id: int,
        *,
        title: str,
        description: Optional[str] = None,
        due_date: Optional[date] = None,
        priority: Priority | str = Priority.MEDIUM,
        category: Optional[str] = None,
        status: TaskStatus | str = TaskStatus.TODO,
    ) -> Optional["TaskRecord"]:
        ...

    def update_task_status(
        self, creator_user_id: int, task_id: int, status: TaskStatus | str
    ) -> Optional["TaskRecord"]:
        ...

    def delete_task(self, creator_user_id: int, task_id: int) -> bool:
        ...

    def summary_metrics(self, creator_user_id: int) -> "SummaryMetrics":
        ...


@dataclass
class UserRecord:
    id: int
    name: str
    initials: str
    email: str
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "initials": self.initials,
            "email": self.email,
            # Legacy clients read the address from "mail".
            "mail": self.email,
        }


@dataclass
class ContactRecord:
    id: int
    owner_user_id: int
    name: str
    email: Optional[str]
    phone: Optional[str]
    initials: str
    color: Optional[str]
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_user_id": self.owner_user_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "initials": self.initials,
            "color": self.color,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class SubtaskRecord:
    id: int
    title: str
    is_completed: bool

    def as_dict(self) -> dict:
        return {"id": self.id, "title": self.title, "is_completed": self.is_completed}


@dataclass
class TaskRecord:
    id: int
    creator_user_id: int
    title: str
    description: Optional[str]
    due_date: Optional[date]
    priority: Priority
    category: Optional[str]
    status: TaskStatus
    subtasks: list[SubtaskRecord] = field(default_factory=list)
    assigned_contacts: list[ContactRecord] = field(default_factory=list)
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "creator_user_id": self.creator_user_id,
            "title": self.title,
            "description": self.description,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "priority": self.priority.value,
            "category": self.category,
            "status": self.status.value,
            "subtasks": [subtask.as_dict() for subtask in self.subtasks],
            "assigned_contacts": [
                {
                    "id": contact.id,
                    "name": contact.name,
                    "initials": contact.initials,
                    "color": contact.color,
                }
                for contact in self.assigned_contacts
            ],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class SummaryMetrics:
    todo_count: int = 0
    in_progress_count: int = 0
    awaiting_feedback_count: int = 0
    done_count: int = 0
    high_priority_count: int = 0
    total_tasks: int = 0
    urgent_deadline: Optional[date] = None

    def as_dict(self) -> dict:
        return {
            "todo_count": self.todo_count,
            "in_progress_count": self.in_progress_count,
            "awaiting_feedback_count": self.awaiting_feedback_count,
            "done_count": self.done_count,
            "high_priority_count": self.high_priority_count,
            "total_tasks": self.total_tasks,
            "urgent_deadline": (
                self.urgent_deadline.isoformat() if self.urgent_deadline else None
            ),
        }


def _error_message(exc: SQLAlchemyError) -> str:
    orig = getattr(exc, "orig", None)
    return str(orig) if orig is not None else str(exc)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def ping(self) -> None:
        with self.engine.connect() as connection:
            connection.execute(text("SELECT 1"))

    # -- record conversion -------------------------------------------------

    def _to_user_record(self, user: "UserRow") -> UserRecord:
        return UserRecord(
            id=user.id,
            name=user.name,
            initials=user.initials,
            email=user.email,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )

    def _to_contact_record(self, contact: "ContactRow") -> ContactRecord:
        return ContactRecord(
            id=contact.id,
            owner_user_id=contact.owner_user_id,
            name=contact.name,
            email=contact.email,
            phone=contact.phone,
            initials=contact.initials,
            color=contact.color,
            created_at=contact.created_at,
            updated_at=contact.updated_at,
        )

    def _to_task_record(self, task: "TaskRow") -> TaskRecord:
        return TaskRecord(
            id=task.id,
            creator_user_id=task.creator_user_id,
            title=task.title,
            description=task.description,
            due_date=task.due_date,
            priority=Priority(task.priority),
            category=task.category,
            status=TaskStatus(task.status),
            subtasks=[
                SubtaskRecord(id=s.id, title=s.title, is_completed=s.is_completed)
                for s in task.subtasks
            ],
            assigned_contacts=sorted(
                (self._to_contact_record(a.contact) for a in task.assignments),
                key=lambda contact: contact.id,
            ),
            created_at=task.created_at,
            updated_at=task.updated_at,
        )

    # -- users -------------------------------------------------------------

    def upsert_user(
        self, name: str, email: str, initials: str, password_hash: str
    ) -> tuple[int, bool]:
        """
        Insert a user or update the row that already holds ``email``.

        The existing id is kept on update so rows migrated earlier that point
        at this user stay valid. Returns ``(id, created)``.
        """
        email = normalize_email(email)
        if not email:
            raise ValueError("email is required")
        now = time.time()
        try:
            with self.Session() as session:
                existing = session.execute(
                    select(UserRow).where(UserRow.email == email)
                ).scalar_one_or_none()
                if existing:
                    existing.name = name
                    existing.initials = initials
                    existing.password_hash = password_hash
                    existing.updated_at = now
                    session.commit()
                    return existing.id, False
                user = UserRow(
                    name=name,
                    initials=initials,
                    email=email,
                    password_hash=password_hash,
                    created_at=now,
                    updated_at=now,
                )
                session.add(user)
                session.commit()
                return user.id, True
        except IntegrityError as exc:
            raise PersistenceConflict(
                f"user {email} conflicts with an existing row: {_error_message(exc)}"
            ) from exc

    def create_user(self, name: str, email: str, password: str) -> UserRecord:
        email = normalize_email(email)
        if not email:
            raise ValueError("email is required")
        now = time.time()
        user = UserRow(
            name=name,
            initials=make_initials(name),
            email=email,
            password_hash=hash_password(password),
            created_at=now,
            updated_at=now,
        )
        try:
            with self.Session() as session:
                session.add(user)
                session.commit()
                return self._to_user_record(user)
        except IntegrityError as exc:
            raise PersistenceConflict("Email already exists") from exc

    def get_user(self, user_id: int) -> Optional[UserRecord]:
        with self.Session() as session:
            user = session.get(UserRow, user_id)
            return self._to_user_record(user) if user else None

    def authenticate(self, email: str, password: str) -> Optional[UserRecord]:
        email = normalize_email(email)
        with self.Session() as session:
            user = session.execute(
                select(UserRow).where(UserRow.email == email)
            ).scalar_one_or_none()
            if not user or not check_password(password, user.password_hash):
                return None
            return self._to_user_record(user)

    # -- contacts ----------------------------------------------------------

    def create_contact(
        self,
        owner_user_id: int,
        name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        color: Optional[str] = None,
    ) -> ContactRecord:
        now = time.time()
        contact = ContactRow(
            owner_user_id=owner_user_id,
            name=name,
            email=normalize_email(email),
            phone=phone,
            initials=make_initials(name),
            color=color,
            created_at=now,
            updated_at=now,
        )
        try:
            with self.Session() as session:
                session.add(contact)
                session.commit()
                return self._to_contact_record(contact)
        except IntegrityError as exc:
            raise PersistenceConflict(
                f"contact {name!r} rejected: {_error_message(exc)}"
            ) from exc

    def get_contact(
        self, owner_user_id: int, contact_id: int
    ) -> Optional[ContactRecord]:
        with self.Session() as session:
            contact = session.get(ContactRow, contact_id)
            if not contact or contact.owner_user_id != owner_user_id:
                return None
            return self._to_contact_record(contact)

    def find_contact(
        self, owner_user_id: int, name: str, email: Optional[str]
    ) -> Optional[ContactRecord]:
        email = normalize_email(email)
        with self.Session() as session:
            stmt = (
                select(ContactRow)
                .where(
                    ContactRow.owner_user_id == owner_user_id,
                    ContactRow.name == name,
                    ContactRow.email.is_(None)
                    if email is None
                    else ContactRow.email == email,
                )
                .order_by(ContactRow.id.asc())
                .limit(1)
            )
            contact = session.execute(stmt).scalar_one_or_none()
            return self._to_contact_record(contact) if contact else None

    def find_contact_id_by_name(
        self, name: str, owner_user_id: Optional[int] = None
    ) -> Optional[int]:
        """Lowest contact id with this name, among one owner's contacts or store-wide."""
        stmt = select(ContactRow.id).where(ContactRow.name == name)
        if owner_user_id is not None:
            stmt = stmt.where(ContactRow.owner_user_id == owner_user_id)
        with self.Session() as session:
            return session.execute(
                stmt.order_by(ContactRow.id.asc()).limit(1)
            ).scalar_one_or_none()

    def list_contacts(self, owner_user_id: int) -> list[ContactRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(ContactRow)
                .where(ContactRow.owner_user_id == owner_user_id)
                .order_by(ContactRow.name.asc(), ContactRow.id.asc())
            ).scalars()
            return [self._to_contact_record(row) for row in rows]

    def update_contact(
        self,
        owner_user_id: int,
        contact_id: int,
        *,
        name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Optional[ContactRecord]:
        with self.Session() as session:
            contact = session.get(ContactRow, contact_id)
            if not contact or contact.owner_user_id != owner_user_id:
                return None
            contact.name = name
            contact.initials = make_initials(name)
            contact.email = normalize_email(email)
            contact.phone = phone
            contact.color = color
            contact.updated_at = time.time()
            session.commit()
            return self._to_contact_record(contact)

    def delete_contact(self, owner_user_id: int, contact_id: int) -> bool:
        with self.Session() as session:
            result = session.execute(
                delete(ContactRow).where(
                    ContactRow.id == contact_id,
                    ContactRow.owner_user_id == owner_user_id,
                )
            )
            session.commit()
            return bool(result.rowcount)

    # -- tasks -------------------------------------------------------------

    def create_task(
        self,
        creator_user_id: int,
        *,
        title: Optional[str],
        description: Optional[str] = None,
        due_date: Optional[date] = None,
        priority: Priority | str = Priority.MEDIUM,
        category: Optional[str] = None,
        status: TaskStatus | str = TaskStatus.TODO,
        subtasks: Iterable[tuple[Optional[str], bool]] = (),
        contact_ids: Iterable[int] = (),
        require_owned_contacts: bool = True,
    ) -> TaskRecord:
        """
        Insert a task with its subtasks and contact assignments atomically.

        Either every row is committed or none is. Contacts must exist and,
        unless ``require_owned_contacts`` is off, belong to the creator.
        Repeated contact ids produce a single assignment.
        """
        priority = Priority(priority)
        status = TaskStatus(status)
        unique_contact_ids = list(dict.fromkeys(contact_ids))
        now = time.time()
        try:
            with self.Session() as session:
                with session.begin():
                    self._check_contacts(
                        session,
                        unique_contact_ids,
                        creator_user_id if require_owned_contacts else None,
                    )
                    task = TaskRow(
                        creator_user_id=creator_user_id,
                        title=title,
                        description=description,
                        due_date=due_date,
                        priority=priority.value,
                        category=category,
                        status=status.value,
                        created_at=now,
                        updated_at=now,
                    )
                    session.add(task)
                    session.flush()
                    for subtask_title, is_completed in subtasks:
                        session.add(
                            SubtaskRow(
                                task_id=task.id,
                                title=subtask_title,
                                is_completed=bool(is_completed),
                            )
                        )
                    for contact_id in unique_contact_ids:
                        session.add(
                            TaskAssignmentRow(task_id=task.id, contact_id=contact_id)
                        )
                    session.flush()
                    task_id = task.id
                return self._load_task(session, task_id)
        except SQLAlchemyError as exc:
            raise RelationalTransactionFailure(_error_message(exc)) from exc

    def _check_contacts(
        self,
        session: Session,
        contact_ids: Sequence[int],
        owner_user_id: Optional[int],
    ) -> None:
        if not contact_ids:
            return
        stmt = select(ContactRow.id).where(ContactRow.id.in_(contact_ids))
        if owner_user_id is not None:
            stmt = stmt.where(ContactRow.owner_user_id == owner_user_id)
        found = set(session.execute(stmt).scalars())
        missing = [cid for cid in contact_ids if cid not in found]
        if missing:
            raise PersistenceConflict(
                f"contacts {missing} do not exist or belong to another user"
            )

    def _load_task(self, session: Session, task_id: int) -> TaskRecord:
        session.expire_all()
        task = session.get(TaskRow, task_id)
        return self._to_task_record(task)

    def get_task(self, creator_user_id: int, task_id: int) -> Optional[TaskRecord]:
        with self.Session() as session:
            task = session.get(TaskRow, task_id)
            if not task or task.creator_user_id != creator_user_id:
                return None
            return self._to_task_record(task)

    def list_tasks(self, creator_user_id: int) -> list[TaskRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(TaskRow)
                .where(TaskRow.creator_user_id == creator_user_id)
                .order_by(TaskRow.created_at.desc(), TaskRow.id.desc())
            ).scalars()
            return [self._to_task_record(row) for row in rows]

    def update_task(
        self,
        creator_user_id: int,
        task_id: int,
        *,
        title: str,
        description: Optional[str] = None,
        due_date: Optional[date] = None,
        priority: Priority | str = Priority.MEDIUM,
        category: Optional[str] = None,
        status: TaskStatus | str = TaskStatus.TODO,
    ) -> Optional[TaskRecord]:
        priority = Priority(priority)
        status = TaskStatus(status)
        with self.Session() as session:
            task = session.get(TaskRow, task_id)
            if not task or task.creator_user_id != creator_user_id:
                return None
            task.title = title
            task.description = description
            task.due_date = due_date
            task.priority = priority.value
            task.category = category
            task.status = status.value
            task.updated_at = time.time()
            session.commit()
            return self._to_task_record(task)

    def update_task_status(
        self, creator_user_id: int, task_id: int, status: TaskStatus | str
    ) -> Optional[TaskRecord]:
        status = TaskStatus(status)
        with self.Session() as session:
            task = session.get(TaskRow, task_id)
            if not task or task.creator_user_id != creator_user_id:
                return None
            task.status = status.value
            task.updated_at = time.time()
            session.commit()
            return self._to_task_record(task)

    def delete_task(self, creator_user_id: int, task_id: int) -> bool:
        with self.Session() as session:
            result = session.execute(
                delete(TaskRow).where(
                    TaskRow.id == task_id,
                    TaskRow.creator_user_id == creator_user_id,
                )
            )
            session.commit()
            return bool(result.rowcount)

    def summary_metrics(self, creator_user_id: int) -> SummaryMetrics:
        def count_where(condition):
            return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)

        stmt = select(
            count_where(TaskRow.status == TaskStatus.TODO.value),
            count_where(TaskRow.status == TaskStatus.IN_PROGRESS.value),
            count_where(TaskRow.status == TaskStatus.AWAITING_FEEDBACK.value),
            count_where(TaskRow.status == TaskStatus.DONE.value),
            count_where(TaskRow.priority == Priority.HIGH.value),
            func.count(TaskRow.id),
            func.min(
                case(
                    (
                        (TaskRow.priority == Priority.HIGH.value)
                        & (TaskRow.status != TaskStatus.DONE.value),
                        TaskRow.due_date,
                    ),
                )
            ),
        ).where(TaskRow.creator_user_id == creator_user_id)
        with self.Session() as session:
            row = session.execute(stmt).one()
        urgent_deadline = row[6]
        if isinstance(urgent_deadline, str):
            # Some drivers hand back the raw ISO string for MIN(date).
            urgent_deadline = date.fromisoformat(urgent_deadline)
        return SummaryMetrics(
            todo_count=int(row[0]),
            in_progress_count=int(row[1]),
            awaiting_feedback_count=int(row[2]),
            done_count=int(row[3]),
            high_priority_count=int(row[4]),
            total_tasks=int(row[5]),
            urgent_deadline=urgent_deadline,
        )


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=True)
    initials = Column(Text, nullable=False, default="")
    email = Column(Text, nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class ContactRow(Base):
    __tablename__ = "contacts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(Text, nullable=False)
    email = Column(Text, nullable=True)
    phone = Column(Text, nullable=True)
    initials = Column(Text, nullable=False, default="")
    color = Column(Text, nullable=True)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class TaskRow(Base):
    __tablename__ = "tasks"
    __table_args__ = (
        CheckConstraint(
            "priority IN ('low', 'medium', 'high')", name="ck_tasks_priority"
        ),
        CheckConstraint(
            "status IN ('todo', 'in_progress', 'awaiting_feedback', 'done')",
            name="ck_tasks_status",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    creator_user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    due_date = Column(Date, nullable=True)
    priority = Column(String(16), nullable=False, default=Priority.MEDIUM.value)
    category = Column(Text, nullable=True)
    status = Column(String(32), nullable=False, default=TaskStatus.TODO.value, index=True)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)

    subtasks = relationship(
        "SubtaskRow",
        order_by="SubtaskRow.id",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )
    assignments = relationship(
        "TaskAssignmentRow",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )


class SubtaskRow(Base):
    __tablename__ = "subtasks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_id = Column(
        Integer,
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title = Column(Text, nullable=False)
    is_completed = Column(Boolean, nullable=False, default=False)


class TaskAssignmentRow(Base):
    __tablename__ = "task_assignments"
    __table_args__ = (
        UniqueConstraint("task_id", "contact_id", name="uq_task_assignments_task_contact"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_id = Column(
        Integer,
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    contact_id = Column(
        Integer,
        ForeignKey("contacts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    contact = relationship("ContactRow", lazy="joined")
