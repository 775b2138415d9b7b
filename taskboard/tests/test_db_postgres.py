import unittest
from datetime import date

from sqlalchemy import Text, func, select

from taskboard.db import (
    ContactRow,
    PostgresDbClient,
    SubtaskRow,
    TaskAssignmentRow,
    TaskRow,
    UserRow,
)
from taskboard.errors import PersistenceConflict, RelationalTransactionFailure
from taskboard.types import Priority, TaskStatus


class PostgresDbClientTests(unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the Postgres client logic.
    """

    def setUp(self):
        self.db = PostgresDbClient("sqlite+pysqlite:///:memory:")
        self.user = self.db.create_user("Max Muster", "max@x.com", "pw")

    def _count(self, model) -> int:
        with self.db.Session() as session:
            return session.scalar(select(func.count()).select_from(model))

    def test_ping(self):
        self.db.ping()

    def test_create_user_derives_initials_and_hashes(self):
        self.assertEqual(self.user.initials, "MM")
        with self.db.Session() as session:
            row = session.get(UserRow, self.user.id)
            self.assertNotEqual(row.password_hash, "pw")
            self.assertTrue(row.password_hash.startswith("$2"))

    def test_create_user_duplicate_email_conflicts(self):
        with self.assertRaises(PersistenceConflict):
            self.db.create_user("Other", "MAX@x.com", "pw2")

    def test_authenticate(self):
        self.assertEqual(self.db.authenticate("max@x.com", "pw").id, self.user.id)
        self.assertIsNone(self.db.authenticate("max@x.com", "wrong"))
        self.assertIsNone(self.db.authenticate("nobody@x.com", "pw"))
        self.assertEqual(self.user.as_dict()["mail"], "max@x.com")

    def test_upsert_user_is_keyed_by_email(self):
        user_id, created = self.db.upsert_user("Anna Alt", "anna@x.com", "AA", "h1")
        self.assertTrue(created)
        again_id, created_again = self.db.upsert_user(
            "Anna Neu", "anna@x.com", "AN", "h2"
        )
        self.assertFalse(created_again)
        self.assertEqual(again_id, user_id)
        self.assertEqual(self._count(UserRow), 2)
        self.assertEqual(self.db.get_user(user_id).name, "Anna Neu")
        self.assertEqual(self.db.get_user(user_id).initials, "AN")

    def test_contact_crud_is_owner_scoped(self):
        other, _ = self.db.upsert_user("Other", "other@x.com", "O", "h")
        contact = self.db.create_contact(
            self.user.id, "eva blau", email="Eva@X.com", phone="0151", color="#ff0000"
        )
        self.assertEqual(contact.initials, "EB")
        self.assertEqual(contact.email, "eva@x.com")
        self.db.create_contact(self.user.id, "Anton Alt")

        names = [c.name for c in self.db.list_contacts(self.user.id)]
        self.assertEqual(names, ["Anton Alt", "eva blau"])
        self.assertEqual(self.db.list_contacts(other), [])

        self.assertIsNone(
            self.db.update_contact(other, contact.id, name="Hijack")
        )
        updated = self.db.update_contact(
            self.user.id, contact.id, name="Eva Grün", email=None, phone=None
        )
        self.assertEqual(updated.initials, "EG")
        self.assertIsNone(updated.email)

        self.assertFalse(self.db.delete_contact(other, contact.id))
        self.assertTrue(self.db.delete_contact(self.user.id, contact.id))
        self.assertIsNone(self.db.get_contact(self.user.id, contact.id))

    def test_find_contact_matches_name_and_email(self):
        contact = self.db.create_contact(self.user.id, "Eva", email="eva@x.com")
        self.assertEqual(
            self.db.find_contact(self.user.id, "Eva", "EVA@x.com").id, contact.id
        )
        self.assertIsNone(self.db.find_contact(self.user.id, "Eva", None))
        self.assertIsNone(self.db.find_contact(self.user.id, "Eve", "eva@x.com"))

    def test_create_task_with_subtasks_and_assignments(self):
        eva = self.db.create_contact(self.user.id, "Eva Blau")
        task = self.db.create_task(
            self.user.id,
            title="Board",
            due_date=date(2024, 6, 1),
            priority="high",
            status=TaskStatus.IN_PROGRESS,
            subtasks=[("a", True), ("b", False)],
            contact_ids=[eva.id, eva.id],
        )
        self.assertEqual(task.priority, Priority.HIGH)
        self.assertEqual([s.title for s in task.subtasks], ["a", "b"])
        self.assertEqual([c.id for c in task.assigned_contacts], [eva.id])
        self.assertEqual(self._count(TaskAssignmentRow), 1)
        self.assertEqual(task.as_dict()["due_date"], "2024-06-01")

        fetched = self.db.get_task(self.user.id, task.id)
        self.assertEqual(fetched.subtasks[0].is_completed, True)

    def test_create_task_is_atomic(self):
        eva = self.db.create_contact(self.user.id, "Eva Blau")
        with self.assertRaises(RelationalTransactionFailure):
            self.db.create_task(
                self.user.id,
                title="Broken",
                subtasks=[("ok", False), (None, False)],
                contact_ids=[eva.id],
            )
        self.assertEqual(self._count(TaskRow), 0)
        self.assertEqual(self._count(SubtaskRow), 0)
        self.assertEqual(self._count(TaskAssignmentRow), 0)

    def test_create_task_rejects_foreign_contacts(self):
        other, _ = self.db.upsert_user("Other", "other@x.com", "O", "h")
        foreign = self.db.create_contact(other, "Foreign")
        with self.assertRaises(PersistenceConflict):
            self.db.create_task(self.user.id, title="T", contact_ids=[foreign.id])
        self.assertEqual(self._count(TaskRow), 0)

    def test_create_task_can_link_foreign_contacts_when_allowed(self):
        other, _ = self.db.upsert_user("Other", "other@x.com", "O", "h")
        foreign = self.db.create_contact(other, "Foreign")
        task = self.db.create_task(
            self.user.id,
            title="T",
            contact_ids=[foreign.id],
            require_owned_contacts=False,
        )
        self.assertEqual([c.name for c in task.assigned_contacts], ["Foreign"])
        with self.assertRaises(PersistenceConflict):
            self.db.create_task(
                self.user.id,
                title="T2",
                contact_ids=[foreign.id + 100],
                require_owned_contacts=False,
            )
        self.assertEqual(self._count(TaskRow), 1)

    def test_find_contact_id_by_name_scope(self):
        other, _ = self.db.upsert_user("Other", "other@x.com", "O", "h")
        foreign = self.db.create_contact(other, "Eva Blau")
        own = self.db.create_contact(self.user.id, "Eva Blau")
        self.assertEqual(self.db.find_contact_id_by_name("Eva Blau", self.user.id), own.id)
        self.assertEqual(self.db.find_contact_id_by_name("Eva Blau"), foreign.id)
        self.assertIsNone(self.db.find_contact_id_by_name("Nobody"))

    def test_legacy_text_columns_are_unbounded(self):
        for column in (
            UserRow.__table__.c.name,
            UserRow.__table__.c.initials,
            UserRow.__table__.c.email,
            ContactRow.__table__.c.name,
            ContactRow.__table__.c.email,
            ContactRow.__table__.c.phone,
            ContactRow.__table__.c.initials,
            ContactRow.__table__.c.color,
            TaskRow.__table__.c.title,
            TaskRow.__table__.c.category,
            SubtaskRow.__table__.c.title,
        ):
            self.assertIsInstance(column.type, Text, column)

        long_name = " ".join(f"Name{i}" for i in range(40))
        contact = self.db.create_contact(self.user.id, long_name)
        self.assertEqual(len(contact.initials), 40)
        task = self.db.create_task(
            self.user.id,
            title="x" * 1000,
            category="c" * 300,
            subtasks=[("s" * 500, False)],
            contact_ids=[contact.id],
        )
        fetched = self.db.get_task(self.user.id, task.id)
        self.assertEqual(len(fetched.title), 1000)
        self.assertEqual(len(fetched.subtasks[0].title), 500)

    def test_update_and_delete_task_cascades(self):
        eva = self.db.create_contact(self.user.id, "Eva Blau")
        task = self.db.create_task(
            self.user.id, title="T", subtasks=[("a", False)], contact_ids=[eva.id]
        )
        updated = self.db.update_task(
            self.user.id, task.id, title="T2", priority=Priority.LOW, status="done"
        )
        self.assertEqual(updated.title, "T2")
        self.assertEqual(updated.status, TaskStatus.DONE)
        moved = self.db.update_task_status(self.user.id, task.id, "awaiting_feedback")
        self.assertEqual(moved.status, TaskStatus.AWAITING_FEEDBACK)
        with self.assertRaises(ValueError):
            self.db.update_task_status(self.user.id, task.id, "blocked")

        self.assertTrue(self.db.delete_task(self.user.id, task.id))
        self.assertFalse(self.db.delete_task(self.user.id, task.id))
        self.assertEqual(self._count(SubtaskRow), 0)
        self.assertEqual(self._count(TaskAssignmentRow), 0)

    def test_deleting_contact_removes_assignments(self):
        eva = self.db.create_contact(self.user.id, "Eva Blau")
        task = self.db.create_task(self.user.id, title="T", contact_ids=[eva.id])
        self.db.delete_contact(self.user.id, eva.id)
        self.assertEqual(self.db.get_task(self.user.id, task.id).assigned_contacts, [])

    def test_list_tasks_is_owner_scoped(self):
        other, _ = self.db.upsert_user("Other", "other@x.com", "O", "h")
        self.db.create_task(self.user.id, title="mine")
        self.db.create_task(other, title="theirs")
        self.assertEqual([t.title for t in self.db.list_tasks(self.user.id)], ["mine"])
        self.assertIsNone(self.db.get_task(other, self.db.list_tasks(self.user.id)[0].id))

    def test_summary_metrics(self):
        rows = [
            ("a", "todo", "high", date(2024, 7, 1)),
            ("b", "done", "high", date(2024, 1, 1)),
            ("c", "in_progress", "high", date(2024, 3, 1)),
            ("d", "awaiting_feedback", "medium", None),
        ]
        for title, status, priority, due_date in rows:
            self.db.create_task(
                self.user.id,
                title=title,
                status=status,
                priority=priority,
                due_date=due_date,
            )

        metrics = self.db.summary_metrics(self.user.id)
        self.assertEqual(metrics.todo_count, 1)
        self.assertEqual(metrics.done_count, 1)
        self.assertEqual(metrics.in_progress_count, 1)
        self.assertEqual(metrics.awaiting_feedback_count, 1)
        self.assertEqual(metrics.high_priority_count, 3)
        self.assertEqual(metrics.total_tasks, 4)
        self.assertEqual(metrics.urgent_deadline, date(2024, 3, 1))

    def test_summary_metrics_empty(self):
        metrics = self.db.summary_metrics(self.user.id)
        self.assertEqual(metrics.total_tasks, 0)
        self.assertIsNone(metrics.urgent_deadline)
        self.assertIsNone(metrics.as_dict()["urgent_deadline"])

    def test_deleting_user_cascades_to_owned_rows(self):
        self.db.create_contact(self.user.id, "Eva Blau")
        self.db.create_task(self.user.id, title="T", subtasks=[("a", False)])
        with self.db.Session() as session:
            session.delete(session.get(UserRow, self.user.id))
            session.commit()
        self.assertEqual(self._count(ContactRow), 0)
        self.assertEqual(self._count(TaskRow), 0)
        self.assertEqual(self._count(SubtaskRow), 0)


if __name__ == "__main__":
    unittest.main()
