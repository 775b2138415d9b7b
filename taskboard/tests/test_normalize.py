import unittest
from datetime import date

from taskboard.normalize import (
    field_value,
    normalize_contact,
    normalize_due_date,
    normalize_priority,
    normalize_status,
    normalize_task,
    normalize_user,
)
from taskboard.types import Priority, TaskStatus


class StatusTests(unittest.TestCase):
    def test_legacy_tokens(self):
        cases = {
            "toDo": TaskStatus.TODO,
            "inProgress": TaskStatus.IN_PROGRESS,
            "awaitFeedback": TaskStatus.AWAITING_FEEDBACK,
            "done": TaskStatus.DONE,
        }
        for token, expected in cases.items():
            with self.subTest(token=token):
                self.assertEqual(normalize_status(token), expected)

    def test_unrecognized_tokens_fall_back_to_todo(self):
        for token in ["archived", "", None, 3, {"x": 1}, "ToDo"]:
            with self.subTest(token=token):
                self.assertEqual(normalize_status(token), TaskStatus.TODO)

    def test_canonical_tokens_pass_through(self):
        self.assertEqual(normalize_status("in_progress"), TaskStatus.IN_PROGRESS)
        self.assertEqual(
            normalize_status("awaiting_feedback"), TaskStatus.AWAITING_FEEDBACK
        )


class PriorityTests(unittest.TestCase):
    def test_tokens(self):
        cases = {
            "urgent": Priority.HIGH,
            "high": Priority.HIGH,
            "medium": Priority.MEDIUM,
            "low": Priority.LOW,
            None: Priority.MEDIUM,
            "Urgent": Priority.HIGH,
            "whenever": Priority.MEDIUM,
        }
        for token, expected in cases.items():
            with self.subTest(token=token):
                self.assertEqual(normalize_priority(token), expected)


class DueDateTests(unittest.TestCase):
    def test_formats(self):
        self.assertEqual(normalize_due_date("2024-05-12"), date(2024, 5, 12))
        self.assertEqual(normalize_due_date("2024-05-12T08:30:00"), date(2024, 5, 12))
        self.assertEqual(normalize_due_date("12/05/2024"), date(2024, 5, 12))
        self.assertEqual(normalize_due_date(date(2024, 1, 2)), date(2024, 1, 2))

    def test_unparseable_dates_are_dropped(self):
        for value in ["", None, "soon", "31/02/2024", 42]:
            with self.subTest(value=value):
                self.assertIsNone(normalize_due_date(value))


class FieldValueTests(unittest.TestCase):
    def test_first_present_alias_wins(self):
        raw = {"telefonnummer": "", "phone": "0151"}
        self.assertEqual(field_value(raw, "telefonnummer", "phone"), "0151")
        self.assertEqual(field_value(raw, "fax", default="n/a"), "n/a")

    def test_falsy_non_blank_values_count(self):
        self.assertEqual(field_value({"done": False}, "done", default=True), False)


class RecordTests(unittest.TestCase):
    def test_user_mail_alias_and_initials(self):
        user = normalize_user(
            {"name": "Max Muster", "mail": " Max@X.com ", "password": "pw", "initials": "ZZ"}
        )
        self.assertEqual(user.email, "max@x.com")
        self.assertEqual(user.initials, "MM")
        self.assertEqual(user.password, "pw")

        other = normalize_user({"name": "anna", "email": "anna@x.com"})
        self.assertEqual(other.email, "anna@x.com")
        self.assertEqual(other.initials, "A")
        self.assertIsNone(other.password)

    def test_contact_phone_aliases(self):
        legacy = normalize_contact({"name": "Eva Blau", "telefonnummer": "0151 123"})
        modern = normalize_contact({"name": "Eva Blau", "phone": "0151 456"})
        self.assertEqual(legacy.phone, "0151 123")
        self.assertEqual(modern.phone, "0151 456")
        self.assertEqual(legacy.initials, "EB")
        self.assertIsNone(legacy.owner_ref)

    def test_task_full_shape(self):
        task = normalize_task(
            {
                "Title": "T1",
                "Description": "desc",
                "DueDate": "2024-06-01",
                "PositionID": "awaitFeedback",
                "Prio": "urgent",
                "Category": "User Story",
                "AssignedTo": [
                    "Max Muster",
                    {"name": "Eva Blau"},
                    {"id": "-Nc9", "name": "Kai Rot"},
                    None,
                    "",
                    {},
                ],
                "Subtasks": [
                    {"title": "a", "completed": True},
                    {"Title": "b"},
                    "c",
                ],
            }
        )
        self.assertEqual(task.title, "T1")
        self.assertEqual(task.status, TaskStatus.AWAITING_FEEDBACK)
        self.assertEqual(task.priority, Priority.HIGH)
        self.assertEqual(task.due_date, date(2024, 6, 1))
        self.assertEqual(
            [(a.key, a.name) for a in task.assignees],
            [
                ("Max Muster", "Max Muster"),
                (None, "Eva Blau"),
                ("-Nc9", "Kai Rot"),
            ],
        )
        self.assertEqual(
            [(s.title, s.is_completed) for s in task.subtasks],
            [("a", True), ("b", False), ("c", False)],
        )

    def test_task_index_keyed_collections(self):
        task = normalize_task(
            {
                "Title": "T2",
                "AssignedTo": {"2": "Zed", "0": "Amy", "10": "Kim"},
                "Subtasks": {"1": {"title": "second"}, "0": {"title": "first"}},
            }
        )
        self.assertEqual([a.label for a in task.assignees], ["Amy", "Zed", "Kim"])
        self.assertEqual([s.title for s in task.subtasks], ["first", "second"])

    def test_non_ascii_digit_keys_sort_after_indices(self):
        task = normalize_task(
            {
                "Title": "T3",
                "AssignedTo": {"²": "Late", "0": "Amy"},
                "Subtasks": {"²": {"title": "late"}, "0": {"title": "first"}},
            }
        )
        self.assertEqual([a.label for a in task.assignees], ["Amy", "Late"])
        self.assertEqual([s.title for s in task.subtasks], ["first", "late"])

    def test_task_defaults(self):
        task = normalize_task({})
        self.assertIsNone(task.title)
        self.assertEqual(task.status, TaskStatus.TODO)
        self.assertEqual(task.priority, Priority.MEDIUM)
        self.assertEqual(task.subtasks, ())
        self.assertEqual(task.assignees, ())

    def test_subtask_without_title_is_kept_empty(self):
        task = normalize_task({"Title": "T", "Subtasks": [{"completed": "true"}]})
        self.assertIsNone(task.subtasks[0].title)
        self.assertTrue(task.subtasks[0].is_completed)


if __name__ == "__main__":
    unittest.main()
