import asyncio

import pytest

from conftest import FlakyDocumentStore, open_session
from taskboard.auth import LocalIdentityProvider
from taskboard.columns import RESERVED_COLUMN_TITLES, ColumnStore
from taskboard.context import COLUMNS_COLLECTION, TASKS_COLLECTION, BoardContext
from taskboard.errors import (
    AuthError,
    NotFoundError,
    ProtectedEntityError,
    RemoteReadError,
    RemoteWriteError,
    ValidationError,
)
from taskboard.repositories import InMemoryDocumentStore
from taskboard.schemas import TaskCreate, TaskUpdate
from taskboard.tasks import DEFAULT_DESCRIPTION, toggle_item


def column_id(session, title):
    return session.columns.find_by_title(title)["id"]


class UnreadableColumnsStore(InMemoryDocumentStore):
    async def read(self, path, order_by=None):
        if path.endswith(COLUMNS_COLLECTION):
            raise RemoteReadError(f"read of {path} rejected")
        return await super().read(path, order_by=order_by)


class TestBootstrap:
    def test_creates_reserved_columns_in_order(self):
        async def scenario():
            session = await open_session()
            columns = session.columns.columns
            assert [c["title"] for c in columns] == list(RESERVED_COLUMN_TITLES)
            assert [c["order"] for c in columns] == [0, 1, 2]
            await session.close()

        asyncio.run(scenario())

    def test_rerun_creates_no_duplicates(self):
        async def scenario():
            store = InMemoryDocumentStore()
            first = await open_session(store, user_id="u1")
            second = await open_session(store, user_id="u1")
            await second.columns.ensure_default_columns()
            await second.settle()
            path = first.context.collection_path(COLUMNS_COLLECTION)
            assert len(await store.read(path)) == 3
            assert len(second.columns.columns) == 3
            await first.close()
            await second.close()

        asyncio.run(scenario())

    def test_fills_in_missing_reserved_column_after_existing_ones(self):
        async def scenario():
            store = InMemoryDocumentStore()
            path = "artifacts/default-kanban-app/users/u1/boardColumns"
            await store.create(path, {"title": "To Do", "order": 0})
            await store.create(path, {"title": "Backlog", "order": 1})
            session = await open_session(store, user_id="u1")
            assert [(c["title"], c["order"]) for c in session.columns.columns] == [
                ("To Do", 0),
                ("Backlog", 1),
                ("In Progress", 2),
                ("Done", 3),
            ]
            await session.close()

        asyncio.run(scenario())

    def test_boards_are_per_user(self):
        async def scenario():
            store = InMemoryDocumentStore()
            alice = await open_session(store, user_id="alice")
            bob = await open_session(store, user_id="bob")
            await alice.engine.add_column("Review")
            await alice.settle()
            assert len(alice.columns.columns) == 4
            assert len(bob.columns.columns) == 3
            await alice.close()
            await bob.close()

        asyncio.run(scenario())

    def test_unreadable_columns_still_open_the_board(self):
        async def scenario():
            session = await open_session(UnreadableColumnsStore())
            assert len(session.projection) == 0
            assert session.columns.columns == []
            assert [n.message for n in session.engine.notifications] == ["Error fetching columns."]
            await session.close()

        asyncio.run(scenario())


class TestColumns:
    def test_add_column_goes_after_the_rightmost(self):
        async def scenario():
            session = await open_session()
            review = await session.engine.add_column("  Review ")
            assert review["title"] == "Review"
            assert review["order"] == 3
            await session.close()

        asyncio.run(scenario())

    def test_back_to_back_adds_get_distinct_orders(self):
        async def scenario():
            session = await open_session()
            review = await session.engine.add_column("Review")
            blocked = await session.engine.add_column("Blocked")
            assert review["order"] == 3
            assert blocked["order"] == 4
            await session.settle()
            orders = [c["order"] for c in session.columns.columns]
            assert orders == [0, 1, 2, 3, 4]
            await session.close()

        asyncio.run(scenario())

    def test_empty_title_is_rejected(self):
        async def scenario():
            session = await open_session()
            with pytest.raises(ValidationError):
                await session.engine.add_column("   ")
            await session.close()

        asyncio.run(scenario())

    def test_requires_identity(self):
        async def scenario():
            context = BoardContext(InMemoryDocumentStore(), LocalIdentityProvider())
            with pytest.raises(AuthError):
                await ColumnStore(context).add_column("Review")

        asyncio.run(scenario())

    @pytest.mark.parametrize("title", RESERVED_COLUMN_TITLES)
    def test_reserved_columns_cannot_be_deleted(self, title):
        async def scenario():
            session = await open_session()
            before = session.columns.columns
            with pytest.raises(ProtectedEntityError, match=title):
                await session.engine.delete_column(column_id(session, title))
            await session.settle()
            assert session.columns.columns == before
            await session.close()

        asyncio.run(scenario())

    def test_delete_unknown_column(self):
        async def scenario():
            session = await open_session()
            with pytest.raises(NotFoundError):
                await session.engine.delete_column("missing")
            await session.close()

        asyncio.run(scenario())

    def test_delete_relocates_tasks_to_todo(self):
        async def scenario():
            session = await open_session()
            review = await session.engine.add_column("Review")
            await session.settle()
            for title in ("one", "two", "three"):
                task = await session.engine.add_task(TaskCreate(title=title))
                await session.settle()
                await session.engine.move_task(task["id"], review["id"])
            await session.settle()
            kept = await session.engine.add_task(TaskCreate(title="stays"))
            await session.settle()

            moved = await session.engine.delete_column(review["id"])
            await session.settle()

            todo = column_id(session, "To Do")
            assert moved == 3
            assert session.columns.get(review["id"]) is None
            assert {t["status"] for t in session.tasks.tasks} == {todo}
            assert session.projection.get(review["id"]) is None
            assert len(session.projection.task_ids(todo)) == 4
            assert kept["id"] in session.projection.task_ids(todo)
            await session.close()

        asyncio.run(scenario())

    def test_failed_relocation_keeps_the_column(self):
        async def scenario():
            store = FlakyDocumentStore()
            session = await open_session(store)
            review = await session.engine.add_column("Review")
            await session.settle()
            task = await session.engine.add_task(TaskCreate(title="Write spec"))
            await session.settle()
            await session.engine.move_task(task["id"], review["id"])
            await session.settle()

            store.fail_merges = True
            with pytest.raises(RemoteWriteError):
                await session.engine.delete_column(review["id"])
            await session.settle()

            assert session.columns.get(review["id"]) is not None
            assert session.tasks.get(task["id"])["status"] == review["id"]
            assert session.engine.notifications[-1].message == "Failed to delete column."
            await session.close()

        asyncio.run(scenario())

    def test_delete_without_todo_leaves_tasks_dangling(self):
        async def scenario():
            store = FlakyDocumentStore()
            session = await open_session(store)
            review = await session.engine.add_column("Review")
            await session.settle()
            task = await session.engine.add_task(TaskCreate(title="Write spec"))
            await session.settle()
            await session.engine.move_task(task["id"], review["id"])
            await session.settle()

            columns_path = session.context.collection_path(COLUMNS_COLLECTION)
            await store.delete(columns_path, column_id(session, "To Do"))
            await session.settle()
            assert session.columns.find_by_title("To Do") is None
            merges = store.merge_calls

            assert await session.engine.delete_column(review["id"]) == 0
            await session.settle()

            assert session.columns.get(review["id"]) is None
            assert store.merge_calls == merges
            assert session.tasks.get(task["id"])["status"] == review["id"]
            doing = column_id(session, "In Progress")
            assert session.projection.task_ids(doing) == [task["id"]]
            await session.close()

        asyncio.run(scenario())


class TestTasks:
    def test_new_task_lands_in_todo_with_defaults(self):
        async def scenario():
            session = await open_session()
            created = await session.engine.add_task(TaskCreate(title="Write spec"))
            await session.settle()
            stored = session.tasks.get(created["id"])
            assert stored["status"] == column_id(session, "To Do")
            assert stored["description"] == DEFAULT_DESCRIPTION
            assert stored["checklist"] == []
            assert stored["startDate"] is None
            await session.close()

        asyncio.run(scenario())

    def test_dates_are_stored_as_iso_strings(self):
        async def scenario():
            session = await open_session()
            created = await session.engine.add_task(
                TaskCreate(title="Plan", startDate="2025-02-01", endDate="2025-02-07T10:00:00")
            )
            assert created["startDate"] == "2025-02-01"
            assert created["endDate"] == "2025-02-07"
            await session.close()

        asyncio.run(scenario())

    def test_empty_title_is_rejected_before_any_write(self):
        async def scenario():
            store = FlakyDocumentStore()
            session = await open_session(store)
            store.fail_creates = True
            with pytest.raises(ValidationError):
                await session.engine.add_task(TaskCreate(title="   "))
            assert len(session.engine.notifications) == 0
            await session.close()

        asyncio.run(scenario())

    def test_update_keeps_status(self):
        async def scenario():
            session = await open_session()
            task = await session.engine.add_task(TaskCreate(title="Draft", assignedTo="Ada"))
            await session.settle()
            done = column_id(session, "Done")
            await session.engine.move_task(task["id"], done)
            await session.settle()

            await session.engine.update_task(task["id"], TaskUpdate(title="Final", description="Edited"))
            await session.settle()

            stored = session.tasks.get(task["id"])
            assert stored["title"] == "Final"
            assert stored["description"] == "Edited"
            assert stored["assignedTo"] is None
            assert stored["status"] == done
            await session.close()

        asyncio.run(scenario())

    def test_update_unknown_task(self):
        async def scenario():
            session = await open_session()
            with pytest.raises(NotFoundError):
                await session.engine.update_task("missing", TaskUpdate(title="x"))
            await session.close()

        asyncio.run(scenario())

    def test_delete_task(self):
        async def scenario():
            session = await open_session()
            task = await session.engine.add_task(TaskCreate(title="Throwaway"))
            await session.settle()
            await session.engine.delete_task(task["id"])
            await session.settle()
            assert session.tasks.get(task["id"]) is None
            assert session.projection.find_task(task["id"]) is None
            await session.close()

        asyncio.run(scenario())

    def test_toggle_checklist_item_twice_restores_it(self):
        async def scenario():
            session = await open_session()
            task = await session.engine.add_task(
                TaskCreate(title="Ship", checklist=[{"text": "Tests"}, {"text": "Docs", "completed": True}])
            )
            await session.settle()
            first, second = task["checklist"]

            await session.engine.toggle_checklist_item(task["id"], first["id"])
            await session.settle()
            checklist = session.tasks.get(task["id"])["checklist"]
            assert [i["completed"] for i in checklist] == [True, True]

            await session.engine.toggle_checklist_item(task["id"], first["id"])
            await session.settle()
            assert session.tasks.get(task["id"])["checklist"] == [first, second]
            await session.close()

        asyncio.run(scenario())

    def test_toggle_unknown_item(self):
        with pytest.raises(NotFoundError):
            toggle_item([{"id": "a", "text": "x", "completed": False}], "b")

    def test_move_to_unknown_column_is_rejected(self):
        async def scenario():
            session = await open_session()
            task = await session.engine.add_task(TaskCreate(title="Write spec"))
            await session.settle()
            with pytest.raises(NotFoundError):
                await session.tasks.move_task(task["id"], "missing")
            await session.close()

        asyncio.run(scenario())

    def test_tasks_are_stored_under_the_user_path(self):
        async def scenario():
            store = InMemoryDocumentStore()
            session = await open_session(store, user_id="u42")
            await session.engine.add_task(TaskCreate(title="Write spec"))
            path = session.context.collection_path(TASKS_COLLECTION)
            assert path == "artifacts/default-kanban-app/users/u42/tasks"
            assert [d["title"] for d in await store.read(path)] == ["Write spec"]
            await session.close()

        asyncio.run(scenario())


class TestPersonnel:
    def test_add_and_delete(self):
        async def scenario():
            session = await open_session()
            ada = await session.engine.add_personnel(" Ada ")
            await session.engine.add_personnel("Grace")
            await session.settle()
            assert session.personnel.names == {"Ada", "Grace"}

            await session.engine.delete_personnel(ada["id"])
            await session.settle()
            assert session.personnel.names == {"Grace"}
            await session.close()

        asyncio.run(scenario())

    def test_empty_name_is_rejected(self):
        async def scenario():
            session = await open_session()
            with pytest.raises(ValidationError):
                await session.engine.add_personnel("")
            await session.close()

        asyncio.run(scenario())
