import asyncio

import pytest

from conftest import FlakyDocumentStore, open_session
from taskboard.auth import LocalIdentityProvider
from taskboard.engine import DragState, RollbackPolicy
from taskboard.errors import NotFoundError, RemoteWriteError
from taskboard.repositories import InMemoryDocumentStore
from taskboard.schemas import TaskCreate
from taskboard.session import BoardSession

MOVE_FAILED = "Failed to update task status. Please try again."


def column_id(session, title):
    return session.projection.find_by_title(title).id


async def board_with_task(store=None, **kwargs):
    session = await open_session(store, **kwargs)
    task = await session.engine.add_task(TaskCreate(title="Write spec"))
    await session.settle()
    return session, task["id"]


async def until_merge_started(store):
    while store.merge_calls == 0:
        await asyncio.sleep(0)


class TestDragGesture:
    def test_drop_on_source_column_writes_nothing(self):
        async def scenario():
            store = FlakyDocumentStore()
            session, task_id = await board_with_task(store)
            todo = session.engine.start_drag(task_id)
            assert session.engine.state is DragState.DRAGGING
            assert await session.engine.drop(todo) is False
            assert store.merge_calls == 0
            assert session.engine.state is DragState.IDLE
            await session.close()

        asyncio.run(scenario())

    def test_cancelled_drag_writes_nothing(self):
        async def scenario():
            store = FlakyDocumentStore()
            session, task_id = await board_with_task(store)
            before = session.projection.layout()
            session.engine.start_drag(task_id)
            session.engine.cancel_drag()
            assert session.engine.state is DragState.IDLE
            assert await session.engine.drop(column_id(session, "Done")) is False
            assert store.merge_calls == 0
            assert session.projection.layout() == before
            await session.close()

        asyncio.run(scenario())

    def test_drag_of_unknown_task(self):
        async def scenario():
            session = await open_session()
            with pytest.raises(NotFoundError):
                session.engine.start_drag("missing")
            await session.close()

        asyncio.run(scenario())

    def test_drop_on_unknown_column_leaves_board_alone(self):
        async def scenario():
            session, task_id = await board_with_task()
            before = session.projection.layout()
            session.engine.start_drag(task_id)
            with pytest.raises(NotFoundError):
                await session.engine.drop("missing")
            assert session.projection.layout() == before
            assert session.engine.state is DragState.IDLE
            await session.close()

        asyncio.run(scenario())

    def test_move_is_idempotent(self):
        async def scenario():
            store = FlakyDocumentStore()
            session, task_id = await board_with_task(store)
            done = column_id(session, "Done")

            assert await session.engine.move_task(task_id, done) is True
            await session.settle()
            once = session.projection.layout()

            assert await session.engine.move_task(task_id, done) is False
            await session.settle()
            assert session.projection.layout() == once
            assert store.merge_calls == 1
            await session.close()

        asyncio.run(scenario())


class TestOptimisticMove:
    def test_projection_changes_before_the_write_completes(self):
        async def scenario():
            store = FlakyDocumentStore()
            session, task_id = await board_with_task(store)
            todo, doing = column_id(session, "To Do"), column_id(session, "In Progress")

            store.gate = asyncio.Event()
            pending = asyncio.create_task(session.engine.move_task(task_id, doing))
            await until_merge_started(store)

            assert session.projection.task_ids(doing) == [task_id]
            assert session.projection.task_ids(todo) == []
            assert session.tasks.get(task_id)["status"] == todo

            store.gate.set()
            assert await pending is True
            await session.settle()
            assert session.tasks.get(task_id)["status"] == doing
            assert session.projection.task_ids(doing) == [task_id]
            await session.close()

        asyncio.run(scenario())

    def test_failure_is_reported_and_reconciled_by_next_snapshot(self):
        async def scenario():
            store = FlakyDocumentStore()
            session, task_id = await board_with_task(store)
            todo, doing = column_id(session, "To Do"), column_id(session, "In Progress")
            reported = []
            session.engine.on_error(lambda notification, exc: reported.append((notification.message, exc)))

            store.fail_merges = True
            with pytest.raises(RemoteWriteError):
                await session.engine.move_task(task_id, doing)

            # reconcile: the optimistic move stays until the store says otherwise
            assert session.projection.task_ids(doing) == [task_id]
            assert session.engine.notifications[-1].message == MOVE_FAILED
            assert reported[0][0] == MOVE_FAILED
            assert isinstance(reported[0][1], RemoteWriteError)

            store.fail_merges = False
            await session.engine.add_task(TaskCreate(title="Another"))
            await session.settle()
            assert session.projection.task_ids(doing) == []
            assert task_id in session.projection.task_ids(todo)
            await session.close()

        asyncio.run(scenario())

    def test_rollback_policy_restores_immediately(self):
        async def scenario():
            store = FlakyDocumentStore()
            session, task_id = await board_with_task(store, rollback_policy=RollbackPolicy.ROLLBACK)
            todo, doing = column_id(session, "To Do"), column_id(session, "In Progress")

            store.fail_merges = True
            with pytest.raises(RemoteWriteError):
                await session.engine.move_task(task_id, doing)

            assert session.projection.task_ids(todo) == [task_id]
            assert session.projection.task_ids(doing) == []
            assert session.engine.notifications[-1].message == MOVE_FAILED
            await session.close()

        asyncio.run(scenario())

    def test_second_drag_can_start_while_the_first_write_is_pending(self):
        async def scenario():
            store = FlakyDocumentStore()
            session, first = await board_with_task(store)
            second = (await session.engine.add_task(TaskCreate(title="Review spec")))["id"]
            await session.settle()
            doing, done = column_id(session, "In Progress"), column_id(session, "Done")

            store.gate = asyncio.Event()
            session.engine.start_drag(first)
            pending = asyncio.create_task(session.engine.drop(done))
            await until_merge_started(store)
            assert session.engine.state is DragState.IDLE

            session.engine.start_drag(second)
            store.gate.set()
            assert await pending is True
            assert session.engine.state is DragState.DRAGGING
            assert session.engine.dragged_task_id == second

            assert await session.engine.drop(doing) is True
            await session.settle()
            assert session.tasks.get(first)["status"] == done
            assert session.tasks.get(second)["status"] == doing
            await session.close()

        asyncio.run(scenario())

    def test_projection_listeners_see_the_optimistic_state(self):
        async def scenario():
            session, task_id = await board_with_task()
            done = column_id(session, "Done")
            seen = []
            session.engine.on_projection_change(lambda projection: seen.append(projection.column_of(task_id)))
            await session.engine.move_task(task_id, done)
            assert seen[0] == done
            await session.close()

        asyncio.run(scenario())


class TestOptimisticChecklist:
    def test_toggle_shows_before_the_write_completes(self):
        async def scenario():
            store = FlakyDocumentStore()
            session = await open_session(store)
            task = await session.engine.add_task(TaskCreate(title="Ship", checklist=[{"text": "Tests"}]))
            await session.settle()
            item_id = task["checklist"][0]["id"]

            store.gate = asyncio.Event()
            pending = asyncio.create_task(session.engine.toggle_checklist_item(task["id"], item_id))
            await until_merge_started(store)
            assert session.projection.find_task(task["id"])["checklist"][0]["completed"] is True
            assert session.tasks.get(task["id"])["checklist"][0]["completed"] is False

            store.gate.set()
            await pending
            await session.settle()
            assert session.tasks.get(task["id"])["checklist"][0]["completed"] is True
            await session.close()

        asyncio.run(scenario())

    def test_failed_toggle_is_reported(self):
        async def scenario():
            store = FlakyDocumentStore()
            session = await open_session(store, rollback_policy=RollbackPolicy.ROLLBACK)
            task = await session.engine.add_task(TaskCreate(title="Ship", checklist=[{"text": "Tests"}]))
            await session.settle()

            store.fail_merges = True
            with pytest.raises(RemoteWriteError):
                await session.engine.toggle_checklist_item(task["id"], task["checklist"][0]["id"])
            assert session.engine.notifications[-1].message == "Failed to update checklist item. Please try again."
            assert session.projection.find_task(task["id"])["checklist"][0]["completed"] is False
            await session.close()

        asyncio.run(scenario())


class TestScenarios:
    def test_add_column_add_task_move_then_delete_column(self):
        async def scenario():
            session = await open_session()
            engine = session.engine

            review = await engine.add_column("Review")
            await session.settle()
            assert review["order"] == 3

            task = await engine.add_task(TaskCreate(title="Write spec"))
            await session.settle()
            todo = column_id(session, "To Do")
            assert session.projection.task_ids(todo) == [task["id"]]

            await engine.move_task(task["id"], review["id"])
            await session.settle()
            assert session.projection.task_ids(review["id"]) == [task["id"]]
            assert session.projection.task_ids(todo) == []

            await engine.delete_column(review["id"])
            await session.settle()
            assert session.projection.get(review["id"]) is None
            assert session.projection.task_ids(todo) == [task["id"]]
            assert session.tasks.get(task["id"])["status"] == todo
            await session.close()

        asyncio.run(scenario())

    def test_changes_reach_other_sessions_of_the_same_user(self):
        async def scenario():
            store = InMemoryDocumentStore()
            laptop = await open_session(store, user_id="u1")
            phone = await open_session(store, user_id="u1")

            task = await laptop.engine.add_task(TaskCreate(title="Write spec"))
            await laptop.settle()
            done = column_id(phone, "Done")
            await phone.engine.move_task(task["id"], done)
            await phone.settle()

            assert laptop.projection.task_ids(done) == [task["id"]]
            assert laptop.projection.layout() == phone.projection.layout()
            await laptop.close()
            await phone.close()

        asyncio.run(scenario())

    def test_identity_change_reloads_the_board(self):
        async def scenario():
            identity = LocalIdentityProvider("alice")
            session = BoardSession.in_memory(identity=identity)
            await session.open()
            await session.settle()
            await session.engine.add_task(TaskCreate(title="Alice's task"))
            await session.settle()
            assert len(session.tasks.tasks) == 1

            await identity.sign_in_as("bob")
            await session.settle()
            assert session.user_id == "bob"
            assert session.tasks.tasks == []
            assert [c.title for c in session.projection] == ["To Do", "In Progress", "Done"]

            await identity.sign_out()
            await session.settle()
            assert len(session.projection) == 0
            await session.close()

        asyncio.run(scenario())
