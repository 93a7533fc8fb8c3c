"""
Tests for the queue dispatcher: outcomes, retry policy, leases and tick limits.
"""
import threading
import time
import pytest
from datetime import timedelta
from unittest.mock import Mock, patch

from sqlalchemy.exc import SQLAlchemyError

from outreach.errors import DeliveryError
from outreach.models import TaskStatus, TaskType
from outreach.queue.dispatcher import Dispatcher, DispatcherSettings, retry_delay
from outreach.queue.results import Completed, Skipped, SmsDeferred
from outreach.queue.tasks import FollowUpPayload, NewTask, SendPayload, Channel


def follow_up(subject_id, scheduled_at, sequence=1):
    return NewTask(subject_id, TaskType.FOLLOW_UP, scheduled_at, FollowUpPayload(sequence=sequence))


@pytest.fixture
def handler():
    handler = Mock()
    handler.handle.return_value = Completed()
    return handler


@pytest.fixture
def failure_listener():
    return Mock()


@pytest.fixture
def settings():
    return DispatcherSettings(fetch_limit=10, max_retries=5, lease_seconds=300, tick_timeout_seconds=50)


@pytest.fixture
def dispatcher(ctx, handler, settings, clock, failure_listener):
    return Dispatcher(
        ctx.task_store,
        {TaskType.FOLLOW_UP: handler, TaskType.SEND: handler},
        worker_id="test-worker",
        settings=settings,
        clock=clock,
        failure_listeners=[failure_listener],
    )


class TestOutcomes:

    def test_completed_task(self, ctx, dispatcher, handler, clock):
        task_id = ctx.task_store.enqueue(follow_up("v1", clock.now))

        result = dispatcher.tick()

        assert result.completed == 1
        task = ctx.task_store.get(task_id)
        assert task.status is TaskStatus.COMPLETED
        assert task.completed_at is not None
        handler.handle.assert_called_once()
        handled_task, now = handler.handle.call_args.args
        assert handled_task.id == task_id
        assert now == clock.now

    def test_follow_on_tasks_are_enqueued(self, ctx, dispatcher, handler, clock):
        send_at = clock.now + timedelta(days=1)
        handler.handle.return_value = Completed(follow_on=[
            NewTask("v1", TaskType.SEND, send_at, SendPayload(channel=Channel.EMAIL, subject="Hi", body="Hello")),
        ])
        ctx.task_store.enqueue(follow_up("v1", clock.now))

        dispatcher.tick()

        sends = [task for task in ctx.task_store.list_tasks(subject_id="v1") if task.type is TaskType.SEND]
        assert len(sends) == 1
        assert sends[0].status is TaskStatus.PENDING
        assert sends[0].scheduled_at == send_at

    def test_skipped_task_is_completed(self, ctx, dispatcher, handler, clock):
        handler.handle.return_value = Skipped("vendor moved on")
        task_id = ctx.task_store.enqueue(follow_up("v1", clock.now))

        result = dispatcher.tick()

        assert result.skipped == 1
        assert ctx.task_store.get(task_id).status is TaskStatus.COMPLETED

    def test_sms_deferred_task(self, ctx, dispatcher, handler, clock):
        handler.handle.return_value = SmsDeferred()
        task_id = ctx.task_store.enqueue(follow_up("v1", clock.now))

        result = dispatcher.tick()

        assert result.deferred == 1
        task = ctx.task_store.get(task_id)
        assert task.status is TaskStatus.DEFERRED
        assert task.error == "SMS transport not integrated"

    def test_future_task_is_not_run(self, ctx, dispatcher, handler, clock):
        task_id = ctx.task_store.enqueue(follow_up("v1", clock.now + timedelta(minutes=1)))

        result = dispatcher.tick()

        assert result.fetched == 0
        handler.handle.assert_not_called()
        assert ctx.task_store.get(task_id).status is TaskStatus.PENDING

    def test_fetch_limit_caps_a_tick(self, ctx, dispatcher, handler, clock):
        for n in range(12):
            ctx.task_store.enqueue(follow_up(f"v{n}", clock.now))

        result = dispatcher.tick()

        assert result.completed == 10
        assert handler.handle.call_count == 10
        assert len(ctx.task_store.fetch_due(now=clock.now)) == 2

    def test_missing_handler_fails_task(self, ctx, dispatcher, clock, failure_listener):
        task_id = ctx.task_store.enqueue(NewTask("v1", TaskType.GENERATE, clock.now, _generate_payload()))

        result = dispatcher.tick()

        assert result.failed == 1
        task = ctx.task_store.get(task_id)
        assert task.status is TaskStatus.FAILED
        assert "No handler registered" in task.error
        failure_listener.assert_called_once()


def _generate_payload():
    from outreach.queue.tasks import GeneratePayload, ProfileSnapshot
    return GeneratePayload(profile=ProfileSnapshot(business_name="Acme"))


class TestRetryPolicy:

    @pytest.mark.parametrize("retry_count, minutes", [(1, 2), (2, 4), (3, 8), (4, 16), (5, 32)])
    def test_backoff_doubles(self, retry_count, minutes):
        assert retry_delay(retry_count) == timedelta(minutes=minutes)

    def test_failure_schedules_retry_with_backoff(self, ctx, dispatcher, handler, clock, failure_listener):
        handler.handle.side_effect = DeliveryError("provider unavailable")
        task_id = ctx.task_store.enqueue(follow_up("v1", clock.now))

        result = dispatcher.tick()

        assert result.retried == 1
        task = ctx.task_store.get(task_id)
        assert task.status is TaskStatus.RETRY
        assert task.retry_count == 1
        assert task.scheduled_at == clock.now + timedelta(minutes=2)
        assert "provider unavailable" in task.error
        failure_listener.assert_not_called()

    def test_retry_runs_again_once_due(self, ctx, dispatcher, handler, clock):
        handler.handle.side_effect = [DeliveryError("boom"), Completed()]
        task_id = ctx.task_store.enqueue(follow_up("v1", clock.now))

        dispatcher.tick()
        clock.advance(minutes=1)
        assert dispatcher.tick().fetched == 0
        clock.advance(minutes=1)
        dispatcher.tick()

        task = ctx.task_store.get(task_id)
        assert task.status is TaskStatus.COMPLETED
        assert task.retry_count == 1

    def test_sixth_failure_is_terminal(self, ctx, dispatcher, handler, clock, failure_listener):
        handler.handle.side_effect = DeliveryError("still down")
        task_id = ctx.task_store.enqueue(follow_up("v1", clock.now))

        for expected_retry in range(1, 6):
            now = clock.now
            dispatcher.tick()
            task = ctx.task_store.get(task_id)
            assert task.status is TaskStatus.RETRY
            assert task.retry_count == expected_retry
            assert task.scheduled_at == now + timedelta(minutes=2 ** expected_retry)
            clock.set(task.scheduled_at)

        result = dispatcher.tick()

        assert result.failed == 1
        task = ctx.task_store.get(task_id)
        assert task.status is TaskStatus.FAILED
        assert task.retry_count == 6
        failure_listener.assert_called_once()
        failed_task, error = failure_listener.call_args.args
        assert failed_task.id == task_id
        assert "still down" in error

    def test_failure_listener_error_does_not_stop_tick(self, ctx, dispatcher, handler, clock, failure_listener):
        failure_listener.side_effect = RuntimeError("listener broke")
        handler.handle.side_effect = DeliveryError("down")
        task_id = ctx.task_store.enqueue(follow_up("v1", clock.now))
        ctx.task_store.update_status(task_id, TaskStatus.RETRY, retry_count=5)

        result = dispatcher.tick()

        assert result.failed == 1
        assert ctx.task_store.get(task_id).status is TaskStatus.FAILED

    def test_failing_task_does_not_stop_the_next_one(self, ctx, dispatcher, handler, clock):
        handler.handle.side_effect = [DeliveryError("down"), Completed()]
        first_id = ctx.task_store.enqueue(follow_up("v1", clock.now))
        second_id = ctx.task_store.enqueue(follow_up("v2", clock.now))

        result = dispatcher.tick()

        assert result.retried == 1
        assert result.completed == 1
        assert ctx.task_store.get(first_id).status is TaskStatus.RETRY
        assert ctx.task_store.get(second_id).status is TaskStatus.COMPLETED
        assert handler.handle.call_count == 2


class TestClaims:

    def test_task_claimed_elsewhere_is_skipped(self, ctx, dispatcher, handler, clock):
        ctx.task_store.enqueue(follow_up("v1", clock.now))

        with patch.object(ctx.task_store, "claim", return_value=False):
            result = dispatcher.tick()

        assert result.contended == 1
        handler.handle.assert_not_called()

    def test_expired_claims_are_swept_first(self, ctx, dispatcher, handler, clock):
        task_id = ctx.task_store.enqueue(follow_up("v1", clock.now))
        ctx.task_store.claim(task_id, "crashed-worker", 60, now=clock.now)
        clock.advance(minutes=5)

        result = dispatcher.tick()

        assert result.swept == 1
        assert result.completed == 0
        handler.handle.assert_not_called()
        task = ctx.task_store.get(task_id)
        assert task.status is TaskStatus.RETRY
        assert task.retry_count == 1
        assert task.scheduled_at == clock.now + timedelta(minutes=2)


class TestTickLimits:

    def test_overlapping_tick_is_skipped(self, ctx, dispatcher, handler, clock):
        ctx.task_store.enqueue(follow_up("v1", clock.now))

        with dispatcher.tick_lock.acquire("another tick"):
            result = dispatcher.tick()

        assert result.ran is False
        handler.handle.assert_not_called()

    def test_tick_deadline_leaves_tasks_unclaimed(self, ctx, handler, clock):
        dispatcher = Dispatcher(ctx.task_store, {TaskType.FOLLOW_UP: handler},
                                settings=DispatcherSettings(tick_timeout_seconds=0), clock=clock)
        task_id = ctx.task_store.enqueue(follow_up("v1", clock.now))

        result = dispatcher.tick()

        assert result.not_started == 1
        handler.handle.assert_not_called()
        assert ctx.task_store.get(task_id).status is TaskStatus.PENDING

    def test_handler_timeout_counts_as_failure(self, ctx, clock):
        release = threading.Event()

        class SlowHandler:
            def handle(self, task, now):
                release.wait(5)
                return Completed()

        dispatcher = Dispatcher(ctx.task_store, {TaskType.FOLLOW_UP: SlowHandler()},
                                settings=DispatcherSettings(handler_timeout_seconds=1), clock=clock)
        task_id = ctx.task_store.enqueue(follow_up("v1", clock.now))

        try:
            result = dispatcher.tick()
        finally:
            release.set()

        assert result.retried == 1
        task = ctx.task_store.get(task_id)
        assert task.status is TaskStatus.RETRY
        assert "HandlerTimeout" in task.error

    def test_inline_handler_past_tick_deadline_is_retried(self, ctx, clock):
        class OverrunningHandler:
            def handle(self, task, now):
                time.sleep(1.5)
                return Completed()

        dispatcher = Dispatcher(ctx.task_store, {TaskType.FOLLOW_UP: OverrunningHandler()},
                                settings=DispatcherSettings(tick_timeout_seconds=1), clock=clock)
        task_id = ctx.task_store.enqueue(follow_up("v1", clock.now))

        result = dispatcher.tick()

        assert result.completed == 0
        assert result.retried == 1
        task = ctx.task_store.get(task_id)
        assert task.status is TaskStatus.RETRY
        assert task.completed_at is None
        assert "HandlerTimeout" in task.error

    def test_handler_timeout_is_capped_by_tick_deadline(self, ctx, clock):
        release = threading.Event()

        class SlowHandler:
            def handle(self, task, now):
                release.wait(5)
                return Completed()

        dispatcher = Dispatcher(ctx.task_store, {TaskType.FOLLOW_UP: SlowHandler()},
                                settings=DispatcherSettings(tick_timeout_seconds=1, handler_timeout_seconds=30),
                                clock=clock)
        task_id = ctx.task_store.enqueue(follow_up("v1", clock.now))

        started = time.monotonic()
        try:
            result = dispatcher.tick()
        finally:
            release.set()

        assert time.monotonic() - started < 5
        assert result.retried == 1
        assert "HandlerTimeout" in ctx.task_store.get(task_id).error

    def test_handler_within_timeout_completes(self, ctx, handler, clock):
        dispatcher = Dispatcher(ctx.task_store, {TaskType.FOLLOW_UP: handler},
                                settings=DispatcherSettings(handler_timeout_seconds=5), clock=clock)
        task_id = ctx.task_store.enqueue(follow_up("v1", clock.now))

        assert dispatcher.tick().completed == 1
        assert ctx.task_store.get(task_id).status is TaskStatus.COMPLETED

    def test_store_error_aborts_tick_and_releases_lock(self, ctx, dispatcher, clock):
        with patch.object(ctx.task_store, "fetch_due", side_effect=SQLAlchemyError("connection lost")):
            with pytest.raises(SQLAlchemyError):
                dispatcher.tick()

        assert dispatcher.tick_lock.is_locked() is False
