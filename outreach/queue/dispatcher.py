# outreach/queue/dispatcher.py
import os
import socket
import threading
import time
from contextlib import nullcontext
from dataclasses import asdict, dataclass
from typing import Callable, Dict, List, Optional

from outreach.datetime_utils import utcnow
from outreach.errors import HandlerTimeout, UnknownTaskType
from outreach.logging_config import TickContext, get_logger, log_queue_event
from outreach.models import TaskStatus, TaskType
from outreach.queue.results import Completed, Skipped, SmsDeferred
from outreach.queue.store import TaskStore, retry_delay
from outreach.queue.tasks import QueueTask
from outreach.tick_lock import TickLockManager

logger = get_logger(__name__)

FailureListener = Callable[[QueueTask, str], None]


def default_worker_id() -> str:
    return f"{socket.gethostname()}-{os.getpid()}"


@dataclass
class DispatcherSettings:
    fetch_limit: int = 10
    max_retries: int = 5
    lease_seconds: int = 300
    tick_timeout_seconds: int = 50
    handler_timeout_seconds: int = 0    # 0 runs handlers inline, bounded by the tick deadline only

    @classmethod
    def from_config(cls, cfg) -> "DispatcherSettings":
        get = cfg.get if hasattr(cfg, "get") else lambda key, default=None: getattr(cfg, key, default)
        return cls(
            fetch_limit=int(get("QUEUE_FETCH_LIMIT", 10)),
            max_retries=int(get("QUEUE_MAX_RETRIES", 5)),
            lease_seconds=int(get("QUEUE_LEASE_SECONDS", 300)),
            tick_timeout_seconds=int(get("QUEUE_TICK_TIMEOUT_SECONDS", 50)),
            handler_timeout_seconds=int(get("QUEUE_HANDLER_TIMEOUT_SECONDS", 0)),
        )


@dataclass
class TickResult:
    tick_id: Optional[str] = None
    ran: bool = True
    swept: int = 0
    fetched: int = 0
    completed: int = 0
    skipped: int = 0
    deferred: int = 0
    retried: int = 0
    failed: int = 0
    contended: int = 0
    not_started: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class Dispatcher:
    """
    Drains due queue tasks and applies the retry policy.

    One tick:
      1. Return expired claims to RETRY (or FAILED past the ceiling).
      2. Fetch up to ``fetch_limit`` due tasks, oldest first.
      3. For each: claim it, run its handler, record the outcome.

    A handler error puts the task in RETRY with exponential backoff, or
    FAILED once ``max_retries`` is exceeded. Errors from the task store
    itself abort the tick. Tasks not reached before the tick deadline stay
    unclaimed for the next tick; a handler that runs past it is retried.
    """

    def __init__(self, task_store: TaskStore, handlers: Dict[TaskType, object], worker_id: Optional[str] = None,
                 settings: Optional[DispatcherSettings] = None, clock=utcnow,
                 failure_listeners: Optional[List[FailureListener]] = None,
                 context_factory=None, tick_lock: Optional[TickLockManager] = None):
        self.task_store = task_store
        self.handlers = dict(handlers)
        self.worker_id = worker_id or default_worker_id()
        self.settings = settings or DispatcherSettings()
        self.clock = clock
        self.failure_listeners = list(failure_listeners or [])
        # Context pushed in the worker thread when a handler timeout is set (an app context)
        self.context_factory = context_factory or nullcontext
        self.tick_lock = tick_lock or TickLockManager()

    def add_failure_listener(self, listener: FailureListener) -> None:
        self.failure_listeners.append(listener)

    def tick(self) -> TickResult:
        """Run one pass over the queue. Overlapping ticks are skipped."""
        try:
            with self.tick_lock.acquire(f"queue_tick:{self.worker_id}"):
                return self._tick()
        except RuntimeError as e:
            if not self.tick_lock.is_locked():
                raise
            logger.info("Queue tick skipped", worker_id=self.worker_id, reason=str(e))
            return TickResult(ran=False)

    def sweep(self) -> List[QueueTask]:
        """Requeue expired claims and escalate any that ran out of retries."""
        swept = self.task_store.requeue_expired_claims(self.settings.max_retries, now=self.clock())
        for task in swept:
            if task.status is TaskStatus.FAILED:
                self._notify_failure(task, task.error or "lease expired")
        return swept

    def _tick(self) -> TickResult:
        deadline = time.monotonic() + self.settings.tick_timeout_seconds
        with TickContext(self.worker_id) as ctx:
            result = TickResult(tick_id=ctx.tick_id)

            result.swept = len(self.sweep())

            tasks = self.task_store.fetch_due(limit=self.settings.fetch_limit, now=self.clock())
            result.fetched = len(tasks)

            for task in tasks:
                if time.monotonic() >= deadline:
                    result.not_started += 1
                    continue
                now = self.clock()
                if not self.task_store.claim(task.id, self.worker_id, self.settings.lease_seconds, now=now):
                    result.contended += 1
                    log_queue_event("Task claimed elsewhere", task, worker_id=self.worker_id)
                    continue
                self._process(task, now, result, deadline)

            if result.not_started:
                logger.warning("Tick deadline reached", tick_id=ctx.tick_id, not_started=result.not_started)

            ctx.counts = {k: v for k, v in result.to_dict().items() if k not in ("tick_id", "ran")}
            return result

    def _process(self, task: QueueTask, now, result: TickResult, deadline: float) -> None:
        handler = self.handlers.get(task.type)
        if handler is None:
            error = str(UnknownTaskType(f"No handler registered for {task.type.value}"))
            self.task_store.update_status(task.id, TaskStatus.FAILED, error=error)
            result.failed += 1
            log_queue_event("Task failed", task, error=error)
            self._notify_failure(task, error)
            return

        log_queue_event("Task started", task, worker_id=self.worker_id, retry_count=task.retry_count)
        try:
            outcome = self._run_handler(handler, task, now, deadline)
        except Exception as e:
            # Discard anything the handler left half-written before recording the failure
            self.task_store.session.rollback()
            self._record_failure(task, e, now, result)
            return

        self._apply_outcome(task, outcome, now, result)

    def _run_handler(self, handler, task: QueueTask, now, deadline: float):
        """
        Run one handler within the tick deadline.

        With a per-handler timeout the handler runs in a worker thread and is
        abandoned once min(timeout, time left in the tick) elapses. Without one
        it runs inline and an overrun of the tick deadline is detected when it
        returns. Either way an overrun raises HandlerTimeout and the task is
        retried.
        """
        remaining = max(deadline - time.monotonic(), 0)
        if not self.settings.handler_timeout_seconds:
            outcome = handler.handle(task, now)
            if time.monotonic() > deadline:
                raise HandlerTimeout(
                    f"{task.type.value} handler ran past the tick deadline "
                    f"({self.settings.tick_timeout_seconds}s)"
                )
            return outcome

        timeout = min(self.settings.handler_timeout_seconds, remaining)
        outcome = {}

        def target():
            with self.context_factory():
                try:
                    outcome["value"] = handler.handle(task, now)
                except Exception as e:
                    outcome["error"] = e

        worker = threading.Thread(target=target, name=f"outreach-task-{task.id}", daemon=True)
        worker.start()
        worker.join(timeout)
        if worker.is_alive():
            raise HandlerTimeout(f"{task.type.value} handler exceeded {timeout:.1f}s")
        if "error" in outcome:
            raise outcome["error"]
        return outcome["value"]

    def _apply_outcome(self, task: QueueTask, outcome, now, result: TickResult) -> None:
        if isinstance(outcome, Completed):
            if outcome.follow_on:
                follow_on_ids = self.task_store.enqueue_many(outcome.follow_on, now=now)
            else:
                follow_on_ids = []
            self.task_store.update_status(task.id, TaskStatus.COMPLETED, error=None)
            result.completed += 1
            log_queue_event("Task completed", task, follow_on=follow_on_ids, note=outcome.note)
        elif isinstance(outcome, Skipped):
            self.task_store.update_status(task.id, TaskStatus.COMPLETED, error=None)
            result.skipped += 1
            log_queue_event("Task skipped", task, reason=outcome.reason)
        elif isinstance(outcome, SmsDeferred):
            self.task_store.update_status(task.id, TaskStatus.DEFERRED, error=outcome.reason)
            result.deferred += 1
            log_queue_event("Task deferred", task, reason=outcome.reason)
        else:
            raise TypeError(f"Handler for {task.type.value} returned {type(outcome).__name__}")

    def _record_failure(self, task: QueueTask, error: Exception, now, result: TickResult) -> None:
        retry_count = task.retry_count + 1
        message = f"{type(error).__name__}: {error}"

        if retry_count > self.settings.max_retries:
            self.task_store.update_status(task.id, TaskStatus.FAILED, retry_count=retry_count, error=message)
            result.failed += 1
            logger.error(
                "Task failed permanently",
                task_id=task.id,
                subject_id=task.subject_id,
                task_type=task.type.value,
                retry_count=retry_count,
                error=message,
            )
            failed = self.task_store.get(task.id)
            self._notify_failure(failed, message)
            return

        next_attempt = now + retry_delay(retry_count)
        self.task_store.update_status(
            task.id,
            TaskStatus.RETRY,
            retry_count=retry_count,
            scheduled_at=next_attempt,
            error=message,
        )
        result.retried += 1
        logger.warning(
            "Task failed, will retry",
            task_id=task.id,
            subject_id=task.subject_id,
            task_type=task.type.value,
            retry_count=retry_count,
            max_retries=self.settings.max_retries,
            next_attempt=next_attempt.isoformat(),
            error=message,
        )

    def _notify_failure(self, task: QueueTask, error: str) -> None:
        for listener in self.failure_listeners:
            try:
                listener(task, error)
            except Exception as e:
                logger.error(
                    "Failure listener raised",
                    task_id=task.id,
                    subject_id=task.subject_id,
                    error=str(e),
                    exc_info=True,
                )
