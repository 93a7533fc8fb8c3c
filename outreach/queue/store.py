# outreach/queue/store.py
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from outreach.datetime_utils import utcnow
from outreach.logging_config import get_logger
from outreach.models import (
    OUTSTANDING_TASK_STATUSES,
    QueueTaskRecord,
    RUNNABLE_TASK_STATUSES,
    TaskStatus,
    db,
)
from outreach.queue.tasks import NewTask, QueueTask, encode_payload

logger = get_logger(__name__)


def retry_delay(retry_count: int) -> timedelta:
    """Backoff before attempt ``retry_count + 1``: 2, 4, 8, 16, 32 minutes."""
    return timedelta(minutes=2 ** retry_count)


class TaskStore:
    """Durable persistence for queued outreach work.

    Every write commits on its own so that each task row is updated
    atomically. Store-layer errors (SQLAlchemyError) propagate to the caller.
    """

    def __init__(self, session=None):
        self.session = session or db.session

    def enqueue(self, task: NewTask, now: Optional[datetime] = None) -> int:
        """Insert a task as PENDING with retry_count 0. Returns the new id."""
        return self.enqueue_many([task], now=now)[0]

    def enqueue_many(self, tasks: List[NewTask], now: Optional[datetime] = None) -> List[int]:
        """Insert several tasks in one transaction (all or none)."""
        now = now or utcnow()
        records = []
        try:
            for task in tasks:
                record = QueueTaskRecord(
                    subject_id=task.subject_id,
                    task_type=task.type,
                    status=TaskStatus.PENDING,
                    scheduled_at=task.scheduled_at,
                    created_at=now,
                    retry_count=0,
                    payload=encode_payload(task.type, task.payload),
                )
                self.session.add(record)
                records.append(record)

            self.session.flush()
            ids = [record.id for record in records]
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        for task_id, task in zip(ids, tasks):
            logger.info(
                "Task enqueued",
                task_id=task_id,
                subject_id=task.subject_id,
                task_type=task.type.value,
                scheduled_at=task.scheduled_at.isoformat(),
            )
        return ids

    def get(self, task_id: int) -> Optional[QueueTask]:
        record = self.session.get(QueueTaskRecord, task_id)
        return QueueTask.from_record(record) if record else None

    def fetch_due(self, limit: int = 10, now: Optional[datetime] = None) -> List[QueueTask]:
        """PENDING/RETRY tasks with scheduled_at <= now, oldest first, capped at ``limit``."""
        now = now or utcnow()
        records = (
            self.session.query(QueueTaskRecord).filter(
                QueueTaskRecord.status.in_(RUNNABLE_TASK_STATUSES),
                QueueTaskRecord.scheduled_at <= now,
            )
            .order_by(QueueTaskRecord.scheduled_at.asc(), QueueTaskRecord.id.asc())
            .limit(limit)
            .all()
        )
        return [QueueTask.from_record(record) for record in records]

    def claim(self, task_id: int, worker_id: str, lease_seconds: int, now: Optional[datetime] = None) -> bool:
        """Atomically lease a runnable task to ``worker_id``.

        Returns False when the task is no longer PENDING/RETRY (another
        worker claimed it, or it was cancelled in the meantime).
        """
        now = now or utcnow()
        updated = (
            self.session.query(QueueTaskRecord).filter(
                QueueTaskRecord.id == task_id,
                QueueTaskRecord.status.in_(RUNNABLE_TASK_STATUSES),
            )
            .update(
                {
                    QueueTaskRecord.status: TaskStatus.CLAIMED,
                    QueueTaskRecord.claimed_by: worker_id,
                    QueueTaskRecord.lease_expires_at: now + timedelta(seconds=lease_seconds),
                },
                synchronize_session=False,
            )
        )
        self.session.commit()
        return updated == 1

    def update_status(self, task_id: int, status: TaskStatus, **fields) -> None:
        """Partial update of a task: status plus any of retry_count, scheduled_at, error, completed_at."""
        record = self.session.get(QueueTaskRecord, task_id)
        if record is None:
            raise LookupError(f"Queue task {task_id} not found")

        record.status = status
        for name, value in fields.items():
            if not hasattr(record, name):
                raise AttributeError(f"QueueTaskRecord has no field {name!r}")
            setattr(record, name, value)

        if status is not TaskStatus.CLAIMED:
            record.claimed_by = None
            record.lease_expires_at = None
        if status.is_terminal and record.completed_at is None and status is not TaskStatus.CANCELLED:
            record.completed_at = utcnow()

        self.session.commit()

    def cancel_by_subject(self, subject_id: str, now: Optional[datetime] = None) -> int:
        """Cancel every PENDING/RETRY task for a subject in one statement.

        Claimed (in-flight) tasks are left alone.
        """
        now = now or utcnow()
        try:
            cancelled = (
                self.session.query(QueueTaskRecord).filter(
                    QueueTaskRecord.subject_id == subject_id,
                    QueueTaskRecord.status.in_(RUNNABLE_TASK_STATUSES),
                )
                .update(
                    {
                        QueueTaskRecord.status: TaskStatus.CANCELLED,
                        QueueTaskRecord.cancelled_at: now,
                    },
                    synchronize_session=False,
                )
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info("Tasks cancelled for subject", subject_id=subject_id, cancelled_count=cancelled)
        return cancelled

    def requeue_expired_claims(self, max_retries: int, now: Optional[datetime] = None) -> List[QueueTask]:
        """Return tasks whose lease expired to RETRY (or FAILED past the ceiling).

        An expired lease counts as a failed attempt and backs off like any
        other failure. Returns the swept tasks in their new state.
        """
        now = now or utcnow()
        expired = self.session.query(QueueTaskRecord).filter(
            QueueTaskRecord.status == TaskStatus.CLAIMED,
            QueueTaskRecord.lease_expires_at <= now,
        ).all()

        swept = []
        for record in expired:
            retry_count = record.retry_count + 1
            status = TaskStatus.FAILED if retry_count > max_retries else TaskStatus.RETRY
            values = {
                QueueTaskRecord.status: status,
                QueueTaskRecord.retry_count: retry_count,
                QueueTaskRecord.claimed_by: None,
                QueueTaskRecord.lease_expires_at: None,
                QueueTaskRecord.error: f"Lease held by {record.claimed_by} expired",
            }
            if status is TaskStatus.RETRY:
                values[QueueTaskRecord.scheduled_at] = now + retry_delay(retry_count)
            else:
                values[QueueTaskRecord.completed_at] = now

            updated = (
                self.session.query(QueueTaskRecord).filter(
                    QueueTaskRecord.id == record.id,
                    QueueTaskRecord.status == TaskStatus.CLAIMED,
                    QueueTaskRecord.lease_expires_at <= now,
                )
                .update(values, synchronize_session=False)
            )
            self.session.commit()
            if updated == 1:
                task = self.get(record.id)
                swept.append(task)
                logger.warning(
                    "Expired claim swept",
                    task_id=task.id,
                    subject_id=task.subject_id,
                    task_type=task.type.value,
                    status=task.status.value,
                    retry_count=task.retry_count,
                )
        return swept

    def has_outstanding(self, subject_id: str, task_types) -> bool:
        """True if the subject has a PENDING, RETRY or CLAIMED task of any of ``task_types``."""
        query = self.session.query(QueueTaskRecord.id).filter(
            QueueTaskRecord.subject_id == subject_id,
            QueueTaskRecord.task_type.in_(task_types),
            QueueTaskRecord.status.in_(OUTSTANDING_TASK_STATUSES),
        )
        return query.first() is not None

    def list_tasks(
        self,
        subject_id: Optional[str] = None,
        status: Optional[TaskStatus] = None,
        limit: int = 100,
    ) -> List[QueueTask]:
        query = self.session.query(QueueTaskRecord)
        if subject_id is not None:
            query = query.filter(QueueTaskRecord.subject_id == subject_id)
        if status is not None:
            query = query.filter(QueueTaskRecord.status == status)
        records = query.order_by(QueueTaskRecord.scheduled_at.asc(), QueueTaskRecord.id.asc()).limit(limit).all()
        return [QueueTask.from_record(record) for record in records]

    def counts_by_status(self) -> Dict[str, int]:
        rows = (
            self.session.query(QueueTaskRecord.status, db.func.count(QueueTaskRecord.id))
            .group_by(QueueTaskRecord.status)
            .all()
        )
        return {status.value: count for status, count in rows}
