"""In-memory reminder work queue.

Ordered by ascending priority, FIFO within a priority. An appointment can be
either queued or in flight, never twice. Nothing here is durable: whether a
reminder went out lives in ``Appointment.reminder_sent``, so anything lost on
a crash is rediscovered by the next scan.
"""

import heapq
import itertools
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock


@dataclass(frozen=True)
class ReminderJob:
    appointment_id: int
    scheduled_at: datetime
    priority: int = 0


@dataclass(order=True)
class _QueueEntry:
    priority: int
    sequence: int
    job: ReminderJob = field(compare=False)


class ReminderQueue:
    def __init__(self) -> None:
        self._heap: list[_QueueEntry] = []
        self._queued: set[int] = set()
        self._in_flight: set[int] = set()
        self._sequence = itertools.count()
        self._lock = Lock()

    def enqueue(self, job: ReminderJob) -> bool:
        """Add ``job`` unless its appointment is already queued or in flight."""
        with self._lock:
            if job.appointment_id in self._queued or job.appointment_id in self._in_flight:
                return False
            heapq.heappush(self._heap, _QueueEntry(job.priority, next(self._sequence), job))
            self._queued.add(job.appointment_id)
            return True

    def dequeue(self) -> ReminderJob | None:
        with self._lock:
            if not self._heap:
                return None
            job = heapq.heappop(self._heap).job
            self._queued.discard(job.appointment_id)
            self._in_flight.add(job.appointment_id)
            return job

    def complete(self, appointment_id: int) -> None:
        with self._lock:
            self._in_flight.discard(appointment_id)

    def fail(self, appointment_id: int) -> None:
        with self._lock:
            self._in_flight.discard(appointment_id)

    def has_job(self, appointment_id: int) -> bool:
        with self._lock:
            return appointment_id in self._queued or appointment_id in self._in_flight

    def size(self) -> int:
        with self._lock:
            return len(self._heap)

    def in_flight_count(self) -> int:
        with self._lock:
            return len(self._in_flight)

    def is_idle(self) -> bool:
        with self._lock:
            return not self._heap and not self._in_flight

    def clear(self) -> None:
        with self._lock:
            self._heap.clear()
            self._queued.clear()
            self._in_flight.clear()


class ReminderAttempts:
    """Per-appointment failure counts for this process only.

    A ``max_attempts`` of 0 disables the cap and failed reminders are retried
    on every scan indefinitely.
    """

    def __init__(self, max_attempts: int = 0) -> None:
        self.max_attempts = max_attempts
        self._failures: dict[int, int] = {}
        self._lock = Lock()

    def record_failure(self, appointment_id: int) -> int:
        with self._lock:
            count = self._failures.get(appointment_id, 0) + 1
            self._failures[appointment_id] = count
            return count

    def clear(self, appointment_id: int) -> None:
        with self._lock:
            self._failures.pop(appointment_id, None)

    def failures(self, appointment_id: int) -> int:
        with self._lock:
            return self._failures.get(appointment_id, 0)

    def exhausted(self, appointment_id: int) -> bool:
        if self.max_attempts <= 0:
            return False
        return self.failures(appointment_id) >= self.max_attempts
