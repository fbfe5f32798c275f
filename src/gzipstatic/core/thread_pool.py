"""
=============================================================================
THREAD POOL
=============================================================================

Connections are handed to a bounded pool of worker threads. Static serving
is I/O bound (socket writes, disk reads) and gzip releases the GIL while
compressing, so threads give real concurrency here.

    accept loop ──submit──► ┌──────────────────────┐
                            │  queue.Queue (bounded)│
                            └──────────┬───────────┘
                 ┌─────────────────────┼─────────────────────┐
                 ▼                     ▼                     ▼
            Worker-0              Worker-1    ...       Worker-N
         (min_workers started up front, grows to max_workers under load)

A full queue makes submit() return False and the server answers 503
instead of letting connections pile up without bound.

Shutdown uses poison pills: one None per worker on the queue, each worker
exits when it takes one.
=============================================================================
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class WorkerState(Enum):
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


@dataclass
class Task:
    """
    A unit of work. Tasks that waited longer than `timeout` are dropped, and
    their `on_drop` hook runs so whatever they own can be released.
    """

    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)
    timeout: Optional[float] = None
    on_drop: Optional[Callable[[], Any]] = None
    submitted_at: float = field(default_factory=time.time)

    @property
    def waited(self) -> float:
        return time.time() - self.submitted_at

    @property
    def expired(self) -> bool:
        return self.timeout is not None and self.waited > self.timeout


class Worker(threading.Thread):
    def __init__(self, task_queue: "queue.Queue[Optional[Task]]", worker_id: int, idle_timeout: float = 60.0):
        super().__init__(name=f"gzipstatic-worker-{worker_id}", daemon=True)
        self.task_queue = task_queue
        self.worker_id = worker_id
        self.idle_timeout = idle_timeout
        self.state = WorkerState.IDLE
        self.tasks_completed = 0
        self.tasks_failed = 0
        self._stop_event = threading.Event()

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")
        while not self._stop_event.is_set():
            try:
                task = self.task_queue.get(timeout=self.idle_timeout)
            except queue.Empty:
                continue

            try:
                if task is None:  # poison pill
                    break
                self._execute(task)
            finally:
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute(self, task: Task):
        if task.expired:
            logger.warning(
                f"Dropping task that waited {task.waited:.2f}s (timeout {task.timeout}s)"
            )
            self.tasks_failed += 1
            if task.on_drop is not None:
                try:
                    task.on_drop()
                except Exception as e:
                    logger.exception(f"Worker {self.worker_id} on_drop hook failed: {e}")
            return

        self.state = WorkerState.BUSY
        start = time.time()
        try:
            task.func(*task.args, **task.kwargs)
            self.tasks_completed += 1
        except Exception as e:
            self.tasks_failed += 1
            logger.exception(f"Worker {self.worker_id} task failed after {time.time() - start:.3f}s: {e}")
        finally:
            self.state = WorkerState.IDLE

    def stop(self):
        self._stop_event.set()


class ThreadPool:
    """
    Dynamically sized worker pool.

    Args:
        min_workers: threads started by start()
        max_workers: upper bound when scaling up under load
        max_queue_size: pending tasks before submit() starts refusing
        idle_timeout: how often an idle worker re-checks for shutdown
    """

    def __init__(
        self,
        min_workers: int = 4,
        max_workers: int = 16,
        max_queue_size: int = 100,
        idle_timeout: float = 60.0,
    ):
        self.min_workers = min_workers
        self.max_workers = max_workers
        self.max_queue_size = max_queue_size
        self.idle_timeout = idle_timeout

        self._task_queue: "queue.Queue[Optional[Task]]" = queue.Queue(maxsize=max_queue_size)
        self._workers: list[Worker] = []
        self._lock = threading.Lock()
        self._started = False
        self._shutting_down = False
        self._next_worker_id = 0

    def start(self):
        if self._started:
            return
        logger.info(f"Thread pool: {self.min_workers} workers up front, up to {self.max_workers}")
        with self._lock:
            for _ in range(self.min_workers):
                self._add_worker_locked()
        self._started = True

    def _add_worker_locked(self) -> Worker:
        worker = Worker(self._task_queue, self._next_worker_id, self.idle_timeout)
        self._next_worker_id += 1
        self._workers.append(worker)
        worker.start()
        return worker

    def submit(
        self,
        func: Callable[..., Any],
        args: tuple = (),
        kwargs: Optional[dict] = None,
        timeout: Optional[float] = None,
        on_drop: Optional[Callable[[], Any]] = None,
        block: bool = False,
    ) -> bool:
        """
        Queue a task. Returns False if the queue is full.

        A task still queued after `timeout` seconds is not run; `on_drop` is
        called in its place.
        """
        if not self._started:
            raise RuntimeError("submit() before start()")
        if self._shutting_down:
            raise RuntimeError("submit() during shutdown")

        task = Task(func=func, args=args, kwargs=kwargs or {}, timeout=timeout, on_drop=on_drop)
        try:
            self._task_queue.put(task, block=block)
        except queue.Full:
            return False

        self._maybe_scale_up()
        return True

    def _maybe_scale_up(self):
        with self._lock:
            if len(self._workers) >= self.max_workers:
                return
            busy = sum(1 for w in self._workers if w.state is WorkerState.BUSY)
            if busy == len(self._workers) and self._task_queue.qsize() > 0:
                logger.debug(f"Scaling up: {len(self._workers)} -> {len(self._workers) + 1} workers")
                self._add_worker_locked()

    def shutdown(self, wait: bool = True, timeout: Optional[float] = 30.0):
        """Stop accepting work, optionally drain the queue, stop all workers."""
        if not self._started:
            return

        logger.info(f"Stopping thread pool ({self._task_queue.qsize()} queued)")
        self._shutting_down = True

        if wait:
            deadline = time.time() + timeout if timeout else None
            while not self._task_queue.empty():
                if deadline and time.time() > deadline:
                    logger.warning("Thread pool drain timed out")
                    break
                time.sleep(0.05)

        with self._lock:
            workers = list(self._workers)
            self._workers.clear()

        for _ in workers:
            try:
                self._task_queue.put_nowait(None)
            except queue.Full:
                break
        for worker in workers:
            worker.stop()
            worker.join(timeout=2.0)

        self._started = False
        self._shutting_down = False
        logger.info(f"Thread pool stopped ({len(workers)} workers joined)")

    @property
    def queue_size(self) -> int:
        return self._task_queue.qsize()

    @property
    def stats(self) -> dict:
        with self._lock:
            workers = list(self._workers)
        return {
            "workers": {
                "total": len(workers),
                "busy": sum(1 for w in workers if w.state is WorkerState.BUSY),
                "idle": sum(1 for w in workers if w.state is WorkerState.IDLE),
            },
            "tasks": {
                "queued": self._task_queue.qsize(),
                "completed": sum(w.tasks_completed for w in workers),
                "failed": sum(w.tasks_failed for w in workers),
            },
        }
