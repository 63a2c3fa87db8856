"""
Fixed-size thread pool for sync tasks.

Each pipeline (tags, notes) owns one pool. Tasks are pulled FIFO from an
unbounded queue; an exception escaping a task is logged and stored on its
handle, and the worker moves on to the next task.
"""

import queue
import threading
import weakref
from concurrent.futures import Future
from typing import Any, Callable, List

from loguru import logger

# Queued once per worker when the pool stops
_STOP = object()


class _PoolState:
    """Queue and counters shared by a pool and its workers.

    Workers only hold this object, never the pool itself, so a pool that is
    dropped without shutdown() can still be finalized.
    """

    def __init__(self, name: str):
        self.name = name
        self.tasks: "queue.Queue[Any]" = queue.Queue()
        self.cond = threading.Condition()
        self.unfinished = 0  # queued + in flight
        self.active = 0
        self.stopped = False


def _worker_loop(state: _PoolState) -> None:
    while True:
        item = state.tasks.get()
        if item is _STOP:
            return

        future, fn, args, kwargs = item
        with state.cond:
            state.active += 1

        try:
            if future.set_running_or_notify_cancel():
                try:
                    result = fn(*args, **kwargs)
                except Exception as e:
                    logger.opt(exception=e).error(
                        f"Unhandled error in {state.name} task {getattr(fn, '__name__', fn)}"
                    )
                    future.set_exception(e)
                else:
                    future.set_result(result)
        finally:
            with state.cond:
                state.active -= 1
                state.unfinished -= 1
                state.cond.notify_all()


def _stop_workers(state: _PoolState, count: int) -> None:
    """Let workers finish queued tasks, then exit."""
    with state.cond:
        if state.stopped:
            return
        state.stopped = True
        for _ in range(count):
            state.tasks.put(_STOP)


class WorkerPool:
    """Thread pool with submit / await_quiescence / shutdown.

    Usable as a context manager; leaving the block shuts the pool down. A
    pool garbage-collected without shutdown() still stops its workers.
    """

    def __init__(self, name: str, size: int):
        if size < 1:
            raise ValueError(f"Pool size must be at least 1, got {size}")

        self.name = name
        self.size = size
        self._state = _PoolState(name)
        self._workers: List[threading.Thread] = []

        for index in range(size):
            worker = threading.Thread(
                target=_worker_loop, args=(self._state,), name=f"{name}-{index}", daemon=True
            )
            worker.start()
            self._workers.append(worker)

        self._finalizer = weakref.finalize(self, _stop_workers, self._state, size)
        logger.debug(f"Started pool {name!r} with {size} workers")

    def __enter__(self) -> "WorkerPool":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    @property
    def pending_tasks(self) -> int:
        """Tasks waiting in the queue."""
        with self._state.cond:
            return self._state.unfinished - self._state.active

    @property
    def active_tasks(self) -> int:
        """Tasks currently executing."""
        with self._state.cond:
            return self._state.active

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        """Queue ``fn(*args, **kwargs)`` and return its handle.

        Raises:
            RuntimeError: If the pool has been shut down
        """
        future: Future = Future()
        state = self._state
        with state.cond:
            if state.stopped:
                raise RuntimeError(f"submit on stopped pool {self.name!r}")
            state.unfinished += 1
            state.tasks.put((future, fn, args, kwargs))
        return future

    def await_quiescence(self) -> None:
        """Block until the queue is empty and no task is running."""
        state = self._state
        with state.cond:
            state.cond.wait_for(lambda: state.unfinished == 0)

    def shutdown(self) -> None:
        """Let workers finish queued tasks, then stop and join them. Idempotent."""
        if not self._finalizer.alive:
            return
        self._finalizer()

        current = threading.current_thread()
        for worker in self._workers:
            if worker is not current:
                worker.join()
        logger.debug(f"Pool {self.name!r} shut down")
