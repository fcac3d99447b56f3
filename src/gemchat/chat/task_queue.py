"""Background threads that run generation jobs off the caller's thread."""

from __future__ import annotations

from dataclasses import dataclass, field
from queue import Empty, Queue
from threading import Event, Lock, Thread
from typing import Any, Callable, Dict, List, Optional, Tuple

from gemchat.logging import get_logger

logger = get_logger(__file__)

_POLL_SECONDS = 0.1


@dataclass
class Task:
    """One queued call. ``wait()`` hands its result (or error) back to the submitter."""

    func: Callable[..., Any]
    args: Tuple[Any, ...] = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)
    label: str = ""
    result: Any = field(default=None, init=False)
    error: Optional[Exception] = field(default=None, init=False)
    _finished: Event = field(default_factory=Event, init=False, repr=False)

    def run(self) -> None:
        try:
            self.result = self.func(*self.args, **self.kwargs)
        except Exception as exc:
            self.error = exc
            raise
        finally:
            self._finished.set()

    @property
    def done(self) -> bool:
        return self._finished.is_set()

    def describe(self) -> str:
        return self.label or getattr(self.func, "__qualname__", repr(self.func))

    def wait(self, timeout: float | None = None) -> Any:
        """Block until the task ran; re-raise its error, else return its result.

        Raises ``TimeoutError`` if it has not finished within ``timeout``.
        """

        if not self._finished.wait(timeout):
            raise TimeoutError(f"Task {self.describe()!r} still running")
        if self.error is not None:
            raise self.error
        return self.result


class TaskQueue:
    """FIFO of :class:`Task` objects served by ``max_workers`` daemon threads.

    A failing task is logged and its exception kept (on the task and in
    :meth:`get_errors`); the worker thread carries on with the next one.
    """

    def __init__(self, max_workers: int = 1) -> None:
        self._queue: Queue[Task] = Queue()
        self._stopping = Event()
        self._max_workers = max_workers
        self._threads: List[Thread] = []
        self._errors: List[Exception] = []
        self._error_lock = Lock()

    @property
    def running(self) -> bool:
        return bool(self._threads)

    def start(self) -> None:
        if self.running:
            return
        self._stopping.clear()
        self._threads = [
            Thread(target=self._serve, name=f"gemchat-worker-{index}", daemon=True)
            for index in range(self._max_workers)
        ]
        for thread in self._threads:
            thread.start()

    def stop(self) -> None:
        """Ask every worker thread to exit and wait for them.

        Tasks still queued stay queued and run after the next :meth:`start`.
        """

        self._stopping.set()
        for thread in self._threads:
            if thread.is_alive():
                thread.join()
        self._threads = []

    def submit(self, task: Task) -> Task:
        self.start()
        self._queue.put(task)
        return task

    def add_task(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Task:
        return self.submit(Task(func, args, kwargs))

    def join(self) -> None:
        """Block until every queued task has been processed."""

        self._queue.join()

    def get_errors(self, clear: bool = False) -> List[Exception]:
        with self._error_lock:
            errors = list(self._errors)
            if clear:
                self._errors.clear()
        return errors

    def _next(self) -> Task | None:
        while not self._stopping.is_set():
            try:
                return self._queue.get(timeout=_POLL_SECONDS)
            except Empty:
                continue
        return None

    def _serve(self) -> None:
        while True:
            task = self._next()
            if task is None:
                break
            try:
                task.run()
            except Exception as exc:
                logger.exception("Task %s failed: %s", task.describe(), exc)
                with self._error_lock:
                    self._errors.append(exc)
            finally:
                self._queue.task_done()
