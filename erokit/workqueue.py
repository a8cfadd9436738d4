"""A fixed pool of worker threads fed from a bounded job queue."""

import threading
from collections import deque
from typing import Any, Callable, Optional

WorkerHook = Callable[..., Any]


class WorkQueue:
    """Run queued callables on ``nworker`` threads.

    At most ``max_jobs`` jobs wait in the queue at once; :meth:`queue_work`
    blocks while the queue is full.  Each worker calls ``on_start(queue)``
    once when it starts and passes the value it returns to every job it runs
    and to ``on_exit(queue, value)`` when it stops.
    """

    def __init__(self, nworker: int, max_jobs: int,
                 on_start: Optional[WorkerHook] = None,
                 on_exit: Optional[WorkerHook] = None):
        if nworker <= 0 or max_jobs <= 0:
            raise ValueError("nworker and max_jobs must both be positive")
        self.nworker = nworker
        self.max_jobs = max_jobs
        self._on_start = on_start
        self._on_exit = on_exit
        self._jobs: deque = deque()
        self._lock = threading.Lock()
        self._not_empty = threading.Condition(self._lock)
        self._not_full = threading.Condition(self._lock)
        self._shutdown = False
        self._destroyed = False
        self._errors: list[BaseException] = []
        self._workers = [
            threading.Thread(target=self._worker, name=f"workqueue-{i}",
                             daemon=True)
            for i in range(nworker)
        ]
        for worker in self._workers:
            worker.start()

    def _worker(self) -> None:
        local = self._on_start(self) if self._on_start else None
        while True:
            with self._lock:
                while not self._jobs and not self._shutdown:
                    self._not_empty.wait()
                if not self._jobs:
                    break
                fn = self._jobs.popleft()
                if len(self._jobs) == self.max_jobs - 1:
                    self._not_full.notify_all()
            try:
                fn(local)
            except BaseException as exc:  # raised again by destroy()
                with self._lock:
                    self._errors.append(exc)
        if self._on_exit:
            self._on_exit(self, local)

    def queue_work(self, fn: Callable[[Any], Any]) -> None:
        """Append ``fn`` to the queue, waiting while the queue is full."""
        if fn is None:
            raise ValueError("no work given")
        with self._lock:
            if self._shutdown:
                raise RuntimeError("work queue has been shut down")
            while len(self._jobs) >= self.max_jobs:
                self._not_full.wait()
            self._jobs.append(fn)
            self._not_empty.notify()

    def destroy(self) -> None:
        """Let the workers drain the queue, then stop and join them.

        The first exception raised by a job, if any, is raised here.
        """
        if self._destroyed:
            return
        with self._lock:
            self._shutdown = True
            self._not_empty.notify_all()
        for worker in self._workers:
            worker.join()
        self._destroyed = True
        if self._errors:
            raise self._errors[0]

    def __enter__(self) -> "WorkQueue":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.destroy()