"""Worker pools that run per-node operations."""

from __future__ import annotations

import itertools
import threading
from collections.abc import Callable
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Any

from ..common.enums import ConcurrencyMode

# Extra pooled workers beyond one per node, for overlapping phase operations
POOL_HEADROOM = 10


class ThreadPerTaskExecutor(Executor):
    """Executor that starts a dedicated daemon thread for every task."""

    def __init__(self, thread_name_prefix: str = "gemkit-task"):
        self._thread_name_prefix = thread_name_prefix
        self._counter = itertools.count(1)
        self._threads: set[threading.Thread] = set()
        self._shutdown = False
        self._lock = threading.Lock()

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future[Any]:
        future: Future[Any] = Future()
        with self._lock:
            if self._shutdown:
                raise RuntimeError("cannot schedule new futures after shutdown")
            thread = threading.Thread(
                target=self._run,
                args=(future, fn, args, kwargs),
                name=f"{self._thread_name_prefix}-{next(self._counter)}",
                daemon=True,
            )
            self._threads.add(thread)
            thread.start()
        return future

    def shutdown(self, wait: bool = True, *, cancel_futures: bool = False) -> None:
        with self._lock:
            self._shutdown = True
            threads = list(self._threads)

        if wait:
            current = threading.current_thread()
            for thread in threads:
                if thread is not current:
                    thread.join()

    def _run(
        self,
        future: Future[Any],
        fn: Callable[..., Any],
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> None:
        try:
            if not future.set_running_or_notify_cancel():
                return
            try:
                result = fn(*args, **kwargs)
            except BaseException as exc:
                future.set_exception(exc)
            else:
                future.set_result(result)
        finally:
            with self._lock:
                self._threads.discard(threading.current_thread())


def create_executor(mode: ConcurrencyMode, node_count: int) -> Executor:
    """Create the shared pool for a run over ``node_count`` nodes."""
    if mode == ConcurrencyMode.TASK_PER_NODE:
        return ThreadPerTaskExecutor()
    return ThreadPoolExecutor(
        max_workers=node_count + POOL_HEADROOM, thread_name_prefix="gemkit-node"
    )
