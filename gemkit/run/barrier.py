"""Fan-out / fan-in barrier shared by every orchestration phase.

Each phase submits one operation per node, joins the resulting futures into
a single future and then polls that join a bounded number of times. The
worst-case wait of a phase is ``max_iterations * attempt_timeout``.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import CancelledError, Future, wait
from typing import Any, TypeVar

from ..errors import PhaseFailedError, PhaseTimeoutError
from ..util import Timer

logger = logging.getLogger(__name__)

N = TypeVar("N")


def all_of(futures: Iterable[Future[Any]]) -> Future[list[Any]]:
    """Join futures into one that resolves when all have succeeded.

    The join fails as soon as any input fails, with that input's exception;
    inputs still pending at that point are not waited for. Results are in
    input order.
    """
    pending = list(futures)
    joined: Future[list[Any]] = Future()
    if not pending:
        joined.set_result([])
        return joined

    lock = threading.Lock()
    state = {"remaining": len(pending), "settled": False}

    def on_done(future: Future[Any]) -> None:
        with lock:
            if state["settled"]:
                return
            if future.cancelled():
                error: BaseException | None = CancelledError()
            else:
                error = future.exception()
            if error is None:
                state["remaining"] -= 1
                if state["remaining"]:
                    return
            state["settled"] = True

        if error is not None:
            joined.set_exception(error)
        else:
            joined.set_result([f.result() for f in pending])

    for future in pending:
        future.add_done_callback(on_done)
    return joined


def await_phase(
    joined: Future[Any],
    phase: str,
    max_iterations: int,
    attempt_timeout: float,
) -> int:
    """Poll ``joined`` up to ``max_iterations`` times.

    Returns the number of attempts used. Raises PhaseTimeoutError if the
    join is still pending afterwards, PhaseFailedError if it failed.
    """
    attempts = 0
    for attempt in range(1, max_iterations + 1):
        attempts = attempt
        done, _ = wait([joined], timeout=attempt_timeout)
        if done:
            break
        logger.info(
            "Waiting for %s, attempt %d of %d", phase, attempt, max_iterations
        )

    if not joined.done():
        logger.error("Phase '%s' timed out after %d iterations", phase, attempts)
        raise PhaseTimeoutError(phase, attempts)

    if joined.cancelled():
        raise PhaseFailedError(phase, attempts, CancelledError())
    error = joined.exception()
    if error is not None:
        logger.error("Phase '%s' failed: %s", phase, error)
        raise PhaseFailedError(phase, attempts, error) from error
    return attempts


def fan_out(nodes: Sequence[N], operation: Callable[[N], Future[Any]]) -> Future[list[Any]]:
    """Start ``operation`` on every node and join the results."""
    return all_of([operation(node) for node in nodes])


def run_phase(
    nodes: Sequence[N],
    phase: str,
    operation: Callable[[N], Future[Any]],
    max_iterations: int,
    attempt_timeout: float,
) -> list[Any]:
    """Run one phase across all nodes and block until it resolves."""
    logger.debug("Phase '%s' started on %d nodes", phase, len(nodes))
    with Timer(phase) as timer:
        joined = fan_out(nodes, operation)
        await_phase(joined, phase, max_iterations, attempt_timeout)
    logger.info("Phase '%s' complete (%.1fs)", phase, timer.elapsed)
    return joined.result()
