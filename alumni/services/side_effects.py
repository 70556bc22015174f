"""
Side-Effect Runner.

Workflow transitions commit their state change first and then notify the
outside world (email, payment gateway, fee bookkeeping).  Those calls run
here, on a small worker pool, each bounded by ``SIDE_EFFECT_TIMEOUT_S``.
A side effect that raises or times out is logged and reported to the
caller as ``None``; it never undoes the transition that triggered it.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, Optional, TypeVar

from alumni.logger import StructuredLogger

T = TypeVar("T")


class SideEffectRunner:
    """Runs best-effort callables with a timeout."""

    def __init__(
        self,
        logger: StructuredLogger,
        timeout_s: float,
        max_workers: int = 4,
    ) -> None:
        self._logger = logger
        self._timeout_s = timeout_s
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="side-effect",
        )

    @property
    def timeout_s(self) -> float:
        return self._timeout_s

    def run(self, name: str, func: Callable[[], T]) -> Optional[T]:
        """Run *func* and return its result, or ``None`` on failure/timeout.

        A timed-out call keeps running in the background; its eventual
        result is discarded.
        """
        future = self._executor.submit(func)
        try:
            return future.result(timeout=self._timeout_s)
        except FutureTimeoutError:
            self._logger.warning(
                "Side effect %s timed out after %.1fs", name, self._timeout_s,
            )
        except Exception as exc:
            self._logger.error("Side effect %s failed: %s", name, exc, exc_info=True)
        return None

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
