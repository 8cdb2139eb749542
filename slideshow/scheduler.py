"""
Deferred-callback primitive for the slideshow engine.

All timers (auto-advance, transition phases, polling) and all blocking I/O
go through a Scheduler so the engine stays single-threaded: callbacks and
completion handlers always run on the event loop thread. Tests substitute a
manual clock.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, Protocol, Set

logger = logging.getLogger(__name__)

# Called with (result, None) on success or (None, exception) on failure.
DoneCallback = Callable[[Any, Optional[BaseException]], None]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(ABC):
    """Interface used by the controller, caption coordinator and poller."""

    @abstractmethod
    def time(self) -> float:
        """Monotonic clock in seconds."""

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[..., None], *args: Any) -> TimerHandle:
        """Schedule ``callback(*args)`` after ``delay`` seconds."""

    @abstractmethod
    def run_in_background(
        self,
        func: Callable[..., Any],
        *args: Any,
        on_done: DoneCallback,
        timeout: Optional[float] = None,
    ) -> None:
        """
        Run a blocking function off the loop and report back on the loop.

        Args:
            func: Blocking callable, typically a network request
            on_done: Receives ``(result, error)``; exactly one is not None
            timeout: Seconds after which the call is reported as failed
        """


class AsyncioScheduler(Scheduler):
    """Scheduler backed by a running asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop or asyncio.get_running_loop()
        self._tasks: Set[asyncio.Task] = set()

    def time(self) -> float:
        return self._loop.time()

    def call_later(self, delay: float, callback: Callable[..., None], *args: Any) -> TimerHandle:
        return self._loop.call_later(max(0.0, delay), callback, *args)

    def run_in_background(
        self,
        func: Callable[..., Any],
        *args: Any,
        on_done: DoneCallback,
        timeout: Optional[float] = None,
    ) -> None:
        task = self._loop.create_task(self._run(func, args, on_done, timeout))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, func, args, on_done: DoneCallback, timeout: Optional[float]) -> None:
        result: Any = None
        error: Optional[BaseException] = None
        try:
            result = await asyncio.wait_for(asyncio.to_thread(func, *args), timeout)
        except asyncio.TimeoutError:
            error = TimeoutError(f"Request timed out after {timeout:g} seconds")
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            error = exc

        try:
            on_done(result, error)
        except Exception as exc:  # pragma: no cover - best effort
            logger.error("Background completion handler failed: %s", exc)

    async def close(self) -> None:
        """Cancel background work still in flight."""
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)
