"""Utilities for supervising background asyncio tasks.

Follow-on generation jobs (audio, comic images, recaps) run as
fire-and-forget tasks after a request has answered. This keeps a strong
reference to each task until it finishes and logs failures instead of
letting them disappear.
"""
from __future__ import annotations

import asyncio
import logging
from concurrent.futures import Executor
from functools import partial
from typing import Awaitable, Callable, Optional, Any, Set

logger = logging.getLogger(__name__)

# Track tasks so they are not garbage collected before finishing.
_background_tasks: Set[asyncio.Task[Any]] = set()


def spawn(coro: Awaitable[Any], *, name: Optional[str] = None,
          on_error: Optional[Callable[[BaseException], None]] = None) -> asyncio.Task[Any]:
    """Create and supervise a background task.

    Args:
        coro: Awaitable coroutine to run in the background.
        name: Optional name for the task.
        on_error: Optional callback invoked if the task raises.
    """
    task = asyncio.create_task(coro, name=name)  # type: ignore[arg-type]
    _background_tasks.add(task)

    def _finished(t: asyncio.Task[Any]) -> None:
        _background_tasks.discard(t)
        try:
            t.result()
        except asyncio.CancelledError:
            logger.debug("Background task %s cancelled", name or t)
        except Exception as exc:  # noqa: BLE001
            if on_error:
                try:
                    on_error(exc)
                except Exception:  # noqa: BLE001
                    logger.exception("Error in on_error callback for task %s", name or t)
            logger.exception("Background task %s failed", name or t, exc_info=exc)

    task.add_done_callback(_finished)
    return task


def pending_tasks() -> Set[asyncio.Task[Any]]:
    return set(_background_tasks)


async def drain(timeout: Optional[float] = None, *, cancel: bool = False) -> None:
    """Wait for supervised tasks to finish; optionally cancel the stragglers."""
    tasks = pending_tasks()
    if not tasks:
        return
    done, still_running = await asyncio.wait(tasks, timeout=timeout)
    if still_running and cancel:
        for task in still_running:
            task.cancel()
        await asyncio.gather(*still_running, return_exceptions=True)
        logger.info("Cancelled %d background task(s) on shutdown", len(still_running))


async def run_sync(func: Callable[..., Any], *args: Any, loop: Optional[asyncio.AbstractEventLoop] = None,
                   executor: Optional[Executor] = None, **kwargs: Any) -> Any:
    """Execute blocking code in the default executor and await the result."""
    event_loop = loop or asyncio.get_running_loop()
    bound = partial(func, *args, **kwargs)
    return await event_loop.run_in_executor(executor, bound)


__all__ = ["spawn", "pending_tasks", "drain", "run_sync"]
