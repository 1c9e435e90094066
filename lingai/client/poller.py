"""
Client-side readiness polling for artifacts generated in the background.

A ``PollableArtifact`` describes one kind of artifact (sentence audio, lesson
comic image, recap markdown): how to re-fetch its parent record, where the
artifact URL lives in that record, whether an initial record still needs
polling, and the poll interval. ``ReadinessPoller`` runs one asyncio task per
resource id:

    NOT_POLLING -> POLLING -> READY    (callback fired once, URL cached)
                           -> STOPPED  (stop()/stop_all())
                           -> FAILED   (max_attempts re-fetches without a URL)

READY and FAILED are settled: start() leaves them alone until reset().
Re-fetch errors are logged and count as an attempt; they never stop polling
on their own.
"""
from __future__ import annotations

import asyncio
import enum
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Hashable, Iterable, Optional

from .api import LingAIClient

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
ReadyCallback = Callable[[Hashable, str], Any]
FailedCallback = Callable[[Hashable], Any]


class PollState(str, enum.Enum):
    NOT_POLLING = "not_polling"
    POLLING = "polling"
    READY = "ready"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass(frozen=True)
class PollableArtifact:
    name: str
    fetch: Callable[[Hashable], Awaitable[Record]]
    artifact_url: Callable[[Record], Optional[str]]
    should_poll: Callable[[Record], bool]
    interval: float
    max_attempts: Optional[int] = 150


async def _call(cb, *args):
    result = cb(*args)
    if inspect.isawaitable(result):
        await result


class ReadinessPoller:
    def __init__(
        self,
        artifact: PollableArtifact,
        *,
        on_ready: Optional[ReadyCallback] = None,
        on_failed: Optional[FailedCallback] = None,
    ):
        self.artifact = artifact
        self.on_ready = on_ready
        self.on_failed = on_failed
        self._states: Dict[Hashable, PollState] = {}
        self._urls: Dict[Hashable, str] = {}
        self._tasks: Dict[Hashable, asyncio.Task] = {}

    # ---- queries ----
    def state(self, resource_id: Hashable) -> PollState:
        return self._states.get(resource_id, PollState.NOT_POLLING)

    def is_loading(self, resource_id: Hashable) -> bool:
        return self.state(resource_id) == PollState.POLLING

    def get_url(self, resource_id: Hashable, original: Optional[str] = None) -> Optional[str]:
        return self._urls.get(resource_id) or original

    # ---- control ----
    def start(self, resource_id: Hashable, initial: Optional[Record] = None) -> PollState:
        """Begin polling unless the resource is already polled, has settled, or its initial record says it is ready."""
        current = self.state(resource_id)
        if current in (PollState.POLLING, PollState.READY, PollState.FAILED):
            return current
        if initial is not None and not self.artifact.should_poll(initial):
            return self.state(resource_id)

        self._states[resource_id] = PollState.POLLING
        self._tasks[resource_id] = asyncio.create_task(
            self._run(resource_id), name=f"poll:{self.artifact.name}:{resource_id}"
        )
        return PollState.POLLING

    def start_many(self, records: Iterable[Record], *, key: str = "id") -> Dict[Hashable, PollState]:
        """Replace whatever is being polled with the given records, e.g. the sentences of a newly opened lesson."""
        self.stop_all()
        return {r[key]: self.start(r[key], initial=r) for r in records}

    def reset(self, resource_id: Hashable):
        """Forget a settled resource so a later start() polls it again, e.g. after a manual retry."""
        self.stop(resource_id)
        self._states.pop(resource_id, None)
        self._urls.pop(resource_id, None)

    def stop(self, resource_id: Hashable):
        task = self._tasks.pop(resource_id, None)
        if task is not None and not task.done():
            task.cancel()
        if self._states.get(resource_id) == PollState.POLLING:
            self._states[resource_id] = PollState.STOPPED

    def stop_all(self):
        for resource_id in list(self._tasks):
            self.stop(resource_id)

    async def wait(self, timeout: Optional[float] = None) -> bool:
        """Wait for every running poll to finish. Returns False on timeout."""
        tasks = [t for t in self._tasks.values() if not t.done()]
        if not tasks:
            return True
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        return not pending

    # ---- loop ----
    async def _run(self, resource_id: Hashable):
        art = self.artifact
        attempts = 0
        try:
            while True:
                await asyncio.sleep(art.interval)
                attempts += 1
                url = None
                try:
                    record = await art.fetch(resource_id)
                    url = art.artifact_url(record) if record else None
                except Exception:
                    logger.warning("Failed to check %s for %s", art.name, resource_id, exc_info=True)

                if url:
                    self._urls[resource_id] = url
                    self._states[resource_id] = PollState.READY
                    logger.debug("%s ready for %s: %s", art.name, resource_id, url)
                    if self.on_ready:
                        await self._notify(self.on_ready, resource_id, url)
                    return

                if art.max_attempts and attempts >= art.max_attempts:
                    self._states[resource_id] = PollState.FAILED
                    logger.warning("Gave up on %s for %s after %d attempts", art.name, resource_id, attempts)
                    if self.on_failed:
                        await self._notify(self.on_failed, resource_id)
                    return
        finally:
            if self._tasks.get(resource_id) is asyncio.current_task():
                self._tasks.pop(resource_id, None)

    async def _notify(self, cb, *args):
        try:
            await _call(cb, *args)
        except Exception:
            logger.exception("%s callback failed for %s", self.artifact.name, args[0])


# ---------------------------
# Artifact kinds
# ---------------------------
def audio_artifact(client: LingAIClient, *, interval: float = 2.0, max_attempts: Optional[int] = 150) -> PollableArtifact:
    return PollableArtifact(
        name="audio",
        fetch=client.get_sentence,
        artifact_url=lambda s: s.get("audioUrl"),
        should_poll=lambda s: not s.get("audioGenerated") and not s.get("audioUrl"),
        interval=interval,
        max_attempts=max_attempts,
    )


def comic_image_artifact(client: LingAIClient, *, interval: float = 3.0, max_attempts: Optional[int] = 100) -> PollableArtifact:
    return PollableArtifact(
        name="comic_image",
        fetch=client.get_lesson,
        artifact_url=lambda l: l.get("comicImageUrl"),
        should_poll=lambda l: not l.get("isRecapLesson") and not l.get("comicImageUrl"),
        interval=interval,
        max_attempts=max_attempts,
    )


def recap_artifact(client: LingAIClient, *, interval: float = 3.0, max_attempts: Optional[int] = 100) -> PollableArtifact:
    return PollableArtifact(
        name="recap",
        fetch=client.get_lesson,
        artifact_url=lambda l: l.get("recapMarkdownUrl"),
        should_poll=lambda l: bool(l.get("isRecapLesson")) and not l.get("recapMarkdownUrl"),
        interval=interval,
        max_attempts=max_attempts,
    )

