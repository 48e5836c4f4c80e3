"""Image-to-video synthesis for a single item: submit, poll until done, fetch.

Each item has at most one video job in flight. Asking again while a job runs
does not submit a second one; the caller waits for the running job instead.
Jobs have no maximum duration but stop when cancelled, when the item's photo
is regenerated, or when the batch is superseded.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from photoshoot.errors import (
    ItemNotFoundError,
    PreconditionError,
    ValidationError,
    VideoJobError,
    error_kind,
)
from photoshoot.gateway import GenerationGateway
from photoshoot.models import VIDEO_ASPECT_RATIOS, MediaFile, PhotoState, TrackedItem, VideoState
from photoshoot.tracker import ItemTracker

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 10.0


class VideoController:
    """Drives one video job per item through the tracker.

    Args:
        gateway: Remote generation backend.
        tracker: Item state tracker.
        poll_interval: Seconds between status polls.
        sleep: Coroutine used between polls.
    """

    def __init__(
        self,
        gateway: GenerationGateway,
        tracker: ItemTracker,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.gateway = gateway
        self.tracker = tracker
        self.poll_interval = poll_interval
        self._sleep = sleep
        self._jobs: dict[str, asyncio.Task] = {}
        tracker.subscribe(self._on_transition)

    def is_running(self, item_id: str) -> bool:
        job = self._jobs.get(item_id)
        return job is not None and not job.done()

    async def generate(self, item_id: str, aspect_ratio: str) -> TrackedItem | None:
        """Animate the item's photo.

        Args:
            item_id: Item whose photo is animated.
            aspect_ratio: Video aspect ratio, one of VIDEO_ASPECT_RATIOS.

        Returns:
            The item once the job settled (video SUCCESS or ERROR), or None if
            the item stopped being tracked in the meantime.

        Raises:
            ItemNotFoundError: If the item is not in the current batch.
            ValidationError: If the aspect ratio is not supported for video.
            PreconditionError: If the item has no successful photo.
        """
        item = self.tracker.get(item_id)
        if item is None:
            raise ItemNotFoundError(f"No item with id {item_id}")
        if aspect_ratio not in VIDEO_ASPECT_RATIOS:
            raise ValidationError(
                f"Unsupported video aspect ratio {aspect_ratio!r}; expected one of "
                f"{', '.join(VIDEO_ASPECT_RATIOS)}"
            )
        if item.photo_state is not PhotoState.SUCCESS or item.photo_result is None:
            raise PreconditionError(
                f"Item {item_id} has no photo to animate (photo is {item.photo_state.value})"
            )

        job = self._jobs.get(item_id)
        if job is None or job.done():
            self.tracker.set_video(item_id, VideoState.LOADING)
            job = asyncio.create_task(self._run(item_id, item.photo_result, aspect_ratio))
            self._jobs[item_id] = job
            job.add_done_callback(lambda task, key=item_id: self._forget(key, task))
        else:
            logger.debug("Video for item %s already in flight; waiting for it", item_id)

        try:
            return await asyncio.shield(job)
        except asyncio.CancelledError:
            if job.cancelled():
                return self.tracker.get(item_id)
            raise

    def cancel(self, item_id: str) -> bool:
        """Stop the item's poll loop. Returns True if a job was running."""
        job = self._jobs.get(item_id)
        if job is None or job.done():
            return False
        logger.info("Cancelling video job for item %s", item_id)
        # Forgotten now so a new request can start before this one unwinds
        del self._jobs[item_id]
        job.cancel()
        return True

    def cancel_all(self) -> int:
        """Stop every running poll loop. Returns how many were cancelled."""
        return sum(1 for item_id in list(self._jobs) if self.cancel(item_id))

    async def shutdown(self) -> None:
        """Cancel all jobs and wait for them to unwind."""
        jobs = list(self._jobs.values())
        self.cancel_all()
        if jobs:
            await asyncio.gather(*jobs, return_exceptions=True)

    async def _run(self, item_id: str, photo: MediaFile, aspect_ratio: str) -> TrackedItem | None:
        try:
            handle = await self.gateway.submit_video_job(photo, aspect_ratio)
            polls = 0
            while True:
                await self._sleep(self.poll_interval)
                status = await self.gateway.poll_video_job(handle)
                polls += 1
                if item_id not in self.tracker:
                    logger.info("Item %s no longer tracked; abandoning video job %s", item_id, handle)
                    return None
                if status.done:
                    break
                logger.debug("Video job %s pending (%d poll(s))", handle, polls)

            if not status.is_success:
                raise VideoJobError(
                    status.error or "Video generation failed or did not return a valid URI."
                )
            video = await self.gateway.fetch_video(status.video_uri)
        except asyncio.CancelledError:
            if self._jobs.get(item_id) in (None, asyncio.current_task()):
                self.tracker.set_video(item_id, VideoState.IDLE)
            raise
        except Exception as exc:
            failure = exc if isinstance(exc, VideoJobError) else VideoJobError(str(exc), kind=error_kind(exc))
            logger.warning("Video for item %s failed: %s", item_id, failure)
            return self.tracker.set_video(item_id, VideoState.ERROR, str(failure), error_kind=failure.kind)

        logger.info("Video for item %s done after %d poll(s)", item_id, polls)
        return self.tracker.set_video(item_id, VideoState.SUCCESS, video)

    def _on_transition(self, item: TrackedItem) -> None:
        # A new photo (or a reset) invalidates the running job
        job = self._jobs.get(item.id)
        if job is None or job.done() or job is asyncio.current_task():
            return
        if item.video_state is not VideoState.LOADING:
            self.cancel(item.id)

    def _forget(self, item_id: str, task: asyncio.Task) -> None:
        if self._jobs.get(item_id) is task:
            del self._jobs[item_id]
