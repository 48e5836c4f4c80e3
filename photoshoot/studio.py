"""High-level facade wiring the tracker, executor and per-item controllers."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import replace
from typing import Callable

from photoshoot.describe import describe_product
from photoshoot.executor import PipelineExecutor, Sleep, validate_params
from photoshoot.gateway import GenerationGateway, HistorySink
from photoshoot.models import (
    Batch,
    BatchParameters,
    HistoryEntry,
    MediaFile,
    PhotoState,
    TrackedItem,
    VideoState,
)
from photoshoot.regenerate import RegenerationController
from photoshoot.tracker import ItemTracker, Listener
from photoshoot.video import DEFAULT_POLL_INTERVAL, VideoController

logger = logging.getLogger(__name__)


class PhotoStudio:
    """One active batch plus single-item regeneration and animation.

    Starting a new batch (or loading a history entry) supersedes the current
    one: its video poll loops are cancelled and any late results are ignored.
    """

    def __init__(
        self,
        gateway: GenerationGateway,
        history: HistorySink | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.gateway = gateway
        self.tracker = ItemTracker()
        self.executor = PipelineExecutor(gateway, self.tracker, history=history, sleep=sleep)
        self.regeneration = RegenerationController(gateway, self.tracker)
        self.video = VideoController(gateway, self.tracker, poll_interval=poll_interval, sleep=sleep)
        self.batch: Batch | None = None

    @property
    def params(self) -> BatchParameters | None:
        """Parameters of the active batch (reused by regeneration)."""
        return self.regeneration.params

    def items(self) -> list[TrackedItem]:
        return self.tracker.list()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self.tracker.subscribe(listener)

    async def run_batch(self, params: BatchParameters) -> Batch:
        """Start a new batch, superseding the current one.

        The current batch is only replaced once planning succeeds; a failed
        start leaves it (and its running videos) as they were.
        """
        validate_params(params)
        return await self.executor.run(params, on_start=self._adopt)

    async def regenerate(self, item_id: str, new_style: str, new_prompt: str) -> TrackedItem:
        return await self.regeneration.regenerate(item_id, new_style, new_prompt)

    async def animate(self, item_id: str, aspect_ratio: str) -> TrackedItem | None:
        return await self.video.generate(item_id, aspect_ratio)

    async def describe(self, product_image: MediaFile | None) -> str:
        return await describe_product(self.gateway, product_image)

    def load_entry(self, entry: HistoryEntry) -> list[TrackedItem]:
        """Make an archived batch the active one.

        Items get fresh ids. Work that was still running when the entry was
        archived cannot resume, so such photos become errors and such videos
        go back to idle.
        """
        items = []
        for item in entry.items:
            item = replace(item, id=uuid.uuid4().hex)
            if item.photo_state is PhotoState.LOADING:
                item = replace(
                    item,
                    photo_state=PhotoState.ERROR,
                    photo_error="Generation interrupted",
                    photo_error_kind="interrupted",
                )
            if item.video_state is VideoState.LOADING or item.photo_state is not PhotoState.SUCCESS:
                item = replace(
                    item,
                    video_state=VideoState.IDLE,
                    video_result=None,
                    video_error=None,
                    video_error_kind=None,
                )
            items.append(item)

        batch = Batch(
            id=f"history-{entry.id}-{uuid.uuid4().hex[:8]}",
            params=entry.params,
            items=items,
            created_at=entry.date,
        )
        self.tracker.load(batch.id, batch.items)
        self._adopt(batch)
        return self.tracker.list()

    async def close(self) -> None:
        await self.video.shutdown()

    def _adopt(self, batch: Batch) -> None:
        # The executor keeps updating this object, so it stays current
        cancelled = self.video.cancel_all()
        if cancelled:
            logger.info("Cancelled %d video job(s) from the previous batch", cancelled)
        self.batch = batch
        self.regeneration.params = batch.params
