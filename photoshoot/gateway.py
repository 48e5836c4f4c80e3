"""Contract of the remote generation backend consumed by the pipeline."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Protocol

from photoshoot.models import BatchParameters, MediaFile, TrackedItem, VideoJobStatus


class GenerationGateway(Protocol):
    """Async request/response and submit/poll operations of the AI backend.

    Transient network failures are retried inside the implementation; anything
    that escapes is a real failure for the caller to record.
    """

    async def plan_poses(
        self,
        description: str,
        product_image: MediaFile | None,
        count: int,
    ) -> list[str]:
        ...

    async def synthesize_image(
        self,
        prompt: str,
        product_image: MediaFile | None = None,
        model_image: MediaFile | None = None,
    ) -> MediaFile:
        ...

    async def synthesize_description(self, product_image: MediaFile) -> str:
        ...

    async def submit_video_job(self, image: MediaFile, aspect_ratio: str) -> str:
        ...

    async def poll_video_job(self, handle: str) -> VideoJobStatus:
        ...

    async def fetch_video(self, video_uri: str) -> MediaFile:
        ...


class HistorySink(Protocol):
    """Anything that can archive a completed batch."""

    def append(
        self,
        params: BatchParameters,
        items: Iterable[TrackedItem],
        timestamp: datetime | None = None,
    ) -> int:
        ...
