"""Batch execution: plan poses, then generate one photo per pose in order.

Photos are generated strictly one at a time with an optional pause between
them. A failed photo is recorded on its item and the loop moves on; only
validation and planning failures abort a batch.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from numbers import Real
from typing import Awaitable, Callable

from photoshoot.errors import (
    CredentialsError,
    ItemGenerationError,
    PlanningError,
    ValidationError,
    error_kind,
)
from photoshoot.gateway import GenerationGateway, HistorySink
from photoshoot.models import (
    ASPECT_RATIOS,
    MAX_COUNT,
    MAX_DELAY,
    MIN_COUNT,
    MIN_DELAY,
    STYLES,
    Batch,
    BatchParameters,
    MediaFile,
    PhotoState,
    TrackedItem,
)
from photoshoot.prompts import build_prompt
from photoshoot.tracker import ItemTracker

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


def validate_params(params: BatchParameters) -> None:
    """Check batch parameters before any remote call.

    An empty description is allowed: planning can work from images alone.

    Raises:
        ValidationError: On the first out-of-bounds field.
    """
    count = params.count
    if isinstance(count, bool) or not isinstance(count, int):
        raise ValidationError(f"Photo count must be an integer, got {count!r}")
    if not MIN_COUNT <= count <= MAX_COUNT:
        raise ValidationError(f"Photo count must be between {MIN_COUNT} and {MAX_COUNT}, got {count}")

    delay = params.delay
    if isinstance(delay, bool) or not isinstance(delay, Real):
        raise ValidationError(f"Delay must be a number of seconds, got {delay!r}")
    if not MIN_DELAY <= delay <= MAX_DELAY:
        raise ValidationError(f"Delay must be between {MIN_DELAY:g} and {MAX_DELAY:g} seconds, got {delay}")

    if params.style not in STYLES:
        raise ValidationError(f"Unknown style {params.style!r}; expected one of {', '.join(STYLES)}")
    if params.aspect_ratio not in ASPECT_RATIOS:
        raise ValidationError(
            f"Unknown aspect ratio {params.aspect_ratio!r}; expected one of {', '.join(ASPECT_RATIOS)}"
        )

    for label, image in (("product", params.product_image), ("model", params.model_image)):
        if image is None:
            continue
        if not isinstance(image, MediaFile) or not image.data:
            raise ValidationError(f"The {label} image is empty")
        if not image.mime_type.startswith("image/"):
            raise ValidationError(f"The {label} image has unsupported type {image.mime_type!r}")


class PipelineExecutor:
    """Runs one batch from planning to archived completion.

    Args:
        gateway: Remote generation backend.
        tracker: Item state tracker that receives every transition.
        history: Optional archive that receives the completed batch.
        sleep: Coroutine used for the pause between photos.
    """

    def __init__(
        self,
        gateway: GenerationGateway,
        tracker: ItemTracker,
        history: HistorySink | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.gateway = gateway
        self.tracker = tracker
        self.history = history
        self._sleep = sleep

    async def run(
        self,
        params: BatchParameters,
        on_start: Callable[[Batch], None] | None = None,
    ) -> Batch:
        """Plan and execute a batch.

        Args:
            params: Snapshot of the user's input.
            on_start: Called once the items exist, before the first photo.

        Returns:
            The completed batch with each item's final state.

        Raises:
            ValidationError: If ``params`` are out of bounds.
            PlanningError: If planning failed or produced no poses.
            CredentialsError: If the API key is missing or rejected.
        """
        validate_params(params)
        poses = await self._plan(params)

        batch = Batch(
            id=uuid.uuid4().hex,
            params=params,
            items=[
                TrackedItem(
                    id=uuid.uuid4().hex,
                    pose=pose,
                    style=params.style,
                    aspect_ratio=params.aspect_ratio,
                )
                for pose in poses
            ],
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        self.tracker.load(batch.id, batch.items)
        if on_start is not None:
            on_start(batch)
        logger.info("Batch %s: generating %d photo(s)", batch.id, len(batch.items))

        total = len(batch.items)
        for index, item in enumerate(batch.items):
            if index > 0 and params.delay > 0:
                logger.debug("Waiting %.1fs before photo %d/%d", params.delay, index + 1, total)
                await self._sleep(params.delay)
            if self.tracker.batch_id != batch.id:
                logger.info("Batch %s superseded; stopping after %d/%d photo(s)", batch.id, index, total)
                return self._snapshot(batch)
            await self._generate(params, item, index, total)

        batch = self._snapshot(batch)
        failed = len(batch.failed)
        logger.info(
            "Batch %s complete: %d succeeded, %d failed",
            batch.id, total - failed, failed,
        )
        if self.history is not None:
            entry_id = self.history.append(params, batch.items, datetime.now(timezone.utc))
            logger.info("Batch %s archived as history entry %s", batch.id, entry_id)
        return batch

    async def _plan(self, params: BatchParameters) -> list[str]:
        try:
            poses = await self.gateway.plan_poses(
                params.description, params.product_image, params.count,
            )
        except CredentialsError:
            raise
        except Exception as exc:
            raise PlanningError(f"Failed to generate poses: {exc}", kind=error_kind(exc)) from exc

        poses = [pose for pose in poses or [] if pose and pose.strip()]
        if not poses:
            raise PlanningError("The AI failed to generate any poses. Try adjusting the description.")
        if len(poses) > params.count:
            logger.debug("Planner returned %d poses; keeping the first %d", len(poses), params.count)
            poses = poses[:params.count]
        elif len(poses) < params.count:
            logger.warning("Planner returned %d of %d requested poses", len(poses), params.count)
        return poses

    async def _generate(self, params: BatchParameters, item: TrackedItem, index: int, total: int) -> None:
        logger.info("Photo %d/%d: %r", index + 1, total, item.pose[:80])
        prompt = build_prompt(params, item.pose)
        try:
            image = await self.gateway.synthesize_image(
                prompt, params.product_image, params.model_image,
            )
        except Exception as exc:
            failure = ItemGenerationError(str(exc), kind=error_kind(exc))
            logger.warning("Photo %d/%d failed: %s", index + 1, total, failure)
            self.tracker.set_photo(item.id, PhotoState.ERROR, str(failure), error_kind=failure.kind)
            return

        self.tracker.set_photo(item.id, PhotoState.SUCCESS, image)
        logger.info("Photo %d/%d done", index + 1, total)

    def _snapshot(self, batch: Batch) -> Batch:
        batch.items = [self.tracker.get(item.id) or item for item in batch.items]
        return batch
