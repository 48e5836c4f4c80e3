"""Re-run image synthesis for a single item with a new style or pose."""

from __future__ import annotations

import logging

from photoshoot.errors import (
    ConflictError,
    ItemGenerationError,
    ItemNotFoundError,
    ValidationError,
    error_kind,
)
from photoshoot.gateway import GenerationGateway
from photoshoot.models import BatchParameters, PhotoState, TrackedItem
from photoshoot.prompts import build_prompt
from photoshoot.tracker import ItemTracker

logger = logging.getLogger(__name__)


class RegenerationController:
    """Regenerates one photo using the last batch's parameters.

    Only the style (and the pose text) is overridden; the original reference
    images and aspect ratio are reused. Other items are never touched.
    """

    def __init__(self, gateway: GenerationGateway, tracker: ItemTracker) -> None:
        self.gateway = gateway
        self.tracker = tracker
        self.params: BatchParameters | None = None

    async def regenerate(self, item_id: str, new_style: str, new_prompt: str) -> TrackedItem:
        """Regenerate the photo of ``item_id``.

        Args:
            item_id: Item to regenerate.
            new_style: Style to apply (may equal the current one).
            new_prompt: Pose text to render (may equal the current one).

        Returns:
            The item after regeneration, or unchanged if nothing differed.

        Raises:
            ItemNotFoundError: If the item is not in the current batch.
            ValidationError: If no batch parameters are known or the pose is empty.
            ConflictError: If the item's photo is already being generated.
        """
        item = self.tracker.get(item_id)
        if item is None:
            raise ItemNotFoundError(f"No item with id {item_id}")
        if self.params is None:
            raise ValidationError("Cannot regenerate. Original batch parameters not found.")

        if new_style == item.style and new_prompt == item.pose:
            logger.debug("Item %s unchanged; skipping regeneration", item_id)
            return item
        if not new_prompt.strip():
            raise ValidationError("Pose description must not be empty")
        if item.photo_state is PhotoState.LOADING:
            raise ConflictError(f"Item {item_id} is already generating")

        # Claimed synchronously, before the first await
        self.tracker.reset_for_regeneration(item_id, new_style, new_prompt)
        params = self.params.with_style(new_style)
        prompt = build_prompt(params, new_prompt)
        logger.info("Regenerating item %s: style=%s pose=%r", item_id, new_style, new_prompt[:80])

        try:
            image = await self.gateway.synthesize_image(
                prompt, params.product_image, params.model_image,
            )
        except Exception as exc:
            failure = ItemGenerationError(str(exc), kind=error_kind(exc))
            logger.warning("Regeneration of item %s failed: %s", item_id, failure)
            updated = self.tracker.set_photo(
                item_id, PhotoState.ERROR, str(failure), error_kind=failure.kind,
            )
        else:
            updated = self.tracker.set_photo(item_id, PhotoState.SUCCESS, image)

        if updated is None:
            # The batch was superseded while the request was in flight
            logger.debug("Item %s no longer tracked after regeneration", item_id)
            return item
        return updated
