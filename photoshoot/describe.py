"""Product description suggestions from a reference image."""

from __future__ import annotations

import logging

from photoshoot.errors import ValidationError
from photoshoot.gateway import GenerationGateway
from photoshoot.models import MediaFile

logger = logging.getLogger(__name__)


async def describe_product(gateway: GenerationGateway, product_image: MediaFile | None) -> str:
    """Return a short commercial description of the product in the image.

    Concurrent calls are not deduplicated.

    Raises:
        ValidationError: If no product image was given.
        GatewayError: If the backend fails.
    """
    if product_image is None or not product_image.data:
        raise ValidationError("A product image is required to generate a description")
    logger.info("Describing product image (%s)", product_image.mime_type)
    description = await gateway.synthesize_description(product_image)
    return description.strip()
