"""Prompt construction for photo, pose-planning, description and video requests.

Everything here is pure: identical inputs always produce byte-identical text.
"""

from __future__ import annotations

from photoshoot.models import BatchParameters

PREAMBLE = "Create a new hyper-realistic 4K commercial photoshoot image."

STYLE_CLAUSES: dict[str, str] = {
    "e-commerce": (
        "The overall style should be photorealistic, clean, and professional. "
        "The background must be a completely plain, solid white background (#FFFFFF) "
        "suitable for an e-commerce product listing. The lighting should be bright and even, "
        "minimizing shadows. High-end commercial photography, sharp focus on the product and model."
    ),
    "studio-bokeh": (
        "The style is photorealistic. The background should be a clean studio setting with a soft, "
        "out-of-focus bokeh effect, creating a sense of depth. The lighting should be professional "
        "and flattering."
    ),
    "cinematic": (
        "The style should be cinematic, with dramatic, high-contrast lighting (chiaroscuro). "
        "The background should be dark and moody, suggesting a scene from a film."
    ),
    "high-fashion": (
        "The style should be high-fashion and avant-garde. The background must be an abstract, "
        "geometric pattern with bold colors and shapes."
    ),
    "lifestyle": (
        "Create a lifestyle scene with the model in a natural, candid pose. The setting should be "
        "outdoors with beautiful, warm, natural light (golden hour)."
    ),
    "vintage": (
        "The style should be vintage, reminiscent of old film photography. Apply a sepia tone, "
        "add subtle film grain, and use soft, nostalgic lighting."
    ),
    "minimalist": (
        "The style must be minimalist and clean. The background should be a simple, "
        "neutral-colored studio setting with even, soft lighting."
    ),
    "dramatic": (
        "The style should be dramatic and theatrical. Use a single, hard light source to create "
        "deep shadows and a strong focal point. The background should be dark or black."
    ),
    "monochrome": (
        "The image must be in black and white (monochrome). The background should be a simple "
        "studio setting, focusing on texture, form, and light."
    ),
}

_FALLBACK_STYLE_CLAUSE = (
    "The overall style should be {style}. The background should be a clean studio setting "
    "with professional lighting. High-end commercial photography, sharp focus."
)

_REFERENCE_CLAUSES = {
    (True, True): "Featuring the attached model posing with the attached product.",
    (False, True): "Featuring the attached model in a commercial setting.",
    (True, False): "Featuring a fashion model posing with the attached product.",
    (False, False): "Featuring a fashion model posing with a generic commercial product.",
}

DESCRIPTION_INSTRUCTION = (
    "Describe this product in a concise and appealing way for a commercial website."
)

VIDEO_INSTRUCTION = (
    "Bring this image to life with subtle, realistic animation. Make the model blink, breathe, "
    "and have gentle movements as if captured in a live moment. Keep the background and "
    "product static."
)


def style_clause(style: str) -> str:
    """Return the descriptive clause for a style, falling back to a clean studio look."""
    clause = STYLE_CLAUSES.get(style)
    if clause is None:
        return _FALLBACK_STYLE_CLAUSE.format(style=style)
    return clause


def build_prompt(params: BatchParameters, pose: str) -> str:
    """Build the full image-synthesis instruction for one pose.

    Args:
        params: Batch parameters (description, reference images, style, aspect ratio).
        pose: Textual description of the model's pose.

    Returns:
        The instruction text, sections joined by single spaces.
    """
    parts = [PREAMBLE]
    if params.description:
        parts.append(f'The product is: "{params.description}".')
    has_product = params.product_image is not None
    has_model = params.model_image is not None
    parts.append(_REFERENCE_CLAUSES[(has_product, has_model)])
    parts.append(f'The model\'s pose is: "{pose}".')
    parts.append(f"The image must have a {params.aspect_ratio} aspect ratio.")
    parts.append(style_clause(params.style))
    return " ".join(parts)


def build_pose_plan_prompt(description: str, count: int) -> str:
    """Instruction asking the text model for ``count`` distinct poses as JSON."""
    return (
        "You are a creative director for a commercial photoshoot.\n"
        f"Based on the provided product description and image, generate a list of {count} "
        "distinct, commercially appealing poses for a model.\n"
        f'Product Description: "{description}"\n'
        "The poses should be creative, varied, and suitable for advertising.\n"
        'Return the list in a JSON object with a single key "poses" which contains an array '
        'of strings. For example: {"poses": ["posing confidently with the product", '
        '"a dynamic action shot using the product"]}'
    )
