"""Async HTTP client for the Gemini API.

Implements the generation gateway: pose planning, image synthesis and
product description via ``generateContent``, and image-to-video synthesis via
Veo's long-running ``predictLongRunning`` operations.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import httpx

from photoshoot.auth import DEFAULT_BASE_URL, Credentials
from photoshoot.errors import CredentialsError, GatewayError
from photoshoot.models import MediaFile, VideoJobStatus
from photoshoot.prompts import DESCRIPTION_INSTRUCTION, VIDEO_INSTRUCTION, build_pose_plan_prompt

logger = logging.getLogger(__name__)

# Retry configuration
_MAX_RETRIES = 5
_RETRY_BACKOFF_BASE = 2.0
_DEFAULT_TIMEOUT = 120.0
_DOWNLOAD_TIMEOUT = 300.0

_NORMAL_FINISH_REASONS = {"STOP", "MAX_TOKENS"}
_BENIGN_PROBABILITIES = {"NEGLIGIBLE", "LOW"}

_POSES_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "poses": {
            "type": "ARRAY",
            "items": {"type": "STRING"},
        },
    },
}


class GeminiClient:
    """Async client for the Gemini REST API.

    The client can be constructed without an API key; every call then fails
    with CredentialsError until :meth:`reinitialize` supplies one.

    Usage::

        async with GeminiClient(Credentials(api_key="...")) as client:
            poses = await client.plan_poses("A leather handbag", None, 3)
            photo = await client.synthesize_image(prompt)
    """

    def __init__(
        self,
        credentials: Credentials,
        base_url: str = DEFAULT_BASE_URL,
        text_model: str = "gemini-2.5-flash",
        image_model: str = "gemini-2.5-flash-image-preview",
        video_model: str = "veo-2.0-generate-001",
        timeout: float = _DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.credentials = credentials
        self.base_url = base_url.rstrip("/")
        self.text_model = text_model
        self.image_model = image_model
        self.video_model = video_model
        self._timeout = timeout
        self._transport = transport
        self._client = self._build_client()

    @classmethod
    def from_config(cls, config: dict, credentials: Credentials, **kwargs: Any) -> GeminiClient:
        """Build a client from the ``api`` section of config.yaml."""
        api = config.get("api", {})
        return cls(
            credentials,
            base_url=api.get("base_url", DEFAULT_BASE_URL),
            text_model=api.get("text_model", "gemini-2.5-flash"),
            image_model=api.get("image_model", "gemini-2.5-flash-image-preview"),
            video_model=api.get("video_model", "veo-2.0-generate-001"),
            **kwargs,
        )

    async def __aenter__(self) -> GeminiClient:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def reinitialize(self, credentials: Credentials) -> None:
        """Swap in new credentials, replacing the underlying HTTP client."""
        await self._client.aclose()
        self.credentials = credentials
        self._client = self._build_client()
        logger.info("Gemini client re-initialized with new credentials")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "x-goog-api-key": self.credentials.api_key,
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(self._timeout, connect=10.0),
            transport=self._transport,
        )

    def _require_credentials(self) -> None:
        if not self.credentials.is_set:
            raise CredentialsError(
                "API key not found. Please provide your key to use the application."
            )

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Execute an HTTP request with retry logic for 429, 5xx and timeouts."""
        self._require_credentials()
        last_exc: Exception | None = None
        for attempt in range(_MAX_RETRIES):
            try:
                response = await self._client.request(method, url, **kwargs)

                if response.status_code == 429:
                    retry_after = _retry_after(response, _RETRY_BACKOFF_BASE ** attempt)
                    logger.warning(
                        "Rate limited (429). Retrying in %.1fs (attempt %d/%d)",
                        retry_after, attempt + 1, _MAX_RETRIES,
                    )
                    await asyncio.sleep(retry_after)
                    continue

                if response.status_code >= 500:
                    wait = _RETRY_BACKOFF_BASE ** attempt
                    logger.warning(
                        "Server error %d. Retrying in %.1fs (attempt %d/%d)",
                        response.status_code, wait, attempt + 1, _MAX_RETRIES,
                    )
                    await asyncio.sleep(wait)
                    continue

                if response.status_code in (401, 403) or (
                    response.status_code == 400 and "API_KEY_INVALID" in response.text
                ):
                    raise CredentialsError(
                        f"API key rejected (HTTP {response.status_code}): {_error_message(response)}",
                        status_code=response.status_code,
                        body=response.text,
                    )

                response.raise_for_status()
                return response

            except httpx.TimeoutException as exc:
                last_exc = exc
                wait = _RETRY_BACKOFF_BASE ** attempt
                logger.warning(
                    "Request timeout. Retrying in %.1fs (attempt %d/%d)",
                    wait, attempt + 1, _MAX_RETRIES,
                )
                await asyncio.sleep(wait)
            except httpx.HTTPStatusError as exc:
                raise GatewayError(
                    f"HTTP {exc.response.status_code}: {_error_message(exc.response)}",
                    status_code=exc.response.status_code,
                    body=exc.response.text,
                ) from exc
            except httpx.HTTPError as exc:
                raise GatewayError(f"Request failed: {exc}", kind="transport") from exc

        raise GatewayError(
            f"Max retries ({_MAX_RETRIES}) exceeded",
            kind="transport",
        ) from last_exc

    async def _generate_content(
        self,
        model: str,
        parts: list[dict],
        generation_config: dict | None = None,
    ) -> dict:
        """Call the ``generateContent`` endpoint and return the parsed body."""
        body: dict[str, Any] = {"contents": [{"parts": parts}]}
        if generation_config:
            body["generationConfig"] = generation_config

        logger.debug("generateContent model=%s parts=%d", model, len(parts))
        response = await self._request_with_retry(
            "POST", f"/models/{model}:generateContent", json=body,
        )
        return _json_body(response)

    # ------------------------------------------------------------------
    # Public API: generateContent
    # ------------------------------------------------------------------

    async def plan_poses(
        self,
        description: str,
        product_image: MediaFile | None,
        count: int,
    ) -> list[str]:
        """Ask the text model for ``count`` distinct poses.

        Args:
            description: Product description (may be empty).
            product_image: Optional product reference image.
            count: Number of poses requested.

        Returns:
            Pose descriptions in the order the model returned them.

        Raises:
            GatewayError: On API errors or an unparsable response.
        """
        parts: list[dict] = []
        if product_image is not None:
            parts.append(_inline_part(product_image))
        parts.append({"text": build_pose_plan_prompt(description, count)})

        logger.info("Planning %d pose(s): description=%r", count, description[:80])
        data = await self._generate_content(
            self.text_model,
            parts,
            {"responseMimeType": "application/json", "responseSchema": _POSES_SCHEMA},
        )
        text = _candidate_text(data)
        payload = _parse_json_response(text)
        poses = payload.get("poses") if isinstance(payload, dict) else None
        if not isinstance(poses, list):
            raise GatewayError(
                "Could not parse poses from the AI response. Unexpected format.",
                kind="malformed",
                body=data,
            )
        poses = [str(pose).strip() for pose in poses if str(pose).strip()]
        logger.info("Planned %d pose(s)", len(poses))
        return poses

    async def synthesize_image(
        self,
        prompt: str,
        product_image: MediaFile | None = None,
        model_image: MediaFile | None = None,
    ) -> MediaFile:
        """Generate one image from the prompt and optional reference images.

        Raises:
            GatewayError: With kind ``blocked``, ``finish_reason``,
                ``text_only``, ``no_image`` or ``malformed`` describing why no
                image came back, or on API errors.
        """
        parts: list[dict] = []
        if product_image is not None:
            parts.append(_inline_part(product_image))
        if model_image is not None:
            parts.append(_inline_part(model_image))
        parts.append({"text": prompt})

        logger.info("Creating image: prompt=%r", prompt[:80])
        data = await self._generate_content(
            self.image_model,
            parts,
            {"responseModalities": ["IMAGE", "TEXT"]},
        )
        return _extract_image(data)

    async def synthesize_description(self, product_image: MediaFile) -> str:
        """Describe a product for a commercial website."""
        data = await self._generate_content(
            self.text_model,
            [_inline_part(product_image), {"text": DESCRIPTION_INSTRUCTION}],
        )
        text = _candidate_text(data).strip()
        if not text:
            raise GatewayError("The model returned an empty description.", kind="malformed", body=data)
        return text

    # ------------------------------------------------------------------
    # Public API: long-running video operations
    # ------------------------------------------------------------------

    async def submit_video_job(self, image: MediaFile, aspect_ratio: str) -> str:
        """Submit an image-to-video job.

        Returns:
            The operation name, used as the handle for polling.
        """
        body = {
            "instances": [
                {
                    "prompt": VIDEO_INSTRUCTION,
                    "image": {
                        "bytesBase64Encoded": image.to_base64(),
                        "mimeType": image.mime_type,
                    },
                },
            ],
            "parameters": {
                "aspectRatio": aspect_ratio,
                "sampleCount": 1,
            },
        }
        response = await self._request_with_retry(
            "POST", f"/models/{self.video_model}:predictLongRunning", json=body,
        )
        data = _json_body(response)
        handle = data.get("name")
        if not handle:
            raise GatewayError(f"Could not extract operation name from response: {data}", body=data)
        logger.info("Video job submitted: %s", handle)
        return handle

    async def poll_video_job(self, handle: str) -> VideoJobStatus:
        """Get the current status of a video operation."""
        response = await self._request_with_retry("GET", f"/{handle.lstrip('/')}")
        return _parse_operation(handle, _json_body(response))

    async def fetch_video(self, video_uri: str) -> MediaFile:
        """Download the generated video."""
        logger.info("Downloading video %s", video_uri)
        response = await self._request_with_retry(
            "GET",
            video_uri,
            follow_redirects=True,
            timeout=_DOWNLOAD_TIMEOUT,
        )
        mime_type = response.headers.get("content-type", "video/mp4").split(";")[0].strip()
        if not response.content:
            raise GatewayError(f"Downloaded video is empty: {video_uri}")
        logger.info("Downloaded video (%.1f KB)", len(response.content) / 1024)
        return MediaFile(data=response.content, mime_type=mime_type or "video/mp4")


# ----------------------------------------------------------------------
# Response parsing
# ----------------------------------------------------------------------

def _inline_part(media: MediaFile) -> dict:
    return {"inlineData": {"mimeType": media.mime_type, "data": media.to_base64()}}


def _retry_after(response: httpx.Response, default: float) -> float:
    try:
        return float(response.headers.get("Retry-After", default))
    except ValueError:
        return default


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(data, dict) and isinstance(data.get("error"), dict):
        return data["error"].get("message", response.text[:500])
    return response.text[:500]


def _json_body(response: httpx.Response) -> dict:
    try:
        data = response.json()
    except ValueError as exc:
        raise GatewayError(
            f"Malformed response body: {response.text[:200]}",
            kind="malformed",
            body=response.text,
        ) from exc
    if not isinstance(data, dict):
        raise GatewayError(f"Unexpected response: {data!r}", kind="malformed", body=data)
    return data


def _parse_json_response(text: str) -> Any:
    """Parse JSON from a model response, handling markdown code blocks."""
    text = text.strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        if "```" in text:
            block = text.split("```")[1]
            if block.startswith("json"):
                block = block[4:]
            try:
                return json.loads(block.strip())
            except json.JSONDecodeError:
                pass
        raise GatewayError(f"Model returned invalid JSON: {text[:200]}", kind="malformed", body=text)


def _candidate_parts(data: dict) -> list[dict]:
    candidates = data.get("candidates") or []
    if not candidates:
        return []
    content = candidates[0].get("content") or {}
    return content.get("parts") or []


def _candidate_text(data: dict) -> str:
    return "".join(part.get("text", "") for part in _candidate_parts(data))


def format_safety_ratings(ratings: list[dict] | None) -> str:
    """Summarise the safety ratings above LOW probability, or return ''."""
    flagged = [
        r for r in ratings or []
        if r.get("probability") and r.get("probability") not in _BENIGN_PROBABILITIES
    ]
    return ", ".join(
        f"{str(r.get('category', 'UNKNOWN')).replace('HARM_CATEGORY_', '')} ({r['probability']})"
        for r in flagged
    )


def format_failure(headline: str, reason: str | None = None, details: str | None = None) -> str:
    """Build a failure message with the ``Reason: ... Details: ...`` structure."""
    message = headline.rstrip(".") + "."
    if reason:
        message += f" Reason: {reason}."
    if details:
        message += f" Details: {details}"
    return message


def _extract_image(data: dict) -> MediaFile:
    feedback = data.get("promptFeedback") or {}
    block_reason = feedback.get("blockReason")
    if block_reason:
        details = format_safety_ratings(feedback.get("safetyRatings"))
        raise GatewayError(
            format_failure("Request was blocked", block_reason, details),
            kind="blocked",
            reason=block_reason,
            details=details or None,
            body=data,
        )

    candidates = data.get("candidates") or []
    if not candidates:
        raise GatewayError(
            "Generation failed: No response candidate was returned from the model.",
            kind="malformed",
            body=data,
        )

    candidate = candidates[0]
    finish_reason = candidate.get("finishReason")
    if finish_reason and finish_reason not in _NORMAL_FINISH_REASONS:
        details = format_safety_ratings(candidate.get("safetyRatings"))
        raise GatewayError(
            format_failure("Generation failed", finish_reason, details),
            kind="finish_reason",
            reason=finish_reason,
            details=details or None,
            body=data,
        )

    parts = _candidate_parts(data)
    for part in parts:
        inline = part.get("inlineData") or part.get("inline_data") or {}
        if inline.get("data"):
            mime_type = inline.get("mimeType") or inline.get("mime_type") or "image/png"
            return MediaFile.from_base64(inline["data"], mime_type)

    text = next((part["text"] for part in parts if part.get("text")), None)
    if text:
        raise GatewayError(
            format_failure("Model returned a text response instead of an image", "TEXT_ONLY", text),
            kind="text_only",
            reason="TEXT_ONLY",
            details=text,
            body=data,
        )
    raise GatewayError("No image was generated in the response.", kind="no_image", body=data)


def _parse_operation(handle: str, data: dict) -> VideoJobStatus:
    if not data.get("done"):
        return VideoJobStatus(handle=handle, done=False)

    error = data.get("error")
    if error:
        message = error.get("message") if isinstance(error, dict) else str(error)
        return VideoJobStatus(handle=handle, done=True, error=message or "Unknown error")

    video_response = (data.get("response") or {}).get("generateVideoResponse") or {}
    filtered = video_response.get("raiMediaFilteredReasons")
    samples = video_response.get("generatedSamples") or []
    uri = None
    if samples:
        uri = (samples[0].get("video") or {}).get("uri")
    if not uri:
        reason = "; ".join(filtered) if filtered else "Video generation failed or did not return a valid URI."
        return VideoJobStatus(handle=handle, done=True, error=reason)
    return VideoJobStatus(handle=handle, done=True, video_uri=uri)
