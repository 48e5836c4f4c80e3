"""
Tests for the Gemini REST client

Tests for photoshoot/client.py, driven through httpx.MockTransport.
"""

import base64
import json

import httpx
import pytest
from conftest import PHOTO, PRODUCT

from photoshoot.auth import Credentials
from photoshoot.client import GeminiClient, format_failure, format_safety_ratings
from photoshoot.errors import CredentialsError, GatewayError

API_KEY = "test-key"
OPERATION = "models/veo-2.0-generate-001/operations/abc123"


def _client(handler, api_key=API_KEY):
    return GeminiClient(Credentials(api_key=api_key), transport=httpx.MockTransport(handler))


def _text_response(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}, "finishReason": "STOP"}]}


def _image_response(media):
    return {
        "candidates": [{
            "content": {"parts": [
                {"text": "Here is your image."},
                {"inlineData": {"mimeType": media.mime_type, "data": media.to_base64()}},
            ]},
            "finishReason": "STOP",
        }],
    }


class TestPlanPoses:
    """Tests for pose planning."""

    @pytest.mark.asyncio
    async def test_parses_poses(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=_text_response('{"poses": ["P1", "P2", " "]}'))

        async with _client(handler) as client:
            poses = await client.plan_poses("Leather handbag", PRODUCT, 2)

        assert poses == ["P1", "P2"]
        request = requests[0]
        assert request.url.path == "/v1beta/models/gemini-2.5-flash:generateContent"
        assert request.headers["x-goog-api-key"] == API_KEY
        body = json.loads(request.content)
        parts = body["contents"][0]["parts"]
        assert parts[0]["inlineData"]["data"] == PRODUCT.to_base64()
        assert "generate a list of 2 distinct" in parts[1]["text"]
        assert body["generationConfig"]["responseMimeType"] == "application/json"

    @pytest.mark.asyncio
    async def test_markdown_wrapped_json(self):
        def handler(request):
            return httpx.Response(200, json=_text_response('```json\n{"poses": ["P1"]}\n```'))

        async with _client(handler) as client:
            assert await client.plan_poses("", None, 1) == ["P1"]

    @pytest.mark.asyncio
    async def test_unexpected_shape(self):
        def handler(request):
            return httpx.Response(200, json=_text_response('{"ideas": ["P1"]}'))

        async with _client(handler) as client:
            with pytest.raises(GatewayError) as exc_info:
                await client.plan_poses("", None, 1)

        assert exc_info.value.kind == "malformed"


class TestSynthesizeImage:
    """Tests for image synthesis and its failure taxonomy."""

    @pytest.mark.asyncio
    async def test_returns_inline_image(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=_image_response(PHOTO))

        async with _client(handler) as client:
            image = await client.synthesize_image("prompt", PRODUCT, None)

        assert image == PHOTO
        body = json.loads(requests[0].content)
        assert body["generationConfig"]["responseModalities"] == ["IMAGE", "TEXT"]
        assert [list(p) for p in body["contents"][0]["parts"]] == [["inlineData"], ["text"]]

    @pytest.mark.asyncio
    async def test_blocked_prompt(self):
        payload = {
            "promptFeedback": {
                "blockReason": "SAFETY",
                "safetyRatings": [
                    {"category": "HARM_CATEGORY_HARASSMENT", "probability": "HIGH"},
                    {"category": "HARM_CATEGORY_HATE_SPEECH", "probability": "NEGLIGIBLE"},
                ],
            },
        }

        async with _client(lambda request: httpx.Response(200, json=payload)) as client:
            with pytest.raises(GatewayError) as exc_info:
                await client.synthesize_image("prompt")

        error = exc_info.value
        assert error.kind == "blocked"
        assert error.reason == "SAFETY"
        assert str(error) == "Request was blocked. Reason: SAFETY. Details: HARASSMENT (HIGH)"

    @pytest.mark.asyncio
    async def test_abnormal_finish_reason(self):
        payload = {"candidates": [{"finishReason": "IMAGE_SAFETY", "content": {"parts": []}}]}

        async with _client(lambda request: httpx.Response(200, json=payload)) as client:
            with pytest.raises(GatewayError) as exc_info:
                await client.synthesize_image("prompt")

        assert exc_info.value.kind == "finish_reason"
        assert "Reason: IMAGE_SAFETY" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_text_only(self):
        payload = _text_response("I cannot draw that.")

        async with _client(lambda request: httpx.Response(200, json=payload)) as client:
            with pytest.raises(GatewayError) as exc_info:
                await client.synthesize_image("prompt")

        assert exc_info.value.kind == "text_only"
        assert "I cannot draw that." in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_no_candidates(self):
        async with _client(lambda request: httpx.Response(200, json={"candidates": []})) as client:
            with pytest.raises(GatewayError) as exc_info:
                await client.synthesize_image("prompt")

        assert exc_info.value.kind == "malformed"

    @pytest.mark.asyncio
    async def test_no_image_parts(self):
        payload = {"candidates": [{"content": {"parts": []}, "finishReason": "STOP"}]}

        async with _client(lambda request: httpx.Response(200, json=payload)) as client:
            with pytest.raises(GatewayError) as exc_info:
                await client.synthesize_image("prompt")

        assert exc_info.value.kind == "no_image"


class TestDescribe:
    """Tests for product descriptions."""

    @pytest.mark.asyncio
    async def test_returns_text(self):
        payload = _text_response("A supple leather handbag. ")

        async with _client(lambda request: httpx.Response(200, json=payload)) as client:
            assert await client.synthesize_description(PRODUCT) == "A supple leather handbag."

    @pytest.mark.asyncio
    async def test_empty_text(self):
        async with _client(lambda request: httpx.Response(200, json=_text_response(""))) as client:
            with pytest.raises(GatewayError):
                await client.synthesize_description(PRODUCT)


class TestVideoOperations:
    """Tests for the long-running video endpoints."""

    @pytest.mark.asyncio
    async def test_submit(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"name": OPERATION})

        async with _client(handler) as client:
            handle = await client.submit_video_job(PHOTO, "16:9")

        assert handle == OPERATION
        assert requests[0].url.path == "/v1beta/models/veo-2.0-generate-001:predictLongRunning"
        body = json.loads(requests[0].content)
        instance = body["instances"][0]
        assert base64.b64decode(instance["image"]["bytesBase64Encoded"]) == PHOTO.data
        assert body["parameters"] == {"aspectRatio": "16:9", "sampleCount": 1}

    @pytest.mark.asyncio
    async def test_poll_pending(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"name": OPERATION})

        async with _client(handler) as client:
            status = await client.poll_video_job(OPERATION)

        assert not status.done
        assert requests[0].url.path == f"/v1beta/{OPERATION}"

    @pytest.mark.asyncio
    async def test_poll_done(self):
        payload = {
            "name": OPERATION,
            "done": True,
            "response": {"generateVideoResponse": {"generatedSamples": [
                {"video": {"uri": "https://example.com/video.mp4"}},
            ]}},
        }

        async with _client(lambda request: httpx.Response(200, json=payload)) as client:
            status = await client.poll_video_job(OPERATION)

        assert status.is_success
        assert status.video_uri == "https://example.com/video.mp4"

    @pytest.mark.asyncio
    async def test_poll_failed(self):
        payload = {"name": OPERATION, "done": True, "error": {"code": 8, "message": "Quota exceeded"}}

        async with _client(lambda request: httpx.Response(200, json=payload)) as client:
            status = await client.poll_video_job(OPERATION)

        assert status.done
        assert not status.is_success
        assert status.error == "Quota exceeded"

    @pytest.mark.asyncio
    async def test_poll_filtered(self):
        payload = {
            "done": True,
            "response": {"generateVideoResponse": {
                "raiMediaFilteredReasons": ["Video was filtered for safety."],
            }},
        }

        async with _client(lambda request: httpx.Response(200, json=payload)) as client:
            status = await client.poll_video_job(OPERATION)

        assert status.error == "Video was filtered for safety."

    @pytest.mark.asyncio
    async def test_fetch_video(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, content=b"mp4-bytes", headers={"content-type": "video/mp4"})

        async with _client(handler) as client:
            video = await client.fetch_video("https://example.com/video.mp4")

        assert video.data == b"mp4-bytes"
        assert video.mime_type == "video/mp4"
        assert requests[0].url.host == "example.com"
        assert requests[0].headers["x-goog-api-key"] == API_KEY


class TestRequestHandling:
    """Tests for credentials, retries and HTTP errors."""

    @pytest.mark.asyncio
    async def test_missing_key_makes_no_request(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={})

        async with _client(handler, api_key="") as client:
            with pytest.raises(CredentialsError):
                await client.plan_poses("", None, 1)

        assert requests == []

    @pytest.mark.asyncio
    async def test_placeholder_key_is_missing(self):
        async with _client(lambda request: httpx.Response(200), api_key="YOUR_GEMINI_API_KEY") as client:
            with pytest.raises(CredentialsError):
                await client.synthesize_image("prompt")

    @pytest.mark.asyncio
    async def test_rejected_key(self):
        def handler(request):
            return httpx.Response(400, json={"error": {"message": "API key not valid.", "status": "INVALID_ARGUMENT",
                                                       "details": [{"reason": "API_KEY_INVALID"}]}})

        async with _client(handler) as client:
            with pytest.raises(CredentialsError) as exc_info:
                await client.synthesize_image("prompt")

        assert exc_info.value.kind == "credentials"
        assert "API key not valid." in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_forbidden(self):
        async with _client(lambda request: httpx.Response(403, json={})) as client:
            with pytest.raises(CredentialsError):
                await client.plan_poses("", None, 1)

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self):
        responses = iter([
            httpx.Response(429, headers={"Retry-After": "0"}),
            httpx.Response(200, json=_image_response(PHOTO)),
        ])

        async with _client(lambda request: next(responses)) as client:
            assert await client.synthesize_image("prompt") == PHOTO

    @pytest.mark.asyncio
    async def test_client_error(self):
        def handler(request):
            return httpx.Response(400, json={"error": {"message": "Invalid aspect ratio"}})

        async with _client(handler) as client:
            with pytest.raises(GatewayError) as exc_info:
                await client.submit_video_job(PHOTO, "1:1")

        assert exc_info.value.status_code == 400
        assert "Invalid aspect ratio" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(GatewayError) as exc_info:
                await client.plan_poses("", None, 1)

        assert exc_info.value.kind == "transport"

    @pytest.mark.asyncio
    async def test_reinitialize_swaps_key(self):
        keys = []

        def handler(request):
            keys.append(request.headers["x-goog-api-key"])
            return httpx.Response(200, json=_text_response('{"poses": ["P1"]}'))

        async with _client(handler, api_key="") as client:
            await client.reinitialize(Credentials(api_key="fresh-key"))
            await client.plan_poses("", None, 1)

        assert keys == ["fresh-key"]


class TestFormatting:
    """Tests for failure message helpers."""

    def test_safety_ratings_skip_benign(self):
        ratings = [
            {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "probability": "MEDIUM"},
            {"category": "HARM_CATEGORY_HARASSMENT", "probability": "LOW"},
        ]

        assert format_safety_ratings(ratings) == "DANGEROUS_CONTENT (MEDIUM)"
        assert format_safety_ratings(None) == ""

    def test_format_failure(self):
        assert format_failure("Generation failed") == "Generation failed."
        assert format_failure("Generation failed", "OTHER") == "Generation failed. Reason: OTHER."
