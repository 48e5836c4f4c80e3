"""
Pytest Configuration and Fixtures

Shared fixtures for all tests.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from photoshoot.models import (
    BatchParameters,
    MediaFile,
    PhotoState,
    TrackedItem,
    VideoJobStatus,
)
from photoshoot.tracker import ItemTracker

PRODUCT = MediaFile(data=b"\x89PNG-product", mime_type="image/png")
MODEL = MediaFile(data=b"\xff\xd8-model", mime_type="image/jpeg")
PHOTO = MediaFile(data=b"\x89PNG-photo", mime_type="image/png")
VIDEO = MediaFile(data=b"\x00\x00\x00\x18ftypmp42", mime_type="video/mp4")

HANDLE = "models/veo-2.0-generate-001/operations/op-1"
VIDEO_URI = "https://generativelanguage.googleapis.com/v1beta/files/video-1:download?alt=media"


class SleepRecorder:
    """Stand-in for asyncio.sleep that records durations without waiting."""

    def __init__(self, events=None):
        self.calls = []
        self.events = events

    async def __call__(self, seconds):
        self.calls.append(seconds)
        if self.events is not None:
            self.events.append(("sleep", seconds))
        await asyncio.sleep(0)


def make_gateway(poses=("P1", "P2", "P3")):
    """Build a gateway whose every operation succeeds immediately."""
    gateway = MagicMock()
    gateway.plan_poses = AsyncMock(return_value=list(poses))
    gateway.synthesize_image = AsyncMock(return_value=PHOTO)
    gateway.synthesize_description = AsyncMock(return_value="  A sleek leather handbag.  ")
    gateway.submit_video_job = AsyncMock(return_value=HANDLE)
    gateway.poll_video_job = AsyncMock(
        return_value=VideoJobStatus(handle=HANDLE, done=True, video_uri=VIDEO_URI)
    )
    gateway.fetch_video = AsyncMock(return_value=VIDEO)
    return gateway


def photographed_item(item_id="a", pose="standing with the bag", style="e-commerce"):
    """An item whose photo already succeeded."""
    return TrackedItem(
        id=item_id,
        pose=pose,
        style=style,
        aspect_ratio="9:16",
        photo_state=PhotoState.SUCCESS,
        photo_result=PHOTO,
    )


@pytest.fixture
def gateway():
    return make_gateway()


@pytest.fixture
def tracker():
    return ItemTracker()


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def params():
    return BatchParameters(
        product_image=PRODUCT,
        description="Leather handbag",
        count=3,
        delay=1,
        style="e-commerce",
        aspect_ratio="9:16",
    )
