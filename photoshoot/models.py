"""Data models for the commercial photoshoot generation pipeline."""

from __future__ import annotations

import base64
import mimetypes
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path

STYLES: tuple[str, ...] = (
    "e-commerce",
    "studio-bokeh",
    "cinematic",
    "high-fashion",
    "lifestyle",
    "vintage",
    "minimalist",
    "dramatic",
    "monochrome",
)

ASPECT_RATIOS: tuple[str, ...] = ("3:4", "4:3", "1:1", "16:9", "9:16")

# Veo only renders landscape or portrait video
VIDEO_ASPECT_RATIOS: tuple[str, ...] = ("16:9", "9:16")

MIN_COUNT = 1
MAX_COUNT = 10
MIN_DELAY = 0.0
MAX_DELAY = 10.0

_DATA_URL_RE = re.compile(r"^data:([\w.+-]+/[\w.+-]+);base64,(.+)$", re.DOTALL)


@dataclass(frozen=True)
class MediaFile:
    """Raw bytes of an image or video plus their media type."""
    data: bytes
    mime_type: str

    @property
    def extension(self) -> str:
        """File extension (without the dot) matching the media type."""
        subtype = self.mime_type.split("/")[-1].lower()
        return {"jpeg": "jpg", "quicktime": "mov"}.get(subtype, subtype or "bin")

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.to_base64()}"

    @classmethod
    def from_base64(cls, data: str, mime_type: str) -> MediaFile:
        return cls(data=base64.b64decode(data), mime_type=mime_type)

    @classmethod
    def from_data_url(cls, url: str) -> MediaFile:
        """Parse a ``data:<mime>;base64,<payload>`` URL.

        Raises:
            ValueError: If the string is not a base64 data URL.
        """
        match = _DATA_URL_RE.match(url)
        if not match:
            raise ValueError("Invalid base64 data URL")
        return cls.from_base64(match.group(2), match.group(1))

    @classmethod
    def from_path(cls, path: str | Path) -> MediaFile:
        """Read a local file, guessing its media type from the extension."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")
        mime_type, _ = mimetypes.guess_type(path.name)
        return cls(data=path.read_bytes(), mime_type=mime_type or "application/octet-stream")

    def __repr__(self) -> str:
        return f"MediaFile(mime_type={self.mime_type!r}, size={len(self.data)})"


@dataclass(frozen=True)
class BatchParameters:
    """Immutable snapshot of everything a batch was started with.

    Attributes:
        product_image: Optional reference image of the product.
        model_image: Optional reference image of the model.
        description: Free-text product description (may be empty).
        count: Number of photos (poses) requested.
        delay: Seconds to wait between consecutive photos.
        style: One of STYLES.
        aspect_ratio: One of ASPECT_RATIOS.
    """
    product_image: MediaFile | None = None
    model_image: MediaFile | None = None
    description: str = ""
    count: int = 3
    delay: float = 1.0
    style: str = "e-commerce"
    aspect_ratio: str = "9:16"

    def with_style(self, style: str) -> BatchParameters:
        """Return a copy with only the style overridden."""
        return replace(self, style=style)

    def to_dict(self) -> dict:
        return {
            "product_image": _media_to_dict(self.product_image),
            "model_image": _media_to_dict(self.model_image),
            "description": self.description,
            "count": self.count,
            "delay": self.delay,
            "style": self.style,
            "aspect_ratio": self.aspect_ratio,
        }

    @classmethod
    def from_dict(cls, data: dict) -> BatchParameters:
        return cls(
            product_image=_media_from_dict(data.get("product_image")),
            model_image=_media_from_dict(data.get("model_image")),
            description=data.get("description", ""),
            count=int(data.get("count", 3)),
            delay=float(data.get("delay", 1.0)),
            style=data.get("style", "e-commerce"),
            aspect_ratio=data.get("aspect_ratio", "9:16"),
        )


class PhotoState(str, Enum):
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class VideoState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class TrackedItem:
    """One planned pose within a batch, with its photo and video sub-states.

    The photo and video lifecycles are independent state machines; the video
    may only leave IDLE once the photo is SUCCESS.
    """
    id: str
    pose: str
    style: str
    aspect_ratio: str
    photo_state: PhotoState = PhotoState.LOADING
    photo_result: MediaFile | None = None
    photo_error: str | None = None
    photo_error_kind: str | None = None
    video_state: VideoState = VideoState.IDLE
    video_result: MediaFile | None = None
    video_error: str | None = None
    video_error_kind: str | None = None

    @property
    def is_terminal(self) -> bool:
        """Whether the photo has finished (successfully or not)."""
        return self.photo_state in (PhotoState.SUCCESS, PhotoState.ERROR)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "pose": self.pose,
            "style": self.style,
            "aspect_ratio": self.aspect_ratio,
            "photo_state": self.photo_state.value,
            "photo_result": _media_to_dict(self.photo_result),
            "photo_error": self.photo_error,
            "photo_error_kind": self.photo_error_kind,
            "video_state": self.video_state.value,
            "video_result": _media_to_dict(self.video_result),
            "video_error": self.video_error,
            "video_error_kind": self.video_error_kind,
        }

    @classmethod
    def from_dict(cls, data: dict) -> TrackedItem:
        return cls(
            id=data["id"],
            pose=data.get("pose", ""),
            style=data.get("style", ""),
            aspect_ratio=data.get("aspect_ratio", ""),
            photo_state=PhotoState(data.get("photo_state", "loading")),
            photo_result=_media_from_dict(data.get("photo_result")),
            photo_error=data.get("photo_error"),
            photo_error_kind=data.get("photo_error_kind"),
            video_state=VideoState(data.get("video_state", "idle")),
            video_result=_media_from_dict(data.get("video_result")),
            video_error=data.get("video_error"),
            video_error_kind=data.get("video_error_kind"),
        )


@dataclass
class Batch:
    """Ordered tracked items plus the parameters that produced them."""
    id: str
    params: BatchParameters
    items: list[TrackedItem] = field(default_factory=list)
    created_at: str = ""

    @property
    def succeeded(self) -> list[TrackedItem]:
        return [item for item in self.items if item.photo_state is PhotoState.SUCCESS]

    @property
    def failed(self) -> list[TrackedItem]:
        return [item for item in self.items if item.photo_state is PhotoState.ERROR]


@dataclass
class HistoryEntry:
    """An archived batch.

    Attributes:
        id: Millisecond timestamp, unique within the store.
        date: ISO-8601 creation time.
        params: Parameters the batch was started with.
        items: Final item snapshot at completion.
    """
    id: int
    date: str
    params: BatchParameters
    items: list[TrackedItem] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": self.date,
            "params": self.params.to_dict(),
            "items": [item.to_dict() for item in self.items],
        }

    @classmethod
    def from_dict(cls, data: dict) -> HistoryEntry:
        return cls(
            id=int(data["id"]),
            date=data.get("date", ""),
            params=BatchParameters.from_dict(data.get("params", {})),
            items=[TrackedItem.from_dict(item) for item in data.get("items", [])],
        )


@dataclass
class VideoJobStatus:
    """Outcome of one poll of a long-running video job.

    Attributes:
        handle: The operation handle that was polled.
        done: Whether the job reached a terminal state.
        video_uri: Retrievable video reference, if the job succeeded.
        error: Failure reason, if the job failed.
    """
    handle: str
    done: bool = False
    video_uri: str | None = None
    error: str | None = None

    @property
    def is_success(self) -> bool:
        """Whether the job completed with a retrievable video."""
        return self.done and self.video_uri is not None and self.error is None


def _media_to_dict(media: MediaFile | None) -> dict | None:
    if media is None:
        return None
    return {"mime_type": media.mime_type, "data": media.to_base64()}


def _media_from_dict(data: dict | None) -> MediaFile | None:
    if not data:
        return None
    return MediaFile.from_base64(data["data"], data["mime_type"])
