"""Canonical per-item state for the current batch.

The tracker is the only place TrackedItem records are mutated. Every mutation
is addressed by item id; ids that are not part of the current batch are
ignored, so late callbacks from a superseded batch cannot leak into the
current one. Listeners are notified synchronously after every transition.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, Iterable

from photoshoot.models import MediaFile, PhotoState, TrackedItem, VideoState

logger = logging.getLogger(__name__)

Listener = Callable[[TrackedItem], None]


class ItemTracker:
    """Ordered map of item id -> TrackedItem for the active batch."""

    def __init__(self) -> None:
        self._items: dict[str, TrackedItem] = {}
        self._listeners: list[Listener] = []
        self.batch_id: str | None = None

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener called with a snapshot after each transition.

        Returns:
            A callable that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def get(self, item_id: str) -> TrackedItem | None:
        """Return a snapshot of the item, or None if it is not tracked."""
        item = self._items.get(item_id)
        return replace(item) if item is not None else None

    def list(self) -> list[TrackedItem]:
        """Return snapshots of all items in planning order."""
        return [replace(item) for item in self._items.values()]

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def load(self, batch_id: str, items: Iterable[TrackedItem]) -> None:
        """Replace the tracked set with a new batch's items."""
        self.batch_id = batch_id
        self._items = {item.id: replace(item) for item in items}
        logger.debug("Tracking batch %s with %d item(s)", batch_id, len(self._items))
        for item in self._items.values():
            self._notify(item)

    def clear(self) -> None:
        self.batch_id = None
        self._items = {}

    def set_photo(
        self,
        item_id: str,
        state: PhotoState,
        payload: MediaFile | str | None = None,
        error_kind: str | None = None,
    ) -> TrackedItem | None:
        """Record a photo transition.

        Args:
            item_id: Target item.
            state: New photo state.
            payload: The image for SUCCESS, the reason string for ERROR.
            error_kind: Matchable failure kind for ERROR.

        Returns:
            The updated snapshot, or None if the id is not tracked.
        """
        item = self._items.get(item_id)
        if item is None:
            logger.debug("Ignoring photo update for untracked item %s", item_id)
            return None

        item.photo_state = state
        if state is PhotoState.SUCCESS:
            if not isinstance(payload, MediaFile):
                raise TypeError("A successful photo requires a MediaFile payload")
            item.photo_result = payload
            item.photo_error = None
            item.photo_error_kind = None
        elif state is PhotoState.ERROR:
            item.photo_result = None
            item.photo_error = str(payload) if payload else "An unknown error occurred."
            item.photo_error_kind = error_kind
        else:
            item.photo_result = None
            item.photo_error = None
            item.photo_error_kind = None
        if state is not PhotoState.SUCCESS and item.video_state is not VideoState.IDLE:
            item.video_state = VideoState.IDLE
            item.video_result = None
            item.video_error = None
            item.video_error_kind = None
        return self._notify(item)

    def set_video(
        self,
        item_id: str,
        state: VideoState,
        payload: MediaFile | str | None = None,
        error_kind: str | None = None,
    ) -> TrackedItem | None:
        """Record a video transition.

        A video cannot leave IDLE while the photo is not SUCCESS; such updates
        come from stale work and are ignored.
        """
        item = self._items.get(item_id)
        if item is None:
            logger.debug("Ignoring video update for untracked item %s", item_id)
            return None
        if state is not VideoState.IDLE and item.photo_state is not PhotoState.SUCCESS:
            logger.debug(
                "Ignoring video %s for item %s: photo is %s",
                state.value, item_id, item.photo_state.value,
            )
            return None

        item.video_state = state
        if state is VideoState.SUCCESS:
            if not isinstance(payload, MediaFile):
                raise TypeError("A successful video requires a MediaFile payload")
            item.video_result = payload
            item.video_error = None
            item.video_error_kind = None
        elif state is VideoState.ERROR:
            item.video_result = None
            item.video_error = str(payload) if payload else "An unknown error occurred."
            item.video_error_kind = error_kind
        else:
            # IDLE and LOADING both clear any previous outcome
            item.video_result = None
            item.video_error = None
            item.video_error_kind = None
        return self._notify(item)

    def reset_for_regeneration(
        self,
        item_id: str,
        new_style: str,
        new_prompt: str,
    ) -> TrackedItem | None:
        """Put the item back into LOADING with a new style and pose.

        The video sub-state returns to IDLE since it was derived from the old photo.
        """
        item = self._items.get(item_id)
        if item is None:
            logger.debug("Ignoring regeneration reset for untracked item %s", item_id)
            return None

        item.style = new_style
        item.pose = new_prompt
        item.photo_state = PhotoState.LOADING
        item.photo_result = None
        item.photo_error = None
        item.photo_error_kind = None
        item.video_state = VideoState.IDLE
        item.video_result = None
        item.video_error = None
        item.video_error_kind = None
        return self._notify(item)

    def _notify(self, item: TrackedItem) -> TrackedItem:
        snapshot = replace(item)
        for listener in list(self._listeners):
            listener(replace(snapshot))
        return snapshot
