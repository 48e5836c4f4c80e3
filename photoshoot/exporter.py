"""Write a batch's generated photos and videos to disk.

Produces ``photo-<n>-<id>.<ext>`` (and ``video-<n>-<id>.<ext>``) files in a
directory, or the same files packed into a zip archive.
"""

from __future__ import annotations

import logging
import zipfile
from pathlib import Path
from typing import Iterable

from photoshoot.models import PhotoState, TrackedItem, VideoState

logger = logging.getLogger(__name__)


def _collect_files(items: Iterable[TrackedItem], include_videos: bool) -> list[tuple[str, bytes]]:
    files: list[tuple[str, bytes]] = []
    successful = [
        item for item in items
        if item.photo_state is PhotoState.SUCCESS and item.photo_result is not None
    ]
    for index, item in enumerate(successful, start=1):
        photo = item.photo_result
        files.append((f"photo-{index}-{item.id}.{photo.extension}", photo.data))
        if include_videos and item.video_state is VideoState.SUCCESS and item.video_result:
            video = item.video_result
            files.append((f"video-{index}-{item.id}.{video.extension}", video.data))
    return files


def export_items(
    items: Iterable[TrackedItem],
    output_dir: str | Path,
    include_videos: bool = True,
) -> list[Path]:
    """Save every successful photo (and video) into ``output_dir``.

    Returns:
        The written paths, in item order.

    Raises:
        ValueError: If there is nothing to export.
    """
    files = _collect_files(items, include_videos)
    if not files:
        raise ValueError("No successful images to export.")

    output = Path(output_dir)
    output.mkdir(parents=True, exist_ok=True)
    written = []
    for name, data in files:
        path = output / name
        path.write_bytes(data)
        written.append(path)
    logger.info("Exported %d file(s) to %s", len(written), output)
    return written


def export_zip(
    items: Iterable[TrackedItem],
    archive_path: str | Path,
    include_videos: bool = True,
) -> Path:
    """Pack every successful photo (and video) into a zip archive.

    Raises:
        ValueError: If there is nothing to export.
    """
    files = _collect_files(items, include_videos)
    if not files:
        raise ValueError("No successful images to export.")

    archive = Path(archive_path)
    archive.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(archive, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for name, data in files:
            zf.writestr(name, data)
    logger.info("Exported %d file(s) to %s (%.1f KB)", len(files), archive, archive.stat().st_size / 1024)
    return archive
