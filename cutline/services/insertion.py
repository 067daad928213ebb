"""Programmatic insertion API.

Wraps a TimelineStore with the asynchronous steps that happen before a
command can be dispatched: storing uploaded bytes and probing sources for
their kind and duration. Commands themselves are always applied
synchronously, in call order.
"""

import asyncio
import logging
from typing import Protocol

from cutline.constants.timeline import (
    DEFAULT_IMAGE_DURATION_S,
    DEFAULT_TEXT_DURATION_S,
    FALLBACK_MEDIA_DURATION_S,
    IMAGE_TRACK_ID,
    TEXT_TRACK_ID,
    VIDEO_TRACK_ID,
)
from cutline.schemas.commands import AddAsset, AddClip, AddClipAuto
from cutline.schemas.timeline import Clip, MediaAsset, TextData
from cutline.services.ids import IdGenerator, UuidIdGenerator
from cutline.services.placement import find_slot
from cutline.services.storage_service import LocalStorageService
from cutline.services.timeline_store import TimelineStore
from cutline.utils.media_info import FFprobeProber, MediaInfo

logger = logging.getLogger(__name__)


class MediaProber(Protocol):
    async def probe(self, locator: str) -> MediaInfo: ...


class InsertionService:
    """High-level helpers for adding sources and clips to a timeline."""

    def __init__(
        self,
        store: TimelineStore,
        storage: LocalStorageService | None = None,
        prober: MediaProber | None = None,
        asset_ids: IdGenerator | None = None,
    ):
        self.store = store
        self._storage = storage
        self.prober = prober or FFprobeProber()
        self._asset_ids = asset_ids or UuidIdGenerator()

    @property
    def storage(self) -> LocalStorageService:
        if self._storage is None:
            self._storage = LocalStorageService()
        return self._storage

    def _add_asset(self, locator: str, name: str, info: MediaInfo) -> str:
        asset_id = self._asset_ids()
        asset = MediaAsset(
            id=asset_id,
            source_locator=locator,
            kind=info.kind,
            duration=info.duration,
            display_name=name,
            has_audio=info.has_audio,
        )
        self.store.dispatch(AddAsset(asset=asset))
        logger.info(f"[INSERT] Asset {asset_id} ({info.kind}, {info.duration:.2f}s) from {locator}")
        return asset_id

    async def ingest_bytes(self, data: bytes, filename: str) -> str:
        """Store uploaded bytes and register them as an asset."""
        storage_key = self.storage.new_storage_key(filename)
        path = self.storage.upload_file_from_bytes(storage_key, data)
        info = await self.prober.probe(path)
        return self._add_asset(path, filename, info)

    async def ingest_locator(self, locator: str, name: str) -> str:
        """Register a URL or local path as an asset."""
        info = await self.prober.probe(locator)
        return self._add_asset(locator, name, info)

    def place_asset(self, asset_id: str, track_id: int, time: float) -> str | None:
        """Drop an asset onto a track at the first free slot at or after `time`.

        Returns the new clip id, or None when the asset or track is unknown.
        """
        state = self.store.state
        asset = state.assets.get(asset_id)
        if asset is None or state.track(track_id) is None:
            logger.warning(f"[INSERT] Cannot place asset {asset_id} on track {track_id}")
            return None

        duration = asset.duration if asset.duration > 0 else FALLBACK_MEDIA_DURATION_S
        start = find_slot(state.clips_on_track(track_id), duration, max(0.0, time))
        clip = Clip(
            id=self.store.new_clip_id(),
            asset_id=asset_id,
            track_id=track_id,
            kind=asset.kind,
            timeline_start=start,
            duration=duration,
            label=asset.display_name,
        )
        self.store.dispatch(AddClip(clip=clip))
        return clip.id

    def _add_auto(self, command: AddClipAuto) -> str:
        state = self.store.dispatch(command)
        return state.selected_clip_id

    def _insert_video(self, locator: str, name: str, info: MediaInfo) -> str:
        duration = info.duration if info.duration > 0 else FALLBACK_MEDIA_DURATION_S
        # Probed kind wins: an image source compiles to a looped still
        info = MediaInfo(kind=info.kind, duration=duration, has_audio=info.has_audio, probed=info.probed)
        asset_id = self._add_asset(locator, name, info)
        return self._add_auto(
            AddClipAuto(
                track_id=VIDEO_TRACK_ID,
                duration=duration,
                kind=info.kind,
                label=name,
                asset_id=asset_id,
            )
        )

    async def add_video_clip(self, locator: str, name: str = "Video Clip") -> str:
        """Probe a video source and place it on the video layer at the playhead."""
        info = await self.prober.probe(locator)
        return self._insert_video(locator, name, info)

    async def add_image_clip(
        self,
        locator: str,
        name: str = "Image Clip",
        duration: float = DEFAULT_IMAGE_DURATION_S,
    ) -> str:
        """Place a still image on the image layer at the playhead."""
        info = MediaInfo(kind="image", duration=duration, has_audio=False)
        asset_id = self._add_asset(locator, name, info)
        return self._add_auto(
            AddClipAuto(
                track_id=IMAGE_TRACK_ID,
                duration=duration,
                kind="image",
                label=name,
                asset_id=asset_id,
            )
        )

    def add_text_clip(self, content: str) -> str:
        """Place a text layer at the playhead."""
        return self._add_auto(
            AddClipAuto(
                track_id=TEXT_TRACK_ID,
                duration=DEFAULT_TEXT_DURATION_S,
                kind="text",
                label="Text Layer",
                text_data=TextData(content=content),
            )
        )

    async def load_initial_clips(self, locators: list[str]) -> list[str]:
        """Load a list of video sources in order.

        Probing runs concurrently; insertion follows the given order so the
        resulting clip sequence is deterministic.
        """
        infos = await asyncio.gather(*(self.prober.probe(locator) for locator in locators))
        clip_ids = []
        for i, (locator, info) in enumerate(zip(locators, infos)):
            clip_ids.append(self._insert_video(locator, f"Clip {i + 1}", info))
        logger.info(f"[INSERT] Loaded {len(clip_ids)} initial clips")
        return clip_ids
