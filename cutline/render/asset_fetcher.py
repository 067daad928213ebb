"""Resolve asset bytes and the text font into a local work directory."""

import asyncio
import logging
import os
import re
from dataclasses import dataclass, field
from urllib.parse import urlparse

import httpx

from cutline.config import Settings, get_settings
from cutline.schemas.timeline import MediaAsset

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


@dataclass
class FetchResult:
    """Local paths for resolved assets plus the ids that failed."""

    paths: dict[str, str] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)  # asset_id -> reason


def is_remote(locator: str) -> bool:
    return urlparse(locator).scheme in ("http", "https")


def _local_name(asset: MediaAsset, index: int) -> str:
    ext = os.path.splitext(urlparse(asset.source_locator).path)[1]
    return _UNSAFE_CHARS.sub("_", f"asset_{index}_{asset.id}{ext}")


def _is_within(path: str, root: str) -> bool:
    path = os.path.realpath(path)
    root = os.path.realpath(root)
    return os.path.commonpath([path, root]) == root


class AssetFetcher:
    """Downloads remote sources with httpx.

    Local paths are used in place when they sit under `local_storage_path`;
    any other local locator is reported as a failure.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.settings = settings or get_settings()
        self._client = client

    async def _download(self, client: httpx.AsyncClient, url: str, dest: str) -> None:
        response = await client.get(url)
        response.raise_for_status()
        with open(dest, "wb") as f:
            f.write(response.content)

    async def _resolve_one(
        self,
        client: httpx.AsyncClient,
        asset: MediaAsset,
        work_dir: str,
        index: int,
    ) -> tuple[str, str | None, str | None]:
        locator = asset.source_locator
        if not is_remote(locator):
            # Only files under local storage may be read from disk
            if not _is_within(locator, self.settings.local_storage_path):
                return asset.id, None, f"local source outside storage: {locator}"
            if os.path.isfile(locator):
                return asset.id, locator, None
            return asset.id, None, f"local source not found: {locator}"

        dest = os.path.join(work_dir, _local_name(asset, index))
        if not _is_within(dest, work_dir):
            return asset.id, None, f"invalid download target for {asset.id}"
        try:
            await self._download(client, locator, dest)
        except httpx.HTTPError as e:
            return asset.id, None, f"{type(e).__name__}: {e}"
        return asset.id, dest, None

    async def fetch_assets(self, assets: list[MediaAsset], work_dir: str) -> FetchResult:
        """Resolve every asset concurrently. Failures are reported, not raised."""
        result = FetchResult()
        if not assets:
            return result

        client = self._client or httpx.AsyncClient(
            timeout=self.settings.asset_fetch_timeout_s,
            follow_redirects=True,
        )
        try:
            outcomes = await asyncio.gather(
                *(self._resolve_one(client, asset, work_dir, i) for i, asset in enumerate(assets))
            )
        finally:
            if self._client is None:
                await client.aclose()

        for asset_id, path, reason in outcomes:
            if path is not None:
                result.paths[asset_id] = path
            else:
                logger.warning(f"[FETCH] Asset {asset_id} unavailable: {reason}")
                result.failures[asset_id] = reason
        logger.info(f"[FETCH] Resolved {len(result.paths)}/{len(assets)} assets")
        return result

    async def fetch_font(self, work_dir: str) -> str | None:
        """Local font path, downloading the configured font when needed.

        Returns None when no font could be obtained.
        """
        if self.settings.text_font_path:
            if os.path.isfile(self.settings.text_font_path):
                return self.settings.text_font_path
            logger.warning(f"[FETCH] Configured font not found: {self.settings.text_font_path}")

        url = self.settings.text_font_url
        if not url:
            return None

        dest = os.path.join(work_dir, "font.ttf")
        client = self._client or httpx.AsyncClient(
            timeout=self.settings.asset_fetch_timeout_s,
            follow_redirects=True,
        )
        try:
            await self._download(client, url, dest)
        except httpx.HTTPError as e:
            logger.warning(f"[FETCH] Font download failed: {e}")
            return None
        finally:
            if self._client is None:
                await client.aclose()
        return dest
