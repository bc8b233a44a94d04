import asyncio
import logging
from typing import Callable, Dict, Optional

import httpx

from mediaflow_merge.configs import settings
from mediaflow_merge.merge.errors import FetchError
from mediaflow_merge.merge.models import AssetRole, MergeRequest
from mediaflow_merge.utils.http_utils import DownloadError, build_storage_url, create_httpx_client, download_bytes

logger = logging.getLogger(__name__)


class AssetFetcher:
    """
    Downloads the three merge sources fully into memory.

    The video comes from an arbitrary URL; audio and subtitle are resolved
    against the storage endpoint by key. Every failure is reported as a
    ``FetchError`` tagged with the role that failed. Nothing is retried.
    """

    def __init__(
        self,
        storage_endpoint: Optional[str] = None,
        client_factory: Callable[[], httpx.AsyncClient] = create_httpx_client,
    ):
        self.storage_endpoint = storage_endpoint or settings.storage_endpoint
        self._client_factory = client_factory

    async def fetch(self, role: AssetRole, url: str, client: Optional[httpx.AsyncClient] = None) -> bytes:
        if not url:
            raise FetchError(role, "empty source")

        if client is None:
            async with self._client_factory() as own_client:
                return await self._download(role, url, own_client)
        return await self._download(role, url, client)

    async def fetch_video(self, url: str, client: Optional[httpx.AsyncClient] = None) -> bytes:
        return await self.fetch(AssetRole.VIDEO, url, client)

    async def fetch_key(self, role: AssetRole, key: str, client: Optional[httpx.AsyncClient] = None) -> bytes:
        if not key:
            raise FetchError(role, "empty storage key")
        return await self.fetch(role, build_storage_url(self.storage_endpoint, key), client)

    async def fetch_all(self, request: MergeRequest) -> Dict[AssetRole, bytes]:
        """
        Fetch video, audio and subtitle concurrently.

        All three must succeed; the first failure cancels the remaining
        downloads and is raised as is.
        """
        async with self._client_factory() as client:
            tasks = {
                AssetRole.VIDEO: asyncio.create_task(self.fetch_video(str(request.video_source), client)),
                AssetRole.AUDIO: asyncio.create_task(self.fetch_key(AssetRole.AUDIO, request.audio_key, client)),
                AssetRole.SUBTITLE: asyncio.create_task(
                    self.fetch_key(AssetRole.SUBTITLE, request.subtitle_key, client)
                ),
            }
            try:
                await asyncio.gather(*tasks.values())
            except BaseException:
                for task in tasks.values():
                    task.cancel()
                await asyncio.gather(*tasks.values(), return_exceptions=True)
                raise

        return {role: task.result() for role, task in tasks.items()}

    @staticmethod
    async def _download(role: AssetRole, url: str, client: httpx.AsyncClient) -> bytes:
        try:
            data = await download_bytes(client, url)
        except DownloadError as e:
            raise FetchError(role, e.message, status_code=e.status_code) from e
        logger.info("[asset_fetcher] Fetched %s source (%d bytes)", role.value, len(data))
        return data
