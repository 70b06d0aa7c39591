"""Client for the media processing service.

Marker image recompression and AR tracking-file compilation run in a
separate service; processors call it once per marker. The service fetches
the source image and stores its output itself, returning the new locations.
"""

from typing import Any, Optional

import httpx
import structlog

from arbatch.config import get_settings

logger = structlog.get_logger(__name__)


class MediaServiceError(Exception):
    """The media service rejected a request or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class MediaServiceClient:
    """Async HTTP client for the media processing service."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: Service base URL (default from settings)
            timeout: Request timeout in seconds (default from settings)
            client: Pre-built httpx client, mainly for tests
        """
        settings = get_settings()
        self.base_url = (base_url or settings.media_service_url).rstrip("/")
        self.timeout = timeout or settings.media_service_timeout
        self._client = client or httpx.AsyncClient(timeout=self.timeout)

    async def optimize_marker(
        self,
        marker_id: str,
        image_url: str,
        options: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Recompress a marker image and score it for tracking.

        Args:
            marker_id: Marker identifier
            image_url: Storage path of the source image
            options: quality, max_width, max_height, sharpen, contrast

        Returns:
            dict with optimized_url and quality_score
        """
        data = await self._post(
            "/v1/markers/optimize",
            {"marker_id": marker_id, "image_url": image_url, "options": options},
        )
        if "optimized_url" not in data:
            raise MediaServiceError("Media service returned no optimized_url")
        return data

    async def compile_tracking(
        self,
        marker_id: str,
        image_url: str,
        quality: str,
        algorithm: str,
        performance_mode: str,
    ) -> dict[str, Any]:
        """
        Compile the AR tracking descriptor (.mind file) for a marker.

        Returns:
            dict with mind_file_url and mind_file_size
        """
        data = await self._post(
            "/v1/markers/compile",
            {
                "marker_id": marker_id,
                "image_url": image_url,
                "quality": quality,
                "algorithm": algorithm,
                "performance_mode": performance_mode,
            },
        )
        if "mind_file_url" not in data:
            raise MediaServiceError("Media service returned no mind_file_url")
        return data

    async def health_check(self) -> bool:
        """Check whether the service answers its health endpoint."""
        try:
            response = await self._client.get(f"{self.base_url}/health")
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning("media_service_health_failed", error=str(e))
            return False

    async def close(self) -> None:
        await self._client.aclose()

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._client.post(f"{self.base_url}{path}", json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise MediaServiceError(
                f"Media service {path} failed with status {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise MediaServiceError(f"Media service {path} unreachable: {e}") from e
        return response.json()
