"""
Glance API client for image name lookups.

ImageClient receives an injected httpx.AsyncClient with base_url set to the
image endpoint from the service catalog.
"""

from dataclasses import dataclass

import httpx

from nova_autoscaler.api_types import ImagesResponse
from nova_autoscaler.exceptions import ResolutionError


@dataclass
class ImageClient:
    """
    Glance v2 API client with injected httpx client.

    Attributes:
        http: Pre-configured httpx.AsyncClient with base_url set to the
            image endpoint (e.g. "https://glance:9292").
    """

    http: httpx.AsyncClient

    async def image_id_from_name(self, name: str) -> str:
        """
        Resolve an image name to its ID.

        Calls GET /v2/images?name=<name>.

        Raises:
            ResolutionError: If no image or more than one image matches.
            httpx.HTTPStatusError: On HTTP errors (4xx, 5xx responses).
        """
        response = await self.http.get("/v2/images", params={"name": name})
        response.raise_for_status()

        images = [i for i in ImagesResponse.model_validate(response.json()).images if i.name == name]
        if not images:
            raise ResolutionError("image", name, "no image found")
        if len(images) > 1:
            raise ResolutionError("image", name, f"{len(images)} images found")
        return images[0].id
