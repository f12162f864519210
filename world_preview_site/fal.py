"""Gateway to the fal.ai image-to-world model."""
from __future__ import annotations

import base64
import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    pass


def data_uri(content: bytes, content_type: Optional[str]) -> str:
    ctype = (content_type or "image/png").split(";", 1)[0].strip() or "image/png"
    return f"data:{ctype};base64,{base64.b64encode(content).decode('ascii')}"


class FalWorldGenerator:
    """Run ``fal-ai/hunyuan_world/image-to-world`` synchronously over REST.

    Returns the ``world_file`` mapping of the result (possibly empty).
    """

    def __init__(self, key: str, endpoint: str, http: Optional[httpx.AsyncClient] = None, timeout: float = 600.0):
        self.key = key
        self.endpoint = endpoint
        self.http = http
        self.timeout = timeout

    async def generate(self, image_url: str, labels_fg1: str, labels_fg2: str, classes: str) -> dict:
        payload = {
            "image_url": image_url,
            "labels_fg1": labels_fg1,
            "labels_fg2": labels_fg2,
            "classes": classes,
        }
        headers = {"Authorization": f"Key {self.key}"}
        try:
            if self.http is not None:
                resp = await self.http.post(self.endpoint, json=payload, headers=headers, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.post(self.endpoint, json=payload, headers=headers)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise GatewayError(f"fal request failed: {e}") from e
        world_file = (data or {}).get("world_file") if isinstance(data, dict) else None
        return world_file if isinstance(world_file, dict) else {}
