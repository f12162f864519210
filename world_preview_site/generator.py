"""World generation client & session caching layer."""
from __future__ import annotations

import logging
from typing import Optional

import httpx
import orjson
from pydantic import ValidationError

from .cache import derive_key, storage_key
from .schema import CacheEntry, GenerationOutcome, GenerationRequest, WorldFile

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "/api/world-preview"
SUBMITTING_STATUS = "Submitting to Fal…"


class GenerationFailed(Exception):
    """The proxy could not be reached or answered with a non-2xx status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def _load_cached(raw: Optional[str]) -> Optional[WorldFile]:
    if not raw:
        return None
    try:
        return CacheEntry.model_validate(orjson.loads(raw)).world_file
    except (orjson.JSONDecodeError, ValidationError, TypeError) as e:
        logger.debug("Ignoring malformed cache entry: %s", e)
        return None


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return f"Server error: {response.status_code}"


class GenerationClient:
    """Resolve generation requests from the session store or the proxy.

    ``http`` is an ``httpx.AsyncClient`` whose base URL points at the site
    server; ``store`` is any session store with ``get_item``/``set_item``;
    ``status`` receives the "submitting" transition and log reset.
    """

    def __init__(self, http: httpx.AsyncClient, store, status=None, endpoint: str = DEFAULT_ENDPOINT):
        self.http = http
        self.store = store
        self.status = status
        self.endpoint = endpoint

    async def generate(self, request: GenerationRequest) -> GenerationOutcome:
        key = storage_key(derive_key(request.identity()))
        if not request.force:
            cached = _load_cached(self.store.get_item(key))
            if cached is not None:
                logger.debug("Cache hit for %s", key)
                return GenerationOutcome(result=cached, served_from_cache=True)

        if self.status is not None:
            self.status.set_status(SUBMITTING_STATUS)
            self.status.clear_log()

        try:
            response = await self.http.post(self.endpoint, json=request.payload())
        except httpx.HTTPError as e:
            raise GenerationFailed(f"Network error: {e}") from e

        if not response.is_success:
            raise GenerationFailed(_error_message(response), status_code=response.status_code)

        try:
            result = WorldFile.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise GenerationFailed(f"Malformed response from server: {e}", status_code=response.status_code) from e

        try:
            self.store.set_item(key, orjson.dumps({"world_file": result.model_dump(exclude_none=True)}).decode("utf-8"))
        except Exception as e:  # quota or serialization failure must not fail the preview
            logger.warning("Failed to cache world preview: %s", e)

        return GenerationOutcome(result=result, served_from_cache=False)
