"""FastAPI app: world-preview proxy, waitlist and job application relays."""
from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Dict, Optional, Tuple
from urllib.parse import urljoin

import httpx
from fastapi import Depends, FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError
from starlette.datastructures import UploadFile

from .config import Settings
from .fal import FalWorldGenerator, GatewayError, data_uri
from .forms import ApplicationSubmission, WaitlistSubmission, field_errors
from .mailer import Attachment, SmtpMailer, application_message, waitlist_message
from .schema import WorldPreviewRequest

logger = logging.getLogger(__name__)

_UNSET = object()


class RateLimited(Exception):
    pass


class FixedWindowLimiter:
    """At most ``limit`` hits per client within each ``window_s`` window."""

    def __init__(self, window_s: float, limit: int, clock=time.monotonic):
        self.window_s = window_s
        self.limit = limit
        self.clock = clock
        self._hits: Dict[str, Tuple[float, int]] = {}
        self._last_purge = clock()

    def hit(self, key: str) -> bool:
        now = self.clock()
        self._purge(now)
        start, count = self._hits.get(key, (now, 0))
        if now - start >= self.window_s:
            start, count = now, 0
        count += 1
        self._hits[key] = (start, count)
        return count <= self.limit

    def _purge(self, now: float) -> None:
        if now - self._last_purge < self.window_s:
            return
        self._last_purge = now
        expired = [k for k, (start, _) in self._hits.items() if now - start >= self.window_s]
        for k in expired:
            del self._hits[k]


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else ""


def _error(status: int, message: str, **extra) -> JSONResponse:
    return JSONResponse({"error": message, **extra}, status_code=status)


def create_app(
    settings: Optional[Settings] = None,
    *,
    mailer=_UNSET,
    generator=_UNSET,
    http: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """Build the site app.

    ``mailer``/``generator`` default to the SMTP relay and fal gateway built
    from ``settings``; pass ``None`` to run without them. ``http`` is used to
    fetch source images for the proxy.
    """
    settings = settings or Settings.from_env()
    if mailer is _UNSET:
        mailer = SmtpMailer.from_settings(settings)
    if generator is _UNSET:
        generator = (
            FalWorldGenerator(settings.fal_key, settings.fal_endpoint, timeout=settings.fal_timeout_s)
            if settings.fal_key
            else None
        )

    app = FastAPI(title="World Preview Site")
    app.state.settings = settings
    app.state.mailer = mailer
    app.state.generator = generator
    limiter = FixedWindowLimiter(settings.rate_limit_window_s, settings.rate_limit_max)
    app.state.limiter = limiter

    @app.exception_handler(RateLimited)
    async def _rate_limited(_request: Request, _exc: RateLimited):
        return _error(429, "Too many requests, please try again later.")

    @app.exception_handler(Exception)
    async def _unhandled(_request: Request, exc: Exception):
        logger.exception("Unhandled server error: %s", exc)
        return _error(500, "Unexpected server error")

    def form_limit(request: Request) -> None:
        if not limiter.hit(_client_ip(request)):
            raise RateLimited()

    async def fetch_source_image(url: str) -> httpx.Response:
        if http is not None:
            return await http.get(url)
        async with httpx.AsyncClient(timeout=30.0, follow_redirects=True) as client:
            return await client.get(url)

    @app.get("/api/ping")
    async def ping():
        return {"ok": True, "route": "/api/ping", "method": "GET"}

    @app.post("/api/world-preview")
    async def world_preview(request: Request):
        try:
            body = await request.json()
        except ValueError:
            body = {}
        try:
            req = WorldPreviewRequest.model_validate(body if isinstance(body, dict) else {})
        except ValidationError:
            return _error(400, "Missing required fields")
        if not req.is_complete():
            return _error(400, "Missing required fields")
        if app.state.generator is None:
            return _error(500, "FAL_KEY not configured")

        resolved = urljoin(str(request.base_url), req.image_url)
        try:
            img = await fetch_source_image(resolved)
        except httpx.HTTPError as e:
            logger.error("Fal generation failed: unable to fetch %s: %s", resolved, e)
            return _error(500, "Fal generation failed")
        if not img.is_success:
            return _error(400, f"Unable to fetch source image: {img.status_code}")

        try:
            world_file = await app.state.generator.generate(
                data_uri(img.content, img.headers.get("content-type")),
                req.labels_fg1,
                req.labels_fg2,
                req.classes,
            )
        except GatewayError as e:
            logger.error("Fal generation failed: %s", e)
            return _error(500, "Fal generation failed")

        if not world_file.get("url"):
            return _error(502, "Fal response missing world_file")
        return world_file

    @app.post("/api/waitlist", dependencies=[Depends(form_limit)])
    async def waitlist(request: Request):
        try:
            body = await request.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        try:
            parsed = WaitlistSubmission.model_validate(
                {**body, "userAgent": request.headers.get("user-agent"), "ip": _client_ip(request)}
            )
        except ValidationError as e:
            logger.warning("Waitlist validation failed: %s", e.errors())
            return _error(400, "Invalid input", fields=field_errors(e))

        if app.state.mailer is None:
            return _error(503, "Email service not configured")
        subject, text = waitlist_message(parsed)
        try:
            await run_in_threadpool(app.state.mailer.send, subject, text)
        except Exception as e:
            logger.error("Waitlist error: %s", e)
            return _error(500, "Failed to process waitlist")
        return {"ok": True}

    @app.post("/api/apply", dependencies=[Depends(form_limit)])
    async def apply(request: Request):
        form = await request.form()
        resume = form.get("resume")
        fields = {k: v for k, v in form.items() if k != "resume" and isinstance(v, str)}
        content = b""
        if isinstance(resume, UploadFile):
            content = await resume.read()
            if len(content) > settings.max_resume_bytes:
                return _error(400, "Resume must be 10 MB or smaller")
        try:
            parsed = ApplicationSubmission.model_validate(
                {**fields, "userAgent": request.headers.get("user-agent"), "ip": _client_ip(request)}
            )
        except ValidationError as e:
            logger.warning("Apply validation failed: %s", e.errors())
            return _error(400, "Invalid input", fields=field_errors(e))

        if not isinstance(resume, UploadFile) or not content:
            return _error(400, "Resume is required")
        if app.state.mailer is None:
            return _error(503, "Email service not configured")

        subject, text = application_message(parsed)
        attachment = Attachment(
            filename=resume.filename or "resume",
            content=content,
            content_type=resume.content_type or "application/octet-stream",
        )
        try:
            await run_in_threadpool(app.state.mailer.send, subject, text, [attachment], parsed.email)
        except Exception as e:
            logger.error("Apply error: %s", e)
            return _error(500, "Failed to submit application")
        return {"ok": True}

    if settings.static_dir and Path(settings.static_dir).is_dir():
        app.mount("/", StaticFiles(directory=settings.static_dir, html=True), name="static")

    return app
