"""Environment-driven settings and the gallery file loader."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel

from .schema import SourceItem

logger = logging.getLogger(__name__)

REQUIRED_EMAIL_ENV = [
    "TO_EMAIL",
    "FROM_EMAIL",
    "SMTP_HOST",
    "SMTP_PORT",
    "SMTP_USER",
    "SMTP_PASS",
]


class Settings(BaseModel):
    fal_key: Optional[str] = None
    fal_endpoint: str = "https://fal.run/fal-ai/hunyuan_world/image-to-world"
    fal_timeout_s: float = 600.0
    to_email: Optional[str] = None
    from_email: Optional[str] = None
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_pass: Optional[str] = None
    port: int = 3000
    static_dir: Optional[str] = None
    rate_limit_window_s: int = 10 * 60
    rate_limit_max: int = 20
    max_resume_bytes: int = 10 * 1024 * 1024
    missing_email_env: List[str] = []

    @property
    def email_enabled(self) -> bool:
        return not self.missing_email_env

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Settings":
        load_dotenv(env_file)
        missing = [k for k in REQUIRED_EMAIL_ENV if not os.environ.get(k)]
        if missing:
            logger.warning("Missing env vars: %s. Email sending will be disabled.", ", ".join(missing))
        try:
            smtp_port = int(os.environ.get("SMTP_PORT") or 587)
        except ValueError:
            smtp_port = 587
        return cls(
            fal_key=os.environ.get("FAL_KEY") or None,
            to_email=os.environ.get("TO_EMAIL"),
            from_email=os.environ.get("FROM_EMAIL"),
            smtp_host=os.environ.get("SMTP_HOST"),
            smtp_port=smtp_port,
            smtp_user=os.environ.get("SMTP_USER"),
            smtp_pass=os.environ.get("SMTP_PASS"),
            port=int(os.environ.get("PORT") or 3000),
            static_dir=os.environ.get("STATIC_DIR") or None,
            missing_email_env=missing,
        )


def load_gallery(path: Path) -> List[SourceItem]:
    """Read gallery items from YAML.

    Each entry under ``items`` uses the element's data attribute names
    (``worldImage``/``image``, ``labelsFg1``, ``labelsFg2``, ``classes``)
    plus ``title`` for the caption and optional ``img`` for the image src.
    """
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    items = []
    for entry in data.get("items", []) or []:
        if not isinstance(entry, dict):
            continue
        items.append(SourceItem.from_dataset(entry, caption=entry.get("title"), img_src=entry.get("img")))
    return items
