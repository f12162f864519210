"""Cache utilities for world-preview generations.

Provides the cache key for a generation request and the session stores the
generation client reads and writes. Keys are a truncated SHA-256 of the
ordered identity fields, so two requests for the same image and labels share
one entry.
"""

import hashlib
import re
from pathlib import Path
from typing import Dict, Optional, Sequence

CACHE_ROOT = Path('.cache')
KEY_LENGTH = 24
KEY_PREFIX = "world:"


class StorageQuotaExceeded(Exception):
	"""Raised by a session store that cannot take another entry."""


def derive_key(fields: Sequence[str]) -> str:
	"""Return a stable 24-char hex key for an ordered tuple of fields.

	Not a security primitive: collisions only cost a wrong cache hit.
	"""
	joined = "|".join("" if f is None else str(f) for f in fields)
	return hashlib.sha256(joined.encode("utf-8")).hexdigest()[:KEY_LENGTH]


def storage_key(key: str) -> str:
	return f"{KEY_PREFIX}{key}"


class MemorySessionStore:
	"""Session-scoped key/value store held in memory.

	``quota_bytes`` mimics the browser storage quota; ``None`` means unlimited.
	"""

	def __init__(self, quota_bytes: Optional[int] = None):
		self.quota_bytes = quota_bytes
		self._items: Dict[str, str] = {}

	def get_item(self, key: str) -> Optional[str]:
		return self._items.get(key)

	def set_item(self, key: str, value: str) -> None:
		if self.quota_bytes is not None:
			used = sum(len(v.encode("utf-8")) for k, v in self._items.items() if k != key)
			if used + len(value.encode("utf-8")) > self.quota_bytes:
				raise StorageQuotaExceeded(f"Session store quota of {self.quota_bytes} bytes exceeded")
		self._items[key] = value

	def __len__(self) -> int:
		return len(self._items)

	def __contains__(self, key: str) -> bool:
		return key in self._items


_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")


class FileSessionStore:
	"""Session store backed by one file per key under ``root``.

	The CLI uses this so that repeated previews in the same session directory
	are served from cache. Deleting the directory ends the session.
	"""

	def __init__(self, root: Path):
		self.root = Path(root)

	def _path(self, key: str) -> Path:
		return self.root / f"{_UNSAFE.sub('_', key)}.json"

	def get_item(self, key: str) -> Optional[str]:
		path = self._path(key)
		if not path.exists():
			return None
		return path.read_text(encoding="utf-8")

	def set_item(self, key: str, value: str) -> None:
		self.root.mkdir(parents=True, exist_ok=True)
		self._path(key).write_text(value, encoding="utf-8")


def default_session_dir(session: str) -> Path:
	return CACHE_ROOT / "sessions" / _UNSAFE.sub("_", session)


__all__ = [
	"CACHE_ROOT",
	"FileSessionStore",
	"MemorySessionStore",
	"StorageQuotaExceeded",
	"default_session_dir",
	"derive_key",
	"storage_key",
]
