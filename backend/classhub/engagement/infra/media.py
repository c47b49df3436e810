"""Local filesystem storage for chat media uploads."""

from __future__ import annotations

import asyncio
import logging
import re
import secrets
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from classhub.engagement.domain.exceptions import InvalidInputError
from classhub.settings import settings

_LOG = logging.getLogger(__name__)

_SAFE_SEGMENT = re.compile(r"[^A-Za-z0-9_.-]")
_SAFE_EXTENSION = re.compile(r"^[A-Za-z0-9]{1,10}$")


def _segment(value: str) -> str:
	cleaned = _SAFE_SEGMENT.sub("_", value).strip("._")
	if not cleaned:
		raise InvalidInputError("invalid_path_segment")
	return cleaned


def _extension(filename: Optional[str]) -> str:
	if not filename or "." not in filename:
		return ""
	ext = filename.rsplit(".", 1)[1]
	return f".{ext.lower()}" if _SAFE_EXTENSION.match(ext) else ""


@dataclass(slots=True)
class StoredMedia:
	path: str
	size_bytes: int


class MediaStore:
	"""Writes uploads under ``{root}/users/{owner}/`` with random file names."""

	def __init__(self, root: str | None = None, *, max_bytes: int | None = None) -> None:
		self.root = Path(root or settings.media_root).resolve()
		self.max_bytes = max_bytes if max_bytes is not None else settings.media_max_bytes

	def _target(self, owner_id: str, filename: Optional[str]) -> Path:
		name = f"{secrets.token_urlsafe(12)}{_extension(filename)}"
		target = (self.root / "users" / _segment(owner_id) / name).resolve()
		if self.root not in target.parents:
			raise InvalidInputError("invalid_path")
		return target

	async def save(self, owner_id: str, filename: Optional[str], data: bytes) -> StoredMedia:
		if not data:
			raise InvalidInputError("empty_file")
		if len(data) > self.max_bytes:
			raise InvalidInputError("file_too_large")
		target = self._target(owner_id, filename)
		await asyncio.to_thread(self._write, target, data)
		_LOG.info("media.saved", extra={"path": str(target), "size_bytes": len(data)})
		return StoredMedia(path=str(target), size_bytes=len(data))

	async def remove(self, path: str) -> None:
		target = Path(path).resolve()
		if self.root not in target.parents:
			return
		await asyncio.to_thread(target.unlink, True)

	@staticmethod
	def _write(target: Path, data: bytes) -> None:
		target.parent.mkdir(parents=True, exist_ok=True)
		target.write_bytes(data)


__all__ = ["MediaStore", "StoredMedia"]
