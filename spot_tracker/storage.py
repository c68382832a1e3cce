"""
Disk storage for uploaded proof files.

This sits in front of the core: files are checked against the proof policy
before anything is written, stored, and only then described to the intake
engine by url/mime/size.
"""

import logging
import os
import secrets
import shutil
import time
from pathlib import Path

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from .services.proofs import ProofUpload

logger = logging.getLogger(__name__)


def upload_size(upload: UploadFile) -> int:
    if upload.size is not None:
        return upload.size
    upload.file.seek(0, os.SEEK_END)
    size = upload.file.tell()
    upload.file.seek(0)
    return size


def describe(upload: UploadFile, url: str = "") -> ProofUpload:
    return ProofUpload(
        url=url,
        mime=(upload.content_type or "").lower(),
        size_bytes=upload_size(upload),
        filename=upload.filename,
    )


class ProofStorage:
    def __init__(self, upload_dir: str, url_prefix: str) -> None:
        self.root = Path(upload_dir)
        self.url_prefix = url_prefix.rstrip("/")

    def _safe_name(self, filename: str | None) -> str:
        ext = Path(filename or "").suffix.lower()
        return f"{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{ext}"

    def _write(self, upload: UploadFile, target: Path) -> None:
        upload.file.seek(0)
        with target.open("wb") as fh:
            shutil.copyfileobj(upload.file, fh)

    async def save(self, upload: UploadFile) -> ProofUpload:
        self.root.mkdir(parents=True, exist_ok=True)
        name = self._safe_name(upload.filename)
        await run_in_threadpool(self._write, upload, self.root / name)
        return describe(upload, url=f"{self.url_prefix}/{name}")

    async def save_all(self, uploads: list[UploadFile]) -> list[ProofUpload]:
        stored: list[ProofUpload] = []
        try:
            for upload in uploads:
                stored.append(await self.save(upload))
        except OSError:
            self.discard(stored)
            raise
        return stored

    def discard(self, stored: list[ProofUpload]) -> None:
        """Remove files written for a submission that was not recorded."""
        for proof in stored:
            path = self.root / proof.url.rsplit("/", 1)[-1]
            try:
                path.unlink(missing_ok=True)
            except OSError:
                logger.warning("Could not remove orphaned proof file %s", path)
