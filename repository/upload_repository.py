# repository/upload_repository.py
import os
import re
from dataclasses import dataclass
from uuid import uuid4
from fastapi import HTTPException, UploadFile, status
from config.settings import settings

CHUNK_BYTES = 1024 * 1024
_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(frozen=True)
class StoredUpload:
    filename: str
    path: str


class UploadRepository:
    """
    Disk storage for uploaded PDFs. Files are written under a unique prefix and
    capped at MAX_FILE_MB each; the job only ever references them by path.
    """

    def __init__(
        self, root: str = settings.UPLOAD_DIR, max_mb: int = settings.MAX_FILE_MB
    ) -> None:
        self._root = root
        self._max_bytes = max_mb * 1024 * 1024
        self._max_mb = max_mb
        os.makedirs(self._root, exist_ok=True)

    def _target(self, filename: str) -> str:
        safe = _UNSAFE.sub("_", os.path.basename(filename or "upload.pdf"))
        return os.path.join(self._root, f"{uuid4().hex[:12]}-{safe}")

    async def save(self, upload: UploadFile) -> StoredUpload:
        path = self._target(upload.filename or "")
        written = 0
        with open(path, "wb") as fh:
            while chunk := await upload.read(CHUNK_BYTES):
                written += len(chunk)
                if written > self._max_bytes:
                    fh.close()
                    os.remove(path)
                    raise HTTPException(
                        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                        detail={
                            "ok": False,
                            "error": "file_too_large",
                            "maxMb": self._max_mb,
                        },
                    )
                fh.write(chunk)
        return StoredUpload(filename=upload.filename or os.path.basename(path), path=path)
