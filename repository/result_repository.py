# repository/result_repository.py
import asyncio
import json
import os
from typing import Any, Dict, Final, Optional, Protocol
from redis.asyncio import Redis
from config.cache import get_redis
from config.settings import settings
from repository.namespaces import RESULTS, SNAPSHOTS

RESULT_SUFFIX: Final[str] = "_result.json"
SNAPSHOT_FILE: Final[str] = "job_metadata.json"


class ResultRepository(Protocol):
    async def put(self, job_id: str, item_id: str, payload: Dict[str, Any]) -> str:
        """Persist the full payload; returns the retrieval key."""
        ...

    async def get(self, job_id: str, item_id: str) -> Optional[Dict[str, Any]]: ...

    async def put_snapshot(self, job_id: str, snapshot: Dict[str, Any]) -> None: ...


class RedisResultRepository:
    """
    Flow:
    - Persist full evaluation payloads per (jobId, itemId) as JSON bytes.
    - Keep the latest job snapshot next to them for external inspection.
    - TTL is refreshed on read so results survive while a job is being reviewed.
    """

    def __init__(self, ttl_seconds: int = settings.PERSISTENCE_TTL_SECONDS) -> None:
        self._ttl = int(ttl_seconds)

    @staticmethod
    async def _client() -> Redis:
        return await get_redis()

    @staticmethod
    def _key(job_id: str, item_id: str) -> str:
        return f"{RESULTS}:{job_id}:{item_id}"

    @staticmethod
    def _snapshot_key(job_id: str) -> str:
        return f"{SNAPSHOTS}:{job_id}"

    async def put(self, job_id: str, item_id: str, payload: Dict[str, Any]) -> str:
        r = await self._client()
        key = self._key(job_id, item_id)
        await r.set(key, json.dumps(payload).encode("utf-8"), ex=self._ttl)
        return key

    async def get(self, job_id: str, item_id: str) -> Optional[Dict[str, Any]]:
        r = await self._client()
        key = self._key(job_id, item_id)
        raw = await r.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        finally:
            await r.expire(key, self._ttl)

    async def put_snapshot(self, job_id: str, snapshot: Dict[str, Any]) -> None:
        r = await self._client()
        await r.set(
            self._snapshot_key(job_id),
            json.dumps(snapshot).encode("utf-8"),
            ex=self._ttl,
        )


class FileResultRepository:
    """
    Disk layout:
      <root>/<jobId>/<itemId>_result.json
      <root>/<jobId>/job_metadata.json
    """

    def __init__(self, root: str = settings.RESULTS_DIR) -> None:
        self._root = root
        os.makedirs(self._root, exist_ok=True)

    def _job_dir(self, job_id: str) -> str:
        path = os.path.join(self._root, job_id)
        os.makedirs(path, exist_ok=True)
        return path

    def _path(self, job_id: str, item_id: str) -> str:
        return os.path.join(self._root, job_id, f"{item_id}{RESULT_SUFFIX}")

    @staticmethod
    def _write(path: str, payload: Dict[str, Any]) -> None:
        tmp = f"{path}.tmp"
        with open(tmp, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2)
        os.replace(tmp, path)

    @staticmethod
    def _read(path: str) -> Optional[Dict[str, Any]]:
        if not os.path.exists(path):
            return None
        with open(path, "r", encoding="utf-8") as fh:
            return json.load(fh)

    # File I/O runs in a worker thread; callers hold the per-job lock while writing
    async def put(self, job_id: str, item_id: str, payload: Dict[str, Any]) -> str:
        self._job_dir(job_id)
        path = self._path(job_id, item_id)
        await asyncio.to_thread(self._write, path, payload)
        return path

    async def get(self, job_id: str, item_id: str) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self._read, self._path(job_id, item_id))

    async def put_snapshot(self, job_id: str, snapshot: Dict[str, Any]) -> None:
        path = os.path.join(self._job_dir(job_id), SNAPSHOT_FILE)
        await asyncio.to_thread(self._write, path, snapshot)
