import io
import json
import os
import threading

import pytest
from fastapi import HTTPException, UploadFile

from repository.result_repository import FileResultRepository, RedisResultRepository
from repository.upload_repository import UploadRepository

pytestmark = pytest.mark.asyncio


async def test_file_results_round_trip_and_layout(tmp_path):
    repo = FileResultRepository(root=str(tmp_path))

    key = await repo.put("bulk_1", "item_0_ab", {"student": {"name": "Asha"}})
    assert key == os.path.join(str(tmp_path), "bulk_1", "item_0_ab_result.json")
    assert await repo.get("bulk_1", "item_0_ab") == {"student": {"name": "Asha"}}
    assert await repo.get("bulk_1", "item_9_zz") is None

    await repo.put_snapshot("bulk_1", {"status": "processing"})
    await repo.put_snapshot("bulk_1", {"status": "completed"})
    with open(tmp_path / "bulk_1" / "job_metadata.json") as fh:
        assert json.load(fh) == {"status": "completed"}
    assert sorted(os.listdir(tmp_path / "bulk_1")) == [
        "item_0_ab_result.json", "job_metadata.json"
    ]


async def test_upload_is_stored_under_unique_sanitized_name(tmp_path):
    uploads = UploadRepository(root=str(tmp_path), max_mb=1)
    stored = await uploads.save(
        UploadFile(io.BytesIO(b"%PDF-1.4"), filename="../Roll 12 (final).pdf")
    )

    assert stored.filename == "../Roll 12 (final).pdf"
    assert os.path.dirname(stored.path) == str(tmp_path)
    assert stored.path.endswith("-Roll_12_final_.pdf")
    with open(stored.path, "rb") as fh:
        assert fh.read() == b"%PDF-1.4"


async def test_oversized_upload_is_rejected_and_removed(tmp_path):
    uploads = UploadRepository(root=str(tmp_path), max_mb=1)
    big = UploadFile(io.BytesIO(b"x" * (1024 * 1024 + 1)), filename="big.pdf")

    with pytest.raises(HTTPException) as err:
        await uploads.save(big)
    assert err.value.status_code == 413
    assert err.value.detail["error"] == "file_too_large"
    assert os.listdir(tmp_path) == []


async def test_file_results_write_off_the_event_loop(tmp_path, monkeypatch):
    threads = []
    write = FileResultRepository._write

    def tracking_write(path, payload):
        threads.append(threading.get_ident())
        write(path, payload)

    monkeypatch.setattr(FileResultRepository, "_write", staticmethod(tracking_write))
    repo = FileResultRepository(root=str(tmp_path))
    await repo.put("bulk_1", "item_0_ab", {"ok": True})
    await repo.put_snapshot("bulk_1", {"status": "processing"})

    assert len(threads) == 2
    assert threading.get_ident() not in threads


class FakeRedis:
    def __init__(self):
        self.values = {}
        self.sets = []
        self.expires = []

    async def set(self, key, value, ex=None):
        self.values[key] = value
        self.sets.append((key, ex))

    async def get(self, key):
        return self.values.get(key)

    async def expire(self, key, seconds):
        self.expires.append((key, seconds))


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def redis_repo(fake_redis, monkeypatch):
    repo = RedisResultRepository(ttl_seconds=3600)

    async def _client():
        return fake_redis

    monkeypatch.setattr(repo, "_client", _client)
    return repo


async def test_redis_results_use_namespaced_keys_with_ttl(redis_repo, fake_redis):
    key = await redis_repo.put("bulk_1", "item_0_ab", {"student": {"name": "Asha"}})

    assert key == "bulkgrader:results:bulk_1:item_0_ab"
    assert fake_redis.sets == [(key, 3600)]
    assert json.loads(fake_redis.values[key]) == {"student": {"name": "Asha"}}


async def test_redis_read_refreshes_ttl(redis_repo, fake_redis):
    key = await redis_repo.put("bulk_1", "item_0_ab", {"grade": "A"})

    assert await redis_repo.get("bulk_1", "item_0_ab") == {"grade": "A"}
    assert fake_redis.expires == [(key, 3600)]


async def test_redis_missing_result_is_none(redis_repo, fake_redis):
    assert await redis_repo.get("bulk_1", "item_9_zz") is None
    assert fake_redis.expires == []


async def test_redis_snapshot_overwrites_latest(redis_repo, fake_redis):
    await redis_repo.put_snapshot("bulk_1", {"status": "processing"})
    await redis_repo.put_snapshot("bulk_1", {"status": "completed"})

    key = "bulkgrader:jobs:snapshot:bulk_1"
    assert json.loads(fake_redis.values[key]) == {"status": "completed"}
    assert fake_redis.sets == [(key, 3600), (key, 3600)]
