"""
Tests for staging and uploading files
"""
import io
import os
import threading

import pytest

from pdpgate.core.errors import (OutputParseError, StagingError,
                                 ToolInvocationError)
from pdpgate.services.upload_service import UploadService


@pytest.fixture
def staging_settings(settings, tmp_path):
    return settings.model_copy(update={"pdp_upload_tmp_dir": str(tmp_path)})


class BrokenStream:
    def read(self, size=-1):
        raise OSError("connection reset")


class AsyncStream:
    """Mimics starlette's UploadFile.read"""

    def __init__(self, data: bytes):
        self._buf = io.BytesIO(data)

    async def read(self, size=-1):
        return self._buf.read(size)


@pytest.mark.asyncio
async def test_plain_upload(fake_backend, sleep, staging_settings, tmp_path):
    """A 10-byte file is staged once, uploaded once, and not delayed"""
    fake_backend.on("upload-file", b"uploading\nroot-abc:subroot-1\n")
    service = UploadService(fake_backend, settings=staging_settings, sleep=sleep)

    result = await service.upload(io.BytesIO(b"0123456789"), "notes.txt", "https://sp.example", "svc")

    assert result.root_cid == "root-abc"
    assert result.size == 10
    assert result.is_encrypted is False
    assert len(fake_backend.calls) == 1
    assert fake_backend.calls[0] == (
        "upload-file",
        ["--service-url", "https://sp.example", "--service-name", "svc", fake_backend.staged[0]["path"]],
    )
    assert fake_backend.staged[0]["content"] == b"0123456789"
    assert sleep.calls == []
    assert os.listdir(tmp_path) == []


@pytest.mark.asyncio
async def test_staged_file_uses_prefix(fake_backend, sleep, staging_settings):
    fake_backend.on("upload-file", "root-abc")
    service = UploadService(fake_backend, settings=staging_settings, sleep=sleep)
    await service.upload(io.BytesIO(b"x"), "a.bin", "u", "n")
    assert os.path.basename(fake_backend.staged[0]["path"]).startswith("pdp-upload-")


@pytest.mark.asyncio
async def test_encrypted_upload_waits(fake_backend, sleep, staging_settings):
    fake_backend.on("upload-file", "root-enc")
    service = UploadService(fake_backend, settings=staging_settings, sleep=sleep)

    result = await service.upload(io.BytesIO(b"ciphertext"), "data.ENC", "u", "n")

    assert result.is_encrypted is True
    assert sleep.calls == [3]


@pytest.mark.asyncio
async def test_async_stream(fake_backend, sleep, staging_settings):
    fake_backend.on("upload-file", "root-async")
    service = UploadService(fake_backend, settings=staging_settings, sleep=sleep)

    result = await service.upload(AsyncStream(b"abc" * 1000), "big.bin", "u", "n")

    assert result.size == 3000
    assert fake_backend.staged[0]["content"] == b"abc" * 1000


class ThreadRecordingFile:
    """Temp file wrapper noting which thread performs each write"""

    def __init__(self, f):
        self._f = f
        self.write_threads = set()

    def write(self, data):
        self.write_threads.add(threading.get_ident())
        return self._f.write(data)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self._f.close()


@pytest.mark.asyncio
async def test_staging_writes_run_off_the_event_loop(fake_backend, sleep, staging_settings, monkeypatch):
    fake_backend.on("upload-file", "root-big")
    service = UploadService(fake_backend, settings=staging_settings, sleep=sleep)
    real_fdopen = os.fdopen
    opened = []

    def recording_fdopen(fd, mode):
        f = ThreadRecordingFile(real_fdopen(fd, mode))
        opened.append(f)
        return f

    monkeypatch.setattr(os, "fdopen", recording_fdopen)

    result = await service.upload(AsyncStream(b"x" * (3 * 1024 * 1024)), "genome.fa", "u", "n")

    assert result.size == 3 * 1024 * 1024
    assert fake_backend.staged[0]["content"] == b"x" * (3 * 1024 * 1024)
    assert opened[0].write_threads
    assert threading.get_ident() not in opened[0].write_threads


@pytest.mark.asyncio
async def test_copy_failure(fake_backend, sleep, staging_settings, tmp_path):
    """A broken stream never reaches pdptool and leaves no temp file"""
    service = UploadService(fake_backend, settings=staging_settings, sleep=sleep)

    with pytest.raises(StagingError):
        await service.upload(BrokenStream(), "notes.txt", "u", "n")

    assert fake_backend.calls == []
    assert os.listdir(tmp_path) == []


@pytest.mark.asyncio
async def test_tool_failure_removes_temp_file(fake_backend, sleep, staging_settings, tmp_path):
    fake_backend.on("upload-file", ToolInvocationError("upload-file", output="disk full", returncode=1))
    service = UploadService(fake_backend, settings=staging_settings, sleep=sleep)

    with pytest.raises(ToolInvocationError) as exc_info:
        await service.upload(io.BytesIO(b"data"), "notes.txt", "u", "n")

    assert exc_info.value.output == "disk full"
    assert os.listdir(tmp_path) == []


@pytest.mark.asyncio
async def test_blank_output_is_parse_error(fake_backend, sleep, staging_settings):
    fake_backend.on("upload-file", "\n\n")
    service = UploadService(fake_backend, settings=staging_settings, sleep=sleep)

    with pytest.raises(OutputParseError):
        await service.upload(io.BytesIO(b"data"), "notes.txt", "u", "n")


@pytest.mark.asyncio
async def test_upload_raw_returns_output(fake_backend, sleep, staging_settings):
    fake_backend.on("upload-file", "anything at all")
    service = UploadService(fake_backend, settings=staging_settings, sleep=sleep)

    result, size = await service.upload_raw(io.BytesIO(b"12345"), "f.txt", "u", "n")

    assert result.text == "anything at all"
    assert size == 5
