"""
Upload step: stage an incoming stream on disk and push it with upload-file
"""
import asyncio
import inspect
import os
import tempfile
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from pdpgate.core.config import Settings, get_settings
from pdpgate.core.errors import StagingError
from pdpgate.core.logging_config import LoggingConfig
from pdpgate.core.retry import SleepFn
from pdpgate.services.pdp_backend import PDPBackend, ToolResult
from pdpgate.services.pdp_output_parser import parse_root_cid, require

logger = LoggingConfig.get_logger(__name__)

CHUNK_SIZE = 1024 * 1024


@dataclass
class UploadResult:
    """Root CID of an uploaded file plus the raw upload-file result"""
    root_cid: str
    is_encrypted: bool
    size: int
    tool_result: ToolResult


class UploadService:
    """Stages a byte stream to a temp file and uploads it to the PDP service"""

    def __init__(
        self,
        backend: PDPBackend,
        settings: Optional[Settings] = None,
        sleep: Optional[SleepFn] = None
    ):
        self.backend = backend
        self.settings = settings or get_settings()
        self._sleep = sleep or asyncio.sleep

    def is_encrypted(self, display_name: str) -> bool:
        """Whether the filename marks a pre-encrypted payload"""
        suffix = self.settings.pdp_encrypted_suffix
        return bool(suffix) and (display_name or "").lower().endswith(suffix)

    async def upload(
        self,
        stream: Any,
        display_name: str,
        service_url: str,
        service_name: str
    ) -> UploadResult:
        """
        Upload ``stream`` and return its root CID.

        Args:
            stream: Binary file object; ``read`` may be sync or async
            display_name: Client filename, used for the pre-encrypted check
            service_url: PDP service URL
            service_name: PDP service name

        The staged copy is removed on every exit path. Pre-encrypted uploads
        wait a fixed settle delay before returning so the service can finish
        replicating before add-roots.
        """
        encrypted = self.is_encrypted(display_name)
        result, size = await self.upload_raw(stream, display_name, service_url, service_name)
        root_cid = require(parse_root_cid(result.output), "root CID", result.output)
        logger.info(f"Uploaded {display_name}", extra={"upload_filename": display_name, "root_cid": root_cid})

        if encrypted:
            delay = self.settings.pdp_encrypted_settle_seconds
            logger.info(f"Encrypted upload, waiting {delay:g}s for service synchronization")
            await self._sleep(delay)

        return UploadResult(root_cid=root_cid, is_encrypted=encrypted, size=size, tool_result=result)

    async def upload_raw(
        self,
        stream: Any,
        display_name: str,
        service_url: str,
        service_name: str
    ) -> Tuple[ToolResult, int]:
        """Stage and run upload-file without interpreting its output"""
        fd, tmp_path = tempfile.mkstemp(
            prefix=self.settings.pdp_upload_tmp_prefix,
            dir=self.settings.pdp_upload_tmp_dir,
        )
        try:
            size = await self._stage(stream, fd, tmp_path)
            logger.info(
                f"Staged {display_name} for upload",
                extra={"upload_filename": display_name, "bytes": size, "tmp_path": tmp_path},
            )
            result = await self.backend.upload_file(service_url, service_name, tmp_path)
            return result, size
        finally:
            try:
                os.remove(tmp_path)
            except FileNotFoundError:
                pass

    async def _stage(self, stream: Any, fd: int, tmp_path: str) -> int:
        """Copy the whole stream into the open temp file descriptor, writing off the event loop"""
        loop = asyncio.get_running_loop()
        written = 0
        try:
            with os.fdopen(fd, "wb") as tmp:
                while True:
                    chunk = stream.read(CHUNK_SIZE)
                    if inspect.isawaitable(chunk):
                        chunk = await chunk
                    if not chunk:
                        break
                    await loop.run_in_executor(None, tmp.write, chunk)
                    written += len(chunk)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to copy upload to {tmp_path}: {e}")
            raise StagingError("failed to copy file", details={"tmp_path": tmp_path}) from e
        return written
