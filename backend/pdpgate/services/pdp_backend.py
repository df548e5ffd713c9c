"""
Proof-of-data-possession backend

PDPBackend is the capability set the workflow needs from a PDP service.
PDPToolBackend implements it by spawning the pdptool binary; anything else
(a direct API client, a test double) only has to implement ``invoke``.
"""
import asyncio
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from pdpgate.core.config import Settings, get_settings
from pdpgate.core.errors import ToolInvocationError, ToolTimeoutError
from pdpgate.core.logging_config import LoggingConfig
from pdpgate.core.metrics import (pdp_tool_duration_seconds,
                                  pdp_tool_invocations_total)

logger = LoggingConfig.get_logger(__name__)

PING = "ping"
CREATE_PROOF_SET = "create-proof-set"
GET_PROOF_SET_CREATE_STATUS = "get-proof-set-create-status"
UPLOAD_FILE = "upload-file"
ADD_ROOTS = "add-roots"


@dataclass
class ToolResult:
    """Captured result of one successful backend call"""
    subcommand: str
    args: List[str] = field(default_factory=list)
    output: bytes = b""
    returncode: int = 0
    duration: float = 0.0

    @property
    def text(self) -> str:
        return self.output.decode("utf-8", errors="replace")


class PDPBackend(ABC):
    """
    Capability set of a PDP storage service.

    Every method either returns a ToolResult or raises ToolInvocationError
    carrying whatever output was captured.
    """

    @abstractmethod
    async def invoke(self, subcommand: str, args: Sequence[str]) -> ToolResult:
        """Run one subcommand with flag arguments"""

    async def ping(self, service_url: str, service_name: str) -> ToolResult:
        return await self.invoke(PING, [
            "--service-url", service_url,
            "--service-name", service_name,
        ])

    async def create_proof_set(self, service_url: str, service_name: str, recordkeeper: str) -> ToolResult:
        return await self.invoke(CREATE_PROOF_SET, [
            "--service-url", service_url,
            "--service-name", service_name,
            "--recordkeeper", recordkeeper,
        ])

    async def get_proof_set_create_status(self, service_url: str, service_name: str, tx_hash: str) -> ToolResult:
        return await self.invoke(GET_PROOF_SET_CREATE_STATUS, [
            "--service-url", service_url,
            "--service-name", service_name,
            "--tx-hash", tx_hash,
        ])

    async def upload_file(self, service_url: str, service_name: str, path: str) -> ToolResult:
        return await self.invoke(UPLOAD_FILE, [
            "--service-url", service_url,
            "--service-name", service_name,
            path,
        ])

    async def add_roots(self, service_url: str, service_name: str, proof_set_id: str, root: str) -> ToolResult:
        return await self.invoke(ADD_ROOTS, [
            "--service-url", service_url,
            "--service-name", service_name,
            "--proof-set-id", proof_set_id,
            "--root", root,
        ])


class PDPToolBackend(PDPBackend):
    """Runs pdptool as a child process per call"""

    def __init__(
        self,
        tool_path: Optional[str] = None,
        timeout: Optional[float] = None,
        settings: Optional[Settings] = None
    ):
        settings = settings or get_settings()
        self.tool_path = tool_path or settings.pdptool_path
        self.timeout = timeout if timeout is not None else settings.pdp_tool_timeout_seconds

    @property
    def working_dir(self) -> str:
        return os.path.dirname(self.tool_path) or "."

    async def invoke(self, subcommand: str, args: Sequence[str]) -> ToolResult:
        """
        Spawn ``<tool_path> <subcommand> <args...>`` and capture its output.

        stdout and stderr are merged into one buffer. The process is killed
        when the timeout expires or the awaiting task is cancelled.
        """
        argv = [subcommand, *args]
        logger.info(
            f"Running pdptool {subcommand}",
            extra={"subcommand": subcommand, "tool_args": list(args), "cwd": self.working_dir},
        )
        start = time.monotonic()

        try:
            proc = await asyncio.create_subprocess_exec(
                self.tool_path,
                *argv,
                cwd=self.working_dir,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            pdp_tool_invocations_total.labels(subcommand=subcommand, status="spawn_error").inc()
            logger.error(
                f"Could not start pdptool {subcommand}: {e}",
                extra={"subcommand": subcommand, "tool_path": self.tool_path},
            )
            raise ToolInvocationError(subcommand, output=str(e), message=f"{subcommand} could not be started") from e

        try:
            output, _ = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            await self._kill(proc)
            pdp_tool_invocations_total.labels(subcommand=subcommand, status="timeout").inc()
            logger.error(f"pdptool {subcommand} timed out after {self.timeout:g}s")
            raise ToolTimeoutError(subcommand, self.timeout)
        except asyncio.CancelledError:
            await self._kill(proc)
            logger.warning(f"pdptool {subcommand} cancelled; process killed")
            raise

        duration = time.monotonic() - start
        pdp_tool_duration_seconds.labels(subcommand=subcommand).observe(duration)
        output = output or b""

        if proc.returncode != 0:
            pdp_tool_invocations_total.labels(subcommand=subcommand, status="failed").inc()
            logger.warning(
                f"pdptool {subcommand} exited with {proc.returncode}",
                extra={
                    "subcommand": subcommand,
                    "returncode": proc.returncode,
                    "output": output.decode("utf-8", errors="replace"),
                },
            )
            raise ToolInvocationError(subcommand, output=output, returncode=proc.returncode)

        pdp_tool_invocations_total.labels(subcommand=subcommand, status="success").inc()
        logger.debug(
            f"pdptool {subcommand} finished in {duration:.2f}s",
            extra={"subcommand": subcommand, "output": output.decode("utf-8", errors="replace")},
        )
        return ToolResult(
            subcommand=subcommand,
            args=list(args),
            output=output,
            returncode=proc.returncode,
            duration=duration,
        )

    @staticmethod
    async def _kill(proc: asyncio.subprocess.Process):
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                return
            await proc.wait()


_backend: Optional[PDPBackend] = None


def get_pdp_backend() -> PDPBackend:
    """Get or create the process-wide pdptool backend"""
    global _backend
    if _backend is None:
        _backend = PDPToolBackend()
    return _backend
