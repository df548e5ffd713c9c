"""
Bind an uploaded root to a proof set with add-roots
"""
from typing import Optional

from pdpgate.core.config import Settings, get_settings
from pdpgate.core.errors import classify_failure
from pdpgate.core.logging_config import LoggingConfig
from pdpgate.core.retry import RetryPolicy, SleepFn, with_retry
from pdpgate.services.pdp_backend import PDPBackend, ToolResult

logger = LoggingConfig.get_logger(__name__)


class RootBinder:
    """
    Runs add-roots under a linear backoff policy.

    A proof set that was just created or replicated can briefly be reported as
    "not found or does not belong to service"; only that failure is retried.
    The remote call is not idempotent and a retried bind may be applied twice.
    """

    def __init__(
        self,
        backend: PDPBackend,
        settings: Optional[Settings] = None,
        policy: Optional[RetryPolicy] = None,
        sleep: Optional[SleepFn] = None
    ):
        settings = settings or get_settings()
        self.backend = backend
        self.policy = policy or RetryPolicy.linear(
            max_attempts=settings.pdp_bind_max_attempts,
            step=settings.pdp_bind_backoff_step_seconds,
        )
        self._sleep = sleep

    async def bind_root(
        self,
        proof_set_id: str,
        root_cid: str,
        service_url: str,
        service_name: str
    ) -> ToolResult:
        """Add ``root_cid`` to ``proof_set_id``; returns the successful add-roots result"""
        logger.info(
            f"Adding root {root_cid} to proof set {proof_set_id}",
            extra={"proof_set_id": proof_set_id, "root_cid": root_cid},
        )

        async def attempt() -> ToolResult:
            return await self.backend.add_roots(service_url, service_name, proof_set_id, root_cid)

        result = await with_retry(
            attempt,
            self.policy,
            classify_failure,
            name="add-roots",
            sleep=self._sleep,
        )
        logger.info(
            f"Root {root_cid} added to proof set {proof_set_id}",
            extra={"proof_set_id": proof_set_id, "root_cid": root_cid},
        )
        return result
