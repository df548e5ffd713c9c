"""
Proof set creation: request, then poll until the chain confirms it
"""
import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Optional

from pdpgate.core.config import Settings, get_settings
from pdpgate.core.errors import (ConfirmationTimeoutError,
                                 ToolInvocationError)
from pdpgate.core.logging_config import LoggingConfig
from pdpgate.core.metrics import pdp_status_polls_total
from pdpgate.core.retry import SleepFn
from pdpgate.services.pdp_backend import PDPBackend
from pdpgate.services.pdp_output_parser import (parse_proof_set_id,
                                                parse_tx_hash, require)

logger = LoggingConfig.get_logger(__name__)


@dataclass
class ProofSetCreation:
    """A confirmed proof set and how it was obtained"""
    tx_hash: str
    proof_set_id: str
    polls: int
    status_output: str = ""


class ProofSetService:
    """Creates proof sets and waits for their on-chain confirmation"""

    def __init__(
        self,
        backend: PDPBackend,
        settings: Optional[Settings] = None,
        sleep: Optional[SleepFn] = None,
        clock: Optional[Callable[[], float]] = None
    ):
        self.backend = backend
        self.settings = settings or get_settings()
        self._sleep = sleep or asyncio.sleep
        self._clock = clock or time.monotonic

    async def request_creation(self, service_url: str, service_name: str, recordkeeper: str) -> str:
        """Run create-proof-set and return the transaction hash to poll"""
        result = await self.backend.create_proof_set(service_url, service_name, recordkeeper)
        tx_hash = require(parse_tx_hash(result.output), "tx hash", result.output)
        logger.info(f"Proof set creation requested, txHash={tx_hash}", extra={"tx_hash": tx_hash})
        return tx_hash

    async def wait_for_confirmation(
        self,
        tx_hash: str,
        service_url: str,
        service_name: str,
        timeout: Optional[float] = None
    ) -> ProofSetCreation:
        """
        Poll get-proof-set-create-status until the proof set is created.

        A failed status call is treated like "still pending". The loop gives up
        with ConfirmationTimeoutError once ``timeout`` seconds have passed
        (``pdp_poll_timeout_seconds`` by default). A confirmation without a
        proof set id raises OutputParseError.
        """
        timeout = timeout if timeout is not None else self.settings.pdp_poll_timeout_seconds
        interval = self.settings.pdp_poll_interval_seconds
        started = self._clock()
        deadline = started + timeout
        polls = 0
        last_output = ""

        while True:
            polls += 1
            logger.debug(f"Poll #{polls} for txHash {tx_hash}", extra={"tx_hash": tx_hash, "poll": polls})
            try:
                result = await self.backend.get_proof_set_create_status(service_url, service_name, tx_hash)
                last_output = result.text
            except ToolInvocationError as e:
                pdp_status_polls_total.labels(result="error").inc()
                last_output = e.output
                logger.warning(
                    f"Status poll #{polls} failed, treating as pending",
                    extra={"tx_hash": tx_hash, "output": e.output},
                )
            else:
                status = parse_proof_set_id(last_output)
                if status.created:
                    pdp_status_polls_total.labels(result="confirmed").inc()
                    proof_set_id = require(status.proof_set_id, "proof set id", last_output)
                    logger.info(
                        f"Proof set {proof_set_id} created after {polls} polls",
                        extra={"tx_hash": tx_hash, "proof_set_id": proof_set_id, "polls": polls},
                    )
                    return ProofSetCreation(
                        tx_hash=tx_hash,
                        proof_set_id=proof_set_id,
                        polls=polls,
                        status_output=last_output,
                    )
                pdp_status_polls_total.labels(result="pending").inc()

            if self._clock() + interval > deadline:
                waited = self._clock() - started
                logger.error(
                    f"Proof set {tx_hash} not confirmed after {polls} polls",
                    extra={"tx_hash": tx_hash, "polls": polls, "waited_seconds": waited},
                )
                raise ConfirmationTimeoutError(
                    "proof set creation", waited, output=last_output, tx_hash=tx_hash, polls=polls
                )
            await self._sleep(interval)

    async def create_and_wait(
        self,
        service_url: str,
        service_name: str,
        recordkeeper: str,
        timeout: Optional[float] = None
    ) -> ProofSetCreation:
        """Request a proof set and block until it is confirmed"""
        tx_hash = await self.request_creation(service_url, service_name, recordkeeper)
        return await self.wait_for_confirmation(tx_hash, service_url, service_name, timeout=timeout)
