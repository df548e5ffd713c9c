"""
End-to-end upload workflows

Full flow:  create proof set -> poll -> upload -> add-roots -> persist
Bind flow:  upload -> add-roots -> persist   (proof set already exists)

Each step waits for the previous step's external confirmation. A terminal
failure aborts the flow with no compensation for steps already completed.
Persistence is best-effort: the external state is already final by then, so a
failed write is logged and reported, never raised.
"""
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from pdpgate.core.config import Settings, get_settings
from pdpgate.core.errors import PDPError, PersistenceError
from pdpgate.core.logging_config import LoggingConfig
from pdpgate.core.metrics import (pdp_persistence_failures_total,
                                  pdp_workflow_duration_seconds,
                                  pdp_workflows_total)
from pdpgate.core.retry import SleepFn
from pdpgate.models.records import RecordKind
from pdpgate.services.metadata_store import MetadataStore
from pdpgate.services.pdp_backend import PDPBackend
from pdpgate.services.proof_set_service import ProofSetService
from pdpgate.services.root_binder import RootBinder
from pdpgate.services.upload_service import UploadService

logger = LoggingConfig.get_logger(__name__)


@dataclass
class TypedRecord:
    """Domain record to store alongside the file mapping"""
    kind: RecordKind
    fields: Dict[str, Any] = field(default_factory=dict)


@dataclass
class WorkflowResult:
    """Identifiers produced by a completed workflow"""
    filename: str
    proof_set_id: str
    root_cid: str
    add_roots_output: str
    is_encrypted: bool = False
    tx_hash: Optional[str] = None
    persisted: Dict[str, bool] = field(default_factory=dict)


class PDPWorkflowCoordinator:
    """Composes upload, bind and proof set creation into workflows"""

    def __init__(
        self,
        backend: PDPBackend,
        store: MetadataStore,
        settings: Optional[Settings] = None,
        sleep: Optional[SleepFn] = None,
        poll_timeout: Optional[float] = None
    ):
        settings = settings or get_settings()
        self.store = store
        self.poll_timeout = poll_timeout
        self.uploads = UploadService(backend, settings=settings, sleep=sleep)
        self.binder = RootBinder(backend, settings=settings, sleep=sleep)
        self.proof_sets = ProofSetService(backend, settings=settings, sleep=sleep)

    async def run_full_flow(
        self,
        stream: Any,
        filename: str,
        service_url: str,
        service_name: str,
        recordkeeper: str
    ) -> WorkflowResult:
        """Create a new proof set, then upload ``stream`` and bind it as a root"""
        start = time.monotonic()
        logger.info(f"Starting full PDP flow for {filename}", extra={"upload_filename": filename})
        try:
            creation = await self.proof_sets.create_and_wait(
                service_url, service_name, recordkeeper, timeout=self.poll_timeout
            )
            result = await self._upload_and_bind(
                stream, filename, service_url, service_name, creation.proof_set_id, record=None
            )
        except PDPError:
            pdp_workflows_total.labels(flow="full", status="failed").inc()
            raise
        result.tx_hash = creation.tx_hash
        pdp_workflows_total.labels(flow="full", status="success").inc()
        pdp_workflow_duration_seconds.labels(flow="full").observe(time.monotonic() - start)
        return result

    async def run_bind_flow(
        self,
        stream: Any,
        filename: str,
        service_url: str,
        service_name: str,
        proof_set_id: str,
        record: Optional[TypedRecord] = None
    ) -> WorkflowResult:
        """Upload ``stream`` and bind it to an existing proof set"""
        start = time.monotonic()
        logger.info(
            f"Starting upload+add-root for {filename} -> proof set {proof_set_id}",
            extra={"upload_filename": filename, "proof_set_id": proof_set_id},
        )
        try:
            result = await self._upload_and_bind(
                stream, filename, service_url, service_name, proof_set_id, record=record
            )
        except PDPError:
            pdp_workflows_total.labels(flow="bind", status="failed").inc()
            raise
        pdp_workflows_total.labels(flow="bind", status="success").inc()
        pdp_workflow_duration_seconds.labels(flow="bind").observe(time.monotonic() - start)
        return result

    async def _upload_and_bind(
        self,
        stream: Any,
        filename: str,
        service_url: str,
        service_name: str,
        proof_set_id: str,
        record: Optional[TypedRecord]
    ) -> WorkflowResult:
        upload = await self.uploads.upload(stream, filename, service_url, service_name)
        bound = await self.binder.bind_root(proof_set_id, upload.root_cid, service_url, service_name)

        persisted: Dict[str, bool] = {}
        if record is not None:
            persisted["record"] = self._persist(
                record.kind.value,
                lambda: self.store.insert_typed_record(record.kind, upload.root_cid, **record.fields),
            )
        persisted["file_mapping"] = self._persist(
            "file_cids",
            lambda: self.store.insert_file_mapping(filename, upload.root_cid),
        )

        return WorkflowResult(
            filename=filename,
            proof_set_id=proof_set_id,
            root_cid=upload.root_cid,
            add_roots_output=bound.text.strip(),
            is_encrypted=upload.is_encrypted,
            persisted=persisted,
        )

    @staticmethod
    def _persist(table: str, write) -> bool:
        try:
            write()
        except PersistenceError as e:
            pdp_persistence_failures_total.labels(table=table).inc()
            logger.error(
                f"Failed to save {table}: {e.cause}",
                extra={"table": table, "error_type": type(e.cause).__name__},
            )
            return False
        return True
