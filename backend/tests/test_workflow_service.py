"""
Tests for the end-to-end PDP workflows
"""
import io
from typing import Any, List

import pytest

from pdpgate.core.errors import (PersistenceError, RetryExhaustedError,
                                 ToolInvocationError)
from pdpgate.models.file_cid import FileCid
from pdpgate.models.records import Paper, RecordKind
from pdpgate.services.metadata_store import (MetadataStore,
                                             SQLAlchemyMetadataStore)
from pdpgate.services.workflow_service import (PDPWorkflowCoordinator,
                                               TypedRecord)

CREATE_OUTPUT = "Location: /pdp/proof-sets/created/0xfeed\n"
NOT_VISIBLE = "proof set not found or does not belong to service"


class FailingMappingStore(MetadataStore):
    """Typed records succeed, file mappings fail"""

    def __init__(self):
        self.records: List[Any] = []

    def insert_file_mapping(self, filename, cid):
        raise PersistenceError("file_cids", RuntimeError("connection lost"))

    def insert_typed_record(self, kind, cid, **fields):
        self.records.append((kind, cid, fields))


@pytest.fixture
def store(db):
    return SQLAlchemyMetadataStore(db)


@pytest.mark.asyncio
async def test_full_flow(fake_backend, store, sleep, db):
    fake_backend.on("create-proof-set", CREATE_OUTPUT)
    fake_backend.on(
        "get-proof-set-create-status",
        "ProofSet Created: false",
        "ProofSet Created: true\nProofSet Id: 7",
    )
    fake_backend.on("upload-file", "root-abc:sub")
    fake_backend.on("add-roots", "  added  \n")
    coordinator = PDPWorkflowCoordinator(fake_backend, store, sleep=sleep)

    result = await coordinator.run_full_flow(io.BytesIO(b"0123456789"), "report.pdf", "u", "n", "rk")

    assert result.tx_hash == "0xfeed"
    assert result.proof_set_id == "7"
    assert result.root_cid == "root-abc"
    assert result.add_roots_output == "added"
    assert result.persisted == {"file_mapping": True}
    assert [name for name, _ in fake_backend.calls] == [
        "create-proof-set",
        "get-proof-set-create-status",
        "get-proof-set-create-status",
        "upload-file",
        "add-roots",
    ]
    assert sleep.calls == [3]

    rows = db.query(FileCid).all()
    assert len(rows) == 1
    assert (rows[0].filename, rows[0].cid) == ("report.pdf", "root-abc")


@pytest.mark.asyncio
async def test_bind_flow_with_record(fake_backend, store, sleep, db):
    fake_backend.on("upload-file", "root-paper")
    fake_backend.on("add-roots", ToolInvocationError("add-roots", output=NOT_VISIBLE), "ok")
    coordinator = PDPWorkflowCoordinator(fake_backend, store, sleep=sleep)
    record = TypedRecord(RecordKind.PAPER, {"title": "On Proofs", "year": 2024, "keywords": ["pdp"]})

    result = await coordinator.run_bind_flow(io.BytesIO(b"pdf"), "paper.pdf", "u", "n", "12", record=record)

    assert result.proof_set_id == "12"
    assert result.persisted == {"record": True, "file_mapping": True}
    assert sleep.calls == [2]
    paper = db.query(Paper).one()
    assert paper.cid == "root-paper"
    assert paper.keywords == ["pdp"]
    assert db.query(FileCid).count() == 1


@pytest.mark.asyncio
async def test_upload_failure_stops_before_bind(fake_backend, store, sleep, db):
    fake_backend.on("upload-file", ToolInvocationError("upload-file", output="boom", returncode=1))
    coordinator = PDPWorkflowCoordinator(fake_backend, store, sleep=sleep)

    with pytest.raises(ToolInvocationError):
        await coordinator.run_bind_flow(io.BytesIO(b"x"), "x.bin", "u", "n", "12")

    assert fake_backend.calls_for("add-roots") == []
    assert db.query(FileCid).count() == 0


@pytest.mark.asyncio
async def test_bind_exhaustion_persists_nothing(fake_backend, store, sleep, db):
    fake_backend.on("upload-file", "root-abc")
    fake_backend.on("add-roots", ToolInvocationError("add-roots", output=NOT_VISIBLE))
    coordinator = PDPWorkflowCoordinator(fake_backend, store, sleep=sleep)

    with pytest.raises(RetryExhaustedError):
        await coordinator.run_bind_flow(io.BytesIO(b"x"), "x.bin", "u", "n", "12")

    assert db.query(FileCid).count() == 0


@pytest.mark.asyncio
async def test_mapping_failure_is_not_fatal(fake_backend, sleep):
    """Record written, mapping missing: the flow still succeeds and reports it"""
    fake_backend.on("upload-file", "root-abc")
    fake_backend.on("add-roots", "ok")
    store = FailingMappingStore()
    coordinator = PDPWorkflowCoordinator(fake_backend, store, sleep=sleep)
    record = TypedRecord(RecordKind.GENOME, {"organism": "E. coli"})

    result = await coordinator.run_bind_flow(io.BytesIO(b"ACGT"), "ecoli.fa", "u", "n", "12", record=record)

    assert result.root_cid == "root-abc"
    assert result.persisted == {"record": True, "file_mapping": False}
    assert store.records == [(RecordKind.GENOME, "root-abc", {"organism": "E. coli"})]


@pytest.mark.asyncio
async def test_duplicate_record_does_not_block_mapping(fake_backend, store, sleep, db):
    """A second upload of the same root fails the record insert but still maps the file"""
    fake_backend.on("upload-file", "root-dup")
    fake_backend.on("add-roots", "ok")
    coordinator = PDPWorkflowCoordinator(fake_backend, store, sleep=sleep)
    record = TypedRecord(RecordKind.PAPER, {"title": "Twice"})

    await coordinator.run_bind_flow(io.BytesIO(b"a"), "a.pdf", "u", "n", "12", record=record)
    result = await coordinator.run_bind_flow(io.BytesIO(b"a"), "b.pdf", "u", "n", "12", record=record)

    assert result.persisted == {"record": False, "file_mapping": True}
    assert db.query(Paper).count() == 1
    assert db.query(FileCid).count() == 2
