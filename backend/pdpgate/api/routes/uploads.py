"""
Typed uploads: add a file to a proof set and store its domain record
"""
import json
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from pdpgate.api.dependencies import get_workflow_coordinator, require_file
from pdpgate.core.errors import InputValidationError
from pdpgate.models.records import RecordKind
from pdpgate.services.workflow_service import (PDPWorkflowCoordinator,
                                               TypedRecord, WorkflowResult)

router = APIRouter(prefix="/api/upload", tags=["uploads"])


def parse_year(value: str) -> Optional[int]:
    """Year as an int; anything unparsable is dropped"""
    try:
        return int(value.strip())
    except (AttributeError, ValueError):
        return None


def parse_keywords(value: str) -> Optional[List[str]]:
    """Comma-separated keywords, each trimmed"""
    if not value:
        return None
    return [k.strip() for k in value.strip().split(",")]


def _base_response(result: WorkflowResult) -> Dict[str, Any]:
    return {
        "proofSetID": result.proof_set_id,
        "rootCID": result.root_cid,
        "addRoots": result.add_roots_output,
        "isEncrypted": result.is_encrypted,
        "persisted": result.persisted,
    }


@router.post("/paper")
async def upload_paper(
    file: Optional[UploadFile] = File(None),
    serviceUrl: str = Form(""),
    serviceName: str = Form(""),
    proofSetID: str = Form(""),
    title: str = Form(""),
    journal: str = Form(""),
    year: str = Form(""),
    keywords: str = Form(""),
    coordinator: PDPWorkflowCoordinator = Depends(get_workflow_coordinator),
):
    """Upload a paper; ``keywords`` is comma-separated"""
    if not proofSetID or not title:
        raise InputValidationError("proofSetID and title are required")
    upload = require_file(file)

    fields = {
        "title": title,
        "journal": journal or None,
        "year": parse_year(year),
        "keywords": parse_keywords(keywords),
    }
    result = await coordinator.run_bind_flow(
        upload, upload.filename, serviceUrl, serviceName, proofSetID,
        record=TypedRecord(RecordKind.PAPER, fields),
    )
    return {**_base_response(result), **fields}


@router.post("/genome")
async def upload_genome(
    file: Optional[UploadFile] = File(None),
    serviceUrl: str = Form(""),
    serviceName: str = Form(""),
    proofSetID: str = Form(""),
    organism: str = Form(""),
    assemblyVersion: str = Form(""),
    notes: str = Form(""),
    coordinator: PDPWorkflowCoordinator = Depends(get_workflow_coordinator),
):
    """Upload a genome assembly"""
    if not proofSetID or not organism:
        raise InputValidationError("proofSetID and organism are required")
    upload = require_file(file)

    fields = {
        "organism": organism,
        "assembly_version": assemblyVersion or None,
        "notes": notes or None,
    }
    result = await coordinator.run_bind_flow(
        upload, upload.filename, serviceUrl, serviceName, proofSetID,
        record=TypedRecord(RecordKind.GENOME, fields),
    )
    return {
        **_base_response(result),
        "organism": organism,
        "assemblyVersion": fields["assembly_version"],
        "notes": fields["notes"],
    }


@router.post("/spectrum")
async def upload_spectrum(
    file: Optional[UploadFile] = File(None),
    serviceUrl: str = Form(""),
    serviceName: str = Form(""),
    proofSetID: str = Form(""),
    compound: str = Form(""),
    technique: str = Form(""),
    metadata: str = Form(""),
    coordinator: PDPWorkflowCoordinator = Depends(get_workflow_coordinator),
):
    """Upload a spectrum; ``metadata`` must be a JSON document when given"""
    if not proofSetID or not compound:
        raise InputValidationError("proofSetID and compound are required")

    metadata_json = None
    if metadata:
        try:
            metadata_json = json.loads(metadata)
        except ValueError:
            raise InputValidationError("Invalid JSON metadata")
    upload = require_file(file)

    fields = {
        "compound": compound,
        "technique": technique or None,
        "metadata_json": metadata_json,
    }
    result = await coordinator.run_bind_flow(
        upload, upload.filename, serviceUrl, serviceName, proofSetID,
        record=TypedRecord(RecordKind.SPECTRUM, fields),
    )
    return {
        **_base_response(result),
        "compound": compound,
        "technique": fields["technique"],
        "metadata": metadata_json,
    }
