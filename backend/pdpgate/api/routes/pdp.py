"""
PDP workflow endpoints and single-step pdptool endpoints
"""
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel, Field

from pdpgate.api.dependencies import get_workflow_coordinator, require_file
from pdpgate.core.errors import InputValidationError
from pdpgate.core.logging_config import LoggingConfig
from pdpgate.services.pdp_backend import PDPBackend, get_pdp_backend
from pdpgate.services.workflow_service import PDPWorkflowCoordinator

logger = LoggingConfig.get_logger(__name__)

router = APIRouter(prefix="/api", tags=["pdp"])


class ServiceRequest(BaseModel):
    """PDP service coordinates"""
    serviceUrl: str = Field(..., min_length=1)
    serviceName: str = Field(..., min_length=1)


class CreateProofSetRequest(ServiceRequest):
    recordkeeper: str = Field(..., min_length=1)


class AddRootRequest(ServiceRequest):
    root: str = Field(..., min_length=1, description="Root CID to add")


# ----------------------------------------------------------------------------
# Workflows
# ----------------------------------------------------------------------------

@router.post("/pdp")
async def run_pdp_flow(
    file: Optional[UploadFile] = File(None),
    serviceUrl: str = Form(""),
    serviceName: str = Form(""),
    recordkeeper: str = Form(""),
    coordinator: PDPWorkflowCoordinator = Depends(get_workflow_coordinator),
):
    """
    Full flow: create a proof set, wait for confirmation, upload the file and
    add it as a root.
    """
    upload = require_file(file)
    logger.info(f"Received file {upload.filename} for full PDP flow", extra={"upload_filename": upload.filename})
    result = await coordinator.run_full_flow(upload, upload.filename, serviceUrl, serviceName, recordkeeper)
    return {
        "txHash": result.tx_hash,
        "proofSetID": result.proof_set_id,
        "rootCID": result.root_cid,
        "addRoots": result.add_roots_output,
    }


@router.post("/proofset/upload-and-add-root")
async def upload_and_add_root(
    file: Optional[UploadFile] = File(None),
    serviceUrl: str = Form(""),
    serviceName: str = Form(""),
    proofSetID: str = Form(""),
    coordinator: PDPWorkflowCoordinator = Depends(get_workflow_coordinator),
):
    """Upload a file and add it as a root of an existing proof set"""
    if not proofSetID:
        raise InputValidationError("proofSetID is required")
    upload = require_file(file)
    result = await coordinator.run_bind_flow(upload, upload.filename, serviceUrl, serviceName, proofSetID)
    return {
        "proofSetID": result.proof_set_id,
        "rootCID": result.root_cid,
        "addRoots": result.add_roots_output,
        "isEncrypted": result.is_encrypted,
    }


# ----------------------------------------------------------------------------
# Single pdptool steps
# ----------------------------------------------------------------------------

@router.post("/ping")
async def ping(request: ServiceRequest, backend: PDPBackend = Depends(get_pdp_backend)):
    """Check connectivity to a PDP service"""
    result = await backend.ping(request.serviceUrl, request.serviceName)
    return {"message": result.text}


@router.post("/proof-sets")
async def create_proof_set(request: CreateProofSetRequest, backend: PDPBackend = Depends(get_pdp_backend)):
    """Request proof set creation without waiting for confirmation"""
    result = await backend.create_proof_set(request.serviceUrl, request.serviceName, request.recordkeeper)
    return {"output": result.text}


@router.get("/proof-sets/{tx_hash}/status")
async def get_proof_set_status(
    tx_hash: str,
    serviceUrl: str = "",
    serviceName: str = "",
    backend: PDPBackend = Depends(get_pdp_backend),
):
    """Raw creation status for a proof set transaction"""
    result = await backend.get_proof_set_create_status(serviceUrl, serviceName, tx_hash)
    return {"status": result.text}


@router.post("/upload")
async def upload_file(
    file: Optional[UploadFile] = File(None),
    serviceUrl: str = Form(""),
    serviceName: str = Form(""),
    coordinator: PDPWorkflowCoordinator = Depends(get_workflow_coordinator),
):
    """Upload a file without binding it to a proof set"""
    upload = require_file(file)
    result, _ = await coordinator.uploads.upload_raw(upload, upload.filename, serviceUrl, serviceName)
    return {"output": result.text}


@router.post("/proof-sets/{proof_set_id}/roots")
async def add_root(
    proof_set_id: str,
    request: AddRootRequest,
    backend: PDPBackend = Depends(get_pdp_backend),
):
    """Add one root to a proof set (single attempt)"""
    result = await backend.add_roots(request.serviceUrl, request.serviceName, proof_set_id, request.root)
    return {"message": result.text}
