"""
Shared FastAPI dependencies for the PDP routes
"""
from typing import Any, Optional

from fastapi import Depends, UploadFile
from sqlalchemy.orm import Session

from pdpgate.core.config import get_settings
from pdpgate.core.database import get_db
from pdpgate.core.errors import InputValidationError
from pdpgate.services.metadata_store import (MetadataStore,
                                             SQLAlchemyMetadataStore)
from pdpgate.services.pdp_backend import PDPBackend, get_pdp_backend
from pdpgate.services.workflow_service import PDPWorkflowCoordinator


def get_metadata_store(db: Session = Depends(get_db)) -> MetadataStore:
    """Metadata store bound to the request's session"""
    return SQLAlchemyMetadataStore(db)


def get_workflow_coordinator(
    backend: PDPBackend = Depends(get_pdp_backend),
    store: MetadataStore = Depends(get_metadata_store),
) -> PDPWorkflowCoordinator:
    return PDPWorkflowCoordinator(backend, store)


def require_file(file: Optional[Any]) -> UploadFile:
    """Reject a missing or oversized multipart file before any external call"""
    if file is None or isinstance(file, str) or not getattr(file, "filename", None):
        raise InputValidationError("file is required")
    max_mb = get_settings().pdp_max_upload_mb
    if max_mb is None:
        return file
    max_bytes = max_mb * 1024 * 1024
    size = getattr(file, "size", None)
    if size is not None and size > max_bytes:
        raise InputValidationError(
            f"file exceeds {max_mb} MB",
            details={"size": size, "max_bytes": max_bytes},
        )
    return file
