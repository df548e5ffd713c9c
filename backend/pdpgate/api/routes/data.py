"""
Read endpoints over stored records and filename mappings
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from pdpgate.core.database import get_db
from pdpgate.core.errors import InputValidationError
from pdpgate.core.logging_config import LoggingConfig
from pdpgate.services.metadata_store import DATA_TYPES, MetadataQueryService

logger = LoggingConfig.get_logger(__name__)

router = APIRouter(prefix="/api", tags=["data"])

DEFAULT_LIMIT = 20
INVALID_TYPE_MESSAGE = "Invalid data type. Valid types: " + ", ".join(DATA_TYPES)


def parse_int_param(value: Optional[str], default: int) -> int:
    """Positive integer query parameter; anything else yields ``default``"""
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def _check_type(type_name: str) -> None:
    if type_name not in DATA_TYPES:
        raise InputValidationError(INVALID_TYPE_MESSAGE)


@router.get("/data/{type_name}")
async def query_data(type_name: str, request: Request, db: Session = Depends(get_db)):
    """
    Filtered listing of one record type

    Query parameters: ``limit`` (default 20), ``offset``, ``sort``, ``order``
    (ASC/DESC) plus the per-type filters (``search``, ``year``, ``journal``,
    ``keyword``, ``organism``, ``assembly``, ``compound``, ``technique``).
    """
    _check_type(type_name)
    params = dict(request.query_params)
    limit = parse_int_param(params.get("limit"), DEFAULT_LIMIT)
    offset = parse_int_param(params.get("offset"), 0)

    page = MetadataQueryService(db).query_records(
        type_name,
        params,
        limit=limit,
        offset=offset,
        sort_by=params.get("sort"),
        order=params.get("order"),
    )
    return {
        "data": page.items,
        "pagination": {
            "total": page.total,
            "limit": page.limit,
            "offset": page.offset,
            "count": len(page.items),
        },
        "sort": {
            "by": page.sort_by,
            "order": page.sort_order,
        },
    }


@router.get("/data/{type_name}/{cid}")
async def get_data_by_cid(type_name: str, cid: str, db: Session = Depends(get_db)):
    """Single record by root CID"""
    _check_type(type_name)
    record = MetadataQueryService(db).get_record(type_name, cid)
    if record is None:
        raise HTTPException(status_code=404, detail="Record not found")
    return {"data": record}


@router.get("/cids")
async def list_cids(filename: str = "", db: Session = Depends(get_db)):
    """Filename to CID mappings, newest first"""
    return MetadataQueryService(db).list_file_mappings(filename or None)
