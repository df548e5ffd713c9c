"""
Metadata store: filename mappings and typed records for uploaded roots
"""
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from sqlalchemy import Text, cast, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session

from pdpgate.core.errors import PersistenceError
from pdpgate.core.logging_config import LoggingConfig
from pdpgate.models.file_cid import FileCid
from pdpgate.models.records import (RECORD_MODELS, Genome, Paper, RecordKind,
                                    Spectrum)

logger = LoggingConfig.get_logger(__name__)


class MetadataStore(ABC):
    """Write interface used by the upload workflow"""

    @abstractmethod
    def insert_file_mapping(self, filename: str, cid: str) -> None:
        """Record that ``filename`` was stored as root ``cid``"""

    @abstractmethod
    def insert_typed_record(self, kind: RecordKind, cid: str, **fields: Any) -> None:
        """Store the domain record of ``kind`` keyed by ``cid``"""


class SQLAlchemyMetadataStore(MetadataStore):
    """MetadataStore backed by a SQLAlchemy session; each insert commits on its own"""

    def __init__(self, db: Session):
        self.db = db

    def _add(self, table: str, row: Any) -> None:
        try:
            self.db.add(row)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(table, e) from e

    def insert_file_mapping(self, filename: str, cid: str) -> None:
        self._add(FileCid.__tablename__, FileCid(filename=filename, cid=cid))
        logger.info(f"Saved file mapping {filename} -> {cid}", extra={"upload_filename": filename, "cid": cid})

    def insert_typed_record(self, kind: RecordKind, cid: str, **fields: Any) -> None:
        kind = RecordKind(kind)
        model = RECORD_MODELS[kind]
        self._add(model.__tablename__, model(cid=cid, **fields))
        logger.info(f"Saved {kind.value} record {cid}", extra={"record_kind": kind.value, "cid": cid})


# ----------------------------------------------------------------------------
# Read side
# ----------------------------------------------------------------------------

def _like(value: str) -> str:
    return f"%{value}%"


def _has_keyword(keyword: str):
    """
    Exact element match on the JSON keywords list.

    The needle is the element as the JSON serializer writes it, so non-ASCII
    keywords compare in their escaped form. replace() is case-sensitive and has
    no wildcards on SQLite and PostgreSQL alike.
    """
    stored = cast(Paper.keywords, Text)
    return func.replace(stored, json.dumps(keyword), "") != stored


def _paper_filters(query: Query, params: Dict[str, str]) -> Query:
    if params.get("search"):
        pattern = _like(params["search"])
        query = query.filter(or_(Paper.title.ilike(pattern), Paper.journal.ilike(pattern)))
    year = params.get("year")
    if year:
        try:
            query = query.filter(Paper.year == int(year))
        except ValueError:
            pass
    if params.get("journal"):
        query = query.filter(Paper.journal.ilike(_like(params["journal"])))
    if params.get("keyword"):
        query = query.filter(_has_keyword(params["keyword"]))
    return query


def _genome_filters(query: Query, params: Dict[str, str]) -> Query:
    if params.get("search"):
        pattern = _like(params["search"])
        query = query.filter(or_(Genome.organism.ilike(pattern), Genome.notes.ilike(pattern)))
    if params.get("organism"):
        query = query.filter(Genome.organism.ilike(_like(params["organism"])))
    if params.get("assembly"):
        query = query.filter(Genome.assembly_version.ilike(_like(params["assembly"])))
    return query


def _spectrum_filters(query: Query, params: Dict[str, str]) -> Query:
    if params.get("search"):
        query = query.filter(Spectrum.compound.ilike(_like(params["search"])))
    if params.get("compound"):
        query = query.filter(Spectrum.compound.ilike(_like(params["compound"])))
    if params.get("technique"):
        query = query.filter(Spectrum.technique.ilike(_like(params["technique"])))
    return query


def _file_cid_filters(query: Query, params: Dict[str, str]) -> Query:
    if params.get("search"):
        query = query.filter(FileCid.filename.ilike(_like(params["search"])))
    return query


@dataclass(frozen=True)
class DataType:
    """Query configuration for one listable table"""
    model: Type
    default_sort: str
    sort_columns: Dict[str, Any]
    apply_filters: Callable[[Query, Dict[str, str]], Query]
    key_column: Any = field(default=None)


DATA_TYPES: Dict[str, DataType] = {
    "paper": DataType(
        model=Paper,
        default_sort="created_at",
        sort_columns={
            "created_at": Paper.created_at,
            "title": Paper.title,
            "journal": Paper.journal,
            "year": Paper.year,
            "cid": Paper.cid,
        },
        apply_filters=_paper_filters,
        key_column=Paper.cid,
    ),
    "genome": DataType(
        model=Genome,
        default_sort="created_at",
        sort_columns={
            "created_at": Genome.created_at,
            "organism": Genome.organism,
            "assembly_version": Genome.assembly_version,
            "cid": Genome.cid,
        },
        apply_filters=_genome_filters,
        key_column=Genome.cid,
    ),
    "spectrum": DataType(
        model=Spectrum,
        default_sort="created_at",
        sort_columns={
            "created_at": Spectrum.created_at,
            "compound": Spectrum.compound,
            "technique_nmr_ir_ms": Spectrum.technique,
            "cid": Spectrum.cid,
        },
        apply_filters=_spectrum_filters,
        key_column=Spectrum.cid,
    ),
    "file_cids": DataType(
        model=FileCid,
        default_sort="uploaded_at",
        sort_columns={
            "uploaded_at": FileCid.uploaded_at,
            "filename": FileCid.filename,
            "cid": FileCid.cid,
            "id": FileCid.id,
        },
        apply_filters=_file_cid_filters,
        key_column=FileCid.cid,
    ),
}


@dataclass
class RecordPage:
    """One page of a filtered listing"""
    items: List[Dict[str, Any]]
    total: int
    limit: int
    offset: int
    sort_by: str
    sort_order: str


class MetadataQueryService:
    """Read-only queries over stored records"""

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def resolve_sort(data_type: DataType, sort_by: Optional[str], order: Optional[str]) -> Tuple[str, str]:
        """Fall back to the type's timestamp column and DESC for unknown values"""
        if sort_by not in data_type.sort_columns:
            sort_by = data_type.default_sort
        order = (order or "").upper()
        if order not in ("ASC", "DESC"):
            order = "DESC"
        return sort_by, order

    def query_records(
        self,
        type_name: str,
        params: Dict[str, str],
        limit: int = 20,
        offset: int = 0,
        sort_by: Optional[str] = None,
        order: Optional[str] = None
    ) -> RecordPage:
        """
        Filtered, sorted, paginated listing of ``type_name``.

        Raises:
            KeyError: Unknown type name
        """
        data_type = DATA_TYPES[type_name]
        sort_by, order = self.resolve_sort(data_type, sort_by, order)

        query = data_type.apply_filters(self.db.query(data_type.model), params)
        total = query.count()

        column = data_type.sort_columns[sort_by]
        query = query.order_by(column.asc() if order == "ASC" else column.desc())
        rows = query.offset(offset).limit(limit).all()

        logger.debug(
            f"Queried {type_name}",
            extra={"data_type": type_name, "total": total, "limit": limit, "offset": offset},
        )
        return RecordPage(
            items=[row.to_dict() for row in rows],
            total=total,
            limit=limit,
            offset=offset,
            sort_by=sort_by,
            sort_order=order,
        )

    def get_record(self, type_name: str, cid: str) -> Optional[Dict[str, Any]]:
        """Single record by CID; for file_cids the most recent mapping of that CID"""
        data_type = DATA_TYPES[type_name]
        query = self.db.query(data_type.model).filter(data_type.key_column == cid)
        if data_type.model is FileCid:
            query = query.order_by(FileCid.uploaded_at.desc())
        row = query.first()
        return row.to_dict() if row else None

    def list_file_mappings(self, filename: Optional[str] = None) -> List[Dict[str, Any]]:
        """All filename mappings (optionally for one exact filename), newest first"""
        query = self.db.query(FileCid)
        if filename:
            query = query.filter(FileCid.filename == filename)
        rows = query.order_by(FileCid.uploaded_at.desc(), FileCid.id.desc()).all()
        return [
            {"filename": row.filename, "cid": row.cid, "uploaded_at": row.uploaded_at}
            for row in rows
        ]
