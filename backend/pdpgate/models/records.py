"""
Domain records attached to uploaded roots (papers, genomes, spectra)
"""
from enum import Enum

from sqlalchemy import JSON, Column, DateTime, Integer, Text

from pdpgate.core.database import Base
from pdpgate.utils.datetime_utils import utc_now


class RecordKind(str, Enum):
    """Typed record kinds; values are table names"""
    PAPER = "paper"
    GENOME = "genome"
    SPECTRUM = "spectrum"


class Paper(Base):
    """Research paper stored as a root"""
    __tablename__ = "paper"

    cid = Column(Text, primary_key=True)
    title = Column(Text, nullable=False)
    journal = Column(Text, nullable=True)
    year = Column(Integer, nullable=True)
    keywords = Column(JSON, nullable=True)  # list of strings
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    def to_dict(self):
        return {
            "cid": self.cid,
            "title": self.title,
            "journal": self.journal,
            "year": self.year,
            "keywords": self.keywords or [],
            "created_at": self.created_at,
        }

    def __repr__(self):
        return f"<Paper(cid={self.cid}, title={self.title})>"


class Genome(Base):
    """Genome assembly stored as a root"""
    __tablename__ = "genome"

    cid = Column(Text, primary_key=True)
    organism = Column(Text, nullable=False)
    assembly_version = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    def to_dict(self):
        return {
            "cid": self.cid,
            "organism": self.organism,
            "assembly_version": self.assembly_version,
            "notes": self.notes,
            "created_at": self.created_at,
        }

    def __repr__(self):
        return f"<Genome(cid={self.cid}, organism={self.organism})>"


class Spectrum(Base):
    """Spectroscopy measurement (NMR, IR, MS, ...) stored as a root"""
    __tablename__ = "spectrum"

    cid = Column(Text, primary_key=True)
    compound = Column(Text, nullable=False)
    technique = Column("technique_nmr_ir_ms", Text, nullable=True)
    metadata_json = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    def to_dict(self):
        return {
            "cid": self.cid,
            "compound": self.compound,
            "technique": self.technique,
            "metadata": self.metadata_json,
            "created_at": self.created_at,
        }

    def __repr__(self):
        return f"<Spectrum(cid={self.cid}, compound={self.compound})>"


RECORD_MODELS = {
    RecordKind.PAPER: Paper,
    RecordKind.GENOME: Genome,
    RecordKind.SPECTRUM: Spectrum,
}
