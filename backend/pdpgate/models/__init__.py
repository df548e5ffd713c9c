"""
SQLAlchemy models
"""
from pdpgate.core.database import Base  # noqa: F401
# Import all models here so Alembic can detect them
from pdpgate.models.file_cid import FileCid  # noqa: F401
from pdpgate.models.records import (RECORD_MODELS, Genome,  # noqa: F401
                                    Paper, RecordKind, Spectrum)
