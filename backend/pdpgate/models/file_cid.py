"""
Filename to root CID mapping
"""
from sqlalchemy import Column, DateTime, Index, Integer, Text

from pdpgate.core.database import Base
from pdpgate.utils.datetime_utils import utc_now


class FileCid(Base):
    """One row per successfully bound upload; append-only"""
    __tablename__ = "file_cids"

    id = Column(Integer, primary_key=True, autoincrement=True)
    filename = Column(Text, nullable=False)
    cid = Column(Text, nullable=False)
    uploaded_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    __table_args__ = (
        Index("idx_file_cids_filename", "filename"),
        Index("idx_file_cids_cid", "cid"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "filename": self.filename,
            "cid": self.cid,
            "uploaded_at": self.uploaded_at,
        }

    def __repr__(self):
        return f"<FileCid(id={self.id}, filename={self.filename}, cid={self.cid})>"
