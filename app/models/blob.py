from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, LargeBinary, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from ..database import Base

class StoredBlob(Base):
    """File document of the chunked binary store."""
    __tablename__ = "stored_blobs"

    id = Column(String(32), primary_key=True)
    bucket = Column(String, nullable=False, index=True)
    filename = Column(String, nullable=False, index=True)
    length = Column(Integer, nullable=False)
    chunk_size = Column(Integer, nullable=False)
    content_type = Column(String, nullable=True)
    meta = Column("metadata", JSON, nullable=False, default=dict)
    upload_date = Column(DateTime, default=datetime.utcnow, index=True)

    chunks = relationship(
        "BlobChunk",
        back_populates="blob",
        cascade="all, delete-orphan",
        order_by="BlobChunk.n"
    )

    @classmethod
    def meta_text(cls, key: str):
        return cls.meta[key].as_string()

    @classmethod
    def meta_int(cls, key: str):
        return cls.meta[key].as_integer()

    @classmethod
    def meta_bool(cls, key: str):
        return cls.meta[key].as_boolean()

class BlobChunk(Base):
    __tablename__ = "blob_chunks"
    __table_args__ = (UniqueConstraint("blob_id", "n", name="uq_blob_chunk_n"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    blob_id = Column(String(32), ForeignKey("stored_blobs.id", ondelete="CASCADE"), nullable=False, index=True)
    n = Column(Integer, nullable=False)
    data = Column(LargeBinary, nullable=False)

    blob = relationship("StoredBlob", back_populates="chunks")
