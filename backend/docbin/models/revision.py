# backend/docbin/models/revision.py
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from ..database import Base

class Revision(Base):
    __tablename__ = "revisions"
    __table_args__ = (
        UniqueConstraint("document_key", "version", name="uq_revision_document_version"),
    )

    id = Column(Integer, primary_key=True, index=True)
    document_key = Column(String(32), ForeignKey("documents.key", ondelete="CASCADE"), nullable=False, index=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

    document = relationship("Document", back_populates="revisions")
    files = relationship(
        "File",
        back_populates="revision",
        cascade="all, delete-orphan",
        order_by="File.order_index"
    )


class File(Base):
    __tablename__ = "files"
    __table_args__ = (
        UniqueConstraint("revision_id", "name", name="uq_file_revision_name"),
    )

    id = Column(Integer, primary_key=True, index=True)
    revision_id = Column(Integer, ForeignKey("revisions.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    language = Column(String(64), nullable=False, default="auto")
    order_index = Column(Integer, nullable=False, default=0)

    revision = relationship("Revision", back_populates="files")
