# backend/docbin/models/document.py
from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import relationship
from ..database import Base

class Document(Base):
    __tablename__ = "documents"

    key = Column(String(32), primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True, index=True)

    revisions = relationship(
        "Revision",
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="Revision.version"
    )
    webhooks = relationship("Webhook", back_populates="document", cascade="all, delete-orphan")
