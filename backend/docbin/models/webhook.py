# backend/docbin/models/webhook.py
from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from ..database import Base

class Webhook(Base):
    __tablename__ = "webhooks"

    id = Column(String(32), primary_key=True, index=True)
    document_key = Column(String(32), ForeignKey("documents.key", ondelete="CASCADE"), nullable=False, index=True)
    url = Column(String(2048), nullable=False)
    secret = Column(String(255), nullable=False)
    events = Column(String(64), nullable=False)  # comma separated
    created_at = Column(DateTime(timezone=True), nullable=False)

    document = relationship("Document", back_populates="webhooks")

    @property
    def event_list(self):
        return [event for event in self.events.split(",") if event]
