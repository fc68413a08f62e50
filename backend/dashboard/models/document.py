"""
Document Model - generic storage for tenant metadata addressed by collection path.

    clients/{client_id}                      -> collection_path="clients"
    clients/{client_id}/websites/{site_id}   -> collection_path="clients/{client_id}/websites"
"""
from sqlalchemy import Column, String, DateTime, JSON, UniqueConstraint, Index
from datetime import datetime
import uuid

from dashboard.database import Base


class Document(Base):
    __tablename__ = "documents"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    collection_path = Column(String, nullable=False)
    doc_id = Column(String, nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("collection_path", "doc_id", name="uq_document_path_id"),
        Index("ix_documents_collection_path", "collection_path"),
    )

    def __repr__(self):
        return f"<Document {self.collection_path}/{self.doc_id}>"
