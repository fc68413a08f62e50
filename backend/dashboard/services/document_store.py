"""
Document Store
Collection/sub-collection addressed key-value storage for tenant metadata
(clients, websites, users, invites, annotations, targets), backed by the
``documents`` table.

Paths are built from alternating collection/document segments:

    store.get_document("clients/acme/websites", "harlequin")
    store.list_documents(collection_path("clients", "acme", "websites"))
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
import uuid as uuid_lib

from sqlalchemy.orm import Session

from dashboard.models.document import Document

logger = logging.getLogger(__name__)

DELETE_BATCH_SIZE = 500

CLIENTS = "clients"
# Sub-collections removed along with their client
CLIENT_SUBCOLLECTIONS = ("websites", "targets", "annotations", "customLinks")


def collection_path(*segments: str) -> str:
    """Join path segments, e.g. ("clients", "acme", "websites") -> "clients/acme/websites"."""
    if not segments or len(segments) % 2 == 0:
        raise ValueError(f"A collection path needs an odd number of segments: {segments!r}")
    for segment in segments:
        if not segment or "/" in segment:
            raise ValueError(f"Invalid path segment: {segment!r}")
    return "/".join(segments)


def _now_iso() -> str:
    return datetime.utcnow().isoformat() + "Z"


class DocumentNotFoundError(LookupError):
    """Raised when updating a document that does not exist."""


class DocumentStore:
    """Document access on top of a SQLAlchemy session.

    Returned documents are plain dicts with the document id under ``"id"``.
    """

    def __init__(self, db: Session):
        self.db = db

    def _row(self, path: str, doc_id: str) -> Optional[Document]:
        return self.db.query(Document).filter(
            Document.collection_path == path,
            Document.doc_id == doc_id,
        ).first()

    @staticmethod
    def _to_dict(row: Document) -> Dict[str, Any]:
        return {**(row.data or {}), "id": row.doc_id}

    def get_document(self, path: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Return the document or None when it does not exist."""
        row = self._row(path, doc_id)
        return self._to_dict(row) if row else None

    def list_documents(self, path: str, order_by: Optional[str] = None, descending: bool = False) -> List[Dict[str, Any]]:
        rows = self.db.query(Document).filter(
            Document.collection_path == path
        ).order_by(Document.created_at, Document.doc_id).all()
        docs = [self._to_dict(r) for r in rows]
        if order_by:
            docs.sort(key=lambda d: (d.get(order_by) is None, d.get(order_by)), reverse=descending)
        return docs

    def find_documents(self, path: str, field: str, value: Any) -> List[Dict[str, Any]]:
        """Documents in ``path`` whose top-level ``field`` equals ``value``."""
        return [doc for doc in self.list_documents(path) if doc.get(field) == value]

    def set_document(self, path: str, doc_id: Optional[str], data: Dict[str, Any]) -> Dict[str, Any]:
        """Create or fully replace a document. A missing id is generated."""
        doc_id = doc_id or uuid_lib.uuid4().hex
        payload = {k: v for k, v in data.items() if k != "id"}
        now = _now_iso()
        payload.setdefault("createdAt", now)
        payload["updatedAt"] = now

        row = self._row(path, doc_id)
        if row is None:
            row = Document(collection_path=path, doc_id=doc_id, data=payload)
            self.db.add(row)
        else:
            payload["createdAt"] = (row.data or {}).get("createdAt", payload["createdAt"])
            row.data = payload
        self.db.commit()
        self.db.refresh(row)
        return self._to_dict(row)

    def update_document(self, path: str, doc_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Merge ``updates`` into an existing document."""
        row = self._row(path, doc_id)
        if row is None:
            raise DocumentNotFoundError(f"{path}/{doc_id}")

        merged = dict(row.data or {})
        merged.update({k: v for k, v in updates.items() if k != "id"})
        merged["updatedAt"] = _now_iso()
        row.data = merged
        self.db.commit()
        self.db.refresh(row)
        return self._to_dict(row)

    def delete_document(self, path: str, doc_id: str) -> bool:
        row = self._row(path, doc_id)
        if row is None:
            return False
        self.db.delete(row)
        self.db.commit()
        return True

    def delete_collection(self, path: str, batch_size: int = DELETE_BATCH_SIZE) -> int:
        """Delete every document in a collection, committing one batch at a time."""
        deleted = 0
        while True:
            ids = [r[0] for r in self.db.query(Document.id).filter(
                Document.collection_path == path
            ).limit(batch_size).all()]
            if not ids:
                break
            self.db.query(Document).filter(Document.id.in_(ids)).delete(synchronize_session=False)
            self.db.commit()
            deleted += len(ids)
        if deleted:
            logger.info("Deleted %d documents from %s", deleted, path)
        return deleted
