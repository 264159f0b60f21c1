from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from ragcore.core.errors import NotFoundError
from ragcore.models.Models import Knowledge, KnowledgeBase


@dataclass(frozen=True)
class DocumentMetadata:
    id: str
    filename: str
    title: str
    content_type: str


class DocumentStore(Protocol):
    def get_knowledge_base(self, kb_id: str) -> KnowledgeBase: ...

    def get_document_by_id(self, doc_id: str) -> DocumentMetadata: ...

    def get_documents_by_ids(self, doc_ids: Iterable[str]) -> Dict[str, DocumentMetadata]: ...


def _to_metadata(doc: Knowledge) -> DocumentMetadata:
    return DocumentMetadata(
        id=doc.id,
        filename=doc.file_name or "",
        title=doc.title or "",
        content_type=doc.content_type or doc.file_type or "",
    )


class SqlDocumentStore:
    """Tenant-scoped read access to knowledge bases and their documents."""

    def __init__(self, db: Session, tenant_id: str):
        self.db = db
        self.tenant_id = tenant_id

    def get_knowledge_base(self, kb_id: str) -> KnowledgeBase:
        kb: Optional[KnowledgeBase] = (
            self.db.query(KnowledgeBase)
            .filter(KnowledgeBase.id == kb_id, KnowledgeBase.tenant_id == self.tenant_id)
            .first()
        )
        if kb is None:
            raise NotFoundError("knowledge base", kb_id)
        return kb

    def get_document_by_id(self, doc_id: str) -> DocumentMetadata:
        doc = (
            self.db.query(Knowledge)
            .filter(Knowledge.id == doc_id, Knowledge.tenant_id == self.tenant_id)
            .first()
        )
        if doc is None:
            raise NotFoundError("document", doc_id)
        return _to_metadata(doc)

    def get_documents_by_ids(self, doc_ids: Iterable[str]) -> Dict[str, DocumentMetadata]:
        ids = sorted(set(doc_ids))
        if not ids:
            return {}
        rows = self.db.scalars(
            select(Knowledge).where(
                Knowledge.id.in_(ids), Knowledge.tenant_id == self.tenant_id
            )
        ).all()
        return {r.id: _to_metadata(r) for r in rows}
