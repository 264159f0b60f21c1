import logging
from typing import List

from ragcore.schemas.retrieval import HybridSearchResult
from ragcore.services.document_store import DocumentStore

logger = logging.getLogger(__name__)


class ResultEnricher:
    def __init__(self, store: DocumentStore):
        self.store = store

    def enrich(self, results: List[HybridSearchResult]) -> bool:
        """
        Fill filename/title/source of every result from its owning document.

        One batch lookup over the distinct document IDs. Results whose
        document is missing keep blank metadata. Returns False when the
        lookup itself failed and nothing could be enriched.
        """
        doc_ids = {r.knowledge_id for r in results if r.knowledge_id}
        if not doc_ids:
            return True

        try:
            docs = self.store.get_documents_by_ids(doc_ids)
        except Exception as e:  # any store failure leaves results unenriched
            logger.warning(
                "document metadata lookup failed; returning unenriched results",
                extra={"degraded": "enrichment", "documents": len(doc_ids), "reason": str(e)},
            )
            return False

        missing = 0
        for r in results:
            doc = docs.get(r.knowledge_id)
            if doc is None:
                if r.knowledge_id:
                    missing += 1
                continue
            r.knowledge_filename = doc.filename
            r.knowledge_source = doc.content_type
            r.knowledge_title = doc.title or doc.filename

        if missing:
            logger.info("results reference unknown documents", extra={"missing": missing})
        return True
