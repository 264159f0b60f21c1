import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ragcore.core.config import settings
from ragcore.schemas.retrieval import HybridSearchParams, HybridSearchResult
from ragcore.services.document_store import DocumentStore
from ragcore.services.embedding_service import EmbeddingProvider
from ragcore.services.hybrid_search_executor import CHUNK_INDEX_SUFFIX, HybridSearchExecutor
from ragcore.services.query_builder import ESQueryBuilder
from ragcore.services.rerank_service import Reranker
from ragcore.services.result_enricher import ResultEnricher

logger = logging.getLogger(__name__)

DEGRADED_VECTOR = "vector_unavailable"
DEGRADED_ENRICHMENT = "enrichment_failed"
DEGRADED_NO_MATCHERS = "matching_disabled"


@dataclass
class SearchDefaults:
    match_count: int = 10
    max_match_count: int = 100
    vector_threshold: float = 0.7
    keyword_threshold: float = 0.1

    @classmethod
    def from_settings(cls) -> "SearchDefaults":
        return cls(
            match_count=settings.SEARCH_DEFAULT_MATCH_COUNT,
            max_match_count=settings.SEARCH_MAX_MATCH_COUNT,
            vector_threshold=settings.SEARCH_DEFAULT_VECTOR_THRESHOLD,
            keyword_threshold=settings.SEARCH_DEFAULT_KEYWORD_THRESHOLD,
        )


@dataclass
class ResolvedSearch:
    match_count: int
    vector_threshold: float
    keyword_threshold: float


@dataclass
class HybridSearchOutcome:
    results: List[HybridSearchResult]
    degraded_reasons: List[str] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.degraded_reasons)


class HybridSearchService:
    """
    Hybrid keyword + vector search over one knowledge base.

    Only a missing knowledge base and search-engine failures abort a call.
    Embedding and metadata failures degrade the result (keyword-only,
    unenriched) and are reported through `HybridSearchOutcome.degraded_reasons`.
    """

    def __init__(
        self,
        store: DocumentStore,
        executor: HybridSearchExecutor,
        embedder: Optional[EmbeddingProvider] = None,
        builder: Optional[ESQueryBuilder] = None,
        defaults: Optional[SearchDefaults] = None,
    ):
        self.store = store
        self.executor = executor
        self.embedder = embedder
        self.builder = builder or ESQueryBuilder()
        self.defaults = defaults or SearchDefaults.from_settings()

    def resolve(self, params: HybridSearchParams) -> ResolvedSearch:
        d = self.defaults
        match_count = params.match_count if params.match_count > 0 else d.match_count
        return ResolvedSearch(
            match_count=min(match_count, d.max_match_count),
            vector_threshold=(
                params.vector_threshold if params.vector_threshold > 0 else d.vector_threshold
            ),
            keyword_threshold=(
                params.keyword_threshold if params.keyword_threshold > 0 else d.keyword_threshold
            ),
        )

    async def hybrid_search(
        self, kb_id: str, params: HybridSearchParams
    ) -> List[HybridSearchResult]:
        outcome = await self.run(kb_id, params)
        return outcome.results

    async def run(
        self,
        kb_id: str,
        params: HybridSearchParams,
        reranker: Optional[Reranker] = None,
    ) -> HybridSearchOutcome:
        kb = self.store.get_knowledge_base(kb_id)
        resolved = self.resolve(params)

        if params.disable_keywords_match and params.disable_vector_match:
            logger.warning(
                "both keyword and vector matching disabled; returning no results",
                extra={"kb_id": kb_id},
            )
            return HybridSearchOutcome(results=[], degraded_reasons=[DEGRADED_NO_MATCHERS])

        degraded: List[str] = []
        query_vector = None
        if not params.disable_vector_match:
            query_vector = await self._embed_query(kb_id, params.query_text)
            if query_vector is None:
                degraded.append(DEGRADED_VECTOR)

        query = self.builder.build(
            params,
            query_vector,
            knowledge_base_id=kb.id,
            vector_threshold=resolved.vector_threshold,
            keyword_threshold=resolved.keyword_threshold,
            size=resolved.match_count,
        )

        index_name = (kb.index_name or settings.ELASTIC_INDEX_PREFIX) + CHUNK_INDEX_SUFFIX
        results = await self.executor.execute(index_name, query, resolved.match_count)

        if not ResultEnricher(self.store).enrich(results):
            degraded.append(DEGRADED_ENRICHMENT)

        if reranker is not None and results:
            results = await reranker.rerank(params.query_text, results)

        logger.info(
            "hybrid search finished",
            extra={
                "kb_id": kb_id,
                "results": len(results),
                "match_count": resolved.match_count,
                "degraded": ",".join(degraded),
            },
        )
        return HybridSearchOutcome(results=results, degraded_reasons=degraded)

    async def _embed_query(self, kb_id: str, text: str) -> Optional[List[float]]:
        if self.embedder is None:
            logger.warning(
                "no embedding provider configured; keyword-only search",
                extra={"kb_id": kb_id, "degraded": DEGRADED_VECTOR},
            )
            return None
        try:
            vectors = await self.embedder.embed_strings([text])
        except Exception as e:  # any provider failure means keyword-only
            logger.warning(
                "query embedding failed; keyword-only search",
                extra={"kb_id": kb_id, "degraded": DEGRADED_VECTOR, "reason": str(e)},
            )
            return None
        if not vectors or not vectors[0]:
            logger.warning(
                "embedding provider returned no vector; keyword-only search",
                extra={"kb_id": kb_id, "degraded": DEGRADED_VECTOR},
            )
            return None
        return vectors[0]
