import logging
from typing import Any, Dict, List, Optional

from ragcore.schemas.retrieval import HybridSearchParams

logger = logging.getLogger(__name__)

CONTENT_FIELD = "content"
VECTOR_FIELD = "content_vector"

# cosineSimilarity is in [-1, 1]; script_score must not go negative
COSINE_SHIFT = 1.0


class ESQueryBuilder:
    """Builds the bool query for a hybrid (BM25 + dense vector) chunk search."""

    def keyword_clause(self, query_text: str, keyword_threshold: float) -> Dict[str, Any]:
        return {
            "function_score": {
                "query": {"match": {CONTENT_FIELD: {"query": query_text}}},
                "min_score": keyword_threshold,
            }
        }

    def vector_clause(self, query_vector: List[float], vector_threshold: float) -> Dict[str, Any]:
        return {
            "script_score": {
                "query": {"match_all": {}},
                "script": {
                    "source": f"cosineSimilarity(params.query_vector, '{VECTOR_FIELD}') + {COSINE_SHIFT}",
                    "params": {"query_vector": query_vector},
                },
                "min_score": vector_threshold + COSINE_SHIFT,
            }
        }

    def build(
        self,
        params: HybridSearchParams,
        query_vector: Optional[List[float]],
        *,
        knowledge_base_id: str,
        vector_threshold: float,
        keyword_threshold: float,
        size: int,
    ) -> Dict[str, Any]:
        must: List[Dict[str, Any]] = []
        should: List[Dict[str, Any]] = []

        if not params.disable_keywords_match:
            should.append(self.keyword_clause(params.query_text, keyword_threshold))

        if not params.disable_vector_match and query_vector:
            should.append(self.vector_clause(query_vector, vector_threshold))

        must.append({"term": {"knowledge_base_id": knowledge_base_id}})

        if params.knowledge_ids:
            must.append({"terms": {"knowledge_id": list(params.knowledge_ids)}})

        if params.tag_ids:
            must.append({"terms": {"tag_ids": list(params.tag_ids)}})

        bool_query: Dict[str, Any] = {"must": must, "should": should}
        if should:
            bool_query["minimum_should_match"] = 1
        else:
            # must-only: matches every chunk of the knowledge base
            logger.warning(
                "hybrid query has no scoring clause; results are unfiltered",
                extra={"kb_id": knowledge_base_id},
            )

        return {"size": size, "query": {"bool": bool_query}}
