import logging
from typing import Any, Dict, List, Optional

from ragcore.core.errors import SearchEngineError
from ragcore.schemas.retrieval import HybridSearchResult
from ragcore.services.es_client import ESSearcher

logger = logging.getLogger(__name__)

CHUNK_INDEX_SUFFIX = "_chunks"


def _as_str(v: Any) -> str:
    return v if isinstance(v, str) else ""


def _as_int(v: Any) -> int:
    # JSON numbers may arrive as floats; bools are not counts
    if isinstance(v, bool):
        return 0
    if isinstance(v, int):
        return v
    if isinstance(v, float) and v.is_integer():
        return int(v)
    return 0


def _as_float(v: Any) -> float:
    if isinstance(v, bool):
        return 0.0
    if isinstance(v, (int, float)):
        return float(v)
    return 0.0


def _as_str_map(v: Any) -> Dict[str, str]:
    if not isinstance(v, dict):
        return {}
    return {str(k): val for k, val in v.items() if isinstance(val, str)}


def hit_to_result(hit: Dict[str, Any]) -> HybridSearchResult:
    source = hit.get("_source")
    if not isinstance(source, dict):
        source = {}

    image_info = source.get("image_info")
    return HybridSearchResult(
        id=_as_str(hit.get("_id")),
        score=_as_float(hit.get("_score")),
        content=_as_str(source.get("content")),
        # the indexer writes document_id; newer documents carry knowledge_id
        knowledge_id=_as_str(source.get("knowledge_id")) or _as_str(source.get("document_id")),
        chunk_index=_as_int(source.get("chunk_index")),
        knowledge_title=_as_str(source.get("knowledge_title")),
        start_at=_as_int(source.get("start_at")),
        end_at=_as_int(source.get("end_at")),
        seq=_as_int(source.get("seq")),
        chunk_type=_as_str(source.get("chunk_type")) or "text",
        image_info=image_info if isinstance(image_info, str) and image_info else None,
        metadata=_as_str_map(source.get("metadata")),
    )


class HybridSearchExecutor:
    def __init__(self, searcher: Optional[ESSearcher]):
        self.searcher = searcher

    async def execute(
        self, index_name: str, query: Dict[str, Any], size: int
    ) -> List[HybridSearchResult]:
        if self.searcher is None:
            raise SearchEngineError("elasticsearch client not configured")

        res = await self.searcher.search(index_name, query)
        if res.is_error:
            raise SearchEngineError(f"elasticsearch error: {res.raw}", raw=res.raw)

        body = res.body
        if not isinstance(body, dict):
            raise SearchEngineError("failed to decode search response", raw=res.raw)

        hits_obj = body.get("hits") or {}
        hits = hits_obj.get("hits", []) if isinstance(hits_obj, dict) else None
        if not isinstance(hits, list):
            raise SearchEngineError("failed to decode search response", raw=res.raw)

        # engine order is already relevance order
        results = [hit_to_result(h) for h in hits if isinstance(h, dict)]
        logger.debug("search returned hits", extra={"index": index_name, "hits": len(results)})
        return results[:size]
