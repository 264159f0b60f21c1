from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ragcore.core.config import settings
from ragcore.core.deps import get_ollama_client, get_search_service
from ragcore.core.errors import NotFoundError, SearchEngineError
from ragcore.schemas.retrieval import HybridSearchParams, HybridSearchResponse
from ragcore.services.ollama_client import OllamaClient
from ragcore.services.rerank_service import RERANKER_NAMES, build_reranker
from ragcore.services.retrieval_service import HybridSearchService

router = APIRouter()


@router.post(
    "/knowledge-bases/{kb_id}/hybrid-search", response_model=HybridSearchResponse
)
async def hybrid_search(
    kb_id: str,
    payload: HybridSearchParams,
    rerank: Optional[str] = Query(None, description="score | diversity | llm | combined"),
    rerank_top_n: Optional[int] = Query(
        None, ge=1, description="results kept after reranking"
    ),
    svc: HybridSearchService = Depends(get_search_service),
    ollama: OllamaClient = Depends(get_ollama_client),
):
    reranker = None
    if rerank:
        if rerank not in RERANKER_NAMES:
            raise HTTPException(400, f"unknown reranker: {rerank}")
        # never keep more than the search itself returns
        match_count = svc.resolve(payload).match_count
        top_n = min(rerank_top_n or settings.RERANK_TOP_N, match_count)
        try:
            reranker = build_reranker(
                rerank, chat=ollama, model=settings.DEFAULT_CHAT_MODEL, top_n=top_n
            )
        except ValueError as e:
            raise HTTPException(400, str(e))

    try:
        outcome = await svc.run(kb_id, payload, reranker=reranker)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    except SearchEngineError as e:
        raise HTTPException(502, f"Search failed: {e}")

    return HybridSearchResponse(
        knowledge_base_id=kb_id,
        query_text=payload.query_text,
        results=outcome.results,
        degraded=outcome.degraded,
        degraded_reasons=outcome.degraded_reasons,
        reranker=rerank,
    )
