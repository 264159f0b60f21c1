from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from jose import jwt, JWTError
from sqlalchemy.orm import Session

from ragcore.core.config import settings
from ragcore.core.db import get_db
from ragcore.services.document_store import SqlDocumentStore
from ragcore.services.embedding_service import EmbeddingService
from ragcore.services.es_client import ElasticsearchClient
from ragcore.services.hybrid_search_executor import HybridSearchExecutor
from ragcore.services.ollama_client import OllamaClient
from ragcore.services.query_tool import QueryTool
from ragcore.services.retrieval_service import HybridSearchService


@dataclass(frozen=True)
class CurrentUser:
    user_id: str
    tenant_id: str


def _token_from_request(request: Request) -> Optional[str]:
    auth = request.headers.get("Authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:].strip()
    return request.cookies.get("access_token")


def get_current_user(request: Request) -> CurrentUser:
    # tokens are issued by the auth service; only the claims are read here
    token = _token_from_request(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authentication token",
        )

    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    user_id = payload.get("sub")
    tenant_id = payload.get("tenant_id")
    if not user_id or not tenant_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )
    return CurrentUser(user_id=str(user_id), tenant_id=str(tenant_id))


def get_ollama_client() -> OllamaClient:
    return OllamaClient(settings.OLLAMA_BASE_URL)


def get_search_service(
    db: Session = Depends(get_db),
    me: CurrentUser = Depends(get_current_user),
    ollama: OllamaClient = Depends(get_ollama_client),
) -> HybridSearchService:
    # built per request; nothing here is shared between requests
    searcher = None
    if settings.ELASTIC_HOST:
        searcher = ElasticsearchClient(
            settings.ELASTIC_HOST,
            username=settings.ELASTIC_USERNAME,
            password=settings.ELASTIC_PASSWORD,
            timeout=settings.ELASTIC_TIMEOUT,
        )
    embedder = EmbeddingService(ollama) if settings.EMBEDDING_ENABLED else None
    return HybridSearchService(
        store=SqlDocumentStore(db, me.tenant_id),
        executor=HybridSearchExecutor(searcher),
        embedder=embedder,
    )


def get_query_tool(
    db: Session = Depends(get_db),
    me: CurrentUser = Depends(get_current_user),
) -> QueryTool:
    return QueryTool(db, me.tenant_id)
