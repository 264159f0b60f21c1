import json
from typing import List, Optional, Sequence, Union

from pydantic import ValidationError

from ragcore.core.errors import ToolArgumentError
from ragcore.schemas.retrieval import HybridSearchParams
from ragcore.schemas.tools import (
    KnowledgeSearchHit,
    KnowledgeSearchInput,
    KnowledgeSearchOutput,
    ToolInfo,
)
from ragcore.services.query_tool import QueryTool
from ragcore.services.retrieval_service import HybridSearchService

TOOL_KNOWLEDGE_SEARCH = "knowledge_search"


class KnowledgeSearchTool:
    """Agent-facing wrapper around hybrid search on one knowledge base."""

    name = TOOL_KNOWLEDGE_SEARCH

    def __init__(self, search_service: HybridSearchService, knowledge_base_id: str):
        self.search_service = search_service
        self.knowledge_base_id = knowledge_base_id

    def tool_info(self) -> ToolInfo:
        return ToolInfo(
            name=self.name,
            description=(
                "Searches the knowledge base for relevant information "
                "using semantic and keyword search."
            ),
            parameters=KnowledgeSearchInput.model_json_schema(),
        )

    async def invoke(self, arguments_json: str) -> KnowledgeSearchOutput:
        try:
            payload = KnowledgeSearchInput.model_validate_json(arguments_json)
        except ValidationError as e:
            raise ToolArgumentError(f"invalid arguments for {self.name}: {e}") from e
        if not payload.query.strip():
            raise ToolArgumentError("query is required")

        top_k = payload.top_k if payload.top_k > 0 else 10
        results = await self.search_service.hybrid_search(
            self.knowledge_base_id,
            HybridSearchParams(query_text=payload.query, match_count=top_k),
        )
        hits = [
            KnowledgeSearchHit(
                content=r.content,
                score=r.score,
                title=r.knowledge_title or None,
                knowledge_id=r.knowledge_id or None,
            )
            for r in results
        ]
        return KnowledgeSearchOutput(query=payload.query, total=len(hits), results=hits)

    def __str__(self) -> str:
        return self.name


Tool = Union[QueryTool, KnowledgeSearchTool]


def build_tools(
    query_tool: QueryTool,
    search_service: Optional[HybridSearchService] = None,
    knowledge_base_id: Optional[str] = None,
    include_search: bool = False,
) -> List[Tool]:
    """
    knowledge_search is added when bound to a knowledge base, or unbound when
    `include_search` is set (enough for describing it, not for invoking it).
    """
    tools: List[Tool] = [query_tool]
    if search_service is not None and (knowledge_base_id or include_search):
        tools.append(KnowledgeSearchTool(search_service, knowledge_base_id or ""))
    return tools


def get_tools_by_name(names: Sequence[str], tools: Sequence[Tool]) -> List[Tool]:
    by_name = {t.name: t for t in tools}
    out = []
    for name in names:
        if name not in by_name:
            raise ValueError(f"tool not found: {name}")
        out.append(by_name[name])
    return out


def list_tool_names(tools: Sequence[Tool]) -> List[str]:
    return [t.name for t in tools]


def encode_arguments(arguments: dict) -> str:
    return json.dumps(arguments, ensure_ascii=False)
