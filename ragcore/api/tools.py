from fastapi import APIRouter, Depends, HTTPException

from ragcore.core.deps import get_query_tool, get_search_service
from ragcore.core.errors import (
    DatabaseQueryError,
    NotFoundError,
    SearchEngineError,
    SQLValidationError,
    ToolArgumentError,
)
from ragcore.schemas.tools import ToolInfo, ToolInvokeRequest, ToolInvokeResponse
from ragcore.services.query_tool import QueryTool
from ragcore.services.retrieval_service import HybridSearchService
from ragcore.services.tools import (
    TOOL_KNOWLEDGE_SEARCH,
    KnowledgeSearchTool,
    build_tools,
    encode_arguments,
    get_tools_by_name,
)

router = APIRouter()


@router.get("/tools", response_model=list[ToolInfo])
def list_tools(
    query_tool: QueryTool = Depends(get_query_tool),
    svc: HybridSearchService = Depends(get_search_service),
):
    # knowledge_search is bound to a knowledge base per call; describe it unbound
    tools = build_tools(query_tool, svc, include_search=True)
    return [t.tool_info() for t in tools]


@router.post("/tools/{name}/invoke", response_model=ToolInvokeResponse)
async def invoke_tool(
    name: str,
    body: ToolInvokeRequest,
    query_tool: QueryTool = Depends(get_query_tool),
    svc: HybridSearchService = Depends(get_search_service),
):
    if name == TOOL_KNOWLEDGE_SEARCH and not body.knowledge_base_id:
        raise HTTPException(400, "knowledge_base_id is required for knowledge_search")

    tools = build_tools(query_tool, svc, knowledge_base_id=body.knowledge_base_id)
    try:
        (tool,) = get_tools_by_name([name], tools)
    except ValueError as e:
        raise HTTPException(404, str(e))

    arguments = encode_arguments(body.arguments)
    try:
        if isinstance(tool, KnowledgeSearchTool):
            output = await tool.invoke(arguments)
        else:
            output = tool.invoke(arguments)
    except (ToolArgumentError, SQLValidationError) as e:
        raise HTTPException(400, str(e))
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    except SearchEngineError as e:
        raise HTTPException(502, f"Search failed: {e}")
    except DatabaseQueryError as e:
        raise HTTPException(500, str(e))

    return ToolInvokeResponse(name=name, output=output)
