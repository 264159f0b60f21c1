from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any


class ToolInfo(BaseModel):
    name: str
    description: str
    # JSON schema of the arguments object
    parameters: Dict[str, Any]


class DatabaseQueryInput(BaseModel):
    sql: str = Field(
        ...,
        description="The SELECT SQL query to execute. Only SELECT queries are allowed.",
    )


class KnowledgeSearchInput(BaseModel):
    query: str = Field(..., description="Search query text")
    top_k: int = Field(10, description="Maximum number of chunks to return")


class KnowledgeSearchHit(BaseModel):
    content: str
    score: float
    title: Optional[str] = None
    knowledge_id: Optional[str] = None


class KnowledgeSearchOutput(BaseModel):
    query: str
    total: int
    results: List[KnowledgeSearchHit]


class ToolInvokeRequest(BaseModel):
    arguments: Dict[str, Any] = Field(default_factory=dict)
    # required by knowledge_search only
    knowledge_base_id: Optional[str] = None


class ToolInvokeResponse(BaseModel):
    name: str
    output: Any
