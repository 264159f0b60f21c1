from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict


class HybridSearchParams(BaseModel):
    query_text: str = Field(..., min_length=1)

    # zero or negative means "use the service default"
    vector_threshold: float = 0.7
    keyword_threshold: float = 0.1
    match_count: int = 10

    disable_keywords_match: bool = False
    disable_vector_match: bool = False

    knowledge_ids: Optional[List[str]] = None
    tag_ids: Optional[List[str]] = None

    @field_validator("query_text")
    @classmethod
    def _query_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("query_text must not be empty")
        return v


class HybridSearchResult(BaseModel):
    id: str = ""
    content: str = ""
    knowledge_id: str = ""
    chunk_index: int = 0
    knowledge_title: str = ""
    start_at: int = 0
    end_at: int = 0
    seq: int = 0
    # engine-native relevance, not normalized across keyword and vector scoring
    score: float = 0.0
    chunk_type: str = "text"
    image_info: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)

    # filled in by enrichment
    knowledge_filename: str = ""
    knowledge_source: str = ""


class HybridSearchResponse(BaseModel):
    knowledge_base_id: str
    query_text: str
    results: List[HybridSearchResult]
    degraded: bool = False
    degraded_reasons: List[str] = Field(default_factory=list)
    reranker: Optional[str] = None
