"""
Post-retrieval reranking.

Score, diversity (MMR), LLM and weighted combinations of those. Every
reranker returns a new list and leaves the input untouched.
"""

import logging
import re
from typing import Dict, List, Optional, Protocol, Tuple

import httpx

from ragcore.schemas.retrieval import HybridSearchResult
from ragcore.services.ollama_client import OllamaClient

logger = logging.getLogger(__name__)

RERANKER_NAMES = ("score", "diversity", "llm", "combined")

_WORD_RE = re.compile(r"[A-Za-z0-9]+")
_NUMBER_RE = re.compile(r"\d+")

LLM_RERANK_PROMPT = """You are a retrieval reranking expert. Order the retrieved documents by relevance to the query.

Query: {query}

Retrieved documents:
{docs}

Output the document numbers from most to least relevant, comma separated (for example: 1,3,2,4,5).

Ranking:"""


class Reranker(Protocol):
    async def rerank(
        self, query: str, results: List[HybridSearchResult]
    ) -> List[HybridSearchResult]: ...


def content_similarity(a: str, b: str) -> float:
    """Jaccard overlap of alphanumeric words."""
    words_a = set(_WORD_RE.findall(a))
    words_b = set(_WORD_RE.findall(b))
    if not words_a or not words_b:
        return 0.0
    return len(words_a & words_b) / len(words_a | words_b)


class ScoreReranker:
    async def rerank(self, query, results):
        # sorted() is stable, ties keep engine order
        return sorted(results, key=lambda r: r.score, reverse=True)


class DiversityReranker:
    def __init__(self, lambda_: float = 0.5, top_n: int = 5):
        if lambda_ <= 0:
            lambda_ = 0.5
        self.lambda_ = min(lambda_, 1.0)
        self.top_n = top_n if top_n > 0 else 5

    async def rerank(self, query, results):
        if len(results) <= 1:
            return list(results)

        remaining = list(results)
        selected: List[HybridSearchResult] = []
        while remaining and len(selected) < self.top_n:
            best_idx, best_score = 0, float("-inf")
            for i, cand in enumerate(remaining):
                relevance = min(cand.score, 1.0)
                max_sim = max(
                    (content_similarity(cand.content, s.content) for s in selected),
                    default=0.0,
                )
                mmr = self.lambda_ * relevance - (1 - self.lambda_) * max_sim
                if mmr > best_score:
                    best_idx, best_score = i, mmr
            selected.append(remaining.pop(best_idx))
        return selected


class LLMReranker:
    def __init__(self, chat: OllamaClient, model: str, top_n: int = 5):
        self.chat = chat
        self.model = model
        self.top_n = top_n if top_n > 0 else 5

    def _describe(self, results: List[HybridSearchResult]) -> str:
        lines = []
        for i, r in enumerate(results, 1):
            content = r.content
            if len(content) > 200:
                content = content[:200] + "..."
            lines.append(f"{i}. {content}")
        return "\n".join(lines)

    def parse_ranking(self, output: str, count: int) -> List[int]:
        indices: List[int] = []
        for num in _NUMBER_RE.findall(output):
            idx = int(num) - 1
            if 0 <= idx < count and idx not in indices:
                indices.append(idx)
        return indices

    async def rerank(self, query, results):
        # a single result has no order to change
        if len(results) <= 1:
            return list(results)

        prompt = LLM_RERANK_PROMPT.format(query=query, docs=self._describe(results))
        messages = [
            {"role": "system", "content": "You are a precise retrieval reranking assistant."},
            {"role": "user", "content": prompt},
        ]
        try:
            answer = await self.chat.chat(model=self.model, messages=messages)
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.warning("llm rerank failed; keeping engine order", extra={"reason": str(e)})
            return list(results[: self.top_n])

        indices = self.parse_ranking(answer, len(results))
        if not indices:
            return list(results[: self.top_n])
        return [results[i] for i in indices[: self.top_n]]


class CoReranker:
    """Weighted reciprocal-rank vote across several rerankers."""

    def __init__(self, top_n: int = 5):
        self.top_n = top_n if top_n > 0 else 5
        self.members: List[Tuple[str, Reranker, float]] = []

    def add(self, name: str, reranker: Reranker, weight: float) -> "CoReranker":
        self.members.append((name, reranker, weight))
        return self

    async def rerank(self, query, results):
        if len(results) <= 1 or not self.members:
            return list(results)

        scores: Dict[str, float] = {r.id: 0.0 for r in results}
        by_id = {r.id: r for r in results}
        for name, reranker, weight in self.members:
            try:
                ranked = await reranker.rerank(query, results)
            except Exception as e:
                logger.warning("reranker failed", extra={"reranker": name, "reason": str(e)})
                continue
            for rank, r in enumerate(ranked):
                scores[r.id] += weight / (rank + 1)

        order = sorted(scores, key=lambda rid: scores[rid], reverse=True)
        return [by_id[rid] for rid in order[: self.top_n]]


def build_reranker(
    name: str, chat: Optional[OllamaClient] = None, model: str = "", top_n: int = 5
) -> Reranker:
    if name == "score":
        return ScoreReranker()
    if name == "diversity":
        return DiversityReranker(0.5, top_n)
    if name == "llm":
        if chat is None:
            raise ValueError("llm reranker requires a chat client")
        return LLMReranker(chat, model, top_n)
    if name == "combined":
        co = CoReranker(top_n).add("score", ScoreReranker(), 1.0)
        if chat is not None:
            co.add("llm", LLMReranker(chat, model, top_n * 2), 2.0)
        return co.add("diversity", DiversityReranker(0.3, top_n * 2), 1.5)
    raise ValueError(f"unknown reranker: {name}")
