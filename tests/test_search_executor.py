import asyncio
import json

import httpx
import pytest

from ragcore.core.errors import SearchEngineError
from ragcore.services.es_client import ElasticsearchClient, ESResponse
from ragcore.services.hybrid_search_executor import HybridSearchExecutor, hit_to_result


def es_body(*hits):
    return {"took": 1, "hits": {"total": {"value": len(hits)}, "hits": list(hits)}}


class StaticSearcher:
    def __init__(self, response):
        self.response = response
        self.calls = []

    async def search(self, index, query):
        self.calls.append((index, query))
        return self.response


class TestHitDecoding:
    def test_full_hit(self):
        r = hit_to_result(
            {
                "_id": "c1",
                "_score": 3.5,
                "_source": {
                    "content": "hello",
                    "knowledge_id": "d1",
                    "chunk_index": 2,
                    "knowledge_title": "Doc",
                    "start_at": 10,
                    "end_at": 20.0,
                    "seq": 4,
                    "chunk_type": "table",
                    "image_info": '{"url": "x"}',
                    "metadata": {"page": "3", "skip": 1},
                },
            }
        )
        assert r.id == "c1"
        assert r.score == 3.5
        assert r.content == "hello"
        assert r.knowledge_id == "d1"
        assert (r.chunk_index, r.start_at, r.end_at, r.seq) == (2, 10, 20, 4)
        assert r.chunk_type == "table"
        assert r.image_info == '{"url": "x"}'
        assert r.metadata == {"page": "3"}

    def test_document_id_fallback(self):
        r = hit_to_result({"_id": "c1", "_source": {"document_id": "legacy"}})
        assert r.knowledge_id == "legacy"

    def test_wrong_types_decode_to_defaults(self):
        r = hit_to_result(
            {
                "_id": 5,
                "_score": None,
                "_source": {"content": 7, "chunk_index": "two", "seq": True, "metadata": []},
            }
        )
        assert r.id == ""
        assert r.score == 0.0
        assert r.content == ""
        assert r.chunk_index == 0
        assert r.seq == 0
        assert r.chunk_type == "text"
        assert r.image_info is None
        assert r.metadata == {}

    def test_missing_source(self):
        r = hit_to_result({"_id": "c1", "_score": 1})
        assert r.id == "c1"
        assert r.content == ""


class TestHybridSearchExecutor:
    def test_keeps_engine_order_and_truncates(self):
        body = es_body(
            {"_id": "a", "_score": 1.0, "_source": {"content": "A"}},
            {"_id": "b", "_score": 5.0, "_source": {"content": "B"}},
            {"_id": "c", "_score": 3.0, "_source": {"content": "C"}},
        )
        searcher = StaticSearcher(ESResponse(False, body, json.dumps(body)))
        results = asyncio.run(HybridSearchExecutor(searcher).execute("idx", {"q": 1}, 2))

        assert [r.id for r in results] == ["a", "b"]
        assert searcher.calls == [("idx", {"q": 1})]

    def test_missing_hits_means_no_results(self):
        searcher = StaticSearcher(ESResponse(False, {"took": 1}, "{}"))
        assert asyncio.run(HybridSearchExecutor(searcher).execute("idx", {}, 10)) == []

    def test_engine_error_carries_raw_body(self):
        raw = '{"error": {"type": "index_not_found_exception"}}'
        searcher = StaticSearcher(ESResponse(True, json.loads(raw), raw))
        with pytest.raises(SearchEngineError) as exc:
            asyncio.run(HybridSearchExecutor(searcher).execute("idx", {}, 10))
        assert exc.value.raw == raw
        assert "index_not_found_exception" in str(exc.value)

    def test_undecodable_body(self):
        searcher = StaticSearcher(ESResponse(False, None, "<html>"))
        with pytest.raises(SearchEngineError, match="decode"):
            asyncio.run(HybridSearchExecutor(searcher).execute("idx", {}, 10))

    def test_malformed_hits(self):
        searcher = StaticSearcher(ESResponse(False, {"hits": {"hits": "nope"}}, ""))
        with pytest.raises(SearchEngineError):
            asyncio.run(HybridSearchExecutor(searcher).execute("idx", {}, 10))

    def test_unconfigured_client(self):
        with pytest.raises(SearchEngineError, match="not configured"):
            asyncio.run(HybridSearchExecutor(None).execute("idx", {}, 10))


class TestElasticsearchClient:
    def test_posts_query_to_search_endpoint(self):
        seen = {}

        def handler(request: httpx.Request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json=es_body({"_id": "a", "_source": {}}))

        client = ElasticsearchClient(
            "http://es:9200/", username="elastic", password="pw",
            transport=httpx.MockTransport(handler),
        )
        res = asyncio.run(client.search("kb_chunks", {"size": 1}))

        assert seen["url"] == "http://es:9200/kb_chunks/_search"
        assert seen["body"] == {"size": 1}
        assert seen["auth"].startswith("Basic ")
        assert res.is_error is False
        assert res.body["hits"]["hits"][0]["_id"] == "a"

    def test_error_status(self):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(404, json={"error": "no such index"})
        )
        res = asyncio.run(ElasticsearchClient("http://es:9200", transport=transport).search("x", {}))
        assert res.is_error is True
        assert "no such index" in res.raw

    def test_non_json_body(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>"))
        res = asyncio.run(ElasticsearchClient("http://es:9200", transport=transport).search("x", {}))
        assert res.body is None
        assert res.raw == "<html>"

    def test_transport_failure(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = ElasticsearchClient("http://es:9200", transport=httpx.MockTransport(handler))
        with pytest.raises(SearchEngineError, match="refused"):
            asyncio.run(client.search("x", {}))
