from ragcore.schemas.retrieval import HybridSearchParams
from ragcore.services.query_builder import COSINE_SHIFT, VECTOR_FIELD, ESQueryBuilder


def build(params, vector=None, **kwargs):
    opts = dict(knowledge_base_id="kb-1", vector_threshold=0.7, keyword_threshold=0.1, size=10)
    opts.update(kwargs)
    return ESQueryBuilder().build(params, vector, **opts)


class TestESQueryBuilder:
    def test_keyword_and_vector(self):
        q = build(HybridSearchParams(query_text="install guide"), [0.1, 0.2, 0.3])
        bool_q = q["query"]["bool"]

        assert q["size"] == 10
        assert bool_q["must"] == [{"term": {"knowledge_base_id": "kb-1"}}]
        assert bool_q["minimum_should_match"] == 1
        assert len(bool_q["should"]) == 2

        keyword, vector = bool_q["should"]
        assert keyword["function_score"]["query"] == {
            "match": {"content": {"query": "install guide"}}
        }
        assert keyword["function_score"]["min_score"] == 0.1

        script = vector["script_score"]["script"]
        assert VECTOR_FIELD in script["source"]
        assert script["params"]["query_vector"] == [0.1, 0.2, 0.3]
        assert vector["script_score"]["min_score"] == 0.7 + COSINE_SHIFT

    def test_keyword_only_when_vector_missing(self):
        q = build(HybridSearchParams(query_text="x"), None)
        should = q["query"]["bool"]["should"]
        assert len(should) == 1
        assert "function_score" in should[0]

    def test_vector_only(self):
        q = build(HybridSearchParams(query_text="x", disable_keywords_match=True), [1.0])
        should = q["query"]["bool"]["should"]
        assert len(should) == 1
        assert "script_score" in should[0]

    def test_disabled_vector_ignores_supplied_embedding(self):
        q = build(HybridSearchParams(query_text="x", disable_vector_match=True), [1.0])
        should = q["query"]["bool"]["should"]
        assert ["function_score"] == [next(iter(c)) for c in should]

    def test_knowledge_and_tag_filters(self):
        params = HybridSearchParams(
            query_text="x", knowledge_ids=["d1", "d2"], tag_ids=["t1"]
        )
        must = build(params)["query"]["bool"]["must"]
        assert {"terms": {"knowledge_id": ["d1", "d2"]}} in must
        assert {"terms": {"tag_ids": ["t1"]}} in must

    def test_empty_filters_are_omitted(self):
        params = HybridSearchParams(query_text="x", knowledge_ids=[], tag_ids=[])
        must = build(params)["query"]["bool"]["must"]
        assert must == [{"term": {"knowledge_base_id": "kb-1"}}]

    def test_must_only_query_has_no_minimum_should_match(self):
        params = HybridSearchParams(
            query_text="x", disable_keywords_match=True, disable_vector_match=True
        )
        bool_q = build(params)["query"]["bool"]
        assert bool_q["should"] == []
        assert "minimum_should_match" not in bool_q

    def test_size_and_thresholds_are_passed_through(self):
        q = build(
            HybridSearchParams(query_text="x"),
            [0.5],
            size=3,
            vector_threshold=0.2,
            keyword_threshold=1.5,
        )
        keyword, vector = q["query"]["bool"]["should"]
        assert q["size"] == 3
        assert keyword["function_score"]["min_score"] == 1.5
        assert vector["script_score"]["min_score"] == 0.2 + COSINE_SHIFT
