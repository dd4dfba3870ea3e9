"""Tests for QuestionEnricher."""

from unittest.mock import Mock

import pytest

from faqtriage.common.errors import EmbeddingError
from faqtriage.triage.enrichment import QuestionEnricher


def _llm(reply="hashmap, hash table", available=True):
    llm = Mock()
    llm.is_available = available
    llm.generate = Mock(return_value=reply)
    return llm


def _embedder(vector=None, error=None):
    service = Mock()
    service.embed_single = Mock(return_value=vector, side_effect=error)
    return service


class TestQuestionEnricher:
    @pytest.mark.asyncio
    async def test_attaches_embedding_and_key_terms(self, store, add_question):
        question = add_question("what is a hashmap?", "m1")
        enricher = QuestionEnricher(store, embedding_service=_embedder([0.1, 0.9]), llm_client=_llm())

        updated = await enricher.enrich(question)

        assert updated.embedding == [0.1, 0.9]
        assert updated.key_terms == "hashmap, hash table"
        assert store.list_all_questions()[0].key_terms == "hashmap, hash table"

    @pytest.mark.asyncio
    async def test_existing_embedding_not_recomputed(self, store, add_question):
        question = add_question("what is a hashmap?", "m1", embedding=[0.3, 0.3])
        embedder = _embedder([0.1, 0.9])
        enricher = QuestionEnricher(store, embedding_service=embedder, llm_client=_llm())

        updated = await enricher.enrich(question)

        embedder.embed_single.assert_not_called()
        assert updated.embedding == [0.3, 0.3]

    @pytest.mark.asyncio
    async def test_failures_leave_fields_empty(self, store, add_question):
        question = add_question("what is a hashmap?", "m1")
        llm = _llm()
        llm.generate.side_effect = RuntimeError("quota")
        enricher = QuestionEnricher(
            store,
            embedding_service=_embedder(error=EmbeddingError("no model")),
            llm_client=llm,
        )

        assert await enricher.enrich(question) is None
        stored = store.list_all_questions()[0]
        assert stored.embedding is None
        assert stored.key_terms is None

    @pytest.mark.asyncio
    async def test_dimension_mismatch_logged_not_raised(self, store, add_question):
        add_question("first", "m1", embedding=[0.1, 0.2, 0.3])
        question = add_question("second", "m2")
        enricher = QuestionEnricher(store, embedding_service=_embedder([0.5, 0.5]))

        assert await enricher.enrich(question) is None

    @pytest.mark.asyncio
    async def test_nothing_configured(self, store, add_question):
        question = add_question("what is a hashmap?", "m1")
        assert await QuestionEnricher(store).enrich(question) is None
