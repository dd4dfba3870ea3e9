"""
Question Enrichment

Computes derived fields (embedding, key terms) for a question after it has
been created and attaches them to the stored record. Runs off the main
triage path; failures are logged and leave the fields empty.
"""

import asyncio
import logging
from typing import List, Optional

from ..common.embedding_service import EmbeddingService
from ..common.errors import EmbeddingError, StoreError
from ..common.knowledge_store import KnowledgeStore
from ..common.llm_client import LLMClient
from ..common.schemas import Question
from .prompts import key_terms_prompt

logger = logging.getLogger("faqtriage.triage.enrichment")


class QuestionEnricher:
    """Attaches embeddings and LLM-extracted key terms to new questions."""

    def __init__(
        self,
        store: KnowledgeStore,
        embedding_service: Optional[EmbeddingService] = None,
        llm_client: Optional[LLMClient] = None,
        timeout: float = 30.0,
    ):
        self._store = store
        self._embedding = embedding_service
        self._llm = llm_client
        self._timeout = timeout

    async def _embed(self, text: str) -> Optional[List[float]]:
        if self._embedding is None:
            return None
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._embedding.embed_single, text),
                timeout=self._timeout,
            )
        except (EmbeddingError, ValueError, asyncio.TimeoutError) as e:
            logger.warning("Could not embed question: %s", e)
            return None

    async def _key_terms(self, text: str) -> Optional[str]:
        if self._llm is None or not self._llm.is_available:
            return None
        try:
            terms = await asyncio.wait_for(
                asyncio.to_thread(self._llm.generate, key_terms_prompt(text), max_tokens=128, timeout=self._timeout),
                timeout=self._timeout,
            )
        except Exception as e:
            logger.warning("Could not extract key terms: %s", e)
            return None
        return " ".join(terms.split()) or None

    async def enrich(self, question: Question) -> Optional[Question]:
        """
        Fill in whichever derived fields are missing.

        Returns:
            The updated question, or None if nothing was attached
        """
        embedding = None if question.embedding is not None else await self._embed(question.content)
        key_terms = None if question.key_terms is not None else await self._key_terms(question.content)

        if embedding is None and key_terms is None:
            return None

        try:
            updated = await asyncio.to_thread(
                self._store.attach_derived_fields,
                question.id,
                embedding=embedding,
                key_terms=key_terms,
            )
        except (StoreError, ValueError) as e:
            logger.warning("Could not attach derived fields to question %s: %s", question.id, e)
            return None

        logger.debug("Enriched question %s (embedding=%s, key_terms=%s)",
                     question.id, embedding is not None, key_terms is not None)
        return updated
