"""
Knowledge Store

Append/read interface for Question, Thread and Answer records plus an
in-memory implementation. Calls are blocking; async callers run them in a
worker thread.

Uniqueness rules:
- Question.source_message_id is unique across questions
- Thread.external_thread_id is unique across threads
- (Answer.source_message_id, Answer.question_id) is unique across answers;
  one message may answer several questions
"""

import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from .errors import DuplicateRecordError, StoreError
from .schemas import Answer, Question, Thread, utcnow


class KnowledgeStore(ABC):
    """Abstract base class for knowledge stores."""

    @abstractmethod
    def create_question_with_thread(
        self,
        *,
        content: str,
        author_id: str,
        source_message_id: str,
        external_thread_id: str,
        container_id: str,
        parent_channel_id: str,
        thread_url: Optional[str] = None,
        embedding: Optional[List[float]] = None,
        key_terms: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> Question:
        """Create a Question and its Thread as one unit.

        Raises:
            DuplicateRecordError: message or thread already recorded; nothing
                is written in that case
        """

    @abstractmethod
    def create_answer(
        self,
        *,
        content: str,
        author_id: str,
        source_message_id: str,
        question_id: int,
        created_at: Optional[datetime] = None,
    ) -> Answer:
        """Record an answer to an existing question.

        Raises:
            DuplicateRecordError: this message is already an answer to this question
            StoreError: the question does not exist
        """

    @abstractmethod
    def find_questions_created_since(self, timestamp: datetime) -> List[Question]:
        """Questions with created_at >= timestamp, oldest first."""

    @abstractmethod
    def find_thread_by_external_id(self, external_thread_id: str) -> Optional[Thread]:
        """Look up a thread by its platform id."""

    @abstractmethod
    def find_thread_by_id(self, thread_id: int) -> Optional[Thread]:
        """Look up a thread by record id."""

    @abstractmethod
    def list_all_questions(self) -> List[Question]:
        """Every stored question, oldest first."""

    @abstractmethod
    def question_exists_for_message(self, source_message_id: str) -> bool:
        """Check whether a message has already produced a question."""

    @abstractmethod
    def answer_exists_for_message(self, source_message_id: str) -> bool:
        """Check whether a message has already been recorded as an answer."""

    @abstractmethod
    def attach_derived_fields(
        self,
        question_id: int,
        *,
        embedding: Optional[List[float]] = None,
        key_terms: Optional[str] = None,
    ) -> Question:
        """Attach embedding and/or key terms to an existing question.

        Raises:
            StoreError: unknown question
            ValueError: embedding dimension differs from stored embeddings
        """

    @abstractmethod
    def list_recent_questions(self, limit: int = 10) -> List[Question]:
        """Most recent questions, newest first."""

    @abstractmethod
    def list_answers(self, question_id: int) -> List[Answer]:
        """Answers recorded for a question, oldest first."""

    @abstractmethod
    def count_answers(self, question_ids: List[int]) -> Dict[int, int]:
        """Answer counts keyed by question id; unanswered questions map to 0."""

    @abstractmethod
    def get_stats(self) -> Dict[str, int]:
        """Record counts."""


class InMemoryKnowledgeStore(KnowledgeStore):
    """Process-local store. Used in tests and single-process trials."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._questions: Dict[int, Question] = {}
        self._threads: Dict[int, Thread] = {}
        self._answers: Dict[int, Answer] = {}
        self._question_by_message: Dict[str, int] = {}
        self._thread_by_external: Dict[str, int] = {}
        self._answer_keys: set = set()
        self._dimension: Optional[int] = None

    def _check_dimension(self, embedding: Optional[List[float]]) -> None:
        if embedding is None:
            return
        if self._dimension is not None and len(embedding) != self._dimension:
            raise ValueError(
                f"Embedding dimension mismatch: store holds {self._dimension}, got {len(embedding)}"
            )

    def create_question_with_thread(
        self,
        *,
        content: str,
        author_id: str,
        source_message_id: str,
        external_thread_id: str,
        container_id: str,
        parent_channel_id: str,
        thread_url: Optional[str] = None,
        embedding: Optional[List[float]] = None,
        key_terms: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> Question:
        created_at = created_at or utcnow()
        with self._lock:
            if source_message_id in self._question_by_message:
                raise DuplicateRecordError("question", source_message_id)
            if external_thread_id in self._thread_by_external:
                raise DuplicateRecordError("thread", source_message_id)
            self._check_dimension(embedding)

            thread = Thread(
                id=len(self._threads) + 1,
                external_thread_id=external_thread_id,
                container_id=container_id,
                parent_channel_id=parent_channel_id,
                url=thread_url,
                created_at=created_at,
            )
            question = Question(
                id=len(self._questions) + 1,
                content=content,
                embedding=embedding,
                key_terms=key_terms,
                author_id=author_id,
                source_message_id=source_message_id,
                created_at=created_at,
                thread_id=thread.id,
            )
            self._threads[thread.id] = thread
            self._questions[question.id] = question
            self._thread_by_external[external_thread_id] = thread.id
            self._question_by_message[source_message_id] = question.id
            if embedding is not None and self._dimension is None:
                self._dimension = len(embedding)
            return question.model_copy()

    def create_answer(
        self,
        *,
        content: str,
        author_id: str,
        source_message_id: str,
        question_id: int,
        created_at: Optional[datetime] = None,
    ) -> Answer:
        with self._lock:
            if question_id not in self._questions:
                raise StoreError(f"Question {question_id} does not exist")
            key = (source_message_id, question_id)
            if key in self._answer_keys:
                raise DuplicateRecordError("answer", source_message_id)

            answer = Answer(
                id=len(self._answers) + 1,
                content=content,
                author_id=author_id,
                source_message_id=source_message_id,
                created_at=created_at or utcnow(),
                question_id=question_id,
            )
            self._answers[answer.id] = answer
            self._answer_keys.add(key)
            return answer.model_copy()

    def find_questions_created_since(self, timestamp: datetime) -> List[Question]:
        with self._lock:
            found = [q for q in self._questions.values() if q.created_at >= timestamp]
        return [q.model_copy() for q in sorted(found, key=lambda q: (q.created_at, q.id))]

    def find_thread_by_external_id(self, external_thread_id: str) -> Optional[Thread]:
        with self._lock:
            thread_id = self._thread_by_external.get(external_thread_id)
            thread = self._threads.get(thread_id) if thread_id is not None else None
        return thread.model_copy() if thread else None

    def find_thread_by_id(self, thread_id: int) -> Optional[Thread]:
        with self._lock:
            thread = self._threads.get(thread_id)
        return thread.model_copy() if thread else None

    def list_all_questions(self) -> List[Question]:
        with self._lock:
            questions = list(self._questions.values())
        return [q.model_copy() for q in sorted(questions, key=lambda q: (q.created_at, q.id))]

    def question_exists_for_message(self, source_message_id: str) -> bool:
        with self._lock:
            return source_message_id in self._question_by_message

    def answer_exists_for_message(self, source_message_id: str) -> bool:
        with self._lock:
            return any(message_id == source_message_id for message_id, _ in self._answer_keys)

    def attach_derived_fields(
        self,
        question_id: int,
        *,
        embedding: Optional[List[float]] = None,
        key_terms: Optional[str] = None,
    ) -> Question:
        with self._lock:
            question = self._questions.get(question_id)
            if question is None:
                raise StoreError(f"Question {question_id} does not exist")
            self._check_dimension(embedding)

            updates: Dict[str, Any] = {}
            if embedding is not None:
                updates["embedding"] = embedding
                if self._dimension is None:
                    self._dimension = len(embedding)
            if key_terms is not None:
                updates["key_terms"] = key_terms
            question = question.model_copy(update=updates)
            self._questions[question_id] = question
            return question.model_copy()

    def list_recent_questions(self, limit: int = 10) -> List[Question]:
        with self._lock:
            questions = list(self._questions.values())
        questions.sort(key=lambda q: (q.created_at, q.id), reverse=True)
        return [q.model_copy() for q in questions[:limit]]

    def list_answers(self, question_id: int) -> List[Answer]:
        with self._lock:
            answers = [a for a in self._answers.values() if a.question_id == question_id]
        return [a.model_copy() for a in sorted(answers, key=lambda a: (a.created_at, a.id))]

    def count_answers(self, question_ids: List[int]) -> Dict[int, int]:
        counts = {question_id: 0 for question_id in question_ids}
        with self._lock:
            for answer in self._answers.values():
                if answer.question_id in counts:
                    counts[answer.question_id] += 1
        return counts

    def get_stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "questions": len(self._questions),
                "threads": len(self._threads),
                "answers": len(self._answers),
            }
