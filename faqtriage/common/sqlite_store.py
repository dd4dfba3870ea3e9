"""SQLite knowledge store implementation."""

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from .errors import DuplicateRecordError, StoreError
from .knowledge_store import KnowledgeStore
from .schemas import Answer, Question, Thread, utcnow

_QUESTION_COLUMNS = "id, content, embedding, key_terms, author_id, source_message_id, created_at, thread_id"
_THREAD_COLUMNS = "id, external_thread_id, container_id, parent_channel_id, url, created_at"
_ANSWER_COLUMNS = "id, content, author_id, source_message_id, created_at, question_id"


def _to_epoch(value: datetime) -> float:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


def _from_epoch(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _row_to_question(row) -> Question:
    return Question(
        id=row[0],
        content=row[1],
        embedding=json.loads(row[2]) if row[2] is not None else None,
        key_terms=row[3],
        author_id=row[4],
        source_message_id=row[5],
        created_at=_from_epoch(row[6]),
        thread_id=row[7],
    )


def _row_to_thread(row) -> Thread:
    return Thread(
        id=row[0],
        external_thread_id=row[1],
        container_id=row[2],
        parent_channel_id=row[3],
        url=row[4],
        created_at=_from_epoch(row[5]),
    )


def _row_to_answer(row) -> Answer:
    return Answer(
        id=row[0],
        content=row[1],
        author_id=row[2],
        source_message_id=row[3],
        created_at=_from_epoch(row[4]),
        question_id=row[5],
    )


class SQLiteKnowledgeStore(KnowledgeStore):
    """SQLite-based knowledge store."""

    def __init__(self, db_path: str) -> None:
        """Initialize the SQLite store."""
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=10.0)
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _init_db(self) -> None:
        """Create tables if they don't exist."""
        with self._connect() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS threads (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    external_thread_id TEXT NOT NULL UNIQUE,
                    container_id TEXT NOT NULL,
                    parent_channel_id TEXT NOT NULL,
                    url TEXT,
                    created_at REAL NOT NULL
                );
                CREATE TABLE IF NOT EXISTS questions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    content TEXT NOT NULL,
                    embedding TEXT,
                    key_terms TEXT,
                    author_id TEXT NOT NULL,
                    source_message_id TEXT NOT NULL UNIQUE,
                    created_at REAL NOT NULL,
                    thread_id INTEGER NOT NULL UNIQUE REFERENCES threads(id)
                );
                CREATE TABLE IF NOT EXISTS answers (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    content TEXT NOT NULL,
                    author_id TEXT NOT NULL,
                    source_message_id TEXT NOT NULL,
                    created_at REAL NOT NULL,
                    question_id INTEGER NOT NULL REFERENCES questions(id),
                    UNIQUE (source_message_id, question_id)
                );
                CREATE INDEX IF NOT EXISTS idx_questions_created_at ON questions(created_at);
                CREATE INDEX IF NOT EXISTS idx_answers_question ON answers(question_id);
            """)
            conn.commit()

    def _stored_dimension(self, conn: sqlite3.Connection) -> Optional[int]:
        row = conn.execute(
            "SELECT embedding FROM questions WHERE embedding IS NOT NULL LIMIT 1"
        ).fetchone()
        return len(json.loads(row[0])) if row else None

    def _check_dimension(self, conn: sqlite3.Connection, embedding: Optional[List[float]]) -> None:
        if embedding is None:
            return
        dimension = self._stored_dimension(conn)
        if dimension is not None and len(embedding) != dimension:
            raise ValueError(
                f"Embedding dimension mismatch: store holds {dimension}, got {len(embedding)}"
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
        created = _to_epoch(created_at or utcnow())
        conn = self._connect()
        try:
            with conn:
                self._check_dimension(conn, embedding)
                cursor = conn.execute(
                    """
                    INSERT INTO threads (external_thread_id, container_id, parent_channel_id, url, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (external_thread_id, container_id, parent_channel_id, thread_url, created),
                )
                thread_id = cursor.lastrowid
                cursor = conn.execute(
                    """
                    INSERT INTO questions (content, embedding, key_terms, author_id, source_message_id, created_at, thread_id)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        content,
                        json.dumps(embedding) if embedding is not None else None,
                        key_terms,
                        author_id,
                        source_message_id,
                        created,
                        thread_id,
                    ),
                )
                question_id = cursor.lastrowid
        except sqlite3.IntegrityError as e:
            kind = "question" if "questions" in str(e) else "thread"
            raise DuplicateRecordError(kind, source_message_id) from e
        except sqlite3.Error as e:
            raise StoreError(f"Failed to create question: {e}") from e
        finally:
            conn.close()

        return Question(
            id=question_id,
            content=content,
            embedding=embedding,
            key_terms=key_terms,
            author_id=author_id,
            source_message_id=source_message_id,
            created_at=_from_epoch(created),
            thread_id=thread_id,
        )

    def create_answer(
        self,
        *,
        content: str,
        author_id: str,
        source_message_id: str,
        question_id: int,
        created_at: Optional[datetime] = None,
    ) -> Answer:
        created = _to_epoch(created_at or utcnow())
        conn = self._connect()
        try:
            with conn:
                exists = conn.execute("SELECT 1 FROM questions WHERE id = ?", (question_id,)).fetchone()
                if exists is None:
                    raise StoreError(f"Question {question_id} does not exist")
                cursor = conn.execute(
                    """
                    INSERT INTO answers (content, author_id, source_message_id, created_at, question_id)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (content, author_id, source_message_id, created, question_id),
                )
                answer_id = cursor.lastrowid
        except sqlite3.IntegrityError as e:
            raise DuplicateRecordError("answer", source_message_id) from e
        except sqlite3.Error as e:
            raise StoreError(f"Failed to create answer: {e}") from e
        finally:
            conn.close()

        return Answer(
            id=answer_id,
            content=content,
            author_id=author_id,
            source_message_id=source_message_id,
            created_at=_from_epoch(created),
            question_id=question_id,
        )

    def find_questions_created_since(self, timestamp: datetime) -> List[Question]:
        with self._connect() as conn:
            cursor = conn.execute(
                f"SELECT {_QUESTION_COLUMNS} FROM questions WHERE created_at >= ? ORDER BY created_at, id",
                (_to_epoch(timestamp),),
            )
            return [_row_to_question(row) for row in cursor.fetchall()]

    def find_thread_by_external_id(self, external_thread_id: str) -> Optional[Thread]:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_THREAD_COLUMNS} FROM threads WHERE external_thread_id = ?",
                (external_thread_id,),
            ).fetchone()
            return _row_to_thread(row) if row else None

    def find_thread_by_id(self, thread_id: int) -> Optional[Thread]:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_THREAD_COLUMNS} FROM threads WHERE id = ?",
                (thread_id,),
            ).fetchone()
            return _row_to_thread(row) if row else None

    def list_all_questions(self) -> List[Question]:
        with self._connect() as conn:
            cursor = conn.execute(f"SELECT {_QUESTION_COLUMNS} FROM questions ORDER BY created_at, id")
            return [_row_to_question(row) for row in cursor.fetchall()]

    def question_exists_for_message(self, source_message_id: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM questions WHERE source_message_id = ?",
                (source_message_id,),
            ).fetchone()
            return row is not None

    def answer_exists_for_message(self, source_message_id: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM answers WHERE source_message_id = ? LIMIT 1",
                (source_message_id,),
            ).fetchone()
            return row is not None

    def attach_derived_fields(
        self,
        question_id: int,
        *,
        embedding: Optional[List[float]] = None,
        key_terms: Optional[str] = None,
    ) -> Question:
        conn = self._connect()
        try:
            with conn:
                self._check_dimension(conn, embedding)
                if embedding is not None:
                    conn.execute(
                        "UPDATE questions SET embedding = ? WHERE id = ?",
                        (json.dumps(embedding), question_id),
                    )
                if key_terms is not None:
                    conn.execute(
                        "UPDATE questions SET key_terms = ? WHERE id = ?",
                        (key_terms, question_id),
                    )
                row = conn.execute(
                    f"SELECT {_QUESTION_COLUMNS} FROM questions WHERE id = ?",
                    (question_id,),
                ).fetchone()
        finally:
            conn.close()

        if row is None:
            raise StoreError(f"Question {question_id} does not exist")
        return _row_to_question(row)

    def list_recent_questions(self, limit: int = 10) -> List[Question]:
        with self._connect() as conn:
            cursor = conn.execute(
                f"SELECT {_QUESTION_COLUMNS} FROM questions ORDER BY created_at DESC, id DESC LIMIT ?",
                (limit,),
            )
            return [_row_to_question(row) for row in cursor.fetchall()]

    def list_answers(self, question_id: int) -> List[Answer]:
        with self._connect() as conn:
            cursor = conn.execute(
                f"SELECT {_ANSWER_COLUMNS} FROM answers WHERE question_id = ? ORDER BY created_at, id",
                (question_id,),
            )
            return [_row_to_answer(row) for row in cursor.fetchall()]

    def count_answers(self, question_ids: List[int]) -> Dict[int, int]:
        counts = {question_id: 0 for question_id in question_ids}
        if not counts:
            return counts
        placeholders = ",".join("?" * len(counts))
        with self._connect() as conn:
            cursor = conn.execute(
                f"SELECT question_id, COUNT(id) FROM answers WHERE question_id IN ({placeholders}) "
                "GROUP BY question_id",
                list(counts),
            )
            for question_id, count in cursor.fetchall():
                counts[question_id] = count
        return counts

    def get_stats(self) -> Dict[str, int]:
        with self._connect() as conn:
            return {
                "questions": conn.execute("SELECT COUNT(id) FROM questions").fetchone()[0],
                "threads": conn.execute("SELECT COUNT(id) FROM threads").fetchone()[0],
                "answers": conn.execute("SELECT COUNT(id) FROM answers").fetchone()[0],
            }
