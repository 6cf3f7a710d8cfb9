"""SQLite storage for conversations, branches, messages and summaries."""

import json
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path

from .models import ROLES, Branch, Conversation, Message, Summary

DEFAULT_TITLE = "New chat"
DEFAULT_BRANCH_NAME = "Branch"


def _now() -> str:
    """Current UTC time with microseconds, sortable as text."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


class ConversationStore:
    """Persistent storage for conversation state using SQLite.

    Messages form an append-only log per conversation. Root-branch
    messages have a NULL branch_id; ordering is by created_at, with the
    row id only breaking ties between identical timestamps.

    Summaries are unique per (conversation_id, chunk_index) and are never
    rewritten once stored.
    """

    def __init__(self, db_path: Path | str) -> None:
        """Initialize the store with a database path.

        Args:
            db_path: Path to the SQLite database file, or ":memory:".
        """
        self.db_path = db_path if db_path == ":memory:" else Path(db_path)
        self._conn: sqlite3.Connection | None = None

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._conn is None:
            if isinstance(self.db_path, Path):
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def init_db(self) -> None:
        """Create the tables if they don't exist."""
        conn = self._get_connection()
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS conversations (
                id          TEXT PRIMARY KEY,
                title       TEXT NOT NULL DEFAULT 'New chat',
                facts       TEXT NOT NULL DEFAULT '{}',
                created_at  TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS branches (
                id               TEXT PRIMARY KEY,
                conversation_id  TEXT NOT NULL REFERENCES conversations(id),
                name             TEXT NOT NULL,
                base_count       INTEGER NOT NULL,
                created_at       TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS messages (
                id               INTEGER PRIMARY KEY AUTOINCREMENT,
                conversation_id  TEXT NOT NULL REFERENCES conversations(id),
                branch_id        TEXT REFERENCES branches(id),
                role             TEXT NOT NULL,
                content          TEXT NOT NULL,
                created_at       TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS summaries (
                conversation_id  TEXT NOT NULL REFERENCES conversations(id),
                chunk_index      INTEGER NOT NULL,
                content          TEXT NOT NULL,
                created_at       TEXT NOT NULL,
                UNIQUE(conversation_id, chunk_index)
            );

            CREATE INDEX IF NOT EXISTS idx_messages_conversation
                ON messages(conversation_id, branch_id, created_at);
            CREATE INDEX IF NOT EXISTS idx_branches_conversation
                ON branches(conversation_id);
        """)
        conn.commit()

    # Conversations

    def create_conversation(
        self,
        title: str = DEFAULT_TITLE,
        conversation_id: str | None = None,
    ) -> Conversation:
        """Create a new conversation with empty fact memory.

        Args:
            title: Short human title.
            conversation_id: Explicit id, generated when omitted.

        Returns:
            The stored conversation.
        """
        conversation = Conversation(
            id=conversation_id or uuid.uuid4().hex,
            created_at=_now(),
            title=title.strip() or DEFAULT_TITLE,
        )
        conn = self._get_connection()
        conn.execute(
            "INSERT INTO conversations (id, title, facts, created_at) VALUES (?, ?, ?, ?)",
            (conversation.id, conversation.title, "{}", conversation.created_at),
        )
        conn.commit()
        return conversation

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        """Get a conversation by id, or None if it doesn't exist."""
        conn = self._get_connection()
        row = conn.execute(
            "SELECT id, title, facts, created_at FROM conversations WHERE id = ?",
            (conversation_id,),
        ).fetchone()
        return self._row_to_conversation(row) if row else None

    def get_or_create_conversation(self, conversation_id: str) -> Conversation:
        """Get a conversation, creating it under that id if absent."""
        conversation = self.get_conversation(conversation_id)
        if conversation is None:
            conversation = self.create_conversation(conversation_id=conversation_id)
        return conversation

    def list_conversations(self) -> list[Conversation]:
        """List all conversations, newest first."""
        conn = self._get_connection()
        cursor = conn.execute(
            "SELECT id, title, facts, created_at FROM conversations "
            "ORDER BY created_at DESC, rowid DESC"
        )
        return [self._row_to_conversation(row) for row in cursor.fetchall()]

    def update_title(self, conversation_id: str, title: str) -> bool:
        """Set a conversation's title. Returns True if it exists."""
        conn = self._get_connection()
        cursor = conn.execute(
            "UPDATE conversations SET title = ? WHERE id = ?",
            (title.strip() or DEFAULT_TITLE, conversation_id),
        )
        conn.commit()
        return cursor.rowcount > 0

    def update_facts(self, conversation_id: str, facts: dict[str, str]) -> bool:
        """Overwrite a conversation's fact memory wholesale.

        No version check is made: the last write wins.

        Returns:
            True if the conversation exists.
        """
        conn = self._get_connection()
        cursor = conn.execute(
            "UPDATE conversations SET facts = ? WHERE id = ?",
            (json.dumps(facts, ensure_ascii=False), conversation_id),
        )
        conn.commit()
        return cursor.rowcount > 0

    # Messages

    def append_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        branch_id: str | None = None,
    ) -> Message:
        """Append a message to a conversation's root branch or to a branch.

        Raises:
            ValueError: If role is not system, user or assistant.
        """
        if role not in ROLES:
            raise ValueError(f"Unknown role: {role!r}")

        branch_id = branch_id or None
        created_at = _now()
        conn = self._get_connection()
        cursor = conn.execute(
            """
            INSERT INTO messages (conversation_id, branch_id, role, content, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (conversation_id, branch_id, role, content, created_at),
        )
        conn.commit()
        return Message(
            id=cursor.lastrowid,
            conversation_id=conversation_id,
            branch_id=branch_id,
            role=role,
            content=content,
            created_at=created_at,
        )

    def list_messages(
        self,
        conversation_id: str,
        branch_id: str | None = None,
        limit: int | None = None,
    ) -> list[Message]:
        """List messages of one branch, oldest first.

        Args:
            conversation_id: The conversation to read.
            branch_id: Branch filter; None selects the root branch only.
            limit: Keep only the first ``limit`` (oldest) messages.

        Returns:
            Messages ordered by creation time.
        """
        if limit is not None and limit <= 0:
            return []

        branch_id = branch_id or None
        query = (
            "SELECT id, conversation_id, branch_id, role, content, created_at "
            "FROM messages WHERE conversation_id = ? AND branch_id IS ? "
            "ORDER BY created_at, id"
        )
        params: tuple = (conversation_id, branch_id)
        if limit is not None:
            query += " LIMIT ?"
            params += (limit,)

        conn = self._get_connection()
        cursor = conn.execute(query, params)
        return [self._row_to_message(row) for row in cursor.fetchall()]

    def list_all_messages(self, conversation_id: str) -> list[Message]:
        """List every message of a conversation across branches, oldest first."""
        conn = self._get_connection()
        cursor = conn.execute(
            "SELECT id, conversation_id, branch_id, role, content, created_at "
            "FROM messages WHERE conversation_id = ? ORDER BY created_at, id",
            (conversation_id,),
        )
        return [self._row_to_message(row) for row in cursor.fetchall()]

    def count_messages(self, conversation_id: str, branch_id: str | None = None) -> int:
        """Count messages of one branch (root branch when branch_id is None)."""
        branch_id = branch_id or None
        conn = self._get_connection()
        row = conn.execute(
            "SELECT COUNT(*) FROM messages WHERE conversation_id = ? AND branch_id IS ?",
            (conversation_id, branch_id),
        ).fetchone()
        return row[0]

    # Branches

    def create_branch(
        self,
        conversation_id: str,
        name: str = DEFAULT_BRANCH_NAME,
        base_count: int | None = None,
    ) -> Branch:
        """Fork a conversation's root branch.

        Args:
            conversation_id: The conversation to fork.
            name: Human label; blank names fall back to the default.
            base_count: How many root messages the branch inherits. None or
                a negative value captures the root branch's current length.

        Returns:
            The stored branch.

        Raises:
            ValueError: If base_count exceeds the root branch's length.
        """
        root_count = self.count_messages(conversation_id)
        if base_count is None or base_count < 0:
            base_count = root_count
        elif base_count > root_count:
            raise ValueError(
                f"base_count {base_count} exceeds root branch length {root_count}"
            )

        branch = Branch(
            id=uuid.uuid4().hex,
            conversation_id=conversation_id,
            name=str(name).strip() or DEFAULT_BRANCH_NAME,
            base_count=base_count,
            created_at=_now(),
        )
        conn = self._get_connection()
        conn.execute(
            """
            INSERT INTO branches (id, conversation_id, name, base_count, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (branch.id, branch.conversation_id, branch.name, branch.base_count, branch.created_at),
        )
        conn.commit()
        return branch

    def get_branch(self, branch_id: str, conversation_id: str) -> Branch | None:
        """Get a branch scoped to its conversation, or None."""
        conn = self._get_connection()
        row = conn.execute(
            "SELECT id, conversation_id, name, base_count, created_at "
            "FROM branches WHERE id = ? AND conversation_id = ?",
            (branch_id, conversation_id),
        ).fetchone()
        return self._row_to_branch(row) if row else None

    def list_branches(self, conversation_id: str) -> list[Branch]:
        """List a conversation's branches, oldest first."""
        conn = self._get_connection()
        cursor = conn.execute(
            "SELECT id, conversation_id, name, base_count, created_at "
            "FROM branches WHERE conversation_id = ? ORDER BY created_at, rowid",
            (conversation_id,),
        )
        return [self._row_to_branch(row) for row in cursor.fetchall()]

    def delete_branch(self, conversation_id: str, branch_id: str) -> bool:
        """Delete a branch together with its own messages.

        Root messages are never touched.

        Returns:
            True if a branch was deleted.
        """
        conn = self._get_connection()
        conn.execute(
            "DELETE FROM messages WHERE conversation_id = ? AND branch_id = ?",
            (conversation_id, branch_id),
        )
        cursor = conn.execute(
            "DELETE FROM branches WHERE id = ? AND conversation_id = ?",
            (branch_id, conversation_id),
        )
        conn.commit()
        return cursor.rowcount > 0

    # Summaries

    def get_summary(self, conversation_id: str, chunk_index: int) -> Summary | None:
        """Get the cached summary for a chunk, or None."""
        conn = self._get_connection()
        row = conn.execute(
            "SELECT conversation_id, chunk_index, content, created_at "
            "FROM summaries WHERE conversation_id = ? AND chunk_index = ?",
            (conversation_id, chunk_index),
        ).fetchone()
        return self._row_to_summary(row) if row else None

    def create_summary(self, conversation_id: str, chunk_index: int, content: str) -> Summary:
        """Store the summary for a chunk.

        If another writer stored the same chunk first, that row is kept
        and returned unchanged.
        """
        conn = self._get_connection()
        conn.execute(
            """
            INSERT INTO summaries (conversation_id, chunk_index, content, created_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(conversation_id, chunk_index) DO NOTHING
            """,
            (conversation_id, chunk_index, content, _now()),
        )
        conn.commit()
        summary = self.get_summary(conversation_id, chunk_index)
        assert summary is not None
        return summary

    def list_summaries(self, conversation_id: str) -> list[Summary]:
        """List a conversation's summaries by chunk index."""
        conn = self._get_connection()
        cursor = conn.execute(
            "SELECT conversation_id, chunk_index, content, created_at "
            "FROM summaries WHERE conversation_id = ? ORDER BY chunk_index",
            (conversation_id,),
        )
        return [self._row_to_summary(row) for row in cursor.fetchall()]

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _row_to_conversation(self, row: sqlite3.Row) -> Conversation:
        return Conversation(
            id=row["id"],
            title=row["title"],
            facts=json.loads(row["facts"] or "{}"),
            created_at=row["created_at"],
        )

    def _row_to_branch(self, row: sqlite3.Row) -> Branch:
        return Branch(
            id=row["id"],
            conversation_id=row["conversation_id"],
            name=row["name"],
            base_count=row["base_count"],
            created_at=row["created_at"],
        )

    def _row_to_message(self, row: sqlite3.Row) -> Message:
        return Message(
            id=row["id"],
            conversation_id=row["conversation_id"],
            branch_id=row["branch_id"],
            role=row["role"],
            content=row["content"],
            created_at=row["created_at"],
        )

    def _row_to_summary(self, row: sqlite3.Row) -> Summary:
        return Summary(
            conversation_id=row["conversation_id"],
            chunk_index=row["chunk_index"],
            content=row["content"],
            created_at=row["created_at"],
        )
