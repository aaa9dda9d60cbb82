"""
SQL query definitions for chat.db.

All reads use explicit column lists; NULL-able columns are COALESCEd so row
building only has to deal with the values Apple actually stores.
"""

from typing import Any, List, Sequence, Tuple

# SQLite's default SQLITE_MAX_VARIABLE_NUMBER on older builds is 999
MAX_PARAMS_PER_QUERY = 500


def list_chats() -> str:
    """
    Get query listing every chat with its latest message and unread count.

    The latest message is the one with the highest message id in
    chat_message_join for that chat. Unread counts only messages from others.

    Columns:
        ROWID, chat_identifier, display_name, text, attributedBody, date,
        unread_count
    """
    return """
        SELECT
            c.ROWID,
            COALESCE(c.chat_identifier, ''),
            COALESCE(c.display_name, ''),
            COALESCE(m.text, ''),
            m.attributedBody,
            COALESCE(m.date, 0),
            COALESCE(unread.count, 0)
        FROM chat c
        LEFT JOIN (
            SELECT cmj.chat_id, cmj.message_id, msg.text, msg.attributedBody, msg.date
            FROM chat_message_join cmj
            JOIN message msg ON cmj.message_id = msg.ROWID
            WHERE cmj.message_id IN (
                SELECT MAX(message_id)
                FROM chat_message_join
                GROUP BY chat_id
            )
        ) m ON c.ROWID = m.chat_id
        LEFT JOIN (
            SELECT cmj.chat_id, COUNT(*) AS count
            FROM chat_message_join cmj
            JOIN message msg ON cmj.message_id = msg.ROWID
            WHERE msg.is_read = 0 AND msg.is_from_me = 0
            GROUP BY cmj.chat_id
        ) unread ON c.ROWID = unread.chat_id
        ORDER BY COALESCE(m.date, 0) DESC, c.ROWID DESC;
    """


def chat_participants(chat_ids: Sequence[int]) -> Tuple[str, Tuple[Any, ...]]:
    """
    Get query for the participant handles of several chats at once.

    Args:
        chat_ids: Chat ROWIDs (at most MAX_PARAMS_PER_QUERY).

    Returns:
        (SQL query string, parameters tuple). Columns: chat_id, handle id.
    """
    if not chat_ids:
        raise ValueError("chat_ids must not be empty")
    if len(chat_ids) > MAX_PARAMS_PER_QUERY:
        raise ValueError(f"at most {MAX_PARAMS_PER_QUERY} chat ids per query")

    placeholders = ", ".join("?" for _ in chat_ids)
    query = f"""
        SELECT DISTINCT chj.chat_id, h.id
        FROM chat_handle_join chj
        JOIN handle h ON chj.handle_id = h.ROWID
        WHERE chj.chat_id IN ({placeholders})
        ORDER BY chj.chat_id, h.id;
    """
    return query, tuple(chat_ids)


def chunk_ids(ids: Sequence[int], size: int = MAX_PARAMS_PER_QUERY) -> List[List[int]]:
    """Split ids into lists small enough for one IN (...) query."""
    return [list(ids[i : i + size]) for i in range(0, len(ids), size)]


def list_messages(chat_id: int) -> Tuple[str, Tuple[Any, ...]]:
    """
    Get query for all messages of one chat, oldest first.

    The first attachment (lowest attachment ROWID) is reported per message.

    Columns:
        ROWID, guid, text, attributedBody, sender handle, is_from_me, date,
        attachment filename
    """
    query = """
        SELECT
            m.ROWID,
            COALESCE(m.guid, ''),
            COALESCE(m.text, ''),
            m.attributedBody,
            COALESCE(h.id, ''),
            m.is_from_me,
            m.date,
            (
                SELECT a.filename
                FROM message_attachment_join maj
                JOIN attachment a ON maj.attachment_id = a.ROWID
                WHERE maj.message_id = m.ROWID
                ORDER BY a.ROWID
                LIMIT 1
            ) AS attachment_path
        FROM message m
        JOIN chat_message_join cmj ON m.ROWID = cmj.message_id
        LEFT JOIN handle h ON m.handle_id = h.ROWID
        WHERE cmj.chat_id = ?
        ORDER BY m.date ASC, m.ROWID ASC;
    """
    return query, (chat_id,)


def mark_chat_read(chat_id: int) -> Tuple[str, Tuple[Any, ...]]:
    """
    Get the one write this package performs: mark a chat's incoming messages read.

    Only unread messages not sent by the user are touched.
    """
    query = """
        UPDATE message
        SET is_read = 1
        WHERE ROWID IN (
            SELECT message_id
            FROM chat_message_join
            WHERE chat_id = ?
        )
        AND is_from_me = 0
        AND is_read = 0;
    """
    return query, (chat_id,)
