from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .types import Observation, TimelineEntry, UserPrompt
from .utils import row_to_observation, row_to_prompt

if TYPE_CHECKING:
    from ._store import MemoryStore

OBSERVATION_FTS_COLUMNS = ("title", "detail", "evidence")


def query_tokens(query: str) -> list[str]:
    return [token for token in (query or "").split() if token]


def build_match_query(query: str) -> str:
    """Quote every whitespace token as an exact phrase and AND them together.

    Quoting neutralizes FTS5 operators (``OR``, ``NEAR``, ``-``, ``*``) that
    show up in free-form queries.
    """
    tokens = query_tokens(query)
    return " ".join('"' + token.replace('"', '""') + '"' for token in tokens)


def _like_clause(columns: tuple[str, ...], tokens: list[str]) -> tuple[str, list[Any]]:
    clauses: list[str] = []
    params: list[Any] = []
    for token in tokens:
        pattern = "%" + token.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_") + "%"
        ors = " OR ".join(f"COALESCE({col}, '') LIKE ? ESCAPE '\\'" for col in columns)
        clauses.append(f"({ors})")
        params.extend([pattern] * len(columns))
    return " AND ".join(clauses), params


def match_observations(
    store: MemoryStore,
    query: str,
    *,
    kind: str | None = None,
    session_id: str | None = None,
    limit: int = 20,
    order_by: str | None = None,
) -> list[Observation]:
    tokens = query_tokens(query)
    if not tokens:
        return []
    where: list[str] = []
    params: list[Any] = []
    if store.fts_enabled:
        where.append("observations_fts MATCH ?")
        params.append(build_match_query(query))
    else:
        clause, clause_params = _like_clause(
            tuple(f"o.{col}" for col in OBSERVATION_FTS_COLUMNS), tokens
        )
        where.append(clause)
        params.extend(clause_params)
    if kind:
        where.append("o.type = ?")
        params.append(kind)
    if session_id:
        where.append("o.session_id = ?")
        params.append(session_id)
    if store.fts_enabled:
        source = "observations_fts JOIN observations o ON o.id = observations_fts.rowid"
        default_order = "rank"
    else:
        source = "observations o"
        default_order = "o.created_at_epoch DESC, o.id DESC"
    sql = f"""
        SELECT o.* FROM {source}
        WHERE {" AND ".join(where)}
        ORDER BY {order_by or default_order}
        LIMIT ?
    """
    params.append(limit)
    rows = store.conn.execute(sql, params).fetchall()
    return [row_to_observation(row) for row in rows]


def search_observations(
    store: MemoryStore,
    query: str,
    *,
    kind: str | None = None,
    session_id: str | None = None,
    limit: int = 20,
) -> list[Observation]:
    return match_observations(store, query, kind=kind, session_id=session_id, limit=limit)


def search_prompts(store: MemoryStore, query: str, *, limit: int = 20) -> list[UserPrompt]:
    tokens = query_tokens(query)
    if not tokens:
        return []
    if store.fts_enabled:
        rows = store.conn.execute(
            """
            SELECT p.* FROM user_prompts_fts
            JOIN user_prompts p ON p.id = user_prompts_fts.rowid
            WHERE user_prompts_fts MATCH ?
            ORDER BY rank
            LIMIT ?
            """,
            (build_match_query(query), limit),
        ).fetchall()
    else:
        clause, params = _like_clause(("p.prompt_text",), tokens)
        rows = store.conn.execute(
            f"""
            SELECT p.* FROM user_prompts p
            WHERE {clause}
            ORDER BY p.created_at_epoch DESC, p.id DESC
            LIMIT ?
            """,
            (*params, limit),
        ).fetchall()
    return [row_to_prompt(row) for row in rows]


def session_timeline(store: MemoryStore, session_id: str) -> list[TimelineEntry]:
    """Prompts, observations and summaries of one session, oldest first."""
    entries: list[TimelineEntry] = []
    for row in store.conn.execute(
        "SELECT * FROM user_prompts WHERE session_id = ? ORDER BY prompt_number ASC",
        (session_id,),
    ).fetchall():
        entries.append(
            {
                "kind": "prompt",
                "created_at": row["created_at"],
                "created_at_epoch": int(row["created_at_epoch"]),
                "text": row["prompt_text"],
                "metadata": {"prompt_number": int(row["prompt_number"])},
            }
        )
    for row in store.conn.execute(
        "SELECT * FROM observations WHERE session_id = ? ORDER BY created_at_epoch ASC, id ASC",
        (session_id,),
    ).fetchall():
        entries.append(
            {
                "kind": "observation",
                "created_at": row["created_at"],
                "created_at_epoch": int(row["created_at_epoch"]),
                "text": row["title"],
                "metadata": {
                    "id": int(row["id"]),
                    "type": row["type"],
                    "importance": int(row["importance"]),
                    "recurrence_count": int(row["recurrence_count"]),
                },
            }
        )
    for row in store.conn.execute(
        "SELECT * FROM session_summaries WHERE session_id = ? ORDER BY created_at_epoch ASC, id ASC",
        (session_id,),
    ).fetchall():
        entries.append(
            {
                "kind": "summary",
                "created_at": row["created_at"],
                "created_at_epoch": int(row["created_at_epoch"]),
                "text": row["completed"] or row["request"] or "",
                "metadata": {"id": int(row["id"]), "checkpoint": row["checkpoint"]},
            }
        )
    # Stable: on equal timestamps prompts come before the work they triggered.
    entries.sort(key=lambda entry: entry["created_at_epoch"])
    return entries
