"""Rule search for the public search bar."""
from __future__ import annotations

from typing import Any

from prisonrp.errors import ValidationError
from prisonrp.extensions import db
from prisonrp.services.db import now_timestamp

MIN_QUERY_LENGTH = 2
MAX_QUERY_LENGTH = 255
MAX_RESULTS = 50
MAX_SUGGESTIONS = 20
SUGGESTION_TITLE_LENGTH = 50
DESCRIPTION_LENGTH = 150


def _escape_like(term: str) -> str:
    return term.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')


def _truncate(text: str | None, length: int = DESCRIPTION_LENGTH) -> str:
    text = ' '.join((text or '').split())
    if len(text) <= length:
        return text
    return text[:length - 3].rstrip() + '...'


def search_rules(query: str | None, limit: int = 10) -> list[dict]:
    """Approved rules ranked code prefix first, then title, then content matches."""
    term = (query or '').strip().lower()
    if len(term) < MIN_QUERY_LENGTH:
        return []
    limit = max(1, min(int(limit), MAX_RESULTS))

    escaped = _escape_like(term)
    contains = f"%{escaped}%"
    code_prefix = f"{escaped}%"
    rows = db.all(
        """
        SELECT r.id, r.title, r.content, r.full_code, c.name AS category_name,
               c.letter_code AS category_letter,
               CASE
                   WHEN LOWER(r.full_code) LIKE %s ESCAPE '\\' THEN 1
                   WHEN LOWER(COALESCE(r.title, '')) LIKE %s ESCAPE '\\' THEN 2
                   ELSE 3
               END AS relevance
        FROM rules r
        JOIN categories c ON r.category_id = c.id
        WHERE r.is_active = %s AND r.status = 'approved' AND c.is_active = %s
          AND (
              LOWER(r.full_code) LIKE %s ESCAPE '\\'
              OR LOWER(COALESCE(r.title, '')) LIKE %s ESCAPE '\\'
              OR COALESCE(r.searchable_content, LOWER(r.content)) LIKE %s ESCAPE '\\'
          )
        ORDER BY relevance, c.order_index, r.rule_number, COALESCE(r.sub_number, 0)
        LIMIT %s
        """,
        (code_prefix, contains, True, True, code_prefix, contains, contains, limit),
    )
    return [
        {
            'id': row['id'],
            'code': row['full_code'],
            'title': row['title'],
            'description': _truncate(row['content']),
            'category': row['category_name'],
            'category_letter': row['category_letter'],
            'relevance': row['relevance'],
        }
        for row in rows
    ]


def record_search(query: str | None, results_count: Any = 0) -> None:
    """Append a search to ``search_history`` for the analytics views."""
    term = ' '.join((query or '').split())
    if len(term) < MIN_QUERY_LENGTH:
        raise ValidationError('Invalid search query')
    try:
        count = max(0, int(results_count or 0))
    except (TypeError, ValueError):
        raise ValidationError('results_count must be an integer') from None
    db.run(
        "INSERT INTO search_history (query, results_count, search_date) VALUES (%s, %s, %s)",
        (term[:MAX_QUERY_LENGTH], count, now_timestamp()),
    )


def search_suggestions(prefix: str | None = None, limit: int = MAX_SUGGESTIONS) -> list[dict]:
    """Codes and short titles of published rules, optionally narrowed by ``prefix``."""
    limit = max(1, min(int(limit), MAX_SUGGESTIONS))
    clauses = ["r.is_active = %s", "r.status = 'approved'", "c.is_active = %s"]
    params: list[Any] = [True, True]
    term = (prefix or '').strip().lower()
    if term:
        escaped = _escape_like(term)
        clauses.append(
            "(LOWER(r.full_code) LIKE %s ESCAPE '\\' OR LOWER(COALESCE(r.title, '')) LIKE %s ESCAPE '\\')"
        )
        params.extend([f"{escaped}%", f"%{escaped}%"])
    rows = db.all(
        f"""
        SELECT r.full_code, r.title
        FROM rules r
        JOIN categories c ON r.category_id = c.id
        WHERE {' AND '.join(clauses)}
        ORDER BY c.order_index, r.rule_number, COALESCE(r.sub_number, 0)
        """,
        params,
    )

    codes = [{'suggestion': row['full_code'], 'type': 'code'} for row in rows]
    titles = []
    seen = set()
    for row in rows:
        title = row['title']
        if title and len(title) < SUGGESTION_TITLE_LENGTH and title.lower() not in seen:
            seen.add(title.lower())
            titles.append({'suggestion': title, 'type': 'title'})
    return (codes + titles)[:limit]


__all__ = ['search_rules', 'record_search', 'search_suggestions']
