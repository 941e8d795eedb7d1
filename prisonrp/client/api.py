"""HTTP client for the rules site API."""

from __future__ import annotations

import logging
import re
from typing import Any

import requests

from .cache import ResponseCache

logger = logging.getLogger(__name__)

# Seconds
CACHE_TTL = {
    'categories': 10 * 60,
    'rules': 5 * 60,
    'announcements': 2 * 60,
    'search': 60,
    'changes': 60,
}

RULE_KEYS = re.compile(r'^/api/(rules|search|categories|changes)')


class APIError(Exception):
    """Non-2xx response from the API."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"HTTP {status_code}: {message}")
        self.status_code = status_code
        self.message = message


class RulesClient:
    """Client for the public and staff endpoints.

    GET responses are cached with per-resource TTLs; writes through this
    client invalidate the affected entries. The client owns its session and
    cache, so use it as a context manager or call :meth:`close`.
    """

    def __init__(self, base_url: str, cache: ResponseCache | None = None, timeout: float = 10):
        self.base_url = base_url.rstrip('/')
        self.cache = cache if cache is not None else ResponseCache()
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({'Content-Type': 'application/json'})

    def __enter__(self) -> "RulesClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self.session.close()
        self.cache.clear()

    def _request(self, method: str, path: str, params: dict | None = None, json: Any = None) -> Any:
        logger.debug(f"API Request: {method} {path}")
        response = self.session.request(
            method, f"{self.base_url}{path}", params=params, json=json, timeout=self.timeout,
        )
        if not response.ok:
            try:
                message = response.json().get('error', response.reason)
            except ValueError:
                message = response.reason
            logger.warning(f"API Response Error: {response.status_code} {method} {path}: {message}")
            raise APIError(response.status_code, message)
        return response.json()

    def _cached_get(self, path: str, ttl: float, params: dict | None = None) -> Any:
        key = self.cache.key(path, params)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        result = self._request('GET', path, params=params)
        self.cache.set(key, result, ttl)
        return result

    # Public reads

    def health(self) -> dict:
        return self._request('GET', '/health')

    def categories(self) -> list[dict]:
        return self._cached_get('/api/categories', CACHE_TTL['categories'])

    def rules(self, category: str | None = None) -> list[dict]:
        return self._cached_get('/api/rules', CACHE_TTL['rules'], {'category': category})

    def rule_by_code(self, code: str) -> dict:
        return self._cached_get(f'/api/rules/code/{code}', CACHE_TTL['rules'])

    def cross_references(self, rule_id: int) -> dict:
        return self._cached_get(f'/api/rules/{rule_id}/cross-references', CACHE_TTL['rules'])

    def announcements(self) -> list[dict]:
        return self._cached_get('/api/announcements', CACHE_TTL['announcements'])

    def search(self, query: str, limit: int = 10) -> list[dict]:
        if len(query.strip()) < 2:
            return []
        return self._cached_get('/api/search', CACHE_TTL['search'], {'q': query.strip(), 'limit': limit})

    def recent_changes(self, limit: int = 20) -> list[dict]:
        return self._cached_get('/api/changes', CACHE_TTL['changes'], {'limit': limit})

    # Staff writes (require an authenticated session cookie on ``self.session``)

    def create_rule(self, data: dict) -> dict:
        result = self._request('POST', '/api/staff/rules', json=data)
        self.cache.invalidate(RULE_KEYS)
        return result

    def update_rule(self, rule_id: int, data: dict) -> dict:
        result = self._request('PUT', f'/api/staff/rules/{rule_id}', json=data)
        self.cache.invalidate(RULE_KEYS)
        return result

    def delete_rule(self, rule_id: int) -> dict:
        result = self._request('DELETE', f'/api/staff/rules/{rule_id}')
        self.cache.invalidate(RULE_KEYS)
        return result

    def approve_rule(self, rule_id: int, notes: str | None = None) -> dict:
        result = self._request('PUT', f'/api/staff/rules/{rule_id}/approve', json={'reviewNotes': notes})
        self.cache.invalidate(RULE_KEYS)
        return result

    def reject_rule(self, rule_id: int, notes: str) -> dict:
        return self._request('PUT', f'/api/staff/rules/{rule_id}/reject', json={'reviewNotes': notes})

    def create_announcement(self, data: dict) -> dict:
        result = self._request('POST', '/api/staff/announcements', json=data)
        self.cache.invalidate('/api/announcements')
        return result

    def approve_announcement(self, announcement_id: int, notes: str | None = None) -> dict:
        result = self._request(
            'PUT', f'/api/staff/announcements/{announcement_id}/approve', json={'reviewNotes': notes},
        )
        self.cache.invalidate('/api/announcements')
        return result

    def reorder_categories(self, category_order: list[dict]) -> list[dict]:
        result = self._request('POST', '/api/staff/categories/reorder', json={'categoryOrder': category_order})
        self.cache.invalidate('/api/categories')
        return result
