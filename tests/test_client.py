import re

import pytest

from prisonrp.client import APIError, CACHE_TTL, ResponseCache, RulesClient


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeResponse:
    def __init__(self, payload, status_code=200, reason='OK'):
        self._payload = payload
        self.status_code = status_code
        self.reason = reason

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def cache(clock):
    return ResponseCache(default_ttl=60, clock=clock)


class TestResponseCache:
    def test_key_sorts_params_and_drops_none(self):
        assert ResponseCache.key('/api/search', {'q': 'rdm', 'limit': 5}) == '/api/search?limit=5&q=rdm'
        assert ResponseCache.key('/api/rules', {'category': None}) == '/api/rules'

    def test_entries_expire(self, cache, clock):
        cache.set('/api/rules', ['A.1'], ttl=10)
        assert cache.get('/api/rules') == ['A.1']
        clock.advance(10)
        assert cache.get('/api/rules') is None
        assert len(cache) == 0

    def test_invalidate_by_prefix_and_regex(self, cache):
        cache.set('/api/rules', [])
        cache.set('/api/rules?category=A', [])
        cache.set('/api/search?q=rdm', [])
        cache.set('/api/announcements', [])
        assert cache.invalidate('/api/rules') == 2
        assert cache.invalidate(re.compile(r'^/api/(search|announcements)')) == 2
        assert len(cache) == 0

    def test_cleanup_and_stats(self, cache, clock):
        cache.set('short', 1, ttl=5)
        cache.set('long', 2, ttl=500)
        cache.get('long')
        cache.get('missing')
        clock.advance(6)

        stats = cache.stats()
        assert stats['total'] == 2
        assert stats['valid'] == 1
        assert stats['expired'] == 1
        assert stats['hitRate'] == 0.5

        assert cache.cleanup() == 1
        assert len(cache) == 1


class TestRulesClient:
    @pytest.fixture()
    def calls(self):
        return []

    @pytest.fixture()
    def api(self, cache, calls, monkeypatch):
        responses = {}

        def fake_request(method, url, params=None, json=None, timeout=None):
            calls.append((method, url, params, json))
            return responses.get((method, url), FakeResponse({}))

        client = RulesClient('http://rules.test/', cache=cache)
        monkeypatch.setattr(client.session, 'request', fake_request)
        client.responses = responses
        yield client
        client.close()

    def test_reads_are_cached(self, api, calls, clock):
        api.responses[('GET', 'http://rules.test/api/categories')] = FakeResponse([{'letter_code': 'A'}])
        assert api.categories() == [{'letter_code': 'A'}]
        assert api.categories() == [{'letter_code': 'A'}]
        assert len(calls) == 1

        clock.advance(CACHE_TTL['categories'])
        api.categories()
        assert len(calls) == 2

    def test_rule_writes_invalidate_rule_reads(self, api, calls):
        api.responses[('GET', 'http://rules.test/api/rules')] = FakeResponse([])
        api.responses[('GET', 'http://rules.test/api/announcements')] = FakeResponse([])
        api.rules('A')
        api.announcements()

        api.create_rule({'categoryId': 1, 'title': 't', 'content': 'c'})
        assert api.cache.get('/api/rules?category=A') is None
        assert api.cache.get('/api/announcements') == []

    def test_short_search_never_hits_the_server(self, api, calls):
        assert api.search(' a ') == []
        assert calls == []

    def test_error_responses_raise(self, api):
        api.responses[('GET', 'http://rules.test/api/rules/code/Z.1')] = FakeResponse(
            {'error': 'Rule not found'}, status_code=404, reason='NOT FOUND',
        )
        with pytest.raises(APIError) as excinfo:
            api.rule_by_code('Z.1')
        assert excinfo.value.status_code == 404
        assert excinfo.value.message == 'Rule not found'

    def test_non_json_error_uses_reason(self, api):
        api.responses[('GET', 'http://rules.test/health')] = FakeResponse(
            ValueError('not json'), status_code=502, reason='Bad Gateway',
        )
        with pytest.raises(APIError) as excinfo:
            api.health()
        assert excinfo.value.message == 'Bad Gateway'

    def test_close_clears_the_cache(self, cache):
        client = RulesClient('http://rules.test', cache=cache)
        cache.set('/api/rules', [])
        with client:
            pass
        assert len(cache) == 0
