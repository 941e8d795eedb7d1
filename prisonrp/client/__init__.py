"""Python client for the rules site API with a response cache."""

from .api import CACHE_TTL, APIError, RulesClient
from .cache import ResponseCache

__all__ = ['RulesClient', 'ResponseCache', 'APIError', 'CACHE_TTL']
