"""
Video proxy core components

Foundational infrastructure shared by the client, poller and server:
- Environment-driven configuration
- Store mode feature flag
- Circuit breaker for the upstream video API
"""

from .circuit_breaker import CircuitBreaker, CircuitBreakerOpen, CircuitState
from .config import Config, get_config
from .feature_flags import StoreMode, get_store_mode

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerOpen",
    "CircuitState",
    "Config",
    "get_config",
    "StoreMode",
    "get_store_mode",
]
