from .config import ConfigurationError, RelayConfig, load_config, validate_config
from .session_store import InMemorySessionStore

__all__ = ["ConfigurationError", "RelayConfig", "load_config", "validate_config", "InMemorySessionStore"]
