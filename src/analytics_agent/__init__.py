"""Analytics agent package."""

from .config import AgentConfig, QueryConfig, RetrievalConfig, Settings, ShaperConfig

__all__ = ["AgentConfig", "QueryConfig", "RetrievalConfig", "Settings", "ShaperConfig"]
