"""News content platform core: storage, caching, trending, similarity and personalization."""

__version__ = "0.1.0"
