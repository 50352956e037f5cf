"""Ingestion layer.

This package turns what NINA sends (live socket events, event history)
into calls on the state manager.  Live and replayed events share one
normalizer.
"""

__all__: list[str] = []
