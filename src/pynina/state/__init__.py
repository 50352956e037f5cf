"""State layer.

This package is the single owner of the unified observatory state: how
normalized events are merged into it and how changes are fanned out to
subscribers.
"""
