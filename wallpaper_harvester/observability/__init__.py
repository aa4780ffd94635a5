"""
Observability Module — Structured harvest events.
"""

from .events import EVENT_FIELDS, emit

__all__ = [
    "emit",
    "EVENT_FIELDS",
]
