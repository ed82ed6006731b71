"""CLI commands package."""

from . import embeddings, inspect

__all__ = [
    'embeddings',
    'inspect',
]
