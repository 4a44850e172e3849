"""Store subpackage - equipment and booking persistence."""
from .memory import InMemoryStore
from .sql import SqlStore

__all__ = ['InMemoryStore', 'SqlStore']
