from authflow.repositories.base import AuthAdapter
from authflow.repositories.memory import InMemoryAdapter

__all__ = ["AuthAdapter", "InMemoryAdapter"]
