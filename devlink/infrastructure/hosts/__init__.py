"""
Host configuration storage
"""
from .file_store import FileHostStore

__all__ = ["FileHostStore"]
