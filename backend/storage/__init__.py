# backend/storage/__init__.py
# Scratch store

from .scratch_store import ScratchStore

__all__ = ["ScratchStore"]
