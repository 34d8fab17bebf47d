"""Checkpoint persistence for graph runs.

The execution engine writes an append-only line of checkpoints per thread
through the BaseCheckpointer interface. Two implementations ship here: an
in-process store and a SQLite store built on aiosqlite.
"""

from .base_checkpointer import BaseCheckpointer
from .base_checkpointer import CheckpointerConfig
from .base_checkpointer import CheckpointReader
from .in_memory_checkpointer import InMemoryCheckpointer
from .models import Checkpoint
from .models import CheckpointSource
from .models import ListCheckpointsResponse
from .sqlite_checkpointer import SqliteCheckpointer

__all__ = [
    "BaseCheckpointer",
    "CheckpointerConfig",
    "CheckpointReader",
    "InMemoryCheckpointer",
    "SqliteCheckpointer",
    "Checkpoint",
    "CheckpointSource",
    "ListCheckpointsResponse",
]
