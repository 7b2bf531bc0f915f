"""Repositories for the flapboard tables.

Tags:
    repository, data-access
"""

from flapboard.core.repositories.board_states import BoardStateRepository
from flapboard.core.repositories.boards import BoardRepository
from flapboard.core.repositories.workflows import WorkflowRepository

__all__ = [
    "BoardRepository",
    "BoardStateRepository",
    "WorkflowRepository",
]
