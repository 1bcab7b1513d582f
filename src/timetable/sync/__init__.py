"""Optimistic status-field mutations with retry and rollback."""

from timetable.sync.controller import MutationResult, MutationState, ResilientMutationController
from timetable.sync.store import STATUS_FIELDS, LocalStatusView, StatusStore

__all__ = [
    "STATUS_FIELDS",
    "LocalStatusView",
    "MutationResult",
    "MutationState",
    "ResilientMutationController",
    "StatusStore",
]
