"""Conversational registration of reminder jobs."""
from .states import (
    AwaitDays,
    AwaitDeleteSelection,
    AwaitRoute,
    AwaitStop,
    AwaitTime,
    RegistrationState,
    Stage,
)

__all__ = [
    "AwaitDays",
    "AwaitDeleteSelection",
    "AwaitRoute",
    "AwaitStop",
    "AwaitTime",
    "RegistrationState",
    "Stage",
]
