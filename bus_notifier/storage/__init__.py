"""Durable stores.

- kv.py: transactional bucketed key-value store over SQLite
- job_store.py: reminder jobs indexed by owner and by weekday
- state_store.py: per-owner registration state
"""
from .kv import KVStore
from .job_store import JobStore
from .state_store import StateStore

__all__ = ["KVStore", "JobStore", "StateStore"]
