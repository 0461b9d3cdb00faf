"""Per-owner registration state store (States store, bucket ``by-owner``)."""
import json
from pathlib import Path

from loguru import logger

from ..errors import StorageFault
from ..registration.states import RegistrationState, state_from_dict
from .kv import KVStore

logger = logger.bind(module="storage.states")

STATE_BUCKET = "by-owner"


class StateStore:
    """Stores the registration stage an owner is at. No record means idle."""

    def __init__(self, db_path: str | Path):
        self.kv = KVStore(db_path)

    async def initialize(self) -> None:
        self.kv.open()
        logger.info(f"State store initialized at {self.kv.db_path}")

    async def close(self) -> None:
        self.kv.close()

    async def get(self, owner_id: str) -> RegistrationState | None:
        """Retrieve the stored state, or None if the owner is idle."""
        with self.kv.transaction() as txn:
            raw = txn.get(STATE_BUCKET, owner_id.encode("utf-8"))
        if raw is None:
            return None
        try:
            return state_from_dict(json.loads(raw.decode("utf-8")))
        except (KeyError, TypeError, ValueError, UnicodeDecodeError) as e:
            raise StorageFault(f"Corrupted registration state for {owner_id}: {e}") from e

    async def save(self, owner_id: str, state: RegistrationState) -> None:
        logger.debug(f"Saving registration state for {owner_id}: {state.stage}")
        value = json.dumps(state.to_dict(), separators=(",", ":")).encode("utf-8")
        with self.kv.transaction() as txn:
            txn.put(STATE_BUCKET, owner_id.encode("utf-8"), value)

    async def delete(self, owner_id: str) -> None:
        with self.kv.transaction() as txn:
            txn.delete(STATE_BUCKET, owner_id.encode("utf-8"))
