"""Durable reminder job store with two synchronized indices.

Layout (one SQLite file, two buckets):
- ``by-owner``:   owner id     -> {"v": 1, "jobs": [job, ...]}
- ``by-weekday``: weekday name -> {"v": 1, "owners": [owner id, ...]}

Invariant: an owner is listed under weekday ``w`` in ``by-weekday`` iff
that owner has at least one job with weekday ``w`` in ``by-owner``.

Only ``_insert`` and ``_remove`` write to either bucket, and both update
the two indices inside the same transaction.
"""
import json
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from loguru import logger

from ..errors import DesyncError, StorageFault
from ..scheduler.models import ReminderJob
from ..scheduler.types import ENCODING_VERSION, Weekday, check_version
from .kv import KVStore, Transaction

logger = logger.bind(module="storage.jobs")

OWNER_BUCKET = "by-owner"
WEEKDAY_BUCKET = "by-weekday"


def _encode(data: dict[str, Any]) -> bytes:
    return json.dumps({"v": ENCODING_VERSION, **data}, separators=(",", ":")).encode("utf-8")


def _decode(raw: bytes | None, kind: str) -> dict[str, Any]:
    if raw is None:
        return {}
    try:
        data = json.loads(raw.decode("utf-8"))
        check_version(data, kind)
    except (ValueError, UnicodeDecodeError) as e:
        raise StorageFault(f"Corrupted {kind} record: {e}") from e
    return data


class JobStore:
    """Reminder jobs indexed by owner and by weekday."""

    def __init__(self, db_path: str | Path):
        """Initialize store.

        Args:
            db_path: SQLite file holding the jobs buckets
        """
        self.kv = KVStore(db_path)

    # ============== Lifecycle ==============

    async def initialize(self) -> None:
        self.kv.open()
        logger.info(f"Job store initialized at {self.kv.db_path}")

    async def close(self) -> None:
        self.kv.close()

    # ============== Writes ==============

    async def store_job(self, job: ReminderJob) -> bool:
        """Store a job. Returns False if an identical job already exists."""
        return bool(await self.store_jobs([job]))

    async def store_jobs(self, jobs: Iterable[ReminderJob]) -> list[ReminderJob]:
        """Store several jobs in one transaction.

        Already-present jobs are skipped.

        Returns:
            The jobs that were newly inserted
        """
        jobs = list(jobs)
        inserted: list[ReminderJob] = []
        with self.kv.transaction() as txn:
            for job in jobs:
                if self._insert(txn, job):
                    inserted.append(job)
        for job in inserted:
            logger.debug(f"Stored job {job.identity}")
        return inserted

    async def delete_job(self, job: ReminderJob) -> bool:
        """Delete a job. Returns False if it was not stored."""
        with self.kv.transaction() as txn:
            removed = self._remove(txn, job)
        if removed:
            logger.debug(f"Deleted job {job.identity}")
        return removed

    # ============== Reads ==============

    async def get_jobs_by_owner(self, owner_id: str) -> list[ReminderJob]:
        """All jobs of an owner, in the order they were stored."""
        with self.kv.transaction() as txn:
            return self._owner_jobs(txn, owner_id)

    async def get_jobs_by_weekday(self, weekday: Weekday) -> list[ReminderJob]:
        """All jobs firing on ``weekday``, resolved through the weekday index.

        Owners listed in the index without a matching job are logged and
        contribute nothing.
        """
        jobs: list[ReminderJob] = []
        with self.kv.transaction() as txn:
            for owner_id in self._weekday_owners(txn, weekday):
                try:
                    jobs.extend(self._owner_jobs_on(txn, owner_id, weekday))
                except DesyncError as e:
                    logger.warning(str(e))
        return jobs

    # ============== Maintenance ==============

    async def reindex(self) -> int:
        """Rebuild the weekday index from the owner index.

        Returns:
            Number of weekday entries that changed
        """
        with self.kv.transaction() as txn:
            expected: dict[Weekday, list[str]] = {day: [] for day in Weekday}
            for key, raw in txn.items(OWNER_BUCKET):
                owner_id = key.decode("utf-8")
                for job in self._parse_jobs(raw):
                    if owner_id not in expected[job.weekday]:
                        expected[job.weekday].append(owner_id)

            changed = 0
            for day, owners in expected.items():
                current = self._weekday_owners(txn, day)
                if set(current) == set(owners):
                    continue
                changed += 1
                logger.warning(
                    f"Repairing weekday index for {day.label}: {current} -> {owners}"
                )
                self._write_weekday_owners(txn, day, owners)
        return changed

    # ============== Paired index mutations ==============

    def _insert(self, txn: Transaction, job: ReminderJob) -> bool:
        jobs = self._owner_jobs(txn, job.owner_id)
        if any(existing.identity == job.identity for existing in jobs):
            logger.debug(f"Job already exists: {job.identity}")
            return False
        jobs.append(job)
        self._write_owner_jobs(txn, job.owner_id, jobs)

        owners = self._weekday_owners(txn, job.weekday)
        if job.owner_id not in owners:
            owners.append(job.owner_id)
            self._write_weekday_owners(txn, job.weekday, owners)
        return True

    def _remove(self, txn: Transaction, job: ReminderJob) -> bool:
        jobs = self._owner_jobs(txn, job.owner_id)
        remaining = [j for j in jobs if j.identity != job.identity]
        if len(remaining) == len(jobs):
            return False
        self._write_owner_jobs(txn, job.owner_id, remaining)

        # Recomputed from what is left, never assumed
        if not any(j.weekday == job.weekday for j in remaining):
            owners = self._weekday_owners(txn, job.weekday)
            if job.owner_id in owners:
                owners.remove(job.owner_id)
                self._write_weekday_owners(txn, job.weekday, owners)
        return True

    # ============== Bucket access ==============

    def _owner_jobs(self, txn: Transaction, owner_id: str) -> list[ReminderJob]:
        return self._parse_jobs(txn.get(OWNER_BUCKET, owner_id.encode("utf-8")))

    def _owner_jobs_on(
        self, txn: Transaction, owner_id: str, weekday: Weekday
    ) -> list[ReminderJob]:
        jobs = [j for j in self._owner_jobs(txn, owner_id) if j.weekday == weekday]
        if not jobs:
            raise DesyncError(owner_id, weekday.label)
        return jobs

    @staticmethod
    def _parse_jobs(raw: bytes | None) -> list[ReminderJob]:
        data = _decode(raw, "job list")
        try:
            return [ReminderJob.from_dict(item) for item in data.get("jobs", [])]
        except (KeyError, TypeError, ValueError) as e:
            raise StorageFault(f"Corrupted job record: {e}") from e

    def _write_owner_jobs(
        self, txn: Transaction, owner_id: str, jobs: list[ReminderJob]
    ) -> None:
        key = owner_id.encode("utf-8")
        if jobs:
            txn.put(OWNER_BUCKET, key, _encode({"jobs": [j.to_dict() for j in jobs]}))
        else:
            txn.delete(OWNER_BUCKET, key)

    def _weekday_owners(self, txn: Transaction, weekday: Weekday) -> list[str]:
        data = _decode(txn.get(WEEKDAY_BUCKET, weekday.label.encode("utf-8")), "weekday index")
        return [str(owner) for owner in data.get("owners", [])]

    def _write_weekday_owners(
        self, txn: Transaction, weekday: Weekday, owners: list[str]
    ) -> None:
        key = weekday.label.encode("utf-8")
        if owners:
            txn.put(WEEKDAY_BUCKET, key, _encode({"owners": owners}))
        else:
            txn.delete(WEEKDAY_BUCKET, key)
