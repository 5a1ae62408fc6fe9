"""Backup schedule registration.

A schedule is accepted only when:
- backups are enabled for the instance
- the destination provider is supported
- both credential fields are non-empty
- every cron field is within range
- the instance has a cluster record
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlmodel import SQLModel

from spinup.backup.schedule import Destination, Schedule, parse_destination, parse_schedule
from spinup.errors import InstanceNotFoundError, ValidationError
from spinup.logging_schema import LogEvent
from spinup.store.database import SQLStore
from spinup.store.models import BackupRecord, ClusterRecord

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

    from spinup.config import BackupConfig

logger = logging.getLogger(__name__)


class BackupScheduleRegistry(SQLStore):
    """Validates and persists backup schedules tied to cluster records."""

    def __init__(self, engine: AsyncEngine, config: BackupConfig, timeout: float = 3.0) -> None:
        super().__init__(engine, timeout)
        self._providers = frozenset(config.supported_providers)

    async def ensure_schema(self) -> None:
        """Create the backup table (and its parent) if absent."""

        async def create() -> None:
            async with self._engine.begin() as conn:
                await conn.run_sync(
                    SQLModel.metadata.create_all,
                    tables=[ClusterRecord.__table__, BackupRecord.__table__],
                    checkfirst=True,
                )

        await self._guard("ensure_schema", create)
        logger.info("Schema ready", extra={"event": LogEvent.DB_SCHEMA_READY, "table": "backup"})

    def validate(
        self,
        schedule: Schedule | Mapping[str, Any],
        destination: Destination | Mapping[str, Any],
        backup_enabled: bool,
    ) -> tuple[Schedule, Destination]:
        """Check the preconditions that need no database access."""
        if not backup_enabled:
            raise ValidationError("backup is not enabled")
        dest = parse_destination(destination)
        if dest.name not in self._providers:
            supported = ", ".join(sorted(self._providers))
            raise ValidationError(f"Destination other than {supported} is not supported")
        if not dest.api_key_id or not dest.api_key_secret.get_secret_value():
            raise ValidationError("API key id and API key secret is mandatory")
        return parse_schedule(schedule), dest

    async def register_schedule(
        self,
        instance_id: str,
        schedule: Schedule | Mapping[str, Any],
        destination: Destination | Mapping[str, Any],
        backup_enabled: bool = True,
    ) -> BackupRecord:
        """Persist a schedule for ``instance_id`` in one transaction.

        Raises:
            ValidationError: A precondition failed; nothing was written.
            InstanceNotFoundError: No cluster record for ``instance_id``.
            PersistenceError: The transaction failed and was rolled back.
            OperationTimeoutError: The transaction exceeded its deadline.
        """
        try:
            sched, dest = self.validate(schedule, destination, backup_enabled)
        except ValidationError as exc:
            logger.warning(
                "Backup schedule rejected: %s",
                exc.message,
                extra={"event": LogEvent.BACKUP_REJECTED, "cluster_id": instance_id},
            )
            raise

        async def insert(session: AsyncSession) -> BackupRecord:
            result = await session.execute(
                select(ClusterRecord.id).where(ClusterRecord.cluster_id == instance_id)
            )
            if result.first() is None:
                raise InstanceNotFoundError(f"no cluster record for {instance_id}")
            record = BackupRecord(
                cluster_id=instance_id,
                destination=dest.to_record(),
                minute=sched.minute,
                hour=sched.hour,
                dom=sched.day_of_month,
                month=sched.month,
                dow=sched.day_of_week,
            )
            session.add(record)
            await session.flush()
            return record

        record = await self._transaction("register_schedule", insert)
        logger.info(
            "Backup scheduled",
            extra={
                "event": LogEvent.BACKUP_SCHEDULED,
                "cluster_id": instance_id,
                "cron": sched.to_cron(),
                "destination": dest.name,
            },
        )
        return record

    async def list_schedules(self, instance_id: str) -> list[BackupRecord]:
        async def fetch(session: AsyncSession) -> list[BackupRecord]:
            result = await session.execute(
                select(BackupRecord)
                .where(BackupRecord.cluster_id == instance_id)
                .order_by(BackupRecord.id)
            )
            return list(result.scalars().all())

        return await self._transaction("list_schedules", fetch)
