"""Durable record of provisioned instances."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel

from spinup.logging_schema import LogEvent
from spinup.store.database import SQLStore
from spinup.store.models import ClusterRecord

logger = logging.getLogger(__name__)


class MetadataStore(SQLStore):
    """Insert-only store of ClusterRecords."""

    async def ensure_schema(self) -> None:
        """Create the clusterInfo table if it does not exist."""

        async def create() -> None:
            async with self._engine.begin() as conn:
                await conn.run_sync(
                    SQLModel.metadata.create_all,
                    tables=[ClusterRecord.__table__],
                    checkfirst=True,
                )

        await self._guard("ensure_schema", create)
        logger.info(
            "Schema ready", extra={"event": LogEvent.DB_SCHEMA_READY, "table": "clusterInfo"}
        )

    async def record_instance(
        self,
        cluster_id: str,
        name: str,
        port: int,
        owner_id: str = "",
    ) -> ClusterRecord:
        """Insert one ClusterRecord in its own transaction."""

        async def insert(session: AsyncSession) -> ClusterRecord:
            record = ClusterRecord(cluster_id=cluster_id, owner_id=owner_id, name=name, port=port)
            session.add(record)
            await session.flush()
            return record

        record = await self._transaction("record_instance", insert)
        logger.info(
            "Instance recorded",
            extra={
                "event": LogEvent.INSTANCE_RECORDED,
                "cluster_id": cluster_id,
                "instance": name,
                "port": port,
            },
        )
        return record

    async def get_instance(self, cluster_id: str) -> ClusterRecord | None:
        async def fetch(session: AsyncSession) -> ClusterRecord | None:
            result = await session.execute(
                select(ClusterRecord).where(ClusterRecord.cluster_id == cluster_id)
            )
            return result.scalars().first()

        return await self._transaction("get_instance", fetch)

    async def find_instance(self, owner_id: str, name: str) -> ClusterRecord | None:
        async def fetch(session: AsyncSession) -> ClusterRecord | None:
            result = await session.execute(
                select(ClusterRecord).where(
                    ClusterRecord.owner_id == owner_id,
                    ClusterRecord.name == name,
                )
            )
            return result.scalars().first()

        return await self._transaction("find_instance", fetch)

    async def find_by_name(self, name: str) -> ClusterRecord | None:
        """Any owner's record using ``name``; runtime resource names are host-wide."""

        async def fetch(session: AsyncSession) -> ClusterRecord | None:
            result = await session.execute(
                select(ClusterRecord).where(ClusterRecord.name == name).order_by(ClusterRecord.id)
            )
            return result.scalars().first()

        return await self._transaction("find_by_name", fetch)

    async def list_ports(self) -> list[int]:
        """Ports held by recorded instances, used to seed port reservations."""

        async def fetch(session: AsyncSession) -> list[int]:
            result = await session.execute(select(ClusterRecord.port))
            return list(result.scalars().all())

        return await self._transaction("list_ports", fetch)
