"""Database models for spinup.

Models are defined using SQLModel (SQLAlchemy + Pydantic).

Tables:
- clusterInfo: one row per provisioned instance (insert-only)
- backup: backup schedules referencing clusterInfo.clusterId
"""

from sqlalchemy import Column, ForeignKey, Integer, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


class ClusterRecord(SQLModel, table=True):
    """Persisted identity and port of a provisioned instance."""

    __tablename__ = "clusterInfo"
    __table_args__ = (
        UniqueConstraint("ownerId", "name", name="uq_cluster_owner_name"),
        {"sqlite_autoincrement": True},
    )

    id: int | None = Field(default=None, primary_key=True)
    cluster_id: str = Field(sa_column=Column("clusterId", Text, nullable=False, unique=True))
    owner_id: str = Field(default="", sa_column=Column("ownerId", Text, nullable=False))
    name: str = Field(sa_column=Column("name", Text, nullable=False))
    port: int = Field(sa_column=Column("port", Integer, nullable=False))


class BackupRecord(SQLModel, table=True):
    """Cron-style backup schedule for one cluster."""

    __tablename__ = "backup"
    __table_args__ = {"sqlite_autoincrement": True}

    id: int | None = Field(default=None, primary_key=True)
    cluster_id: str = Field(
        sa_column=Column(
            "clusterid",
            Text,
            ForeignKey("clusterInfo.clusterId"),
            nullable=False,
            index=True,
        )
    )
    # JSON: name, bucket_name, api_key_id (never the secret)
    destination: str = Field(sa_column=Column("destination", Text, nullable=False))
    minute: int = Field(sa_column=Column("minute", Integer, nullable=False))
    hour: int = Field(sa_column=Column("hour", Integer, nullable=False))
    dom: int = Field(sa_column=Column("dom", Integer, nullable=False))
    month: int = Field(sa_column=Column("month", Integer, nullable=False))
    dow: int = Field(sa_column=Column("dow", Integer, nullable=False))
