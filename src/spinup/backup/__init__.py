"""Backup schedules."""

from spinup.backup.registry import BackupScheduleRegistry
from spinup.backup.schedule import Destination, Schedule, parse_destination, parse_schedule

__all__ = [
    "BackupScheduleRegistry",
    "Destination",
    "Schedule",
    "parse_destination",
    "parse_schedule",
]
