"""Log event types for structured logging."""

from enum import StrEnum


class LogEvent(StrEnum):
    """Log event types for spinup.

    Used with logger.info/warning/error extra dict:
        logger.info("message", extra={"event": LogEvent.VOLUME_CREATED, ...})
    """

    # Port allocation
    PORT_ALLOCATED = "port_allocated"
    PORT_OCCUPIED = "port_occupied"
    PORT_RELEASED = "port_released"
    PORTS_EXHAUSTED = "ports_exhausted"
    PORT_PROBE_FAILED = "port_probe_failed"

    # Runtime resources
    VOLUME_CREATED = "volume_created"
    VOLUME_REMOVED = "volume_removed"
    NETWORK_CREATED = "network_created"
    NETWORK_REMOVED = "network_removed"
    CONTAINER_CREATED = "container_created"
    CONTAINER_STARTED = "container_started"
    CONTAINER_STOPPED = "container_stopped"
    CONTAINER_REMOVED = "container_removed"
    CONTAINER_EXEC = "container_exec"
    IMAGE_PULLED = "image_pulled"

    # Provisioning lifecycle
    STATE_CHANGED = "state_changed"
    PROVISION_STARTED = "provision_started"
    PROVISION_COMPLETED = "provision_completed"
    PROVISION_FAILED = "provision_failed"
    ROLLBACK_STARTED = "rollback_started"
    ROLLBACK_STEP_FAILED = "rollback_step_failed"
    ROLLBACK_COMPLETED = "rollback_completed"

    # Persistence
    DB_CONNECTED = "db_connected"
    DB_SCHEMA_READY = "db_schema_ready"
    INSTANCE_RECORDED = "instance_recorded"
    DB_ERROR = "db_error"

    # Backup schedules
    BACKUP_SCHEDULED = "backup_scheduled"
    BACKUP_REJECTED = "backup_rejected"

    # Error events
    OPERATION_TIMEOUT = "operation_timeout"
