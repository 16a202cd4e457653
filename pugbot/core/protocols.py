"""Protocol definitions for the collaborators the engine and orchestrator depend on.

Everything is async. Optional collaborators (queue membership, activity,
preferences, queue history) may be absent; callers check for ``None``.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable


@runtime_checkable
class Messageable(Protocol):
    """A user DM handle or a channel that accepts text."""

    async def send(self, content: str) -> Optional[str]:
        """Post ``content``.

        Returns:
            Transport message id, if the transport exposes one.

        Raises:
            TransportError: If the message could not be delivered.
        """
        ...


@runtime_checkable
class MessagingTransport(Protocol):
    async def get_user(self, user_id: str) -> Optional[Messageable]: ...

    async def get_channel(self, channel_id: str) -> Optional[Messageable]: ...

    async def get_username(self, user_id: str) -> Optional[str]: ...

    async def get_presence(self, user_id: str) -> str:
        """Return one of ``online``, ``idle``, ``dnd`` or ``offline``."""
        ...


@runtime_checkable
class AuditSink(Protocol):
    async def log_event(self, category: str, event_type: str, subject_id: str, payload: Dict[str, Any]) -> None: ...


@runtime_checkable
class ConfigSource(Protocol):
    async def get_config(self, name: str) -> Optional[Dict[str, Any]]: ...

    async def update_config(self, name: str, updates: Dict[str, Any]) -> Dict[str, Any]: ...

    async def set_config(self, name: str, data: Dict[str, Any]) -> None: ...

    async def remove_fields(self, name: str, fields: List[str]) -> Dict[str, Any]: ...


@runtime_checkable
class SchemaStore(Protocol):
    """Versioned configuration schema transforms."""

    async def transform_schema(
        self, target: str, from_version: str, to_version: str, transforms: List[Dict[str, Any]]
    ) -> None: ...

    async def revert_schema(self, target: str, from_version: str, to_version: str) -> None: ...


@runtime_checkable
class DataStore(Protocol):
    async def add_field(self, table: str, field_name: str, default_value: Any = None) -> None: ...

    async def remove_field(self, table: str, field_name: str) -> None: ...

    async def transform_data(self, table: str, transform_name: str) -> int: ...


@runtime_checkable
class StorageSchema(Protocol):
    async def table_exists(self, table: str) -> bool: ...

    async def create_table(self, table: str, schema: Dict[str, str]) -> None: ...

    async def add_columns(self, table: str, columns: List[Dict[str, Any]]) -> None: ...

    async def drop_columns(self, table: str, columns: List[str]) -> None: ...

    async def drop_table(self, table: str) -> None: ...


@runtime_checkable
class ProvisionedResource(Protocol):
    id: str
    name: str


@runtime_checkable
class ResourceProvisioner(Protocol):
    """Creates guild channels and roles on demand."""

    async def ensure_channel(self, spec: Dict[str, Any]) -> ProvisionedResource: ...

    async def ensure_role(self, spec: Dict[str, Any]) -> ProvisionedResource: ...

    async def delete_channel(self, channel_id: str) -> None: ...

    async def delete_role(self, role_id: str) -> None: ...


@runtime_checkable
class CommandRegistryProtocol(Protocol):
    def register_command(self, command: Dict[str, Any]) -> None: ...

    def unregister_command(self, name: str) -> bool: ...


@runtime_checkable
class EventBinderProtocol(Protocol):
    def subscribe_to_event(self, source: str, event: str, handler_name: str) -> None: ...

    def unsubscribe_from_event(self, source: str, event: str, handler_name: str) -> bool: ...

    def expose_method(self, name: str, handler_name: str) -> None: ...

    def unexpose_method(self, name: str) -> bool: ...


# Optional lookups used by the default hook policies


@runtime_checkable
class QueueMembership(Protocol):
    async def is_user_in_queue(self, user_id: str, queue_id: Optional[str]) -> bool: ...

    async def get_user_active_matches(self, user_id: str) -> List[Dict[str, Any]]: ...

    async def get_queue_status(self, queue_id: str) -> Optional[Dict[str, Any]]:
        """Return at least ``percentage``, the queue fill level from 0 to 100."""
        ...


@runtime_checkable
class ActivityTracker(Protocol):
    async def get_last_active_time(self, user_id: str) -> Optional[datetime]: ...


@runtime_checkable
class PreferenceLookup(Protocol):
    async def get_notification_preferences(self, user_id: str) -> Optional[Dict[str, Any]]: ...


@runtime_checkable
class QueueHistory(Protocol):
    async def get_user_queue_history(self, user_id: str, days: int) -> Optional[Dict[str, int]]:
        """Return counts keyed ``queued`` and ``abandoned``."""
        ...
