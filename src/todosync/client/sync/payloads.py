"""Typed payloads for sync queue entries.

Payloads are stored as JSON text, but each (entity_type, action_type) pair
has its own schema. Entries are parsed against the schema before dispatch so
a malformed snapshot surfaces as a ValidationError for that entry only.

    | Entity | Action | Schema       | Remote call                  |
    |--------|--------|--------------|------------------------------|
    | todo   | CREATE | TodoSnapshot | create(request)              |
    | todo   | UPDATE | TodoSnapshot | update(remote_id, request)   |
    | todo   | DELETE | TodoRef      | delete(remote_id)            |
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import date
from decimal import Decimal
from typing import Any, Literal

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from todosync.client.api import TodoRequest
from todosync.client.sync.types import ValidationError
from todosync.core.types import ActionType, EntityType

Priority = Literal["low", "medium", "high"]


class TodoSnapshot(BaseModel):
    """State of a local todo at the time of the mutation."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: int | None = None
    title: str = Field(min_length=1)
    description: str | None = None
    completed: bool = False
    priority: Priority = "medium"
    due_date: str | None = None
    user_id: int | None = None

    def to_request(self, created_at: int) -> TodoRequest:
        """Map the snapshot to the API request body."""
        return TodoRequest(
            entity_id=self.id,
            title=self.title,
            description=self.description,
            completed=self.completed,
            priority=self.priority,
            due_date=self.due_date,
            user_id=self.user_id,
            created_at=str(created_at),
        )


class TodoRef(BaseModel):
    """Payload of a todo deletion: only the identity matters."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: int | None = None


PAYLOAD_SCHEMAS: dict[tuple[str, ActionType], type[BaseModel]] = {
    (EntityType.TODO.value, ActionType.CREATE): TodoSnapshot,
    (EntityType.TODO.value, ActionType.UPDATE): TodoSnapshot,
    (EntityType.TODO.value, ActionType.DELETE): TodoRef,
}


def payload_schema(entity_type: str, action_type: ActionType | str) -> type[BaseModel]:
    """Look up the payload schema for an entity/action pair.

    Raises:
        ValidationError: If the pair has no schema.
    """
    try:
        return PAYLOAD_SCHEMAS[(entity_type, ActionType(action_type))]
    except (KeyError, ValueError):
        raise ValidationError(
            f"No payload schema for {entity_type}/{action_type}"
        ) from None


def _describe(error: pydantic.ValidationError) -> str:
    parts = []
    for err in error.errors():
        location = ".".join(str(p) for p in err["loc"]) or "payload"
        parts.append(f"{location}: {err['msg']}")
    return "; ".join(parts)


def parse_payload(
    entity_type: str,
    action_type: ActionType | str,
    raw: str,
) -> BaseModel:
    """Deserialize a stored payload into its typed variant.

    Args:
        entity_type: Entity type of the entry.
        action_type: Action type of the entry.
        raw: JSON text stored in the queue.

    Returns:
        Parsed payload model.

    Raises:
        ValidationError: If the schema is unknown or the payload does not match it.
    """
    schema = payload_schema(entity_type, action_type)
    try:
        return schema.model_validate_json(raw)
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid {entity_type} payload: {_describe(e)}") from e


def _json_default(obj: Any) -> Any:
    """JSON serialization fallback for dates and decimals."""
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, date):
        return obj.isoformat()
    raise TypeError(f"Object of type {obj.__class__.__name__} is not JSON serializable")


def serialize_payload(payload: Mapping[str, Any] | BaseModel | str) -> str:
    """Serialize a payload snapshot to JSON text.

    Strings are taken as already-serialized JSON and only checked.

    Raises:
        ValidationError: If the payload is not JSON serializable.
    """
    if isinstance(payload, BaseModel):
        return payload.model_dump_json()
    if isinstance(payload, str):
        try:
            json.loads(payload)
        except ValueError as e:
            raise ValidationError(f"Payload is not valid JSON: {e}") from e
        return payload
    try:
        return json.dumps(dict(payload), ensure_ascii=False, default=_json_default)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Payload is not JSON serializable: {e}") from e
