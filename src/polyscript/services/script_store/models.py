"""
Script Store Models

Data models for script definitions and their immutable versions.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScriptDefinition(BaseModel):
    """Persisted, user-authored script.

    Definitions with a ``key`` are system scripts: the key is unique, never
    changed by an update, and keyed definitions are excluded from listings.

    :param title: Unique, non-empty display name
    :param language: Language identifier as stored (resolved at dispatch time)
    :param code: Source code
    :param configuration: Opaque configuration mapping passed to the script as ``config``
    :param run_as_user_id: Identity the script runs as
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    key: str | None = Field(None, description="Unique system key; immutable through update")
    title: str = Field(..., description="Unique display name")
    language: str = Field(..., description="Language identifier")
    code: str = Field("", description="Script source code")
    configuration: dict[str, Any] = Field(default_factory=dict)
    description: str = ""
    category: str | None = None
    run_as_user_id: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("run_as_user_id", mode="before")
    @classmethod
    def _coerce_user(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        return str(value)


class ScriptVersion(BaseModel):
    """Immutable snapshot of a definition taken just before it was updated.

    ``created_at`` is the definition's original creation time; ``updated_at``
    is the moment the snapshot was taken.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    script_id: str
    key: str | None = None
    title: str
    language: str
    code: str
    configuration: dict[str, Any] = Field(default_factory=dict)
    description: str = ""
    created_at: datetime
    updated_at: datetime

    @classmethod
    def snapshot(cls, script: ScriptDefinition, taken_at: datetime) -> "ScriptVersion":
        return cls(
            script_id=script.id,
            key=script.key,
            title=script.title,
            language=script.language,
            code=script.code,
            configuration=dict(script.configuration),
            description=script.description,
            created_at=script.created_at,
            updated_at=taken_at,
        )


@dataclass
class ScriptPage:
    """One page of a script listing."""

    data: list[ScriptDefinition]
    total: int
    per_page: int
    current_page: int
    filter: str | None = None
    order_by: str = "title"
    sort_order: str = "ASC"

    @property
    def last_page(self) -> int:
        return max(1, -(-self.total // self.per_page))

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": [script.model_dump(mode="json") for script in self.data],
            "meta": {
                "total": self.total,
                "per_page": self.per_page,
                "current_page": self.current_page,
                "last_page": self.last_page,
                "filter": self.filter,
                "sort_by": self.order_by,
                "sort_order": self.sort_order,
            },
        }
