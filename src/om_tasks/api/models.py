# src/om_tasks/api/models.py

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class TaskStatus(StrEnum):
    OPEN = "Open"
    CLOSED = "Closed"

    @classmethod
    def from_api(cls, raw: Any) -> TaskStatus:
        # Anything the server sends that is not explicitly closed is treated as open.
        if isinstance(raw, str) and raw.strip().lower() == "closed":
            return cls.CLOSED
        return cls.OPEN


class EntityType(StrEnum):
    TABLE = "table"
    TOPIC = "topic"
    DASHBOARD = "dashboard"
    PIPELINE = "pipeline"
    MLMODEL = "mlmodel"
    DATABASE = "database"
    DATABASE_SCHEMA = "databaseSchema"
    STORED_PROCEDURE = "storedProcedure"
    PROJECT = "project"
    INCIDENT = "incident"
    USER = "user"
    TEAM = "team"
    UNKNOWN = "unknown"

    @classmethod
    def from_api(cls, raw: Any) -> EntityType:
        if not raw:
            return cls.UNKNOWN
        try:
            return cls(str(raw))
        except ValueError:
            return cls.UNKNOWN


class ContentKind(StrEnum):
    SQL = "sql"
    JSON = "json"
    YAML = "yaml"
    OTHER = "other"


# Entity kind -> how its content is labelled. Kinds not listed fall back to OTHER.
CONTENT_KINDS: dict[EntityType, ContentKind] = {
    EntityType.TABLE: ContentKind.SQL,
    EntityType.STORED_PROCEDURE: ContentKind.SQL,
    EntityType.DASHBOARD: ContentKind.JSON,
}

def _str(raw: Any, default: str = "") -> str:
    return default if raw is None else str(raw)


def _num(raw: Any) -> int | None:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


@dataclass(slots=True, frozen=True)
class User:
    id: str
    name: str
    email: str = ""
    display_name: str | None = None

    @classmethod
    def from_api(cls, raw: Any) -> User | None:
        if not isinstance(raw, dict):
            return None
        return cls(
            id=_str(raw.get("id")),
            name=_str(raw.get("name")),
            email=_str(raw.get("email")),
            display_name=raw.get("displayName"),
        )


@dataclass(slots=True, frozen=True)
class Tag:
    tag_fqn: str
    label_type: str = "Manual"
    state: str = "Confirmed"
    source: str = ""

    @classmethod
    def from_api(cls, raw: Any) -> Tag | None:
        if not isinstance(raw, dict):
            return None
        return cls(
            tag_fqn=_str(raw.get("tagFQN")),
            label_type=_str(raw.get("labelType"), "Manual"),
            state=_str(raw.get("state"), "Confirmed"),
            source=_str(raw.get("source")),
        )


@dataclass(slots=True, frozen=True)
class ProjectRef:
    """A reference to a project. A task points at its project; it does not own it."""

    id: str
    name: str
    display_name: str | None = None

    @classmethod
    def from_api(cls, raw: Any) -> ProjectRef | None:
        if not isinstance(raw, dict) or not raw.get("name"):
            return None
        return cls(id=_str(raw.get("id")), name=_str(raw.get("name")), display_name=raw.get("displayName"))


@dataclass(slots=True, frozen=True)
class IncidentRef:
    id: str
    name: str
    severity: str | None = None

    @classmethod
    def from_api(cls, raw: Any) -> IncidentRef | None:
        if not isinstance(raw, dict) or not raw.get("id"):
            return None
        return cls(id=_str(raw.get("id")), name=_str(raw.get("name")), severity=raw.get("severity"))


@dataclass(slots=True)
class Task:
    id: str
    name: str
    description: str
    entity_id: str
    entity_type: EntityType
    type: str
    status: TaskStatus

    assignees: list[User] = field(default_factory=list)
    tags: list[Tag] = field(default_factory=list)
    created_by: User | None = None
    created_at: int | None = None
    updated_at: int | None = None
    closed_at: int | None = None
    closed_by: User | None = None

    project: ProjectRef | None = None
    incident: IncidentRef | None = None
    entity_link: str | None = None

    @property
    def is_open(self) -> bool:
        return self.status == TaskStatus.OPEN

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> Task:
        assignees = [u for u in (User.from_api(a) for a in raw.get("assignees") or []) if u is not None]
        tags = [t for t in (Tag.from_api(t) for t in raw.get("tags") or []) if t is not None]
        return cls(
            id=_str(raw.get("id")),
            name=_str(raw.get("name")),
            description=_str(raw.get("description")),
            entity_id=_str(raw.get("entityId")),
            entity_type=EntityType.from_api(raw.get("entityType")),
            type=_str(raw.get("type")),
            status=TaskStatus.from_api(raw.get("status")),
            assignees=assignees,
            tags=tags,
            created_by=User.from_api(raw.get("createdBy")),
            created_at=_num(raw.get("createdAt")),
            updated_at=_num(raw.get("updatedAt")),
            closed_at=_num(raw.get("closedAt")),
            closed_by=User.from_api(raw.get("closedBy")),
            project=ProjectRef.from_api(raw.get("project")),
            incident=IncidentRef.from_api(raw.get("incident")),
            entity_link=raw.get("entityLink"),
        )


@dataclass(slots=True)
class Page:
    """One page of a cursor-paginated listing."""

    tasks: list[Task]
    after: str | None = None
    before: str | None = None
    total: int | None = None


@dataclass(slots=True, frozen=True)
class AssetDetails:
    id: str
    name: str
    entity_type: EntityType
    content: str
    content_kind: ContentKind
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def file_name(self) -> str:
        return f"{self.name or self.id}.{self.content_kind.value}"

    @classmethod
    def from_asset(cls, asset_id: str, asset: dict[str, Any], *, ddl: str = "") -> AssetDetails:
        """
        Shape an entity into displayable content.

        - table: its DDL (fetched separately by the caller)
        - storedProcedure: the procedure code
        - dashboard: JSON of its charts
        - anything else: JSON of the whole entity
        """
        entity_type = EntityType.from_api(asset.get("entityType"))
        if entity_type is EntityType.TABLE:
            content = ddl
        elif entity_type is EntityType.STORED_PROCEDURE:
            code = asset.get("storedProcedureCode") or ""
            if isinstance(code, dict):
                code = code.get("code") or ""
            content = str(code)
        elif entity_type is EntityType.DASHBOARD:
            content = json.dumps(asset.get("charts") or [], indent=2, ensure_ascii=False)
        else:
            content = json.dumps(asset, indent=2, ensure_ascii=False)
        return cls(
            id=str(asset.get("id") or asset_id),
            name=str(asset.get("name") or ""),
            entity_type=entity_type,
            content=content,
            content_kind=CONTENT_KINDS.get(entity_type, ContentKind.OTHER),
            raw=asset,
        )
