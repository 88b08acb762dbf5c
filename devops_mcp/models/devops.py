"""Records returned by the Azure DevOps adapter, trimmed to what the tools render."""
from typing import Optional

from pydantic import BaseModel, Field


class WorkItem(BaseModel):
    id: int
    title: Optional[str] = None
    state: Optional[str] = None
    work_item_type: Optional[str] = None
    assigned_to: Optional[str] = None
    iteration_path: Optional[str] = None
    area_path: Optional[str] = None
    tags: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = None

    @classmethod
    def from_api(cls, payload: dict) -> "WorkItem":
        fields = payload.get("fields") or {}
        assigned = fields.get("System.AssignedTo")
        if isinstance(assigned, dict):
            assigned = assigned.get("displayName")
        return cls(
            id=payload["id"],
            title=fields.get("System.Title"),
            state=fields.get("System.State"),
            work_item_type=fields.get("System.WorkItemType"),
            assigned_to=assigned,
            iteration_path=fields.get("System.IterationPath"),
            area_path=fields.get("System.AreaPath"),
            tags=fields.get("System.Tags"),
            description=fields.get("System.Description"),
            url=(payload.get("_links") or {}).get("html", {}).get("href") or payload.get("url"),
        )


class Project(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    state: Optional[str] = None
    visibility: Optional[str] = None
    url: Optional[str] = None
    last_update_time: Optional[str] = None

    @classmethod
    def from_api(cls, payload: dict) -> "Project":
        return cls(
            id=payload["id"],
            name=payload["name"],
            description=payload.get("description"),
            state=payload.get("state"),
            visibility=payload.get("visibility"),
            url=payload.get("url"),
            last_update_time=payload.get("lastUpdateTime"),
        )


class Repository(BaseModel):
    id: str
    name: str
    project_name: Optional[str] = None
    default_branch: Optional[str] = None
    size: Optional[int] = None
    remote_url: Optional[str] = None
    web_url: Optional[str] = None

    @classmethod
    def from_api(cls, payload: dict) -> "Repository":
        return cls(
            id=payload["id"],
            name=payload["name"],
            project_name=(payload.get("project") or {}).get("name"),
            default_branch=payload.get("defaultBranch"),
            size=payload.get("size"),
            remote_url=payload.get("remoteUrl"),
            web_url=payload.get("webUrl"),
        )


class WorkItemDraft(BaseModel):
    """Fields accepted by ``create_work_item``."""

    project: str
    work_item_type: str
    title: str
    description: Optional[str] = None
    assigned_to: Optional[str] = None
    tags: list[str] = Field(default_factory=list)

    def to_patch_document(self) -> list[dict]:
        ops = [{"op": "add", "path": "/fields/System.Title", "value": self.title}]
        if self.description:
            ops.append({"op": "add", "path": "/fields/System.Description", "value": self.description})
        if self.assigned_to:
            ops.append({"op": "add", "path": "/fields/System.AssignedTo", "value": self.assigned_to})
        if self.tags:
            ops.append({"op": "add", "path": "/fields/System.Tags", "value": "; ".join(self.tags)})
        return ops
