"""
MCP Tool definitions - schema + description + handler for each Azure DevOps capability.

Each tool follows the MCP specification:
  - name:         unique key, one of ToolName
  - description:  human-readable purpose
  - input_schema: JSON Schema for arguments (its "required" list is enforced
                  by validate_arguments before execute() runs)
  - execute():    one AzureDevOpsClient call, result rendered as Markdown text

Tools are grouped by the Azure DevOps area they touch:
  work items    - get_work_item, create_work_item, query_work_items
  projects      - list_projects, get_project
  repositories  - list_repositories, get_repository, search_repository_code
"""
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional

from ..errors import (
    AzureDevOpsError,
    InvalidArgumentError,
    MissingArgumentError,
    ToolExecutionError,
    UnknownToolError,
)
from ..models.devops import WorkItemDraft
from ..models.jsonrpc import ToolDescriptor
from ..services.azure_devops import AzureDevOpsClient
from .formatters import (
    format_created_work_item,
    format_project,
    format_project_list,
    format_repository,
    format_repository_list,
    format_work_item,
    format_work_item_list,
)

logger = logging.getLogger(__name__)


class ToolName(str, Enum):
    GET_WORK_ITEM = "get_work_item"
    LIST_PROJECTS = "list_projects"
    GET_PROJECT = "get_project"
    CREATE_WORK_ITEM = "create_work_item"
    QUERY_WORK_ITEMS = "query_work_items"
    LIST_REPOSITORIES = "list_repositories"
    GET_REPOSITORY = "get_repository"
    SEARCH_REPOSITORY_CODE = "search_repository_code"


class MCPTool(ABC):
    """Base class for all MCP tools."""

    name: ToolName
    description: str
    input_schema: dict

    @abstractmethod
    async def execute(self, client: AzureDevOpsClient, arguments: dict) -> str:
        """Run the tool against the backend and return Markdown text."""

    @property
    def required(self) -> list[str]:
        return list(self.input_schema.get("required", []))

    def validate_arguments(self, arguments: dict) -> None:
        for field in self.required:
            if arguments.get(field) is None:
                raise MissingArgumentError(field)

    def to_descriptor(self) -> ToolDescriptor:
        return ToolDescriptor(
            name=self.name.value,
            description=self.description,
            inputSchema=self.input_schema,
        )

    def to_dict(self) -> dict:
        return self.to_descriptor().model_dump()


def _int_arg(arguments: dict, field: str) -> int:
    value = arguments.get(field)
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise InvalidArgumentError(field, "an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidArgumentError(field, "an integer")


def _str_arg(arguments: dict, field: str) -> Optional[str]:
    value = arguments.get(field)
    if value is None:
        return None
    if not isinstance(value, (str, int)):
        raise InvalidArgumentError(field, "a string")
    return str(value)


# ── Work Item Tools ───────────────────────────────────────────────────────────

class GetWorkItemTool(MCPTool):
    name = ToolName.GET_WORK_ITEM
    description = "Get a work item by ID"
    input_schema = {
        "type": "object",
        "properties": {
            "workItemId": {"type": "number", "description": "Work item ID"},
        },
        "required": ["workItemId"],
    }

    async def execute(self, client: AzureDevOpsClient, arguments: dict) -> str:
        work_item_id = _int_arg(arguments, "workItemId")
        try:
            item = await client.get_work_item(work_item_id)
        except AzureDevOpsError as e:
            raise ToolExecutionError(f"Failed to get work item {work_item_id}: {e}") from e
        if item is None:
            return f"Work item {work_item_id} not found."
        return format_work_item(item)


class CreateWorkItemTool(MCPTool):
    name = ToolName.CREATE_WORK_ITEM
    description = (
        "Create a new work item (Bug, Task, User Story, ...) in a project. "
        "Returns the created work item."
    )
    input_schema = {
        "type": "object",
        "properties": {
            "project": {"type": "string", "description": "Project name or ID."},
            "workItemType": {
                "type": "string",
                "description": "Work item type, e.g. Bug, Task, User Story.",
            },
            "title": {"type": "string", "description": "Work item title."},
            "description": {"type": "string", "description": "HTML or plain-text description."},
            "assignedTo": {"type": "string", "description": "User to assign (email or display name)."},
            "tags": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Tags to attach.",
            },
        },
        "required": ["project", "workItemType", "title"],
    }

    async def execute(self, client: AzureDevOpsClient, arguments: dict) -> str:
        tags = arguments.get("tags") or []
        if isinstance(tags, str):
            tags = [t.strip() for t in tags.split(";") if t.strip()]
        draft = WorkItemDraft(
            project=_str_arg(arguments, "project"),
            work_item_type=_str_arg(arguments, "workItemType"),
            title=_str_arg(arguments, "title"),
            description=_str_arg(arguments, "description"),
            assigned_to=_str_arg(arguments, "assignedTo"),
            tags=[str(t) for t in tags],
        )
        try:
            item = await client.create_work_item(draft)
        except AzureDevOpsError as e:
            raise ToolExecutionError(
                f"Failed to create {draft.work_item_type} in project {draft.project}: {e}"
            ) from e
        return format_created_work_item(item)


class QueryWorkItemsTool(MCPTool):
    name = ToolName.QUERY_WORK_ITEMS
    description = (
        "Query work items using WIQL (Work Item Query Language). "
        "Returns a summary line per matching work item."
    )
    input_schema = {
        "type": "object",
        "properties": {
            "query": {
                "type": "string",
                "description": "WIQL query, e.g. SELECT [System.Id] FROM WorkItems WHERE ...",
            },
            "project": {"type": "string", "description": "Project to scope the query to."},
            "top": {"type": "number", "description": "Maximum number of work items to return."},
        },
        "required": ["query"],
    }

    async def execute(self, client: AzureDevOpsClient, arguments: dict) -> str:
        query = _str_arg(arguments, "query")
        top = _int_arg(arguments, "top") if arguments.get("top") is not None else None
        try:
            items = await client.query_work_items(
                query, project=_str_arg(arguments, "project"), top=top
            )
        except AzureDevOpsError as e:
            raise ToolExecutionError(f"Failed to query work items: {e}") from e
        return format_work_item_list(items)


# ── Project Tools ─────────────────────────────────────────────────────────────

class ListProjectsTool(MCPTool):
    name = ToolName.LIST_PROJECTS
    description = "List all projects in the Azure DevOps organization."
    input_schema = {"type": "object", "properties": {}, "required": []}

    async def execute(self, client: AzureDevOpsClient, arguments: dict) -> str:
        try:
            projects = await client.list_projects()
        except AzureDevOpsError as e:
            raise ToolExecutionError(f"Failed to list projects: {e}") from e
        return format_project_list(projects)


class GetProjectTool(MCPTool):
    name = ToolName.GET_PROJECT
    description = "Get details of a project by name or ID."
    input_schema = {
        "type": "object",
        "properties": {
            "projectId": {"type": "string", "description": "Project name or ID."},
        },
        "required": ["projectId"],
    }

    async def execute(self, client: AzureDevOpsClient, arguments: dict) -> str:
        project_id = _str_arg(arguments, "projectId")
        try:
            project = await client.get_project(project_id)
        except AzureDevOpsError as e:
            raise ToolExecutionError(f"Failed to get project {project_id}: {e}") from e
        return format_project(project)


# ── Repository Tools ──────────────────────────────────────────────────────────

class ListRepositoriesTool(MCPTool):
    name = ToolName.LIST_REPOSITORIES
    description = (
        "List Git repositories in a project. "
        "Omit project to use the configured default project."
    )
    input_schema = {
        "type": "object",
        "properties": {
            "project": {"type": "string", "description": "Project name or ID."},
        },
        "required": [],
    }

    async def execute(self, client: AzureDevOpsClient, arguments: dict) -> str:
        project = _str_arg(arguments, "project")
        try:
            repos = await client.list_repositories(project)
        except AzureDevOpsError as e:
            raise ToolExecutionError(f"Failed to list repositories: {e}") from e
        return format_repository_list(repos)


class GetRepositoryTool(MCPTool):
    name = ToolName.GET_REPOSITORY
    description = "Get details of a Git repository by name or ID."
    input_schema = {
        "type": "object",
        "properties": {
            "repositoryId": {"type": "string", "description": "Repository name or ID."},
            "project": {"type": "string", "description": "Project name or ID."},
        },
        "required": ["repositoryId"],
    }

    async def execute(self, client: AzureDevOpsClient, arguments: dict) -> str:
        repository_id = _str_arg(arguments, "repositoryId")
        try:
            repo = await client.get_repository(repository_id, _str_arg(arguments, "project"))
        except AzureDevOpsError as e:
            raise ToolExecutionError(f"Failed to get repository {repository_id}: {e}") from e
        return format_repository(repo)


class SearchRepositoryCodeTool(MCPTool):
    name = ToolName.SEARCH_REPOSITORY_CODE
    description = (
        "Search for code in repositories. "
        "Code search is not available through this server; the tool explains alternatives."
    )
    input_schema = {
        "type": "object",
        "properties": {
            "searchText": {"type": "string", "description": "Text to search for."},
            "project": {"type": "string", "description": "Project name or ID."},
            "repository": {"type": "string", "description": "Repository name or ID."},
        },
        "required": ["searchText"],
    }

    async def execute(self, client: AzureDevOpsClient, arguments: dict) -> str:
        search_text = _str_arg(arguments, "searchText")
        return (
            f"# Code Search: {search_text}\n\n"
            "Code search is not available through the Azure DevOps client used by this server.\n"
            "Use the Azure DevOps web portal search, or clone the repository "
            "(see get_repository for its clone URL) and search locally.\n"
        )


# ─── Registry ─────────────────────────────────────────────────────────────────

TOOL_REGISTRY: dict[ToolName, MCPTool] = {
    t.name: t
    for t in [
        GetWorkItemTool(),
        ListProjectsTool(),
        GetProjectTool(),
        CreateWorkItemTool(),
        QueryWorkItemsTool(),
        ListRepositoriesTool(),
        GetRepositoryTool(),
        SearchRepositoryCodeTool(),
    ]
}


def get_tool(name: Any) -> MCPTool:
    """Resolve a wire-level tool name, rejecting anything outside ToolName."""
    try:
        return TOOL_REGISTRY[ToolName(name)]
    except ValueError:
        raise UnknownToolError(name)


def list_tool_descriptors() -> list[dict]:
    return [tool.to_dict() for tool in TOOL_REGISTRY.values()]


def tool_names() -> list[str]:
    return [name.value for name in TOOL_REGISTRY]
