"""Shared fixtures: settings isolated from the environment and an adapter test double."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from devops_mcp.config import Settings
from devops_mcp.models.devops import Project, Repository, WorkItem
from devops_mcp.services.azure_devops import AzureDevOpsClient


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "AZURE_DEVOPS_ORG_URL": "https://dev.azure.com/contoso",
        "AZURE_DEVOPS_PAT": "test-pat",
        "AZURE_DEVOPS_DEFAULT_PROJECT": "Fabrikam",
        "VERIFY_CONNECTION_ON_STARTUP": False,
        "SESSION_POLICY": "stateless",
        "TOOL_CALL_TIMEOUT_SECONDS": None,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_work_item(**overrides: Any) -> WorkItem:
    values: dict[str, Any] = {
        "id": 594,
        "title": "X",
        "state": "Active",
        "work_item_type": "Bug",
        "assigned_to": "Ada Lovelace",
        "iteration_path": "Fabrikam\\Sprint 12",
        "tags": "backend; urgent",
    }
    values.update(overrides)
    return WorkItem(**values)


def make_client() -> MagicMock:
    """``AzureDevOpsClient`` double whose capabilities are all ``AsyncMock``s."""
    client = MagicMock(spec=AzureDevOpsClient)
    client.initialized = True
    client.get_work_item = AsyncMock(return_value=make_work_item())
    client.create_work_item = AsyncMock(return_value=make_work_item(id=601, title="New bug", state="New"))
    client.query_work_items = AsyncMock(return_value=[make_work_item()])
    client.list_projects = AsyncMock(
        return_value=[Project(id="p-1", name="Fabrikam", description="Main project")]
    )
    client.get_project = AsyncMock(
        return_value=Project(id="p-1", name="Fabrikam", state="wellFormed", visibility="private")
    )
    client.list_repositories = AsyncMock(
        return_value=[Repository(id="r-1", name="web", default_branch="refs/heads/main")]
    )
    client.get_repository = AsyncMock(
        return_value=Repository(id="r-1", name="web", project_name="Fabrikam", size=2048)
    )
    client.search_code = AsyncMock()
    client.test_connection = AsyncMock(return_value=True)
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def client() -> MagicMock:
    return make_client()
