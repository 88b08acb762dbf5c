"""
Azure DevOps REST integration service.

Thin async client over the Azure DevOps REST API using a personal access
token. Every capability either returns parsed records or raises
AzureDevOpsError; nothing is retried here.

Capabilities:
  - get_work_item / create_work_item / query_work_items   (work tracking)
  - list_projects / get_project                            (core)
  - list_repositories / get_repository                     (git)
  - search_code                                            (not offered upstream)
"""
import logging
from typing import Optional
from urllib.parse import quote

import httpx

from ..config import Settings
from ..errors import AzureDevOpsError, ClientNotInitializedError
from ..models.devops import Project, Repository, WorkItem, WorkItemDraft

logger = logging.getLogger(__name__)

# The work items batch endpoint accepts at most 200 ids per request.
WORK_ITEM_BATCH_SIZE = 200


class AzureDevOpsClient:
    def __init__(
        self,
        organization_url: str,
        personal_access_token: str,
        default_project: Optional[str] = None,
        api_version: str = "7.1",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.organization_url = organization_url.rstrip("/")
        self.default_project = default_project
        self.api_version = api_version
        self._client: Optional[httpx.AsyncClient] = None

        if self.organization_url and personal_access_token:
            self._client = httpx.AsyncClient(
                base_url=self.organization_url,
                auth=("", personal_access_token),
                headers={"Accept": "application/json"},
                timeout=timeout,
                transport=transport,
            )
            logger.info(f"AzureDevOpsClient: connection initialized for {self.organization_url}")
        else:
            logger.warning("AzureDevOpsClient: organization URL or PAT missing, client not initialized")

    @classmethod
    def from_settings(cls, settings: Settings) -> "AzureDevOpsClient":
        return cls(
            organization_url=settings.AZURE_DEVOPS_ORG_URL,
            personal_access_token=settings.AZURE_DEVOPS_PAT,
            default_project=settings.AZURE_DEVOPS_DEFAULT_PROJECT,
            api_version=settings.AZURE_DEVOPS_API_VERSION,
            timeout=settings.AZURE_DEVOPS_REQUEST_TIMEOUT_SECONDS,
        )

    @property
    def initialized(self) -> bool:
        return self._client is not None

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    # ── Connection ────────────────────────────────────────────────────────────

    async def test_connection(self) -> bool:
        """Return True when the organization answers an authenticated request."""
        try:
            await self._request("GET", "/_apis/projects", params={"$top": 1})
            return True
        except AzureDevOpsError as e:
            logger.error(f"AzureDevOpsClient: connection test failed: {e}")
            return False

    # ── Work items ────────────────────────────────────────────────────────────

    async def get_work_item(self, work_item_id: int) -> Optional[WorkItem]:
        """Fetch one work item. Returns None when it does not exist."""
        try:
            payload = await self._request(
                "GET", f"/_apis/wit/workitems/{work_item_id}", params={"$expand": "links"}
            )
        except AzureDevOpsError as e:
            if e.status_code == 404:
                return None
            raise
        return WorkItem.from_api(payload)

    async def create_work_item(self, draft: WorkItemDraft) -> WorkItem:
        path = (
            f"/{quote(draft.project, safe='')}/_apis/wit/workitems/"
            f"${quote(draft.work_item_type, safe='')}"
        )
        payload = await self._request(
            "POST",
            path,
            json=draft.to_patch_document(),
            headers={"Content-Type": "application/json-patch+json"},
        )
        return WorkItem.from_api(payload)

    async def query_work_items(
        self, query: str, project: Optional[str] = None, top: Optional[int] = None
    ) -> list[WorkItem]:
        """Run a WIQL query and resolve the matching ids into full work items."""
        project = project or self.default_project
        path = f"/{quote(project, safe='')}/_apis/wit/wiql" if project else "/_apis/wit/wiql"
        params = {"$top": top} if top else None
        result = await self._request("POST", path, json={"query": query}, params=params)

        ids = [ref["id"] for ref in result.get("workItems", [])]
        if top:
            ids = ids[:top]

        items: list[WorkItem] = []
        for start in range(0, len(ids), WORK_ITEM_BATCH_SIZE):
            batch = ids[start : start + WORK_ITEM_BATCH_SIZE]
            payload = await self._request(
                "GET", "/_apis/wit/workitems", params={"ids": ",".join(str(i) for i in batch)}
            )
            items.extend(WorkItem.from_api(raw) for raw in payload.get("value", []))
        return items

    # ── Projects ──────────────────────────────────────────────────────────────

    async def list_projects(self) -> list[Project]:
        payload = await self._request("GET", "/_apis/projects")
        return [Project.from_api(raw) for raw in payload.get("value", [])]

    async def get_project(self, project_id: str) -> Project:
        payload = await self._request("GET", f"/_apis/projects/{quote(project_id, safe='')}")
        return Project.from_api(payload)

    # ── Repositories ──────────────────────────────────────────────────────────

    async def list_repositories(self, project: Optional[str] = None) -> list[Repository]:
        project = project or self.default_project
        path = (
            f"/{quote(project, safe='')}/_apis/git/repositories"
            if project
            else "/_apis/git/repositories"
        )
        payload = await self._request("GET", path)
        return [Repository.from_api(raw) for raw in payload.get("value", [])]

    async def get_repository(self, repository_id: str, project: Optional[str] = None) -> Repository:
        project = project or self.default_project
        prefix = f"/{quote(project, safe='')}" if project else ""
        payload = await self._request(
            "GET", f"{prefix}/_apis/git/repositories/{quote(repository_id, safe='')}"
        )
        return Repository.from_api(payload)

    async def search_code(self, search_text: str, project: Optional[str] = None) -> list[dict]:
        # Code search lives in a separate Azure DevOps extension service that
        # this client does not talk to.
        raise AzureDevOpsError("Code search is not available through the Azure DevOps client")

    # ── Internals ─────────────────────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict] = None,
        json: Optional[object] = None,
        headers: Optional[dict] = None,
    ) -> dict:
        if self._client is None:
            raise ClientNotInitializedError()

        query = {"api-version": self.api_version}
        if params:
            query.update(params)

        try:
            response = await self._client.request(
                method, path, params=query, json=json, headers=headers
            )
        except httpx.HTTPError as e:
            raise AzureDevOpsError(f"Request to Azure DevOps failed: {e}") from e

        if response.status_code >= 400:
            raise AzureDevOpsError(_error_message(response), status_code=response.status_code)

        # An invalid PAT yields a 203 HTML sign-in page rather than a 401.
        content_type = response.headers.get("content-type", "")
        if response.status_code == 203 or "json" not in content_type:
            raise AzureDevOpsError(
                "Azure DevOps returned a non-JSON response; check the access token",
                status_code=response.status_code,
            )
        return response.json()


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return f"{body['message']} (HTTP {response.status_code})"
    return f"HTTP {response.status_code} {response.reason_phrase}".strip()
