"""Markdown renderers for tool results. Clients get text, not structured JSON."""
from typing import Iterable

from ..models.devops import Project, Repository, WorkItem


def format_work_item(item: WorkItem) -> str:
    return (
        f"# Work Item {item.id}: {item.title}\n\n"
        f"**Type**: {item.work_item_type}\n"
        f"**State**: {item.state}\n"
        f"**Assigned To**: {item.assigned_to or 'Unassigned'}\n"
        f"**Iteration**: {item.iteration_path}\n"
        f"**Tags**: {item.tags or 'None'}\n"
    )


def format_created_work_item(item: WorkItem) -> str:
    text = f"Created {item.work_item_type or 'work item'} {item.id}: {item.title}\n\n"
    text += format_work_item(item)
    if item.url:
        text += f"**Link**: {item.url}\n"
    return text


def format_work_item_list(items: list[WorkItem]) -> str:
    if not items:
        return "No work items matched the query."
    lines = [f"# Query Results ({len(items)} work items)", ""]
    for item in items:
        lines.append(
            f"- **{item.id}** [{item.work_item_type}] {item.title} "
            f"({item.state}, {item.assigned_to or 'Unassigned'})"
        )
    return "\n".join(lines) + "\n"


def format_project(project: Project) -> str:
    return (
        f"# Project: {project.name}\n\n"
        f"**ID**: {project.id}\n"
        f"**Description**: {project.description or 'No description'}\n"
        f"**State**: {project.state}\n"
        f"**Visibility**: {project.visibility}\n"
        f"**Last Updated**: {project.last_update_time or 'Unknown'}\n"
    )


def format_project_list(projects: Iterable[Project]) -> str:
    projects = list(projects)
    if not projects:
        return "No projects found."
    lines = [f"# Projects ({len(projects)})", ""]
    for project in projects:
        description = f": {project.description}" if project.description else ""
        lines.append(f"- **{project.name}** ({project.id}){description}")
    return "\n".join(lines) + "\n"


def format_repository(repo: Repository) -> str:
    return (
        f"# Repository: {repo.name}\n\n"
        f"**ID**: {repo.id}\n"
        f"**Project**: {repo.project_name or 'Unknown'}\n"
        f"**Default Branch**: {repo.default_branch or 'None'}\n"
        f"**Size**: {repo.size if repo.size is not None else 'Unknown'} bytes\n"
        f"**Clone URL**: {repo.remote_url}\n"
        f"**Web URL**: {repo.web_url}\n"
    )


def format_repository_list(repos: Iterable[Repository]) -> str:
    repos = list(repos)
    if not repos:
        return "No repositories found."
    lines = [f"# Repositories ({len(repos)})", ""]
    for repo in repos:
        branch = repo.default_branch or "no default branch"
        lines.append(f"- **{repo.name}** ({repo.id}) - {branch}")
    return "\n".join(lines) + "\n"
