"""
Projects endpoints of the management API.
"""

from enum import Enum
from typing import Any

from loguru import logger
from pydantic import BaseModel

from mgmtcore.api.base import BaseResourceApi


class ProjectStatus(str, Enum):
    ACTIVE_HEALTHY = "ACTIVE_HEALTHY"
    ACTIVE_UNHEALTHY = "ACTIVE_UNHEALTHY"
    COMING_UP = "COMING_UP"
    GOING_DOWN = "GOING_DOWN"
    INACTIVE = "INACTIVE"
    PAUSED = "PAUSED"
    RESTORING = "RESTORING"
    UPGRADING = "UPGRADING"


class Project(BaseModel):
    """A project as returned by the management API."""

    id: str
    ref: str
    name: str
    organization_id: str
    region: str
    status: str
    created_at: str | None = None
    database: dict[str, Any] | None = None

    @property
    def is_healthy(self) -> bool:
        return self.status == ProjectStatus.ACTIVE_HEALTHY.value


class CreateProjectRequest(BaseModel):
    name: str
    organization_id: str
    region: str
    db_pass: str
    plan: str | None = None


class ProjectsApi(BaseResourceApi[Project]):
    """
    Projects API.

    Usage:
        projects = ProjectsApi(orchestrator)
        for project in await projects.list_projects():
            print(project.ref, project.status)
    """

    model = Project

    async def list_projects(self) -> list[Project]:
        data = await self.orchestrator.cached_fetch(
            "projects",
            "all",
            lambda: self.orchestrator.enhanced_fetch("/projects"),
        )
        return self._to_models(data)

    async def get_project(self, ref: str) -> Project:
        data = await self.orchestrator.cached_fetch(
            "project",
            ref,
            lambda: self.orchestrator.enhanced_fetch(f"/projects/{ref}"),
        )
        return self._to_model(data)

    async def create_project(self, request: CreateProjectRequest) -> Project:
        data = await self.orchestrator.mutate(
            "/projects",
            json_data=request.model_dump(exclude_none=True),
            invalidate=["projects"],
            context="create project",
        )
        project = self._to_model(data)
        logger.info(f"Created project {project.ref} ({project.name})")
        return project

    async def delete_project(self, ref: str) -> None:
        await self.orchestrator.mutate(
            f"/projects/{ref}",
            method="DELETE",
            invalidate=["projects", ("project", ref)],
            context="delete project",
        )
        logger.info(f"Deleted project {ref}")

    async def pause_project(self, ref: str) -> Project | None:
        return await self._transition(ref, "pause")

    async def restore_project(self, ref: str) -> Project | None:
        return await self._transition(ref, "restore")

    async def _transition(self, ref: str, action: str) -> Project | None:
        data = await self.orchestrator.mutate(
            f"/projects/{ref}/{action}",
            invalidate=["projects", ("project", ref)],
            context=f"{action} project",
        )
        return self._to_model(data) if data else None
