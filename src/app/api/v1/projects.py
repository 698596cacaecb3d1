"""REST API endpoints for projects (read-only; projects are materialized)."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from src.app.api.deps import get_current_admin
from src.app.core.errors import NotFoundError
from src.app.projects.repository import ProjectRepository
from src.app.projects.schemas import ProjectRead
from src.app.schemas.auth import AdminPrincipal

router = APIRouter(prefix="/projects", tags=["projects"])


def _get_project_repository(request: Request) -> ProjectRepository:
    """Get ProjectRepository from app.state or raise 503."""
    repository = getattr(request.app.state, "project_repository", None)
    if repository is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Project repository not available",
        )
    return repository


@router.get("", response_model=list[ProjectRead])
async def list_projects(
    request: Request,
    project_status: str | None = Query(default=None, alias="status"),
    admin: AdminPrincipal = Depends(get_current_admin),
):
    repository = _get_project_repository(request)
    return await repository.list_projects(project_status)


@router.get("/{project_id}", response_model=ProjectRead)
async def get_project(
    project_id: str,
    request: Request,
    admin: AdminPrincipal = Depends(get_current_admin),
):
    repository = _get_project_repository(request)
    project = await repository.get_project(project_id)
    if project is None:
        raise NotFoundError("Project", project_id)
    return project
