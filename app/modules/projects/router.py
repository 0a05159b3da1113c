from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies, STAFF_ROLES, WRITER_ROLES, MANAGER_ROLES
from app.modules.projects.models import ProjectStatus, ProjectType
from app.modules.projects.service import ProjectService
from app.modules.projects.schemas import (
    ProjectCreate, ProjectUpdate, ProjectOut, ProjectList, ProjectSummary,
    ProjectStatusUpdate, TaskCreate, TaskUpdate, TaskOut
)

router = APIRouter(prefix="/projects", tags=["Projects"])


@router.post("/", response_model=ProjectOut, status_code=status.HTTP_201_CREATED)
def create_project(
    project_data: ProjectCreate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(WRITER_ROLES))
):
    """
    Create a project for a client.

    Hourly projects need `hourly_rate`; fixed projects need `fixed_price`.
    """
    return ProjectService(db).create_project(project_data, auth_context.tenant_id, auth_context.user_id)


@router.get("/", response_model=ProjectList)
def list_projects(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    client_id: Optional[UUID] = Query(None),
    status: Optional[ProjectStatus] = Query(None),
    project_type: Optional[ProjectType] = Query(None),
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    return ProjectService(db).get_projects(
        auth_context.tenant_id, limit, offset, client_id, status, project_type
    )


@router.get("/{project_id}", response_model=ProjectOut)
def get_project(
    project_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    return ProjectService(db).get_project_by_id(project_id, auth_context.tenant_id)


@router.get("/{project_id}/summary", response_model=ProjectSummary)
def get_project_summary(
    project_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    return ProjectService(db).get_project_summary(project_id, auth_context.tenant_id)


@router.patch("/{project_id}", response_model=ProjectOut)
def update_project(
    project_id: UUID,
    project_update: ProjectUpdate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(WRITER_ROLES))
):
    return ProjectService(db).update_project(project_id, project_update, auth_context.tenant_id)


@router.post("/{project_id}/status", response_model=ProjectOut)
def change_project_status(
    project_id: UUID,
    data: ProjectStatusUpdate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(WRITER_ROLES))
):
    """
    Change project status. Fixed price projects become invoiceable once `completed`.
    """
    return ProjectService(db).change_status(project_id, data.status, auth_context.tenant_id)


@router.delete("/{project_id}")
def delete_project(
    project_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(MANAGER_ROLES))
):
    return ProjectService(db).delete_project(project_id, auth_context.tenant_id)


# ===== Tasks =====

@router.post("/{project_id}/tasks", response_model=TaskOut, status_code=status.HTTP_201_CREATED)
def create_task(
    project_id: UUID,
    task_data: TaskCreate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(WRITER_ROLES))
):
    return ProjectService(db).create_task(project_id, task_data, auth_context.tenant_id)


@router.get("/{project_id}/tasks", response_model=List[TaskOut])
def list_tasks(
    project_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    return ProjectService(db).get_tasks(project_id, auth_context.tenant_id)


@router.patch("/tasks/{task_id}", response_model=TaskOut)
def update_task(
    task_id: UUID,
    task_update: TaskUpdate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(WRITER_ROLES))
):
    return ProjectService(db).update_task(task_id, task_update, auth_context.tenant_id)


@router.delete("/tasks/{task_id}")
def delete_task(
    task_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(WRITER_ROLES))
):
    return ProjectService(db).delete_task(task_id, auth_context.tenant_id)
