import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from app.modules.clients.service import ClientService
from app.modules.projects.models import Project, ProjectType, ProjectStatus, Task
from app.modules.projects.schemas import (
    ProjectCreate, ProjectUpdate, ProjectList, ProjectSummary, TaskCreate, TaskUpdate
)

logger = logging.getLogger(__name__)

HOUR = Decimal(3600)
CENT = Decimal("0.01")


def seconds_to_hours(seconds: Optional[int]) -> Decimal:
    return (Decimal(int(seconds or 0)) / HOUR).quantize(CENT)


def seconds_by_rate(entries, default_rate) -> Dict[Decimal, int]:
    """
    Tracked seconds grouped by the hourly rate they are billed at.

    An entry's own hourly_rate overrides the project rate. Rates keep the
    order in which they first appear.
    """
    grouped: Dict[Decimal, int] = {}
    for entry in entries:
        rate = entry.hourly_rate if entry.hourly_rate is not None else default_rate
        rate = Decimal(rate or 0).quantize(CENT)
        grouped[rate] = grouped.get(rate, 0) + (entry.duration or 0)
    return grouped


def time_amount(seconds: int, rate: Decimal) -> Decimal:
    return (Decimal(seconds) / HOUR * rate).quantize(CENT, rounding=ROUND_HALF_UP)


class ProjectService:

    def __init__(self, db: Session):
        self.db = db

    def _validate_pricing(self, project: Project):
        if project.project_type == ProjectType.HOURLY and (project.hourly_rate or 0) <= 0:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Hourly projects need an hourly rate greater than 0"
            )
        if project.project_type == ProjectType.FIXED and (project.fixed_price or 0) <= 0:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Fixed price projects need a fixed price greater than 0"
            )

    def create_project(self, project_data: ProjectCreate, tenant_id: UUID, user_id: UUID) -> Project:
        client = ClientService(self.db).get_client_by_id(project_data.client_id, tenant_id)

        try:
            data = project_data.model_dump()
            data["currency"] = data["currency"] or client.currency
            project = Project(tenant_id=tenant_id, created_by=user_id, **data)
            self.db.add(project)
            self.db.commit()
            self.db.refresh(project)
            logger.info(f"Project created: {project.name} ({project.project_type.value}) for client {client.id}")
            return project
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating project: {str(e)}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error creating project: {str(e)}"
            )

    def get_projects(
        self,
        tenant_id: UUID,
        limit: int = 100,
        offset: int = 0,
        client_id: Optional[UUID] = None,
        project_status: Optional[ProjectStatus] = None,
        project_type: Optional[ProjectType] = None
    ) -> ProjectList:
        query = self.db.query(Project).options(selectinload(Project.client)).filter(
            Project.tenant_id == tenant_id,
            Project.deleted_at.is_(None)
        )
        if client_id:
            query = query.filter(Project.client_id == client_id)
        if project_status:
            query = query.filter(Project.status == project_status)
        if project_type:
            query = query.filter(Project.project_type == project_type)

        total = query.count()
        projects = query.order_by(Project.created_at.desc()).offset(offset).limit(limit).all()
        return ProjectList(items=projects, total=total, limit=limit, offset=offset)

    def get_project_by_id(self, project_id: UUID, tenant_id: UUID) -> Project:
        project = self.db.query(Project).options(selectinload(Project.client)).filter(
            Project.id == project_id,
            Project.tenant_id == tenant_id,
            Project.deleted_at.is_(None)
        ).first()

        if not project:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Project not found"
            )
        return project

    def update_project(self, project_id: UUID, project_update: ProjectUpdate, tenant_id: UUID) -> Project:
        try:
            project = self.get_project_by_id(project_id, tenant_id)

            for field, value in project_update.model_dump(exclude_unset=True).items():
                setattr(project, field, value)
            self._validate_pricing(project)

            if project.start_date and project.end_date and project.end_date < project.start_date:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="End date cannot be before the start date"
                )

            self.db.commit()
            self.db.refresh(project)
            return project

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error updating project: {str(e)}"
            )

    def change_status(self, project_id: UUID, new_status: ProjectStatus, tenant_id: UUID) -> Project:
        project = self.get_project_by_id(project_id, tenant_id)
        old_status = project.status
        project.status = new_status
        self.db.commit()
        self.db.refresh(project)
        logger.info(f"Project {project.id} status changed from {old_status.value} to {new_status.value}")
        return project

    def delete_project(self, project_id: UUID, tenant_id: UUID) -> Dict[str, str]:
        from app.modules.invoices.models import Invoice, InvoiceStatus

        try:
            project = self.get_project_by_id(project_id, tenant_id)

            invoiced = self.db.query(Invoice).filter(
                Invoice.tenant_id == tenant_id,
                Invoice.project_id == project_id,
                Invoice.status != InvoiceStatus.CANCELLED
            ).count()
            if invoiced:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Project has invoices and cannot be deleted"
                )

            project.soft_delete()
            self.db.commit()
            logger.info(f"Project {project_id} soft deleted")
            return {"message": "Project deleted successfully"}

        except HTTPException:
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error deleting project: {str(e)}"
            )

    def get_project_summary(self, project_id: UUID, tenant_id: UUID) -> ProjectSummary:
        """Tracked time and billing position of a project."""
        from app.modules.time_tracking.models import TimeEntry
        from app.modules.invoices.models import Invoice, InvoiceStatus

        project = self.get_project_by_id(project_id, tenant_id)

        entries = self.db.query(TimeEntry).filter(
            TimeEntry.tenant_id == tenant_id,
            TimeEntry.project_id == project_id,
            TimeEntry.is_running == False
        ).all()

        tracked = sum(entry.duration or 0 for entry in entries)
        billable = sum(entry.duration or 0 for entry in entries if entry.is_billable)
        unbilled_entries = [entry for entry in entries if entry.is_billable and entry.invoice_id is None]
        unbilled = sum(entry.duration or 0 for entry in unbilled_entries)

        invoiced_total = self.db.query(func.coalesce(func.sum(Invoice.total), 0)).filter(
            Invoice.tenant_id == tenant_id,
            Invoice.project_id == project_id,
            Invoice.status != InvoiceStatus.CANCELLED
        ).scalar()

        if project.project_type == ProjectType.HOURLY:
            by_rate = seconds_by_rate(unbilled_entries, project.hourly_rate)
            unbilled_amount = sum((time_amount(seconds, rate) for rate, seconds in by_rate.items()), Decimal("0.00"))
        elif invoiced_total:
            unbilled_amount = Decimal("0.00")
        else:
            unbilled_amount = Decimal(project.fixed_price or 0).quantize(CENT)

        budget_used = None
        if project.budget_hours:
            budget_used = (seconds_to_hours(tracked) / Decimal(project.budget_hours) * 100).quantize(CENT)

        return ProjectSummary(
            project_id=project.id,
            project_type=project.project_type,
            status=project.status,
            tracked_seconds=tracked,
            tracked_hours=seconds_to_hours(tracked),
            billable_hours=seconds_to_hours(billable),
            unbilled_hours=seconds_to_hours(unbilled),
            unbilled_amount=unbilled_amount,
            invoiced_total=Decimal(str(invoiced_total)).quantize(CENT),
            budget_used_percent=budget_used
        )

    # ===== Tasks =====

    def create_task(self, project_id: UUID, task_data: TaskCreate, tenant_id: UUID) -> Task:
        self.get_project_by_id(project_id, tenant_id)
        task = Task(tenant_id=tenant_id, project_id=project_id, **task_data.model_dump())
        self.db.add(task)
        self.db.commit()
        self.db.refresh(task)
        return task

    def get_tasks(self, project_id: UUID, tenant_id: UUID) -> List[Task]:
        self.get_project_by_id(project_id, tenant_id)
        return self.db.query(Task).filter(
            Task.tenant_id == tenant_id,
            Task.project_id == project_id
        ).order_by(Task.created_at).all()

    def get_task_by_id(self, task_id: UUID, tenant_id: UUID) -> Task:
        task = self.db.query(Task).filter(
            Task.id == task_id,
            Task.tenant_id == tenant_id
        ).first()
        if not task:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Task not found"
            )
        return task

    def update_task(self, task_id: UUID, task_update: TaskUpdate, tenant_id: UUID) -> Task:
        task = self.get_task_by_id(task_id, tenant_id)
        for field, value in task_update.model_dump(exclude_unset=True).items():
            setattr(task, field, value)
        self.db.commit()
        self.db.refresh(task)
        return task

    def delete_task(self, task_id: UUID, tenant_id: UUID) -> Dict[str, str]:
        from app.modules.time_tracking.models import TimeEntry

        task = self.get_task_by_id(task_id, tenant_id)
        # Entries keep their time, they just lose the task reference
        self.db.query(TimeEntry).filter(TimeEntry.task_id == task.id).update(
            {"task_id": None}, synchronize_session=False
        )
        self.db.delete(task)
        self.db.commit()
        return {"message": "Task deleted successfully"}
