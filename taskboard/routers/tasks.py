from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from ..database import get_db
from ..dependencies import get_current_user, valid_task_id
from ..errors import envelope
from ..models import Task, User
from ..schemas.task import Pagination, TaskCreate, TaskRead, TaskUpdate
from ..services import tasks as task_service
from ..services.tasks import TaskFilters

# All task routes are protected
router = APIRouter(dependencies=[Depends(get_current_user)])


def _task_out(task: Task) -> dict:
    return TaskRead.model_validate(task).model_dump(by_alias=True, mode="json")


@router.post("", status_code=status.HTTP_201_CREATED)
def create_task(
    task: TaskCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create a new task for the authenticated user."""
    created = task_service.create_task(
        db,
        current_user.id,
        title=task.title,
        description=task.description,
        status=task.status,
        priority=task.priority,
    )
    return envelope(True, "Task created successfully", data={"task": _task_out(created)})


@router.get("")
def get_tasks(
    status: Optional[str] = None,
    priority: Optional[str] = None,
    search: Optional[str] = None,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    sort: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Paginated tasks for the authenticated user with optional filters."""
    filters = TaskFilters.from_query(
        status=status, priority=priority, search=search, page=page, limit=limit, sort=sort
    )
    result = task_service.list_tasks(db, current_user.id, filters)
    return envelope(
        True,
        data={
            "tasks": [_task_out(task) for task in result.tasks],
            "pagination": Pagination(**result.pagination()).model_dump(by_alias=True),
        },
    )


@router.get("/{id}")
def get_task(
    task_id: str = Depends(valid_task_id),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    task = task_service.get_task(db, current_user.id, task_id)
    return envelope(True, data={"task": _task_out(task)})


@router.put("/{id}")
def update_task(
    task_update: TaskUpdate,
    task_id: str = Depends(valid_task_id),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    task = task_service.update_task(db, current_user.id, task_id, task_update.model_dump(exclude_unset=True))
    return envelope(True, "Task updated successfully", data={"task": _task_out(task)})


@router.delete("/{id}")
def delete_task(
    task_id: str = Depends(valid_task_id),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    task_service.delete_task(db, current_user.id, task_id)
    return envelope(True, "Task deleted successfully")
