"""Owner-scoped task operations: create, filtered/paginated listing, get, update, delete.

Every lookup is scoped by `(id, owner_id)` in a single query, so a task that
does not exist and a task owned by someone else are indistinguishable.
"""
import math
import re
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional

from sqlalchemy import case, func, or_
from sqlmodel import Session, col, select

from ..errors import NoFields, NotFound
from ..models import Task, TaskPriority, TaskStatus, utcnow

_LEADING_INT = re.compile(r"\s*[+-]?\d+")

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 50

_STATUS_ORDER = case(
    (col(Task.status) == TaskStatus.PENDING, 0),
    (col(Task.status) == TaskStatus.IN_PROGRESS, 1),
    else_=2,
)
_PRIORITY_ORDER = case(
    (col(Task.priority) == TaskPriority.LOW, 0),
    (col(Task.priority) == TaskPriority.MEDIUM, 1),
    else_=2,
)

SORT_FIELDS = {
    "createdAt": col(Task.created_at),
    "updatedAt": col(Task.updated_at),
    "title": col(Task.title),
    "status": _STATUS_ORDER,
    "priority": _PRIORITY_ORDER,
}


def _to_int(raw: Optional[str], default: int) -> int:
    # Leading integer wins ("3x" -> 3); no digits or zero fall back to the default.
    if raw is None:
        return default
    match = _LEADING_INT.match(str(raw))
    if match is None:
        return default
    return int(match.group()) or default


@dataclass
class TaskFilters:
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    search: Optional[str] = None
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT
    sort: Optional[str] = None

    @classmethod
    def from_query(
        cls,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        search: Optional[str] = None,
        page: Optional[str] = None,
        limit: Optional[str] = None,
        sort: Optional[str] = None,
    ) -> "TaskFilters":
        """Parse raw query-string values, clamping page/limit and dropping unknown enums."""
        search = (search or "").strip() or None
        return cls(
            status=TaskStatus.parse(status) if status else None,
            priority=TaskPriority.parse(priority) if priority else None,
            search=search,
            page=max(1, _to_int(page, DEFAULT_PAGE)),
            limit=min(MAX_LIMIT, max(1, _to_int(limit, DEFAULT_LIMIT))),
            sort=sort or None,
        )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def order_by(self) -> list:
        """Order clauses for `sort`; unknown fields mean newest first."""
        if self.sort:
            descending = self.sort.startswith("-")
            field = self.sort[1:] if descending else self.sort
            column = SORT_FIELDS.get(field)
            if column is not None:
                return [column.desc() if descending else column.asc(), col(Task.id).asc()]
        return [col(Task.created_at).desc(), col(Task.id).asc()]


@dataclass
class TaskPage:
    tasks: List[Task]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit)

    @property
    def has_next_page(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev_page(self) -> bool:
        return self.page > 1

    def pagination(self) -> dict:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "total_pages": self.total_pages,
            "has_next_page": self.has_next_page,
            "has_prev_page": self.has_prev_page,
        }


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def create_task(
    db: Session,
    owner_id: str,
    title: str,
    description: Optional[str] = None,
    status: Optional[str] = None,
    priority: Optional[str] = None,
) -> Task:
    """Create a task. Missing or unrecognized status/priority become pending/medium."""
    task = Task(
        title=title,
        description=description or "",
        status=TaskStatus.parse(status) or TaskStatus.PENDING,
        priority=TaskPriority.parse(priority) or TaskPriority.MEDIUM,
        user_id=owner_id,
    )
    db.add(task)
    db.commit()
    db.refresh(task)
    return task


def list_tasks(db: Session, owner_id: str, filters: TaskFilters) -> TaskPage:
    conditions = [col(Task.user_id) == owner_id]
    if filters.status is not None:
        conditions.append(col(Task.status) == filters.status)
    if filters.priority is not None:
        conditions.append(col(Task.priority) == filters.priority)
    if filters.search:
        pattern = f"%{_escape_like(filters.search)}%"
        conditions.append(
            or_(
                col(Task.title).ilike(pattern, escape="\\"),
                col(Task.description).ilike(pattern, escape="\\"),
            )
        )

    query = (
        select(Task)
        .where(*conditions)
        .order_by(*filters.order_by())
        .offset(filters.offset)
        .limit(filters.limit)
    )
    tasks = list(db.exec(query).all())
    total = db.exec(select(func.count()).select_from(Task).where(*conditions)).one()

    return TaskPage(tasks=tasks, page=filters.page, limit=filters.limit, total=total)


def get_task(db: Session, owner_id: str, task_id: str) -> Task:
    task = db.exec(select(Task).where(Task.id == task_id, Task.user_id == owner_id)).first()
    if not task:
        raise NotFound("Task not found.")
    return task


def update_task(db: Session, owner_id: str, task_id: str, patch: Mapping[str, Any]) -> Task:
    """Apply the recognized fields of `patch` to an owned task.

    Unrecognized status/priority values are ignored rather than rejected.
    Raises NoFields when nothing applicable remains.
    """
    task = get_task(db, owner_id, task_id)

    updates = {}
    if patch.get("title") is not None:
        updates["title"] = patch["title"]
    if patch.get("description") is not None:
        updates["description"] = patch["description"]
    status = TaskStatus.parse(patch.get("status"))
    if status is not None:
        updates["status"] = status
    priority = TaskPriority.parse(patch.get("priority"))
    if priority is not None:
        updates["priority"] = priority

    if not updates:
        raise NoFields()

    for field, value in updates.items():
        setattr(task, field, value)
    task.updated_at = utcnow()

    db.add(task)
    db.commit()
    db.refresh(task)
    return task


def delete_task(db: Session, owner_id: str, task_id: str) -> None:
    task = get_task(db, owner_id, task_id)
    db.delete(task)
    db.commit()
