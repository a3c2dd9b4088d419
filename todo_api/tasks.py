"""
Per-user task storage: filtered/sorted listing plus the mutations.

Every statement here is scoped by ``Task.user_id``; a task that exists but
belongs to someone else is reported exactly like a missing one.
"""
from typing import Any, List, Mapping, Optional, Union
from datetime import datetime
import logging

import pydantic
from pydantic import Field, field_validator
from sqlalchemy import func, or_
from sqlmodel import Session, select

from todo_api import config
from todo_api.errors import NotFoundError, ValidationError, errors_from_pydantic
from todo_api.models import Task, to_utc, utcnow
from todo_api.schemas import CamelModel, TaskCreate, TaskListResponse, TaskRead, TaskUpdate

logger = logging.getLogger(__name__)

DEFAULT_SORT_BY = "createdAt"
DEFAULT_SORT_DIRECTION = "desc"

# Keys are lower-cased with underscores removed, so "dueDate", "due_date"
# and "DUEDATE" all match.
SORT_COLUMNS = {
    "duedate": Task.due_date,
    "priority": Task.priority,
    "createdat": Task.created_at,
    "title": func.lower(Task.title),
}


class TaskQuery(CamelModel):
    is_completed: Optional[bool] = None
    priority: Optional[int] = Field(default=None, ge=1, le=3)
    due_after: Optional[datetime] = None
    due_before: Optional[datetime] = None
    search: Optional[str] = Field(default=None, max_length=config.SEARCH_MAX_LENGTH)
    sort_by: str = DEFAULT_SORT_BY
    sort_direction: str = DEFAULT_SORT_DIRECTION

    @field_validator("due_after", "due_before")
    @classmethod
    def normalize_bounds(cls, value):
        return to_utc(value)

    @field_validator("search")
    @classmethod
    def blank_search_is_no_search(cls, value):
        if value is not None and not value.strip():
            return None
        return value

    @property
    def descending(self) -> bool:
        return self.sort_direction.strip().lower() == "desc"


def _validate(model, data):
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as exc:
        raise ValidationError(errors_from_pydantic(exc)) from exc


def _filter_conditions(user_id: int, query: TaskQuery) -> List[Any]:
    conditions: List[Any] = [Task.user_id == user_id]

    if query.is_completed is not None:
        conditions.append(Task.is_completed == query.is_completed)

    if query.priority is not None:
        conditions.append(Task.priority == query.priority)

    # Tasks without a due date never satisfy a bound.
    if query.due_after is not None:
        conditions.append(Task.due_date >= query.due_after)

    if query.due_before is not None:
        conditions.append(Task.due_date <= query.due_before)

    if query.search is not None:
        term = query.search.strip().lower()
        conditions.append(
            or_(
                func.lower(Task.title).contains(term, autoescape=True),
                func.lower(Task.description).contains(term, autoescape=True),
            )
        )

    return conditions


def _ordering(query: TaskQuery) -> List[Any]:
    """
    ORDER BY clauses for the query. Rows with a NULL sort key always come
    last, whatever the direction, and ties fall back to the task id.
    """
    key = query.sort_by.replace("_", "").strip().lower()
    column = SORT_COLUMNS.get(key, SORT_COLUMNS["createdat"])
    if query.descending:
        return [column.is_(None), column.desc(), Task.id.desc()]
    return [column.is_(None), column.asc(), Task.id.asc()]


def _count(db: Session, conditions: List[Any]) -> int:
    return db.exec(select(func.count()).select_from(Task).where(*conditions)).one()


def list_tasks(
    db: Session,
    user_id: int,
    query: Union[TaskQuery, Mapping[str, Any], None] = None,
) -> TaskListResponse:
    query = _validate(TaskQuery, query or {})
    conditions = _filter_conditions(user_id, query)

    # Counts cover the whole filtered set, independent of ordering.
    total = _count(db, conditions)
    completed = _count(db, conditions + [Task.is_completed == True])  # noqa: E712

    statement = select(Task).where(*conditions).order_by(*_ordering(query))
    tasks = db.exec(statement).all()

    return TaskListResponse(
        tasks=[TaskRead.model_validate(task) for task in tasks],
        total=total,
        completed=completed,
        pending=total - completed,
    )


def _get_user_task(db: Session, user_id: int, task_id: int) -> Task:
    task = db.exec(select(Task).where(Task.id == task_id, Task.user_id == user_id)).first()
    if task is None:
        raise NotFoundError()
    return task


def get_task(db: Session, user_id: int, task_id: int) -> TaskRead:
    return TaskRead.model_validate(_get_user_task(db, user_id, task_id))


def create_task(
    db: Session,
    user_id: int,
    title: str,
    description: Optional[str] = None,
    due_date: Optional[datetime] = None,
    priority: Optional[int] = None,
) -> TaskRead:
    data = {"title": title, "description": description, "due_date": due_date}
    if priority is not None:
        data["priority"] = priority
    task_in = _validate(TaskCreate, data)

    db_task = Task(
        user_id=user_id,
        title=task_in.title,
        description=task_in.description,
        due_date=task_in.due_date,
        priority=task_in.priority,
        is_completed=False,
        created_at=utcnow(),
        updated_at=None,
    )
    db.add(db_task)
    db.commit()
    db.refresh(db_task)

    logger.info("Task created: %s for user %s", db_task.id, user_id)
    return TaskRead.model_validate(db_task)


def update_task(
    db: Session,
    user_id: int,
    task_id: int,
    changes: Union[TaskUpdate, Mapping[str, Any]],
) -> TaskRead:
    """
    Applies only the fields present in ``changes``; everything else keeps its
    current value. The ownership check runs before the changes are validated.
    """
    task = _get_user_task(db, user_id, task_id)
    task_update = _validate(TaskUpdate, changes)

    update_data = task_update.model_dump(exclude_unset=True)
    for key, value in update_data.items():
        setattr(task, key, value)

    task.updated_at = utcnow()
    db.add(task)
    db.commit()
    db.refresh(task)

    logger.info("Task updated: %s for user %s (%s)", task_id, user_id, ", ".join(sorted(update_data)) or "no fields")
    return TaskRead.model_validate(task)


def delete_task(db: Session, user_id: int, task_id: int) -> None:
    task = _get_user_task(db, user_id, task_id)
    db.delete(task)
    db.commit()
    logger.info("Task deleted: %s for user %s", task_id, user_id)


def toggle_completion(db: Session, user_id: int, task_id: int) -> TaskRead:
    task = _get_user_task(db, user_id, task_id)
    task.is_completed = not task.is_completed
    task.updated_at = utcnow()
    db.add(task)
    db.commit()
    db.refresh(task)

    logger.info("Task %s completion toggled to %s for user %s", task_id, task.is_completed, user_id)
    return TaskRead.model_validate(task)
