"""Task store and query engine. Every lookup is scoped to the owning user."""

import logging
import math
from datetime import datetime
from typing import Any, List, Mapping, Optional

from sqlalchemy import case, func, or_, select
from sqlalchemy.orm import Session

from errors import NotFoundError
from models import Task, TaskTag, User, utcnow
from schemas import (
    Pagination,
    SortField,
    TaskCreate,
    TaskOut,
    TaskPage,
    TaskQuery,
    TaskStats,
    TaskUpdate,
    validate_input,
)

logger = logging.getLogger(__name__)

PRIORITY_RANK = case(
    (Task.priority == "low", 1),
    (Task.priority == "medium", 2),
    (Task.priority == "high", 3),
    else_=0,
)

# largest id a 64-bit integer column can hold
MAX_TASK_ID = 2**63 - 1

SORT_COLUMNS = {
    SortField.CREATED_AT: Task.created_at,
    SortField.UPDATED_AT: Task.updated_at,
    SortField.DUE_DATE: Task.due_date,
    SortField.TITLE: Task.title,
    SortField.STATUS: Task.status,
    SortField.PRIORITY: PRIORITY_RANK,
}


def create_task(db: Session, owner: User, data: TaskCreate) -> Task:
    task = Task(
        user_id=owner.id,
        title=data.title,
        description=data.description,
        status=data.status,
        priority=data.priority,
        due_date=data.due_date,
    )
    task.tags = data.tags
    db.add(task)
    db.commit()
    db.refresh(task)

    logger.info("User %s created task %s", owner.id, task.id)
    return task


def get_task(db: Session, owner: User, task_id: int) -> Task:
    if not 0 < task_id <= MAX_TASK_ID:
        raise NotFoundError("Task not found")

    # a task owned by someone else is reported exactly like a missing one
    task = db.scalars(select(Task).where(Task.id == task_id, Task.user_id == owner.id)).first()
    if not task:
        raise NotFoundError("Task not found")
    return task


def update_task(db: Session, owner: User, task_id: int, patch: TaskUpdate) -> Task:
    task = get_task(db, owner, task_id)

    for field, value in patch.changes().items():
        if field == "tags":
            task.tags = value or []
        else:
            setattr(task, field, value)
    task.updated_at = utcnow()

    db.commit()
    db.refresh(task)
    return task


def delete_task(db: Session, owner: User, task_id: int) -> None:
    task = get_task(db, owner, task_id)
    db.delete(task)
    db.commit()
    logger.info("User %s deleted task %s", owner.id, task_id)


def parse_task_query(params: Mapping[str, Any]) -> TaskQuery:
    return validate_input(TaskQuery, params)


def build_filter(owner: User, query: TaskQuery) -> List[Any]:
    conditions = [Task.user_id == owner.id]
    if query.status:
        conditions.append(Task.status == query.status)
    if query.priority:
        conditions.append(Task.priority == query.priority)
    if query.search:
        conditions.append(
            or_(
                Task.title.icontains(query.search, autoescape=True),
                Task.description.icontains(query.search, autoescape=True),
                Task.tag_rows.any(TaskTag.value.icontains(query.search, autoescape=True)),
            )
        )
    return conditions


def list_tasks(db: Session, owner: User, query: TaskQuery) -> TaskPage:
    conditions = build_filter(owner, query)

    total = db.scalar(select(func.count()).select_from(Task).where(*conditions)) or 0

    column = SORT_COLUMNS[SortField(query.sort_by)]
    if query.sort_order == "asc":
        order = (column.asc(), Task.id.asc())
    else:
        order = (column.desc(), Task.id.desc())

    rows = db.scalars(
        select(Task)
        .where(*conditions)
        .order_by(*order)
        .offset((query.page - 1) * query.limit)
        .limit(query.limit)
    ).all()

    total_pages = math.ceil(total / query.limit)
    return TaskPage(
        tasks=[TaskOut.model_validate(task) for task in rows],
        pagination=Pagination(
            page=query.page,
            limit=query.limit,
            total=total,
            total_pages=total_pages,
            has_next=query.page < total_pages,
            has_prev=query.page > 1,
        ),
    )


def task_stats(db: Session, owner: User, now: Optional[datetime] = None) -> TaskStats:
    counts = dict(
        db.execute(
            select(Task.status, func.count()).where(Task.user_id == owner.id).group_by(Task.status)
        ).all()
    )
    overdue = db.scalar(
        select(func.count())
        .select_from(Task)
        .where(
            Task.user_id == owner.id,
            Task.status != "completed",
            Task.due_date.is_not(None),
            Task.due_date < (now or utcnow()),
        )
    )
    return TaskStats(
        total=sum(counts.values()),
        pending=counts.get("pending", 0),
        in_progress=counts.get("in-progress", 0),
        completed=counts.get("completed", 0),
        overdue=overdue or 0,
    )
