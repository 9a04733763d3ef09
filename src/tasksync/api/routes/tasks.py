"""Task CRUD routes. Every mutation also queues an outbox entry."""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel
from sqlmodel import Session

from tasksync.db.engine import get_session
from tasksync.models.task import Task
from tasksync.tasks import service

router = APIRouter()


class TaskCreate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    completed: bool = False


class TaskUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    completed: Optional[bool] = None


@router.get("/", response_model=List[Task])
def list_tasks(session: Session = Depends(get_session)):
    """List non-deleted tasks, most recently updated first."""
    return service.list_tasks(session)


@router.get("/{task_id}", response_model=Task)
def get_task(task_id: str, session: Session = Depends(get_session)):
    task = service.get_task(session, task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@router.post("/", response_model=Task, status_code=201)
def create_task(request: TaskCreate, session: Session = Depends(get_session)):
    if not request.title or not request.title.strip():
        raise HTTPException(status_code=400, detail="title is required")
    return service.create_task(
        session,
        title=request.title.strip(),
        description=request.description,
        completed=request.completed,
    )


@router.put("/{task_id}", response_model=Task)
def update_task(
    task_id: str, request: TaskUpdate, session: Session = Depends(get_session)
):
    """Partial update: only fields present in the body are changed."""
    fields = request.model_fields_set
    changes = {}
    if "title" in fields:
        if not request.title or not request.title.strip():
            raise HTTPException(status_code=400, detail="title must be a non-empty string")
        changes["title"] = request.title.strip()
    if "description" in fields:
        changes["description"] = request.description
    if "completed" in fields and request.completed is not None:
        changes["completed"] = request.completed

    task = service.update_task(session, task_id, **changes)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@router.delete("/{task_id}", status_code=204)
def delete_task(task_id: str, session: Session = Depends(get_session)):
    """Soft delete; the row stays until the delete has been synced."""
    if not service.soft_delete_task(session, task_id):
        raise HTTPException(status_code=404, detail="Task not found")
    return Response(status_code=204)
