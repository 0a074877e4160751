"""
Schemas for the Taskboard API

Stored documents live in four MongoDB collections named after the entities,
lowercased: user, session, task, tag. Keys are stored snake_case and
rendered camelCase on the wire; the request models below accept the
camelCase names (and the snake_case ones, for scripts).
"""
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

TaskStatus = Literal["pending", "in-progress", "completed"]
TASK_STATUSES = ("pending", "in-progress", "completed")

TagColor = Literal["gray", "red", "orange", "yellow", "green", "blue", "purple", "pink"]
DEFAULT_TAG_COLOR = "gray"

BIO_MAX_LENGTH = 200
PASSWORD_MIN_LENGTH = 8


class RequestModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# Auth and Users
class RegisterRequest(RequestModel):
    name: str
    email: EmailStr
    password: str


class LoginRequest(RequestModel):
    email: EmailStr
    password: str


class ProfileUpdate(RequestModel):
    name: Optional[str] = None
    avatar: Optional[str] = None
    bio: Optional[str] = None


# Tasks
class TaskCreate(RequestModel):
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    due_date: Optional[str] = Field(None, alias="dueDate", description="ISO date or datetime string")


class TaskUpdate(RequestModel):
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    due_date: Optional[str] = Field(None, alias="dueDate")
    tag_ids: Optional[List[str]] = Field(None, alias="tagIds", description="Replaces the task's tag set")


class BulkTaskUpdates(RequestModel):
    status: Optional[TaskStatus] = None
    due_date: Optional[str] = Field(None, alias="dueDate")
    add_tag_ids: Optional[List[str]] = Field(None, alias="addTagIds", description="Unioned into each task's tags")


class BulkUpdateRequest(RequestModel):
    task_ids: List[str] = Field(default_factory=list, alias="taskIds")
    updates: Optional[BulkTaskUpdates] = None


class BulkDeleteRequest(RequestModel):
    task_ids: List[str] = Field(default_factory=list, alias="taskIds")


# Tags
class TagCreate(RequestModel):
    name: Optional[str] = None
    color: Optional[TagColor] = None


class TagUpdate(RequestModel):
    name: Optional[str] = None
    color: Optional[TagColor] = None
