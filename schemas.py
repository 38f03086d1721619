"""Request payload validation for the JSON and form endpoints."""
import json
from datetime import date, datetime
from typing import Annotated, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, Field, StrictBool, field_validator

TIME_PATTERN = r'^([0-1][0-9]|2[0-3]):[0-5][0-9]$'
HEX_COLOR_PATTERN = r'^#(?:[0-9a-fA-F]{3}){1,2}$'
EMAIL_PATTERN = r'^[^@\s]+@[^@\s]+\.[^@\s]+$'

TaskStatus = Literal['pending', 'complete']
WorkflowCategory = Literal['daily', 'weekly', 'project', 'meeting', 'custom']
WorkflowStatus = Literal['scheduled', 'in-progress', 'completed', 'cancelled']
Weekday = Literal['monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday']


def to_local_naive(value):
    """Timestamps are stored as naive local time."""
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


LocalDatetime = Annotated[datetime, AfterValidator(to_local_naive)]


def _strip(value):
    return value.strip() if isinstance(value, str) else value


class RegisterRequest(BaseModel):
    name: str = Field(min_length=1, description="Display name")
    email: str = Field(pattern=EMAIL_PATTERN)
    password: str = Field(min_length=6, description="Password must be at least 6 characters")

    @field_validator('name', 'email', mode='before')
    @classmethod
    def strip(cls, value):
        return _strip(value)

    @field_validator('email')
    @classmethod
    def lowercase(cls, value):
        return value.lower()


class LoginRequest(BaseModel):
    email: str = Field(pattern=EMAIL_PATTERN)
    password: str = Field(min_length=1)

    @field_validator('email', mode='before')
    @classmethod
    def normalize(cls, value):
        value = _strip(value)
        return value.lower() if isinstance(value, str) else value


class NotificationSettings(BaseModel):
    emailNotifications: StrictBool


class TaskCreate(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    dueDate: Optional[LocalDatetime] = None
    status: TaskStatus = 'pending'


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    dueDate: Optional[LocalDatetime] = None
    status: Optional[TaskStatus] = None


class TaskStatusUpdate(BaseModel):
    status: TaskStatus


class NoteForm(BaseModel):
    title: str = Field(min_length=1)
    content: str = Field(min_length=1)
    color: str = Field(default='#ffffff', pattern=HEX_COLOR_PATTERN)
    isPinned: bool = False

    @field_validator('title', mode='before')
    @classmethod
    def strip_title(cls, value):
        return _strip(value)


class NoteUpdateForm(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR_PATTERN)
    isPinned: Optional[bool] = None
    removedImages: List[str] = Field(default_factory=list)

    @field_validator('title', mode='before')
    @classmethod
    def strip_title(cls, value):
        return _strip(value)

    @field_validator('removedImages', mode='before')
    @classmethod
    def parse_removed(cls, value):
        # multipart clients send the list as a JSON string
        if isinstance(value, str):
            return json.loads(value) if value.strip() else []
        return value


class StepInput(BaseModel):
    id: Optional[str] = None
    title: str = Field(min_length=1)
    description: Optional[str] = None
    duration: int = Field(default=30, ge=0)
    isCompleted: bool = False
    completedAt: Optional[LocalDatetime] = None
    order: Optional[int] = None


class WorkflowCreate(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    category: WorkflowCategory = 'custom'
    startDate: LocalDatetime
    endDate: Optional[LocalDatetime] = None
    startTime: str = Field(default='09:00', pattern=TIME_PATTERN)
    isRecurring: bool = False
    recurringDays: List[Weekday] = Field(default_factory=list)
    steps: List[StepInput] = Field(default_factory=list)
    status: WorkflowStatus = 'scheduled'
    color: str = Field(default='#3b82f6', pattern=HEX_COLOR_PATTERN)

    @field_validator('title', mode='before')
    @classmethod
    def strip_title(cls, value):
        return _strip(value)


class WorkflowUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    category: Optional[WorkflowCategory] = None
    startDate: Optional[LocalDatetime] = None
    endDate: Optional[LocalDatetime] = None
    startTime: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    isRecurring: Optional[bool] = None
    recurringDays: Optional[List[Weekday]] = None
    steps: Optional[List[StepInput]] = None
    status: Optional[WorkflowStatus] = None
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR_PATTERN)

    @field_validator('title', mode='before')
    @classmethod
    def strip_title(cls, value):
        return _strip(value)


class WorkflowStatusUpdate(BaseModel):
    status: WorkflowStatus


class WorkflowFilter(BaseModel):
    startDate: Optional[LocalDatetime] = None
    endDate: Optional[LocalDatetime] = None
    day: Optional[date] = Field(default=None, alias='date')
    category: Optional[WorkflowCategory] = None
    status: Optional[WorkflowStatus] = None
