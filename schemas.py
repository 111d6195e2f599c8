from datetime import date, datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Mapping, Optional, Type, TypeVar

import pydantic
from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from errors import ValidationError

MAX_NAME_LENGTH = 50
MIN_PASSWORD_LENGTH = 6
MAX_PASSWORD_LENGTH = 128
MAX_TITLE_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500
MAX_PAGE = 2**31 - 1


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SortField(str, Enum):
    CREATED_AT = "createdAt"
    UPDATED_AT = "updatedAt"
    DUE_DATE = "dueDate"
    TITLE = "title"
    STATUS = "status"
    PRIORITY = "priority"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


def _strip(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


def _calendar_date(value: Any) -> Any:
    """Reduce a date-time (or ISO date-time string) to its UTC calendar date."""
    if isinstance(value, str) and len(value) > 10:
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    return value


def _lower(value: str) -> str:
    return value.lower()


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


CalendarDate = Annotated[date, pydantic.BeforeValidator(_calendar_date)]
Email = Annotated[EmailStr, pydantic.BeforeValidator(_strip), pydantic.AfterValidator(_lower)]
Text = Annotated[str, pydantic.BeforeValidator(_strip)]
Timestamp = Annotated[datetime, pydantic.AfterValidator(_naive_utc)]


class Schema(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )


# Users

class RegisterRequest(Schema):
    name: Text = Field(min_length=1, max_length=MAX_NAME_LENGTH)
    email: Email
    password: str = Field(min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_LENGTH)
    date_of_birth: CalendarDate


class LoginRequest(Schema):
    email: Email
    password: str = Field(min_length=1)


class ProfileUpdate(Schema):
    name: Optional[Text] = Field(default=None, min_length=1, max_length=MAX_NAME_LENGTH)
    email: Optional[Email] = None


class ChangePasswordRequest(Schema):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_LENGTH)


class ForgotPasswordRequest(Schema):
    email: Email
    date_of_birth: CalendarDate


class VerifyDateOfBirthRequest(ForgotPasswordRequest):
    pass


class ResetPasswordRequest(Schema):
    token: Text = Field(min_length=1)
    new_password: str = Field(
        min_length=MIN_PASSWORD_LENGTH,
        max_length=MAX_PASSWORD_LENGTH,
        validation_alias=AliasChoices("newPassword", "new_password", "password"),
    )


class UserPublic(Schema):
    """Externally visible user. Credentials and reset state are not fields here."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    date_of_birth: date
    role: UserRole
    created_at: datetime
    updated_at: datetime


# Tasks

class TaskCreate(Schema):
    title: Text = Field(min_length=1, max_length=MAX_TITLE_LENGTH)
    description: Optional[Text] = Field(default=None, max_length=MAX_DESCRIPTION_LENGTH)
    status: TaskStatus = Field(default=TaskStatus.PENDING, validate_default=True)
    priority: Optional[TaskPriority] = None
    due_date: Optional[Timestamp] = None
    tags: List[str] = Field(default_factory=list)


class TaskUpdate(Schema):
    """Partial patch; only keys present in the request are applied."""

    title: Optional[Text] = Field(default=None, min_length=1, max_length=MAX_TITLE_LENGTH)
    description: Optional[Text] = Field(default=None, max_length=MAX_DESCRIPTION_LENGTH)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[Timestamp] = None
    tags: Optional[List[str]] = None

    @field_validator("title", "status")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("Field cannot be null")
        return v

    def changes(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self.model_fields_set}


class TaskOut(Schema):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: int = Field(validation_alias=AliasChoices("user_id", "owner_id", "ownerId"))
    title: str
    description: Optional[str] = None
    status: TaskStatus
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None
    tags: List[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class TaskQuery(Schema):
    page: int = Field(default=1, ge=1, le=MAX_PAGE)
    limit: int = Field(default=10, ge=1, le=100)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    search: Optional[str] = None
    sort_by: SortField = Field(default=SortField.CREATED_AT, validate_default=True)
    sort_order: SortOrder = Field(default=SortOrder.DESC, validate_default=True)

    @field_validator("status", "priority", "search", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @field_validator("sort_by", mode="before")
    @classmethod
    def default_sort_by(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return SortField.CREATED_AT
        return v

    @field_validator("sort_order", mode="before")
    @classmethod
    def default_sort_order(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return SortOrder.DESC
        return v.lower() if isinstance(v, str) else v


class Pagination(Schema):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class TaskPage(Schema):
    tasks: List[TaskOut]
    pagination: Pagination


class TaskStats(Schema):
    total: int = 0
    pending: int = 0
    in_progress: int = 0
    completed: int = 0
    overdue: int = 0


# Validation helpers

def format_errors(errors: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    """Flatten pydantic error dicts into ``{"field", "message"}`` pairs."""
    formatted = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        message = err.get("msg", "Invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        formatted.append({"field": ".".join(loc), "message": message})
    return formatted


M = TypeVar("M", bound=BaseModel)


def validate_input(model: Type[M], data: Mapping[str, Any]) -> M:
    try:
        return model.model_validate(dict(data))
    except pydantic.ValidationError as exc:
        raise ValidationError("Validation failed", errors=format_errors(exc.errors())) from exc


def dump(model: BaseModel) -> Dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)
