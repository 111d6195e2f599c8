from datetime import datetime, timezone

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from database import Base


def utcnow() -> datetime:
    # naive UTC, SQLite drops tzinfo on the way back anyway
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False)
    email = Column(String(254), unique=True, index=True, nullable=False)
    password_hash = Column(String(100), nullable=False)
    date_of_birth = Column(Date, nullable=False)
    role = Column(String(10), nullable=False, default="user")
    reset_token = Column(String(64), nullable=True, index=True)
    reset_token_expiry = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    tasks = relationship("Task", back_populates="owner", cascade="all, delete-orphan")

    def set_reset_token(self, token_hash: str, expiry: datetime) -> None:
        self.reset_token = token_hash
        self.reset_token_expiry = expiry

    def clear_reset_token(self) -> None:
        self.reset_token = None
        self.reset_token_expiry = None


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    title = Column(String(100), nullable=False)
    description = Column(String(500), nullable=True)
    status = Column(String(20), nullable=False, default="pending")
    priority = Column(String(10), nullable=True)
    due_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    owner = relationship("User", back_populates="tasks")
    tag_rows = relationship(
        "TaskTag",
        order_by="TaskTag.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def tags(self):
        return [row.value for row in self.tag_rows]

    @tags.setter
    def tags(self, values):
        self.tag_rows = [TaskTag(position=i, value=v) for i, v in enumerate(values or [])]


class TaskTag(Base):
    __tablename__ = "task_tags"

    id = Column(Integer, primary_key=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), index=True, nullable=False)
    position = Column(Integer, nullable=False)
    value = Column(Text, nullable=False)
