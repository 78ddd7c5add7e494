"""SQLModel data models.

This module defines the study tracker tables. Every table uses an
opaque string identifier and a `created_at` stamp that defines the
natural insertion order. Owned records reference their owner through
`user_id`; flashcards are owned transitively through their deck.

Enum-like columns are stored as plain strings; the allowed literals
are declared once in `schemas` and validated before any write.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Index
from sqlmodel import SQLModel, Field


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    """A study tracker user.

    Fields:
    - `external_id`: the identity provider's stable subject string (unique)
    - `target_score`: optional goal score shown on the dashboard
    """
    id: str = Field(default_factory=new_id, primary_key=True)
    external_id: str = Field(index=True, nullable=False, unique=True)
    name: str
    email: str
    avatar_url: Optional[str] = None
    target_score: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow)


class Subject(SQLModel, table=True):
    """An exam subject with self-reported progress and exam weightage."""
    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(foreign_key='user.id', index=True)
    name: str
    progress: float = 0
    status: str = "pending"
    weightage: float = 0
    created_at: datetime = Field(default_factory=utcnow)


class Task(SQLModel, table=True):
    """A planned unit of study work.

    `due_date` is an ISO date string (YYYY-MM-DD) so that the per-day
    lookup is an exact match on the (user_id, due_date) index.
    """
    __table_args__ = (Index("ix_task_user_due_date", "user_id", "due_date"),)

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(foreign_key='user.id', index=True)
    subject_id: str = Field(index=True)
    title: str
    type: str
    status: str = "pending"
    priority: str = "medium"
    due_date: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class Test(SQLModel, table=True):
    """A mock or practice test and, once attempted, its result."""
    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(foreign_key='user.id', index=True)
    name: str
    type: str
    status: str = "not_attempted"
    score: Optional[float] = None
    accuracy: Optional[float] = None
    created_at: datetime = Field(default_factory=utcnow)


class FlashcardDeck(SQLModel, table=True):
    """A named deck of flashcards attached to a subject."""
    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(foreign_key='user.id', index=True)
    subject_id: str = Field(index=True)
    name: str
    created_at: datetime = Field(default_factory=utcnow)


class Flashcard(SQLModel, table=True):
    """A single card inside a `FlashcardDeck`.

    `deck_id` carries no database foreign key; the revision service
    removes a deck's cards before removing the deck itself.
    """
    id: str = Field(default_factory=new_id, primary_key=True)
    deck_id: str = Field(index=True)
    front: str
    back: str
    mastery_level: str = "new"
    created_at: datetime = Field(default_factory=utcnow)
