"""Repository classes encapsulating database operations.

Each repository is small and focused on a single table. Repositories
know nothing about callers or ownership; services resolve the user and
apply the ownership guards before calling them. Writes commit the one
row they touch, and list queries return rows in insertion order.
"""

from typing import List, Optional

from sqlmodel import Session, select

from . import models


class _Repository:
    """Primary-key access and single-row writes shared by every table."""
    model = None

    def __init__(self, session: Session):
        self.session = session

    def get(self, record_id: str):
        """Fetch a row by primary key or `None`."""
        return self.session.get(self.model, record_id)

    def add(self, record):
        """Persist a new row and return the managed instance."""
        self.session.add(record)
        self.session.commit()
        self.session.refresh(record)
        return record

    def patch(self, record, changes: dict):
        """Write `changes` onto `record`; fields not in `changes` are untouched."""
        for field, value in changes.items():
            setattr(record, field, value)
        self.session.add(record)
        self.session.commit()
        self.session.refresh(record)
        return record

    def delete(self, record) -> None:
        self.session.delete(record)
        self.session.commit()


class _OwnedRepository(_Repository):
    """Tables with a `user_id` column and a by-user index."""

    def list_for_user(self, user_id: str) -> list:
        """Return every row owned by `user_id` in insertion order."""
        stmt = select(self.model).where(self.model.user_id == user_id).order_by(self.model.created_at)
        return list(self.session.exec(stmt).all())


class UserRepository(_Repository):
    """CRUD operations for `User` objects."""
    model = models.User

    def create(self, user: models.User) -> models.User:
        return self.add(user)

    def get_by_external_id(self, external_id: str) -> Optional[models.User]:
        """Return a `User` by identity-provider subject or `None`."""
        stmt = select(models.User).where(models.User.external_id == external_id)
        return self.session.exec(stmt).first()


class SubjectRepository(_OwnedRepository):
    model = models.Subject


class TaskRepository(_OwnedRepository):
    """Tasks indexed by owner, (owner, due date) and subject."""
    model = models.Task

    def list_for_user_due_on(self, user_id: str, due_date: str) -> List[models.Task]:
        """Exact match on the (user_id, due_date) index."""
        stmt = select(models.Task).where(
            models.Task.user_id == user_id,
            models.Task.due_date == due_date
        ).order_by(models.Task.created_at)
        return list(self.session.exec(stmt).all())

    def list_for_subject(self, subject_id: str) -> List[models.Task]:
        """All tasks referencing `subject_id`, whoever owns them."""
        stmt = select(models.Task).where(models.Task.subject_id == subject_id).order_by(models.Task.created_at)
        return list(self.session.exec(stmt).all())


class TestRepository(_OwnedRepository):
    model = models.Test

    def list_attempted_for_user(self, user_id: str) -> List[models.Test]:
        stmt = select(models.Test).where(
            models.Test.user_id == user_id,
            models.Test.status == "attempted"
        ).order_by(models.Test.created_at)
        return list(self.session.exec(stmt).all())


class DeckRepository(_OwnedRepository):
    model = models.FlashcardDeck

    def list_for_subject(self, subject_id: str) -> List[models.FlashcardDeck]:
        stmt = select(models.FlashcardDeck).where(
            models.FlashcardDeck.subject_id == subject_id
        ).order_by(models.FlashcardDeck.created_at)
        return list(self.session.exec(stmt).all())


class FlashcardRepository(_Repository):
    """Flashcards are looked up through the by-deck index only."""
    model = models.Flashcard

    def list_for_deck(self, deck_id: str) -> List[models.Flashcard]:
        stmt = select(models.Flashcard).where(models.Flashcard.deck_id == deck_id).order_by(models.Flashcard.created_at)
        return list(self.session.exec(stmt).all())

    def delete_for_deck(self, deck_id: str) -> int:
        """Remove every card in `deck_id` in one commit; return how many."""
        cards = self.list_for_deck(deck_id)
        for card in cards:
            self.session.delete(card)
        self.session.commit()
        return len(cards)
