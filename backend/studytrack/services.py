"""Business logic services used by the HTTP controllers and scripts.

Every owner-scoped operation follows the same sequence:

1. resolve the caller from the explicit `AuthContext`,
2. validate the input against its schema,
3. run the ownership guard for single-record reads and all mutations,
4. touch the repository.

Failures are raised as `studytrack.errors` exceptions and are never
retried or swallowed here. Validation and guard failures happen before
any write, so a failed call leaves the store as it was.
"""

import json
import logging
from datetime import date
from typing import List, Optional, get_args

import pydantic
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from . import access, analytics, models, repositories, schemas
from .auth import AuthContext
from .config import settings
from .errors import Unauthenticated, ValidationError

logger = logging.getLogger("studytrack.services")

DEFAULT_SUBJECTS = [
    ("Digital Electronics", 15),
    ("Control Systems", 12),
    ("Signals and Systems", 10),
    ("Communication Systems", 8),
    ("Electromagnetic Theory", 6),
    ("Network Theory", 5),
    ("Analog Electronics", 4),
]


def _log_event(event: str, **fields) -> None:
    logger.info("%s %s", event, json.dumps(fields, ensure_ascii=True, default=str))


def describe_errors(errors) -> List[dict]:
    """Reduce pydantic error dicts to JSON-safe `loc`/`msg` pairs."""
    return [
        {"loc": ".".join(str(p) for p in err.get("loc", ())), "msg": err.get("msg", "")}
        for err in errors
    ]


def coerce(schema_cls, data):
    """Validate `data` (a mapping or schema instance) as `schema_cls`.

    Pydantic failures are re-raised as `ValidationError` so callers only
    ever see the service error taxonomy.
    """
    if isinstance(data, schema_cls):
        return data
    if isinstance(data, pydantic.BaseModel):
        data = data.model_dump(exclude_unset=True)
    try:
        return schema_cls.model_validate(data or {})
    except pydantic.ValidationError as exc:
        errors = describe_errors(exc.errors())
        detail = "; ".join(f"{e['loc']}: {e['msg']}" if e["loc"] else e["msg"] for e in errors)
        raise ValidationError(detail, errors=errors) from exc


def require_literal(value: str, literal, field: str) -> str:
    """Reject filter values outside a `Literal` type's members."""
    allowed = get_args(literal)
    if value not in allowed:
        raise ValidationError(f"{field}: must be one of {', '.join(allowed)}",
                              errors=[{"loc": field, "msg": "invalid literal"}])
    return value


def changes_from(patch: pydantic.BaseModel) -> dict:
    """Fields the caller supplied; explicit nulls count as omitted."""
    return {k: v for k, v in patch.model_dump(exclude_unset=True).items() if v is not None}


def _delete_deck_with_cards(session: Session, deck: models.FlashcardDeck) -> int:
    """Remove a deck's cards, then the deck, as two separate commits."""
    removed = repositories.FlashcardRepository(session).delete_for_deck(deck.id)
    repositories.DeckRepository(session).delete(deck)
    return removed


class _OwnerScopedService:
    def __init__(self, session: Session):
        self.session = session

    def current_user(self, ctx: AuthContext) -> models.User:
        return access.resolve_user(self.session, ctx)

    def _check_subject_reference(self, user: models.User, subject_id: str) -> None:
        """Referenced subjects must exist and belong to the caller, unless disabled."""
        if not settings.ENFORCE_SUBJECT_REFERENCES:
            return
        subject = repositories.SubjectRepository(self.session).get(subject_id)
        access.ensure_owner(user, subject, "subject")


class UserService(_OwnerScopedService):
    """Provisioning and profile management for `User` records."""
    def __init__(self, session: Session):
        super().__init__(session)
        self.user_repo = repositories.UserRepository(session)

    def create_user(self, data) -> str:
        """Create a user for an external identity (idempotent).

        Returns the existing user's id when the identity is already
        provisioned, so repeated webhook deliveries are harmless.
        """
        payload = coerce(schemas.UserCreate, data)
        existing = self.user_repo.get_by_external_id(payload.external_id)
        if existing:
            return existing.id
        try:
            user = self.user_repo.create(models.User(**payload.model_dump()))
        except IntegrityError:
            # a concurrent call inserted the same external_id first
            self.session.rollback()
            existing = self.user_repo.get_by_external_id(payload.external_id)
            if existing is None:
                raise
            return existing.id
        _log_event("user_created", user_id=user.id, external_id=user.external_id)
        return user.id

    def provision_current_user(self, ctx: AuthContext, data=None) -> str:
        """Provision the caller from their identity claims.

        A user left without subjects receives the default subject list.
        """
        if ctx is None or not ctx.is_authenticated:
            raise Unauthenticated("not authenticated")
        extras = coerce(schemas.ProvisionIn, data)
        target = extras.target_score if extras.target_score is not None else settings.DEFAULT_TARGET_SCORE
        user_id = self.create_user({
            "external_id": ctx.external_id,
            "name": ctx.name,
            "email": ctx.email,
            "avatar_url": ctx.avatar_url,
            "target_score": target,
        })
        SubjectService(self.session).seed_defaults(ctx)
        return user_id

    def get_user_by_external_id(self, external_id: str) -> Optional[models.User]:
        return self.user_repo.get_by_external_id(external_id)

    def get_profile(self, ctx: AuthContext) -> models.User:
        return self.current_user(ctx)

    def update_profile(self, ctx: AuthContext, patch) -> str:
        user = self.current_user(ctx)
        changes = changes_from(coerce(schemas.UserPatch, patch))
        self.user_repo.patch(user, changes)
        _log_event("user_updated", user_id=user.id, fields=sorted(changes))
        return user.id


class SubjectService(_OwnerScopedService):
    """Subjects owned by the caller."""
    def __init__(self, session: Session):
        super().__init__(session)
        self.subject_repo = repositories.SubjectRepository(session)

    def get_subjects(self, ctx: AuthContext) -> List[models.Subject]:
        user = self.current_user(ctx)
        return self.subject_repo.list_for_user(user.id)

    def get_subject(self, ctx: AuthContext, subject_id: str) -> models.Subject:
        user = self.current_user(ctx)
        return access.ensure_owner(user, self.subject_repo.get(subject_id), "subject")

    def create_subject(self, ctx: AuthContext, data) -> str:
        user = self.current_user(ctx)
        payload = coerce(schemas.SubjectCreate, data)
        subject = self.subject_repo.add(models.Subject(user_id=user.id, **payload.model_dump()))
        _log_event("subject_created", subject_id=subject.id, user_id=user.id)
        return subject.id

    def seed_defaults(self, ctx: AuthContext) -> List[str]:
        """Create the default subject list when the caller has no subjects."""
        user = self.current_user(ctx)
        if self.subject_repo.list_for_user(user.id):
            return []
        created = []
        for name, weightage in DEFAULT_SUBJECTS:
            created.append(self.create_subject(ctx, {
                "name": name, "progress": 0, "status": "pending", "weightage": weightage,
            }))
        return created

    def update_subject(self, ctx: AuthContext, subject_id: str, patch) -> str:
        """Merge only the supplied fields into the subject."""
        user = self.current_user(ctx)
        changes = changes_from(coerce(schemas.SubjectPatch, patch))
        subject = access.ensure_owner(user, self.subject_repo.get(subject_id), "subject")
        self.subject_repo.patch(subject, changes)
        _log_event("subject_updated", subject_id=subject_id, user_id=user.id, fields=sorted(changes))
        return subject_id

    def update_subject_progress(self, ctx: AuthContext, subject_id: str, progress: float,
                                status: Optional[str] = None) -> str:
        body = {"progress": progress}
        if status is not None:
            body["status"] = status
        payload = coerce(schemas.SubjectProgressIn, body)
        return self.update_subject(ctx, subject_id, changes_from(payload))

    def delete_subject(self, ctx: AuthContext, subject_id: str) -> str:
        """Delete a subject according to `SUBJECT_DELETE_POLICY`.

        With `orphan` (the default) the subject's tasks and decks keep a
        dangling `subject_id`. With `cascade` they are removed first,
        decks together with their cards.
        """
        user = self.current_user(ctx)
        subject = access.ensure_owner(user, self.subject_repo.get(subject_id), "subject")
        if settings.SUBJECT_DELETE_POLICY == "cascade":
            task_repo = repositories.TaskRepository(self.session)
            for task in task_repo.list_for_subject(subject_id):
                if task.user_id == user.id:
                    task_repo.delete(task)
            for deck in repositories.DeckRepository(self.session).list_for_subject(subject_id):
                if deck.user_id == user.id:
                    _delete_deck_with_cards(self.session, deck)
        self.subject_repo.delete(subject)
        _log_event("subject_deleted", subject_id=subject_id, user_id=user.id,
                   policy=settings.SUBJECT_DELETE_POLICY)
        return subject_id


class TaskService(_OwnerScopedService):
    """Study tasks owned by the caller."""
    def __init__(self, session: Session):
        super().__init__(session)
        self.task_repo = repositories.TaskRepository(session)

    def get_tasks(self, ctx: AuthContext) -> List[models.Task]:
        user = self.current_user(ctx)
        return self.task_repo.list_for_user(user.id)

    def get_tasks_by_date(self, ctx: AuthContext, due_date: str) -> List[models.Task]:
        """Tasks due exactly on `due_date`; any string is accepted."""
        user = self.current_user(ctx)
        return self.task_repo.list_for_user_due_on(user.id, due_date)

    def get_tasks_by_subject(self, ctx: AuthContext, subject_id: str) -> List[models.Task]:
        return [t for t in self.get_tasks(ctx) if t.subject_id == subject_id]

    def get_tasks_by_type(self, ctx: AuthContext, task_type: str) -> List[models.Task]:
        require_literal(task_type, schemas.TaskType, "type")
        return [t for t in self.get_tasks(ctx) if t.type == task_type]

    def create_task(self, ctx: AuthContext, data) -> str:
        user = self.current_user(ctx)
        payload = coerce(schemas.TaskCreate, data)
        self._check_subject_reference(user, payload.subject_id)
        task = self.task_repo.add(models.Task(user_id=user.id, **payload.model_dump()))
        _log_event("task_created", task_id=task.id, user_id=user.id)
        return task.id

    def update_task_status(self, ctx: AuthContext, task_id: str, status: str) -> str:
        """Set a task's status; applying the same status again is a no-op."""
        user = self.current_user(ctx)
        payload = coerce(schemas.TaskStatusIn, {"status": status})
        task = access.ensure_owner(user, self.task_repo.get(task_id), "task")
        self.task_repo.patch(task, {"status": payload.status})
        _log_event("task_status_updated", task_id=task_id, user_id=user.id, status=payload.status)
        return task_id

    def update_task(self, ctx: AuthContext, task_id: str, patch) -> str:
        user = self.current_user(ctx)
        changes = changes_from(coerce(schemas.TaskPatch, patch))
        task = access.ensure_owner(user, self.task_repo.get(task_id), "task")
        if "subject_id" in changes:
            self._check_subject_reference(user, changes["subject_id"])
        self.task_repo.patch(task, changes)
        _log_event("task_updated", task_id=task_id, user_id=user.id, fields=sorted(changes))
        return task_id

    def delete_task(self, ctx: AuthContext, task_id: str) -> str:
        user = self.current_user(ctx)
        task = access.ensure_owner(user, self.task_repo.get(task_id), "task")
        self.task_repo.delete(task)
        _log_event("task_deleted", task_id=task_id, user_id=user.id)
        return task_id


class TestService(_OwnerScopedService):
    """Tests, their results and the performance trend view."""
    def __init__(self, session: Session):
        super().__init__(session)
        self.test_repo = repositories.TestRepository(session)

    def get_tests(self, ctx: AuthContext) -> List[models.Test]:
        user = self.current_user(ctx)
        return self.test_repo.list_for_user(user.id)

    def get_tests_by_type(self, ctx: AuthContext, test_type: str) -> List[models.Test]:
        require_literal(test_type, schemas.TestType, "type")
        return [t for t in self.get_tests(ctx) if t.type == test_type]

    def get_attempted_tests(self, ctx: AuthContext) -> List[models.Test]:
        user = self.current_user(ctx)
        return self.test_repo.list_attempted_for_user(user.id)

    def create_test(self, ctx: AuthContext, data) -> str:
        user = self.current_user(ctx)
        payload = coerce(schemas.TestCreate, data)
        test = self.test_repo.add(models.Test(user_id=user.id, **payload.model_dump()))
        _log_event("test_created", test_id=test.id, user_id=user.id)
        return test.id

    def log_test_result(self, ctx: AuthContext, test_id: str, data) -> str:
        """Record score, accuracy and status for an attempt.

        Logging a result again simply overwrites the previous figures.
        """
        user = self.current_user(ctx)
        payload = coerce(schemas.TestResultIn, data)
        test = access.ensure_owner(user, self.test_repo.get(test_id), "test")
        self.test_repo.patch(test, payload.model_dump())
        _log_event("test_result_logged", test_id=test_id, user_id=user.id, status=payload.status)
        return test_id

    def update_test(self, ctx: AuthContext, test_id: str, patch) -> str:
        user = self.current_user(ctx)
        changes = changes_from(coerce(schemas.TestPatch, patch))
        test = access.ensure_owner(user, self.test_repo.get(test_id), "test")
        self.test_repo.patch(test, changes)
        _log_event("test_updated", test_id=test_id, user_id=user.id, fields=sorted(changes))
        return test_id

    def delete_test(self, ctx: AuthContext, test_id: str) -> str:
        user = self.current_user(ctx)
        test = access.ensure_owner(user, self.test_repo.get(test_id), "test")
        self.test_repo.delete(test)
        _log_event("test_deleted", test_id=test_id, user_id=user.id)
        return test_id

    def get_performance_trends(self, ctx: AuthContext) -> schemas.PerformanceTrends:
        return analytics.performance_trends(self.get_attempted_tests(ctx))


class RevisionService(_OwnerScopedService):
    """Flashcard decks, their cards and the revision views."""
    def __init__(self, session: Session):
        super().__init__(session)
        self.deck_repo = repositories.DeckRepository(session)
        self.card_repo = repositories.FlashcardRepository(session)

    def _owned_deck(self, user: models.User, deck_id: str) -> models.FlashcardDeck:
        return access.ensure_owner(user, self.deck_repo.get(deck_id), "flashcard deck")

    def _owned_card(self, user: models.User, card_id: str) -> models.Flashcard:
        card = self.card_repo.get(card_id)
        deck = self.deck_repo.get(card.deck_id) if card else None
        return access.ensure_card_owner(user, card, deck)

    def get_decks(self, ctx: AuthContext) -> List[models.FlashcardDeck]:
        user = self.current_user(ctx)
        return self.deck_repo.list_for_user(user.id)

    def get_decks_by_subject(self, ctx: AuthContext, subject_id: str) -> List[models.FlashcardDeck]:
        user = self.current_user(ctx)
        return [d for d in self.deck_repo.list_for_subject(subject_id) if d.user_id == user.id]

    def create_deck(self, ctx: AuthContext, data) -> str:
        user = self.current_user(ctx)
        payload = coerce(schemas.DeckCreate, data)
        self._check_subject_reference(user, payload.subject_id)
        deck = self.deck_repo.add(models.FlashcardDeck(user_id=user.id, **payload.model_dump()))
        _log_event("deck_created", deck_id=deck.id, user_id=user.id)
        return deck.id

    def update_deck(self, ctx: AuthContext, deck_id: str, patch) -> str:
        user = self.current_user(ctx)
        changes = changes_from(coerce(schemas.DeckPatch, patch))
        deck = self._owned_deck(user, deck_id)
        self.deck_repo.patch(deck, changes)
        _log_event("deck_updated", deck_id=deck_id, user_id=user.id, fields=sorted(changes))
        return deck_id

    def delete_deck(self, ctx: AuthContext, deck_id: str) -> int:
        """Delete a deck and its cards; returns the number of cards removed.

        Cards are removed first and the deck second, in separate
        commits; an interruption in between leaves an empty deck.
        """
        user = self.current_user(ctx)
        deck = self._owned_deck(user, deck_id)
        removed = _delete_deck_with_cards(self.session, deck)
        _log_event("deck_deleted", deck_id=deck_id, user_id=user.id, cards_removed=removed)
        return removed

    def get_flashcards(self, ctx: AuthContext, deck_id: str) -> List[models.Flashcard]:
        user = self.current_user(ctx)
        self._owned_deck(user, deck_id)
        return self.card_repo.list_for_deck(deck_id)

    def get_flashcards_by_mastery_level(self, ctx: AuthContext, deck_id: str,
                                        mastery_level: str) -> List[models.Flashcard]:
        require_literal(mastery_level, schemas.MasteryLevel, "mastery_level")
        return [c for c in self.get_flashcards(ctx, deck_id) if c.mastery_level == mastery_level]

    def create_flashcard(self, ctx: AuthContext, deck_id: str, data) -> str:
        user = self.current_user(ctx)
        payload = coerce(schemas.FlashcardCreate, data)
        self._owned_deck(user, deck_id)
        card = self.card_repo.add(models.Flashcard(deck_id=deck_id, **payload.model_dump()))
        _log_event("flashcard_created", flashcard_id=card.id, deck_id=deck_id, user_id=user.id)
        return card.id

    def update_flashcard(self, ctx: AuthContext, card_id: str, patch) -> str:
        """Edit a card or record the learner's mastery rating."""
        user = self.current_user(ctx)
        changes = changes_from(coerce(schemas.FlashcardPatch, patch))
        card = self._owned_card(user, card_id)
        self.card_repo.patch(card, changes)
        _log_event("flashcard_updated", flashcard_id=card_id, user_id=user.id, fields=sorted(changes))
        return card_id

    def delete_flashcard(self, ctx: AuthContext, card_id: str) -> str:
        user = self.current_user(ctx)
        card = self._owned_card(user, card_id)
        self.card_repo.delete(card)
        _log_event("flashcard_deleted", flashcard_id=card_id, user_id=user.id)
        return card_id

    def get_weak_topics(self, ctx: AuthContext) -> List[schemas.WeakTopic]:
        self.current_user(ctx)
        return analytics.weak_topics()

    def get_revision_recommendations(self, ctx: AuthContext,
                                     today: Optional[date] = None) -> List[schemas.RevisionRecommendation]:
        return analytics.revision_recommendations(self.get_weak_topics(ctx), today or date.today())


class DashboardService(_OwnerScopedService):
    """Headline numbers for the caller's dashboard."""

    def summary(self, ctx: AuthContext, today: Optional[date] = None) -> schemas.DashboardSummary:
        user = self.current_user(ctx)
        tasks = repositories.TaskRepository(self.session).list_for_user(user.id)
        subjects = repositories.SubjectRepository(self.session).list_for_user(user.id)
        return analytics.dashboard_summary(
            tasks, subjects,
            today=today or date.today(),
            exam_date=settings.EXAM_DATE,
            target_score=user.target_score,
        )
