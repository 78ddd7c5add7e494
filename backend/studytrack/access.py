"""Identity resolution and record ownership checks.

`resolve_user` maps an `AuthContext` to the internal `User` row and is
the first call of every owner-scoped service operation. The `ensure_*`
guards run before any update, delete, or single-record read: existence
is checked before ownership so the two failures stay distinguishable.
"""

from typing import Optional

from sqlmodel import Session

from . import models, repositories
from .auth import AuthContext
from .errors import NotFound, Unauthenticated, Unauthorized, UserNotFound


def resolve_user(session: Session, ctx: AuthContext) -> models.User:
    """Return the caller's `User` or raise `Unauthenticated` / `UserNotFound`."""
    if ctx is None or not ctx.is_authenticated:
        raise Unauthenticated("not authenticated")
    user = repositories.UserRepository(session).get_by_external_id(ctx.external_id)
    if not user:
        raise UserNotFound("user not found")
    return user


def ensure_owner(user: models.User, record, label: str):
    """Return `record` if it exists and `user` owns it."""
    if record is None:
        raise NotFound(f"{label} not found")
    if record.user_id != user.id:
        raise Unauthorized(f"you can only access your own {label}s")
    return record


def ensure_card_owner(user: models.User, card: Optional[models.Flashcard],
                      deck: Optional[models.FlashcardDeck]) -> models.Flashcard:
    """Flashcards are owned through their deck; a card with no deck is not found."""
    if card is None or deck is None:
        raise NotFound("flashcard not found")
    ensure_owner(user, deck, "flashcard")
    return card
