import pytest

from studytrack import access, models, repositories
from studytrack.auth import AuthContext
from studytrack.errors import NotFound, Unauthenticated, Unauthorized, UserNotFound


def test_resolve_user_requires_identity(session):
    with pytest.raises(Unauthenticated):
        access.resolve_user(session, AuthContext.anonymous())
    with pytest.raises(Unauthenticated):
        access.resolve_user(session, None)


def test_resolve_user_unknown_identity(session):
    with pytest.raises(UserNotFound):
        access.resolve_user(session, AuthContext(external_id='nobody'))


def test_resolve_user_returns_matching_record(session, alice, bob):
    user = access.resolve_user(session, alice)
    assert user.external_id == 'user_alice'
    assert access.resolve_user(session, bob).id != user.id


def test_ensure_owner_checks_existence_before_ownership(session, alice, bob, alice_subject):
    alice_user = access.resolve_user(session, alice)
    bob_user = access.resolve_user(session, bob)
    subject = repositories.SubjectRepository(session).get(alice_subject)
    assert access.ensure_owner(alice_user, subject, 'subject') is subject
    with pytest.raises(Unauthorized):
        access.ensure_owner(bob_user, subject, 'subject')
    with pytest.raises(NotFound):
        access.ensure_owner(bob_user, None, 'subject')


def test_card_guard_follows_the_deck(session, alice, bob, alice_subject):
    alice_user = access.resolve_user(session, alice)
    bob_user = access.resolve_user(session, bob)
    deck = repositories.DeckRepository(session).add(
        models.FlashcardDeck(user_id=alice_user.id, subject_id=alice_subject, name='Bode plots'))
    card = repositories.FlashcardRepository(session).add(
        models.Flashcard(deck_id=deck.id, front='Gain margin?', back='1/|G| at phase crossover'))
    assert access.ensure_card_owner(alice_user, card, deck) is card
    with pytest.raises(Unauthorized):
        access.ensure_card_owner(bob_user, card, deck)
    # a card whose deck is gone is reported as missing
    with pytest.raises(NotFound):
        access.ensure_card_owner(alice_user, card, None)
