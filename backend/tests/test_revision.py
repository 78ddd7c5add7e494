from datetime import date

import pytest

from studytrack import repositories, services
from studytrack.errors import NotFound, Unauthorized, ValidationError


def _deck_with_cards(session, ctx, subject_id, n):
    svc = services.RevisionService(session)
    deck_id = svc.create_deck(ctx, {'name': 'Sampling', 'subject_id': subject_id})
    card_ids = [svc.create_flashcard(ctx, deck_id, {'front': f'Q{i}', 'back': f'A{i}'}) for i in range(n)]
    return deck_id, card_ids


@pytest.mark.parametrize('n', [0, 1, 5])
def test_deleting_a_deck_removes_all_of_its_cards(session, alice, alice_subject, n):
    deck_id, _ = _deck_with_cards(session, alice, alice_subject, n)
    other_deck, other_cards = _deck_with_cards(session, alice, alice_subject, 2)
    removed = services.RevisionService(session).delete_deck(alice, deck_id)
    assert removed == n
    cards = repositories.FlashcardRepository(session)
    assert cards.list_for_deck(deck_id) == []
    assert [c.id for c in cards.list_for_deck(other_deck)] == other_cards
    assert [d.id for d in services.RevisionService(session).get_decks(alice)] == [other_deck]


def test_other_user_cannot_delete_deck(session, alice, bob, alice_subject):
    deck_id, card_ids = _deck_with_cards(session, alice, alice_subject, 2)
    svc = services.RevisionService(session)
    with pytest.raises(Unauthorized):
        svc.delete_deck(bob, deck_id)
    with pytest.raises(Unauthorized):
        svc.update_deck(bob, deck_id, {'name': 'stolen'})
    assert [c.id for c in svc.get_flashcards(alice, deck_id)] == card_ids
    assert svc.get_decks(alice)[0].name == 'Sampling'


def test_cards_are_guarded_through_their_deck(session, alice, bob, alice_subject):
    deck_id, card_ids = _deck_with_cards(session, alice, alice_subject, 1)
    svc = services.RevisionService(session)
    with pytest.raises(Unauthorized):
        svc.get_flashcards(bob, deck_id)
    with pytest.raises(Unauthorized):
        svc.create_flashcard(bob, deck_id, {'front': 'x', 'back': 'y'})
    with pytest.raises(Unauthorized):
        svc.update_flashcard(bob, card_ids[0], {'mastery_level': 'mastered'})
    with pytest.raises(Unauthorized):
        svc.delete_flashcard(bob, card_ids[0])
    with pytest.raises(NotFound):
        svc.update_flashcard(alice, 'missing-card', {'front': 'x'})
    card = svc.get_flashcards(alice, deck_id)[0]
    assert (card.front, card.mastery_level) == ('Q0', 'new')


def test_deck_requires_owned_subject(session, alice, bob_subject):
    svc = services.RevisionService(session)
    with pytest.raises(Unauthorized):
        svc.create_deck(alice, {'name': 'Graphs', 'subject_id': bob_subject})
    with pytest.raises(NotFound):
        svc.create_deck(alice, {'name': 'Graphs', 'subject_id': 'nope'})
    assert svc.get_decks(alice) == []


def test_decks_by_subject_are_owner_scoped(session, alice, bob, alice_subject, monkeypatch):
    from studytrack.config import settings
    monkeypatch.setattr(settings, 'ENFORCE_SUBJECT_REFERENCES', False)
    svc = services.RevisionService(session)
    mine = svc.create_deck(alice, {'name': 'Mine', 'subject_id': alice_subject})
    svc.create_deck(bob, {'name': 'Theirs', 'subject_id': alice_subject})
    assert [d.id for d in svc.get_decks_by_subject(alice, alice_subject)] == [mine]
    assert svc.get_decks_by_subject(alice, 'other-subject') == []


def test_mastery_level_moves_freely_and_filters(session, alice, alice_subject):
    deck_id, card_ids = _deck_with_cards(session, alice, alice_subject, 3)
    svc = services.RevisionService(session)
    svc.update_flashcard(alice, card_ids[0], {'mastery_level': 'mastered'})
    svc.update_flashcard(alice, card_ids[1], {'mastery_level': 'learning'})
    svc.update_flashcard(alice, card_ids[0], {'mastery_level': 'new'})
    new_cards = svc.get_flashcards_by_mastery_level(alice, deck_id, 'new')
    assert [c.id for c in new_cards] == [card_ids[0], card_ids[2]]
    assert [c.id for c in svc.get_flashcards_by_mastery_level(alice, deck_id, 'learning')] == [card_ids[1]]
    with pytest.raises(ValidationError):
        svc.get_flashcards_by_mastery_level(alice, deck_id, 'expert')
    with pytest.raises(ValidationError):
        svc.update_flashcard(alice, card_ids[0], {'mastery_level': 'expert'})


def test_update_flashcard_is_partial(session, alice, alice_subject):
    deck_id, card_ids = _deck_with_cards(session, alice, alice_subject, 1)
    svc = services.RevisionService(session)
    svc.update_flashcard(alice, card_ids[0], {'back': 'Nyquist rate'})
    card = svc.get_flashcards(alice, deck_id)[0]
    assert (card.front, card.back, card.mastery_level) == ('Q0', 'Nyquist rate', 'new')


def test_delete_flashcard(session, alice, alice_subject):
    deck_id, card_ids = _deck_with_cards(session, alice, alice_subject, 2)
    svc = services.RevisionService(session)
    svc.delete_flashcard(alice, card_ids[0])
    assert [c.id for c in svc.get_flashcards(alice, deck_id)] == [card_ids[1]]


def test_weak_topics_and_recommendations(session, alice):
    svc = services.RevisionService(session)
    topics = svc.get_weak_topics(alice)
    assert [t.topic for t in topics] == ['Digital Electronics', 'Control Systems', 'Signals and Systems']
    recs = svc.get_revision_recommendations(alice, today=date(2025, 12, 1))
    assert [(r.topic, r.priority, r.deadline) for r in recs] == [
        ('Digital Electronics', 'medium', '2025-12-08'),
        ('Control Systems', 'high', '2025-12-04'),
        ('Signals and Systems', 'medium', '2025-12-08'),
    ]
