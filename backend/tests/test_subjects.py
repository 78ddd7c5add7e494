import pytest

from studytrack import services
from studytrack.config import settings
from studytrack.errors import NotFound, Unauthorized, ValidationError


def test_list_is_empty_then_in_insertion_order(session, alice):
    svc = services.SubjectService(session)
    assert svc.get_subjects(alice) == []
    for name in ('Network Theory', 'Analog Electronics', 'Signals and Systems'):
        svc.create_subject(alice, {'name': name, 'progress': 0, 'status': 'pending', 'weightage': 5})
    assert [s.name for s in svc.get_subjects(alice)] == ['Network Theory', 'Analog Electronics', 'Signals and Systems']


def test_list_is_owner_scoped(session, alice, bob, alice_subject, bob_subject):
    svc = services.SubjectService(session)
    assert [s.id for s in svc.get_subjects(alice)] == [alice_subject]
    assert [s.id for s in svc.get_subjects(bob)] == [bob_subject]


def test_create_rejects_unknown_status_without_inserting(session, alice):
    svc = services.SubjectService(session)
    with pytest.raises(ValidationError) as exc:
        svc.create_subject(alice, {'name': 'Maths', 'progress': 0, 'status': 'excellent', 'weightage': 10})
    assert 'status' in exc.value.detail
    assert svc.get_subjects(alice) == []


@pytest.mark.parametrize('payload', [
    {'name': 'Maths', 'progress': 120, 'status': 'pending', 'weightage': 10},
    {'name': 'Maths', 'progress': 10, 'status': 'pending', 'weightage': -1},
    {'name': 'Maths', 'progress': 10, 'status': 'pending'},
    {'name': '', 'progress': 10, 'status': 'pending', 'weightage': 10},
])
def test_create_rejects_invalid_fields(session, alice, payload):
    with pytest.raises(ValidationError):
        services.SubjectService(session).create_subject(alice, payload)


def test_partial_update_only_touches_supplied_fields(session, alice, alice_subject):
    svc = services.SubjectService(session)
    svc.update_subject(alice, alice_subject, {'progress': 55})
    subject = svc.get_subject(alice, alice_subject)
    assert subject.progress == 55
    assert subject.name == 'Control Systems'
    assert subject.status == 'weak'
    assert subject.weightage == 12


def test_update_progress_with_optional_status(session, alice, alice_subject):
    svc = services.SubjectService(session)
    svc.update_subject_progress(alice, alice_subject, 80)
    assert svc.get_subject(alice, alice_subject).status == 'weak'
    svc.update_subject_progress(alice, alice_subject, 100, 'completed')
    subject = svc.get_subject(alice, alice_subject)
    assert (subject.progress, subject.status) == (100, 'completed')


def test_single_read_is_guarded(session, alice, bob, alice_subject):
    svc = services.SubjectService(session)
    with pytest.raises(Unauthorized):
        svc.get_subject(bob, alice_subject)
    with pytest.raises(NotFound):
        svc.get_subject(alice, 'missing')


def test_other_user_cannot_update_or_delete(session, alice, bob, alice_subject):
    svc = services.SubjectService(session)
    with pytest.raises(Unauthorized):
        svc.update_subject(bob, alice_subject, {'name': 'Hijacked'})
    with pytest.raises(Unauthorized):
        svc.delete_subject(bob, alice_subject)
    subject = svc.get_subject(alice, alice_subject)
    assert subject.name == 'Control Systems'


def test_delete_orphans_dependants_by_default(session, alice, alice_subject):
    task_id = services.TaskService(session).create_task(alice, {
        'title': 'Root locus', 'subject_id': alice_subject, 'type': 'Theory',
        'status': 'pending', 'priority': 'high',
    })
    services.SubjectService(session).delete_subject(alice, alice_subject)
    tasks = services.TaskService(session).get_tasks(alice)
    assert [t.id for t in tasks] == [task_id]
    assert tasks[0].subject_id == alice_subject


def test_delete_cascades_when_configured(session, alice, monkeypatch, alice_subject):
    monkeypatch.setattr(settings, 'SUBJECT_DELETE_POLICY', 'cascade')
    subjects = services.SubjectService(session)
    other = subjects.create_subject(alice, {'name': 'Maths', 'progress': 0, 'status': 'pending', 'weightage': 3})
    tasks = services.TaskService(session)
    revision = services.RevisionService(session)
    for subject_id in (alice_subject, other):
        tasks.create_task(alice, {'title': 'Read', 'subject_id': subject_id, 'type': 'Theory',
                                  'status': 'pending', 'priority': 'low'})
    deck_id = revision.create_deck(alice, {'name': 'Stability', 'subject_id': alice_subject})
    revision.create_flashcard(alice, deck_id, {'front': 'Routh?', 'back': 'Hurwitz'})

    subjects.delete_subject(alice, alice_subject)

    assert [t.subject_id for t in tasks.get_tasks(alice)] == [other]
    assert revision.get_decks(alice) == []
    with pytest.raises(NotFound):
        revision.get_flashcards(alice, deck_id)


def test_seed_defaults_only_for_empty_list(session, alice, alice_subject):
    assert services.SubjectService(session).seed_defaults(alice) == []


def test_seed_defaults_creates_default_subjects(session, alice):
    created = services.SubjectService(session).seed_defaults(alice)
    assert len(created) == len(services.DEFAULT_SUBJECTS)
    weightages = [s.weightage for s in services.SubjectService(session).get_subjects(alice)]
    assert weightages == [15, 12, 10, 8, 6, 5, 4]
