"""CLI script to provision a demo user with sample study data.
Usage: python scripts/seed_demo.py [--external-id ID] [--name NAME] [--email EMAIL] [--reset]

Prints a development bearer token for the demo user so the API can be
exercised from Swagger UI or curl.
"""
import sys
import argparse
import pathlib
from datetime import date, timedelta
# Ensure `backend/` is on sys.path so `studytrack` imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from studytrack.auth import AuthContext, encode_identity_token
from studytrack.database import engine, create_db_and_tables, drop_db_and_tables
from studytrack import services

SAMPLE_TESTS = [
    ("Full Length Mock 1", "Full Length", 65, 58),
    ("Full Length Mock 2", "Full Length", 72, 64),
    ("Control Systems Sectional", "Subject Test", 78, 71),
]


def seed(session: Session, ctx: AuthContext) -> dict:
    """Provision `ctx` and add tasks, tests and one deck if the user has none."""
    services.UserService(session).provision_current_user(ctx)
    subjects = services.SubjectService(session).get_subjects(ctx)
    tasks = services.TaskService(session)
    if tasks.get_tasks(ctx):
        return {'tasks': 0, 'tests': 0, 'cards': 0}
    today = date.today()
    kinds = ['Theory', 'PYQs', 'Revision']
    created_tasks = 0
    for offset, subject in enumerate(subjects[:3]):
        tasks.create_task(ctx, {
            'title': f'{kinds[offset]}: {subject.name}',
            'subject_id': subject.id,
            'type': kinds[offset],
            'status': 'pending',
            'priority': 'high' if offset == 0 else 'medium',
            'due_date': (today + timedelta(days=offset)).isoformat(),
        })
        created_tasks += 1
    tests = services.TestService(session)
    for name, kind, score, accuracy in SAMPLE_TESTS:
        test_id = tests.create_test(ctx, {'name': name, 'type': kind, 'status': 'not_attempted'})
        tests.log_test_result(ctx, test_id, {'score': score, 'accuracy': accuracy, 'status': 'attempted'})
    revision = services.RevisionService(session)
    deck_id = revision.create_deck(ctx, {'name': 'Logic gates', 'subject_id': subjects[0].id})
    cards = [('NAND of A and A?', 'NOT A'), ('Universal gates?', 'NAND and NOR')]
    for front, back in cards:
        revision.create_flashcard(ctx, deck_id, {'front': front, 'back': back})
    return {'tasks': created_tasks, 'tests': len(SAMPLE_TESTS), 'cards': len(cards)}


def main(external_id: str, name: str, email: str, reset: bool = False):
    """Seed the configured database and print a bearer token."""
    if reset:
        drop_db_and_tables()
    create_db_and_tables()
    ctx = AuthContext(external_id=external_id, name=name, email=email)
    with Session(engine) as session:
        counts = seed(session, ctx)
    print(f"Seeded {counts['tasks']} tasks, {counts['tests']} tests, {counts['cards']} flashcards for {external_id}")
    print("Bearer token:")
    print(encode_identity_token(external_id, name=name, email=email))


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Seed demo study data')
    parser.add_argument('--external-id', default='demo-user')
    parser.add_argument('--name', default='Demo Student')
    parser.add_argument('--email', default='demo@example.com')
    parser.add_argument('--reset', action='store_true', help='drop all tables first')
    args = parser.parse_args()
    main(args.external_id, args.name, args.email, reset=args.reset)
