"""FastAPI application entrypoint and HTTP controllers.

Controllers are thin: they build the caller's
`AuthContext`, delegate to a service, and serialize the result. Every
service failure is a `StudyTrackError` and is translated to JSON by a
single exception handler; rejected request bodies use the same shape.

Endpoints implemented:
- POST /users (webhook secret), POST|GET|PATCH /users/me
- GET|POST /subjects, GET|PATCH|DELETE /subjects/{id}, PATCH /subjects/{id}/progress
- GET|POST /tasks, PATCH|DELETE /tasks/{id}, PATCH /tasks/{id}/status
- GET|POST /tests, GET /tests/trends, PATCH|DELETE /tests/{id}, POST /tests/{id}/result
- GET|POST /decks, PATCH|DELETE /decks/{id}, GET|POST /decks/{id}/cards
- PATCH|DELETE /cards/{id}
- GET /revision/weak-topics, GET /revision/recommendations
- GET /dashboard, GET /health
"""

import json
import logging
import time
import uuid
from typing import List, Optional

from fastapi import FastAPI, Depends, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlmodel import Session

from . import schemas, services
from .auth import AuthContext, get_auth_context, require_webhook_secret
from .config import settings
from .database import create_db_and_tables, get_session
from .errors import StudyTrackError, ValidationError

app = FastAPI(title="Study Tracker API")
logger = logging.getLogger("studytrack.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)

if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

create_db_and_tables()


def _request_log(request: Request, req_id: str, started: float, **extra) -> str:
    fields = {
        "request_id": req_id,
        "path": request.url.path,
        "method": request.method,
        "duration_ms": round((time.perf_counter() - started) * 1000.0, 2),
        "client": request.client.host if request.client else "unknown",
    }
    fields.update(extra)
    return json.dumps(fields, ensure_ascii=True)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        logger.exception("request_failed %s", _request_log(request, req_id, started))
        raise
    response.headers["X-Request-ID"] = req_id
    logger.info("request_done %s", _request_log(request, req_id, started, status_code=response.status_code))
    return response


@app.exception_handler(StudyTrackError)
async def study_track_error_handler(request: Request, exc: StudyTrackError):
    body = {"error": exc.code, "detail": exc.detail}
    if isinstance(exc, ValidationError) and exc.errors:
        body["errors"] = exc.errors
    logger.info("request_rejected %s", json.dumps(
        {"request_id": getattr(request.state, "request_id", None), "path": request.url.path,
         "error": exc.code, "status_code": exc.status_code},
        ensure_ascii=True,
    ))
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Report rejected request bodies and parameters like service `ValidationError`s."""
    errors = services.describe_errors(exc.errors())
    detail = "; ".join(f"{e['loc']}: {e['msg']}" for e in errors)
    return await study_track_error_handler(request, ValidationError(detail, errors=errors))


@app.get("/health")
def health():
    return {"status": "ok"}


# users

@app.post('/users', response_model=schemas.CreatedOut, dependencies=[Depends(require_webhook_secret)])
def create_user(payload: schemas.UserCreate, db: Session = Depends(get_session)):
    """Provision a user for an external identity (idempotent).

    Only the identity provider's user-created webhook may call this; it
    authenticates with the `X-Webhook-Secret` header.
    """
    return {'id': services.UserService(db).create_user(payload)}


@app.post('/users/me', response_model=schemas.CreatedOut)
def provision_me(payload: Optional[schemas.ProvisionIn] = None, db: Session = Depends(get_session),
                 ctx: AuthContext = Depends(get_auth_context)):
    """Provision the signed-in caller and seed default subjects."""
    return {'id': services.UserService(db).provision_current_user(ctx, payload)}


@app.get('/users/me', response_model=schemas.UserOut)
def get_me(db: Session = Depends(get_session), ctx: AuthContext = Depends(get_auth_context)):
    return services.UserService(db).get_profile(ctx)


@app.patch('/users/me', response_model=schemas.CreatedOut)
def update_me(patch: schemas.UserPatch, db: Session = Depends(get_session),
              ctx: AuthContext = Depends(get_auth_context)):
    return {'id': services.UserService(db).update_profile(ctx, patch)}


# subjects

@app.get('/subjects', response_model=List[schemas.SubjectOut])
def list_subjects(db: Session = Depends(get_session), ctx: AuthContext = Depends(get_auth_context)):
    return services.SubjectService(db).get_subjects(ctx)


@app.post('/subjects', response_model=schemas.CreatedOut, status_code=201)
def create_subject(payload: schemas.SubjectCreate, db: Session = Depends(get_session),
                   ctx: AuthContext = Depends(get_auth_context)):
    return {'id': services.SubjectService(db).create_subject(ctx, payload)}


@app.get('/subjects/{subject_id}', response_model=schemas.SubjectOut)
def get_subject(subject_id: str, db: Session = Depends(get_session),
                ctx: AuthContext = Depends(get_auth_context)):
    return services.SubjectService(db).get_subject(ctx, subject_id)


@app.patch('/subjects/{subject_id}', response_model=schemas.CreatedOut)
def update_subject(subject_id: str, patch: schemas.SubjectPatch, db: Session = Depends(get_session),
                   ctx: AuthContext = Depends(get_auth_context)):
    """Partially update a subject; omitted fields keep their values."""
    return {'id': services.SubjectService(db).update_subject(ctx, subject_id, patch)}


@app.patch('/subjects/{subject_id}/progress', response_model=schemas.CreatedOut)
def update_subject_progress(subject_id: str, payload: schemas.SubjectProgressIn,
                            db: Session = Depends(get_session),
                            ctx: AuthContext = Depends(get_auth_context)):
    svc = services.SubjectService(db)
    return {'id': svc.update_subject_progress(ctx, subject_id, payload.progress, payload.status)}


@app.delete('/subjects/{subject_id}', response_model=schemas.DeletedOut)
def delete_subject(subject_id: str, db: Session = Depends(get_session),
                   ctx: AuthContext = Depends(get_auth_context)):
    """Delete a subject; dependants follow `SUBJECT_DELETE_POLICY`."""
    return {'id': services.SubjectService(db).delete_subject(ctx, subject_id)}


# tasks

@app.get('/tasks', response_model=List[schemas.TaskOut])
def list_tasks(date: Optional[str] = None, task_type: Optional[str] = Query(None, alias="type"),
               subject_id: Optional[str] = None,
               db: Session = Depends(get_session), ctx: AuthContext = Depends(get_auth_context)):
    """List the caller's tasks.

    At most one filter applies, checked in the order `date`, `type`,
    `subject_id`.
    """
    svc = services.TaskService(db)
    if date is not None:
        return svc.get_tasks_by_date(ctx, date)
    if task_type is not None:
        return svc.get_tasks_by_type(ctx, task_type)
    if subject_id is not None:
        return svc.get_tasks_by_subject(ctx, subject_id)
    return svc.get_tasks(ctx)


@app.post('/tasks', response_model=schemas.CreatedOut, status_code=201)
def create_task(payload: schemas.TaskCreate, db: Session = Depends(get_session),
                ctx: AuthContext = Depends(get_auth_context)):
    return {'id': services.TaskService(db).create_task(ctx, payload)}


@app.patch('/tasks/{task_id}', response_model=schemas.CreatedOut)
def update_task(task_id: str, patch: schemas.TaskPatch, db: Session = Depends(get_session),
                ctx: AuthContext = Depends(get_auth_context)):
    return {'id': services.TaskService(db).update_task(ctx, task_id, patch)}


@app.patch('/tasks/{task_id}/status', response_model=schemas.CreatedOut)
def update_task_status(task_id: str, payload: schemas.TaskStatusIn, db: Session = Depends(get_session),
                       ctx: AuthContext = Depends(get_auth_context)):
    return {'id': services.TaskService(db).update_task_status(ctx, task_id, payload.status)}


@app.delete('/tasks/{task_id}', response_model=schemas.DeletedOut)
def delete_task(task_id: str, db: Session = Depends(get_session),
                ctx: AuthContext = Depends(get_auth_context)):
    return {'id': services.TaskService(db).delete_task(ctx, task_id)}


# tests

@app.get('/tests', response_model=List[schemas.TestOut])
def list_tests(test_type: Optional[str] = Query(None, alias="type"), attempted: bool = False,
               db: Session = Depends(get_session), ctx: AuthContext = Depends(get_auth_context)):
    """List the caller's tests, optionally only attempted ones or one type."""
    svc = services.TestService(db)
    if attempted:
        return svc.get_attempted_tests(ctx)
    if test_type is not None:
        return svc.get_tests_by_type(ctx, test_type)
    return svc.get_tests(ctx)


@app.get('/tests/trends', response_model=schemas.PerformanceTrends)
def performance_trends(db: Session = Depends(get_session), ctx: AuthContext = Depends(get_auth_context)):
    return services.TestService(db).get_performance_trends(ctx)


@app.post('/tests', response_model=schemas.CreatedOut, status_code=201)
def create_test(payload: schemas.TestCreate, db: Session = Depends(get_session),
                ctx: AuthContext = Depends(get_auth_context)):
    return {'id': services.TestService(db).create_test(ctx, payload)}


@app.post('/tests/{test_id}/result', response_model=schemas.CreatedOut)
def log_test_result(test_id: str, payload: schemas.TestResultIn, db: Session = Depends(get_session),
                    ctx: AuthContext = Depends(get_auth_context)):
    """Record (or re-record) the score and accuracy of an attempt."""
    return {'id': services.TestService(db).log_test_result(ctx, test_id, payload)}


@app.patch('/tests/{test_id}', response_model=schemas.CreatedOut)
def update_test(test_id: str, patch: schemas.TestPatch, db: Session = Depends(get_session),
                ctx: AuthContext = Depends(get_auth_context)):
    return {'id': services.TestService(db).update_test(ctx, test_id, patch)}


@app.delete('/tests/{test_id}', response_model=schemas.DeletedOut)
def delete_test(test_id: str, db: Session = Depends(get_session),
                ctx: AuthContext = Depends(get_auth_context)):
    return {'id': services.TestService(db).delete_test(ctx, test_id)}


# revision

@app.get('/decks', response_model=List[schemas.DeckOut])
def list_decks(subject_id: Optional[str] = None, db: Session = Depends(get_session),
               ctx: AuthContext = Depends(get_auth_context)):
    svc = services.RevisionService(db)
    if subject_id is not None:
        return svc.get_decks_by_subject(ctx, subject_id)
    return svc.get_decks(ctx)


@app.post('/decks', response_model=schemas.CreatedOut, status_code=201)
def create_deck(payload: schemas.DeckCreate, db: Session = Depends(get_session),
                ctx: AuthContext = Depends(get_auth_context)):
    return {'id': services.RevisionService(db).create_deck(ctx, payload)}


@app.patch('/decks/{deck_id}', response_model=schemas.CreatedOut)
def update_deck(deck_id: str, patch: schemas.DeckPatch, db: Session = Depends(get_session),
                ctx: AuthContext = Depends(get_auth_context)):
    return {'id': services.RevisionService(db).update_deck(ctx, deck_id, patch)}


@app.delete('/decks/{deck_id}', response_model=schemas.DeletedOut)
def delete_deck(deck_id: str, db: Session = Depends(get_session),
                ctx: AuthContext = Depends(get_auth_context)):
    """Delete a deck together with all of its flashcards."""
    removed = services.RevisionService(db).delete_deck(ctx, deck_id)
    return {'id': deck_id, 'cards_removed': removed}


@app.get('/decks/{deck_id}/cards', response_model=List[schemas.FlashcardOut])
def list_cards(deck_id: str, mastery_level: Optional[str] = None, db: Session = Depends(get_session),
               ctx: AuthContext = Depends(get_auth_context)):
    svc = services.RevisionService(db)
    if mastery_level is not None:
        return svc.get_flashcards_by_mastery_level(ctx, deck_id, mastery_level)
    return svc.get_flashcards(ctx, deck_id)


@app.post('/decks/{deck_id}/cards', response_model=schemas.CreatedOut, status_code=201)
def create_card(deck_id: str, payload: schemas.FlashcardCreate, db: Session = Depends(get_session),
                ctx: AuthContext = Depends(get_auth_context)):
    return {'id': services.RevisionService(db).create_flashcard(ctx, deck_id, payload)}


@app.patch('/cards/{card_id}', response_model=schemas.CreatedOut)
def update_card(card_id: str, patch: schemas.FlashcardPatch, db: Session = Depends(get_session),
                ctx: AuthContext = Depends(get_auth_context)):
    """Edit a card or rate it (`mastery_level`)."""
    return {'id': services.RevisionService(db).update_flashcard(ctx, card_id, patch)}


@app.delete('/cards/{card_id}', response_model=schemas.DeletedOut)
def delete_card(card_id: str, db: Session = Depends(get_session),
                ctx: AuthContext = Depends(get_auth_context)):
    return {'id': services.RevisionService(db).delete_flashcard(ctx, card_id)}


@app.get('/revision/weak-topics', response_model=List[schemas.WeakTopic])
def weak_topics(db: Session = Depends(get_session), ctx: AuthContext = Depends(get_auth_context)):
    """Placeholder weak-topic analysis."""
    return services.RevisionService(db).get_weak_topics(ctx)


@app.get('/revision/recommendations', response_model=List[schemas.RevisionRecommendation])
def revision_recommendations(db: Session = Depends(get_session),
                             ctx: AuthContext = Depends(get_auth_context)):
    return services.RevisionService(db).get_revision_recommendations(ctx)


@app.get('/dashboard', response_model=schemas.DashboardSummary)
def dashboard(db: Session = Depends(get_session), ctx: AuthContext = Depends(get_auth_context)):
    return services.DashboardService(db).summary(ctx)
