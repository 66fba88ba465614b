"""FastAPI application for planmate."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from importlib.metadata import PackageNotFoundError, version as pkg_version
from pathlib import Path
from typing import Literal
import tomllib

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import attendance, cohosts, events, polls, scheduling
from .config import settings
from .crud import create_user, get_user_by_token, rotate_api_token
from .database import SessionLocal
from .errors import PlanmateError
from .models import (
    Activity,
    CoHostInvite,
    Day,
    Event,
    EventAttendee,
    EventStatus,
    EventType,
    PollStatus,
    ResultVisibility,
    User,
    VoterPermission,
)
from .roles import EventContext
from .scheduler import start_scheduler, stop_scheduler
from .storage import init_db

# Use uvicorn's error logger so messages get the level prefix in the default log
# format.
logger = logging.getLogger("uvicorn.error")


def _load_app_version() -> str:
    """Return the current package version, falling back to pyproject for dev runs."""
    try:
        return pkg_version("planmate")
    except PackageNotFoundError:
        pyproject_path = Path(__file__).resolve().parent.parent / "pyproject.toml"
        if pyproject_path.exists():
            data = tomllib.loads(pyproject_path.read_text())
            project = data.get("project") or {}
            return str(project.get("version") or "dev")
    return "dev"


APP_VERSION = _load_app_version()


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_db()
    if settings.enable_scheduler:
        start_scheduler()
    try:
        yield
    finally:
        stop_scheduler()


app = FastAPI(title="planmate", version=APP_VERSION, lifespan=lifespan)


def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def _get_bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("authorization") or ""
    if not auth_header.lower().startswith("bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    token = _get_bearer_token(request)
    user = get_user_by_token(db, token) if token else None
    if not user:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


@app.exception_handler(PlanmateError)
async def planmate_error_handler(request: Request, exc: PlanmateError):
    logger.info(
        "%s on %s %s: %s", exc.error, request.method, request.url.path, exc.message
    )
    return JSONResponse(exc.as_dict(), status_code=exc.status_code)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        {"detail": exc.detail},
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(OperationalError)
async def operational_error_handler(request: Request, exc: OperationalError):
    raw = str(exc.orig) if getattr(exc, "orig", None) else str(exc)
    if "database is locked" in raw.lower():
        logger.error(
            "SQLite database is locked while handling %s %s",
            request.method,
            request.url.path,
        )
        detail = "The database is busy at the moment. Please wait a few seconds and try again."
        status = 503
    else:
        logger.error(
            "Operational database error on %s %s: %s",
            request.method,
            request.url.path,
            raw,
        )
        detail = "We hit a database issue. Please try again."
        status = 500
    return JSONResponse({"detail": detail}, status_code=status)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        message = str(errors[0].get("msg") or message).removeprefix("Value error, ")
    return JSONResponse(
        {
            "error": "ValidationError",
            "message": message,
            "details": jsonable_encoder(errors),
        },
        status_code=400,
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Log unexpected errors and answer with a generic 500."""
    logger.exception(
        "Unhandled error while processing %s %s", request.method, request.url.path
    )
    return JSONResponse({"detail": "Internal server error"}, status_code=500)


class UserCreatePayload(BaseModel):
    email: EmailStr
    name: str = Field(..., min_length=1, max_length=120)


class EventCreatePayload(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    type: EventType
    start_date: datetime
    end_date: datetime | None = None
    description: str | None = None
    location: str | None = Field(None, max_length=255)
    cover_image: str | None = Field(None, max_length=512)
    require_approval: bool = False


class EventUpdatePayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    location: str | None = Field(None, max_length=255)
    cover_image: str | None = Field(None, max_length=512)
    status: EventStatus | None = None
    require_approval: bool | None = None


class DecisionPayload(BaseModel):
    decision: Literal["APPROVE", "DECLINE"]


class BulkDecisionItem(BaseModel):
    user_id: str
    decision: Literal["APPROVE", "DECLINE"]


class BulkDecisionPayload(BaseModel):
    decisions: list[BulkDecisionItem] = Field(..., min_length=1)


class InvitePayload(BaseModel):
    email: EmailStr


class ActivityCreatePayload(BaseModel):
    day_id: str
    title: str = Field(..., min_length=1, max_length=255)
    start_time: datetime
    end_time: datetime | None = None
    location: str | None = Field(None, max_length=255)
    description: str | None = None


class PollSettingsPayload(BaseModel):
    allow_multiple_selections: bool = False
    voter_permission: VoterPermission = VoterPermission.ALL_ATTENDEES
    result_visibility: ResultVisibility = ResultVisibility.VISIBLE_TO_ALL


class PollCreatePayload(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    options: list[str] = Field(..., min_length=1)
    settings: PollSettingsPayload | None = None


class PollUpdatePayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    status: PollStatus | None = None

    @model_validator(mode="before")
    @classmethod
    def _reject_settings(cls, data):
        if isinstance(data, dict) and "settings" in data:
            raise ValueError("Updating poll settings is not allowed")
        return data


class VotePayload(BaseModel):
    option_ids: list[str] = Field(..., min_length=1)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _serialize_user(user: User, *, include_email: bool = True) -> dict:
    data = {"id": user.id, "name": user.name}
    if include_email:
        data["email"] = user.email
    return data


def _serialize_activity(activity: Activity) -> dict:
    return {
        "id": activity.id,
        "day_id": activity.day_id,
        "title": activity.title,
        "description": activity.description,
        "location": activity.location,
        "start_time": _iso(activity.start_time),
        "end_time": _iso(activity.end_time),
    }


def _serialize_day(day: Day) -> dict:
    return {
        "id": day.id,
        "event_id": day.event_id,
        "date": day.date.date().isoformat(),
        "activities": [_serialize_activity(activity) for activity in day.activities],
    }


def _serialize_event(
    event: Event,
    *,
    context: EventContext | None = None,
    include_days: bool = False,
    include_cohosts: bool = False,
) -> dict:
    data = {
        "id": event.id,
        "title": event.title,
        "description": event.description,
        "location": event.location,
        "type": event.type.value,
        "status": event.status.value,
        "start_date": _iso(event.start_date),
        "end_date": _iso(event.end_date),
        "cover_image": event.cover_image,
        "require_approval": event.require_approval,
        "host": _serialize_user(event.host, include_email=False),
        "created_at": _iso(event.created_at),
    }
    if context is not None:
        data["role"] = context.role.value
        data["attendee_status"] = (
            context.attendee_status.value if context.attendee_status else None
        )
    if include_cohosts:
        data["cohosts"] = [
            _serialize_user(user, include_email=False) for user in event.cohosts
        ]
    if include_days:
        data["days"] = [_serialize_day(day) for day in event.days]
    return data


def _serialize_attendee(attendee: EventAttendee) -> dict:
    return {
        "event_id": attendee.event_id,
        "user_id": attendee.user_id,
        "status": attendee.status.value,
        "created_at": _iso(attendee.created_at),
        "user": _serialize_user(attendee.user),
    }


def _serialize_invite(invite: CoHostInvite, *, include_event: bool = False) -> dict:
    data = {
        "id": invite.id,
        "event_id": invite.event_id,
        "invited_email": invite.invited_email,
        "invited_user_id": invite.invited_user_id,
        "status": invite.status.value,
        "created_at": _iso(invite.created_at),
        "responded_at": _iso(invite.responded_at),
        "inviter": _serialize_user(invite.inviter),
    }
    if include_event:
        event = invite.event
        data["event"] = {
            "id": event.id,
            "title": event.title,
            "cover_image": event.cover_image,
            "start_date": _iso(event.start_date),
        }
    return data


def _build_pagination(page: events.EventPage) -> dict:
    return {
        "page": page.page,
        "per_page": page.per_page,
        "total_pages": page.total_pages,
        "total_events": page.total,
        "has_prev": page.page > 1,
        "has_next": page.page < page.total_pages,
    }


@app.get("/api/v1/health")
def api_health():
    return {"status": "ok", "version": APP_VERSION}


@app.post("/api/v1/users", status_code=201)
def api_register_user(payload: UserCreatePayload, db: Session = Depends(get_db)):
    user = create_user(db, email=payload.email, name=payload.name)
    return {"user": _serialize_user(user), "api_token": user.api_token}


@app.get("/api/v1/users/me")
def api_get_me(user: User = Depends(get_current_user)):
    return {"user": _serialize_user(user)}


@app.post("/api/v1/users/me/token")
def api_rotate_token(
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    return {"api_token": rotate_api_token(db, user)}


@app.get("/api/v1/users/me/invites")
def api_my_invites(
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    invites = cohosts.list_my_invites(db, actor=user)
    return {
        "invites": [_serialize_invite(invite, include_event=True) for invite in invites]
    }


@app.get("/api/v1/events")
def api_list_my_events(
    page: int = Query(1, ge=1),
    per_page: int = Query(
        settings.events_per_page, ge=1, le=settings.max_events_per_page
    ),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    result = events.list_my_events(db, user=user, page=page, per_page=per_page)
    return {
        "events": [
            _serialize_event(context.event, context=context) for context in result.items
        ],
        "pagination": _build_pagination(result),
    }


@app.post("/api/v1/events", status_code=201)
def api_create_event(
    payload: EventCreatePayload,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    context = events.create_event(
        db,
        host=user,
        title=payload.title,
        event_type=payload.type,
        start_date=payload.start_date,
        end_date=payload.end_date,
        description=payload.description,
        location=payload.location,
        cover_image=payload.cover_image,
        require_approval=payload.require_approval,
    )
    return {
        "event": _serialize_event(
            context.event, context=context, include_days=True, include_cohosts=True
        )
    }


@app.get("/api/v1/events/{event_id}")
def api_get_event(
    event_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    context = events.event_detail(db, event_id=event_id, actor=user)
    return {
        "event": _serialize_event(
            context.event, context=context, include_days=True, include_cohosts=True
        )
    }


@app.get("/api/v1/events/{event_id}/preview")
def api_preview_event(
    event_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return {"event": events.event_preview(db, event_id=event_id, actor=user)}


@app.patch("/api/v1/events/{event_id}")
def api_update_event(
    event_id: str,
    payload: EventUpdatePayload,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    context = events.update_event(
        db,
        event_id=event_id,
        actor=user,
        changes=payload.model_dump(exclude_unset=True),
    )
    return {"event": _serialize_event(context.event, context=context)}


@app.delete("/api/v1/events/{event_id}", status_code=204)
def api_delete_event(
    event_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    events.delete_event(db, event_id=event_id, actor=user)
    return Response(status_code=204)


@app.post("/api/v1/events/{event_id}/join")
def api_join_event(
    event_id: str,
    response: Response,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    result = attendance.join_event(db, event_id=event_id, user=user)
    response.status_code = 200 if result.reused else 201
    return {"attendee": _serialize_attendee(result.attendee), "reused": result.reused}


@app.get("/api/v1/events/{event_id}/attendees")
def api_list_attendees(
    event_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    roster = attendance.list_attendees(db, event_id=event_id, actor=user)
    return {
        "event_id": event_id,
        "require_approval": roster.require_approval,
        "attendees": [_serialize_attendee(a) for a in roster.attendees],
        "groups": {
            status: [_serialize_attendee(a) for a in members]
            for status, members in roster.groups.items()
        },
    }


@app.get("/api/v1/events/{event_id}/attendees/pending")
def api_list_pending(
    event_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    pending = attendance.list_pending(db, event_id=event_id, actor=user)
    return {"attendees": [_serialize_attendee(a) for a in pending]}


@app.post("/api/v1/events/{event_id}/attendees/decisions")
def api_bulk_decide(
    event_id: str,
    payload: BulkDecisionPayload,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    result = attendance.bulk_decide(
        db,
        event_id=event_id,
        decisions=[(item.user_id, item.decision) for item in payload.decisions],
        actor=user,
    )
    return {
        "event_id": event_id,
        "accepted": result.accepted,
        "declined": result.declined,
        "skipped": result.skipped,
    }


@app.post("/api/v1/events/{event_id}/attendees/{user_id}/decision")
def api_decide(
    event_id: str,
    user_id: str,
    payload: DecisionPayload,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    attendee = attendance.decide(
        db,
        event_id=event_id,
        target_user_id=user_id,
        decision=payload.decision,
        actor=user,
    )
    return {"attendee": _serialize_attendee(attendee)}


@app.post("/api/v1/events/{event_id}/cohosts/invites")
def api_invite_cohost(
    event_id: str,
    payload: InvitePayload,
    response: Response,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    result = cohosts.invite_cohost(db, event_id=event_id, email=payload.email, actor=user)
    response.status_code = 200 if result.reused else 201
    return {"invite": _serialize_invite(result.invite), "reused": result.reused}


@app.get("/api/v1/events/{event_id}/cohosts/invites")
def api_list_cohost_invites(
    event_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    roster = cohosts.list_event_invites(db, event_id=event_id, actor=user)
    return {
        "cohosts": [_serialize_user(cohost) for cohost in roster.cohosts],
        "invites": [_serialize_invite(invite) for invite in roster.invites],
    }


@app.post("/api/v1/events/{event_id}/cohosts/invites/{invite_id}/accept")
def api_accept_invite(
    event_id: str,
    invite_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    invite = cohosts.accept_invite(db, event_id=event_id, invite_id=invite_id, actor=user)
    return {"invite": _serialize_invite(invite)}


@app.post("/api/v1/events/{event_id}/cohosts/invites/{invite_id}/decline")
def api_decline_invite(
    event_id: str,
    invite_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    invite = cohosts.decline_invite(
        db, event_id=event_id, invite_id=invite_id, actor=user
    )
    return {"invite": _serialize_invite(invite)}


@app.post("/api/v1/events/{event_id}/cohosts/invites/{invite_id}/revoke", status_code=204)
def api_revoke_invite(
    event_id: str,
    invite_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    cohosts.revoke_invite(db, event_id=event_id, invite_id=invite_id, actor=user)
    return Response(status_code=204)


@app.delete("/api/v1/events/{event_id}/cohosts/{user_id}", status_code=204)
def api_remove_cohost(
    event_id: str,
    user_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    cohosts.remove_cohost(db, event_id=event_id, user_id=user_id, actor=user)
    return Response(status_code=204)


@app.get("/api/v1/events/{event_id}/days")
def api_list_days(
    event_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    days = scheduling.list_days(db, event_id=event_id, actor=user)
    return {"days": [_serialize_day(day) for day in days]}


@app.post("/api/v1/events/{event_id}/activities", status_code=201)
def api_create_activity(
    event_id: str,
    payload: ActivityCreatePayload,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    activity = scheduling.create_activity(
        db,
        event_id=event_id,
        actor=user,
        day_id=payload.day_id,
        title=payload.title,
        start_time=payload.start_time,
        end_time=payload.end_time,
        location=payload.location,
        description=payload.description,
    )
    return {"activity": _serialize_activity(activity)}


@app.delete("/api/v1/events/{event_id}/activities/{activity_id}", status_code=204)
def api_delete_activity(
    event_id: str,
    activity_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    scheduling.delete_activity(db, event_id=event_id, activity_id=activity_id, actor=user)
    return Response(status_code=204)


@app.post("/api/v1/events/{event_id}/polls", status_code=201)
def api_create_poll(
    event_id: str,
    payload: PollCreatePayload,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    config = None
    if payload.settings is not None:
        config = polls.PollConfig(**payload.settings.model_dump())
    poll = polls.create_poll(
        db,
        event_id=event_id,
        actor=user,
        title=payload.title,
        description=payload.description,
        options=payload.options,
        config=config,
    )
    return {"id": poll.id}


@app.get("/api/v1/events/{event_id}/polls")
def api_list_polls(
    event_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return {"polls": polls.list_polls(db, event_id=event_id, actor=user)}


@app.patch("/api/v1/events/{event_id}/polls/{poll_id}")
def api_update_poll(
    event_id: str,
    poll_id: str,
    payload: PollUpdatePayload,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    poll = polls.update_poll(
        db,
        event_id=event_id,
        poll_id=poll_id,
        actor=user,
        changes=polls.PollUpdate(**payload.model_dump(exclude_unset=True)),
    )
    return {
        "poll": {
            "id": poll.id,
            "title": poll.title,
            "description": poll.description,
            "status": poll.status.value,
        }
    }


@app.post("/api/v1/events/{event_id}/polls/{poll_id}/vote", status_code=204)
def api_vote(
    event_id: str,
    poll_id: str,
    payload: VotePayload,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    polls.cast_vote(
        db,
        event_id=event_id,
        poll_id=poll_id,
        actor=user,
        option_ids=payload.option_ids,
    )
    return Response(status_code=204)
