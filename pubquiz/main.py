from __future__ import annotations

import logging
from typing import Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from pubquiz.auth import authenticate, get_current_user, issue_token, require_admin, revoke_tokens
from pubquiz.config import settings
from pubquiz.database import Base, engine, get_db
from pubquiz.models import User
from pubquiz.schemas import (
    EventBoardOut,
    EventCreate,
    EventUpdate,
    LoginRequest,
    ParticipationCreate,
    ParticipationUpdate,
    RegisterRequest,
    SeasonCreate,
    SeasonUpdate,
)
from pubquiz.services import (
    create_event,
    create_participation,
    create_season,
    delete_event,
    delete_participation,
    delete_season,
    event_board,
    event_out,
    event_participations_count,
    get_event_or_404,
    get_participation_for,
    get_season_or_404,
    list_events,
    list_participations,
    list_seasons,
    participation_out,
    recalculate_event_ranks,
    register_user,
    season_board,
    season_events_count,
    season_out,
    stored_event_board,
    update_event,
    update_participation,
    update_season,
    user_out,
)
from pubquiz.trivia import TriviaClient, build_query, fetch_questions, get_trivia_client

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0.0",
    description=(
        "Pub quiz league backend: seasons, events, team participations, "
        "leaderboards and an Open Trivia DB question proxy."
    ),
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    Base.metadata.create_all(bind=engine)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


# Auth


@app.post("/register")
def register(payload: RegisterRequest, db: Session = Depends(get_db)):
    user = register_user(db, payload)
    token = issue_token(db, user)
    db.commit()
    db.refresh(user)
    return {"data": user_out(user), "access_token": token, "token_type": "Bearer"}


@app.post("/login")
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    user = authenticate(db, payload.email, payload.password)
    if not user:
        raise HTTPException(status_code=401, detail="Wrong credentials")
    token = issue_token(db, user)
    db.commit()
    logger.info("User %s logged in", user.id)
    return {"message": f"{user.name} logged in", "access_token": token, "token_type": "Bearer"}


@app.post("/logout")
def logout(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    revoke_tokens(db, user)
    db.commit()
    return {"message": "You have successfully logged out."}


@app.get("/user")
def current_user(user: User = Depends(get_current_user)):
    return user_out(user)


# Seasons


@app.get("/seasons")
def get_seasons(db: Session = Depends(get_db)):
    return {"seasons": [season_out(s) for s in list_seasons(db)]}


@app.post("/seasons")
def post_season(
    payload: SeasonCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_admin(user, "Only admins can create seasons")
    season = create_season(db, payload)
    db.commit()
    db.refresh(season)
    return {
        "message": "Season created successfully",
        "season": season_out(season, season_events_count(db, season.id)),
    }


@app.get("/seasons/{season_id}/board")
def get_season_board(season_id: int, db: Session = Depends(get_db)):
    return season_board(db, season_id)


@app.get("/seasons/{season_id}")
def get_season(season_id: int, db: Session = Depends(get_db)):
    season = get_season_or_404(db, season_id)
    return {"season": season_out(season, season_events_count(db, season.id))}


@app.put("/seasons/{season_id}")
def put_season(
    season_id: int,
    payload: SeasonUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_admin(user, "Only admins can update seasons")
    season = update_season(db, season_id, payload)
    db.commit()
    db.refresh(season)
    return {
        "message": "Season updated successfully",
        "season": season_out(season, season_events_count(db, season.id)),
    }


@app.delete("/seasons/{season_id}")
def remove_season(
    season_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_admin(user, "Only admins can delete seasons")
    delete_season(db, season_id)
    db.commit()
    return {"message": "Season deleted successfully"}


# Events


@app.get("/events")
def get_events(
    search: Optional[str] = Query(default=None),
    season_id: Optional[int] = Query(default=None),
    status: Optional[list[str]] = Query(default=None),
    upcoming: bool = Query(default=False),
    sort_by: Optional[str] = Query(default=None),
    sort_dir: Optional[str] = Query(default=None),
    page: int = Query(default=1),
    per_page: int = Query(default=15),
    db: Session = Depends(get_db),
):
    return list_events(
        db,
        search=search,
        season_id=season_id,
        statuses=status,
        upcoming=upcoming,
        sort_by=sort_by,
        sort_dir=sort_dir,
        page=page,
        per_page=per_page,
    )


@app.get("/events/{event_id}/board", response_model=EventBoardOut)
def get_event_board(event_id: int, db: Session = Depends(get_db)):
    return {"board": event_board(db, event_id)}


@app.post("/events/{event_id}/ranks", response_model=EventBoardOut)
def recalculate_ranks(
    event_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_admin(user, "Only admins can recalculate ranks")
    event = get_event_or_404(db, event_id)
    recalculate_event_ranks(db, event.id)
    db.commit()
    return {"board": stored_event_board(db, event.id)}


@app.get("/events/{event_id}")
def get_event(event_id: int, db: Session = Depends(get_db)):
    event = get_event_or_404(db, event_id)
    return {
        "event": event_out(
            event,
            include_season=True,
            participations_count=event_participations_count(db, event.id),
        )
    }


@app.post("/events")
def post_event(
    payload: EventCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_admin(user, "Only admins can create events")
    event = create_event(db, payload)
    db.commit()
    db.refresh(event)
    return {"message": "Event created successfully", "event": event_out(event)}


@app.put("/events/{event_id}")
def put_event(
    event_id: int,
    payload: EventUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_admin(user, "Only admins can update events")
    event = update_event(db, event_id, payload)
    db.commit()
    db.refresh(event)
    return {
        "message": "Event updated successfully",
        "event": event_out(
            event,
            include_season=True,
            participations_count=event_participations_count(db, event.id),
        ),
    }


@app.delete("/events/{event_id}")
def remove_event(
    event_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_admin(user, "Only admins can delete events")
    delete_event(db, event_id)
    db.commit()
    return {"message": "Event deleted successfully"}


# Participations


@app.get("/participations")
def get_participations(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"participations": [participation_out(p) for p in list_participations(db, user)]}


@app.post("/participations")
def post_participation(
    payload: ParticipationCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    participation = create_participation(db, user, payload.event_id, payload.user_id)
    db.commit()
    db.refresh(participation)
    return {
        "message": "Participation created successfully",
        "participation": participation_out(participation),
    }


@app.get("/participations/{participation_id}")
def get_participation(
    participation_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return {"participation": participation_out(get_participation_for(db, user, participation_id))}


@app.put("/participations/{participation_id}")
def put_participation(
    participation_id: int,
    payload: ParticipationUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_admin(user, "Only admins can update participations")
    participation = update_participation(db, participation_id, payload)
    db.commit()
    db.refresh(participation)
    return {
        "message": "Participation updated successfully",
        "participation": participation_out(participation),
    }


@app.delete("/participations/{participation_id}")
def remove_participation(
    participation_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    delete_participation(db, user, participation_id)
    db.commit()
    return {"message": "Participation deleted successfully"}


# Trivia


@app.get("/trivia")
def get_trivia(
    amount: int = Query(default=10, ge=1, le=50),
    difficulty: Optional[Literal["easy", "medium", "hard"]] = Query(default=None),
    question_type: Optional[Literal["multiple", "boolean"]] = Query(default=None, alias="type"),
    category: Optional[int] = Query(default=None, ge=1),
    user: User = Depends(get_current_user),
    client: TriviaClient = Depends(get_trivia_client),
):
    require_admin(user, "Only admins can fetch questions")
    params = build_query(amount, difficulty, question_type, category)
    return fetch_questions(client, params)
