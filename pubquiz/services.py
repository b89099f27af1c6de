from __future__ import annotations

import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import HTTPException
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from pubquiz.auth import hash_password
from pubquiz.models import EVENT_STATUSES, ROLE_TEAM, Event, Participation, Season, User, as_naive_utc
from pubquiz.ranking import RankedEntry, ScoredEntry, aggregate_points, compute_standings
from pubquiz.schemas import (
    EventCreate,
    EventUpdate,
    ParticipationUpdate,
    RegisterRequest,
    SeasonCreate,
    SeasonUpdate,
)

logger = logging.getLogger(__name__)

EVENT_SORTABLE = ("starts_at", "title", "created_at", "status")
DEFAULT_PER_PAGE = 15
MAX_PER_PAGE = 100


def get_or_404(db: Session, model: Any, obj_id: int, label: str):
    obj = db.get(model, obj_id)
    if not obj:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return obj


def get_season_or_404(db: Session, season_id: int) -> Season:
    return get_or_404(db, Season, season_id, "Season")


def get_event_or_404(db: Session, event_id: int) -> Event:
    return get_or_404(db, Event, event_id, "Event")


def get_participation_or_404(db: Session, participation_id: int) -> Participation:
    return get_or_404(db, Participation, participation_id, "Participation")


def get_user_or_404(db: Session, user_id: int) -> User:
    return get_or_404(db, User, user_id, "User")


def slugify(value: str) -> str:
    cleaned = re.sub(r"[^a-zA-Z0-9]+", "-", value.strip().lower()).strip("-")
    return cleaned[:240] if cleaned else "season"


def unique_season_slug(db: Session, name: str, exclude_id: Optional[int] = None) -> str:
    base = slugify(name)
    slug = base
    counter = 1
    while True:
        query = select(Season.id).where(Season.slug == slug)
        if exclude_id is not None:
            query = query.where(Season.id != exclude_id)
        if db.scalar(query) is None:
            return slug
        slug = f"{base}-{counter}"
        counter += 1


# Serializers


def user_out(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "created_at": user.created_at,
    }


def season_out(season: Season, events_count: Optional[int] = None) -> dict[str, Any]:
    payload = {
        "id": season.id,
        "name": season.name,
        "slug": season.slug,
        "start_date": season.start_date,
        "end_date": season.end_date,
        "is_active": bool(season.is_active),
        "description": season.description,
    }
    if events_count is not None:
        payload["events_count"] = events_count
    return payload


def event_out(
    event: Event,
    include_season: bool = False,
    participations_count: Optional[int] = None,
) -> dict[str, Any]:
    payload = {
        "id": event.id,
        "season_id": event.season_id,
        "title": event.title,
        "location": event.location,
        "starts_at": event.starts_at,
        "ends_at": event.ends_at,
        "status": event.status,
        "scores_finalized": bool(event.scores_finalized),
    }
    if include_season:
        payload["season"] = season_out(event.season)
    if participations_count is not None:
        payload["participations_count"] = participations_count
    return payload


def participation_out(participation: Participation, include_relations: bool = True) -> dict[str, Any]:
    payload = {
        "id": participation.id,
        "event_id": participation.event_id,
        "user_id": participation.user_id,
        "total_points": int(participation.total_points),
        "rank": int(participation.rank) if participation.rank is not None else None,
    }
    if include_relations:
        payload["user"] = user_out(participation.user)
        payload["event"] = event_out(participation.event)
    return payload


def season_events_count(db: Session, season_id: int) -> int:
    return db.scalar(select(func.count(Event.id)).where(Event.season_id == season_id)) or 0


def event_participations_count(db: Session, event_id: int) -> int:
    return (
        db.scalar(select(func.count(Participation.id)).where(Participation.event_id == event_id))
        or 0
    )


# Users


def register_user(db: Session, payload: RegisterRequest) -> User:
    email = payload.email.strip().lower()
    if db.scalar(select(User.id).where(User.email == email)) is not None:
        raise HTTPException(status_code=400, detail="Email already registered")
    user = User(
        name=payload.name.strip(),
        email=email,
        password_hash=hash_password(payload.password),
        role=ROLE_TEAM,
    )
    db.add(user)
    db.flush()
    logger.info("Registered team user %s", user.id)
    return user


# Seasons


def list_seasons(db: Session) -> list[Season]:
    seasons = db.scalars(
        select(Season).order_by(Season.is_active.desc(), Season.start_date.asc(), Season.id.asc())
    ).all()
    if not seasons:
        raise HTTPException(status_code=404, detail="No seasons found.")
    return list(seasons)


def create_season(db: Session, payload: SeasonCreate) -> Season:
    data = payload.model_dump()
    if data.get("slug"):
        if db.scalar(select(Season.id).where(Season.slug == data["slug"])) is not None:
            raise HTTPException(status_code=400, detail="Slug already taken")
    else:
        data["slug"] = unique_season_slug(db, data["name"])

    season = Season(**data)
    db.add(season)
    db.flush()
    logger.info("Created season %s (%s)", season.id, season.slug)
    return season


def update_season(db: Session, season_id: int, payload: SeasonUpdate) -> Season:
    season = get_season_or_404(db, season_id)
    data = payload.model_dump(exclude_unset=True)

    if "slug" in data:
        slug = data.pop("slug")
        if slug == "":
            if data.get("name"):
                season.slug = unique_season_slug(db, data["name"], exclude_id=season.id)
        elif slug is not None:
            taken = db.scalar(select(Season.id).where(Season.slug == slug, Season.id != season.id))
            if taken is not None:
                raise HTTPException(status_code=400, detail="Slug already taken")
            season.slug = slug

    if data.get("name") is None:
        data.pop("name", None)
    if data.get("is_active") is None:
        data.pop("is_active", None)

    start = data.get("start_date", season.start_date)
    end = data.get("end_date", season.end_date)
    if start and end and end < start:
        raise HTTPException(status_code=422, detail="end_date must be on or after start_date")

    for field, value in data.items():
        setattr(season, field, value)
    db.flush()
    logger.info("Updated season %s", season.id)
    return season


def delete_season(db: Session, season_id: int) -> None:
    season = get_season_or_404(db, season_id)
    db.delete(season)
    db.flush()
    logger.info("Deleted season %s", season_id)


def season_board(db: Session, season_id: int) -> dict[str, Any]:
    season = get_season_or_404(db, season_id)
    events = db.scalars(
        select(Event).where(Event.season_id == season.id).order_by(Event.starts_at.asc(), Event.id.asc())
    ).all()
    if not events:
        raise HTTPException(status_code=404, detail="No events in this season.")

    event_ids = [e.id for e in events]
    rows = db.execute(
        select(Participation.user_id, Participation.total_points)
        .where(Participation.event_id.in_(event_ids))
        .order_by(Participation.user_id.asc(), Participation.id.asc())
    ).all()
    if not rows:
        raise HTTPException(status_code=404, detail="No participations found for this season.")

    user_ids = {user_id for user_id, _ in rows}
    labels = {
        u.id: u.name for u in db.scalars(select(User).where(User.id.in_(user_ids))).all()
    }
    totals = compute_standings(aggregate_points(rows, labels=labels))

    event_boards = []
    for ev in events:
        board = stored_event_board(db, ev.id)
        if not board:
            continue
        event_boards.append(
            {
                "event": {
                    "id": ev.id,
                    "title": ev.title,
                    "starts_at": ev.starts_at,
                    "status": ev.status,
                },
                "board": board,
            }
        )

    return {
        "season": {"id": season.id, "name": season.name},
        "total_board": [entry.as_board_row() for entry in totals],
        "events": event_boards,
    }


# Events


def list_events(
    db: Session,
    search: Optional[str] = None,
    season_id: Optional[int] = None,
    statuses: Optional[list[str]] = None,
    upcoming: bool = False,
    sort_by: Optional[str] = None,
    sort_dir: Optional[str] = None,
    page: int = 1,
    per_page: int = DEFAULT_PER_PAGE,
) -> dict[str, Any]:
    conditions = []
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        conditions.append(or_(Event.title.ilike(pattern), Event.location.ilike(pattern)))
    if season_id is not None:
        conditions.append(Event.season_id == season_id)
    if statuses:
        conditions.append(Event.status.in_([s for s in statuses if s in EVENT_STATUSES]))
    if upcoming:
        conditions.append(Event.status == "scheduled")
        conditions.append(Event.starts_at >= as_naive_utc(datetime.now(timezone.utc)))

    sort_by = sort_by if sort_by in EVENT_SORTABLE else "starts_at"
    sort_dir = (sort_dir or "asc").lower()
    if sort_dir not in ("asc", "desc"):
        sort_dir = "asc"
    column = getattr(Event, sort_by)
    order = column.desc() if sort_dir == "desc" else column.asc()

    per_page = max(1, min(int(per_page), MAX_PER_PAGE))
    page = max(1, int(page))

    total = db.scalar(select(func.count(Event.id)).where(*conditions)) or 0
    if total == 0:
        raise HTTPException(status_code=404, detail="No events found.")

    events = db.scalars(
        select(Event)
        .where(*conditions)
        .order_by(order, Event.id.asc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    ).all()
    if not events:
        raise HTTPException(status_code=404, detail="No events found.")

    return {
        "events": [event_out(e, include_season=True) for e in events],
        "meta": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "last_page": max(1, math.ceil(total / per_page)),
        },
    }


def create_event(db: Session, payload: EventCreate) -> Event:
    get_season_or_404(db, payload.season_id)
    data = payload.model_dump()
    data["starts_at"] = as_naive_utc(data["starts_at"])
    data["ends_at"] = as_naive_utc(data["ends_at"])
    event = Event(**data)
    db.add(event)
    db.flush()
    logger.info("Created event %s in season %s", event.id, event.season_id)
    return event


def update_event(db: Session, event_id: int, payload: EventUpdate) -> Event:
    event = get_event_or_404(db, event_id)
    data = payload.model_dump(exclude_unset=True)

    # Only location and ends_at may be cleared.
    for field in ("season_id", "title", "starts_at", "status", "scores_finalized"):
        if field in data and data[field] is None:
            data.pop(field)

    if "season_id" in data:
        get_season_or_404(db, data["season_id"])
    for field in ("starts_at", "ends_at"):
        if field in data:
            data[field] = as_naive_utc(data[field])

    starts_at = data.get("starts_at", event.starts_at)
    ends_at = data.get("ends_at", event.ends_at)
    if ends_at is not None and ends_at < starts_at:
        raise HTTPException(status_code=422, detail="ends_at must be on or after starts_at")

    for field, value in data.items():
        setattr(event, field, value)
    db.flush()
    logger.info("Updated event %s", event.id)
    return event


def delete_event(db: Session, event_id: int) -> None:
    event = get_event_or_404(db, event_id)
    db.delete(event)
    db.flush()
    logger.info("Deleted event %s", event_id)


def stored_event_board(db: Session, event_id: int) -> list[dict[str, Any]]:
    rows = db.execute(
        select(Participation, User.name)
        .join(User, User.id == Participation.user_id)
        .where(Participation.event_id == event_id)
        .order_by(
            Participation.total_points.desc(),
            Participation.rank.asc(),
            Participation.created_at.asc(),
            Participation.id.asc(),
        )
    ).all()
    return [
        {
            "team": name,
            "points": int(p.total_points),
            "rank": int(p.rank) if p.rank is not None else None,
        }
        for p, name in rows
    ]


def event_board(db: Session, event_id: int) -> list[dict[str, Any]]:
    event = get_event_or_404(db, event_id)
    board = stored_event_board(db, event.id)
    if not board:
        raise HTTPException(status_code=404, detail="No participations found for this event.")
    return board


def recalculate_event_ranks(db: Session, event_id: int) -> list[RankedEntry]:
    """
    Rank an event's participations by points and persist the result.
    Called after every write that changes the event's points.
    """
    db.flush()
    participations = db.scalars(
        select(Participation)
        .where(Participation.event_id == event_id)
        .order_by(Participation.created_at.asc(), Participation.id.asc())
    ).all()
    standings = compute_standings(
        [
            ScoredEntry(subject_id=p.id, subject_label=p.user.name, points=int(p.total_points))
            for p in participations
        ]
    )
    by_id = {p.id: p for p in participations}
    for entry in standings:
        by_id[entry.subject_id].rank = entry.rank
    db.flush()
    logger.info("Re-ranked event %s (%s participation(s))", event_id, len(standings))
    return standings


# Participations


def list_participations(db: Session, user: User) -> list[Participation]:
    query = select(Participation).order_by(
        Participation.event_id.asc(),
        Participation.rank.asc(),
        Participation.total_points.desc(),
        Participation.id.asc(),
    )
    if not user.is_admin:
        query = query.where(Participation.user_id == user.id)
    rows = db.scalars(query).all()
    if not rows:
        raise HTTPException(status_code=404, detail="No participations found.")
    return list(rows)


def create_participation(
    db: Session, user: User, event_id: int, user_id: Optional[int] = None
) -> Participation:
    target_user_id = user.id
    if user.is_admin and user_id is not None:
        target_user_id = get_user_or_404(db, user_id).id

    event = get_event_or_404(db, event_id)
    if event.status != "scheduled":
        raise HTTPException(status_code=422, detail="Registration closed for this event")

    exists = db.scalar(
        select(Participation.id).where(
            Participation.event_id == event.id,
            Participation.user_id == target_user_id,
        )
    )
    if exists is not None:
        raise HTTPException(status_code=409, detail="Team already registered for this event")

    participation = Participation(event_id=event.id, user_id=target_user_id, total_points=0)
    db.add(participation)
    recalculate_event_ranks(db, event.id)
    logger.info("User %s registered for event %s", target_user_id, event.id)
    return participation


def require_owner_or_admin(user: User, participation: Participation) -> None:
    if not user.is_admin and participation.user_id != user.id:
        raise HTTPException(status_code=403, detail="Forbidden")


def get_participation_for(db: Session, user: User, participation_id: int) -> Participation:
    participation = get_participation_or_404(db, participation_id)
    require_owner_or_admin(user, participation)
    return participation


def update_participation(
    db: Session, participation_id: int, payload: ParticipationUpdate
) -> Participation:
    participation = get_participation_or_404(db, participation_id)
    data = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    if not data:
        raise HTTPException(status_code=422, detail="No editable fields provided")

    if "total_points" in data:
        participation.total_points = data["total_points"]
        recalculate_event_ranks(db, participation.event_id)
    if "rank" in data:
        # Manual override, kept until the event's points change again.
        participation.rank = data["rank"]
    db.flush()
    logger.info("Updated participation %s: %s", participation.id, data)
    return participation


def delete_participation(db: Session, user: User, participation_id: int) -> None:
    participation = get_participation_for(db, user, participation_id)
    event_id = participation.event_id
    db.delete(participation)
    db.flush()
    recalculate_event_ranks(db, event_id)
    logger.info("Deleted participation %s", participation_id)
