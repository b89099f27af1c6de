#!/usr/bin/env python3
"""
Demo data for a local pub quiz league.

Usage:
    pubquiz-seed                    # admin, teams, seasons, events and scores
    pubquiz-seed --teams 20         # more teams
    pubquiz-seed --reset            # drop and recreate all tables first
"""

from __future__ import annotations

import argparse
import logging
import random
import sys
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from pubquiz.auth import hash_password
from pubquiz.config import settings
from pubquiz.database import Base, SessionLocal, engine
from pubquiz.models import ROLE_ADMIN, ROLE_TEAM, Event, Participation, Season, User, as_naive_utc
from pubquiz.services import recalculate_event_ranks, unique_season_slug

logger = logging.getLogger(__name__)

TEAM_NAMES = [
    "Quizteama Aguilera",
    "Les Quizerables",
    "The Know-It-Owls",
    "Trivia Newton John",
    "Agatha Quiztie",
    "Universally Challenged",
    "Quiz Khalifa",
    "The Smarty Pints",
    "Tequila Mockingbird",
    "Sherlock Homies",
    "Ctrl Alt Defeat",
    "The Brainy Bunch",
    "Pub Club",
    "Let's Get Quizzical",
    "E=MC Hammered",
]
SEASON_PARTS = ["Spring", "Summer", "Fall", "Winter"]
VENUES = ["The Red Lion", "The Crown", "The Plough", "The White Hart", "The Royal Oak"]


def ensure_admin(db: Session) -> User:
    admin = db.scalar(select(User).where(User.email == settings.ADMIN_EMAIL))
    if admin:
        return admin
    admin = User(
        name=settings.ADMIN_NAME,
        email=settings.ADMIN_EMAIL,
        password_hash=hash_password(settings.ADMIN_PASSWORD),
        role=ROLE_ADMIN,
    )
    db.add(admin)
    db.flush()
    logger.info("Created admin %s", admin.email)
    return admin


def seed_teams(db: Session, count: int) -> list[User]:
    teams = []
    for idx in range(count):
        name = TEAM_NAMES[idx] if idx < len(TEAM_NAMES) else f"Team {idx + 1}"
        email = f"team{idx + 1}@pubquiz.local"
        user = db.scalar(select(User).where(User.email == email))
        if not user:
            user = User(name=name, email=email, password_hash=hash_password("password"), role=ROLE_TEAM)
            db.add(user)
        teams.append(user)
    db.flush()
    return teams


def seed_season(db: Session, rng: random.Random, index: int, events_per_season: int) -> Season:
    start = date.today() - timedelta(days=90 * (index + 1) - 30)
    name = f"Season {start.year} {SEASON_PARTS[index % len(SEASON_PARTS)]}"
    season = Season(
        name=name,
        slug=unique_season_slug(db, name),
        start_date=start,
        end_date=start + timedelta(days=90),
        is_active=index == 0,
        description=f"Weekly quizzes across {len(VENUES)} venues.",
    )
    db.add(season)
    db.flush()

    for week in range(events_per_season):
        starts_at = datetime.combine(start, datetime.min.time()).replace(hour=20) + timedelta(weeks=week)
        venue = rng.choice(VENUES)
        db.add(
            Event(
                season_id=season.id,
                title=f"{venue} Pub Quiz",
                location=venue,
                starts_at=starts_at,
                ends_at=starts_at + timedelta(hours=2),
                status="scheduled",
            )
        )
    db.flush()
    return season


def seed_participations(db: Session, rng: random.Random, event: Event, teams: list[User]) -> None:
    lower = min(len(teams), 8)
    picked = rng.sample(teams, rng.randint(lower, len(teams)))
    for team in picked:
        db.add(Participation(event_id=event.id, user_id=team.id, total_points=rng.randint(0, 100)))
    recalculate_event_ranks(db, event.id)

    if event.starts_at < as_naive_utc(datetime.now(timezone.utc)):
        event.status = "completed"
        event.scores_finalized = True


def run(seasons: int, events_per_season: int, teams: int, reset: bool, seed: int | None) -> None:
    if reset:
        logger.info("Dropping all tables")
        Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    rng = random.Random(seed)
    db = SessionLocal()
    try:
        ensure_admin(db)
        team_users = seed_teams(db, teams)
        for idx in range(seasons):
            season = seed_season(db, rng, idx, events_per_season)
            for event in season.events:
                seed_participations(db, rng, event, team_users)
            logger.info("Seeded %s with %s events", season.name, len(season.events))
        db.commit()
    finally:
        db.close()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Seed the pub quiz database with demo data")
    parser.add_argument("--seasons", type=int, default=2, help="Number of seasons")
    parser.add_argument("--events", type=int, default=6, help="Events per season")
    parser.add_argument("--teams", type=int, default=12, help="Number of team accounts")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument("--reset", action="store_true", help="Drop and recreate tables first")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.teams < 1 or args.seasons < 0 or args.events < 0:
        parser.error("counts must be positive")

    run(args.seasons, args.events, args.teams, args.reset, args.seed)
    return 0


if __name__ == "__main__":
    sys.exit(main())
