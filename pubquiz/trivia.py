"""
Open Trivia DB proxy.

Fetches questions from the public API and reshapes them for quiz hosts:
HTML entities decoded, answers merged and shuffled, one uid per question.
"""

from __future__ import annotations

import html
import logging
import random
import uuid
from typing import Any, Optional

import httpx
from fastapi import HTTPException

from pubquiz.config import settings

logger = logging.getLogger(__name__)

TRIVIA_SOURCE = "Open Trivia DB"


class TriviaClient:
    """Thin synchronous client for the Open Trivia DB question endpoint."""

    def __init__(
        self,
        base_url: str = settings.TRIVIA_API_URL,
        timeout: float = settings.TRIVIA_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self.transport = transport

    def fetch(self, params: dict[str, Any]) -> dict[str, Any]:
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.get(self.base_url, params=params)
        except httpx.HTTPError as exc:
            logger.warning("Trivia API request failed: %s", exc)
            raise HTTPException(status_code=502, detail="Public questions API not reachable") from exc

        if not response.is_success:
            logger.warning("Trivia API responded with HTTP %s", response.status_code)
            raise HTTPException(status_code=502, detail="Public questions API not reachable")
        try:
            payload = response.json()
        except ValueError as exc:
            logger.warning("Trivia API returned invalid JSON")
            raise HTTPException(status_code=502, detail="Public questions API not reachable") from exc
        if not isinstance(payload, dict):
            logger.warning("Trivia API returned a %s instead of an object", type(payload).__name__)
            raise HTTPException(status_code=502, detail="Public questions API not reachable")
        return payload


def get_trivia_client() -> TriviaClient:
    return TriviaClient()


def _decode(value: Optional[str]) -> str:
    return html.unescape(value or "")


def build_query(
    amount: int = 10,
    difficulty: Optional[str] = None,
    question_type: Optional[str] = None,
    category: Optional[int] = None,
) -> dict[str, Any]:
    params: dict[str, Any] = {"amount": int(amount)}
    if difficulty is not None:
        params["difficulty"] = difficulty
    if question_type is not None:
        params["type"] = question_type
    if category is not None:
        params["category"] = category
    return params


def normalize_question(raw: dict[str, Any], rng: Optional[random.Random] = None) -> dict[str, Any]:
    answers = [_decode(a) for a in [raw.get("correct_answer", "")] + list(raw.get("incorrect_answers") or [])]
    (rng or random).shuffle(answers)
    return {
        "uid": str(uuid.uuid4()),
        "category": _decode(raw.get("category")),
        "type": raw.get("type"),
        "difficulty": raw.get("difficulty"),
        "question": _decode(raw.get("question")),
        "answers": answers,
        "correct": _decode(raw.get("correct_answer")),
    }


def fetch_questions(client: TriviaClient, params: dict[str, Any]) -> dict[str, Any]:
    payload = client.fetch(params)
    results = payload.get("results") or []
    if payload.get("response_code", 1) != 0 or not results:
        raise HTTPException(status_code=404, detail="No questions found from the public API.")

    questions = [normalize_question(q) for q in results]
    logger.info("Fetched %s trivia question(s)", len(questions))
    return {
        "source": TRIVIA_SOURCE,
        "params": params,
        "count": len(questions),
        "questions": questions,
    }
