def _create_season(client, headers, **fields):
    payload = {"name": "Season 2026 Fall", "is_active": True}
    payload.update(fields)
    resp = client.post("/seasons", json=payload, headers=headers)
    assert resp.status_code == 200, resp.text
    return resp.json()["season"]


def _create_event(client, headers, season_id, **fields):
    payload = {"season_id": season_id, "title": "Red Lion Pub Quiz", "starts_at": "2099-11-05T20:00:00"}
    payload.update(fields)
    resp = client.post("/events", json=payload, headers=headers)
    assert resp.status_code == 200, resp.text
    return resp.json()["event"]


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_register_login_logout(client, register_team):
    team = register_team("Quiz Khalifa")

    me = client.get("/user", headers=team["headers"])
    assert me.status_code == 200
    assert me.json()["role"] == "team"

    dup = client.post(
        "/register",
        json={"name": "Other", "email": "quiz-khalifa@example.com", "password": "secret-pass"},
    )
    assert dup.status_code == 400

    short = client.post("/register", json={"name": "X", "email": "x@example.com", "password": "short"})
    assert short.status_code == 422

    bad = client.post("/login", json={"email": "quiz-khalifa@example.com", "password": "nope-nope"})
    assert bad.status_code == 401
    assert bad.json()["detail"] == "Wrong credentials"

    ok = client.post("/login", json={"email": "quiz-khalifa@example.com", "password": "secret-pass"})
    assert ok.status_code == 200
    assert ok.json()["message"] == "Quiz Khalifa logged in"
    assert ok.json()["token_type"] == "Bearer"

    out = client.post("/logout", headers=team["headers"])
    assert out.json() == {"message": "You have successfully logged out."}
    assert client.get("/user", headers=team["headers"]).status_code == 401
    fresh = {"Authorization": f"Bearer {ok.json()['access_token']}"}
    assert client.get("/user", headers=fresh).status_code == 401


def test_protected_routes_require_token(client):
    assert client.post("/seasons", json={"name": "S"}).status_code == 401
    assert client.get("/participations").status_code == 401
    bogus = {"Authorization": "Bearer 1|not-a-real-token"}
    assert client.get("/user", headers=bogus).status_code == 401


def test_season_crud_and_admin_only(client, admin_headers, register_team):
    team = register_team("Les Quizerables")
    forbidden = client.post("/seasons", json={"name": "Nope"}, headers=team["headers"])
    assert forbidden.status_code == 403
    assert forbidden.json()["detail"] == "Only admins can create seasons"

    assert client.get("/seasons").status_code == 404

    inactive = _create_season(client, admin_headers, name="Spring", is_active=False, start_date="2026-01-01")
    active = _create_season(client, admin_headers, name="Autumn", start_date="2026-09-01")
    assert active["slug"] == "autumn"
    assert active["events_count"] == 0

    listed = client.get("/seasons").json()["seasons"]
    assert [s["id"] for s in listed] == [active["id"], inactive["id"]]

    bad_dates = client.post(
        "/seasons",
        json={"name": "Broken", "start_date": "2026-05-01", "end_date": "2026-04-01"},
        headers=admin_headers,
    )
    assert bad_dates.status_code == 422

    updated = client.put(
        f"/seasons/{inactive['id']}",
        json={"name": "Spring Cup", "slug": ""},
        headers=admin_headers,
    )
    assert updated.status_code == 200
    assert updated.json()["season"]["slug"] == "spring-cup"

    taken = client.put(f"/seasons/{inactive['id']}", json={"slug": "autumn"}, headers=admin_headers)
    assert taken.status_code == 400

    assert client.delete(f"/seasons/{inactive['id']}", headers=admin_headers).status_code == 200
    assert client.get(f"/seasons/{inactive['id']}").status_code == 404


def test_event_listing_filters_and_pagination(client, admin_headers):
    season = _create_season(client, admin_headers)
    other = _create_season(client, admin_headers, name="Other Season")
    _create_event(client, admin_headers, season["id"], title="Crown Quiz", location="The Crown")
    _create_event(client, admin_headers, season["id"], title="Plough Quiz", starts_at="2099-10-01T20:00:00")
    _create_event(
        client,
        admin_headers,
        other["id"],
        title="Old Quiz",
        starts_at="2000-01-01T20:00:00",
        status="completed",
    )

    everything = client.get("/events").json()
    assert everything["meta"]["total"] == 3
    assert [e["title"] for e in everything["events"]] == ["Old Quiz", "Plough Quiz", "Crown Quiz"]

    by_search = client.get("/events", params={"search": "crown"}).json()["events"]
    assert [e["title"] for e in by_search] == ["Crown Quiz"]

    by_season = client.get("/events", params={"season_id": other["id"]}).json()["events"]
    assert [e["title"] for e in by_season] == ["Old Quiz"]

    by_status = client.get("/events", params=[("status", "completed"), ("status", "bogus")]).json()
    assert [e["title"] for e in by_status["events"]] == ["Old Quiz"]

    upcoming = client.get("/events", params={"upcoming": "true"}).json()["events"]
    assert {e["title"] for e in upcoming} == {"Plough Quiz", "Crown Quiz"}

    desc = client.get("/events", params={"sort_by": "title", "sort_dir": "desc"}).json()["events"]
    assert [e["title"] for e in desc] == ["Plough Quiz", "Old Quiz", "Crown Quiz"]

    fallback = client.get("/events", params={"sort_by": "location; drop", "sort_dir": "sideways"}).json()
    assert [e["title"] for e in fallback["events"]] == ["Old Quiz", "Plough Quiz", "Crown Quiz"]

    page2 = client.get("/events", params={"per_page": 2, "page": 2}).json()
    assert page2["meta"] == {"page": 2, "per_page": 2, "total": 3, "last_page": 2}
    assert len(page2["events"]) == 1

    assert client.get("/events", params={"per_page": 2, "page": 5}).status_code == 404
    assert client.get("/events", params={"search": "nothing like this"}).status_code == 404


def test_event_crud(client, admin_headers):
    season = _create_season(client, admin_headers)
    missing_season = client.post(
        "/events",
        json={"season_id": 999, "title": "X", "starts_at": "2099-01-01T20:00:00"},
        headers=admin_headers,
    )
    assert missing_season.status_code == 404

    bad = client.post(
        "/events",
        json={
            "season_id": season["id"],
            "title": "X",
            "starts_at": "2099-01-01T20:00:00",
            "ends_at": "2099-01-01T19:00:00",
        },
        headers=admin_headers,
    )
    assert bad.status_code == 422

    event = _create_event(client, admin_headers, season["id"])
    assert event["status"] == "scheduled"
    assert event["scores_finalized"] is False

    shown = client.get(f"/events/{event['id']}").json()["event"]
    assert shown["season"]["id"] == season["id"]
    assert shown["participations_count"] == 0

    too_early = client.put(
        f"/events/{event['id']}", json={"ends_at": "2099-11-05T19:00:00"}, headers=admin_headers
    )
    assert too_early.status_code == 422

    updated = client.put(
        f"/events/{event['id']}",
        json={"status": "completed", "scores_finalized": True},
        headers=admin_headers,
    )
    assert updated.status_code == 200
    assert updated.json()["event"]["status"] == "completed"

    assert client.delete(f"/events/{event['id']}", headers=admin_headers).status_code == 200
    assert client.get(f"/events/{event['id']}").status_code == 404


def test_event_times_with_mixed_timezones(client, admin_headers):
    season = _create_season(client, admin_headers)
    created = client.post(
        "/events",
        json={
            "season_id": season["id"],
            "title": "New Year Quiz",
            "starts_at": "2099-01-01T20:00:00Z",
            "ends_at": "2099-01-01T22:00:00",
        },
        headers=admin_headers,
    )
    assert created.status_code == 200
    event = created.json()["event"]
    assert event["starts_at"].startswith("2099-01-01T20:00:00")

    before_start = client.post(
        "/events",
        json={
            "season_id": season["id"],
            "title": "Backwards Quiz",
            "starts_at": "2099-01-01T20:00:00+02:00",
            "ends_at": "2099-01-01T17:30:00",
        },
        headers=admin_headers,
    )
    assert before_start.status_code == 422

    moved = client.put(
        f"/events/{event['id']}",
        json={"starts_at": "2099-01-01T21:00:00+01:00", "ends_at": "2099-01-01T21:30:00"},
        headers=admin_headers,
    )
    assert moved.status_code == 200


def test_participation_flow_and_boards(client, admin_headers, register_team):
    season = _create_season(client, admin_headers)
    event = _create_event(client, admin_headers, season["id"])
    owls = register_team("Know It Owls")
    pints = register_team("Smarty Pints")
    homies = register_team("Sherlock Homies")

    assert client.get(f"/events/{event['id']}/board").status_code == 404
    assert client.get(f"/seasons/{season['id']}/board").status_code == 404

    ids = {}
    for team in (owls, pints, homies):
        resp = client.post("/participations", json={"event_id": event["id"]}, headers=team["headers"])
        assert resp.status_code == 200, resp.text
        ids[team["id"]] = resp.json()["participation"]["id"]

    again = client.post("/participations", json={"event_id": event["id"]}, headers=owls["headers"])
    assert again.status_code == 409

    forbidden = client.put(f"/participations/{ids[owls['id']]}", json={"total_points": 5}, headers=owls["headers"])
    assert forbidden.status_code == 403

    for team, points in ((owls, 50), (pints, 50), (homies, 30)):
        resp = client.put(
            f"/participations/{ids[team['id']]}", json={"total_points": points}, headers=admin_headers
        )
        assert resp.status_code == 200

    empty = client.put(f"/participations/{ids[owls['id']]}", json={}, headers=admin_headers)
    assert empty.status_code == 422
    assert empty.json()["detail"] == "No editable fields provided"

    board = client.get(f"/events/{event['id']}/board").json()["board"]
    assert board == [
        {"team": "Know It Owls", "points": 50, "rank": 1},
        {"team": "Smarty Pints", "points": 50, "rank": 1},
        {"team": "Sherlock Homies", "points": 30, "rank": 2},
    ]

    season_board = client.get(f"/seasons/{season['id']}/board").json()
    assert season_board["total_board"] == board
    assert season_board["events"][0]["event"]["id"] == event["id"]

    own = client.get("/participations", headers=pints["headers"]).json()["participations"]
    assert [p["user_id"] for p in own] == [pints["id"]]
    assert len(client.get("/participations", headers=admin_headers).json()["participations"]) == 3

    peek = client.get(f"/participations/{ids[owls['id']]}", headers=pints["headers"])
    assert peek.status_code == 403
    mine = client.get(f"/participations/{ids[owls['id']]}", headers=owls["headers"]).json()
    assert mine["participation"]["event"]["id"] == event["id"]

    gone = client.delete(f"/participations/{ids[owls['id']]}", headers=owls["headers"])
    assert gone.status_code == 200
    board = client.get(f"/events/{event['id']}/board").json()["board"]
    assert [(row["team"], row["rank"]) for row in board] == [("Smarty Pints", 1), ("Sherlock Homies", 2)]


def test_rank_override_and_recalculation(client, admin_headers, register_team):
    season = _create_season(client, admin_headers)
    event = _create_event(client, admin_headers, season["id"])
    a = register_team("Alpha")
    b = register_team("Bravo")
    pa = client.post("/participations", json={"event_id": event["id"]}, headers=a["headers"]).json()
    pb = client.post("/participations", json={"event_id": event["id"]}, headers=b["headers"]).json()
    pa_id = pa["participation"]["id"]
    pb_id = pb["participation"]["id"]

    client.put(f"/participations/{pa_id}", json={"total_points": 20}, headers=admin_headers)
    client.put(f"/participations/{pb_id}", json={"total_points": 10}, headers=admin_headers)
    for bad_rank in (0, -1):
        rejected = client.put(f"/participations/{pb_id}", json={"rank": bad_rank}, headers=admin_headers)
        assert rejected.status_code == 422
    override = client.put(f"/participations/{pb_id}", json={"rank": 1}, headers=admin_headers)
    assert override.json()["participation"]["rank"] == 1

    board = client.get(f"/events/{event['id']}/board").json()["board"]
    assert [row["rank"] for row in board] == [1, 1]

    team_attempt = client.post(f"/events/{event['id']}/ranks", headers=a["headers"])
    assert team_attempt.status_code == 403

    recalculated = client.post(f"/events/{event['id']}/ranks", headers=admin_headers)
    assert recalculated.status_code == 200
    assert recalculated.json()["board"] == [
        {"team": "Alpha", "points": 20, "rank": 1},
        {"team": "Bravo", "points": 10, "rank": 2},
    ]


def test_admin_registers_team_and_closed_event(client, admin_headers, register_team):
    season = _create_season(client, admin_headers)
    event = _create_event(client, admin_headers, season["id"])
    closed = _create_event(client, admin_headers, season["id"], status="cancelled")
    team = register_team("Pub Club")

    resp = client.post(
        "/participations",
        json={"event_id": event["id"], "user_id": team["id"]},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["participation"]["user_id"] == team["id"]

    late = client.post("/participations", json={"event_id": closed["id"]}, headers=team["headers"])
    assert late.status_code == 422
    assert late.json()["detail"] == "Registration closed for this event"

    unknown = client.post("/participations", json={"event_id": 999}, headers=team["headers"])
    assert unknown.status_code == 404
