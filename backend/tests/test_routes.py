from app.models.period import Period


def test_health_is_public(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_triggers_require_auth(client):
    assert client.get("/automation/tick").status_code == 401
    assert client.get("/automation/tick", headers={"Authorization": "Bearer wrong"}).status_code == 401
    assert client.get("/admin/automation-settings").status_code == 401


def test_secret_accepted_from_header_query_and_trusted_invoker(client, auth_headers):
    assert client.get("/automation/tick?dry_run=true", headers=auth_headers).status_code == 200
    assert client.get("/automation/tick?dry_run=true&key=test-cron-secret").status_code == 200
    assert client.get("/automation/tick?dry_run=true", headers={"X-Cron-Secret": "test-cron-secret"}).status_code == 200
    assert client.get("/automation/tick?dry_run=true", headers={"x-vercel-cron": "1"}).status_code == 200


def test_tick_summary_shape(client, auth_headers):
    body = client.get("/automation/tick?dry_run=true&debug=true", headers=auth_headers).json()
    assert body["ok"] is True
    for key in ("due_kinds", "recipients_considered", "sent_count", "errors", "aborted", "debug"):
        assert key in body


def test_cron_trigger(client, auth_headers):
    body = client.get("/automation/cron", headers=auth_headers).json()
    assert body["ok"] is True
    assert "created" in body


def test_settings_round_trip(client, auth_headers, make_period):
    period = make_period()
    resp = client.post(
        "/admin/automation-settings",
        headers=auth_headers,
        json={"period_id": period.id, "avail_deadline_before_days": "15", "extra_reminder_hours": [24, 48]},
    )
    assert resp.status_code == 200
    saved = resp.json()["settings"]
    assert saved["avail_deadline"] == "2025-09-16T00:00:00+00:00"
    assert saved["extra_reminder_hours"] == [48, 24]

    listing = client.get(f"/admin/automation-settings?period_id={period.id}", headers=auth_headers).json()
    assert listing["periods"][0]["label"] == "T4 2025"
    assert listing["periods"][0]["generate_at"] == "2025-09-10T00:00:00+00:00"
    assert listing["settings"]["avail_deadline_before_days"] == 15


def test_settings_unknown_period(client, auth_headers):
    resp = client.post("/admin/automation-settings", headers=auth_headers, json={"period_id": 404})
    assert resp.status_code == 404


def test_generate_slots(client, auth_headers, db):
    payload = {"label": "Hiver", "start_date": "2026-01-01", "end_date": "2026-01-04", "auto_holidays": True}
    resp = client.post("/admin/generate-slots", headers=auth_headers, json=payload)
    assert resp.status_code == 200
    body = resp.json()
    # Thu 01/01 (holiday) 3 + Fri 1 + Sat 2 + Sun 3
    assert body["slots"] == 9
    assert db.query(Period).filter(Period.label == "Hiver").count() == 1
    assert client.post("/admin/generate-slots", headers=auth_headers, json=payload).status_code == 409


def test_generate_slots_bad_range(client, auth_headers):
    payload = {"label": "Oops", "start_date": "2026-01-04", "end_date": "2026-01-01"}
    assert client.post("/admin/generate-slots", headers=auth_headers, json=payload).status_code == 400


def test_run_reminders_defaults_to_dry_run(client, auth_headers, make_period):
    period = make_period(settings_payload={})
    resp = client.post(
        f"/admin/periods/{period.id}/run-reminders",
        headers=auth_headers,
        json={"now": "2025-09-14T00:00:00"},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["dry_run"] is True
    assert body["due_kinds"][0]["kinds"] == ["deadline_48"]


def test_run_reminders_bad_kind(client, auth_headers, make_period):
    period = make_period(settings_payload={})
    resp = client.post(
        f"/admin/periods/{period.id}/run-reminders",
        headers=auth_headers,
        json={"force_kinds": ["nope"]},
    )
    assert resp.status_code == 400


def test_real_tick_without_email_provider_aborts(client, auth_headers, monkeypatch):
    from app.config import settings

    monkeypatch.setattr(settings, "resend_api_key", "")
    monkeypatch.setattr(settings, "smtp_host", "")
    body = client.get("/automation/tick", headers=auth_headers).json()
    assert body["ok"] is True
    assert body["aborted"] is True
    assert body["errors"][0]["type"] == "transport"


def test_month_status_set_and_clear(client, auth_headers, db, make_period):
    from datetime import date

    from app.services.calendar import ensure_period_slots

    period = make_period()
    ensure_period_slots(db, period, date(2025, 10, 1), date(2025, 10, 31))

    listing = client.get(f"/admin/month-status?user_id=doc&period_id={period.id}", headers=auth_headers).json()
    assert [m["month"] for m in listing["months"]] == ["2025-10"]
    assert listing["needs_reminding"] is True

    resp = client.post(
        "/admin/month-status",
        headers=auth_headers,
        json={"user_id": "doc", "period_id": period.id, "month": "2025-10", "validated": True},
    )
    assert resp.status_code == 200
    status = resp.json()["status"]
    assert status["validated_at"] is not None
    assert status["needs_reminding"] is False

    cleared = client.post(
        "/admin/month-status",
        headers=auth_headers,
        json={"user_id": "doc", "period_id": period.id, "month": "2025-10", "validated": False},
    ).json()["status"]
    assert cleared["validated_at"] is None
    assert cleared["needs_reminding"] is True


def test_month_status_errors(client, auth_headers, make_period):
    period = make_period()
    bad_month = {"user_id": "doc", "period_id": period.id, "month": "2025-13", "locked": True}
    assert client.post("/admin/month-status", headers=auth_headers, json=bad_month).status_code == 400
    unknown = {"user_id": "doc", "period_id": 404, "month": "2025-10", "locked": True}
    assert client.post("/admin/month-status", headers=auth_headers, json=unknown).status_code == 404
    assert client.get("/admin/month-status?user_id=doc&period_id=404", headers=auth_headers).status_code == 404
