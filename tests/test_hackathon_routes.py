"""
tests/test_hackathon_routes.py -- Integration tests for hackathon CRUD, status and participation.

These tests exercise the full stack: FastAPI routing -> JWT dependency ->
lifecycle gating -> HackathonStore -> response model serialization.
Hackathons in phases that need past deadlines are inserted straight into the
store with make_hackathon(); everything else goes through the API.

Covers:
  - POST /hackathons: 201 DRAFT, deadline ordering, past registration deadline, 401
  - GET /hackathons: filters, search, pagination metadata
  - GET /hackathons/{id}: 404, include_participants
  - PATCH: organizer only, deadline merge, status change audited, invalid transition
  - DELETE: blocked while a phase is open, 204 otherwise
  - POST /{id}/status: organizer MANUAL_OVERRIDE, admin ADMIN_INTERVENTION, stranger 403
  - Concurrent status change: POST /status and PATCH both answer 409 status_conflict
  - GET /{id}/actions
  - Participation: organizer refused, duplicate 409, full 400, deadline passed 400
  - Submission: non-participant 403, after deadline 400
  - Judges: add/list/remove, organizer cannot judge, duplicate 409, locked during voting
  - Judges whose votes were counted cannot be removed after voting (judge_has_votes)
  - GET /{id}/audit: organizer or admin only
"""

from __future__ import annotations

from datetime import timedelta

from conftest import WALLETS, address_of, auth, iso, make_hackathon
from hackathons.models import AuditEntry, Judge, Participant, Vote


def _create_body(**overrides) -> dict:
    body = {
        "title": "ZK Buildathon",
        "description": "Ship a zero-knowledge app",
        "registration_deadline": iso(timedelta(days=1)),
        "submission_deadline": iso(timedelta(days=2)),
        "voting_deadline": iso(timedelta(days=3)),
        "prize_amount": "1000000000000000000",
    }
    body.update(overrides)
    return body


def _create(client, tokens, **overrides) -> dict:
    resp = client.post("/api/v1/hackathons", json=_create_body(**overrides), headers=auth(tokens["organizer"]))
    assert resp.status_code == 201, resp.text
    return resp.json()


def _open_registration(client, tokens, hackathon_id: int) -> None:
    resp = client.post(
        f"/api/v1/hackathons/{hackathon_id}/status",
        json={"status": "REGISTRATION_OPEN"},
        headers=auth(tokens["organizer"]),
    )
    assert resp.status_code == 200, resp.text


# ---------------------------------------------------------------------------
# Create / read
# ---------------------------------------------------------------------------


class TestCreateAndRead:
    def test_create(self, api_client, tokens):
        client, _, _ = api_client
        data = _create(client, tokens)
        assert data["status"] == "DRAFT"
        assert data["organizer_address"] == address_of("organizer")
        assert data["prize_amount"] == "1000000000000000000"
        assert data["participant_count"] == 0

    def test_create_requires_auth(self, api_client):
        client, _, _ = api_client
        assert client.post("/api/v1/hackathons", json=_create_body()).status_code == 401

    def test_deadlines_out_of_order(self, api_client, tokens):
        client, _, _ = api_client
        resp = client.post(
            "/api/v1/hackathons",
            json=_create_body(submission_deadline=iso(timedelta(days=5))),
            headers=auth(tokens["organizer"]),
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_deadlines"

    def test_registration_deadline_in_past(self, api_client, tokens):
        client, _, _ = api_client
        resp = client.post(
            "/api/v1/hackathons",
            json=_create_body(registration_deadline=iso(timedelta(hours=-1))),
            headers=auth(tokens["organizer"]),
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_deadlines"

    def test_invalid_prize_amount_422(self, api_client, tokens):
        client, _, _ = api_client
        resp = client.post(
            "/api/v1/hackathons", json=_create_body(prize_amount="1.5"), headers=auth(tokens["organizer"])
        )
        assert resp.status_code == 422

    def test_get_and_404(self, api_client, tokens):
        client, _, _ = api_client
        created = _create(client, tokens)
        resp = client.get(f"/api/v1/hackathons/{created['id']}")
        assert resp.status_code == 200
        assert resp.json()["title"] == "ZK Buildathon"
        missing = client.get("/api/v1/hackathons/999999")
        assert missing.status_code == 404
        assert missing.json()["error"]["code"] == "hackathon_not_found"

    def test_list_filters_and_pagination(self, api_client, tokens):
        client, _, _ = api_client
        _create(client, tokens, title="Needle In Haystack")
        other = client.post(
            "/api/v1/hackathons", json=_create_body(title="Alice Event"), headers=auth(tokens["alice"])
        ).json()

        resp = client.get("/api/v1/hackathons", params={"search": "needle"})
        data = resp.json()
        assert data["total"] == 1
        assert data["data"][0]["title"] == "Needle In Haystack"

        by_alice = client.get("/api/v1/hackathons", params={"organizer": address_of("alice")}).json()
        assert [h["id"] for h in by_alice["data"]] == [other["id"]]

        page = client.get("/api/v1/hackathons", params={"limit": 1, "page": 1}).json()
        assert page["limit"] == 1
        assert len(page["data"]) == 1
        assert page["total_pages"] == page["total"]

    def test_list_bad_sort_422(self, api_client):
        client, _, _ = api_client
        assert client.get("/api/v1/hackathons", params={"sort_by": "organizer_address"}).status_code == 422


# ---------------------------------------------------------------------------
# Update / delete
# ---------------------------------------------------------------------------


class TestUpdateAndDelete:
    def test_patch_title(self, api_client, tokens):
        client, _, _ = api_client
        created = _create(client, tokens)
        resp = client.patch(
            f"/api/v1/hackathons/{created['id']}", json={"title": "Renamed"}, headers=auth(tokens["organizer"])
        )
        assert resp.status_code == 200
        assert resp.json()["title"] == "Renamed"

    def test_patch_by_non_organizer_403(self, api_client, tokens):
        client, _, _ = api_client
        created = _create(client, tokens)
        resp = client.patch(
            f"/api/v1/hackathons/{created['id']}", json={"title": "Hijack"}, headers=auth(tokens["alice"])
        )
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

    def test_patch_deadline_must_keep_order(self, api_client, tokens):
        client, _, _ = api_client
        created = _create(client, tokens)
        resp = client.patch(
            f"/api/v1/hackathons/{created['id']}",
            json={"voting_deadline": iso(timedelta(hours=36))},
            headers=auth(tokens["organizer"]),
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_deadlines"

    def test_patch_status_is_audited(self, api_client, tokens):
        client, store, _ = api_client
        created = _create(client, tokens)
        resp = client.patch(
            f"/api/v1/hackathons/{created['id']}",
            json={"status": "REGISTRATION_OPEN", "title": "Now Open"},
            headers=auth(tokens["organizer"]),
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "REGISTRATION_OPEN"
        assert resp.json()["title"] == "Now Open"
        entries, total = store.list_audit(hackathon_id=created["id"])
        assert total == 1
        assert entries[0].action == "MANUAL_OVERRIDE"
        assert entries[0].triggered_by == "ORGANIZER"

    def test_patch_invalid_transition(self, api_client, tokens):
        client, _, _ = api_client
        created = _create(client, tokens)
        resp = client.patch(
            f"/api/v1/hackathons/{created['id']}", json={"status": "COMPLETED"}, headers=auth(tokens["organizer"])
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_transition"

    def test_patch_completed_refused(self, api_client, tokens):
        client, store, _ = api_client
        h = make_hackathon(store, status="COMPLETED")
        resp = client.patch(f"/api/v1/hackathons/{h.id}", json={"title": "Late"}, headers=auth(tokens["organizer"]))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "action_not_allowed"

    def test_delete_draft(self, api_client, tokens):
        client, _, _ = api_client
        created = _create(client, tokens)
        resp = client.delete(f"/api/v1/hackathons/{created['id']}", headers=auth(tokens["organizer"]))
        assert resp.status_code == 204
        assert client.get(f"/api/v1/hackathons/{created['id']}").status_code == 404

    def test_delete_blocked_while_open(self, api_client, tokens):
        client, store, _ = api_client
        h = make_hackathon(store, status="REGISTRATION_OPEN")
        resp = client.delete(f"/api/v1/hackathons/{h.id}", headers=auth(tokens["organizer"]))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "action_not_allowed"


# ---------------------------------------------------------------------------
# Status changes and actions
# ---------------------------------------------------------------------------


class TestStatus:
    def test_organizer_transition(self, api_client, tokens):
        client, store, _ = api_client
        created = _create(client, tokens)
        resp = client.post(
            f"/api/v1/hackathons/{created['id']}/status",
            json={"status": "REGISTRATION_OPEN", "reason": "Launch"},
            headers=auth(tokens["organizer"]),
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "REGISTRATION_OPEN"
        entry = store.list_audit(hackathon_id=created["id"])[0][0]
        assert (entry.action, entry.triggered_by, entry.reason) == ("MANUAL_OVERRIDE", "ORGANIZER", "Launch")
        assert entry.user_address == address_of("organizer")

    def test_admin_intervention(self, api_client, tokens):
        client, store, _ = api_client
        h = make_hackathon(store, status="VOTING_CLOSED")
        resp = client.post(
            f"/api/v1/hackathons/{h.id}/status", json={"status": "COMPLETED"}, headers=auth(tokens["admin"])
        )
        assert resp.status_code == 200
        entry = store.list_audit(hackathon_id=h.id)[0][0]
        assert (entry.action, entry.triggered_by) == ("ADMIN_INTERVENTION", "ADMIN")

    def test_stranger_forbidden(self, api_client, tokens):
        client, _, _ = api_client
        created = _create(client, tokens)
        resp = client.post(
            f"/api/v1/hackathons/{created['id']}/status",
            json={"status": "REGISTRATION_OPEN"},
            headers=auth(tokens["alice"]),
        )
        assert resp.status_code == 403

    def test_skip_phase_rejected(self, api_client, tokens):
        client, _, _ = api_client
        created = _create(client, tokens)
        resp = client.post(
            f"/api/v1/hackathons/{created['id']}/status",
            json={"status": "VOTING_OPEN"},
            headers=auth(tokens["organizer"]),
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_transition"

    def _race_to_registration(self, store, hackathon_id: int, monkeypatch) -> None:
        """Another writer opens registration after the route has read the DRAFT row."""
        stale = store.get_hackathon(hackathon_id)
        audit = AuditEntry(
            hackathon_id=hackathon_id,
            action="MANUAL_OVERRIDE",
            from_status="DRAFT",
            to_status="REGISTRATION_OPEN",
            triggered_by="ORGANIZER",
        )
        assert store.update_status(hackathon_id, "DRAFT", audit)
        monkeypatch.setattr(store, "get_hackathon", lambda *args, **kwargs: stale)

    def test_concurrent_status_change_409(self, api_client, tokens, monkeypatch):
        client, store, _ = api_client
        hid = _create(client, tokens)["id"]
        self._race_to_registration(store, hid, monkeypatch)
        resp = client.post(
            f"/api/v1/hackathons/{hid}/status",
            json={"status": "REGISTRATION_OPEN"},
            headers=auth(tokens["organizer"]),
        )
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "status_conflict"
        monkeypatch.undo()
        assert len(store.list_audit(hackathon_id=hid)[0]) == 1

    def test_concurrent_patch_status_409(self, api_client, tokens, monkeypatch):
        client, store, _ = api_client
        hid = _create(client, tokens)["id"]
        self._race_to_registration(store, hid, monkeypatch)
        resp = client.patch(
            f"/api/v1/hackathons/{hid}",
            json={"status": "REGISTRATION_OPEN", "title": "Lost Update"},
            headers=auth(tokens["organizer"]),
        )
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "status_conflict"
        monkeypatch.undo()
        assert store.get_hackathon(hid).title == "ZK Buildathon"

    def test_actions(self, api_client, tokens):
        client, _, _ = api_client
        created = _create(client, tokens)
        _open_registration(client, tokens, created["id"])
        data = client.get(f"/api/v1/hackathons/{created['id']}/actions").json()
        assert data["status"] == "REGISTRATION_OPEN"
        assert "register" in data["allowed_actions"]
        assert "vote" not in data["allowed_actions"]
        assert set(data["next_statuses"]) == {"REGISTRATION_CLOSED", "SUBMISSION_OPEN"}


# ---------------------------------------------------------------------------
# Participation and submissions
# ---------------------------------------------------------------------------


class TestParticipation:
    def test_register_and_submit(self, api_client, tokens):
        client, _, _ = api_client
        created = _create(client, tokens)
        _open_registration(client, tokens, created["id"])
        resp = client.post(f"/api/v1/hackathons/{created['id']}/participate", headers=auth(tokens["alice"]))
        assert resp.status_code == 201
        assert resp.json()["wallet_address"] == address_of("alice")

        resp = client.post(
            f"/api/v1/hackathons/{created['id']}/submission",
            json={"submission_url": "https://github.com/alice/zk-app"},
            headers=auth(tokens["alice"]),
        )
        assert resp.status_code == 200
        assert resp.json()["submission_url"] == "https://github.com/alice/zk-app"

        detail = client.get(f"/api/v1/hackathons/{created['id']}", params={"include_participants": True}).json()
        assert detail["participant_count"] == 1
        assert detail["participants"][0]["wallet_address"] == address_of("alice")

    def test_duplicate_registration_409(self, api_client, tokens):
        client, _, _ = api_client
        created = _create(client, tokens)
        _open_registration(client, tokens, created["id"])
        client.post(f"/api/v1/hackathons/{created['id']}/participate", headers=auth(tokens["bob"]))
        resp = client.post(f"/api/v1/hackathons/{created['id']}/participate", headers=auth(tokens["bob"]))
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "already_registered"

    def test_organizer_cannot_participate(self, api_client, tokens):
        client, _, _ = api_client
        created = _create(client, tokens)
        _open_registration(client, tokens, created["id"])
        resp = client.post(f"/api/v1/hackathons/{created['id']}/participate", headers=auth(tokens["organizer"]))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "organizer_cannot_participate"

    def test_hackathon_full(self, api_client, tokens):
        client, _, _ = api_client
        created = _create(client, tokens, max_participants=1)
        _open_registration(client, tokens, created["id"])
        assert client.post(
            f"/api/v1/hackathons/{created['id']}/participate", headers=auth(tokens["alice"])
        ).status_code == 201
        resp = client.post(f"/api/v1/hackathons/{created['id']}/participate", headers=auth(tokens["bob"]))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "hackathon_full"

    def test_register_in_draft_refused(self, api_client, tokens):
        client, _, _ = api_client
        created = _create(client, tokens)
        resp = client.post(f"/api/v1/hackathons/{created['id']}/participate", headers=auth(tokens["alice"]))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "action_not_allowed"

    def test_register_after_deadline_refused(self, api_client, tokens):
        client, store, _ = api_client
        h = make_hackathon(store, status="REGISTRATION_OPEN", registration=timedelta(hours=-1))
        resp = client.post(f"/api/v1/hackathons/{h.id}/participate", headers=auth(tokens["alice"]))
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == "Registration deadline has passed"

    def test_submit_requires_registration(self, api_client, tokens):
        client, store, _ = api_client
        h = make_hackathon(store, status="SUBMISSION_OPEN", registration=timedelta(hours=-1))
        resp = client.post(
            f"/api/v1/hackathons/{h.id}/submission",
            json={"submission_url": "https://example.com"},
            headers=auth(tokens["outsider"]),
        )
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "not_participant"

    def test_submit_after_deadline_refused(self, api_client, tokens):
        client, store, _ = api_client
        h = make_hackathon(
            store, status="SUBMISSION_OPEN", registration=timedelta(days=-2), submission=timedelta(hours=-1)
        )
        store.add_participant(Participant(hackathon_id=h.id, wallet_address=address_of("alice")))
        resp = client.post(
            f"/api/v1/hackathons/{h.id}/submission",
            json={"submission_url": "https://example.com/late"},
            headers=auth(tokens["alice"]),
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == "Submission deadline has passed"


# ---------------------------------------------------------------------------
# Judge panel
# ---------------------------------------------------------------------------


class TestJudges:
    def test_add_list_remove(self, api_client, tokens):
        client, _, auth_store = api_client
        created = _create(client, tokens)
        hid = created["id"]
        resp = client.post(
            f"/api/v1/hackathons/{hid}/judges",
            json={"judge_address": WALLETS["judge1"].address},
            headers=auth(tokens["organizer"]),
        )
        assert resp.status_code == 201
        assert resp.json()["judge_address"] == address_of("judge1")
        assert auth_store.get_profile(address_of("judge1")) is not None

        judges = client.get(f"/api/v1/hackathons/{hid}/judges").json()
        assert [j["judge_address"] for j in judges] == [address_of("judge1")]

        resp = client.delete(f"/api/v1/hackathons/{hid}/judges/{address_of('judge1')}", headers=auth(tokens["organizer"]))
        assert resp.status_code == 204
        assert client.get(f"/api/v1/hackathons/{hid}/judges").json() == []

    def test_duplicate_judge_409(self, api_client, tokens):
        client, _, _ = api_client
        hid = _create(client, tokens)["id"]
        body = {"judge_address": WALLETS["judge2"].address}
        client.post(f"/api/v1/hackathons/{hid}/judges", json=body, headers=auth(tokens["organizer"]))
        resp = client.post(f"/api/v1/hackathons/{hid}/judges", json=body, headers=auth(tokens["organizer"]))
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "judge_exists"

    def test_organizer_cannot_judge(self, api_client, tokens):
        client, _, _ = api_client
        hid = _create(client, tokens)["id"]
        resp = client.post(
            f"/api/v1/hackathons/{hid}/judges",
            json={"judge_address": WALLETS["organizer"].address},
            headers=auth(tokens["organizer"]),
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "organizer_cannot_judge"

    def test_only_organizer_manages_judges(self, api_client, tokens):
        client, _, _ = api_client
        hid = _create(client, tokens)["id"]
        resp = client.post(
            f"/api/v1/hackathons/{hid}/judges",
            json={"judge_address": WALLETS["judge1"].address},
            headers=auth(tokens["alice"]),
        )
        assert resp.status_code == 403

    def test_panel_locked_during_voting(self, api_client, tokens):
        client, store, _ = api_client
        h = make_hackathon(store, status="VOTING_OPEN")
        resp = client.post(
            f"/api/v1/hackathons/{h.id}/judges",
            json={"judge_address": WALLETS["judge1"].address},
            headers=auth(tokens["organizer"]),
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "action_not_allowed"

    def test_remove_unknown_judge_404(self, api_client, tokens):
        client, _, _ = api_client
        hid = _create(client, tokens)["id"]
        resp = client.delete(f"/api/v1/hackathons/{hid}/judges/{address_of('bob')}", headers=auth(tokens["organizer"]))
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "judge_not_found"

    def test_judge_with_counted_votes_stays(self, api_client, tokens):
        client, store, _ = api_client
        h = make_hackathon(
            store,
            status="VOTING_CLOSED",
            registration=timedelta(days=-3),
            submission=timedelta(days=-2),
            voting=timedelta(days=-1),
        )
        for name in ("judge1", "judge2"):
            store.add_judge(Judge(hackathon_id=h.id, judge_address=address_of(name), added_by=address_of("organizer")))
        pid = store.add_participant(
            Participant(hackathon_id=h.id, wallet_address=address_of("alice"), submission_url="https://x.io/a")
        )
        store.upsert_vote(Vote(hackathon_id=h.id, judge_address=address_of("judge1"), participant_id=pid, score=8))

        resp = client.delete(f"/api/v1/hackathons/{h.id}/judges/{address_of('judge1')}", headers=auth(tokens["organizer"]))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "judge_has_votes"
        assert store.is_judge(h.id, address_of("judge1"))

        resp = client.delete(f"/api/v1/hackathons/{h.id}/judges/{address_of('judge2')}", headers=auth(tokens["organizer"]))
        assert resp.status_code == 204


# ---------------------------------------------------------------------------
# Audit trail
# ---------------------------------------------------------------------------


class TestAudit:
    def test_organizer_and_admin_can_read(self, api_client, tokens):
        client, _, _ = api_client
        hid = _create(client, tokens)["id"]
        _open_registration(client, tokens, hid)
        for who in ("organizer", "admin"):
            resp = client.get(f"/api/v1/hackathons/{hid}/audit", headers=auth(tokens[who]))
            assert resp.status_code == 200
            assert resp.json()["total"] == 1
            assert resp.json()["data"][0]["to_status"] == "REGISTRATION_OPEN"

    def test_others_forbidden(self, api_client, tokens):
        client, _, _ = api_client
        hid = _create(client, tokens)["id"]
        assert client.get(f"/api/v1/hackathons/{hid}/audit", headers=auth(tokens["alice"])).status_code == 403
