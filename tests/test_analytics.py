"""
tests/test_analytics.py -- Admin analytics reports and exports.

Covers:
  - resolve_window(): preset spans, all_time without a lower bound, custom
    ranges, 30-day fallback, start after end rejected
  - overview / participation_trends / voting_statistics / prize_distribution
    on a hand-built dataset (exact counts, half-up rates, integer wei sums)
  - CSV export: header order, empty cells for None, tab prefix on
    formula-looking cells (CWE-1236)
  - Routes: admin only (401/403), hackathon_id and date filters,
    400 invalid_date_range, JSON export metadata, CSV attachment
"""

from __future__ import annotations

import csv
import io
from datetime import datetime, timedelta, timezone

import pytest

from conftest import address_of, auth, make_hackathon
from hackathons.analytics import (
    EXPORT_COLUMNS,
    Dataset,
    DateRange,
    ExportDataset,
    export_rows,
    overview,
    participation_trends,
    prize_distribution,
    resolve_window,
    to_csv,
    voting_statistics,
)
from hackathons.models import Hackathon, Judge, Participant, Vote

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
ETHER = 10**18

J1 = "0x" + "a1" * 20
J2 = "0x" + "a2" * 20


# ---------------------------------------------------------------------------
# Window
# ---------------------------------------------------------------------------


class TestResolveWindow:
    @pytest.mark.parametrize(
        "date_range,days",
        [
            (DateRange.LAST_7_DAYS, 7),
            (DateRange.LAST_30_DAYS, 30),
            (DateRange.LAST_90_DAYS, 90),
            (DateRange.LAST_YEAR, 365),
        ],
    )
    def test_preset_spans(self, date_range, days):
        window = resolve_window(date_range, now=NOW)
        assert window.end == NOW
        assert window.start == NOW - timedelta(days=days)

    def test_default_is_thirty_days(self):
        assert resolve_window(now=NOW).start == NOW - timedelta(days=30)

    def test_all_time_has_no_lower_bound(self):
        window = resolve_window(DateRange.ALL_TIME, now=NOW)
        assert window.start is None
        assert window.end == NOW

    def test_custom_range(self):
        start, end = NOW - timedelta(days=3), NOW - timedelta(days=1)
        window = resolve_window("custom", start, end, now=NOW)
        assert (window.start, window.end) == (start, end)

    def test_custom_without_end_falls_back(self):
        window = resolve_window(DateRange.CUSTOM, start=NOW - timedelta(days=3), now=NOW)
        assert window.start == NOW - timedelta(days=30)

    def test_start_after_end_rejected(self):
        with pytest.raises(ValueError):
            resolve_window(DateRange.CUSTOM, NOW, NOW - timedelta(days=1), now=NOW)


# ---------------------------------------------------------------------------
# Reports on a fixed dataset
# ---------------------------------------------------------------------------


def _hackathon(hid, title, status, created_on, prize=None, updated=""):
    return Hackathon(
        id=hid,
        title=title,
        description="",
        organizer_address="0x" + "0" * 40,
        registration_deadline="",
        submission_deadline="",
        voting_deadline="",
        status=status,
        prize_amount=prize,
        created_at=f"{created_on}T00:00:00+00:00",
        updated_at=updated,
    )


def _participant(pid, hid, address, created, updated=None, rank=None, prize=None, submitted=True):
    return Participant(
        id=pid,
        hackathon_id=hid,
        wallet_address=address,
        submission_url=f"https://github.com/{pid}/project" if submitted else None,
        rank=rank,
        prize_amount=prize,
        created_at=created,
        updated_at=updated or created,
    )


@pytest.fixture
def ds():
    """Three hackathons: #1 completed with a 1000 ETH pool, #2 voting, #3 draft.

    #1: participants 1 and 2 submitted and won 600 / 250 ETH, participant 3 never
        submitted; judges J1 and J2.
    #2: participant 4 submitted; judge J1.
    """
    hackathons = [
        _hackathon(1, "DeFi Sprint", "COMPLETED", "2026-09-25", str(1000 * ETHER), "2026-10-10T00:00:00+00:00"),
        _hackathon(2, "=SUM(A1:A9)", "VOTING_OPEN", "2026-09-28", "500"),
        _hackathon(3, "Draft", "DRAFT", "2026-10-01"),
    ]
    participants = [
        _participant(
            1, 1, "0x" + "01" * 20, "2026-10-01T10:00:00+00:00", "2026-10-02T10:00:00+00:00", 1, str(600 * ETHER)
        ),
        _participant(
            2, 1, "0x" + "02" * 20, "2026-10-01T20:00:00+00:00", "2026-10-01T22:00:00+00:00", 2, str(250 * ETHER)
        ),
        _participant(3, 1, "0x" + "03" * 20, "2026-10-03T09:00:00+00:00", submitted=False),
        _participant(4, 2, "0x" + "04" * 20, "2026-10-03T09:00:00+00:00", "2026-10-03T11:00:00+00:00"),
    ]
    judges = [
        Judge(hackathon_id=1, judge_address=J1, added_by=""),
        Judge(hackathon_id=1, judge_address=J2, added_by=""),
        Judge(hackathon_id=2, judge_address=J1, added_by=""),
    ]
    votes = [
        Vote(hackathon_id=1, judge_address=J1, participant_id=1, score=9, created_at="2026-10-05T00:00:00+00:00"),
        Vote(
            hackathon_id=1,
            judge_address=J1,
            participant_id=2,
            score=7,
            comment="-Solid demo",
            created_at="2026-10-05T01:00:00+00:00",
        ),
        Vote(hackathon_id=1, judge_address=J2, participant_id=1, score=8, created_at="2026-10-06T00:00:00+00:00"),
        Vote(hackathon_id=2, judge_address=J1, participant_id=4, score=10, created_at="2026-10-07T00:00:00+00:00"),
    ]
    return Dataset(hackathons=hackathons, participants=participants, judges=judges, votes=votes)


def test_overview(ds):
    o = overview(ds, now=NOW)
    assert o.total_hackathons == 3
    assert o.active_hackathons == 1
    assert o.completed_hackathons == 1
    assert o.total_participants == 4
    assert o.total_judges == 3
    assert o.total_prize_distributed == str(850 * ETHER)
    assert o.average_participants_per_hackathon == 1.33
    assert o.average_votes_per_hackathon == 1.33
    assert o.last_updated == NOW.isoformat()


def test_overview_empty():
    o = overview(Dataset(hackathons=[]))
    assert o.total_hackathons == 0
    assert o.average_votes_per_hackathon == 0.0
    assert o.total_prize_distributed == "0"


def test_participation_trends(ds):
    t = participation_trends(ds)
    assert t.total_participations == 4
    assert [(p.date, p.value) for p in t.registration_trends] == [("2026-10-01", 2), ("2026-10-03", 2)]
    assert [(p.date, p.value) for p in t.submission_trends] == [
        ("2026-10-01", 1),
        ("2026-10-02", 1),
        ("2026-10-03", 1),
    ]
    assert t.completion_rate == 75.0
    assert t.average_submission_hours == 9.33  # (24 + 2 + 2) / 3


def test_voting_statistics(ds):
    v = voting_statistics(ds, names={J1: "satoshi"})
    assert v.total_votes == 4
    assert v.average_score == 8.5
    assert [b.score for b in v.score_distribution] == list(range(1, 11))
    assert (v.score_distribution[8].count, v.score_distribution[8].percentage) == (1, 25.0)
    assert v.score_distribution[0].percentage == 0.0

    first, second = v.judge_participation
    assert (first.judge_address, first.judge_name, first.total_votes) == (J1, "satoshi", 3)
    assert first.average_score == 8.67
    assert first.hackathons_judged == 2
    assert first.last_vote_date == "2026-10-07T00:00:00+00:00"
    assert (second.judge_address, second.judge_name, second.total_votes) == (J2, None, 1)

    # hackathon 1: 2 judges x 2 submissions, hackathon 2: 1 x 1 -> 4 of 5 expected
    assert v.voting_completion == 80.0


def test_prize_distribution(ds):
    p = prize_distribution(ds)
    assert p.total_prize_pool == str(1000 * ETHER + 500)
    assert p.total_distributed == str(850 * ETHER)
    assert p.distribution_rate == 85.0
    assert p.average_prize_per_winner == str(425 * ETHER)
    assert [(w.rank, w.count, w.total_prize, w.percentage) for w in p.winners_by_rank] == [
        (1, 1, str(600 * ETHER), 70.59),
        (2, 1, str(250 * ETHER), 29.41),
    ]


def test_prize_distribution_without_winners():
    p = prize_distribution(Dataset(hackathons=[]))
    assert p.distribution_rate == 0.0
    assert p.average_prize_per_winner == "0"
    assert p.winners_by_rank == []


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


def _parse(text: str) -> list[list[str]]:
    return list(csv.reader(io.StringIO(text)))


class TestExport:
    def test_header_matches_columns(self, ds):
        for dataset in ExportDataset:
            rows = _parse(to_csv(export_rows(ds, dataset), EXPORT_COLUMNS[dataset]))
            assert rows[0] == EXPORT_COLUMNS[dataset]

    def test_winners_rows(self, ds):
        rows = export_rows(ds, ExportDataset.WINNERS, names={"0x" + "01" * 20: "alice"})
        assert [(r["rank"], r["username"], r["average_score"]) for r in rows] == [(1, "alice", 8.5), (2, None, 7.0)]
        assert rows[0]["completed_at"] == "2026-10-10T00:00:00+00:00"

    def test_hackathon_counts(self, ds):
        rows = {r["id"]: r for r in export_rows(ds, ExportDataset.HACKATHONS)}
        assert (rows[1]["participant_count"], rows[1]["total_votes"]) == (3, 3)
        assert rows[1]["completed_at"] == "2026-10-10T00:00:00+00:00"
        assert rows[2]["completed_at"] is None

    def test_none_becomes_empty_cell(self, ds):
        rows = _parse(to_csv(export_rows(ds, ExportDataset.PARTICIPANTS), EXPORT_COLUMNS[ExportDataset.PARTICIPANTS]))
        unsubmitted = rows[3]
        assert unsubmitted[EXPORT_COLUMNS[ExportDataset.PARTICIPANTS].index("submission_url")] == ""

    def test_formula_title_is_tab_prefixed(self, ds):
        rows = _parse(to_csv(export_rows(ds, ExportDataset.HACKATHONS), EXPORT_COLUMNS[ExportDataset.HACKATHONS]))
        title = rows[2][1]
        assert not title.startswith("="), f"CSV injection: title cell starts with '=' -- got: {title!r}"
        assert title == "\t=SUM(A1:A9)"

    def test_formula_comment_is_tab_prefixed(self, ds):
        columns = EXPORT_COLUMNS[ExportDataset.VOTES]
        rows = _parse(to_csv(export_rows(ds, ExportDataset.VOTES), columns))
        assert rows[2][columns.index("comment")] == "\t-Solid demo"
        assert rows[1][columns.index("comment")] == ""

    def test_safe_text_unchanged(self, ds):
        rows = _parse(to_csv(export_rows(ds, ExportDataset.HACKATHONS), EXPORT_COLUMNS[ExportDataset.HACKATHONS]))
        assert rows[1][1] == "DeFi Sprint"


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

BASE = "/api/v1/admin/analytics"


@pytest.fixture(scope="module")
def seeded(api_client):
    """A completed hackathon with a finalized podium and a second one in voting."""
    _, store, auth_store = api_client
    done = make_hackathon(store, status="COMPLETED", prize_amount="1000", title="Finished")
    live = make_hackathon(store, status="VOTING_OPEN", title="Live")

    ids = {}
    for name in ("alice", "bob"):
        ids[name] = store.add_participant(
            Participant(
                hackathon_id=done.id,
                wallet_address=address_of(name),
                submission_url=f"https://github.com/{name}/project",
            )
        )
    store.add_participant(Participant(hackathon_id=live.id, wallet_address=address_of("alice")))
    store.add_judge(Judge(hackathon_id=done.id, judge_address=address_of("judge1"), added_by=address_of("organizer")))
    store.upsert_vote(
        Vote(hackathon_id=done.id, judge_address=address_of("judge1"), participant_id=ids["alice"], score=9)
    )
    store.upsert_vote(
        Vote(
            hackathon_id=done.id,
            judge_address=address_of("judge1"),
            participant_id=ids["bob"],
            score=6,
            comment="=HYPERLINK('evil')",
        )
    )
    store.finalize_winners(done.id, [(ids["alice"], 1, "600"), (ids["bob"], 2, "250")])

    auth_store.ensure_profile(address_of("alice"))
    auth_store.update_profile(address_of("alice"), username="alice")
    return done.id, live.id


class TestRoutes:
    def test_requires_admin(self, api_client, tokens, seeded):
        client, _, _ = api_client
        assert client.get(f"{BASE}/overview").status_code == 401
        assert client.get(f"{BASE}/overview", headers=auth(tokens["organizer"])).status_code == 403

    def test_overview_report(self, api_client, tokens, seeded):
        client, _, _ = api_client
        resp = client.get(f"{BASE}/overview", headers=auth(tokens["admin"]))
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["overview"]["total_hackathons"] == 2
        assert data["overview"]["active_hackathons"] == 1
        assert data["overview"]["total_prize_distributed"] == "850"
        assert data["participation"]["total_participations"] == 3
        assert data["voting"]["total_votes"] == 2
        assert data["voting"]["voting_completion"] == 100.0  # live has no judges
        assert data["prize_distribution"]["total_prize_pool"] == "1000"
        assert data["time_range"]["range"] == "last_30_days"
        assert data["time_range"]["start"] is not None

    def test_hackathon_filter(self, api_client, tokens, seeded):
        client, _, _ = api_client
        _, live = seeded
        data = client.get(f"{BASE}/overview", params={"hackathon_id": live}, headers=auth(tokens["admin"])).json()
        assert data["overview"]["total_hackathons"] == 1
        assert data["voting"]["total_votes"] == 0

    def test_custom_range_before_creation_is_empty(self, api_client, tokens, seeded):
        client, _, _ = api_client
        params = {"date_range": "custom", "start_date": "2020-01-01T00:00:00Z", "end_date": "2020-02-01T00:00:00Z"}
        data = client.get(f"{BASE}/participation-trends", params=params, headers=auth(tokens["admin"])).json()
        assert data["total_participations"] == 0
        assert data["registration_trends"] == []

    def test_start_after_end_400(self, api_client, tokens, seeded):
        client, _, _ = api_client
        params = {"date_range": "custom", "start_date": "2026-02-01T00:00:00Z", "end_date": "2026-01-01T00:00:00Z"}
        resp = client.get(f"{BASE}/voting-statistics", params=params, headers=auth(tokens["admin"]))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_date_range"

    def test_voting_and_prize_routes(self, api_client, tokens, seeded):
        client, _, _ = api_client
        voting = client.get(f"{BASE}/voting-statistics", headers=auth(tokens["admin"])).json()
        assert voting["judge_participation"][0]["judge_address"] == address_of("judge1")
        assert voting["average_score"] == 7.5

        prizes = client.get(f"{BASE}/prize-distribution", headers=auth(tokens["admin"])).json()
        assert prizes["distribution_rate"] == 85.0
        assert [w["rank"] for w in prizes["winners_by_rank"]] == [1, 2]

    def test_export_json(self, api_client, tokens, seeded):
        client, _, _ = api_client
        resp = client.get(f"{BASE}/export/participants", headers=auth(tokens["admin"]))
        assert resp.status_code == 200
        data = resp.json()
        assert data["dataset"] == "participants"
        assert data["metadata"]["total_records"] == 3
        assert {r["username"] for r in data["rows"] if r["wallet_address"] == address_of("alice")} == {"alice"}

    def test_export_csv(self, api_client, tokens, seeded):
        client, _, _ = api_client
        resp = client.get(f"{BASE}/export/votes", params={"format": "csv"}, headers=auth(tokens["admin"]))
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        disposition = resp.headers["content-disposition"]
        assert disposition.startswith('attachment; filename="hacka-fi-votes-')
        assert disposition.endswith('.csv"')

        rows = _parse(resp.text)
        columns = EXPORT_COLUMNS[ExportDataset.VOTES]
        assert rows[0] == columns
        comments = [r[columns.index("comment")] for r in rows[1:]]
        assert "\t=HYPERLINK('evil')" in comments

    def test_unknown_dataset_422(self, api_client, tokens, seeded):
        client, _, _ = api_client
        assert client.get(f"{BASE}/export/secrets", headers=auth(tokens["admin"])).status_code == 422
