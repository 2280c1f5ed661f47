"""Unit tests for participant ranking and prize split in core/ranking.py.

Covers:
- Weighted score penalises low judge participation (floor at 0.5)
- Participants without a submission or below the vote threshold are excluded
- Tie handling: weighted scores within 0.01 share a rank, variance breaks order
  even when the two scores sit either side of a 0.01 step
- Normalisation, consensus score and distribution metrics
- Prize split uses integer arithmetic and leaves tied-away positions empty
"""

import pytest

from core.ranking import (
    DEFAULT_DISTRIBUTION,
    ParticipantScores,
    calculate_rankings,
    minimum_votes,
    split_prize_pool,
)


def _p(pid: int, scores: list[int], submitted: bool = True) -> ParticipantScores:
    return ParticipantScores(
        participant_id=pid,
        wallet_address=f"0x{pid:040x}",
        submission_url=f"https://example.com/{pid}" if submitted else None,
        scores=scores,
    )


@pytest.fixture
def field():
    """Three judges. A voted by all, B by two, C by one, D never submitted, E unscored."""
    return [
        _p(1, [8, 9, 10]),
        _p(2, [7, 7]),
        _p(3, [10]),
        _p(4, [10, 10, 10], submitted=False),
        _p(5, []),
    ]


class TestMinimumVotes:
    @pytest.mark.parametrize("judges,expected", [(0, 1), (1, 1), (3, 1), (4, 2), (7, 3), (11, 4)])
    def test_thirty_percent_rounded_up(self, judges, expected):
        assert minimum_votes(judges) == expected


class TestCalculateRankings:
    def test_order_and_ranks(self, field):
        ranked, _ = calculate_rankings(field, total_judges=3)
        assert [r.participant_id for r in ranked] == [1, 3, 2]
        assert [r.rank for r in ranked] == [1, 2, 3]
        assert [r.tier for r in ranked] == ["winner", "runner-up", "runner-up"]

    def test_weighted_score_uses_participation_floor(self, field):
        ranked, _ = calculate_rankings(field, total_judges=3)
        by_id = {r.participant_id: r for r in ranked}
        assert by_id[1].weighted_score == 9.0
        assert by_id[2].weighted_score == 4.67  # 7 * 2/3
        assert by_id[3].weighted_score == 5.0  # 10 * max(0.5, 1/3)

    def test_excludes_unsubmitted_and_unscored(self, field):
        ranked, _ = calculate_rankings(field, total_judges=3)
        ids = {r.participant_id for r in ranked}
        assert 4 not in ids
        assert 5 not in ids

    def test_explicit_min_votes(self, field):
        ranked, _ = calculate_rankings(field, total_judges=3, min_votes=2)
        assert [r.participant_id for r in ranked] == [1, 2]

    def test_normalized_and_consensus(self, field):
        ranked, _ = calculate_rankings(field, total_judges=3)
        by_id = {r.participant_id: r for r in ranked}
        assert by_id[1].normalized_score == 10.0
        assert by_id[2].normalized_score == 0.0
        assert by_id[3].normalized_score == 0.77
        assert by_id[1].consensus_score == 8.76
        assert by_id[3].variance == 0.0

    def test_equal_scores_share_rank(self):
        ranked, _ = calculate_rankings([_p(1, [8, 8]), _p(2, [8, 8]), _p(3, [6, 6])], total_judges=2)
        assert [r.rank for r in ranked] == [1, 1, 3]
        assert ranked[2].tier == "runner-up"

    def test_lower_variance_listed_first_on_tie(self):
        ranked, _ = calculate_rankings([_p(1, [5, 9]), _p(2, [7, 7])], total_judges=2)
        assert [r.participant_id for r in ranked] == [2, 1]
        assert ranked[0].rank == ranked[1].rank == 1

    def test_tie_across_rounding_boundary_uses_variance(self):
        """Weighted 21/11 (1.909) and 1.9 are within 0.01 but straddle a 0.01 step."""
        spread = _p(1, [1, 1, 1, 1, 7, 10])
        steady = _p(2, [4, 4, 4, 4, 3])
        ranked, _ = calculate_rankings([spread, steady], total_judges=11)
        assert [r.participant_id for r in ranked] == [2, 1]
        assert ranked[0].rank == ranked[1].rank == 1

    def test_metrics(self, field):
        _, metrics = calculate_rankings(field, total_judges=3)
        assert metrics.total_participants == 3
        assert metrics.total_judges == 3
        assert metrics.average_participation == 2.0
        assert metrics.score_min == 4.67
        assert metrics.score_max == 9.0
        assert metrics.score_median == 5.0

    def test_empty(self):
        ranked, metrics = calculate_rankings([], total_judges=0)
        assert ranked == []
        assert metrics.total_participants == 0
        assert metrics.score_mean == 0.0


class TestSplitPrizePool:
    def test_default_distribution(self, field):
        ranked, _ = calculate_rankings(field, total_judges=3)
        slots = split_prize_pool(ranked, 1000)
        assert [(s.position, s.basis_points, s.amount) for s in slots] == [
            (1, 6000, 600),
            (2, 2500, 250),
            (3, 1500, 150),
        ]
        assert [s.winner.participant_id for s in slots] == [1, 3, 2]

    def test_basis_points_sum_to_whole_pool(self):
        assert sum(bp for _, bp in DEFAULT_DISTRIBUTION) == 10000

    def test_wei_amounts_stay_exact(self):
        pool = 10**21 + 7
        slots = split_prize_pool([], pool)
        assert slots[0].amount == pool * 6000 // 10000
        assert all(s.winner is None for s in slots)

    def test_tie_leaves_second_place_empty(self):
        ranked, _ = calculate_rankings([_p(1, [8, 8]), _p(2, [8, 8]), _p(3, [6, 6])], total_judges=2)
        slots = split_prize_pool(ranked, 100)
        assert slots[0].winner.participant_id == 1
        assert slots[1].winner is None
        assert slots[2].winner.participant_id == 3
