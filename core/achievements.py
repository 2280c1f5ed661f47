"""
core/achievements.py -- Badge catalogue, eligibility and progress.

Everything here works on a UserStats snapshot; hackathons/achievements.py
loads the snapshot from the store and records awards.

A badge is either counted (a UserStats counter against a target, e.g. five
participations) or boolean (a condition with no natural counter, e.g. a win
rate threshold). Counted badges report partial progress; boolean ones are
0 or 100.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from core.models import round_half_up

PODIUM_RANK = 3


class AchievementCategory(str, Enum):
    PARTICIPANT = "PARTICIPANT"
    WINNER = "WINNER"
    JUDGE = "JUDGE"
    CREATOR = "CREATOR"


@dataclass(frozen=True)
class UserStats:
    participations: int = 0
    wins: int = 0  # finishes at rank <= PODIUM_RANK
    average_rank: float = 0.0  # over ranked participations only
    created: int = 0
    judged: int = 0

    @property
    def win_rate(self) -> float:
        return self.wins / self.participations * 100 if self.participations else 0.0


@dataclass(frozen=True)
class AchievementDefinition:
    key: str
    category: AchievementCategory
    title: str
    description: str
    rarity: str  # common | uncommon | rare | epic | legendary
    condition: Callable[[UserStats], bool]
    metric: Optional[str] = None  # UserStats counter, counted badges only
    target: int = 1


_REQUIREMENTS = {
    "participations": "Participate in {} hackathons",
    "wins": "Win {} hackathons",
    "judged": "Judge {} hackathons",
    "created": "Create {} hackathons",
}


def _counted(key, category, title, description, rarity, metric, target) -> AchievementDefinition:
    return AchievementDefinition(
        key=key,
        category=category,
        title=title,
        description=description,
        rarity=rarity,
        condition=lambda s: getattr(s, metric) >= target,
        metric=metric,
        target=target,
    )


_P, _W, _J, _C = (
    AchievementCategory.PARTICIPANT,
    AchievementCategory.WINNER,
    AchievementCategory.JUDGE,
    AchievementCategory.CREATOR,
)

ACHIEVEMENTS: tuple[AchievementDefinition, ...] = (
    AchievementDefinition(
        "first_steps", _P, "First Steps", "Participate in your first hackathon", "common",
        lambda s: s.participations >= 1,
    ),
    _counted(
        "regular_competitor", _P, "Regular Competitor", "Participate in 5 hackathons", "uncommon", "participations", 5
    ),
    _counted("dedicated_hacker", _P, "Dedicated Hacker", "Participate in 10 hackathons", "rare", "participations", 10),
    _counted("hackathon_legend", _P, "Hackathon Legend", "Participate in 25 hackathons", "epic", "participations", 25),
    AchievementDefinition(
        "first_victory", _W, "First Victory", "Win your first hackathon (1st-3rd place)", "uncommon",
        lambda s: s.wins >= 1,
    ),
    _counted("champion", _W, "Champion", "Win 3 hackathons", "rare", "wins", 3),
    _counted("serial_winner", _W, "Serial Winner", "Win 5 hackathons", "epic", "wins", 5),
    _counted("unstoppable", _W, "Unstoppable", "Win 10 hackathons", "legendary", "wins", 10),
    AchievementDefinition(
        "high_performer", _W, "High Performer", "Achieve 50% win rate with at least 4 participations", "rare",
        lambda s: s.win_rate >= 50 and s.participations >= 4,
    ),
    AchievementDefinition(
        "elite_competitor", _W, "Elite Competitor", "Achieve 70% win rate with at least 5 participations", "epic",
        lambda s: s.win_rate >= 70 and s.participations >= 5,
    ),
    AchievementDefinition(
        "wise_judge", _J, "Wise Judge", "Judge your first hackathon", "uncommon",
        lambda s: s.judged >= 1,
    ),
    _counted("expert_evaluator", _J, "Expert Evaluator", "Judge 5 hackathons", "rare", "judged", 5),
    AchievementDefinition(
        "event_organizer", _C, "Event Organizer", "Create your first hackathon", "uncommon",
        lambda s: s.created >= 1,
    ),
    _counted("community_builder", _C, "Community Builder", "Create 3 hackathons", "rare", "created", 3),
    AchievementDefinition(
        "consistent_performer", _P, "Consistent Performer",
        "Maintain average rank of 3 or better with 5+ participations", "rare",
        lambda s: 0 < s.average_rank <= PODIUM_RANK and s.participations >= 5,
    ),
)

BY_KEY: dict[str, AchievementDefinition] = {d.key: d for d in ACHIEVEMENTS}


@dataclass
class AchievementProgress:
    definition: AchievementDefinition
    earned: bool
    earned_at: Optional[str]
    progress: int  # 0..100
    requirement: str
    current_value: int
    target_value: int


def keys_in(category: AchievementCategory) -> list[str]:
    return [d.key for d in ACHIEVEMENTS if d.category == category]


def eligible_keys(stats: UserStats) -> list[str]:
    """Catalogue keys whose condition holds for `stats`, in catalogue order."""
    return [d.key for d in ACHIEVEMENTS if d.condition(stats)]


def _measure(definition: AchievementDefinition, stats: UserStats) -> tuple[int, int, str]:
    if definition.metric:
        target = definition.target
        return getattr(stats, definition.metric), target, _REQUIREMENTS[definition.metric].format(target)
    return (1 if definition.condition(stats) else 0), 1, definition.description


def progress(stats: UserStats, earned: dict[str, str]) -> list[AchievementProgress]:
    """Progress toward every badge.

    Args:
        stats:  the wallet's current record.
        earned: earned_at timestamp per key the wallet already holds.

    Returns rows with earned badges first, then by progress descending.
    The sort is stable, so ties keep catalogue order.
    """
    rows = []
    for definition in ACHIEVEMENTS:
        current, target, requirement = _measure(definition, stats)
        rows.append(
            AchievementProgress(
                definition=definition,
                earned=definition.key in earned,
                earned_at=earned.get(definition.key),
                progress=min(100, int(round_half_up(current / target * 100))),
                requirement=requirement,
                current_value=current,
                target_value=target,
            )
        )
    rows.sort(key=lambda r: (not r.earned, -r.progress))
    return rows
