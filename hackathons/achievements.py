"""
hackathons/achievements.py -- Load badge stats from the store and record awards.

check_and_award() serves POST /achievements/check. award_for_hackathon()
runs after winners are finalized and checks every wallet involved in that
hackathon. A failure on one wallet is logged and the others are still
checked, the same way the status sweep treats one hackathon.
"""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from core.achievements import PODIUM_RANK, UserStats, eligible_keys
from hackathons.models import Hackathon
from hackathons.store import HackathonStore

logger = logging.getLogger("hackafi.achievements")


def user_stats(store: HackathonStore, address: str) -> UserStats:
    participations = store.list_participations(address)
    ranks = [p.rank for p in participations if p.rank is not None]
    return UserStats(
        participations=len(participations),
        wins=sum(1 for r in ranks if r <= PODIUM_RANK),
        average_rank=sum(ranks) / len(ranks) if ranks else 0.0,
        created=store.count_organized(address),
        judged=store.count_judged(address),
    )


def check_and_award(store: HackathonStore, address: str, hackathon_id: Optional[int] = None) -> list[str]:
    """Award every badge `address` now qualifies for and return the new keys."""
    new = store.award_achievements(address, eligible_keys(user_stats(store, address)), hackathon_id)
    for key in new:
        logger.info("Achievement %s awarded to %s", key, address)
    return new


def award_for_hackathon(store: HackathonStore, hackathon: Hackathon) -> dict[str, list[str]]:
    """Check participants, judges and the organizer of a finalized hackathon.

    Returns the new keys per wallet, for wallets that gained any.
    """
    addresses = [p.wallet_address for p in store.list_participants(hackathon.id)]
    addresses += [j.judge_address for j in store.list_judges(hackathon.id)]
    addresses.append(hackathon.organizer_address)

    awarded = {}
    for address in dict.fromkeys(addresses):
        try:
            new = check_and_award(store, address, hackathon.id)
        except SQLAlchemyError:
            logger.exception("Achievement check failed for %s in hackathon %d", address, hackathon.id)
            continue
        if new:
            awarded[address] = new
    logger.info("Achievements for hackathon %d: %d wallets gained badges", hackathon.id, len(awarded))
    return awarded
