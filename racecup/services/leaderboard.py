"""
Cup leaderboard aggregation.

Every raw result of every qualifier of a cup is folded into one tally per
player (points summed, qualification OR-ed), the tallies are sorted by
points and ranked, and the cup's stored leaderboard is replaced wholesale
inside a single transaction.

Ranking walks the points-descending list once:
  - a qualified player takes the current rank and widens the running block;
  - a non-qualified player with new points advances the rank by the block
    size and starts a new block;
  - a non-qualified player tying the previous points shares its rank.
Qualified players therefore all sit on the opening rank, and the first
non-qualified player lands one past the number of qualified players above
it. Order among players tied on both points and qualification is the order
their first result was read in (result id order) and is not meaningful.
"""
import logging
from dataclasses import dataclass, replace
from flask import current_app
from racecup.app import db
from racecup.models import Cup, Leaderboard, LeaderboardEntry, Qualifier, QualifierResult
from racecup.services.locks import cup_lock
from racecup.services.scoring import points_for, is_qualifying
from racecup.time_utils import utcnow_naive

logger = logging.getLogger(__name__)


class LeaderboardReferenceError(LookupError):
    """The cup, or the leaderboard it should own, does not exist."""


@dataclass(frozen=True)
class PlayerTally:
    points: int = 0
    qualified: bool = False

    @classmethod
    def from_result(cls, result):
        return cls(points=points_for(result), qualified=is_qualifying(result))

    def combine(self, other):
        return PlayerTally(
            points=self.points + other.points,
            qualified=self.qualified or other.qualified,
        )


EMPTY_TALLY = PlayerTally()


@dataclass(frozen=True)
class Standing:
    player_id: str
    points: int
    qualified: bool
    position: int = 0

    def to_dict(self):
        return {
            'player_id': self.player_id,
            'points': self.points,
            'qualified': self.qualified,
            'position': self.position,
        }


def tally_results(results):
    """Fold raw results into ``{player_id: PlayerTally}`` in first-seen order."""
    tallies = {}
    for result in results:
        current = tallies.get(result.player_id, EMPTY_TALLY)
        tallies[result.player_id] = current.combine(PlayerTally.from_result(result))
    return tallies


def rank_standings(standings):
    """Return copies of ``standings`` (sorted by points, highest first) with positions set."""
    ranked = []
    current_rank = 1
    rank_count = 0
    previous_points = None
    for standing in standings:
        if standing.qualified:
            rank_count += 1
        elif standing.points != previous_points:
            current_rank += rank_count
            rank_count = 1
        else:
            rank_count += 1
        ranked.append(replace(standing, position=current_rank))
        previous_points = standing.points
    return ranked


def compute_standings(results):
    tallies = tally_results(results)
    standings = [
        Standing(player_id=player_id, points=tally.points, qualified=tally.qualified)
        for player_id, tally in tallies.items()
    ]
    # list.sort is stable with reverse=True as well.
    standings.sort(key=lambda standing: standing.points, reverse=True)
    return rank_standings(standings)


def fetch_raw_results(cup_id):
    """All results of all qualifiers of the cup, unfiltered, in id order."""
    return QualifierResult.query.join(
        Qualifier, Qualifier.id == QualifierResult.qualifier_id,
    ).filter(
        Qualifier.cup_id == cup_id,
    ).order_by(
        QualifierResult.id.asc(),
    ).all()


def aggregate(cup):
    return compute_standings(fetch_raw_results(cup.id))


def load_cup_leaderboard(cup_id, lock_rows=False):
    cup = db.session.get(Cup, cup_id)
    if cup is None:
        raise LeaderboardReferenceError(f'No cup with id {cup_id}.')

    query = Leaderboard.query.filter_by(cup_id=cup.id)
    if lock_rows:
        query = query.with_for_update()
    leaderboard = query.first()
    if leaderboard is None:
        raise LeaderboardReferenceError(f'Cup {cup_id} has no leaderboard.')
    return cup, leaderboard


def replace_leaderboard_entries(leaderboard, standings):
    """Swap every stored entry of ``leaderboard`` for ``standings``.

    Runs in the caller's transaction; nothing is committed here.
    """
    LeaderboardEntry.query.filter_by(
        leaderboard_id=leaderboard.id,
    ).delete()
    db.session.add_all([
        LeaderboardEntry(
            leaderboard_id=leaderboard.id,
            player_id=standing.player_id,
            points=standing.points,
            qualified=standing.qualified,
            position=standing.position,
        )
        for standing in standings
    ])
    leaderboard.updated_at = utcnow_naive()
    db.session.flush()
    db.session.expire(leaderboard, ['entries'])


def update_leaderboard(cup_id, commit=True):
    """Recompute and store the leaderboard of ``cup_id``. Returns the standings.

    Raises LeaderboardReferenceError when the cup or its leaderboard is
    missing (after rolling the session back), and TimeoutError when another
    recompute of the same cup holds the lock for too long.
    """
    timeout_s = current_app.config.get('LEADERBOARD_LOCK_TIMEOUT_SECONDS')
    with cup_lock(cup_id, timeout_s=timeout_s):
        try:
            cup, leaderboard = load_cup_leaderboard(cup_id, lock_rows=True)
            standings = aggregate(cup)
            replace_leaderboard_entries(leaderboard, standings)
            if commit:
                db.session.commit()
        except Exception:
            db.session.rollback()
            raise

    logger.info(
        '%s leaderboard of cup %s: %d players, %d qualified',
        'Updated' if commit else 'Computed uncommitted',
        cup_id,
        len(standings),
        sum(1 for standing in standings if standing.qualified),
    )
    return standings
