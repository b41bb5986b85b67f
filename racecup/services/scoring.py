"""
Points awarded for a single qualifier result.

Each server runs its own award table keyed by finishing position. When the
position earns no fixed award the player's personal score is used, capped
to a flat tier once it crosses the server's point limit:

    server 1: 1-3 -> 50000, 4 -> 15000, 5 -> 10000, >= 6969 pts -> 7500
    server 2: 1 -> 6500,  2 -> 6000,  3 -> 5500,  >= 4500 pts -> 5000

Results from any other server are worth nothing. Only a podium finish on
server 1 qualifies a player for the final.
"""

SERVER_ONE = 1
SERVER_TWO = 2

POINT_LIMIT_SERVER_ONE = 6969
POINT_LIMIT_SERVER_TWO = 4500

SERVER_ONE_POSITION_AWARDS = {
    1: 50000,
    2: 50000,
    3: 50000,
    4: 15000,
    5: 10000,
}
SERVER_TWO_POSITION_AWARDS = {
    1: 6500,
    2: 6000,
    3: 5500,
}
SERVER_ONE_LIMIT_AWARD = 7500
SERVER_TWO_LIMIT_AWARD = 5000

QUALIFYING_POSITIONS = range(1, 4)


def _award(result, position_awards, point_limit, limit_award):
    if result.position in position_awards:
        return position_awards[result.position]
    if result.points >= point_limit:
        return limit_award
    return result.points


def points_for(result):
    """Return the leaderboard points earned by ``result``.

    ``result`` only needs ``server``, ``position`` and ``points`` attributes.
    """
    if result.server == SERVER_ONE:
        return _award(
            result, SERVER_ONE_POSITION_AWARDS,
            POINT_LIMIT_SERVER_ONE, SERVER_ONE_LIMIT_AWARD,
        )
    if result.server == SERVER_TWO:
        return _award(
            result, SERVER_TWO_POSITION_AWARDS,
            POINT_LIMIT_SERVER_TWO, SERVER_TWO_LIMIT_AWARD,
        )
    return 0


def is_qualifying(result):
    return result.server == SERVER_ONE and result.position in QUALIFYING_POSITIONS
