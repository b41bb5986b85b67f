"""CLI utility to recompute stored cup leaderboards from their raw results."""

import argparse
import json

from racecup.app import create_app, db
from racecup.models import Cup
from racecup.services.leaderboard import (
    LeaderboardReferenceError,
    update_leaderboard,
)


def _build_parser():
    parser = argparse.ArgumentParser(
        description='Recompute cup leaderboards from the stored qualifier results.',
    )
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument(
        '--cup',
        type=int,
        help='Id of the cup whose leaderboard should be recomputed.',
    )
    target.add_argument(
        '--all',
        action='store_true',
        help='Recompute the leaderboard of every cup.',
    )
    parser.add_argument(
        '--env',
        default='development',
        choices=['development', 'testing', 'production'],
        help='App config environment to use (default: development).',
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Compute and print standings without committing database changes.',
    )
    return parser


def recompute(cup_ids, dry_run=False):
    summary = []
    for cup_id in cup_ids:
        standings = update_leaderboard(cup_id, commit=not dry_run)
        item = {
            'cup_id': cup_id,
            'players': len(standings),
            'qualified': sum(1 for standing in standings if standing.qualified),
        }
        if dry_run:
            item['entries'] = [standing.to_dict() for standing in standings]
            db.session.rollback()
        summary.append(item)
    return summary


def main(argv=None):
    args = _build_parser().parse_args(argv)
    app = create_app(args.env)

    with app.app_context():
        if args.all:
            cup_ids = [cup.id for cup in Cup.query.order_by(Cup.id.asc()).all()]
        else:
            cup_ids = [args.cup]

        try:
            summary = recompute(cup_ids, dry_run=args.dry_run)
        except LeaderboardReferenceError as exc:
            raise SystemExit(str(exc))

        print(json.dumps({'cups': summary, 'dry_run': args.dry_run}, indent=2))
        return 0


if __name__ == '__main__':
    raise SystemExit(main())
