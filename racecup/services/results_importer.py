"""Replace the raw results of one qualifier server with an uploaded batch."""
import logging
from flask import current_app
from racecup.app import db
from racecup.models import Player, QualifierResult

logger = logging.getLogger(__name__)

# Column layout of an uploaded result row.
POSITION = 0
POINTS = 1
NAME = 2
LOGIN = 3
ZONE = 4
ROW_LENGTH = 5


def _coerce_int(raw_value):
    if isinstance(raw_value, bool):
        return None
    if isinstance(raw_value, int):
        return raw_value
    if isinstance(raw_value, float) and raw_value.is_integer():
        return int(raw_value)
    return None


def _coerce_text(raw_value):
    if not isinstance(raw_value, str):
        return None
    text = raw_value.strip()
    return text or None


def parse_server(raw_server):
    server = _coerce_int(raw_server)
    if server is None or server < 1:
        raise ValueError('Server must be an integer of at least 1.')
    return server


def normalize_result_row(raw_row):
    """Return ``(row_dict, errors)`` for one ``[position, points, name, login, zone]`` row."""
    if not isinstance(raw_row, (list, tuple)) or len(raw_row) != ROW_LENGTH:
        return None, [f'expected {ROW_LENGTH} columns [position, points, name, login, zone]']

    errors = []
    position = _coerce_int(raw_row[POSITION])
    if position is None or position < 1:
        errors.append('position must be an integer of at least 1')
    points = _coerce_int(raw_row[POINTS])
    if points is None or points < 0:
        errors.append('points must be a non-negative integer')
    name = _coerce_text(raw_row[NAME])
    if name is None:
        errors.append('name is required')
    login = _coerce_text(raw_row[LOGIN])
    if login is None:
        errors.append('login is required')
    zone = _coerce_text(raw_row[ZONE])
    if zone is None:
        errors.append('zone is required')

    if errors:
        return None, errors
    return {
        'position': position,
        'points': points,
        'name': name,
        'login': login,
        'zone': zone,
    }, []


def normalize_result_rows(raw_rows, max_rows=None):
    if not isinstance(raw_rows, list) or not raw_rows:
        raise ValueError('Result data must be a non-empty list of rows.')
    if max_rows and len(raw_rows) > max_rows:
        raise ValueError(f'Result data exceeds the limit of {max_rows} rows.')

    rows = []
    errors = []
    for idx, raw_row in enumerate(raw_rows):
        row, row_errors = normalize_result_row(raw_row)
        if row_errors:
            errors.append(f'Row #{idx + 1}: {", ".join(row_errors)}')
            continue
        rows.append(row)

    if errors:
        raise ValueError('Invalid result data:\n- ' + '\n- '.join(errors))
    return rows


def upsert_players(rows):
    """Create unknown players and refresh name/zone of known ones."""
    latest_by_login = {row['login']: row for row in rows}
    existing = Player.query.filter(Player.id.in_(list(latest_by_login))).all()
    existing_by_id = {player.id: player for player in existing}

    created = 0
    for login, row in latest_by_login.items():
        player = existing_by_id.get(login)
        if player:
            player.name = row['name']
            player.zone = row['zone']
        else:
            db.session.add(Player(id=login, name=row['name'], zone=row['zone']))
            created += 1
    return created


def update_results(qualifier_id, server, raw_rows, commit=True):
    """Replace every result of ``(qualifier_id, server)`` with ``raw_rows``.

    Rows are validated before anything is touched; a ValueError lists every
    bad row. Returns import stats.
    """
    server = parse_server(server)
    rows = normalize_result_rows(
        raw_rows,
        max_rows=current_app.config.get('RESULTS_MAX_ROWS'),
    )

    try:
        players_created = upsert_players(rows)
        db.session.flush()
        replaced = QualifierResult.query.filter_by(
            qualifier_id=qualifier_id,
            server=server,
        ).delete()
        db.session.add_all([
            QualifierResult(
                qualifier_id=qualifier_id,
                player_id=row['login'],
                server=server,
                position=row['position'],
                points=row['points'],
            )
            for row in rows
        ])
        if commit:
            db.session.commit()
        else:
            db.session.flush()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        'Stored %d results for qualifier %s server %s (%d replaced, %d new players)',
        len(rows), qualifier_id, server, replaced, players_created,
    )
    return {
        'qualifier_id': qualifier_id,
        'server': server,
        'stored': len(rows),
        'replaced': replaced,
        'players_created': players_created,
    }


def clear_qualifier_results(qualifier_id, commit=True):
    """Delete every result of the qualifier on every server. Returns the count."""
    try:
        removed = QualifierResult.query.filter_by(
            qualifier_id=qualifier_id,
        ).delete()
        if commit:
            db.session.commit()
        else:
            db.session.flush()
    except Exception:
        db.session.rollback()
        raise

    logger.info('Cleared %d results of qualifier %s', removed, qualifier_id)
    return removed
