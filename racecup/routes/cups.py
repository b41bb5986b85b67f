"""Cup leaderboard routes: result uploads trigger a leaderboard recompute."""
from flask import Blueprint, current_app, request, jsonify
from racecup.app import db, socketio
from racecup.models import Cup, Leaderboard, Qualifier
from racecup.services.leaderboard import LeaderboardReferenceError, update_leaderboard
from racecup.services.locks import cup_lock
from racecup.services.results_importer import clear_qualifier_results, update_results
from racecup.time_utils import utcnow_naive

cups_bp = Blueprint('cups', __name__)


def _emit_leaderboard_update(cup_id, reason=''):
    if not current_app.config.get('EMIT_LEADERBOARD_UPDATES', True):
        return
    socketio.emit('leaderboard_update', {
        'cup_id': cup_id,
        'reason': reason,
        'updated_at': utcnow_naive().isoformat(),
    })


def _qualifier_of_cup(cup_id, qualifier_id):
    qualifier = db.session.get(Qualifier, qualifier_id)
    if not qualifier or qualifier.cup_id != cup_id:
        return None
    return qualifier


def _standings_payload(cup_id, standings):
    return {
        'success': True,
        'cup_id': cup_id,
        'entries': [standing.to_dict() for standing in standings],
    }


def _lock_timeout():
    return current_app.config.get('LEADERBOARD_LOCK_TIMEOUT_SECONDS')


@cups_bp.route('/<int:cup_id>/leaderboard', methods=['GET'])
def get_leaderboard(cup_id):
    cup = db.session.get(Cup, cup_id)
    if not cup:
        return jsonify({'error': 'Cup not found'}), 404
    leaderboard = Leaderboard.query.filter_by(cup_id=cup.id).first()
    if not leaderboard:
        return jsonify({'error': 'Cup has no leaderboard'}), 404
    return jsonify({
        'cup': cup.to_dict(),
        'leaderboard': leaderboard.to_dict(),
    })


@cups_bp.route('/<int:cup_id>/qualifiers/<int:qualifier_id>/results', methods=['POST'])
def upload_qualifier_results(cup_id, qualifier_id):
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({'error': 'JSON body required'}), 400
    if 'server' not in data or 'data' not in data:
        return jsonify({'error': 'Server and data are required'}), 400

    qualifier = _qualifier_of_cup(cup_id, qualifier_id)
    if not qualifier:
        return jsonify({'error': 'Qualifier not found'}), 404

    try:
        with cup_lock(cup_id, timeout_s=_lock_timeout()):
            stats = update_results(qualifier.id, data['server'], data['data'], commit=False)
            standings = update_leaderboard(cup_id)
    except ValueError as exc:
        db.session.rollback()
        return jsonify({'error': str(exc)}), 400
    except LeaderboardReferenceError as exc:
        return jsonify({'error': str(exc)}), 404
    except TimeoutError as exc:
        db.session.rollback()
        return jsonify({'error': str(exc)}), 409

    _emit_leaderboard_update(cup_id, reason='results_uploaded')
    payload = _standings_payload(cup_id, standings)
    payload['import'] = stats
    return jsonify(payload)


@cups_bp.route('/<int:cup_id>/qualifiers/<int:qualifier_id>/results', methods=['DELETE'])
def clear_qualifier(cup_id, qualifier_id):
    qualifier = _qualifier_of_cup(cup_id, qualifier_id)
    if not qualifier:
        return jsonify({'error': 'Qualifier not found'}), 404

    try:
        with cup_lock(cup_id, timeout_s=_lock_timeout()):
            removed = clear_qualifier_results(qualifier.id, commit=False)
            standings = update_leaderboard(cup_id)
    except LeaderboardReferenceError as exc:
        return jsonify({'error': str(exc)}), 404
    except TimeoutError as exc:
        db.session.rollback()
        return jsonify({'error': str(exc)}), 409

    _emit_leaderboard_update(cup_id, reason='results_cleared')
    payload = _standings_payload(cup_id, standings)
    payload['removed'] = removed
    return jsonify(payload)


@cups_bp.route('/<int:cup_id>/leaderboard/recompute', methods=['POST'])
def recompute_leaderboard(cup_id):
    try:
        standings = update_leaderboard(cup_id)
    except LeaderboardReferenceError as exc:
        return jsonify({'error': str(exc)}), 404
    except TimeoutError as exc:
        return jsonify({'error': str(exc)}), 409

    _emit_leaderboard_update(cup_id, reason='recomputed')
    return jsonify(_standings_payload(cup_id, standings))
