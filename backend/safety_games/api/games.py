from flask import Blueprint, jsonify, request, current_app
from safety_games.services.games import registry
from safety_games.services.games.catalog import active_games, get_firm_by_name, resolve_game_name
from safety_games.services.games.errors import CatalogEmpty, CatalogUnavailable, ScoreLookupFailed
from safety_games.services.games.persistence import firm_scores


games = Blueprint('games', __name__)


@games.route('/firms/<string:firm_name>/games', methods=['GET'])
def list_active_games(firm_name):
    try:
        listed = active_games(firm_name)
    except CatalogEmpty as exc:
        return jsonify({'error': str(exc)}), 404
    except CatalogUnavailable as exc:
        current_app.logger.warning(f"[catalog-fail] firm={firm_name} error={exc}")
        return jsonify({'error': 'Catalog is unavailable'}), 503
    return jsonify(listed)


@games.route('/firms/<string:firm_name>/scores', methods=['GET'])
def list_scores(firm_name):
    game = request.args.get('game')
    try:
        firm = get_firm_by_name(firm_name)
        if firm is None:
            return jsonify({'error': f'firm not found: {firm_name}'}), 404
        game_name = resolve_game_name(game) if game else None
        rows = firm_scores(firm.name, game_name)
    except CatalogEmpty as exc:
        return jsonify({'error': str(exc)}), 404
    except CatalogUnavailable:
        return jsonify({'error': 'Catalog is unavailable'}), 503
    except ScoreLookupFailed:
        return jsonify({'error': 'Scores are unavailable'}), 503
    return jsonify(rows)


@games.route('/sessions', methods=['POST'])
def create_session():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({'error': 'Request body must be a JSON object'}), 400
    player_id = str(data.get('player_id') or '').strip()
    firm_name = str(data.get('firm_name') or '').strip()
    game = str(data.get('game') or '').strip()
    if not all([player_id, firm_name, game]):
        return jsonify({'error': 'player_id, firm_name and game are required'}), 400
    try:
        entry = registry.create_session(current_app._get_current_object(), player_id, firm_name, game)
    except CatalogEmpty as exc:
        return jsonify({'error': str(exc)}), 404
    except CatalogUnavailable as exc:
        current_app.logger.warning(f"[catalog-fail] firm={firm_name} error={exc}")
        return jsonify({'error': 'Catalog is unavailable'}), 503
    return jsonify(entry.to_dict()), 201


@games.route('/sessions/<string:session_id>/state', methods=['GET'])
def get_session_state(session_id):
    entry = registry.get_session(session_id)
    if entry is None:
        return jsonify({'error': 'Session not found'}), 404
    return jsonify(entry.to_dict())


@games.route('/sessions/<string:session_id>/input', methods=['POST'])
def session_input(session_id):
    event = request.get_json(silent=True) or {}
    if not isinstance(event, dict):
        return jsonify({'error': 'Request body must be a JSON object'}), 400
    if not event.get('type'):
        return jsonify({'error': 'Event type is required'}), 400
    if registry.get_session(session_id) is None:
        return jsonify({'error': 'Session not found'}), 404
    try:
        entry, result = registry.apply_player_event(current_app._get_current_object(), session_id, event)
    except KeyError as exc:
        return jsonify({'error': f'Missing event field: {exc}'}), 400
    except (ValueError, TypeError) as exc:
        return jsonify({'error': str(exc)}), 400
    payload = entry.to_dict()
    payload['result'] = result
    return jsonify(payload)


@games.route('/sessions/<string:session_id>/save', methods=['POST'])
def save_session(session_id):
    try:
        entry = registry.save_session(current_app._get_current_object(), session_id)
    except KeyError:
        return jsonify({'error': 'Session not found'}), 404
    if not entry.session.terminal:
        return jsonify({'error': 'Session is not finished'}), 400
    return jsonify(entry.to_dict())


@games.route('/sessions/<string:session_id>', methods=['DELETE'])
def delete_session(session_id):
    entry = registry.end_session(session_id)
    if entry is None:
        return jsonify({'error': 'Session not found'}), 404
    return jsonify({'message': 'Session ended'})
