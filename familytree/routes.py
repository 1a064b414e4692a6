from flask import Blueprint, request, jsonify, current_app
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
import logging
import math

from familytree import db
from familytree.connectors import compute_connectors
from familytree.errors import MalformedConfigError
from familytree.layout import compute_layout
from familytree.models import Member, TreeConfig, MEMBER_FIELDS
from familytree.records import GENDERS
from familytree.relationships import build_index
from familytree.view_config import (
    filter_config_patch, parse_title_lines, title_block_layout, validate_config_patch,
)
from familytree.viewport import ViewportTransform

logger = logging.getLogger(__name__)

api_bp = Blueprint('api', __name__)

INTEGER_FIELDS = ('father_id', 'mother_id', 'spouse_id', 'generation', 'child_order', 'spouse_order')


def blank_to_none(data):
    """Empty strings from HTML forms are stored as NULL"""
    return {key: (None if value == '' else value) for key, value in data.items()}


def clean_member_payload(data, creating):
    """
    Validated member fields of a request body.

    Raises:
        ValueError: missing name, unknown gender or a non-integer id/order
    """
    if not isinstance(data, dict):
        raise ValueError('Invalid request body')
    data = blank_to_none(data)
    payload = {field: data[field] for field in MEMBER_FIELDS if field in data}

    if creating or 'name' in payload:
        name = payload.get('name')
        if not isinstance(name, str) or not name.strip():
            raise ValueError('Name is required')
        payload['name'] = name.strip()

    if creating and payload.get('gender') is None:
        payload['gender'] = 'other'
    if 'gender' in payload and payload['gender'] not in GENDERS:
        raise ValueError(f"Invalid gender: {payload['gender']!r}")

    for field in INTEGER_FIELDS:
        value = payload.get(field)
        if value is None:
            continue
        if isinstance(value, bool):
            raise ValueError(f'{field} must be an integer')
        try:
            payload[field] = int(value)
        except (TypeError, ValueError):
            raise ValueError(f'{field} must be an integer') from None

    if payload.get('generation') is not None and payload['generation'] < 1:
        raise ValueError('generation must be at least 1')
    return payload


def request_number(data, key, default=None):
    """
    Finite number from a JSON body.

    Raises:
        ValueError: missing (without default) or not a finite number
    """
    value = data.get(key, default)
    if value is None:
        raise ValueError(f'{key} is required')
    if isinstance(value, bool):
        raise ValueError(f'{key} must be a number')
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f'{key} must be a number') from None
    if not math.isfinite(number):
        raise ValueError(f'{key} must be a finite number')
    return number


def commit_or_error(message):
    """Commit the session; returns an error response tuple on failure, else None"""
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error('%s: %s', message, exc)
        return jsonify({'error': message, 'details': str(exc)}), 500
    return None


def set_spouse_back_reference(member_id, spouse_id):
    spouse = db.session.get(Member, spouse_id)
    if spouse is None or spouse.id == member_id:
        logger.debug('Spouse %s of member %s not found, no back-reference set', spouse_id, member_id)
        return
    spouse.spouse_id = member_id


# ==================== MEMBERS API ====================

@api_bp.route('/members', methods=['GET'])
def get_members():
    """All members, optionally filtered by a search text"""
    query = Member.query
    text = request.args.get('q', '').strip()
    if text:
        pattern = f'%{text}%'
        query = query.filter(or_(
            Member.name.ilike(pattern),
            Member.branch_name.ilike(pattern),
            Member.address.ilike(pattern),
            Member.phone.contains(text),
        ))
    members = query.order_by(Member.id).all()
    return jsonify([m.to_dict() for m in members])


@api_bp.route('/members/<int:member_id>', methods=['GET'])
def get_member(member_id):
    member = db.get_or_404(Member, member_id)
    return jsonify(member.to_dict())


@api_bp.route('/members', methods=['POST'])
def create_member():
    """New member; the spouse, if given, gets this member as its spouse"""
    try:
        payload = clean_member_payload(request.get_json(silent=True), creating=True)
    except ValueError as exc:
        return jsonify({'error': str(exc)}), 400

    member = Member()
    member.apply(payload)
    db.session.add(member)
    try:
        db.session.flush()
    except SQLAlchemyError as exc:
        db.session.rollback()
        return jsonify({'error': 'Failed to create member', 'details': str(exc)}), 500

    if member.spouse_id:
        set_spouse_back_reference(member.id, member.spouse_id)

    error = commit_or_error('Failed to create member')
    if error:
        return error
    logger.info('Member %s created', member.id)
    return jsonify(member.to_dict()), 201


@api_bp.route('/members/<int:member_id>', methods=['PUT'])
def update_member(member_id):
    """Update a member and keep the spouse links of both sides in step"""
    member = db.get_or_404(Member, member_id)
    try:
        payload = clean_member_payload(request.get_json(silent=True), creating=False)
    except ValueError as exc:
        return jsonify({'error': str(exc)}), 400

    old_spouse_id = member.spouse_id
    member.apply(payload)

    if member.spouse_id:
        set_spouse_back_reference(member.id, member.spouse_id)

    if old_spouse_id and old_spouse_id != member.spouse_id:
        old_spouse = db.session.get(Member, old_spouse_id)
        if old_spouse is not None and old_spouse.spouse_id == member.id:
            old_spouse.spouse_id = None

    error = commit_or_error('Failed to update member')
    if error:
        return error
    return jsonify(member.to_dict())


@api_bp.route('/members/<int:member_id>', methods=['DELETE'])
def delete_member(member_id):
    """Delete a member; references to it become dangling and are ignored by the layout"""
    member = db.get_or_404(Member, member_id)
    db.session.delete(member)
    error = commit_or_error('Failed to delete member')
    if error:
        return error
    return '', 204


# ==================== CONFIG API ====================

@api_bp.route('/config', methods=['GET'])
def get_config():
    config = TreeConfig.get_or_create()
    error = commit_or_error('Failed to load config')
    if error:
        return error
    return jsonify(config.to_dict())


@api_bp.route('/config', methods=['POST', 'PUT'])
def update_config():
    """Partial update; unknown keys are ignored, an empty patch is a no-op"""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({'error': 'Invalid request body'}), 400

    try:
        patch = validate_config_patch(filter_config_patch(data))
    except MalformedConfigError as exc:
        return jsonify({'error': str(exc)}), 400

    config = TreeConfig.get_or_create()
    config.apply_patch(patch)
    error = commit_or_error('Failed to update config')
    if error:
        return error
    return jsonify({'success': True, 'config': config.to_dict()})


@api_bp.route('/tree/title', methods=['GET'])
def get_title_block():
    """Title lines with their vertical offsets inside the title block"""
    config = TreeConfig.get_or_create().to_dict()
    lines = [
        dict(line.to_dict(), y=offset)
        for line, offset in title_block_layout(parse_title_lines(config))
    ]
    return jsonify({'x': config['title_x'], 'y': config['title_y'],
                    'font_family': config['title_font_family'], 'lines': lines})


# ==================== TREE LAYOUT API ====================

@api_bp.route('/tree/layout', methods=['GET'])
def get_tree_layout():
    """Node positions, bounds and connectors of the whole tree"""
    strategy = request.args.get('strategy') or current_app.config['LAYOUT_STRATEGY']
    index = build_index(Member.query.order_by(Member.id).all())
    try:
        layout = compute_layout(index, strategy=strategy)
    except ValueError as exc:
        return jsonify({'error': str(exc)}), 400

    data = layout.to_dict()
    data['connectors'] = [c.to_dict() for c in compute_connectors(index, layout)]
    data['members'] = [
        dict(m.to_dict(), years_label=m.years_label, location_label=m.location_label,
             is_deceased=m.is_deceased)
        for m in index.members
    ]
    return jsonify(data)


# ==================== TREE VIEW API ====================

def _view_request():
    """
    JSON object body of a view request; an empty body counts as {}.

    Raises:
        ValueError: the body is not a JSON object
    """
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError('Invalid request body')
    return data


def _viewport(data):
    config = TreeConfig.get_or_create()
    width = request_number(data, 'width', 0)
    height = request_number(data, 'height', 0)
    return config, ViewportTransform.from_config(config.to_dict(), width=width, height=height)


def _save_view(config, viewport, patch):
    if patch:
        config.apply_patch(patch)
    error = commit_or_error('Failed to save view')
    if error:
        return error
    return jsonify({'patch': patch, 'transform': viewport.to_dict()})


@api_bp.route('/tree/view/fit', methods=['POST'])
def fit_tree_view():
    """Scale and centre the tree so it fits the given viewport"""
    try:
        data = _view_request()
        config, viewport = _viewport(data)
        padding = request_number(data, 'padding', current_app.config['AUTOFIT_PADDING'])
        strategy = data.get('strategy') or current_app.config['LAYOUT_STRATEGY']
        layout = compute_layout(Member.query.all(), strategy=strategy)
    except ValueError as exc:
        return jsonify({'error': str(exc)}), 400
    if viewport.width <= 0 or viewport.height <= 0:
        return jsonify({'error': 'width and height must be positive'}), 400

    patch = viewport.auto_fit(layout.bounds, padding)
    return _save_view(config, viewport, patch)


@api_bp.route('/tree/view/zoom', methods=['POST'])
def zoom_tree_view():
    """Zoom around an anchor point (viewport centre by default)"""
    try:
        data = _view_request()
        config, viewport = _viewport(data)
        factor = request_number(data, 'factor')
        anchor = None
        if data.get('anchor_x') is not None or data.get('anchor_y') is not None:
            anchor = (request_number(data, 'anchor_x'), request_number(data, 'anchor_y'))
        elif viewport.width <= 0 or viewport.height <= 0:
            raise ValueError('width and height must be positive without an anchor')
        patch = viewport.zoom(factor, anchor)
    except ValueError as exc:
        return jsonify({'error': str(exc)}), 400
    return _save_view(config, viewport, patch)


@api_bp.route('/tree/view/pan', methods=['POST'])
def pan_tree_view():
    """Move the tree, the title block or the overlay image"""
    try:
        data = _view_request()
        config, viewport = _viewport(data)
        patch = viewport.pan_by(request_number(data, 'dx'), request_number(data, 'dy'),
                                target=data.get('target', 'tree'))
    except ValueError as exc:
        return jsonify({'error': str(exc)}), 400
    return _save_view(config, viewport, patch)


@api_bp.route('/tree/view/reset', methods=['POST'])
def reset_tree_view():
    """Forget the stored tree position and scale"""
    try:
        data = _view_request()
        config, viewport = _viewport(data)
    except ValueError as exc:
        return jsonify({'error': str(exc)}), 400
    patch = viewport.reset()
    return _save_view(config, viewport, patch)
