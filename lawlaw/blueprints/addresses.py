from flask import Blueprint, request, jsonify
from flask_login import login_required, current_user
from lawlaw.extensions import db
from lawlaw.models import Address
from lawlaw.services.audit_service import log_audit
from lawlaw.utils import address_to_dict, object_permission_required
import logging
import re

logger = logging.getLogger(__name__)

bp = Blueprint('addresses', __name__)

REQUIRED_FIELDS = (
    'full_name',
    'phone_number',
    'region',
    'province',
    'city',
    'barangay',
    'street_address',
    'postal_code',
)
FIELD_LIMITS = {
    'full_name': 100,
    'region': 100,
    'province': 100,
    'city': 100,
    'barangay': 100,
    'street_address': 255,
    'landmark': 255,
}
# Philippine mobile numbers: 09XXXXXXXXX or +639XXXXXXXXX
PHONE_RE = re.compile(r'^(09|\+639)\d{9}$')
POSTAL_CODE_RE = re.compile(r'^\d{4}$')


def _parse_address_fields(data, partial=False):
    fields = {}
    for key in REQUIRED_FIELDS:
        if key not in data and partial:
            continue
        value = data.get(key)
        value = value.strip() if isinstance(value, str) else ''
        if not value:
            raise ValueError('All required fields must be filled')
        fields[key] = value

    if 'phone_number' in fields:
        phone = re.sub(r'[\s-]', '', fields['phone_number'])
        if not PHONE_RE.match(phone):
            raise ValueError(
                'Invalid phone number format. '
                'Use format: 09XXXXXXXXX or +639XXXXXXXXX')
        fields['phone_number'] = phone

    if 'postal_code' in fields \
            and not POSTAL_CODE_RE.match(fields['postal_code']):
        raise ValueError('Invalid postal code. Must be 4 digits')

    if 'landmark' in data:
        landmark = data.get('landmark')
        if landmark is not None and not isinstance(landmark, str):
            raise ValueError('landmark must be a string')
        fields['landmark'] = (landmark or '').strip() or None

    for key, limit in FIELD_LIMITS.items():
        if fields.get(key) and len(fields[key]) > limit:
            raise ValueError(f'{key} must be at most {limit} characters')

    if 'is_default' in data:
        if not isinstance(data.get('is_default'), bool):
            raise ValueError('is_default must be a boolean')
        fields['is_default'] = data.get('is_default')
    return fields


def _clear_default(user_id, keep_id=None):
    query = Address.query.filter(
        Address.user_id == user_id,
        Address.is_default.is_(True))
    if keep_id is not None:
        query = query.filter(Address.id != keep_id)
    query.update({'is_default': False}, synchronize_session=False)


@bp.route('/api/addresses', methods=['GET'])
@login_required
def list_addresses():
    addresses = Address.query.filter_by(user_id=current_user.id).order_by(
        Address.is_default.desc(),
        Address.created_at.desc(),
        Address.id.desc()).all()
    return jsonify({'items': [address_to_dict(a) for a in addresses]})


@bp.route('/api/addresses', methods=['POST'])
@login_required
def create_address():
    data = request.get_json(silent=True) or {}
    try:
        fields = _parse_address_fields(data)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    # The first saved address becomes the default
    has_addresses = Address.query.filter_by(
        user_id=current_user.id).first() is not None
    is_default = fields.pop('is_default', False) or not has_addresses
    if is_default:
        _clear_default(current_user.id)

    address = Address(
        user_id=current_user.id, is_default=is_default, **fields)
    db.session.add(address)
    db.session.commit()

    log_audit(
        actor_id=current_user.id,
        actor_role=current_user.role.value,
        action='ADDRESS_CREATE',
        target_type='ADDRESS',
        target_id=address.id,
    )
    return jsonify({'ok': True, 'address': address_to_dict(address)}), 201


@bp.route('/api/addresses/<int:address_id>', methods=['GET'])
@login_required
@object_permission_required(Address, id_param='address_id')
def get_address(address_id, resource):
    return jsonify({'address': address_to_dict(resource)})


@bp.route('/api/addresses/<int:address_id>', methods=['PUT', 'PATCH'])
@login_required
@object_permission_required(Address, id_param='address_id')
def update_address(address_id, resource):
    data = request.get_json(silent=True) or {}
    try:
        fields = _parse_address_fields(
            data, partial=request.method == 'PATCH')
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    if fields.get('is_default'):
        _clear_default(resource.user_id, keep_id=resource.id)
    for key, value in fields.items():
        setattr(resource, key, value)
    db.session.commit()

    log_audit(
        actor_id=current_user.id,
        actor_role=current_user.role.value,
        action='ADDRESS_UPDATE',
        target_type='ADDRESS',
        target_id=resource.id,
        payload={'fields': sorted(fields.keys())},
    )
    return jsonify({'ok': True, 'address': address_to_dict(resource)})


@bp.route('/api/addresses/<int:address_id>', methods=['DELETE'])
@login_required
@object_permission_required(Address, id_param='address_id')
def delete_address(address_id, resource):
    user_id = resource.user_id
    was_default = resource.is_default
    db.session.delete(resource)
    db.session.flush()

    if was_default:
        newest = Address.query.filter_by(user_id=user_id).order_by(
            Address.created_at.desc(), Address.id.desc()).first()
        if newest is not None:
            newest.is_default = True
    db.session.commit()

    log_audit(
        actor_id=current_user.id,
        actor_role=current_user.role.value,
        action='ADDRESS_DELETE',
        target_type='ADDRESS',
        target_id=address_id,
    )
    return jsonify({'ok': True})


@bp.route('/api/addresses/<int:address_id>/set-default', methods=['POST'])
@login_required
@object_permission_required(Address, id_param='address_id')
def set_default(address_id, resource):
    _clear_default(resource.user_id, keep_id=resource.id)
    resource.is_default = True
    db.session.commit()
    return jsonify({'ok': True, 'address': address_to_dict(resource)})
