from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from takeoff_portal.auth import Principal, Role, parse_roles
from takeoff_portal.models import CompanyMembership, Takeoff, User, UserStatus
from takeoff_portal.services.company_scope_service import CompanyScope
from takeoff_portal.services.photo_storage_service import discard_photo, save_delivery_photo
from takeoff_portal.services.takeoff_status_service import (
    TakeoffStatus,
    can_edit_measurements,
    check_transition,
    get_status_info,
    next_actions,
    parse_status,
)


logger = logging.getLogger(__name__)

TAKEOFF_FIELDS = (
    'customer_name',
    'foreman',
    'ship_to',
    'lot',
    'model_type',
    'elevation',
    'sq_footage',
    'street_name',
    'doors_style',
    'comment',
    'extras',
)

MEASUREMENT_GROUPS = (
    'cantinaDoors',
    'singleDoors',
    'frenchDoors',
    'doubleDoors',
    'arches',
    'trim',
    'hardware',
    'labour',
    'shelves',
    'closetRods',
    'rodSupport',
    'roundWindow',
)

# Roles that see every takeoff of the scoped company; carpenters only see their own.
COMPANY_WIDE_ROLES = (Role.SUPER_ADMIN, Role.MANAGER, Role.DELIVERY)
PHOTO_STATUSES = {TakeoffStatus.READY_TO_SHIP, TakeoffStatus.SHIPPED}
CARPENTER_ASSIGNMENT_STATUSES = {TakeoffStatus.CREATED, TakeoffStatus.TO_MEASURE}


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _visible_takeoffs(scope: CompanyScope, principal: Principal):
    stmt = scope.apply(select(Takeoff), Takeoff.company_id)
    if principal.has_role(*COMPANY_WIDE_ROLES):
        return stmt
    return stmt.where(
        or_(
            Takeoff.created_by_user_id == principal.id,
            Takeoff.carpenter_id == principal.id,
            Takeoff.trim_carpenter_id == principal.id,
        )
    )


def _user_refs(db: Session, user_ids: set[int]) -> dict[int, dict]:
    if not user_ids:
        return {}
    rows = db.execute(select(User.id, User.fullname, User.email).where(User.id.in_(user_ids))).all()
    return {row.id: {'id': row.id, 'fullname': row.fullname, 'email': row.email} for row in rows}


def serialize_takeoff(
    takeoff: Takeoff,
    *,
    users: dict[int, dict],
    principal: Principal | None = None,
    detail: bool = False,
) -> dict:
    info = get_status_info(takeoff.status)
    payload = {
        'id': takeoff.id,
        'company': takeoff.company_id,
        'status': takeoff.status,
        'statusLabel': info.label,
        'customerName': takeoff.customer_name,
        'shipTo': takeoff.ship_to,
        'lot': takeoff.lot,
        'user': users.get(takeoff.created_by_user_id),
        'carpentry': users.get(takeoff.carpenter_id) if takeoff.carpenter_id else None,
        'trimCarpentry': users.get(takeoff.trim_carpenter_id) if takeoff.trim_carpenter_id else None,
    }
    if principal is not None:
        payload['nextActions'] = [
            {'status': int(rule.target), 'label': rule.action_label, 'sideEffect': rule.side_effect.value}
            for rule in next_actions(takeoff.status, principal.roles)
        ]
    if detail:
        payload.update(
            {
                'foremen': takeoff.foreman,
                'type': takeoff.model_type,
                'elev': takeoff.elevation,
                'sqFootage': takeoff.sq_footage,
                'streetName': takeoff.street_name,
                'doorsStyle': takeoff.doors_style,
                'comment': takeoff.comment,
                'extras': takeoff.extras,
                'measurements': takeoff.measurements or {},
                'deliveryPhoto': takeoff.delivery_photo_path,
                'deliveryPhotoUploadedAt': (
                    takeoff.delivery_photo_uploaded_at.isoformat() if takeoff.delivery_photo_uploaded_at else None
                ),
                'createdAt': takeoff.created_at.isoformat() if takeoff.created_at else None,
                'updatedAt': takeoff.updated_at.isoformat() if takeoff.updated_at else None,
            }
        )
    return payload


def serialize_takeoffs(db: Session, takeoffs: list[Takeoff], *, principal: Principal, detail: bool = False) -> list[dict]:
    user_ids = set()
    for takeoff in takeoffs:
        user_ids.update(
            user_id
            for user_id in (takeoff.created_by_user_id, takeoff.carpenter_id, takeoff.trim_carpenter_id)
            if user_id is not None
        )
    users = _user_refs(db, user_ids)
    return [serialize_takeoff(takeoff, users=users, principal=principal, detail=detail) for takeoff in takeoffs]


def list_takeoffs(db: Session, *, scope: CompanyScope, principal: Principal) -> list[Takeoff]:
    stmt = _visible_takeoffs(scope, principal).order_by(Takeoff.created_at.desc(), Takeoff.id.desc())
    return db.execute(stmt).scalars().all()


def get_takeoff(db: Session, *, scope: CompanyScope, principal: Principal, takeoff_id: int) -> Takeoff:
    takeoff = db.execute(_visible_takeoffs(scope, principal).where(Takeoff.id == takeoff_id)).scalar_one_or_none()
    if takeoff is None:
        raise LookupError('Takeoff not found or access denied')
    return takeoff


def _clean_measurements(measurements: dict | None) -> dict:
    if not measurements:
        return {}
    cleaned: dict[str, list[dict]] = {}
    for group, rows in measurements.items():
        if group not in MEASUREMENT_GROUPS:
            raise ValueError(f'Unknown measurement group: {group}')
        if not isinstance(rows, list) or not all(isinstance(row, dict) for row in rows):
            raise ValueError(f'Measurement group {group} must be a list of rows')
        cleaned[group] = [
            {str(key): ('' if value is None else str(value)) for key, value in row.items()}
            for row in rows
        ]
    return cleaned


def _apply_fields(takeoff: Takeoff, fields: dict) -> None:
    for name in TAKEOFF_FIELDS:
        if name in fields:
            value = fields[name]
            setattr(takeoff, name, value.strip() if isinstance(value, str) else value)
    if 'measurements' in fields:
        merged = dict(takeoff.measurements or {})
        merged.update(_clean_measurements(fields['measurements']))
        takeoff.measurements = merged


def _require_carpenter(db: Session, *, company_id: int, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None or user.status != UserStatus.ACTIVE or Role.CARPENTER not in parse_roles(user.roles):
        raise LookupError('Carpenter not found or does not belong to your company')
    in_company = user.company_id == company_id or db.execute(
        select(CompanyMembership.id).where(
            CompanyMembership.user_id == user_id,
            CompanyMembership.company_id == company_id,
        )
    ).first() is not None
    if not in_company:
        raise LookupError('Carpenter not found or does not belong to your company')
    return user


def create_takeoff(
    db: Session,
    *,
    scope: CompanyScope,
    principal: Principal,
    fields: dict,
    carpenter_id: int | None = None,
    trim_carpenter_id: int | None = None,
) -> Takeoff:
    if not principal.has_role(Role.MANAGER, Role.SUPER_ADMIN):
        raise PermissionError('Only managers can create takeoffs')
    company_id = scope.require_company()

    takeoff = Takeoff(
        company_id=company_id,
        created_by_user_id=principal.id,
        status=int(TakeoffStatus.CREATED),
        measurements={},
    )
    _apply_fields(takeoff, fields)
    if carpenter_id is not None:
        _require_carpenter(db, company_id=company_id, user_id=carpenter_id)
        takeoff.carpenter_id = carpenter_id
        # A takeoff that already has its measuring carpenter starts at TO_MEASURE.
        takeoff.status = int(TakeoffStatus.TO_MEASURE)
    if trim_carpenter_id is not None:
        _require_carpenter(db, company_id=company_id, user_id=trim_carpenter_id)
        takeoff.trim_carpenter_id = trim_carpenter_id

    db.add(takeoff)
    db.flush()
    logger.info(
        'Takeoff %s created in company %s with status %s',
        takeoff.id,
        company_id,
        takeoff.status,
        extra={'tenant_id': company_id},
    )
    return takeoff


def update_measurements(
    db: Session,
    *,
    scope: CompanyScope,
    principal: Principal,
    takeoff_id: int,
    fields: dict,
) -> Takeoff:
    takeoff = get_takeoff(db, scope=scope, principal=principal, takeoff_id=takeoff_id)
    if not can_edit_measurements(takeoff.status, principal.roles):
        raise PermissionError(f'Takeoff cannot be edited while {get_status_info(takeoff.status).label}')
    _apply_fields(takeoff, fields)
    takeoff.updated_at = _now()
    return takeoff


def change_status(
    db: Session,
    *,
    scope: CompanyScope,
    principal: Principal,
    takeoff_id: int,
    new_status: object,
) -> tuple[Takeoff, TakeoffStatus]:
    target = parse_status(new_status)
    if target is None:
        raise ValueError('Invalid status value')

    takeoff = get_takeoff(db, scope=scope, principal=principal, takeoff_id=takeoff_id)
    previous = TakeoffStatus(takeoff.status)
    try:
        check_transition(previous, target, principal.roles)
    except (ValueError, PermissionError):
        logger.warning(
            'Blocked status change of takeoff %s from %s to %s by user %s',
            takeoff.id,
            previous.name,
            target.name,
            principal.id,
            extra={'tenant_id': takeoff.company_id},
        )
        raise
    if target == TakeoffStatus.TO_MEASURE and takeoff.carpenter_id is None:
        raise ValueError('Assign a carpenter before sending the takeoff to measure')

    takeoff.status = int(target)
    takeoff.updated_at = _now()
    logger.info(
        'Takeoff %s moved from %s to %s by user %s',
        takeoff.id,
        previous.name,
        target.name,
        principal.id,
        extra={'tenant_id': takeoff.company_id},
    )
    return takeoff, previous


def attach_delivery_photo(
    db: Session,
    *,
    scope: CompanyScope,
    principal: Principal,
    takeoff_id: int,
    content: bytes,
    filename: str | None,
    content_type: str | None,
) -> Takeoff:
    if not principal.has_role(Role.MANAGER, Role.DELIVERY):
        raise PermissionError('Only managers and delivery users can upload delivery photos')
    takeoff = get_takeoff(db, scope=scope, principal=principal, takeoff_id=takeoff_id)
    if takeoff.status not in PHOTO_STATUSES:
        raise ValueError('Delivery photos can only be uploaded for takeoffs ready to ship')

    stored = save_delivery_photo(content=content, filename=filename, content_type=content_type)
    previous_path = takeoff.delivery_photo_path
    try:
        takeoff.delivery_photo_path = str(stored.path)
        takeoff.delivery_photo_uploaded_at = _now()
        takeoff.updated_at = _now()
        db.flush()
    except Exception:
        discard_photo(stored.path)
        raise
    if previous_path and previous_path != takeoff.delivery_photo_path:
        discard_photo(previous_path)
    return takeoff


def assign_carpenter(
    db: Session,
    *,
    scope: CompanyScope,
    principal: Principal,
    takeoff_id: int,
    carpenter_id: int,
) -> Takeoff:
    if not principal.has_role(Role.MANAGER):
        raise PermissionError('Only managers can assign carpenters')
    takeoff = get_takeoff(db, scope=scope, principal=principal, takeoff_id=takeoff_id)
    if takeoff.status not in CARPENTER_ASSIGNMENT_STATUSES:
        raise ValueError('The measuring carpenter can only change before measurement is complete')
    _require_carpenter(db, company_id=takeoff.company_id, user_id=carpenter_id)

    takeoff.carpenter_id = carpenter_id
    if takeoff.status == TakeoffStatus.CREATED:
        takeoff.status = int(TakeoffStatus.TO_MEASURE)
    takeoff.updated_at = _now()
    return takeoff


def set_trim_carpenter(
    db: Session,
    *,
    scope: CompanyScope,
    principal: Principal,
    takeoff_id: int,
    trim_carpenter_id: int | None,
) -> Takeoff:
    if not principal.has_role(Role.MANAGER):
        raise PermissionError('Only managers can assign trim carpenters')
    takeoff = get_takeoff(db, scope=scope, principal=principal, takeoff_id=takeoff_id)
    if trim_carpenter_id is not None:
        _require_carpenter(db, company_id=takeoff.company_id, user_id=trim_carpenter_id)
    takeoff.trim_carpenter_id = trim_carpenter_id
    takeoff.updated_at = _now()
    return takeoff


def find_carpenter_by_email(db: Session, *, scope: CompanyScope, email: str) -> User | None:
    normalized = (email or '').strip().lower()
    if not normalized:
        raise ValueError('Email is required')
    user = db.execute(select(User).where(User.email == normalized)).scalar_one_or_none()
    if user is None or scope.company_id is None:
        return None
    try:
        return _require_carpenter(db, company_id=scope.company_id, user_id=user.id)
    except LookupError:
        return None
