from __future__ import annotations

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile
from sqlalchemy.orm import Session

from takeoff_portal.auth import Principal, get_current_principal
from takeoff_portal.db import get_db
from takeoff_portal.dependencies import get_client_ip, get_company_scope
from takeoff_portal.schemas import (
    CarpenterAssignment,
    StatusUpdate,
    TakeoffCreate,
    TakeoffFields,
    TrimCarpenterAssignment,
)
from takeoff_portal.services.audit_service import log_audit
from takeoff_portal.services.company_scope_service import CompanyScope
from takeoff_portal.services.photo_storage_service import PHOTO_FIELD_NAME
from takeoff_portal.services.takeoff_service import (
    assign_carpenter,
    attach_delivery_photo,
    change_status,
    create_takeoff,
    find_carpenter_by_email,
    get_takeoff,
    list_takeoffs,
    serialize_takeoffs,
    set_trim_carpenter,
    update_measurements,
)
from takeoff_portal.services.takeoff_status_service import next_actions

router = APIRouter(prefix='/api/takeoff', tags=['takeoff'])


def _raise_http(exc: Exception) -> None:
    if isinstance(exc, PermissionError):
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    if isinstance(exc, LookupError):
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    raise HTTPException(status_code=400, detail=str(exc)) from exc


def _detail(db: Session, takeoff, principal: Principal) -> dict:
    return serialize_takeoffs(db, [takeoff], principal=principal, detail=True)[0]


@router.get('')
def takeoff_list(
    principal: Principal = Depends(get_current_principal),
    scope: CompanyScope = Depends(get_company_scope),
    db: Session = Depends(get_db),
):
    takeoffs = list_takeoffs(db, scope=scope, principal=principal)
    return {'takeoffs': serialize_takeoffs(db, takeoffs, principal=principal)}


@router.post('', status_code=201)
def takeoff_create(
    payload: TakeoffCreate,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    scope: CompanyScope = Depends(get_company_scope),
    db: Session = Depends(get_db),
):
    try:
        takeoff = create_takeoff(
            db,
            scope=scope,
            principal=principal,
            fields=payload.changes(),
            carpenter_id=payload.carpenter_id,
            trim_carpenter_id=payload.trim_carpenter_id,
        )
    except (ValueError, PermissionError, LookupError) as exc:
        _raise_http(exc)

    log_audit(
        db,
        actor_user_id=principal.id,
        action='TAKEOFF_CREATED',
        company_id=takeoff.company_id,
        takeoff_id=takeoff.id,
        ip=get_client_ip(request),
        metadata={'status': takeoff.status, 'carpenter_id': takeoff.carpenter_id},
    )
    db.commit()
    return {'takeoff': _detail(db, takeoff, principal)}


@router.get('/carpenters/lookup')
def carpenter_lookup(
    email: str,
    scope: CompanyScope = Depends(get_company_scope),
    db: Session = Depends(get_db),
):
    try:
        carpenter = find_carpenter_by_email(db, scope=scope, email=email)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if carpenter is None:
        raise HTTPException(status_code=404, detail='Carpenter not found')
    return {'carpenter': {'id': carpenter.id, 'fullname': carpenter.fullname, 'email': carpenter.email}}


@router.get('/{takeoff_id}')
def takeoff_detail(
    takeoff_id: int,
    principal: Principal = Depends(get_current_principal),
    scope: CompanyScope = Depends(get_company_scope),
    db: Session = Depends(get_db),
):
    try:
        takeoff = get_takeoff(db, scope=scope, principal=principal, takeoff_id=takeoff_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {'takeoff': _detail(db, takeoff, principal)}


@router.get('/{takeoff_id}/next-actions')
def takeoff_next_actions(
    takeoff_id: int,
    principal: Principal = Depends(get_current_principal),
    scope: CompanyScope = Depends(get_company_scope),
    db: Session = Depends(get_db),
):
    try:
        takeoff = get_takeoff(db, scope=scope, principal=principal, takeoff_id=takeoff_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {
        'status': takeoff.status,
        'actions': [
            {'status': int(rule.target), 'label': rule.action_label, 'sideEffect': rule.side_effect.value}
            for rule in next_actions(takeoff.status, principal.roles)
        ],
    }


@router.post('/{takeoff_id}/update')
def takeoff_update(
    takeoff_id: int,
    payload: TakeoffFields,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    scope: CompanyScope = Depends(get_company_scope),
    db: Session = Depends(get_db),
):
    changes = payload.changes()
    try:
        takeoff = update_measurements(db, scope=scope, principal=principal, takeoff_id=takeoff_id, fields=changes)
    except (ValueError, PermissionError, LookupError) as exc:
        _raise_http(exc)

    log_audit(
        db,
        actor_user_id=principal.id,
        action='TAKEOFF_UPDATED',
        company_id=takeoff.company_id,
        takeoff_id=takeoff.id,
        ip=get_client_ip(request),
        metadata={'fields': sorted(changes)},
    )
    db.commit()
    return {'takeoff': _detail(db, takeoff, principal)}


@router.patch('/{takeoff_id}/status')
def takeoff_status(
    takeoff_id: int,
    payload: StatusUpdate,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    scope: CompanyScope = Depends(get_company_scope),
    db: Session = Depends(get_db),
):
    try:
        takeoff, previous = change_status(
            db,
            scope=scope,
            principal=principal,
            takeoff_id=takeoff_id,
            new_status=payload.status,
        )
    except (ValueError, PermissionError, LookupError) as exc:
        _raise_http(exc)

    log_audit(
        db,
        actor_user_id=principal.id,
        action='TAKEOFF_STATUS_CHANGED',
        company_id=takeoff.company_id,
        takeoff_id=takeoff.id,
        ip=get_client_ip(request),
        metadata={'from': int(previous), 'to': takeoff.status},
    )
    db.commit()
    return {'takeoff': _detail(db, takeoff, principal)}


@router.post('/{takeoff_id}/delivery-photo')
async def takeoff_delivery_photo(
    takeoff_id: int,
    request: Request,
    delivery_photo: UploadFile = File(..., alias=PHOTO_FIELD_NAME),
    principal: Principal = Depends(get_current_principal),
    scope: CompanyScope = Depends(get_company_scope),
    db: Session = Depends(get_db),
):
    content = await delivery_photo.read()
    try:
        takeoff = attach_delivery_photo(
            db,
            scope=scope,
            principal=principal,
            takeoff_id=takeoff_id,
            content=content,
            filename=delivery_photo.filename,
            content_type=delivery_photo.content_type,
        )
    except (ValueError, PermissionError, LookupError) as exc:
        _raise_http(exc)

    log_audit(
        db,
        actor_user_id=principal.id,
        action='DELIVERY_PHOTO_UPLOADED',
        company_id=takeoff.company_id,
        takeoff_id=takeoff.id,
        ip=get_client_ip(request),
        metadata={'size': len(content), 'content_type': delivery_photo.content_type},
    )
    db.commit()
    return {'takeoff': _detail(db, takeoff, principal)}


@router.patch('/{takeoff_id}/carpenter')
def takeoff_assign_carpenter(
    takeoff_id: int,
    payload: CarpenterAssignment,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    scope: CompanyScope = Depends(get_company_scope),
    db: Session = Depends(get_db),
):
    try:
        takeoff = assign_carpenter(
            db,
            scope=scope,
            principal=principal,
            takeoff_id=takeoff_id,
            carpenter_id=payload.carpenter_id,
        )
    except (ValueError, PermissionError, LookupError) as exc:
        _raise_http(exc)

    log_audit(
        db,
        actor_user_id=principal.id,
        action='TAKEOFF_CARPENTER_ASSIGNED',
        company_id=takeoff.company_id,
        takeoff_id=takeoff.id,
        ip=get_client_ip(request),
        metadata={'carpenter_id': payload.carpenter_id, 'status': takeoff.status},
    )
    db.commit()
    return {'takeoff': _detail(db, takeoff, principal)}


@router.patch('/{takeoff_id}/trim-carpenter')
def takeoff_assign_trim_carpenter(
    takeoff_id: int,
    payload: TrimCarpenterAssignment,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    scope: CompanyScope = Depends(get_company_scope),
    db: Session = Depends(get_db),
):
    try:
        takeoff = set_trim_carpenter(
            db,
            scope=scope,
            principal=principal,
            takeoff_id=takeoff_id,
            trim_carpenter_id=payload.trim_carpenter_id,
        )
    except (ValueError, PermissionError, LookupError) as exc:
        _raise_http(exc)

    log_audit(
        db,
        actor_user_id=principal.id,
        action='TAKEOFF_TRIM_CARPENTER_ASSIGNED',
        company_id=takeoff.company_id,
        takeoff_id=takeoff.id,
        ip=get_client_ip(request),
        metadata={'trim_carpenter_id': payload.trim_carpenter_id},
    )
    db.commit()
    return {'takeoff': _detail(db, takeoff, principal)}


@router.delete('/{takeoff_id}/trim-carpenter')
def takeoff_remove_trim_carpenter(
    takeoff_id: int,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    scope: CompanyScope = Depends(get_company_scope),
    db: Session = Depends(get_db),
):
    try:
        takeoff = set_trim_carpenter(db, scope=scope, principal=principal, takeoff_id=takeoff_id, trim_carpenter_id=None)
    except (ValueError, PermissionError, LookupError) as exc:
        _raise_http(exc)

    log_audit(
        db,
        actor_user_id=principal.id,
        action='TAKEOFF_TRIM_CARPENTER_REMOVED',
        company_id=takeoff.company_id,
        takeoff_id=takeoff.id,
        ip=get_client_ip(request),
    )
    db.commit()
    return {'takeoff': _detail(db, takeoff, principal)}
