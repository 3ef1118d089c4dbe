from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from takeoff_portal.auth import Principal, Role, get_current_principal, require_role
from takeoff_portal.db import get_db
from takeoff_portal.dependencies import get_client_ip
from takeoff_portal.schemas import CompanyCreate
from takeoff_portal.services.audit_service import log_audit
from takeoff_portal.services.company_service import (
    activate_company,
    create_company,
    deactivate_company,
    get_company,
    list_companies,
    serialize_company,
)

router = APIRouter(prefix='/api/company', tags=['company'])


@router.get('')
def company_list(principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return {'companies': [serialize_company(company) for company in list_companies(db, principal=principal)]}


@router.get('/{company_id}')
def company_detail(
    company_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    try:
        company = get_company(db, principal=principal, company_id=company_id)
    except PermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {'company': serialize_company(company)}


@router.post('', status_code=201)
def company_create(
    payload: CompanyCreate,
    request: Request,
    principal: Principal = Depends(require_role(Role.SUPER_ADMIN)),
    db: Session = Depends(get_db),
):
    try:
        company = create_company(db, principal=principal, fields=payload.fields())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    log_audit(
        db,
        actor_user_id=principal.id,
        action='COMPANY_CREATED',
        company_id=company.id,
        ip=get_client_ip(request),
        metadata={'name': company.name},
    )
    db.commit()
    return {'company': serialize_company(company)}


@router.patch('/{company_id}/activate')
def company_activate(
    company_id: int,
    request: Request,
    principal: Principal = Depends(require_role(Role.SUPER_ADMIN)),
    db: Session = Depends(get_db),
):
    try:
        company = activate_company(db, principal=principal, company_id=company_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    log_audit(db, actor_user_id=principal.id, action='COMPANY_ACTIVATED', company_id=company.id, ip=get_client_ip(request))
    db.commit()
    return {'company': serialize_company(company)}


@router.patch('/{company_id}/deactivate')
def company_deactivate(
    company_id: int,
    request: Request,
    cascadeUsers: bool = False,
    principal: Principal = Depends(require_role(Role.SUPER_ADMIN)),
    db: Session = Depends(get_db),
):
    try:
        company, affected, deactivated = deactivate_company(
            db,
            principal=principal,
            company_id=company_id,
            cascade_users=cascadeUsers,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    log_audit(
        db,
        actor_user_id=principal.id,
        action='COMPANY_DEACTIVATED',
        company_id=company.id,
        ip=get_client_ip(request),
        metadata={'active_users': affected, 'users_deactivated': deactivated},
    )
    db.commit()
    return {
        'company': serialize_company(company, active_user_count=affected),
        'usersDeactivated': deactivated,
    }
