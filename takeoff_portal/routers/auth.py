from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from takeoff_portal.auth import Principal, get_current_principal
from takeoff_portal.db import get_db
from takeoff_portal.dependencies import get_client_ip
from takeoff_portal.schemas import LoginRequest, PasswordChangeRequest, SelectCompanyRequest
from takeoff_portal.security.sessions import create_auth_token, revoke_auth_token
from takeoff_portal.services.account_service import (
    authenticate,
    change_first_password,
    get_user,
    list_my_companies,
    login_company_id,
    normalize_email,
    select_active_company,
    serialize_user,
)
from takeoff_portal.services.audit_service import log_audit, log_auth_event

router = APIRouter(prefix='/api/auth', tags=['auth'])
logger = logging.getLogger(__name__)


@router.post('/login')
def login(payload: LoginRequest, request: Request, db: Session = Depends(get_db)):
    email = normalize_email(payload.email)
    ip = get_client_ip(request)
    user_agent = request.headers.get('user-agent')

    user, failure_reason = authenticate(db, email=email, password=payload.password)
    if failure_reason:
        log_auth_event(
            db,
            attempted_email=email,
            success=False,
            failure_reason=failure_reason,
            user_id=user.id if user else None,
            ip=ip,
            user_agent=user_agent,
        )
        db.commit()
        logger.warning('Failed login for %s: %s', email, failure_reason, extra={'remote_addr': ip})
        raise HTTPException(status_code=401, detail='Invalid email or password')

    company_id = login_company_id(db, user)
    token = create_auth_token(db, user.id, company_id=company_id, ip=ip, user_agent=user_agent)
    log_auth_event(db, attempted_email=email, success=True, user_id=user.id, ip=ip, user_agent=user_agent)
    log_audit(
        db,
        actor_user_id=user.id,
        action='AUTH_LOGIN',
        company_id=company_id,
        ip=ip,
        metadata={'email': email},
    )
    db.commit()

    return {
        'user': serialize_user(db, user),
        'token': token,
        'requirePasswordChange': user.require_password_change,
    }


@router.post('/logout')
def logout(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    if principal.token:
        revoke_auth_token(db, principal.token)
    log_audit(
        db,
        actor_user_id=principal.id,
        action='AUTH_LOGOUT',
        company_id=principal.token_company_id,
        ip=get_client_ip(request),
    )
    db.commit()
    return {'message': 'Logged out'}


@router.get('/me')
def me(principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return {'user': serialize_user(db, get_user(db, principal.id))}


@router.post('/first-password-change')
def first_password_change(
    payload: PasswordChangeRequest,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    try:
        user = change_first_password(
            db,
            user_id=principal.id,
            current_password=payload.current_password,
            new_password=payload.new_password,
            confirm_password=payload.confirm_password,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    log_audit(db, actor_user_id=principal.id, action='AUTH_PASSWORD_CHANGED', ip=get_client_ip(request))
    db.commit()
    return {'message': 'Password updated', 'user': serialize_user(db, user)}


@router.get('/my-companies')
def my_companies(principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return {'companies': list_my_companies(db, principal=principal)}


@router.post('/select-company')
def select_company(
    payload: SelectCompanyRequest,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    ip = get_client_ip(request)
    try:
        user = select_active_company(db, principal=principal, company_id=payload.company_id)
    except PermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    # The old credential stops working in the same commit that issues the scoped one.
    if principal.token:
        revoke_auth_token(db, principal.token)
    token = create_auth_token(
        db,
        user.id,
        company_id=payload.company_id,
        ip=ip,
        user_agent=request.headers.get('user-agent'),
    )
    log_audit(
        db,
        actor_user_id=principal.id,
        action='COMPANY_SELECTED',
        company_id=payload.company_id,
        ip=ip,
        metadata={'previous_company_id': principal.token_company_id},
    )
    db.commit()
    return {'user': serialize_user(db, user), 'token': token}
