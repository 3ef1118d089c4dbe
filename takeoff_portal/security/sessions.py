from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.orm import Session

from takeoff_portal import db as db_module
from takeoff_portal.auth import Principal, parse_roles
from takeoff_portal.config import settings
from takeoff_portal.models import AuthToken, CompanyMembership, User, UserStatus


logger = logging.getLogger(__name__)

AUTH_EXEMPT_PATHS = {'/api/auth/login', '/api/health-check'}


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _token_expiry() -> datetime:
    return _now() + timedelta(minutes=settings.auth_token_ttl_minutes)


def bearer_token(request: Request) -> str | None:
    header = request.headers.get('authorization', '')
    scheme, _, value = header.partition(' ')
    if scheme.lower() != 'bearer' or not value.strip():
        return None
    return value.strip()


def create_auth_token(
    db: Session,
    user_id: int,
    *,
    company_id: int | None,
    ip: str | None,
    user_agent: str | None,
) -> str:
    token = secrets.token_urlsafe(48)
    db.add(
        AuthToken(
            token=token,
            user_id=user_id,
            company_id=company_id,
            ip=ip,
            user_agent=user_agent,
            expires_at=_token_expiry(),
        )
    )
    db.flush()
    return token


def revoke_auth_token(db: Session, token: str) -> None:
    auth_token = db.execute(select(AuthToken).where(AuthToken.token == token)).scalar_one_or_none()
    if not auth_token or auth_token.revoked_at is not None:
        return
    auth_token.revoked_at = _now()


def membership_company_ids(db: Session, user_id: int) -> frozenset[int]:
    rows = db.execute(select(CompanyMembership.company_id).where(CompanyMembership.user_id == user_id)).scalars().all()
    return frozenset(rows)


def build_principal(db: Session, user: User, *, token: AuthToken | None = None) -> Principal:
    return Principal(
        id=user.id,
        email=user.email,
        fullname=user.fullname,
        roles=parse_roles(user.roles),
        company_id=user.company_id,
        active_company_id=user.active_company_id,
        active=user.status == UserStatus.ACTIVE,
        company_ids=membership_company_ids(db, user.id),
        token_company_id=token.company_id if token else None,
        token=token.token if token else None,
    )


def load_principal_from_token(db: Session, token: str | None) -> Principal | None:
    if not token:
        return None

    row = db.execute(
        select(AuthToken, User)
        .join(User, User.id == AuthToken.user_id)
        .where(AuthToken.token == token)
    ).one_or_none()
    if not row:
        return None

    auth_token, user = row
    now = _now()
    if auth_token.revoked_at is not None or _as_utc(auth_token.expires_at) <= now:
        return None

    auth_token.last_seen_at = now
    auth_token.expires_at = _token_expiry()
    return build_principal(db, user, token=auth_token)


def install_auth_middleware(app: FastAPI) -> None:
    @app.middleware('http')
    async def auth_middleware(request: Request, call_next):
        request.state.principal = None
        if request.url.path in AUTH_EXEMPT_PATHS:
            return await call_next(request)

        with db_module.SessionLocal() as db:
            principal = load_principal_from_token(db, bearer_token(request))
            db.commit()

        if principal is None:
            logger.info('Rejected unauthenticated request to %s', request.url.path)
            return JSONResponse({'detail': 'Not authenticated'}, status_code=401)

        request.state.principal = principal
        return await call_next(request)
