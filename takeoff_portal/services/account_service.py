from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from takeoff_portal.auth import Principal, Role, parse_roles
from takeoff_portal.models import Company, CompanyStatus, User, UserStatus
from takeoff_portal.security.passwords import hash_password, validate_new_password, verify_and_upgrade, verify_password
from takeoff_portal.security.sessions import membership_company_ids


logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def normalize_email(value: str | None) -> str:
    return (value or '').strip().lower()


def find_user_by_email(db: Session, email: str) -> User | None:
    return db.execute(select(User).where(User.email == normalize_email(email))).scalar_one_or_none()


def authenticate(db: Session, *, email: str, password: str) -> tuple[User | None, str | None]:
    user = find_user_by_email(db, email)
    if not user:
        return None, 'UNKNOWN_EMAIL'
    if user.status != UserStatus.ACTIVE:
        return user, 'INACTIVE_USER'

    valid, upgraded_hash = verify_and_upgrade(password, user.password_hash)
    if not valid:
        return user, 'BAD_PASSWORD'
    if upgraded_hash:
        user.password_hash = upgraded_hash
    user.last_login_at = _now()
    return user, None


def user_company_ids(db: Session, user: User) -> list[int]:
    company_ids = set(membership_company_ids(db, user.id))
    if user.company_id is not None:
        company_ids.add(user.company_id)
    return sorted(company_ids)


def login_company_id(db: Session, user: User) -> int | None:
    if Role.SUPER_ADMIN in parse_roles(user.roles):
        return None
    if user.active_company_id is not None:
        return user.active_company_id
    company_ids = user_company_ids(db, user)
    if len(company_ids) == 1:
        return company_ids[0]
    return None


def serialize_user(db: Session, user: User) -> dict:
    return {
        'id': user.id,
        'fullname': user.fullname,
        'email': user.email,
        'roles': sorted(role.value for role in parse_roles(user.roles)),
        'company': user.company_id,
        'companies': user_company_ids(db, user),
        'activeCompany': user.active_company_id,
        'status': user.status.value,
        'requirePasswordChange': user.require_password_change,
        'lastLogin': user.last_login_at.isoformat() if user.last_login_at else None,
    }


def serialize_company_summary(company: Company) -> dict:
    return {
        'id': company.id,
        'name': company.name,
        'status': company.status.value,
        'city': company.city,
        'province': company.province,
    }


def get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise LookupError('User not found')
    return user


def list_my_companies(db: Session, *, principal: Principal) -> list[dict]:
    company_ids = principal.member_company_ids()
    if not company_ids:
        return []
    companies = db.execute(
        select(Company).where(Company.id.in_(company_ids)).order_by(Company.name.asc(), Company.id.asc())
    ).scalars().all()
    return [serialize_company_summary(company) for company in companies]


def select_active_company(db: Session, *, principal: Principal, company_id: int) -> User:
    if principal.is_super_admin:
        raise PermissionError('Super admin accounts are not scoped to a company')
    if company_id not in principal.member_company_ids():
        raise PermissionError('You do not belong to this company')

    company = db.get(Company, company_id)
    if company is None:
        raise LookupError('Company not found')
    if company.status != CompanyStatus.ACTIVE:
        raise PermissionError('Company is not active')

    user = get_user(db, principal.id)
    previous = user.active_company_id
    user.active_company_id = company_id
    logger.info(
        'User %s switched active company from %s to %s',
        user.id,
        previous,
        company_id,
        extra={'tenant_id': company_id},
    )
    return user


def change_first_password(
    db: Session,
    *,
    user_id: int,
    current_password: str,
    new_password: str,
    confirm_password: str,
) -> User:
    if new_password != confirm_password:
        raise ValueError('New password and confirmation do not match')
    user = get_user(db, user_id)
    if not verify_password(current_password, user.password_hash):
        raise ValueError('Current password is incorrect')
    if verify_password(new_password, user.password_hash):
        raise ValueError('New password must differ from the current password')
    validate_new_password(new_password)

    user.password_hash = hash_password(new_password)
    user.require_password_change = False
    return user

