from __future__ import annotations

import logging

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from takeoff_portal.auth import Principal
from takeoff_portal.models import Company, CompanyMembership, CompanyStatus, User, UserStatus


logger = logging.getLogger(__name__)

COMPANY_FIELDS = (
    'name',
    'business_number',
    'tax_number',
    'industry',
    'street',
    'city',
    'province',
    'postal_code',
    'country',
    'phone',
    'email',
    'website',
)


def serialize_company(company: Company, *, active_user_count: int | None = None) -> dict:
    payload = {
        'id': company.id,
        'name': company.name,
        'businessNumber': company.business_number,
        'taxNumber': company.tax_number,
        'industry': company.industry,
        'address': {
            'street': company.street,
            'city': company.city,
            'province': company.province,
            'postalCode': company.postal_code,
            'country': company.country,
        },
        'phone': company.phone,
        'email': company.email,
        'website': company.website,
        'status': company.status.value,
        'createdBy': company.created_by_user_id,
        'createdAt': company.created_at.isoformat() if company.created_at else None,
    }
    if active_user_count is not None:
        payload['activeUserCount'] = active_user_count
    return payload


def list_companies(db: Session, *, principal: Principal) -> list[Company]:
    stmt = select(Company).order_by(Company.name.asc(), Company.id.asc())
    if not principal.is_super_admin:
        company_ids = principal.member_company_ids()
        if not company_ids:
            return []
        stmt = stmt.where(Company.id.in_(company_ids))
    return db.execute(stmt).scalars().all()


def get_company(db: Session, *, principal: Principal, company_id: int) -> Company:
    if not principal.is_super_admin and company_id not in principal.member_company_ids():
        raise PermissionError('You do not belong to this company')
    company = db.get(Company, company_id)
    if company is None:
        raise LookupError('Company not found')
    return company


def create_company(db: Session, *, principal: Principal, fields: dict) -> Company:
    if not principal.is_super_admin:
        raise PermissionError('Only super admins can create companies')
    name = (fields.get('name') or '').strip()
    if not name:
        raise ValueError('Company name is required')
    province = fields.get('province')
    if province is not None and len(province.strip()) != 2:
        raise ValueError('Province must be a two letter code')
    duplicate = db.execute(select(Company.id).where(func.lower(Company.name) == name.lower())).first()
    if duplicate is not None:
        raise ValueError('A company with this name already exists')

    company = Company(created_by_user_id=principal.id, status=CompanyStatus.ACTIVE)
    for field_name in COMPANY_FIELDS:
        value = fields.get(field_name)
        if isinstance(value, str):
            value = value.strip() or None
        if value is not None:
            setattr(company, field_name, value)
    company.name = name
    if company.province:
        company.province = company.province.upper()
    db.add(company)
    db.flush()
    logger.info('Company %s created by user %s', company.id, principal.id, extra={'tenant_id': company.id})
    return company


def _company_user_filter(company_id: int):
    member_ids = select(CompanyMembership.user_id).where(CompanyMembership.company_id == company_id)
    return or_(User.company_id == company_id, User.id.in_(member_ids))


def count_active_users(db: Session, company_id: int) -> int:
    return db.execute(
        select(func.count(User.id)).where(_company_user_filter(company_id), User.status == UserStatus.ACTIVE)
    ).scalar_one()


def activate_company(db: Session, *, principal: Principal, company_id: int) -> Company:
    if not principal.is_super_admin:
        raise PermissionError('Only super admins can change company status')
    company = get_company(db, principal=principal, company_id=company_id)
    if company.status == CompanyStatus.ACTIVE:
        raise ValueError('Company is already active')
    company.status = CompanyStatus.ACTIVE
    logger.info('Company %s activated by user %s', company.id, principal.id, extra={'tenant_id': company.id})
    return company


def deactivate_company(
    db: Session,
    *,
    principal: Principal,
    company_id: int,
    cascade_users: bool = False,
) -> tuple[Company, int, int]:
    """Deactivate a company and report how many active users it still has.

    Users are only deactivated along with the company when ``cascade_users`` is set;
    users who also belong to another company are left alone.
    """
    if not principal.is_super_admin:
        raise PermissionError('Only super admins can change company status')
    company = get_company(db, principal=principal, company_id=company_id)
    if company.status == CompanyStatus.INACTIVE:
        raise ValueError('Company is already inactive')

    affected = count_active_users(db, company_id)
    company.status = CompanyStatus.INACTIVE

    deactivated = 0
    if cascade_users and affected:
        other_memberships = select(CompanyMembership.user_id).where(CompanyMembership.company_id != company_id)
        result = db.execute(
            update(User)
            .where(
                _company_user_filter(company_id),
                User.status == UserStatus.ACTIVE,
                User.id.not_in(other_memberships),
            )
            .values(status=UserStatus.INACTIVE)
            .execution_options(synchronize_session=False)
        )
        deactivated = result.rowcount
    logger.info(
        'Company %s deactivated by user %s (%s active users, cascade=%s)',
        company.id,
        principal.id,
        affected,
        cascade_users,
        extra={'tenant_id': company.id},
    )
    return company, affected, deactivated
