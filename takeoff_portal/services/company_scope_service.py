from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import Select
from sqlalchemy.orm import Session

from takeoff_portal.auth import Principal
from takeoff_portal.models import Company, CompanyStatus


logger = logging.getLogger(__name__)

COMPANY_HEADER = 'x-company-id'


@dataclass(frozen=True)
class CompanyScope:
    company_id: int | None
    is_super_admin: bool

    def apply(self, stmt: Select, column) -> Select:
        if self.company_id is None:
            return stmt
        return stmt.where(column == self.company_id)

    def allows(self, company_id: int | None) -> bool:
        if self.company_id is None:
            return self.is_super_admin
        return company_id == self.company_id

    def require_company(self) -> int:
        if self.company_id is None:
            raise ValueError('Super admin must specify a company when creating records')
        return self.company_id


def _parse_company_id(header_value: str | None) -> int | None:
    raw = (header_value or '').strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError('Invalid company ID format') from exc


def allowed_company_ids(principal: Principal) -> frozenset[int]:
    if principal.token_company_id is not None:
        return frozenset({principal.token_company_id})
    return principal.member_company_ids()


def resolve_company_scope(db: Session, principal: Principal, header_value: str | None) -> CompanyScope:
    company_id = _parse_company_id(header_value)

    if principal.is_super_admin:
        if company_id is None:
            return CompanyScope(company_id=None, is_super_admin=True)
        if db.get(Company, company_id) is None:
            raise LookupError('Company not found')
        return CompanyScope(company_id=company_id, is_super_admin=True)

    if company_id is None:
        raise ValueError(f'Company ID is required in {COMPANY_HEADER} header')

    if company_id not in allowed_company_ids(principal):
        logger.warning(
            'User %s requested company %s outside of their companies',
            principal.id,
            company_id,
            extra={'tenant_id': company_id},
        )
        raise PermissionError('Access denied. You can only access data from your own company.')

    company = db.get(Company, company_id)
    if company is None:
        raise LookupError('Company not found')
    if company.status != CompanyStatus.ACTIVE:
        raise PermissionError('Company is not active')
    return CompanyScope(company_id=company_id, is_super_admin=False)
