from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from fastapi import Depends, HTTPException, Request, status


class Role(str, Enum):
    SUPER_ADMIN = 'super_admin'
    MANAGER = 'manager'
    CARPENTER = 'carpenter'
    DELIVERY = 'delivery'

    @classmethod
    def _missing_(cls, value):
        if not isinstance(value, str):
            return None
        normalized = value.strip().lower()
        # Tenant-side accounts are called "company" in older records.
        if normalized == 'company':
            return cls.MANAGER
        for member in cls:
            if member.value == normalized:
                return member
        return None


def parse_roles(values: Iterable[str] | None) -> frozenset[Role]:
    roles = set()
    for value in values or ():
        try:
            roles.add(Role(value))
        except ValueError as exc:
            raise ValueError(f'Unknown role: {value}') from exc
    return frozenset(roles)


@dataclass(frozen=True)
class Principal:
    id: int
    email: str
    fullname: str
    roles: frozenset[Role]
    company_id: int | None
    active_company_id: int | None
    active: bool
    company_ids: frozenset[int] = field(default_factory=frozenset)
    token_company_id: int | None = None
    token: str | None = None

    @property
    def is_super_admin(self) -> bool:
        return Role.SUPER_ADMIN in self.roles

    def has_role(self, *roles: Role) -> bool:
        return any(role in self.roles for role in roles)

    def member_company_ids(self) -> frozenset[int]:
        if self.company_id is None:
            return self.company_ids
        return self.company_ids | {self.company_id}


def get_current_principal(request: Request) -> Principal:
    principal = getattr(request.state, 'principal', None)
    if not principal:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    if not principal.active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
    return principal


def require_role(*allowed: Role):
    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        if not principal.has_role(*allowed):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
        return principal

    return _dep
