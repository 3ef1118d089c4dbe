from __future__ import annotations

from dataclasses import dataclass, field

from takeoff_portal.auth import Role, parse_roles


@dataclass(frozen=True)
class UserRecord:
    id: int
    email: str
    fullname: str
    roles: frozenset[Role]
    company_id: int | None = None
    active_company_id: int | None = None
    company_ids: tuple[int, ...] = field(default_factory=tuple)
    require_password_change: bool = False

    @classmethod
    def from_payload(cls, payload: dict) -> UserRecord:
        return cls(
            id=int(payload['id']),
            email=payload.get('email', ''),
            fullname=payload.get('fullname', ''),
            roles=parse_roles(payload.get('roles') or ()),
            company_id=payload.get('company'),
            active_company_id=payload.get('activeCompany'),
            company_ids=tuple(payload.get('companies') or ()),
            require_password_change=bool(payload.get('requirePasswordChange', False)),
        )

    @property
    def is_super_admin(self) -> bool:
        return Role.SUPER_ADMIN in self.roles

    @property
    def requires_company_selection(self) -> bool:
        return not self.is_super_admin and len(self.company_ids) > 1 and self.active_company_id is None


@dataclass(frozen=True)
class SessionContext:
    """Credential and user of the signed-in account; replaced whole on company switch."""

    token: str
    user: UserRecord
