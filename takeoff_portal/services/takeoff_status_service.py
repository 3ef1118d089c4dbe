from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum, IntEnum

from takeoff_portal.auth import Role


class TakeoffStatus(IntEnum):
    CREATED = 1
    TO_MEASURE = 2
    UNDER_REVIEW = 3
    READY_TO_SHIP = 4
    SHIPPED = 5
    TRIMMING_COMPLETED = 6
    BACK_TRIM_COMPLETED = 7
    CLOSED = 8


class SideEffect(str, Enum):
    NONE = 'none'
    CARPENTER_ASSIGNMENT = 'carpenter_assignment'
    MEASUREMENT_CONFIRMATION = 'measurement_confirmation'
    DELIVERY_PHOTO = 'delivery_photo'


class InvalidStatusTransition(ValueError):
    pass


class StatusTransitionForbidden(PermissionError):
    pass


@dataclass(frozen=True)
class StatusInfo:
    id: TakeoffStatus
    label: str
    description: str
    color: str
    icon: str
    can_change_to: tuple[TakeoffStatus, ...]


@dataclass(frozen=True)
class TransitionRule:
    source: TakeoffStatus
    target: TakeoffStatus
    roles: frozenset[Role]
    side_effect: SideEffect
    action_label: str


STATUS_CONFIG: dict[TakeoffStatus, StatusInfo] = {
    TakeoffStatus.CREATED: StatusInfo(
        id=TakeoffStatus.CREATED,
        label='Created',
        description='Created by the company, no carpenter assigned yet',
        color='secondary',
        icon='fas fa-file-plus',
        can_change_to=(TakeoffStatus.TO_MEASURE,),
    ),
    TakeoffStatus.TO_MEASURE: StatusInfo(
        id=TakeoffStatus.TO_MEASURE,
        label='To Measure',
        description='Sent to the carpenter for measuring',
        color='info',
        icon='fas fa-ruler',
        can_change_to=(TakeoffStatus.UNDER_REVIEW,),
    ),
    TakeoffStatus.UNDER_REVIEW: StatusInfo(
        id=TakeoffStatus.UNDER_REVIEW,
        label='Under Review',
        description='Measured by the carpenter and sent back to the company',
        color='warning',
        icon='fas fa-search',
        can_change_to=(TakeoffStatus.READY_TO_SHIP,),
    ),
    TakeoffStatus.READY_TO_SHIP: StatusInfo(
        id=TakeoffStatus.READY_TO_SHIP,
        label='Ready to Ship',
        description='Approved by the office and handed to delivery',
        color='primary',
        icon='fas fa-check-circle',
        can_change_to=(TakeoffStatus.SHIPPED,),
    ),
    TakeoffStatus.SHIPPED: StatusInfo(
        id=TakeoffStatus.SHIPPED,
        label='Shipped',
        description='Truck dispatched',
        color='info',
        icon='fas fa-truck',
        can_change_to=(TakeoffStatus.TRIMMING_COMPLETED,),
    ),
    TakeoffStatus.TRIMMING_COMPLETED: StatusInfo(
        id=TakeoffStatus.TRIMMING_COMPLETED,
        label='Trimming Completed',
        description='Carpenter finished the installation',
        color='success',
        icon='fas fa-hammer',
        can_change_to=(TakeoffStatus.BACK_TRIM_COMPLETED,),
    ),
    TakeoffStatus.BACK_TRIM_COMPLETED: StatusInfo(
        id=TakeoffStatus.BACK_TRIM_COMPLETED,
        label='Back Trim Completed',
        description='Final carpenter step, service wrapped up',
        color='success',
        icon='fas fa-tools',
        can_change_to=(TakeoffStatus.CLOSED,),
    ),
    TakeoffStatus.CLOSED: StatusInfo(
        id=TakeoffStatus.CLOSED,
        label='Closed',
        description='Service closed by the company',
        color='dark',
        icon='fas fa-lock',
        can_change_to=(),
    ),
}


TRANSITION_RULES: dict[TakeoffStatus, TransitionRule] = {
    rule.source: rule
    for rule in (
        TransitionRule(
            source=TakeoffStatus.CREATED,
            target=TakeoffStatus.TO_MEASURE,
            roles=frozenset({Role.MANAGER}),
            side_effect=SideEffect.CARPENTER_ASSIGNMENT,
            action_label='Send to Carpenter',
        ),
        TransitionRule(
            source=TakeoffStatus.TO_MEASURE,
            target=TakeoffStatus.UNDER_REVIEW,
            roles=frozenset({Role.CARPENTER}),
            side_effect=SideEffect.MEASUREMENT_CONFIRMATION,
            action_label='Complete Measurement',
        ),
        TransitionRule(
            source=TakeoffStatus.UNDER_REVIEW,
            target=TakeoffStatus.READY_TO_SHIP,
            roles=frozenset({Role.MANAGER}),
            side_effect=SideEffect.NONE,
            action_label='Approve for Shipping',
        ),
        TransitionRule(
            source=TakeoffStatus.READY_TO_SHIP,
            target=TakeoffStatus.SHIPPED,
            roles=frozenset({Role.MANAGER, Role.DELIVERY}),
            side_effect=SideEffect.DELIVERY_PHOTO,
            action_label='Mark as Shipped',
        ),
        TransitionRule(
            source=TakeoffStatus.SHIPPED,
            target=TakeoffStatus.TRIMMING_COMPLETED,
            roles=frozenset({Role.MANAGER, Role.CARPENTER}),
            side_effect=SideEffect.NONE,
            action_label='Mark Trimming Completed',
        ),
        TransitionRule(
            source=TakeoffStatus.TRIMMING_COMPLETED,
            target=TakeoffStatus.BACK_TRIM_COMPLETED,
            roles=frozenset({Role.MANAGER, Role.CARPENTER}),
            side_effect=SideEffect.NONE,
            action_label='Mark Back Trim Completed',
        ),
        TransitionRule(
            source=TakeoffStatus.BACK_TRIM_COMPLETED,
            target=TakeoffStatus.CLOSED,
            roles=frozenset({Role.MANAGER}),
            side_effect=SideEffect.NONE,
            action_label='Close Service',
        ),
    )
}


_MANAGER_ADVANCES_FROM = frozenset(
    {
        TakeoffStatus.CREATED,
        TakeoffStatus.UNDER_REVIEW,
        TakeoffStatus.READY_TO_SHIP,
        TakeoffStatus.SHIPPED,
        TakeoffStatus.TRIMMING_COMPLETED,
        TakeoffStatus.BACK_TRIM_COMPLETED,
    }
)
_CARPENTER_ADVANCES_FROM = frozenset(
    {
        TakeoffStatus.TO_MEASURE,
        TakeoffStatus.SHIPPED,
        TakeoffStatus.TRIMMING_COMPLETED,
    }
)
_DELIVERY_ADVANCES_FROM = frozenset({TakeoffStatus.READY_TO_SHIP})


def parse_status(value: object) -> TakeoffStatus | None:
    if isinstance(value, bool):
        return None
    try:
        return TakeoffStatus(int(value))
    except (TypeError, ValueError):
        return None


def get_status_info(status: int) -> StatusInfo:
    parsed = parse_status(status)
    if parsed is None:
        raise ValueError(f'Unknown takeoff status: {status}')
    return STATUS_CONFIG[parsed]


def get_next_statuses(current: int) -> list[StatusInfo]:
    info = get_status_info(current)
    return [STATUS_CONFIG[status] for status in info.can_change_to]


def can_change_status(from_status: int, to_status: int) -> bool:
    source = parse_status(from_status)
    target = parse_status(to_status)
    if source is None or target is None:
        return False
    return target in STATUS_CONFIG[source].can_change_to


def user_can_advance(status: int, role: Role) -> bool:
    current = parse_status(status)
    if current is None:
        return False
    if role == Role.MANAGER:
        return current in _MANAGER_ADVANCES_FROM
    if role == Role.CARPENTER:
        return current in _CARPENTER_ADVANCES_FROM
    if role == Role.DELIVERY:
        return current in _DELIVERY_ADVANCES_FROM
    if role == Role.SUPER_ADMIN:
        return False
    raise ValueError(f'Unhandled role: {role!r}')


def roles_can_advance(status: int, roles: Iterable[Role]) -> bool:
    return any(user_can_advance(status, role) for role in roles)


def next_actions(status: int, roles: Iterable[Role]) -> list[TransitionRule]:
    current = parse_status(status)
    if current is None:
        return []
    rule = TRANSITION_RULES.get(current)
    if rule is None or not roles_can_advance(current, roles):
        return []
    return [rule]


def check_transition(from_status: int, to_status: int, roles: Iterable[Role]) -> TransitionRule:
    if not can_change_status(from_status, to_status):
        raise InvalidStatusTransition(f'Cannot change status from {from_status} to {to_status}')
    source = TakeoffStatus(from_status)
    roles = frozenset(roles)
    if not roles_can_advance(source, roles):
        raise StatusTransitionForbidden(f'Your role cannot advance a takeoff from {STATUS_CONFIG[source].label}')
    return TRANSITION_RULES[source]


def can_edit_measurements(status: int, roles: Iterable[Role]) -> bool:
    current = parse_status(status)
    if current is None:
        return False
    roles = frozenset(roles)
    if Role.MANAGER in roles and current == TakeoffStatus.CREATED:
        return True
    return Role.CARPENTER in roles and current == TakeoffStatus.TO_MEASURE


def describe_workflow() -> list[dict]:
    rows = []
    for status, info in STATUS_CONFIG.items():
        rule = TRANSITION_RULES.get(status)
        rows.append(
            {
                'id': int(status),
                'label': info.label,
                'description': info.description,
                'color': info.color,
                'icon': info.icon,
                'canChangeTo': [int(target) for target in info.can_change_to],
                'allowedRoles': sorted(role.value for role in rule.roles) if rule else [],
                'sideEffect': rule.side_effect.value if rule else SideEffect.NONE.value,
                'actionLabel': rule.action_label if rule else None,
            }
        )
    return rows
