from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import httpx

from takeoff_portal.client.api import ApiError, CompanySelectionRequired, PortalClient
from takeoff_portal.client.events import EventChannel, TakeoffStatusChanged
from takeoff_portal.client.notifications import Notifier
from takeoff_portal.services.photo_storage_service import validate_photo
from takeoff_portal.services.takeoff_status_service import (
    SideEffect,
    TakeoffStatus,
    TransitionRule,
    next_actions,
    parse_status,
)


logger = logging.getLogger(__name__)

REQUEST_ERRORS = (ApiError, CompanySelectionRequired, httpx.HTTPError)


class Outcome(str, Enum):
    ADVANCED = 'advanced'
    BLOCKED = 'blocked'
    CANCELLED = 'cancelled'
    FAILED = 'failed'


@dataclass(frozen=True)
class AdvanceResult:
    outcome: Outcome
    takeoff: dict
    message: str | None = None


@dataclass(frozen=True)
class DeliveryPhoto:
    content: bytes
    filename: str
    content_type: str


@dataclass(frozen=True)
class PhotoDecision:
    photo: DeliveryPhoto | None = None

    @classmethod
    def skip(cls) -> PhotoDecision:
        return cls(photo=None)

    @classmethod
    def upload(cls, photo: DeliveryPhoto) -> PhotoDecision:
        return cls(photo=photo)

    @property
    def skipped(self) -> bool:
        return self.photo is None


class TakeoffActions:
    """Advances takeoffs one status at a time on behalf of the signed-in user.

    Order per takeoff: check the transition locally, run its side effect
    (carpenter choice, measurement confirmation or delivery photo), PATCH the
    status, then update the local takeoff dict. Assigning a carpenter moves a
    CREATED takeoff on the server, so that step skips the status PATCH. The
    server validates again; nothing here is trusted.
    """

    def __init__(
        self,
        api: PortalClient,
        *,
        notifier: Notifier | None = None,
        channel: EventChannel | None = None,
        choose_carpenter: Callable[[dict], int | None],
        confirm_measurement: Callable[[dict], bool],
        choose_delivery_photo: Callable[[dict], PhotoDecision | None],
    ):
        self.api = api
        self.notifier = notifier or Notifier()
        self.channel = channel or api.channel
        self.choose_carpenter = choose_carpenter
        self.confirm_measurement = confirm_measurement
        self.choose_delivery_photo = choose_delivery_photo
        self._pending: set[int] = set()

    def is_pending(self, takeoff_id: int) -> bool:
        return takeoff_id in self._pending

    def available(self, takeoff: dict) -> list[TransitionRule]:
        user = self.api.user
        if user is None or parse_status(takeoff.get('status')) is None:
            return []
        return next_actions(takeoff['status'], user.roles)

    def advance(self, takeoff: dict) -> AdvanceResult:
        rules = self.available(takeoff)
        if not rules or self.is_pending(takeoff['id']):
            logger.debug('Ignoring advance of takeoff %s in status %s', takeoff.get('id'), takeoff.get('status'))
            return AdvanceResult(Outcome.BLOCKED, takeoff)

        rule = rules[0]
        self._pending.add(takeoff['id'])
        try:
            return self._advance(takeoff, rule)
        finally:
            self._pending.discard(takeoff['id'])

    def _ask(self, callback: Callable[[dict], object], takeoff: dict) -> tuple[bool, object]:
        try:
            return True, callback(takeoff)
        except Exception as exc:
            logger.exception('Dialog for takeoff %s failed', takeoff.get('id'))
            self.notifier.error(f'Action cancelled: {exc}')
            return False, None

    def _advance(self, takeoff: dict, rule: TransitionRule) -> AdvanceResult:
        if rule.side_effect == SideEffect.CARPENTER_ASSIGNMENT:
            answered, carpenter_id = self._ask(self.choose_carpenter, takeoff)
            if not answered or carpenter_id is None:
                return AdvanceResult(Outcome.CANCELLED, takeoff)
            return self._apply(
                takeoff,
                rule,
                lambda: self.api.assign_carpenter(takeoff['id'], carpenter_id),
                'Failed to assign carpenter',
            )

        if rule.side_effect == SideEffect.MEASUREMENT_CONFIRMATION:
            answered, confirmed = self._ask(self.confirm_measurement, takeoff)
            if not answered or not confirmed:
                return AdvanceResult(Outcome.CANCELLED, takeoff)

        elif rule.side_effect == SideEffect.DELIVERY_PHOTO:
            answered, decision = self._ask(self.choose_delivery_photo, takeoff)
            if not answered or decision is None:
                return AdvanceResult(Outcome.CANCELLED, takeoff)
            if not decision.skipped:
                result = self._upload_photo(takeoff, decision.photo)
                if result is not None:
                    return result

        return self._apply(
            takeoff,
            rule,
            lambda: self.api.update_takeoff_status(takeoff['id'], rule.target),
            'Failed to update status',
        )

    def _apply(self, takeoff: dict, rule: TransitionRule, send: Callable[[], dict], failure: str) -> AdvanceResult:
        try:
            updated = send()
        except REQUEST_ERRORS as exc:
            message = _describe(exc)
            self.notifier.error(f'{failure}: {message}')
            return AdvanceResult(Outcome.FAILED, takeoff, message)

        previous = takeoff['status']
        takeoff.update(updated)
        self.notifier.success(f'Takeoff moved to {takeoff.get("statusLabel") or TakeoffStatus(rule.target).name}')
        self.channel.publish(
            TakeoffStatusChanged(takeoff_id=takeoff['id'], previous_status=previous, status=takeoff['status'])
        )
        return AdvanceResult(Outcome.ADVANCED, takeoff)

    def _upload_photo(self, takeoff: dict, photo: DeliveryPhoto) -> AdvanceResult | None:
        try:
            validate_photo(content_type=photo.content_type, size=len(photo.content))
        except ValueError as exc:
            self.notifier.error(str(exc))
            return AdvanceResult(Outcome.CANCELLED, takeoff, str(exc))

        try:
            updated = self.api.upload_delivery_photo(
                takeoff['id'],
                content=photo.content,
                filename=photo.filename,
                content_type=photo.content_type,
            )
        except REQUEST_ERRORS as exc:
            message = _describe(exc)
            self.notifier.error(f'Failed to upload delivery photo: {message}')
            return AdvanceResult(Outcome.FAILED, takeoff, message)

        takeoff['deliveryPhoto'] = updated.get('deliveryPhoto')
        return None


def _describe(exc: Exception) -> str:
    if isinstance(exc, ApiError):
        return exc.message
    if isinstance(exc, CompanySelectionRequired):
        return str(exc)
    return 'Could not reach the server'
