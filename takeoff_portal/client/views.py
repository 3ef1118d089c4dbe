from __future__ import annotations

import logging

import httpx

from takeoff_portal.client.api import ApiError, CompanySelectionRequired, PortalClient
from takeoff_portal.client.events import CompanySwitched, TakeoffStatusChanged
from takeoff_portal.client.notifications import Notifier


logger = logging.getLogger(__name__)


class TakeoffBoard:
    """Takeoff list of the current company; reloads fully when the company changes."""

    def __init__(self, api: PortalClient, *, notifier: Notifier | None = None):
        self.api = api
        self.notifier = notifier or Notifier()
        self.takeoffs: list[dict] = []
        self.company_id: int | None = None
        self.load_count = 0
        self._unsubscribers = [
            api.channel.subscribe(self._on_company_switched, CompanySwitched),
            api.channel.subscribe(self._on_status_changed, TakeoffStatusChanged),
        ]

    def load(self) -> list[dict]:
        self.load_count += 1
        try:
            takeoffs = self.api.list_takeoffs()
        except CompanySelectionRequired as exc:
            self.takeoffs = []
            self.notifier.warning(str(exc))
            return self.takeoffs
        except (ApiError, httpx.HTTPError) as exc:
            self.takeoffs = []
            detail = exc.message if isinstance(exc, ApiError) else 'Could not reach the server'
            self.notifier.error(f'Failed to load takeoffs: {detail}')
            return self.takeoffs
        self.takeoffs = takeoffs
        self.company_id = self.api.company_id()
        return self.takeoffs

    def find(self, takeoff_id: int) -> dict | None:
        for takeoff in self.takeoffs:
            if takeoff['id'] == takeoff_id:
                return takeoff
        return None

    def _on_company_switched(self, event: CompanySwitched) -> None:
        logger.info('Reloading takeoffs for company %s', event.company_id)
        self.takeoffs = []
        self.load()

    def _on_status_changed(self, event: TakeoffStatusChanged) -> None:
        takeoff = self.find(event.takeoff_id)
        if takeoff is not None:
            takeoff['status'] = event.status

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
