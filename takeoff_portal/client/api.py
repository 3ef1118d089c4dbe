from __future__ import annotations

import logging

import httpx

from takeoff_portal.client.company_context import CompanyContextResolver
from takeoff_portal.client.events import CompanySwitched, EventChannel
from takeoff_portal.client.session import SessionContext, UserRecord
from takeoff_portal.services.company_scope_service import COMPANY_HEADER
from takeoff_portal.services.photo_storage_service import PHOTO_FIELD_NAME


logger = logging.getLogger(__name__)

AUTH_PREFIX = '/api/auth'


class ApiError(Exception):
    def __init__(self, status_code: int, detail: object):
        super().__init__(f'{status_code}: {detail}')
        self.status_code = status_code
        self.detail = detail

    @property
    def message(self) -> str:
        if isinstance(self.detail, str):
            return self.detail
        return str(self.detail)


class CompanySelectionRequired(Exception):
    """Raised for tenant requests while a multi-company user has no active company."""


class PortalClient:
    def __init__(
        self,
        http: httpx.Client,
        *,
        resolver: CompanyContextResolver | None = None,
        channel: EventChannel | None = None,
    ):
        self.http = http
        self.resolver = resolver or CompanyContextResolver()
        self.channel = channel or EventChannel()
        self.session: SessionContext | None = None

    @property
    def user(self) -> UserRecord | None:
        return self.session.user if self.session else None

    def company_id(self) -> int | None:
        return self.resolver.resolve(self.user)

    def _headers(self, path: str) -> dict[str, str]:
        headers = {}
        if self.session is not None:
            headers['Authorization'] = f'Bearer {self.session.token}'
        if path.startswith(AUTH_PREFIX):
            return headers
        if self.resolver.requires_selection(self.user):
            raise CompanySelectionRequired('Select a company before loading company data')
        company_id = self.resolver.resolve(self.user)
        if company_id is not None:
            headers[COMPANY_HEADER] = str(company_id)
        return headers

    def request(self, method: str, path: str, **kwargs) -> dict:
        headers = {**self._headers(path), **kwargs.pop('headers', {})}
        response = self.http.request(method, path, headers=headers, **kwargs)
        if response.is_error:
            detail = _error_detail(response)
            logger.info('%s %s failed with %s: %s', method, path, response.status_code, detail)
            raise ApiError(response.status_code, detail)
        if not response.content:
            return {}
        return response.json()

    def _start_session(self, payload: dict) -> SessionContext:
        self.session = SessionContext(token=payload['token'], user=UserRecord.from_payload(payload['user']))
        self.resolver.invalidate()
        return self.session

    def login(self, email: str, password: str) -> SessionContext:
        payload = self.request('POST', f'{AUTH_PREFIX}/login', json={'email': email, 'password': password})
        return self._start_session(payload)

    def logout(self) -> None:
        try:
            if self.session is not None:
                self.request('POST', f'{AUTH_PREFIX}/logout')
        finally:
            self.session = None
            self.resolver.invalidate()

    def me(self) -> UserRecord:
        payload = self.request('GET', f'{AUTH_PREFIX}/me')
        user = UserRecord.from_payload(payload['user'])
        if self.session is not None:
            self.session = SessionContext(token=self.session.token, user=user)
            self.resolver.invalidate()
        return user

    def my_companies(self) -> list[dict]:
        if self.user is None or self.user.is_super_admin:
            return []
        return self.request('GET', f'{AUTH_PREFIX}/my-companies')['companies']

    def select_company(self, company_id: int) -> SessionContext:
        """Switch the active company.

        The session, token and tenant cache change only after the server accepts
        the switch; subscribers are told afterwards. On failure the prior session
        stays in place and the error propagates.
        """
        previous = self.company_id() if self.user and not self.user.requires_company_selection else None
        payload = self.request('POST', f'{AUTH_PREFIX}/select-company', json={'companyId': company_id})
        session = self._start_session(payload)
        logger.info('Switched active company from %s to %s', previous, company_id)
        self.channel.publish(CompanySwitched(previous_company_id=previous, company_id=company_id))
        return session

    def change_first_password(self, current_password: str, new_password: str, confirm_password: str) -> UserRecord:
        payload = self.request(
            'POST',
            f'{AUTH_PREFIX}/first-password-change',
            json={
                'currentPassword': current_password,
                'newPassword': new_password,
                'confirmPassword': confirm_password,
            },
        )
        user = UserRecord.from_payload(payload['user'])
        if self.session is not None:
            self.session = SessionContext(token=self.session.token, user=user)
        return user

    def status_config(self) -> list[dict]:
        return self.request('GET', '/api/status-config')['statuses']

    def list_takeoffs(self) -> list[dict]:
        return self.request('GET', '/api/takeoff')['takeoffs']

    def get_takeoff(self, takeoff_id: int) -> dict:
        return self.request('GET', f'/api/takeoff/{takeoff_id}')['takeoff']

    def create_takeoff(self, fields: dict) -> dict:
        return self.request('POST', '/api/takeoff', json=fields)['takeoff']

    def update_takeoff(self, takeoff_id: int, fields: dict) -> dict:
        return self.request('POST', f'/api/takeoff/{takeoff_id}/update', json=fields)['takeoff']

    def update_takeoff_status(self, takeoff_id: int, status: int) -> dict:
        return self.request('PATCH', f'/api/takeoff/{takeoff_id}/status', json={'status': int(status)})['takeoff']

    def upload_delivery_photo(self, takeoff_id: int, *, content: bytes, filename: str, content_type: str) -> dict:
        files = {PHOTO_FIELD_NAME: (filename, content, content_type)}
        return self.request('POST', f'/api/takeoff/{takeoff_id}/delivery-photo', files=files)['takeoff']

    def assign_carpenter(self, takeoff_id: int, carpenter_id: int) -> dict:
        return self.request(
            'PATCH',
            f'/api/takeoff/{takeoff_id}/carpenter',
            json={'carpenterId': carpenter_id},
        )['takeoff']


def _error_detail(response: httpx.Response) -> object:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict):
        return body.get('detail', response.text)
    return body if body is not None else response.text
