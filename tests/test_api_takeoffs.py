from __future__ import annotations

import os
import unittest

from portal_fixtures import PortalTestCase
from sqlalchemy import select

from takeoff_portal.db import SessionLocal
from takeoff_portal.models import AuditLog


class TakeoffRouteTests(PortalTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.manager_token = self.login('manager@acme.test')
        self.carpenter_token = self.login('carpenter@acme.test')
        self.delivery_token = self.login('delivery@acme.test')

    def test_health_check_needs_no_token(self) -> None:
        response = self.client.get('/api/health-check')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.text, 'OK')

    def test_missing_token_is_rejected(self) -> None:
        response = self.client.get('/api/takeoff', headers={'x-company-id': str(self.acme)})
        self.assertEqual(response.status_code, 401)

    def test_company_header_is_required(self) -> None:
        response = self.client.get('/api/takeoff', headers=self.auth_headers(self.manager_token))
        self.assertEqual(response.status_code, 400)
        response = self.client.get('/api/takeoff', headers={**self.auth_headers(self.manager_token), 'x-company-id': 'x'})
        self.assertEqual(response.status_code, 400)

    def test_foreign_company_header_is_forbidden(self) -> None:
        response = self.client.get('/api/takeoff', headers=self.auth_headers(self.manager_token, self.birch))
        self.assertEqual(response.status_code, 403)

    def test_create_without_carpenter_starts_created(self) -> None:
        response = self.client.post(
            '/api/takeoff',
            json={'customerName': 'Lakeview Homes', 'lot': '12', 'type': 'Model A'},
            headers=self.auth_headers(self.manager_token, self.acme),
        )
        self.assertEqual(response.status_code, 201, response.text)
        takeoff = response.json()['takeoff']
        self.assertEqual(takeoff['status'], 1)
        self.assertEqual(takeoff['company'], self.acme)
        self.assertEqual(takeoff['type'], 'Model A')
        self.assertIsNone(takeoff['carpentry'])

    def test_create_with_carpenter_starts_to_measure(self) -> None:
        response = self.client.post(
            '/api/takeoff',
            json={'customerName': 'Lakeview Homes', 'carpentry': self.carpenter},
            headers=self.auth_headers(self.manager_token, self.acme),
        )
        self.assertEqual(response.status_code, 201, response.text)
        takeoff = response.json()['takeoff']
        self.assertEqual(takeoff['status'], 2)
        self.assertEqual(takeoff['carpentry']['id'], self.carpenter)

    def test_create_rejects_carpenter_of_other_company(self) -> None:
        response = self.client.post(
            '/api/takeoff',
            json={'customerName': 'Lakeview Homes', 'carpentry': self.carpenter_b},
            headers=self.auth_headers(self.manager_token, self.acme),
        )
        self.assertEqual(response.status_code, 404)

    def test_carpenter_cannot_create(self) -> None:
        response = self.client.post(
            '/api/takeoff',
            json={'customerName': 'Lakeview Homes'},
            headers=self.auth_headers(self.carpenter_token, self.acme),
        )
        self.assertEqual(response.status_code, 403)

    def test_carpenter_only_sees_own_takeoffs(self) -> None:
        mine = self.add_takeoff(self.acme, status=2, carpenter_id=self.carpenter)
        self.add_takeoff(self.acme, status=1)
        self.add_takeoff(self.birch, status=1)

        carpenter_list = self.client.get('/api/takeoff', headers=self.auth_headers(self.carpenter_token, self.acme))
        manager_list = self.client.get('/api/takeoff', headers=self.auth_headers(self.manager_token, self.acme))
        delivery_list = self.client.get('/api/takeoff', headers=self.auth_headers(self.delivery_token, self.acme))

        self.assertEqual([t['id'] for t in carpenter_list.json()['takeoffs']], [mine])
        self.assertEqual(len(manager_list.json()['takeoffs']), 2)
        self.assertEqual(len(delivery_list.json()['takeoffs']), 2)

    def test_other_company_takeoff_is_not_found(self) -> None:
        other = self.add_takeoff(self.birch)
        response = self.client.get(f'/api/takeoff/{other}', headers=self.auth_headers(self.manager_token, self.acme))
        self.assertEqual(response.status_code, 404)

    def test_status_walk_through_every_role(self) -> None:
        takeoff_id = self.add_takeoff(self.acme, status=1, carpenter_id=self.carpenter)
        steps = [
            (self.manager_token, 2),
            (self.carpenter_token, 3),
            (self.manager_token, 4),
            (self.delivery_token, 5),
            (self.carpenter_token, 6),
            (self.manager_token, 7),
            (self.manager_token, 8),
        ]
        for token, status in steps:
            response = self.client.patch(
                f'/api/takeoff/{takeoff_id}/status',
                json={'status': status},
                headers=self.auth_headers(token, self.acme),
            )
            self.assertEqual(response.status_code, 200, (status, response.text))
            self.assertEqual(response.json()['takeoff']['status'], status)

        self.assertEqual(self.takeoff_row(takeoff_id).status, 8)
        with SessionLocal() as db:
            changes = db.execute(
                select(AuditLog).where(AuditLog.action == 'TAKEOFF_STATUS_CHANGED', AuditLog.takeoff_id == takeoff_id)
            ).scalars().all()
        self.assertEqual(len(changes), 7)

    def test_status_change_is_revalidated(self) -> None:
        takeoff_id = self.add_takeoff(self.acme, status=2, carpenter_id=self.carpenter)
        headers = self.auth_headers(self.manager_token, self.acme)

        skip = self.client.patch(f'/api/takeoff/{takeoff_id}/status', json={'status': 4}, headers=headers)
        wrong_role = self.client.patch(f'/api/takeoff/{takeoff_id}/status', json={'status': 3}, headers=headers)
        garbage = self.client.patch(f'/api/takeoff/{takeoff_id}/status', json={'status': 'shipped'}, headers=headers)

        self.assertEqual(skip.status_code, 400)
        self.assertEqual(wrong_role.status_code, 403)
        self.assertEqual(garbage.status_code, 400)
        self.assertEqual(self.takeoff_row(takeoff_id).status, 2)

    def test_send_to_measure_requires_carpenter(self) -> None:
        takeoff_id = self.add_takeoff(self.acme, status=1)
        response = self.client.patch(
            f'/api/takeoff/{takeoff_id}/status',
            json={'status': 2},
            headers=self.auth_headers(self.manager_token, self.acme),
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.takeoff_row(takeoff_id).status, 1)

    def test_assigning_carpenter_moves_created_to_measure(self) -> None:
        takeoff_id = self.add_takeoff(self.acme, status=1)
        response = self.client.patch(
            f'/api/takeoff/{takeoff_id}/carpenter',
            json={'carpenterId': self.carpenter},
            headers=self.auth_headers(self.manager_token, self.acme),
        )
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()['takeoff']['status'], 2)

        carpenter_view = self.client.get(
            f'/api/takeoff/{takeoff_id}/next-actions',
            headers=self.auth_headers(self.carpenter_token, self.acme),
        )
        self.assertEqual(carpenter_view.json()['actions'][0]['sideEffect'], 'measurement_confirmation')

    def test_created_takeoff_offers_carpenter_assignment(self) -> None:
        headers = self.auth_headers(self.manager_token, self.acme)
        created = self.client.post('/api/takeoff', json={'customerName': 'Lakeview Homes'}, headers=headers)
        takeoff = created.json()['takeoff']
        self.assertEqual(takeoff['status'], 1)
        self.assertEqual(
            takeoff['nextActions'],
            [{'status': 2, 'label': 'Send to Carpenter', 'sideEffect': 'carpenter_assignment'}],
        )

        assigned = self.client.patch(
            f"/api/takeoff/{takeoff['id']}/carpenter",
            json={'carpenterId': self.carpenter},
            headers=headers,
        )
        self.assertEqual(assigned.status_code, 200, assigned.text)
        self.assertEqual(assigned.json()['takeoff']['status'], 2)
        self.assertEqual(self.takeoff_row(takeoff['id']).status, 2)

    def test_trim_carpenter_assignment_is_manager_only(self) -> None:
        takeoff_id = self.add_takeoff(self.acme, status=5, carpenter_id=self.carpenter)
        path = f'/api/takeoff/{takeoff_id}/trim-carpenter'

        denied = self.client.patch(
            path,
            json={'trimCarpenterId': self.carpenter},
            headers=self.auth_headers(self.carpenter_token, self.acme),
        )
        assigned = self.client.patch(
            path,
            json={'trimCarpenterId': self.carpenter},
            headers=self.auth_headers(self.manager_token, self.acme),
        )
        removed = self.client.delete(path, headers=self.auth_headers(self.manager_token, self.acme))

        self.assertEqual(denied.status_code, 403)
        self.assertEqual(assigned.json()['takeoff']['trimCarpentry']['id'], self.carpenter)
        self.assertIsNone(removed.json()['takeoff']['trimCarpentry'])

    def test_measurement_update_window(self) -> None:
        takeoff_id = self.add_takeoff(self.acme, status=2, carpenter_id=self.carpenter)
        body = {'measurements': {'singleDoors': [{'size': '30', 'qty': 4}]}, 'comment': 'Basement pending'}

        manager = self.client.post(
            f'/api/takeoff/{takeoff_id}/update',
            json=body,
            headers=self.auth_headers(self.manager_token, self.acme),
        )
        carpenter = self.client.post(
            f'/api/takeoff/{takeoff_id}/update',
            json=body,
            headers=self.auth_headers(self.carpenter_token, self.acme),
        )
        unknown_group = self.client.post(
            f'/api/takeoff/{takeoff_id}/update',
            json={'measurements': {'windows': []}},
            headers=self.auth_headers(self.carpenter_token, self.acme),
        )

        self.assertEqual(manager.status_code, 403)
        self.assertEqual(carpenter.status_code, 200, carpenter.text)
        detail = carpenter.json()['takeoff']
        self.assertEqual(detail['measurements']['singleDoors'], [{'size': '30', 'qty': '4'}])
        self.assertEqual(detail['comment'], 'Basement pending')
        self.assertEqual(unknown_group.status_code, 400)

    def test_carpenter_lookup(self) -> None:
        headers = self.auth_headers(self.manager_token, self.acme)
        found = self.client.get('/api/takeoff/carpenters/lookup', params={'email': 'CARPENTER@acme.test'}, headers=headers)
        foreign = self.client.get('/api/takeoff/carpenters/lookup', params={'email': 'carpenter@birch.test'}, headers=headers)
        self.assertEqual(found.json()['carpenter']['id'], self.carpenter)
        self.assertEqual(foreign.status_code, 404)

    def test_status_config(self) -> None:
        response = self.client.get('/api/status-config', headers=self.auth_headers(self.carpenter_token))
        statuses = response.json()['statuses']
        self.assertEqual(len(statuses), 8)
        self.assertEqual(statuses[1]['allowedRoles'], ['carpenter'])


class DeliveryPhotoRouteTests(PortalTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.takeoff_id = self.add_takeoff(self.acme, status=4, carpenter_id=self.carpenter)
        self.path = f'/api/takeoff/{self.takeoff_id}/delivery-photo'

    def _upload(self, token: str, content: bytes = b'\xff\xd8jpeg', content_type: str = 'image/jpeg'):
        return self.client.post(
            self.path,
            files={'deliveryPhoto': ('truck.jpg', content, content_type)},
            headers=self.auth_headers(token, self.acme),
        )

    def test_delivery_user_uploads_photo(self) -> None:
        response = self._upload(self.login('delivery@acme.test'))
        self.assertEqual(response.status_code, 200, response.text)
        stored = response.json()['takeoff']['deliveryPhoto']
        self.assertTrue(stored.startswith(self.upload_dir))
        self.assertTrue(os.path.basename(stored).startswith('deliveryPhoto-'))
        self.assertTrue(os.path.exists(stored))

    def test_carpenter_cannot_upload(self) -> None:
        response = self._upload(self.login('carpenter@acme.test'))
        self.assertEqual(response.status_code, 403)
        self.assertEqual(os.listdir(self.upload_dir), [])

    def test_non_image_and_oversized_are_rejected(self) -> None:
        token = self.login('manager@acme.test')
        not_image = self._upload(token, b'%PDF-1.4', 'application/pdf')
        too_big = self._upload(token, b'x' * (5 * 1024 * 1024 + 1))
        self.assertEqual(not_image.status_code, 400)
        self.assertEqual(too_big.status_code, 400)
        self.assertEqual(os.listdir(self.upload_dir), [])

    def test_wrong_status_is_rejected(self) -> None:
        takeoff_id = self.add_takeoff(self.acme, status=3, carpenter_id=self.carpenter)
        response = self.client.post(
            f'/api/takeoff/{takeoff_id}/delivery-photo',
            files={'deliveryPhoto': ('truck.jpg', b'\xff\xd8jpeg', 'image/jpeg')},
            headers=self.auth_headers(self.login('delivery@acme.test'), self.acme),
        )
        self.assertEqual(response.status_code, 400)


if __name__ == '__main__':
    unittest.main()
