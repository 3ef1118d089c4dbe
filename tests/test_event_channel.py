from __future__ import annotations

import unittest

from takeoff_portal.client.events import CompanySwitched, EventChannel, TakeoffStatusChanged


class EventChannelTests(unittest.TestCase):
    def test_delivers_in_subscription_order(self) -> None:
        channel = EventChannel()
        calls = []
        channel.subscribe(lambda event: calls.append(('first', event.company_id)))
        channel.subscribe(lambda event: calls.append(('second', event.company_id)))

        channel.publish(CompanySwitched(previous_company_id=1, company_id=2))

        self.assertEqual(calls, [('first', 2), ('second', 2)])

    def test_failing_subscriber_does_not_stop_delivery(self) -> None:
        channel = EventChannel()
        calls = []

        def broken(_event):
            raise RuntimeError('boom')

        channel.subscribe(broken)
        channel.subscribe(calls.append)
        event = CompanySwitched(previous_company_id=None, company_id=2)

        with self.assertLogs('takeoff_portal.client.events', level='ERROR'):
            channel.publish(event)

        self.assertEqual(calls, [event])

    def test_unsubscribe_and_type_filter(self) -> None:
        channel = EventChannel()
        switched = []
        unsubscribe = channel.subscribe(switched.append, CompanySwitched)

        channel.publish(TakeoffStatusChanged(takeoff_id=1, previous_status=1, status=2))
        self.assertEqual(switched, [])

        unsubscribe()
        unsubscribe()
        channel.publish(CompanySwitched(previous_company_id=1, company_id=2))
        self.assertEqual(switched, [])


if __name__ == '__main__':
    unittest.main()
