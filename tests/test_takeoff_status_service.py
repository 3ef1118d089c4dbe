from __future__ import annotations

import unittest
from itertools import product

from takeoff_portal.auth import Role
from takeoff_portal.services.takeoff_status_service import (
    STATUS_CONFIG,
    TRANSITION_RULES,
    InvalidStatusTransition,
    SideEffect,
    StatusTransitionForbidden,
    TakeoffStatus,
    can_change_status,
    can_edit_measurements,
    check_transition,
    describe_workflow,
    get_next_statuses,
    get_status_info,
    next_actions,
    parse_status,
    roles_can_advance,
    user_can_advance,
)


class StatusConfigTests(unittest.TestCase):
    def test_each_status_has_exactly_one_successor_except_closed(self) -> None:
        for status in TakeoffStatus:
            successors = get_next_statuses(status)
            if status == TakeoffStatus.CLOSED:
                self.assertEqual(successors, [])
            else:
                self.assertEqual([info.id for info in successors], [TakeoffStatus(status + 1)])

    def test_change_is_never_transitive(self) -> None:
        for source, target in product(range(0, 10), repeat=2):
            expected = 1 <= source <= 7 and target == source + 1
            self.assertEqual(can_change_status(source, target), expected, (source, target))

    def test_unknown_status_info_raises(self) -> None:
        for value in (0, 9, 'abc', None):
            with self.assertRaises(ValueError):
                get_status_info(value)

    def test_parse_status(self) -> None:
        self.assertEqual(parse_status('4'), TakeoffStatus.READY_TO_SHIP)
        self.assertEqual(parse_status(8), TakeoffStatus.CLOSED)
        self.assertIsNone(parse_status(True))
        self.assertIsNone(parse_status('shipped'))
        self.assertIsNone(parse_status(12))

    def test_labels_match_status_names(self) -> None:
        self.assertEqual(get_status_info(2).label, 'To Measure')
        self.assertEqual(get_status_info(TakeoffStatus.BACK_TRIM_COMPLETED).label, 'Back Trim Completed')
        self.assertEqual(set(STATUS_CONFIG), set(TakeoffStatus))


class RolePredicateTests(unittest.TestCase):
    EXPECTED = {
        Role.MANAGER: {1, 3, 4, 5, 6, 7},
        Role.CARPENTER: {2, 5, 6},
        Role.DELIVERY: {4},
        Role.SUPER_ADMIN: set(),
    }

    def test_role_table(self) -> None:
        for role, statuses in self.EXPECTED.items():
            for status in TakeoffStatus:
                self.assertEqual(user_can_advance(status, role), status in statuses, (role, status))

    def test_transition_rules_agree_with_role_predicate(self) -> None:
        for source, rule in TRANSITION_RULES.items():
            self.assertEqual(rule.source, source)
            self.assertEqual(rule.target, source + 1)
            for role in Role:
                self.assertEqual(role in rule.roles, user_can_advance(source, role), (source, role))

    def test_closed_is_terminal_for_everyone(self) -> None:
        self.assertNotIn(TakeoffStatus.CLOSED, TRANSITION_RULES)
        for role in Role:
            self.assertFalse(user_can_advance(TakeoffStatus.CLOSED, role))
            self.assertEqual(next_actions(TakeoffStatus.CLOSED, {role}), [])

    def test_any_role_of_a_multi_role_user_permits(self) -> None:
        roles = {Role.CARPENTER, Role.DELIVERY}
        self.assertTrue(roles_can_advance(TakeoffStatus.READY_TO_SHIP, roles))
        self.assertTrue(roles_can_advance(TakeoffStatus.TO_MEASURE, roles))
        self.assertFalse(roles_can_advance(TakeoffStatus.UNDER_REVIEW, roles))

    def test_side_effects(self) -> None:
        self.assertEqual(TRANSITION_RULES[TakeoffStatus.CREATED].side_effect, SideEffect.CARPENTER_ASSIGNMENT)
        self.assertEqual(TRANSITION_RULES[TakeoffStatus.TO_MEASURE].side_effect, SideEffect.MEASUREMENT_CONFIRMATION)
        self.assertEqual(TRANSITION_RULES[TakeoffStatus.READY_TO_SHIP].side_effect, SideEffect.DELIVERY_PHOTO)
        others = set(TRANSITION_RULES) - {TakeoffStatus.CREATED, TakeoffStatus.TO_MEASURE, TakeoffStatus.READY_TO_SHIP}
        for status in others:
            self.assertEqual(TRANSITION_RULES[status].side_effect, SideEffect.NONE)

    def test_next_actions_empty_without_permission(self) -> None:
        self.assertEqual(next_actions(TakeoffStatus.UNDER_REVIEW, {Role.CARPENTER}), [])
        self.assertEqual(next_actions(TakeoffStatus.CREATED, {Role.SUPER_ADMIN}), [])
        actions = next_actions(TakeoffStatus.READY_TO_SHIP, {Role.DELIVERY})
        self.assertEqual([action.target for action in actions], [TakeoffStatus.SHIPPED])
        self.assertEqual(actions[0].action_label, 'Mark as Shipped')


class CheckTransitionTests(unittest.TestCase):
    def test_skipping_a_status_is_invalid(self) -> None:
        with self.assertRaises(InvalidStatusTransition):
            check_transition(TakeoffStatus.CREATED, TakeoffStatus.UNDER_REVIEW, {Role.MANAGER})

    def test_going_back_is_invalid(self) -> None:
        with self.assertRaises(InvalidStatusTransition):
            check_transition(TakeoffStatus.UNDER_REVIEW, TakeoffStatus.TO_MEASURE, {Role.MANAGER})

    def test_wrong_role_is_forbidden(self) -> None:
        with self.assertRaises(StatusTransitionForbidden):
            check_transition(TakeoffStatus.TO_MEASURE, TakeoffStatus.UNDER_REVIEW, {Role.MANAGER})
        with self.assertRaises(PermissionError):
            check_transition(TakeoffStatus.UNDER_REVIEW, TakeoffStatus.READY_TO_SHIP, {Role.DELIVERY})

    def test_allowed_transition_returns_rule(self) -> None:
        rule = check_transition(TakeoffStatus.SHIPPED, TakeoffStatus.TRIMMING_COMPLETED, {Role.CARPENTER})
        self.assertEqual(rule.action_label, 'Mark Trimming Completed')


class EditPredicateTests(unittest.TestCase):
    def test_measurement_editing_windows(self) -> None:
        self.assertTrue(can_edit_measurements(TakeoffStatus.CREATED, {Role.MANAGER}))
        self.assertFalse(can_edit_measurements(TakeoffStatus.TO_MEASURE, {Role.MANAGER}))
        self.assertTrue(can_edit_measurements(TakeoffStatus.TO_MEASURE, {Role.CARPENTER}))
        self.assertFalse(can_edit_measurements(TakeoffStatus.UNDER_REVIEW, {Role.CARPENTER}))
        self.assertFalse(can_edit_measurements(TakeoffStatus.CREATED, {Role.DELIVERY}))


class DescribeWorkflowTests(unittest.TestCase):
    def test_rows_cover_every_status(self) -> None:
        rows = describe_workflow()
        self.assertEqual([row['id'] for row in rows], list(range(1, 9)))
        ready = rows[3]
        self.assertEqual(ready['canChangeTo'], [5])
        self.assertEqual(ready['allowedRoles'], ['delivery', 'manager'])
        self.assertEqual(ready['sideEffect'], 'delivery_photo')
        self.assertEqual(rows[7]['canChangeTo'], [])
        self.assertIsNone(rows[7]['actionLabel'])


if __name__ == '__main__':
    unittest.main()
