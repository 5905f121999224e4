"""
Tests for the appointment lifecycle state machine.
"""

from django.test import SimpleTestCase

from scheduling.constants import AppointmentStatus as S
from scheduling.exceptions import InvalidTransitionError
from scheduling.lifecycle import (
    INITIAL_STATUS,
    TERMINAL_STATUSES,
    LifecycleAction as A,
    allowed_actions,
    can_transition,
    is_terminal,
    next_status,
)


class LifecycleTests(SimpleTestCase):
    def test_initial_status(self):
        self.assertEqual(INITIAL_STATUS, S.SCHEDULED)

    def test_happy_path(self):
        status = S.SCHEDULED
        for action, expected in (
            (A.CONFIRM, S.CONFIRMED),
            (A.CHECK_IN, S.CHECKED_IN),
            (A.START, S.IN_PROGRESS),
            (A.COMPLETE, S.COMPLETED),
        ):
            status = next_status(status, action)
            self.assertEqual(status, expected)

    def test_forward_moves_may_skip(self):
        self.assertEqual(next_status(S.SCHEDULED, A.CHECK_IN), S.CHECKED_IN)
        self.assertEqual(next_status(S.SCHEDULED, A.START), S.IN_PROGRESS)

    def test_backward_moves_rejected(self):
        with self.assertRaises(InvalidTransitionError):
            next_status(S.CHECKED_IN, A.CONFIRM)
        with self.assertRaises(InvalidTransitionError):
            next_status(S.CONFIRMED, A.CONFIRM)

    def test_cancel_complete_reschedule_from_any_live_status(self):
        for status in (S.SCHEDULED, S.CONFIRMED, S.CHECKED_IN, S.IN_PROGRESS):
            with self.subTest(status=status):
                self.assertEqual(next_status(status, A.CANCEL), S.CANCELLED)
                self.assertEqual(next_status(status, A.COMPLETE), S.COMPLETED)
                self.assertEqual(next_status(status, A.RESCHEDULE), S.RESCHEDULED)

    def test_no_show_until_started(self):
        for status in (S.SCHEDULED, S.CONFIRMED, S.CHECKED_IN):
            self.assertEqual(next_status(status, A.NO_SHOW), S.NO_SHOW)
        with self.assertRaises(InvalidTransitionError):
            next_status(S.IN_PROGRESS, A.NO_SHOW)

    def test_terminal_statuses_accept_nothing(self):
        for status in TERMINAL_STATUSES:
            for action in A:
                with self.subTest(status=status, action=action):
                    with self.assertRaises(InvalidTransitionError) as ctx:
                        next_status(status, action)
                    self.assertEqual(ctx.exception.code, "invalid_transition")
                    self.assertEqual(ctx.exception.current_status, status)
            self.assertEqual(allowed_actions(status), [])
            self.assertTrue(is_terminal(status))

    def test_unknown_action(self):
        with self.assertRaises(InvalidTransitionError):
            next_status(S.SCHEDULED, "TELEPORT")

    def test_accepts_plain_strings(self):
        self.assertEqual(next_status("SCHEDULED", "CONFIRM"), S.CONFIRMED)

    def test_allowed_actions_from_in_progress(self):
        self.assertEqual(allowed_actions(S.IN_PROGRESS), [A.COMPLETE, A.CANCEL, A.RESCHEDULE])
        self.assertFalse(can_transition(S.IN_PROGRESS, A.CHECK_IN))
        self.assertFalse(is_terminal(S.IN_PROGRESS))
