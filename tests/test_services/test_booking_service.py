import unittest
from unittest.mock import MagicMock
from datetime import datetime, timezone, timedelta

from botocore.exceptions import ClientError

from common.services.booking_service import BookingService
from common.models.bookings import Booking, BookingStatus
from common.models.notifications import NotificationEvent
from common.models.resources import Resource, ResourceKind
from common.models.users import User, UserRole
from common.schemas.bookings import BookingRequest
from common.utils.constants import MAX_APPROVAL_ATTEMPTS, TOUR_DEFAULT_NOTES
from common.utils.custom_exceptions import (
    ApprovalVersionMismatch,
    BookingConflict,
    ConcurrentModification,
    Forbidden,
    IllegalTransition,
    InvalidRange,
    NotFoundException,
    NotPending,
)


class TestBookingService(unittest.TestCase):

    def setUp(self):
        self.booking_repo = MagicMock()
        self.resource_service = MagicMock()
        self.user_repo = MagicMock()
        self.publisher = MagicMock()
        self.detector = MagicMock()
        self.detector.find_conflicts.return_value = []

        self.service = BookingService(
            booking_repo=self.booking_repo,
            resource_service=self.resource_service,
            user_repo=self.user_repo,
            publisher=self.publisher,
            conflict_detector=self.detector,
        )

        self.now = datetime.now(timezone.utc)
        self.room = Resource(resource_id="R1", name="Ruang Rapat")
        self.resource_service.get_bookable_resource.return_value = self.room

        self.req = BookingRequest(
            resource_id="R1",
            start_time=self.now + timedelta(days=1),
            end_time=self.now + timedelta(days=1, hours=2),
        )

    def _booking(self, status=BookingStatus.PENDING, **overrides):
        fields = dict(
            booking_id="b1",
            resource_id="R1",
            requester_id="u1",
            start_time=self.now + timedelta(hours=1),
            end_time=self.now + timedelta(hours=2),
            status=status,
        )
        fields.update(overrides)
        return Booking(**fields)

    def test_create_booking_success(self):
        booking = self.service.create_booking(self.req, "u1")

        self.booking_repo.add_booking.assert_called_once_with(booking)
        self.assertEqual(BookingStatus.PENDING, booking.status)
        self.assertEqual("R1", booking.resource_id)
        self.assertEqual(1, booking.guest_count)
        self.publisher.publish.assert_called_once_with(NotificationEvent.CREATED, booking)

    def test_create_booking_invalid_range_skips_conflict_check(self):
        self.req.end_time = self.req.start_time

        with self.assertRaises(InvalidRange):
            self.service.create_booking(self.req, "u1")

        self.detector.find_conflicts.assert_not_called()
        self.booking_repo.add_booking.assert_not_called()

    def test_create_booking_conflict(self):
        existing = self._booking(status=BookingStatus.APPROVED, booking_id="b0")
        self.detector.find_conflicts.return_value = [existing]

        with self.assertRaises(BookingConflict) as ctx:
            self.service.create_booking(self.req, "u1")

        self.assertEqual([existing], ctx.exception.conflicts)
        self.booking_repo.add_booking.assert_not_called()
        self.publisher.publish.assert_not_called()

    def test_create_booking_resource_not_found(self):
        self.resource_service.get_bookable_resource.side_effect = NotFoundException(
            "resource", "R1", 404
        )

        with self.assertRaises(NotFoundException):
            self.service.create_booking(self.req, "u1")

    def test_create_tour_booking_resolves_tour_resource(self):
        tour = Resource(resource_id="T1", name="Library Tour", kind=ResourceKind.TOUR)
        self.resource_service.get_tour_resource.return_value = tour
        req = BookingRequest(
            is_tour=True,
            start_time=self.req.start_time,
            end_time=self.req.end_time,
            guest_count=12,
        )

        booking = self.service.create_booking(req, "u1")

        self.assertEqual("T1", booking.resource_id)
        self.assertTrue(booking.is_tour)
        self.assertEqual(12, booking.guest_count)
        self.assertEqual(TOUR_DEFAULT_NOTES, booking.notes)
        self.assertIn("Library Tour", booking.description)

    def test_create_booking_publish_failure_does_not_fail(self):
        self.publisher.publish.side_effect = RuntimeError("queue down")

        booking = self.service.create_booking(self.req, "u1")

        self.booking_repo.add_booking.assert_called_once_with(booking)

    def test_create_booking_creates_missing_profile(self):
        self.user_repo.get_by_id.return_value = None

        self.service.create_booking(self.req, "u1", requester_email="u1@example.com")

        self.user_repo.add_user.assert_called_once()
        user = self.user_repo.add_user.call_args[0][0]
        self.assertEqual("u1@example.com", user.email)

    def test_create_booking_profile_race_is_ignored(self):
        self.user_repo.get_by_id.return_value = None
        self.user_repo.add_user.side_effect = ClientError(
            {"Error": {"Code": "TransactionCanceledException"}}, "TransactWriteItems"
        )

        self.service.create_booking(self.req, "u1", requester_email="u1@example.com")

        self.booking_repo.add_booking.assert_called_once()

    def test_create_booking_records_admin_role(self):
        self.user_repo.get_by_id.return_value = None

        self.service.create_booking(
            self.req,
            "admin-1",
            requester_email="admin@lib.test",
            requester_role=UserRole.ADMIN,
            requester_name="Sari",
        )

        user = self.user_repo.add_user.call_args[0][0]
        self.assertEqual(UserRole.ADMIN, user.role)
        self.assertEqual("admin@lib.test", user.email)
        self.assertEqual("Sari", user.full_name)

    def test_sync_profile_promotes_existing_user(self):
        self.user_repo.get_by_id.return_value = User(
            user_id="u1", email="u1@lib.test", full_name="Rina"
        )

        self.service.sync_profile("u1", "u1@lib.test", UserRole.ADMIN)

        self.user_repo.add_user.assert_not_called()
        saved = self.user_repo.save_user.call_args[0][0]
        self.assertEqual(UserRole.ADMIN, saved.role)
        self.assertEqual("Rina", saved.full_name)

    def test_sync_profile_unchanged_writes_nothing(self):
        self.user_repo.get_by_id.return_value = User(
            user_id="a1", email="a1@lib.test", role=UserRole.ADMIN
        )

        self.service.sync_profile("a1", "a1@lib.test", UserRole.ADMIN)

        self.user_repo.add_user.assert_not_called()
        self.user_repo.save_user.assert_not_called()

    def test_sync_profile_without_email_is_skipped(self):
        self.service.sync_profile("a1", None, UserRole.ADMIN)

        self.user_repo.get_by_id.assert_not_called()

    def test_failed_write_restores_status_and_timestamp(self):
        booking = self._booking()
        stamp = booking.updated_at
        self.booking_repo.get_booking_by_id.return_value = booking
        self.booking_repo.update_booking_status.side_effect = ClientError(
            {"Error": {"Code": "InternalError"}}, "TransactWriteItems"
        )

        with self.assertRaises(ClientError):
            self.service.set_booking_status(
                "b1", BookingStatus.REJECTED, "admin-1", now=self.now + timedelta(hours=3)
            )

        self.assertEqual(BookingStatus.PENDING, booking.status)
        self.assertEqual(stamp, booking.updated_at)

    def test_approve_success(self):
        booking = self._booking()
        self.booking_repo.get_booking_by_id.return_value = booking
        self.booking_repo.get_approval_version.return_value = 4

        result = self.service.set_booking_status("b1", BookingStatus.APPROVED, "admin-1")

        self.assertEqual(BookingStatus.APPROVED, result.status)
        self.detector.find_conflicts.assert_called_once_with(
            "R1", booking.start_time, booking.end_time, exclude_booking_id="b1"
        )
        self.booking_repo.update_booking_status.assert_called_once_with(
            booking, BookingStatus.PENDING, expected_version=4
        )
        self.publisher.publish.assert_called_once_with(NotificationEvent.APPROVED, booking)

    def test_approve_with_conflict(self):
        self.booking_repo.get_booking_by_id.return_value = self._booking()
        self.detector.find_conflicts.return_value = [
            self._booking(status=BookingStatus.APPROVED, booking_id="b0")
        ]

        with self.assertRaises(BookingConflict):
            self.service.set_booking_status("b1", BookingStatus.APPROVED, "admin-1")

        self.booking_repo.update_booking_status.assert_not_called()
        self.publisher.publish.assert_not_called()

    def test_approve_retries_after_lost_race(self):
        self.booking_repo.get_booking_by_id.side_effect = lambda _id: self._booking()
        self.booking_repo.get_approval_version.side_effect = [1, 2]
        self.booking_repo.update_booking_status.side_effect = [
            ApprovalVersionMismatch("R1"),
            None,
        ]

        result = self.service.set_booking_status("b1", BookingStatus.APPROVED, "admin-1")

        self.assertEqual(BookingStatus.APPROVED, result.status)
        self.assertEqual(2, self.booking_repo.update_booking_status.call_count)
        self.assertEqual(2, self.detector.find_conflicts.call_count)
        _, kwargs = self.booking_repo.update_booking_status.call_args
        self.assertEqual(2, kwargs["expected_version"])

    def test_approve_gives_up_after_max_attempts(self):
        self.booking_repo.get_booking_by_id.side_effect = lambda _id: self._booking()
        self.booking_repo.get_approval_version.return_value = 1
        self.booking_repo.update_booking_status.side_effect = ApprovalVersionMismatch("R1")

        with self.assertRaises(BookingConflict):
            self.service.set_booking_status("b1", BookingStatus.APPROVED, "admin-1")

        self.assertEqual(
            MAX_APPROVAL_ATTEMPTS, self.booking_repo.update_booking_status.call_count
        )
        self.publisher.publish.assert_not_called()

    def test_reject_notifies(self):
        booking = self._booking()
        self.booking_repo.get_booking_by_id.return_value = booking

        self.service.set_booking_status("b1", BookingStatus.REJECTED, "admin-1")

        self.booking_repo.update_booking_status.assert_called_once_with(
            booking, BookingStatus.PENDING, expected_version=None
        )
        self.detector.find_conflicts.assert_not_called()
        self.publisher.publish.assert_called_once_with(NotificationEvent.REJECTED, booking)

    def test_status_change_survives_notification_failure(self):
        self.booking_repo.get_booking_by_id.return_value = self._booking()
        self.publisher.publish.side_effect = RuntimeError("queue down")

        result = self.service.set_booking_status("b1", BookingStatus.REJECTED, "admin-1")

        self.assertEqual(BookingStatus.REJECTED, result.status)

    def test_set_status_not_found(self):
        self.booking_repo.get_booking_by_id.return_value = None

        with self.assertRaises(NotFoundException):
            self.service.set_booking_status("missing", BookingStatus.APPROVED, "admin-1")

    def test_set_status_illegal_from_terminal(self):
        self.booking_repo.get_booking_by_id.return_value = self._booking(
            status=BookingStatus.REJECTED
        )

        with self.assertRaises(IllegalTransition):
            self.service.set_booking_status("b1", BookingStatus.APPROVED, "admin-1")

        self.booking_repo.update_booking_status.assert_not_called()

    def test_concurrent_modification_becomes_illegal_transition(self):
        self.booking_repo.get_booking_by_id.side_effect = [
            self._booking(),
            self._booking(status=BookingStatus.CANCELLED),
        ]
        self.booking_repo.update_booking_status.side_effect = ConcurrentModification("b1")

        with self.assertRaises(IllegalTransition) as ctx:
            self.service.set_booking_status("b1", BookingStatus.REJECTED, "admin-1")

        self.assertEqual(BookingStatus.CANCELLED, ctx.exception.current)
        self.assertEqual(BookingStatus.REJECTED, ctx.exception.target)
        self.publisher.publish.assert_not_called()

    def test_cancel_by_owner(self):
        booking = self._booking()
        self.booking_repo.get_booking_by_id.return_value = booking

        result = self.service.cancel_booking("b1", "u1")

        self.assertEqual(BookingStatus.CANCELLED, result.status)
        self.booking_repo.update_booking_status.assert_called_once_with(
            booking, BookingStatus.PENDING, expected_version=None
        )
        self.publisher.publish.assert_not_called()

    def test_cancel_by_other_user_forbidden(self):
        self.booking_repo.get_booking_by_id.return_value = self._booking()

        with self.assertRaises(Forbidden):
            self.service.cancel_booking("b1", "u2")

        self.booking_repo.update_booking_status.assert_not_called()

    def test_cancel_not_pending(self):
        self.booking_repo.get_booking_by_id.return_value = self._booking(
            status=BookingStatus.APPROVED
        )

        with self.assertRaises(NotPending):
            self.service.cancel_booking("b1", "u1")

    def test_cancel_rechecks_status_at_write(self):
        self.booking_repo.get_booking_by_id.side_effect = [
            self._booking(),
            self._booking(status=BookingStatus.APPROVED),
        ]
        self.booking_repo.update_booking_status.side_effect = ConcurrentModification("b1")

        with self.assertRaises(NotPending):
            self.service.cancel_booking("b1", "u1")

    def test_sweep_completes_only_expired_approved(self):
        expired = self._booking(
            booking_id="expired",
            status=BookingStatus.APPROVED,
            start_time=self.now - timedelta(hours=2),
            end_time=self.now - timedelta(hours=1),
        )
        running = self._booking(
            booking_id="running",
            status=BookingStatus.APPROVED,
            start_time=self.now - timedelta(hours=1),
            end_time=self.now + timedelta(hours=1),
        )
        pending_past = self._booking(
            booking_id="pending",
            start_time=self.now - timedelta(hours=2),
            end_time=self.now - timedelta(hours=1),
        )

        changed = self.service.sweep_expired([expired, running, pending_past], self.now)

        self.assertEqual(["expired"], changed)
        self.assertEqual(BookingStatus.COMPLETED, expired.status)
        self.assertEqual(BookingStatus.APPROVED, running.status)
        self.assertEqual(BookingStatus.PENDING, pending_past.status)
        self.booking_repo.update_booking_status.assert_called_once_with(
            expired, BookingStatus.APPROVED, expected_version=None
        )

    def test_sweep_is_idempotent(self):
        batch = [
            self._booking(
                status=BookingStatus.APPROVED,
                start_time=self.now - timedelta(hours=2),
                end_time=self.now - timedelta(hours=1),
            )
        ]

        first = self.service.sweep_expired(batch, self.now)
        second = self.service.sweep_expired(batch, self.now)

        self.assertEqual(["b1"], first)
        self.assertEqual([], second)
        self.booking_repo.update_booking_status.assert_called_once()

    def test_sweep_continues_after_failure(self):
        past = dict(
            status=BookingStatus.APPROVED,
            start_time=self.now - timedelta(hours=2),
            end_time=self.now - timedelta(hours=1),
        )
        first = self._booking(booking_id="b1", **past)
        second = self._booking(booking_id="b2", **past)
        self.booking_repo.update_booking_status.side_effect = [
            ClientError({"Error": {"Code": "InternalError"}}, "TransactWriteItems"),
            None,
        ]

        changed = self.service.sweep_expired([first, second], self.now)

        self.assertEqual(["b2"], changed)
        self.assertEqual(BookingStatus.APPROVED, first.status)
        self.assertEqual(BookingStatus.COMPLETED, second.status)

    def test_sweep_skips_booking_changed_elsewhere(self):
        booking = self._booking(
            status=BookingStatus.APPROVED,
            start_time=self.now - timedelta(hours=2),
            end_time=self.now - timedelta(hours=1),
        )
        self.booking_repo.update_booking_status.side_effect = ConcurrentModification("b1")
        self.booking_repo.get_booking_by_id.return_value = self._booking(
            status=BookingStatus.COMPLETED
        )

        self.assertEqual([], self.service.sweep_expired([booking], self.now))

    def test_list_bookings_sweeps_before_returning(self):
        expired = self._booking(
            status=BookingStatus.APPROVED,
            start_time=self.now - timedelta(hours=2),
            end_time=self.now - timedelta(hours=1),
        )
        pending = self._booking(booking_id="b2")
        self.booking_repo.list_bookings.return_value = [expired, pending]

        result = self.service.list_bookings(status=BookingStatus.COMPLETED, now=self.now)

        self.assertEqual([expired], result)
        self.booking_repo.update_booking_status.assert_called_once()

    def test_sweep_all_expired_uses_expiry_index(self):
        expired = self._booking(
            status=BookingStatus.APPROVED,
            start_time=self.now - timedelta(hours=2),
            end_time=self.now - timedelta(hours=1),
        )
        self.booking_repo.get_expired_approved.return_value = [expired]

        self.assertEqual(["b1"], self.service.sweep_all_expired(self.now))
        self.booking_repo.get_expired_approved.assert_called_once_with(self.now)

    def test_check_availability(self):
        start = self.now + timedelta(hours=1)
        end = self.now + timedelta(hours=2)

        self.assertEqual([], self.service.check_availability("R1", start, end, "b9"))

        self.resource_service.get_bookable_resource.assert_called_once_with("R1")
        self.detector.find_conflicts.assert_called_once_with("R1", start, end, "b9")

    def test_get_user_bookings(self):
        self.booking_repo.get_user_bookings.return_value = ["b1", "b2"]

        self.assertEqual(["b1", "b2"], self.service.get_user_bookings("u1"))
        self.booking_repo.get_user_bookings.assert_called_once_with("u1")


if __name__ == "__main__":
    unittest.main()
