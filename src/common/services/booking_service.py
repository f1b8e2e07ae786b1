import logging
from datetime import datetime
from typing import Iterable, List, Optional

from botocore.exceptions import ClientError

from common.models.bookings import Booking, BookingStatus
from common.models.notifications import NotificationEvent
from common.models.users import User, UserRole
from common.repository.booking_repo import BookingRepository
from common.repository.user_repo import UserRepository
from common.schemas.bookings import BookingRequest
from common.services.conflict_service import ConflictDetector
from common.services.notification_service import NotificationPublisher
from common.services.resource_service import ResourceService
from common.services import status_machine
from common.services.time_range import validate_time_range
from common.utils.constants import MAX_APPROVAL_ATTEMPTS, TOUR_DEFAULT_NOTES
from common.utils.custom_exceptions import (
    ApprovalVersionMismatch,
    BookingConflict,
    ConcurrentModification,
    Forbidden,
    IllegalTransition,
    NotFoundException,
    NotPending,
)
from common.utils.datetime_normaliser import utc_now

logger = logging.getLogger(__name__)

NOTIFIED_TRANSITIONS = {
    BookingStatus.APPROVED: NotificationEvent.APPROVED,
    BookingStatus.REJECTED: NotificationEvent.REJECTED,
}


class BookingService:
    def __init__(
        self,
        booking_repo: BookingRepository,
        resource_service: ResourceService,
        user_repo: Optional[UserRepository] = None,
        publisher: Optional[NotificationPublisher] = None,
        conflict_detector: Optional[ConflictDetector] = None,
    ):
        self.booking_repo = booking_repo
        self.resource_service = resource_service
        self.user_repo = user_repo
        self.publisher = publisher
        self.conflict_detector = conflict_detector or ConflictDetector(booking_repo)

    def create_booking(
        self,
        req: BookingRequest,
        requester_id: str,
        requester_email: Optional[str] = None,
        requester_role: UserRole = UserRole.USER,
        requester_name: Optional[str] = None,
    ) -> Booking:
        validate_time_range(req.start_time, req.end_time)

        if req.is_tour and not req.resource_id:
            resource = self.resource_service.get_tour_resource()
        else:
            resource = self.resource_service.get_bookable_resource(req.resource_id)

        conflicts = self.conflict_detector.find_conflicts(
            resource.resource_id, req.start_time, req.end_time
        )
        if conflicts:
            raise BookingConflict(conflicts)

        self.sync_profile(requester_id, requester_email, requester_role, requester_name)

        description = req.description
        notes = req.notes
        if req.is_tour:
            description = description or f"{resource.name} - Standard tour booking"
            notes = notes or TOUR_DEFAULT_NOTES

        booking = Booking(
            resource_id=resource.resource_id,
            requester_id=requester_id,
            start_time=req.start_time,
            end_time=req.end_time,
            guest_count=req.guest_count,
            is_tour=req.is_tour,
            description=description,
            notes=notes,
            proposal_file_ref=req.proposal_file,
        )
        self.booking_repo.add_booking(booking)
        logger.info(f"Created booking {booking.booking_id} on resource {resource.resource_id}")

        self._notify(NotificationEvent.CREATED, booking)
        return booking

    def get_booking(self, booking_id: str) -> Booking:
        booking = self.booking_repo.get_booking_by_id(booking_id)
        if booking is None:
            raise NotFoundException("booking", booking_id, 404)
        return booking

    def set_booking_status(
        self,
        booking_id: str,
        target: BookingStatus,
        actor_id: str,
        now: Optional[datetime] = None,
    ) -> Booking:
        booking = self.get_booking(booking_id)
        now = now or utc_now()

        if target == BookingStatus.APPROVED:
            booking = self._approve(booking, now)
        else:
            self._transition(booking, target, now)

        logger.info(f"Booking {booking_id} set to {target.value} by {actor_id}")

        event = NOTIFIED_TRANSITIONS.get(target)
        if event:
            self._notify(event, booking)
        return booking

    def cancel_booking(self, booking_id: str, requester_id: str) -> Booking:
        booking = self.get_booking(booking_id)
        if booking.requester_id != requester_id:
            raise Forbidden("only the requester can cancel this booking")
        if booking.status != BookingStatus.PENDING:
            raise NotPending(booking.status, BookingStatus.CANCELLED)

        try:
            self._transition(booking, BookingStatus.CANCELLED)
        except IllegalTransition as err:
            raise NotPending(err.current, BookingStatus.CANCELLED) from err
        logger.info(f"Booking {booking_id} cancelled by requester {requester_id}")
        return booking

    def sweep_expired(
        self, bookings: Iterable[Booking], now: Optional[datetime] = None
    ) -> List[str]:
        now = now or utc_now()
        changed = []
        for booking in bookings:
            if booking.status != BookingStatus.APPROVED or not booking.end_time < now:
                continue
            try:
                self._transition(booking, BookingStatus.COMPLETED, now)
            except IllegalTransition as err:
                logger.info(f"Skipping booking {booking.booking_id} in sweep: {err}")
                continue
            except Exception:
                logger.exception(f"Failed to complete expired booking {booking.booking_id}")
                continue
            changed.append(booking.booking_id)

        if changed:
            logger.info(f"Completed {len(changed)} expired booking(s)")
        return changed

    def sweep_all_expired(self, now: Optional[datetime] = None) -> List[str]:
        now = now or utc_now()
        return self.sweep_expired(self.booking_repo.get_expired_approved(now), now)

    def list_bookings(
        self, status: Optional[BookingStatus] = None, now: Optional[datetime] = None
    ) -> List[Booking]:
        bookings = self.booking_repo.list_bookings()
        # completions must be visible before an admin acts on this list
        self.sweep_expired(bookings, now)
        if status is not None:
            bookings = [b for b in bookings if b.status == status]
        return bookings

    def get_user_bookings(self, user_id: str) -> List[Booking]:
        return self.booking_repo.get_user_bookings(user_id)

    def check_availability(
        self,
        resource_id: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        validate_time_range(start, end)
        self.resource_service.get_bookable_resource(resource_id)
        return self.conflict_detector.find_conflicts(
            resource_id, start, end, exclude_booking_id
        )

    def _approve(self, booking: Booking, now: datetime) -> Booking:
        status_machine.ensure_transition(booking, BookingStatus.APPROVED, now)

        for attempt in range(1, MAX_APPROVAL_ATTEMPTS + 1):
            version = self.booking_repo.get_approval_version(booking.resource_id)
            conflicts = self.conflict_detector.find_conflicts(
                booking.resource_id,
                booking.start_time,
                booking.end_time,
                exclude_booking_id=booking.booking_id,
            )
            if conflicts:
                raise BookingConflict(conflicts)

            try:
                self._transition(
                    booking, BookingStatus.APPROVED, now, expected_version=version
                )
                return booking
            except ApprovalVersionMismatch:
                logger.info(
                    f"Approval race on resource {booking.resource_id}, "
                    f"retrying booking {booking.booking_id} (attempt {attempt})"
                )
                booking = self.get_booking(booking.booking_id)
                status_machine.ensure_transition(booking, BookingStatus.APPROVED, now)

        # every attempt lost the race; surface whatever now overlaps
        raise BookingConflict(
            self.conflict_detector.find_conflicts(
                booking.resource_id,
                booking.start_time,
                booking.end_time,
                exclude_booking_id=booking.booking_id,
            )
        )

    def _transition(
        self,
        booking: Booking,
        target: BookingStatus,
        now: Optional[datetime] = None,
        expected_version: Optional[int] = None,
    ):
        """Apply target in memory and persist it; the booking is left as stored on failure."""
        updated_at = booking.updated_at
        previous = status_machine.apply_transition(booking, target, now)
        try:
            self.booking_repo.update_booking_status(
                booking, previous, expected_version=expected_version
            )
        except ConcurrentModification:
            current = self.get_booking(booking.booking_id)
            booking.status = current.status
            booking.updated_at = current.updated_at
            raise IllegalTransition(current.status, target) from None
        except Exception:
            booking.status = previous
            booking.updated_at = updated_at
            raise

    def sync_profile(
        self,
        user_id: str,
        email: Optional[str],
        role: UserRole = UserRole.USER,
        full_name: Optional[str] = None,
    ):
        """Mirror the caller's identity from the auth provider into the profile table.

        Admin profiles feed the recipient list for new-booking notifications.
        """
        if self.user_repo is None or not email:
            return

        existing = self.user_repo.get_by_id(user_id)
        if existing is None:
            try:
                self.user_repo.add_user(
                    User(user_id=user_id, email=email, role=role, full_name=full_name)
                )
                return
            except ClientError as err:
                if err.response.get("Error", {}).get("Code") != "TransactionCanceledException":
                    raise
                logger.info(f"Profile for {user_id} was created concurrently")
                existing = self.user_repo.get_by_id(user_id)
                if existing is None:
                    return

        if (
            existing.role == role
            and existing.email == email
            and (not full_name or existing.full_name == full_name)
        ):
            return

        existing.role = role
        existing.email = email
        existing.full_name = full_name or existing.full_name
        self.user_repo.save_user(existing)
        logger.info(f"Profile for {user_id} synced with role {role.value}")

    def _notify(self, event: NotificationEvent, booking: Booking):
        if self.publisher is None:
            return
        try:
            self.publisher.publish(event, booking)
        except Exception:
            logger.exception(f"Notification {event.value} failed for booking {booking.booking_id}")
