import html
import json
import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List, Optional

import boto3

from common.models.bookings import Booking
from common.models.notifications import NotificationEvent, NotificationStatus
from common.repository.notification_repo import NotificationRepository
from common.repository.resource_repo import ResourceRepository
from common.repository.user_repo import UserRepository
from common.schemas.bookings import BookingResponse, serialize_booking
from common.utils.constants import REGION
from common.utils.custom_exceptions import NotificationDeliveryFailed
from common.utils.datetime_normaliser import utc_now

logger = logging.getLogger(__name__)

SUBJECTS = {
    NotificationEvent.CREATED: "New Booking Request",
    NotificationEvent.APPROVED: "Booking Approved",
    NotificationEvent.REJECTED: "Booking Rejected",
}


class NotificationPublisher:
    """Emits booking events onto the notification queue.

    Publishing never raises: a broken queue must not fail the booking
    operation that already committed.
    """

    def __init__(self, queue_url: Optional[str], region=REGION):
        self.queue_url = queue_url
        self.client = boto3.client("sqs", region_name=region)

    def publish(self, event: NotificationEvent, booking: Booking) -> bool:
        if not self.queue_url:
            logger.warning(f"No notification queue configured, dropping {event.value} for {booking.booking_id}")
            return False

        payload = {"event": event.value, "booking": serialize_booking(booking)}
        try:
            self.client.send_message(
                QueueUrl=self.queue_url,
                MessageBody=json.dumps(payload),
                MessageAttributes={
                    "event": {"DataType": "String", "StringValue": event.value}
                },
            )
        except Exception:
            logger.exception(f"Could not publish {event.value} for booking {booking.booking_id}")
            return False

        logger.info(f"Published {event.value} for booking {booking.booking_id}")
        return True


class NotificationService:
    def __init__(
        self,
        notification_repo: NotificationRepository,
        user_repo: UserRepository,
        resource_repo: ResourceRepository,
        sender: Optional[str],
        region=REGION,
    ):
        self.notification_repo = notification_repo
        self.user_repo = user_repo
        self.resource_repo = resource_repo
        self.sender = sender
        self.ses = boto3.client("ses", region_name=region)

    def handle(self, message: dict) -> bool:
        event = NotificationEvent(message["event"])
        booking = BookingResponse.model_validate(message["booking"])

        if not self.notification_repo.claim(booking.booking_id, event):
            logger.info(f"{event.value} for booking {booking.booking_id} already handled, skipping")
            return False

        try:
            recipients = self._recipients(event, booking)
            if not recipients:
                logger.warning(f"No recipients for {event.value} on booking {booking.booking_id}")
            subject = SUBJECTS[event]
            body = self._render(event, booking)
            for recipient in recipients:
                self.send_email(recipient, subject, body)
        except Exception as err:
            self.notification_repo.mark(booking.booking_id, event, NotificationStatus.FAILED)
            raise NotificationDeliveryFailed(
                f"{event.value} for booking {booking.booking_id}: {err}"
            ) from err

        self.notification_repo.mark(
            booking.booking_id,
            event,
            NotificationStatus.SENT,
            recipients=recipients,
            sent_at=utc_now(),
        )
        return True

    def _recipients(self, event: NotificationEvent, booking: BookingResponse) -> List[str]:
        if event == NotificationEvent.CREATED:
            return self.user_repo.get_admin_emails()
        requester = self.user_repo.get_by_id(booking.requester_id)
        return [requester.email] if requester and requester.email else []

    def _render(self, event: NotificationEvent, booking: BookingResponse) -> str:
        resource = self.resource_repo.get_resource_by_id(booking.resource_id)
        room_name = html.escape(resource.name) if resource else "Unknown Room"
        requester = self.user_repo.get_by_id(booking.requester_id)
        user_name = html.escape((requester.full_name if requester else None) or "Unknown User")
        time = f"{booking.start_time.isoformat()} - {booking.end_time.isoformat()}"

        if event == NotificationEvent.CREATED:
            intro = "<p>A new booking has been requested.</p>"
        else:
            verb = "approved" if event == NotificationEvent.APPROVED else "rejected"
            intro = (
                f"<p>Dear {user_name},</p>"
                f"<p>Your booking for {room_name} at {time} has been {verb}.</p>"
            )

        return f"""
            <h1>{SUBJECTS[event]}</h1>
            {intro}
            <p>Details:</p>
            <ul>
              <li>Room: {room_name}</li>
              <li>Time: {time}</li>
              <li>User: {user_name}</li>
              <li>Guests: {booking.guest_count}</li>
            </ul>
            """

    def send_email(self, recipient: str, subject: str, html_body: str):
        if not self.sender:
            raise NotificationDeliveryFailed("NOTIFICATION_SENDER is not set")

        msg = MIMEMultipart()
        msg["From"] = self.sender
        msg["To"] = recipient
        msg["Subject"] = subject
        msg.attach(MIMEText(html_body, "html"))

        self.ses.send_raw_email(
            Source=self.sender,
            Destinations=[recipient],
            RawMessage={"Data": msg.as_string()},
        )
        logger.info(f"Sent '{subject}' to {recipient}")
