from botocore.exceptions import ClientError
import logging
from datetime import datetime, timedelta
from typing import List, Optional
from common.models.notifications import NotificationEvent, NotificationStatus
from common.utils.constants import NOTIFICATION_CLAIM_TIMEOUT_SECONDS
from common.utils.datetime_normaliser import to_iso, to_utc, utc_now

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from types_boto3_dynamodb.service_resource import Table
else:
    Table = object

logger = logging.getLogger(__name__)


class NotificationRepository:
    def __init__(self, table: Table):
        self.table = table

    @staticmethod
    def _key(booking_id: str, event: NotificationEvent) -> dict:
        return {"pk": f"NOTIFICATION#{booking_id}", "sk": f"EVENT#{event.value}"}

    @staticmethod
    def _stamp(dt: datetime) -> str:
        # fixed width so stored stamps compare chronologically as strings
        return to_utc(dt).isoformat(timespec="microseconds")

    def claim(
        self,
        booking_id: str,
        event: NotificationEvent,
        now: Optional[datetime] = None,
        lease_seconds: int = NOTIFICATION_CLAIM_TIMEOUT_SECONDS,
    ) -> bool:
        """Record a delivery attempt; False if it was already sent or is in flight.

        A pending claim older than lease_seconds belongs to an attempt that died
        before marking the outcome and may be taken over.
        """
        now = now or utc_now()
        stale = now - timedelta(seconds=lease_seconds)
        try:
            self.table.put_item(
                Item={
                    **self._key(booking_id, event),
                    "notification_status": NotificationStatus.PENDING.value,
                    "claimed_at": self._stamp(now),
                },
                ConditionExpression=(
                    "attribute_not_exists(pk) OR notification_status = :failed"
                    " OR (notification_status = :pending AND"
                    " (attribute_not_exists(claimed_at) OR claimed_at < :stale))"
                ),
                ExpressionAttributeValues={
                    ":failed": NotificationStatus.FAILED.value,
                    ":pending": NotificationStatus.PENDING.value,
                    ":stale": self._stamp(stale),
                },
            )
        except ClientError as err:
            if (
                err.response.get("Error", {}).get("Code")
                == "ConditionalCheckFailedException"
            ):
                return False
            logger.error(f"Error claiming {event.value} notification for {booking_id}: {err}")
            raise
        return True

    def mark(
        self,
        booking_id: str,
        event: NotificationEvent,
        status: NotificationStatus,
        recipients: Optional[List[str]] = None,
        sent_at: Optional[datetime] = None,
    ):
        update = "SET notification_status = :status, recipients = :recipients"
        values = {":status": status.value, ":recipients": recipients or []}
        if sent_at is not None:
            update += ", sent_at = :sent_at"
            values[":sent_at"] = to_iso(sent_at)
        try:
            self.table.update_item(
                Key=self._key(booking_id, event),
                UpdateExpression=update,
                ExpressionAttributeValues=values,
            )
        except ClientError as err:
            logger.error(f"Error marking {event.value} notification for {booking_id}: {err}")
            raise
