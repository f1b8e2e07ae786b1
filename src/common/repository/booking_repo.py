from botocore.exceptions import ClientError
import logging
from typing import Optional, List
from boto3.dynamodb.conditions import Attr, Key
from common.models.bookings import Booking, BookingStatus
from common.utils.custom_exceptions import (
    ApprovalVersionMismatch,
    ConcurrentModification,
)
from common.utils.datetime_normaliser import from_iso_string, to_utc
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from types_boto3_dynamodb.service_resource import Table
    from types_boto3_dynamodb import DynamoDBClient
else:
    Table = object
    DynamoDBClient = object


logger = logging.getLogger(__name__)

BOOKINGS_PK = "BOOKINGS"
APPROVED_PK = "APPROVED"


class BookingRepository:
    def __init__(self, table: Table, client: DynamoDBClient = None):
        self.table = table
        self.client = client if client else table.meta.client

    @staticmethod
    def _iso(dt: datetime | str) -> str:
        return to_utc(dt).isoformat()

    @staticmethod
    def _sort_key(dt: datetime | str) -> str:
        # fixed width so range keys sort chronologically
        return to_utc(dt).isoformat(timespec="microseconds")

    def _attributes(self, booking: Booking) -> dict:
        item = {
            "booking_id": booking.booking_id,
            "resource_id": booking.resource_id,
            "requester_id": booking.requester_id,
            "start_time": self._iso(booking.start_time),
            "end_time": self._iso(booking.end_time),
            "booking_status": booking.status.value,
            "guest_count": booking.guest_count,
            "is_tour": booking.is_tour,
            "created_at": self._iso(booking.created_at),
            "updated_at": self._iso(booking.updated_at),
        }
        for name in ("description", "notes", "proposal_file_ref"):
            value = getattr(booking, name)
            if value is not None:
                item[name] = value
        return item

    @staticmethod
    def _to_domain(item: dict) -> Booking:
        return Booking(
            booking_id=item["booking_id"],
            resource_id=item["resource_id"],
            requester_id=item["requester_id"],
            start_time=from_iso_string(item["start_time"]),
            end_time=from_iso_string(item["end_time"]),
            status=BookingStatus(item["booking_status"]),
            guest_count=int(item.get("guest_count", 1)),
            is_tour=bool(item.get("is_tour", False)),
            description=item.get("description"),
            notes=item.get("notes"),
            proposal_file_ref=item.get("proposal_file_ref"),
            created_at=from_iso_string(item["created_at"]),
            updated_at=from_iso_string(item["updated_at"]),
        )

    def _keys(self, booking: Booking) -> dict:
        start_key = self._sort_key(booking.start_time)
        end_key = self._sort_key(booking.end_time)
        return {
            "details": {"pk": f"BOOKING#{booking.booking_id}", "sk": "DETAILS"},
            "user": {
                "pk": f"USER#{booking.requester_id}",
                "sk": f"BOOKING#{booking.booking_id}",
            },
            "listing": {
                "pk": BOOKINGS_PK,
                "sk": f"START#{start_key}#BOOKING#{booking.booking_id}",
            },
            "slot": {
                "pk": f"RESOURCE#{booking.resource_id}#APPROVED",
                "sk": f"START#{start_key}#BOOKING#{booking.booking_id}",
            },
            "expiry": {
                "pk": APPROVED_PK,
                "sk": f"END#{end_key}#BOOKING#{booking.booking_id}",
            },
        }

    def add_booking(self, booking: Booking):
        keys = self._keys(booking)
        attributes = self._attributes(booking)

        try:
            self.client.transact_write_items(
                TransactItems=[
                    {
                        "Put": {
                            "TableName": self.table.name,
                            "Item": {**keys["details"], **attributes},
                            "ConditionExpression": "attribute_not_exists(pk)",
                        }
                    },
                    {
                        "Put": {
                            "TableName": self.table.name,
                            "Item": {**keys["user"], **attributes},
                        }
                    },
                    {
                        "Put": {
                            "TableName": self.table.name,
                            "Item": {**keys["listing"], **attributes},
                        }
                    },
                ]
            )

        except ClientError as err:
            logger.error(f"Error creating booking {booking.booking_id}: {err}")
            raise

    def get_booking_by_id(self, booking_id: str) -> Optional[Booking]:
        try:
            response = self.table.get_item(
                Key={"pk": f"BOOKING#{booking_id}", "sk": "DETAILS"}
            )
        except ClientError as err:
            logger.error(f"Error retrieving booking {booking_id}: {err}")
            raise

        item = response.get("Item")
        if not item:
            return None
        return self._to_domain(item)

    def _query_all(self, **kwargs) -> List[dict]:
        response = self.table.query(**kwargs)
        items = list(response.get("Items", []))
        while "LastEvaluatedKey" in response:
            response = self.table.query(
                **kwargs, ExclusiveStartKey=response["LastEvaluatedKey"]
            )
            items.extend(response.get("Items", []))
        return items

    def get_user_bookings(self, user_id: str) -> List[Booking]:
        try:
            items = self._query_all(
                KeyConditionExpression=Key("pk").eq(f"USER#{user_id}")
                & Key("sk").begins_with("BOOKING#")
            )
        except ClientError as err:
            logger.error(f"Error retrieving user {user_id} bookings: {err}")
            raise

        return [self._to_domain(item) for item in items]

    def list_bookings(self, status: Optional[BookingStatus] = None) -> List[Booking]:
        query = {
            "KeyConditionExpression": Key("pk").eq(BOOKINGS_PK)
            & Key("sk").begins_with("START#")
        }
        if status is not None:
            query["FilterExpression"] = Attr("booking_status").eq(status.value)

        try:
            items = self._query_all(**query)
        except ClientError as err:
            logger.error(f"Error listing bookings: {err}")
            raise

        return [self._to_domain(item) for item in items]

    def get_approved_bookings(
        self, resource_id: str, start: datetime, end: datetime
    ) -> List[Booking]:
        """Approved bookings on the resource that start before `end`.

        The caller still has to drop the ones that ended at or before `start`.
        """
        upper = f"START#{self._sort_key(end)}"
        try:
            items = self._query_all(
                KeyConditionExpression=Key("pk").eq(f"RESOURCE#{resource_id}#APPROVED")
                & Key("sk").between("START#", upper),
                FilterExpression=Attr("end_time").gt(self._iso(start)),
            )
        except ClientError as err:
            logger.error(
                f"Error retrieving approved bookings for resource {resource_id}: {err}"
            )
            raise

        return [self._to_domain(item) for item in items]

    def get_expired_approved(self, now: datetime) -> List[Booking]:
        try:
            items = self._query_all(
                KeyConditionExpression=Key("pk").eq(APPROVED_PK)
                & Key("sk").between("END#", f"END#{self._sort_key(now)}")
            )
        except ClientError as err:
            logger.error(f"Error retrieving expired approved bookings: {err}")
            raise

        return [self._to_domain(item) for item in items]

    def get_approval_version(self, resource_id: str) -> int:
        try:
            response = self.table.get_item(
                Key={"pk": f"RESOURCE#{resource_id}", "sk": "APPROVALS"}
            )
        except ClientError as err:
            logger.error(f"Error retrieving approval version for {resource_id}: {err}")
            raise

        item = response.get("Item")
        if not item:
            return 0
        return int(item.get("version", 0))

    def update_booking_status(
        self,
        booking: Booking,
        previous_status: BookingStatus,
        expected_version: Optional[int] = None,
    ):
        """Persist booking.status if the stored status is still previous_status.

        Entering approved also bumps the resource's approval version, guarded by
        expected_version, so two overlapping approvals cannot both commit.
        """
        keys = self._keys(booking)
        status_update = {
            "UpdateExpression": "SET #booking_status = :new_value, #updated_at = :updated_at",
            "ExpressionAttributeNames": {
                "#booking_status": "booking_status",
                "#updated_at": "updated_at",
            },
        }
        values = {
            ":new_value": booking.status.value,
            ":updated_at": self._iso(booking.updated_at),
        }

        transact_items = [
            {
                "Update": {
                    "Key": keys["details"],
                    "TableName": self.table.name,
                    **status_update,
                    "ExpressionAttributeValues": {
                        **values,
                        ":expected": previous_status.value,
                    },
                    "ConditionExpression": "#booking_status = :expected",
                }
            },
            {
                "Update": {
                    "Key": keys["user"],
                    "TableName": self.table.name,
                    **status_update,
                    "ExpressionAttributeValues": values,
                    "ConditionExpression": "attribute_exists(pk)",
                }
            },
            {
                "Update": {
                    "Key": keys["listing"],
                    "TableName": self.table.name,
                    **status_update,
                    "ExpressionAttributeValues": values,
                    "ConditionExpression": "attribute_exists(pk)",
                }
            },
        ]

        version_index = None
        if booking.status == BookingStatus.APPROVED:
            attributes = self._attributes(booking)
            transact_items.extend(
                [
                    {
                        "Put": {
                            "TableName": self.table.name,
                            "Item": {**keys["slot"], **attributes},
                        }
                    },
                    {
                        "Put": {
                            "TableName": self.table.name,
                            "Item": {**keys["expiry"], **attributes},
                        }
                    },
                ]
            )
            version_index = len(transact_items)
            expected = expected_version or 0
            transact_items.append(
                {
                    "Update": {
                        "Key": {"pk": f"RESOURCE#{booking.resource_id}", "sk": "APPROVALS"},
                        "TableName": self.table.name,
                        "UpdateExpression": "SET #version = :next",
                        "ExpressionAttributeNames": {"#version": "version"},
                        "ExpressionAttributeValues": {
                            ":expected": expected,
                            ":next": expected + 1,
                        },
                        "ConditionExpression": "attribute_not_exists(#version) OR #version = :expected",
                    }
                }
            )
        elif previous_status == BookingStatus.APPROVED:
            transact_items.extend(
                [
                    {"Delete": {"TableName": self.table.name, "Key": keys["slot"]}},
                    {"Delete": {"TableName": self.table.name, "Key": keys["expiry"]}},
                ]
            )

        try:
            self.client.transact_write_items(TransactItems=transact_items)
        except ClientError as err:
            failed = self._failed_conditions(err)
            if 0 in failed:
                raise ConcurrentModification(booking.booking_id)
            if version_index is not None and version_index in failed:
                raise ApprovalVersionMismatch(booking.resource_id)
            logger.error(f"Error updating booking {booking.booking_id} status: {err}")
            raise

    @staticmethod
    def _failed_conditions(err: ClientError) -> List[int]:
        if err.response.get("Error", {}).get("Code") != "TransactionCanceledException":
            return []
        reasons = err.response.get("CancellationReasons") or []
        return [
            index
            for index, reason in enumerate(reasons)
            if reason.get("Code") == "ConditionalCheckFailed"
        ]
