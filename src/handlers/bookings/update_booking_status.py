import logging
import os
from boto3 import resource
from botocore.exceptions import ClientError
from pydantic import ValidationError

from common.repository.booking_repo import BookingRepository
from common.repository.resource_repo import ResourceRepository
from common.repository.user_repo import UserRepository
from common.services.booking_service import BookingService
from common.services.notification_service import NotificationPublisher
from common.services.resource_service import ResourceService
from common.models.bookings import BookingStatus
from common.models.users import UserRole
from common.schemas.bookings import StatusUpdateRequest, serialize_booking, serialize_conflicts
from common.utils.constants import REGION
from common.utils.custom_response import send_custom_response
from common.utils.custom_exceptions import (
    BookingConflict,
    IllegalTransition,
    NotFoundException,
)

logger = logging.getLogger()
logger.setLevel(logging.INFO)

TABLE_NAME = os.environ.get("TABLE_NAME")
NOTIFICATION_QUEUE_URL = os.environ.get("NOTIFICATION_QUEUE_URL")

dynamodb = resource("dynamodb", region_name=REGION)
table = dynamodb.Table(TABLE_NAME)

booking_service = BookingService(
    booking_repo=BookingRepository(table),
    resource_service=ResourceService(ResourceRepository(table)),
    user_repo=UserRepository(table),
    publisher=NotificationPublisher(NOTIFICATION_QUEUE_URL),
)


def update_booking_status(event, context):
    try:
        try:
            authorizer = event["requestContext"]["authorizer"]
            actor_id = authorizer["user_id"]
            role_raw = authorizer["role"]
        except (KeyError, TypeError):
            return send_custom_response(401, "Unauthorized")

        try:
            role = UserRole(role_raw.upper())
        except ValueError:
            return send_custom_response(403, "Forbidden")

        if role != UserRole.ADMIN:
            return send_custom_response(403, "Only admins can change booking status")

        try:
            booking_service.sync_profile(
                actor_id,
                authorizer.get("email") or None,
                role,
                authorizer.get("full_name") or None,
            )
        except ClientError as err:
            logger.error(f"Could not sync admin profile {actor_id}: {err}")

        path_params = event.get("pathParameters") or {}
        booking_id = path_params.get("booking_id")

        if not booking_id:
            return send_custom_response(400, "booking_id is required in the path")

        if not event.get("body"):
            return send_custom_response(400, "Request body is required")

        try:
            request_body = StatusUpdateRequest.model_validate_json(event["body"])
        except ValidationError:
            return send_custom_response(
                400, f"Invalid status. Allowed: {[s.value for s in BookingStatus]}"
            )

        booking = booking_service.set_booking_status(
            booking_id=booking_id,
            target=request_body.status,
            actor_id=actor_id,
        )

        return send_custom_response(
            200, "Booking status updated successfully", serialize_booking(booking)
        )

    except NotFoundException as err:
        return send_custom_response(404, str(err))
    except BookingConflict as err:
        return send_custom_response(
            409,
            "Booking overlaps an approved booking",
            {"conflicts": serialize_conflicts(err.conflicts)},
        )
    except IllegalTransition as err:
        return send_custom_response(400, str(err))
    except ClientError as err:
        logger.error(f"AWS client error: {err}")
        return send_custom_response(500, "Internal server error")
    except Exception:
        logger.exception("Unhandled error")
        return send_custom_response(500, "Internal server error")
