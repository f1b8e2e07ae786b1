import logging
import os
from boto3 import resource
from botocore.exceptions import ClientError

from common.repository.booking_repo import BookingRepository
from common.repository.resource_repo import ResourceRepository
from common.repository.user_repo import UserRepository
from common.services.booking_service import BookingService
from common.services.notification_service import NotificationPublisher
from common.services.resource_service import ResourceService
from common.models.users import UserRole
from common.schemas.bookings import BookingRequest, serialize_booking, serialize_conflicts
from common.utils.constants import REGION
from common.utils.custom_response import send_custom_response
from common.utils.custom_exceptions import BookingConflict, InvalidRange, NotFoundException
from pydantic import ValidationError

logger = logging.getLogger()
logger.setLevel(logging.INFO)

TABLE_NAME = os.environ.get("TABLE_NAME")
NOTIFICATION_QUEUE_URL = os.environ.get("NOTIFICATION_QUEUE_URL")

dynamodb = resource("dynamodb", region_name=REGION)
table = dynamodb.Table(TABLE_NAME)

booking_repo = BookingRepository(table)
resource_service = ResourceService(ResourceRepository(table))
user_repo = UserRepository(table)
publisher = NotificationPublisher(NOTIFICATION_QUEUE_URL)

booking_service = BookingService(
    booking_repo=booking_repo,
    resource_service=resource_service,
    user_repo=user_repo,
    publisher=publisher,
)


def create_booking(event, context):
    if not event.get("body"):
        return send_custom_response(400, "Request body is required")

    try:
        request_body = BookingRequest.model_validate_json(event["body"])
    except ValidationError as e:
        formatted = "; ".join(f"{err['msg']}" for err in e.errors())
        return send_custom_response(400, formatted)

    except ValueError as e:
        return send_custom_response(400, str(e))
    try:
        authorizer = event["requestContext"]["authorizer"]
        user_id = authorizer["user_id"]
    except (KeyError, TypeError):
        return send_custom_response(401, "Unauthorized")

    try:
        role = UserRole((authorizer.get("role") or UserRole.USER.value).upper())
    except ValueError:
        role = UserRole.USER

    try:
        booking = booking_service.create_booking(
            request_body,
            user_id,
            requester_email=authorizer.get("email") or None,
            requester_role=role,
            requester_name=authorizer.get("full_name") or None,
        )

        return send_custom_response(
            201, "Booking created successfully", serialize_booking(booking)
        )

    except InvalidRange as err:
        return send_custom_response(400, f"Invalid time range: {err}")

    except BookingConflict as err:
        return send_custom_response(
            409,
            "Time slot is already booked",
            {"conflicts": serialize_conflicts(err.conflicts)},
        )

    except NotFoundException as err:
        return send_custom_response(err.status_code, str(err))

    except ClientError as err:
        logger.error(f"AWS client error: {err}")
        return send_custom_response(500, "Internal server error")

    except Exception:
        logger.exception("Unhandled error")
        return send_custom_response(500, "Internal server error")
