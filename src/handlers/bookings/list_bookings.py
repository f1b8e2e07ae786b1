import logging
import os
from boto3 import resource
from botocore.exceptions import ClientError

from common.repository.booking_repo import BookingRepository
from common.repository.resource_repo import ResourceRepository
from common.repository.user_repo import UserRepository
from common.services.booking_service import BookingService
from common.services.resource_service import ResourceService
from common.models.bookings import BookingStatus
from common.models.users import UserRole
from common.schemas.bookings import serialize_booking
from common.utils.constants import REGION
from common.utils.custom_response import send_custom_response

logger = logging.getLogger()
logger.setLevel(logging.INFO)

TABLE_NAME = os.environ.get("TABLE_NAME")

dynamodb = resource("dynamodb", region_name=REGION)
table = dynamodb.Table(TABLE_NAME)

booking_service = BookingService(
    booking_repo=BookingRepository(table),
    resource_service=ResourceService(ResourceRepository(table)),
    user_repo=UserRepository(table),
)


def list_bookings(event, context):
    try:
        authorizer = event["requestContext"]["authorizer"]
        role_raw = authorizer["role"]
    except (KeyError, TypeError):
        return send_custom_response(401, "Unauthorized")

    try:
        role = UserRole(role_raw.upper())
    except ValueError:
        return send_custom_response(403, "Forbidden")

    if role != UserRole.ADMIN:
        return send_custom_response(403, "Only admins can list all bookings")

    if authorizer.get("user_id"):
        try:
            booking_service.sync_profile(
                authorizer["user_id"],
                authorizer.get("email") or None,
                role,
                authorizer.get("full_name") or None,
            )
        except ClientError as err:
            logger.error(f"Could not sync admin profile {authorizer['user_id']}: {err}")

    params = event.get("queryStringParameters") or {}
    status = None
    if params.get("status"):
        try:
            status = BookingStatus(params["status"].lower())
        except ValueError:
            return send_custom_response(
                400, f"Invalid status. Allowed: {[s.value for s in BookingStatus]}"
            )

    try:
        bookings = booking_service.list_bookings(status=status)
    except ClientError as err:
        logger.error(f"AWS client error: {err}")
        return send_custom_response(500, "Internal server error")
    except Exception:
        logger.exception("Unhandled error")
        return send_custom_response(500, "Internal server error")

    result = [serialize_booking(b) for b in bookings]
    return send_custom_response(
        200,
        "Bookings retrieved successfully",
        {"count": len(result), "bookings": result},
    )
