import logging
import os
from boto3 import resource

from common.repository.booking_repo import BookingRepository
from common.repository.resource_repo import ResourceRepository
from common.services.booking_service import BookingService
from common.services.resource_service import ResourceService
from common.models.users import UserRole
from common.schemas.bookings import serialize_booking
from common.utils.constants import REGION
from common.utils.custom_response import send_custom_response
from common.utils.custom_exceptions import NotFoundException

logger = logging.getLogger()
logger.setLevel(logging.INFO)

TABLE_NAME = os.environ.get("TABLE_NAME")

dynamodb = resource("dynamodb", region_name=REGION)
table = dynamodb.Table(TABLE_NAME)

booking_repo = BookingRepository(table)

booking_service = BookingService(
    booking_repo=booking_repo,
    resource_service=ResourceService(ResourceRepository(table)),
)


def get_user_bookings(event, context):
    try:
        try:
            authorizer = event["requestContext"]["authorizer"]
            user_id = authorizer["user_id"]
            role_raw = authorizer.get("role")
        except KeyError:
            return send_custom_response(401, "Unauthorized")

        role = None
        if role_raw:
            try:
                role = UserRole(role_raw.upper())
            except ValueError:
                role = None

        path_params = event.get("pathParameters") or {}
        requested_user_id = path_params.get("user_id") or user_id

        if requested_user_id != user_id and role != UserRole.ADMIN:
            return send_custom_response(403, "Forbidden")

        bookings = booking_service.get_user_bookings(requested_user_id)
        result = [serialize_booking(b) for b in bookings]

        return send_custom_response(
            200,
            "Bookings retrieved successfully",
            {
                "count": len(result),
                "bookings": result
            }
        )

    except NotFoundException as err:
        return send_custom_response(err.status_code, str(err))

    except Exception:
        logger.exception("Unhandled error")
        return send_custom_response(500, "Internal server error")
