import logging
import os
from boto3 import resource
from botocore.exceptions import ClientError

from common.repository.booking_repo import BookingRepository
from common.repository.resource_repo import ResourceRepository
from common.services.booking_service import BookingService
from common.services.resource_service import ResourceService
from common.schemas.bookings import serialize_booking
from common.utils.constants import REGION
from common.utils.custom_response import send_custom_response
from common.utils.custom_exceptions import Forbidden, NotFoundException, NotPending

logger = logging.getLogger()
logger.setLevel(logging.INFO)

TABLE_NAME = os.environ.get("TABLE_NAME")

dynamodb = resource("dynamodb", region_name=REGION)
table = dynamodb.Table(TABLE_NAME)

booking_service = BookingService(
    booking_repo=BookingRepository(table),
    resource_service=ResourceService(ResourceRepository(table)),
)


def cancel_booking(event, context):
    try:
        user_id = event["requestContext"]["authorizer"]["user_id"]
    except (KeyError, TypeError):
        return send_custom_response(401, "Unauthorized")

    path_params = event.get("pathParameters") or {}
    booking_id = path_params.get("booking_id")
    if not booking_id:
        return send_custom_response(400, "booking_id is required in the path")

    try:
        booking = booking_service.cancel_booking(booking_id, user_id)
        return send_custom_response(
            200, "Booking cancelled successfully", serialize_booking(booking)
        )
    except NotFoundException:
        return send_custom_response(404, "Booking not found")
    except Forbidden as err:
        return send_custom_response(403, str(err))
    except NotPending:
        return send_custom_response(400, "Only pending bookings can be cancelled")
    except ClientError as err:
        logger.error(f"AWS client error: {err}")
        return send_custom_response(500, "Failed to cancel booking")
    except Exception:
        logger.exception("Unhandled error")
        return send_custom_response(500, "Internal server error")
