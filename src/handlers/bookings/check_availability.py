import logging
import os
from boto3 import resource
from pydantic import ValidationError

from common.repository.booking_repo import BookingRepository
from common.repository.resource_repo import ResourceRepository
from common.services.booking_service import BookingService
from common.services.resource_service import ResourceService
from common.schemas.bookings import AvailabilityQuery, serialize_conflicts
from common.utils.constants import REGION
from common.utils.custom_response import send_custom_response
from common.utils.custom_exceptions import InvalidRange, NotFoundException

logger = logging.getLogger()
logger.setLevel(logging.INFO)

TABLE_NAME = os.environ.get("TABLE_NAME")

dynamodb = resource("dynamodb", region_name=REGION)
table = dynamodb.Table(TABLE_NAME)

booking_service = BookingService(
    booking_repo=BookingRepository(table),
    resource_service=ResourceService(ResourceRepository(table)),
)


def check_availability(event, context):
    params = event.get("queryStringParameters") or {}
    path_params = event.get("pathParameters") or {}

    try:
        query = AvailabilityQuery(
            resource_id=path_params.get("resource_id") or params.get("resource_id"),
            start_time=params.get("start_time"),
            end_time=params.get("end_time"),
            exclude_booking_id=params.get("exclude_booking_id"),
        )
    except ValidationError as e:
        formatted = "; ".join(f"{err['msg']}" for err in e.errors())
        return send_custom_response(400, formatted)

    try:
        conflicts = booking_service.check_availability(
            query.resource_id,
            query.start_time,
            query.end_time,
            exclude_booking_id=query.exclude_booking_id,
        )
    except InvalidRange as err:
        return send_custom_response(400, f"Invalid time range: {err}")
    except NotFoundException as err:
        return send_custom_response(err.status_code, str(err))
    except Exception:
        logger.exception("Unhandled error")
        return send_custom_response(500, "Internal server error")

    return send_custom_response(
        200,
        "Availability retrieved successfully",
        {
            "resource_id": query.resource_id,
            "start_time": query.start_time.isoformat(),
            "end_time": query.end_time.isoformat(),
            "available": not conflicts,
            "conflicts": serialize_conflicts(conflicts),
        },
    )
