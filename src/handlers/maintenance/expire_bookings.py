import logging
import os
from boto3 import resource
from botocore.exceptions import ClientError

from common.repository.booking_repo import BookingRepository
from common.repository.resource_repo import ResourceRepository
from common.services.booking_service import BookingService
from common.services.resource_service import ResourceService
from common.utils.constants import REGION

logger = logging.getLogger()
logger.setLevel(logging.INFO)

TABLE_NAME = os.environ.get("TABLE_NAME")
dynamodb = resource("dynamodb", region_name=REGION)
table = dynamodb.Table(TABLE_NAME)

booking_service = BookingService(
    booking_repo=BookingRepository(table),
    resource_service=ResourceService(ResourceRepository(table)),
)


def expire_bookings(event, context):
    """Scheduled sweep: approved bookings whose end time has passed become completed."""
    try:
        completed = booking_service.sweep_all_expired()
    except ClientError as err:
        logger.error(f"Expiry sweep failed: {err}")
        raise

    logger.info(f"Expiry sweep completed {len(completed)} booking(s)")
    return {"completed": completed, "count": len(completed)}
