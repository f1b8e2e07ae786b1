import json
import logging
import os
from boto3 import resource
from pydantic import ValidationError

from common.repository.notification_repo import NotificationRepository
from common.repository.resource_repo import ResourceRepository
from common.repository.user_repo import UserRepository
from common.services.notification_service import NotificationService
from common.utils.constants import REGION
from common.utils.custom_exceptions import NotificationDeliveryFailed

logger = logging.getLogger()
logger.setLevel(logging.INFO)

TABLE_NAME = os.environ.get("TABLE_NAME")
NOTIFICATION_SENDER = os.environ.get("NOTIFICATION_SENDER")

dynamodb = resource("dynamodb", region_name=REGION)
table = dynamodb.Table(TABLE_NAME)

notification_service = NotificationService(
    notification_repo=NotificationRepository(table),
    user_repo=UserRepository(table),
    resource_repo=ResourceRepository(table),
    sender=NOTIFICATION_SENDER,
)


def dispatch_notifications(event, context):
    failures = []
    for record in event.get("Records", []):
        message_id = record.get("messageId")
        try:
            message = json.loads(record["body"])
        except (KeyError, TypeError, json.JSONDecodeError) as err:
            # a malformed message will never succeed; drop it
            logger.error(f"Dropping unreadable notification {message_id}: {err}")
            continue

        try:
            notification_service.handle(message)
        except (KeyError, ValueError, ValidationError) as err:
            logger.error(f"Dropping invalid notification {message_id}: {err}")
        except NotificationDeliveryFailed:
            logger.exception(f"Notification {message_id} failed, will be retried")
            failures.append({"itemIdentifier": message_id})
        except Exception:
            logger.exception(f"Unhandled error for notification {message_id}")
            failures.append({"itemIdentifier": message_id})

    return {"batchItemFailures": failures}
