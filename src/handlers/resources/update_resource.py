import json
import logging
import os
from boto3 import resource
from botocore.exceptions import ClientError

from common.repository.resource_repo import ResourceRepository
from common.services.resource_service import ResourceService
from common.models.users import UserRole
from common.utils.constants import REGION
from common.utils.custom_response import send_custom_response
from common.utils.custom_exceptions import NotFoundException

logger = logging.getLogger()
logger.setLevel(logging.INFO)

TABLE_NAME = os.environ.get("TABLE_NAME")

dynamodb = resource("dynamodb", region_name=REGION)
table = dynamodb.Table(TABLE_NAME)

resource_repo = ResourceRepository(table)
resource_service = ResourceService(resource_repo=resource_repo)


def update_resource(event, context):
    try:
        try:
            role_raw = event["requestContext"]["authorizer"]["role"]
        except KeyError:
            return send_custom_response(401, "Unauthorized")

        try:
            role = UserRole(role_raw.upper())
        except ValueError:
            return send_custom_response(403, "Forbidden")

        if role != UserRole.ADMIN:
            return send_custom_response(403, "Only admins can update rooms and tours")

        path_params = event.get("pathParameters") or {}
        resource_id = path_params.get("resource_id")

        if not resource_id:
            return send_custom_response(
                400,
                "resource_id is required in the path"
            )

        if not event.get("body"):
            return send_custom_response(
                400,
                "Request body is required"
            )

        try:
            body = json.loads(event["body"])
        except json.JSONDecodeError:
            return send_custom_response(
                400,
                "Invalid JSON body"
            )

        is_active = body.get("is_active")

        if not isinstance(is_active, bool):
            return send_custom_response(
                400,
                "is_active must be true or false"
            )

        updated = resource_service.set_active(
            resource_id=resource_id,
            is_active=is_active
        )

        return send_custom_response(
            200,
            "Resource updated successfully",
            {
                "resource_id": updated.resource_id,
                "is_active": updated.is_active
            }
        )

    except NotFoundException as err:
        return send_custom_response(404, str(err))
    except ClientError as err:
        logger.error(f"AWS client error: {err}")
        return send_custom_response(500, "Internal server error")
    except Exception:
        logger.exception("Unhandled error")
        return send_custom_response(
            500,
            "Internal server error"
        )
