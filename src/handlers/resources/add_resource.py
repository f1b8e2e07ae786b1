import logging
import os
from boto3 import resource
from botocore.exceptions import ClientError
from pydantic import ValidationError

from common.repository.resource_repo import ResourceRepository
from common.services.resource_service import ResourceService
from common.models.users import UserRole
from common.schemas.resources import ResourceRequest, ResourceResponse
from common.utils.constants import REGION
from common.utils.custom_response import send_custom_response

logger = logging.getLogger()
logger.setLevel(logging.INFO)

TABLE_NAME = os.environ.get("TABLE_NAME")

dynamodb = resource("dynamodb", region_name=REGION)
table = dynamodb.Table(TABLE_NAME)

resource_repo = ResourceRepository(table)
resource_service = ResourceService(resource_repo=resource_repo)

def add_resource(event,context):
    try:
        role_raw = event["requestContext"]["authorizer"]["role"]
    except (KeyError, TypeError):
        return send_custom_response(401, "Unauthorized")

    try:
        role = UserRole(role_raw.upper())
    except ValueError:
        return send_custom_response(403, "Forbidden")

    if role != UserRole.ADMIN:
        return send_custom_response(403, "Only admins can add rooms and tours")

    if not event.get("body"):
        return send_custom_response(400, "Request body is required")

    try:
        request_body = ResourceRequest.model_validate_json(event["body"])
    except ValidationError as e:
        formatted = "; ".join(f"{err['msg']}" for err in e.errors())
        return send_custom_response(400, formatted)

    try:
        created = resource_service.add_resource(request_body)
    except ClientError as err:
        error_code = err.response["Error"].get("Code", "")
        if error_code == "TransactionCanceledException":
            return send_custom_response(
                400, f"Resource with id {request_body.resource_id} already exists"
            )
        logger.error(f"AWS client error: {err}")
        return send_custom_response(500, "Internal server error")
    except Exception:
        logger.exception("Unhandled error")
        return send_custom_response(500, "Internal server error")

    return send_custom_response(
        201,
        f"{created.kind.value.title()} {created.name} added successfully",
        ResourceResponse.model_validate(created).model_dump(mode="json"),
    )
