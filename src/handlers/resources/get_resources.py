import logging
import os
from boto3 import resource

from common.repository.resource_repo import ResourceRepository
from common.services.resource_service import ResourceService
from common.models.resources import ResourceKind
from common.models.users import UserRole
from common.schemas.resources import ResourceResponse
from common.utils.constants import REGION
from common.utils.custom_response import send_custom_response

logger = logging.getLogger()
logger.setLevel(logging.INFO)

TABLE_NAME = os.environ.get("TABLE_NAME")

dynamodb = resource("dynamodb", region_name=REGION)
table = dynamodb.Table(TABLE_NAME)

resource_repo = ResourceRepository(table)
resource_service = ResourceService(resource_repo=resource_repo)


def get_resources(event, context):
    try:
        params = event.get("queryStringParameters") or {}

        authorizer = (event.get("requestContext") or {}).get("authorizer") or {}
        role_raw = authorizer.get("role")
        role = None
        if role_raw:
            try:
                role = UserRole(role_raw.upper())
            except ValueError:
                role = None

        kind = None
        if params.get("kind"):
            try:
                kind = ResourceKind(params["kind"].upper())
            except ValueError:
                allowed = ", ".join(k.value for k in ResourceKind)
                return send_custom_response(400, f"Invalid kind. Allowed: {allowed}")

        # inactive rooms are only visible to admins
        resources = resource_service.list_resources(
            kind=kind, include_inactive=role == UserRole.ADMIN
        )
        result = [
            ResourceResponse.model_validate(r).model_dump(mode="json") for r in resources
        ]

        return send_custom_response(
            200, "successfully retrieved", {"count": len(result), "resources": result}
        )

    except Exception:
        logger.exception("Unhandled error")
        return send_custom_response(500, "Internal server error")
