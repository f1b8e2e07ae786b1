from botocore.exceptions import ClientError
import logging
from typing import Optional, List
from boto3.dynamodb.conditions import Key
from common.models.resources import Resource, ResourceKind
from common.utils.custom_exceptions import NotFoundException

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from types_boto3_dynamodb.service_resource import Table
    from types_boto3_dynamodb import DynamoDBClient
else:
    Table = object
    DynamoDBClient = object


logger = logging.getLogger(__name__)


class ResourceRepository:
    def __init__(self, table: Table, client: DynamoDBClient = None):
        self.table = table
        self.client = client if client else table.meta.client

    @staticmethod
    def _attributes(resource: Resource) -> dict:
        item = {
            "resource_id": resource.resource_id,
            "name": resource.name,
            "kind": resource.kind.value,
            "capacity": resource.capacity,
            "is_active": resource.is_active,
            "facilities": list(resource.facilities),
        }
        if resource.description is not None:
            item["description"] = resource.description
        return item

    @staticmethod
    def _to_domain(item: dict) -> Resource:
        return Resource(
            resource_id=item["resource_id"],
            name=item["name"],
            kind=ResourceKind(item["kind"]),
            capacity=int(item.get("capacity", 0)),
            is_active=bool(item.get("is_active", True)),
            description=item.get("description"),
            facilities=list(item.get("facilities", [])),
        )

    def add_resource(self, resource: Resource):
        attributes = self._attributes(resource)
        try:
            self.client.transact_write_items(
                TransactItems=[
                    {
                        "Put": {
                            "TableName": self.table.name,
                            "Item": {
                                "pk": f"RESOURCE#{resource.resource_id}",
                                "sk": "DETAILS",
                                **attributes,
                            },
                            "ConditionExpression": "attribute_not_exists(pk)",
                        }
                    },
                    {
                        "Put": {
                            "TableName": self.table.name,
                            "Item": {
                                "pk": f"KIND#{resource.kind.value}",
                                "sk": f"RESOURCE#{resource.resource_id}",
                                **attributes,
                            },
                        }
                    },
                ]
            )
        except ClientError as err:
            logger.error(f"Error creating resource {resource.resource_id}: {err}")
            raise

    def get_resource_by_id(self, resource_id: str) -> Optional[Resource]:
        try:
            response = self.table.get_item(
                Key={"pk": f"RESOURCE#{resource_id}", "sk": "DETAILS"}
            )
        except ClientError as err:
            logger.error(f"Error retrieving resource by id {resource_id}: {err}")
            raise

        item = response.get("Item")
        if not item:
            return None
        return self._to_domain(item)

    def get_resources_by_kind(self, kind: ResourceKind) -> List[Resource]:
        try:
            response = self.table.query(
                KeyConditionExpression=(
                    Key("pk").eq(f"KIND#{kind.value}")
                    & Key("sk").begins_with("RESOURCE#")
                )
            )
        except ClientError as err:
            logger.error(f"Error retrieving {kind.value} resources: {err}")
            raise
        return [self._to_domain(item) for item in response.get("Items", [])]

    def update_resource_active(self, resource: Resource, is_active: bool):
        keys = [
            {"pk": f"RESOURCE#{resource.resource_id}", "sk": "DETAILS"},
            {"pk": f"KIND#{resource.kind.value}", "sk": f"RESOURCE#{resource.resource_id}"},
        ]
        try:
            self.client.transact_write_items(
                TransactItems=[
                    {
                        "Update": {
                            "Key": key,
                            "TableName": self.table.name,
                            "UpdateExpression": "SET #attribute = :value",
                            "ExpressionAttributeNames": {"#attribute": "is_active"},
                            "ExpressionAttributeValues": {":value": is_active},
                            "ConditionExpression": "attribute_exists(pk)",
                        }
                    }
                    for key in keys
                ]
            )
        except ClientError as err:
            if (
                err.response.get("Error", {}).get("Code")
                == "TransactionCanceledException"
            ):
                raise NotFoundException("resource", resource.resource_id, 404)
            logger.error(f"Error updating resource {resource.resource_id}: {err}")
            raise
