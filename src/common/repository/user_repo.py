from botocore.exceptions import ClientError
import logging
from typing import List, Optional
from boto3.dynamodb.conditions import Key
from common.models.users import User, UserRole

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from types_boto3_dynamodb.service_resource import Table
    from types_boto3_dynamodb import DynamoDBClient
else:
    Table = object
    DynamoDBClient = object

logger = logging.getLogger(__name__)


class UserRepository:
    """Read side of the auth provider's user profiles."""

    def __init__(self, table: Table, client: DynamoDBClient = None):
        self.table = table
        self.client = client if client else table.meta.client

    @staticmethod
    def _profile_item(user: User) -> dict:
        return {
            "pk": f"USER#{user.user_id}",
            "sk": "DETAILS",
            "email": user.email,
            "role": user.role.value,
            "full_name": user.full_name or "",
            "institution": user.institution or "",
        }

    def add_user(self, user: User):
        transact_items = [
            {
                "Put": {
                    "TableName": self.table.name,
                    "Item": self._profile_item(user),
                    "ConditionExpression": "attribute_not_exists(pk)",
                }
            }
        ]
        if user.role == UserRole.ADMIN:
            transact_items.append(
                {
                    "Put": {
                        "TableName": self.table.name,
                        "Item": {
                            "pk": "ROLE#ADMIN",
                            "sk": f"USER#{user.user_id}",
                            "email": user.email,
                        },
                    }
                }
            )
        try:
            self.client.transact_write_items(TransactItems=transact_items)
        except ClientError as err:
            logger.error(
                "couldn't add user %s. Error: %s",
                user.user_id,
                err.response["Error"]["Message"],
            )
            raise

    def save_user(self, user: User):
        """Overwrite the profile and add or drop its ROLE#ADMIN entry to match the role."""
        admin_key = {"pk": "ROLE#ADMIN", "sk": f"USER#{user.user_id}"}
        if user.role == UserRole.ADMIN:
            role_item = {
                "Put": {
                    "TableName": self.table.name,
                    "Item": {**admin_key, "email": user.email},
                }
            }
        else:
            role_item = {"Delete": {"TableName": self.table.name, "Key": admin_key}}

        try:
            self.client.transact_write_items(
                TransactItems=[
                    {
                        "Put": {
                            "TableName": self.table.name,
                            "Item": self._profile_item(user),
                        }
                    },
                    role_item,
                ]
            )
        except ClientError as err:
            logger.error(f"Error saving user {user.user_id}: {err}")
            raise

    def get_by_id(self, user_id: str) -> Optional[User]:
        try:
            response = self.table.get_item(
                Key={"pk": f"USER#{user_id}", "sk": "DETAILS"}
            )
        except ClientError as err:
            logger.error(f"Error retrieving user by id {user_id}: {err}")
            raise

        item = response.get("Item")
        if not item:
            return None

        return self._to_domain(item=item)

    def get_admin_emails(self) -> List[str]:
        try:
            response = self.table.query(
                KeyConditionExpression=(
                    Key("pk").eq("ROLE#ADMIN") & Key("sk").begins_with("USER#")
                )
            )
        except ClientError as err:
            logger.error(f"Error retrieving admin users: {err}")
            raise

        return [item["email"] for item in response.get("Items", []) if item.get("email")]

    @staticmethod
    def _to_domain(item: dict) -> User:
        return User(
            user_id=item["pk"].split("#", 1)[1],
            email=item["email"],
            role=UserRole(item.get("role", UserRole.USER.value)),
            full_name=item.get("full_name") or None,
            institution=item.get("institution") or None,
        )
