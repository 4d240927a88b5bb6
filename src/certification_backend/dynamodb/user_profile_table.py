import logging
import typing

import boto3
from botocore.exceptions import ClientError
from pydantic import ValidationError

from certification_backend.models.user_profile_models import UserProfileModel
from certification_backend.utils.base_types import IsoTimestamp, UserId

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class UserProfileTable:
    """
    Data Abstraction Layer for interacting with the UserProfile DynamoDB table.
    Holds the platform-wide certificate state that mirrors the per-module enrollment state.

    Table Schema:
      - PK: userId
    """

    def __init__(self, table_name: str) -> None:
        self.client = boto3.resource("dynamodb")
        self.table = self.client.Table(table_name)

    def get_profile(self, user_id: UserId) -> typing.Optional[UserProfileModel]:
        """
        Retrieves a user's profile from DynamoDB.

        :param user_id: The ID of the user.
        :return: UserProfileModel instance if found, else None.
        """
        _LOGGER.debug(f"Fetching profile for user_id: {user_id}")
        try:
            response = self.table.get_item(Key={"userId": user_id}, ConsistentRead=True)
            item_data = response.get("Item")
            if item_data:
                return UserProfileModel.model_validate(item_data)
            _LOGGER.debug(f"No profile found for user_id: {user_id}")
            return None
        except ClientError as e:
            _LOGGER.error(f"Failed to get profile for user_id {user_id}: {e.response['Error']['Message']}")
            raise
        except ValidationError as ve:
            _LOGGER.error(f"Failed to validate profile data for user_id {user_id}: {ve}", exc_info=True)
            return None

    def _update_profile(
        self,
        user_id: UserId,
        fields: dict[str, typing.Any],
        condition_expression: typing.Optional[str] = None,
        extra_values: typing.Optional[dict[str, typing.Any]] = None,
    ) -> bool:
        """
        Sets the given fields, creating the profile if needed. None values are ignored.

        :return: True if written, False if the condition expression failed.
        """
        update_parts = []
        expression_attribute_names = {}
        expression_attribute_values = dict(extra_values or {})

        for name, value in fields.items():
            if value is None:
                continue
            update_parts.append(f"#{name} = :{name}")
            expression_attribute_names[f"#{name}"] = name
            expression_attribute_values[f":{name}"] = value

        if not update_parts:
            _LOGGER.warning(f"No fields provided to update for user_id {user_id}")
            return False

        update_kwargs: dict[str, typing.Any] = {
            "Key": {"userId": user_id},
            "UpdateExpression": "SET " + ", ".join(update_parts),
            "ExpressionAttributeNames": expression_attribute_names,
            "ExpressionAttributeValues": expression_attribute_values,
        }
        if condition_expression:
            update_kwargs["ConditionExpression"] = condition_expression

        try:
            self.table.update_item(**update_kwargs)
            return True
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                _LOGGER.info(f"Conditional profile update skipped for user_id {user_id}.")
                return False
            _LOGGER.error(
                f"Error updating profile for user_id {user_id}: {e.response['Error']['Message']}", exc_info=True
            )
            raise

    def record_final_test_pass(self, user_id: UserId, score: int, updated_at: IsoTimestamp) -> bool:
        _LOGGER.info(f"Recording final test pass for user_id: {user_id} with score {score}")
        return self._update_profile(user_id, {"testCompleted": True, "testScore": score, "updatedAt": updated_at})

    def set_certificate_available_at_once(self, user_id: UserId, available_at: IsoTimestamp) -> bool:
        """
        Sets certificateAvailableAt only if it has never been set.

        :return: True if this call set it, False if it was already set.
        """
        return self._update_profile(
            user_id,
            {"certificateAvailableAt": available_at},
            condition_expression="attribute_not_exists(certificateAvailableAt)",
        )

    def mark_certificate_issued(self, user_id: UserId, certificate_url: str) -> bool:
        """
        :return: True if this call issued the certificate, False if it had already been issued.
        """
        return self._update_profile(
            user_id,
            {"certificateIssued": True, "certificateUrl": certificate_url},
            condition_expression="attribute_not_exists(certificateIssued) OR certificateIssued = :notIssued",
            extra_values={":notIssued": False},
        )
