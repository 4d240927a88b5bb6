import logging

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from certification_backend.utils.base_types import ContentId, IsoTimestamp, SubTopicId, UserId

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class ContentProgressTable:
    """
    Data Abstraction Layer for per-user content completion marks.

    Completions are write-once: the first completion timestamp is kept and repeated
    completions are no-ops.

    Table Schema:
      - PK: userId (String)
      - SK: contentId (String)
    """

    def __init__(self, table_name: str) -> None:
        self.client = boto3.resource("dynamodb")
        self.table = self.client.Table(table_name)

    def mark_complete(
        self,
        user_id: UserId,
        content_id: ContentId,
        sub_topic_id: SubTopicId,
        completed_at: IsoTimestamp,
    ) -> bool:
        """
        Records that a user completed one content unit.

        :return: True if the completion was newly recorded, False if it already existed.
        """
        try:
            self.table.put_item(
                Item={
                    "userId": user_id,
                    "contentId": content_id,
                    "subTopicId": sub_topic_id,
                    "completedAt": completed_at,
                },
                ConditionExpression="attribute_not_exists(contentId)",
            )
            _LOGGER.info(f"Content {content_id} marked complete for user {user_id}.")
            return True
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                _LOGGER.info(f"Content {content_id} already complete for user {user_id}. Skipping.")
                return False
            _LOGGER.error(
                f"Error marking content {content_id} complete for user {user_id}: {e.response['Error']['Message']}"
            )
            raise

    def get_completed_content_ids(self, user_id: UserId) -> set[ContentId]:
        """Returns every content id the user has completed, following pagination."""
        completed: set[ContentId] = set()
        query_kwargs = {
            "KeyConditionExpression": Key("userId").eq(user_id),
            "ProjectionExpression": "contentId",
            "ConsistentRead": True,
        }
        try:
            while True:
                response = self.table.query(**query_kwargs)
                for item in response.get("Items", []):
                    completed.add(ContentId(item["contentId"]))
                if "LastEvaluatedKey" not in response:
                    break
                query_kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]
        except ClientError as e:
            _LOGGER.error(f"Failed to query content progress for user {user_id}: {e.response['Error']['Message']}")
            raise
        return completed
