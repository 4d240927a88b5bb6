import logging
import typing

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError
from pydantic import ValidationError

from certification_backend.models.enrollment_models import (
    PAYMENT_COMPLETED,
    EnrollmentModel,
    LevelScoreModel,
)
from certification_backend.utils.base_types import (
    IsoTimestamp,
    LevelId,
    ModuleId,
    SubTopicId,
    UserId,
)

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)

_ENROLLMENT_EXISTS = "attribute_exists(userId)"


def _is_conditional_check_failure(e: ClientError) -> bool:
    return e.response["Error"]["Code"] == "ConditionalCheckFailedException"


class EnrollmentsTable:
    """
    Data Abstraction Layer for the per (user, module) enrollment record.

    All progress mutations are single-item UpdateItem calls so they are atomic per enrollment:
      - completedSubTopics is a string set that only ever grows (ADD).
      - certificateAvailableAt is written at most once (attribute_not_exists condition).

    Table Schema:
      - PK: userId (String)
      - SK: moduleId (String)
    """

    def __init__(self, table_name: str) -> None:
        self.client = boto3.resource("dynamodb")
        self.table = self.client.Table(table_name)

    def _validate(self, item_data: dict) -> typing.Optional[EnrollmentModel]:
        try:
            return EnrollmentModel.model_validate(item_data)
        except ValidationError as ve:
            _LOGGER.error(f"Failed to validate enrollment item {item_data}: {ve}", exc_info=True)
            return None

    def get_enrollment(
        self, user_id: UserId, module_id: ModuleId, consistent_read: bool = False
    ) -> typing.Optional[EnrollmentModel]:
        _LOGGER.debug(f"Fetching enrollment for user_id: {user_id}, module_id: {module_id}")
        try:
            response = self.table.get_item(
                Key={"userId": user_id, "moduleId": module_id},
                ConsistentRead=consistent_read,
            )
        except ClientError as e:
            _LOGGER.error(f"Failed for user_id {user_id}, module_id {module_id}: {e.response['Error']['Message']}")
            raise

        item_data = response.get("Item")
        if not item_data:
            _LOGGER.debug(f"No enrollment found for user_id: {user_id}, module_id: {module_id}")
            return None
        return self._validate(item_data)

    def get_paid_enrollment(self, user_id: UserId, module_id: ModuleId) -> typing.Optional[EnrollmentModel]:
        enrollment = self.get_enrollment(user_id, module_id, consistent_read=True)
        if enrollment and enrollment.paymentStatus == PAYMENT_COMPLETED:
            return enrollment
        return None

    def get_enrollments_for_user(self, user_id: UserId) -> list[EnrollmentModel]:
        _LOGGER.info(f"Fetching all enrollments for user_id: {user_id}")
        enrollments: list[EnrollmentModel] = []
        query_kwargs: dict[str, typing.Any] = {"KeyConditionExpression": Key("userId").eq(user_id)}
        try:
            while True:
                response = self.table.query(**query_kwargs)
                for item_data in response.get("Items", []):
                    enrollment = self._validate(item_data)
                    if enrollment:
                        enrollments.append(enrollment)
                if "LastEvaluatedKey" not in response:
                    break
                query_kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]
        except ClientError as e:
            _LOGGER.error(f"Failed to query enrollments for user {user_id}: {e.response['Error']['Message']}")
            raise
        return enrollments

    def create_enrollment(self, user_id: UserId, module_id: ModuleId, enrolled_at: IsoTimestamp) -> bool:
        """
        Creates a PENDING enrollment.

        :return: True if created, False if the user is already enrolled in the module.
        """
        try:
            self.table.put_item(
                Item={
                    "userId": user_id,
                    "moduleId": module_id,
                    "paymentStatus": "PENDING",
                    "enrolledAt": enrolled_at,
                    "progressPercentage": 0,
                    "levelTestScores": {},
                    "examCompleted": False,
                    "certificateIssued": False,
                },
                ConditionExpression="attribute_not_exists(userId)",
            )
            _LOGGER.info(f"Created enrollment for user {user_id} in module {module_id}.")
            return True
        except ClientError as e:
            if _is_conditional_check_failure(e):
                _LOGGER.info(f"User {user_id} is already enrolled in module {module_id}.")
                return False
            _LOGGER.error(f"Error creating enrollment for {user_id}/{module_id}: {e.response['Error']['Message']}")
            raise

    def mark_payment_completed(
        self, user_id: UserId, module_id: ModuleId, exam_date: typing.Optional[IsoTimestamp] = None
    ) -> bool:
        """
        Called by the payment subsystem once a module payment is verified.

        :return: True if updated, False if no enrollment exists.
        """
        update_expression = "SET paymentStatus = :paid"
        expression_attribute_values: dict[str, typing.Any] = {":paid": PAYMENT_COMPLETED}
        if exam_date is not None:
            update_expression += ", examDate = :examDate"
            expression_attribute_values[":examDate"] = exam_date

        try:
            self.table.update_item(
                Key={"userId": user_id, "moduleId": module_id},
                UpdateExpression=update_expression,
                ConditionExpression=_ENROLLMENT_EXISTS,
                ExpressionAttributeValues=expression_attribute_values,
            )
            _LOGGER.info(f"Payment completed for user {user_id}, module {module_id}.")
            return True
        except ClientError as e:
            if _is_conditional_check_failure(e):
                _LOGGER.warning(f"No enrollment to mark paid for user {user_id}, module {module_id}.")
                return False
            raise

    def add_completed_sub_topics(
        self, user_id: UserId, module_id: ModuleId, sub_topic_ids: set[SubTopicId]
    ) -> typing.Optional[EnrollmentModel]:
        """
        Adds subtopic ids to the completed set. Adding an id that is already present is a no-op.

        :return: The enrollment after the update, or None if no enrollment exists.
        """
        if not sub_topic_ids:
            return self.get_enrollment(user_id, module_id, consistent_read=True)

        try:
            response = self.table.update_item(
                Key={"userId": user_id, "moduleId": module_id},
                UpdateExpression="ADD completedSubTopics :subTopics",
                ConditionExpression=_ENROLLMENT_EXISTS,
                ExpressionAttributeValues={":subTopics": set(sub_topic_ids)},
                ReturnValues="ALL_NEW",
            )
        except ClientError as e:
            if _is_conditional_check_failure(e):
                _LOGGER.warning(f"No enrollment for user {user_id}, module {module_id}; subtopics not recorded.")
                return None
            _LOGGER.error(f"Failed to add completed subtopics for {user_id}/{module_id}: {e}")
            raise
        _LOGGER.info(f"Recorded completed subtopics {sorted(sub_topic_ids)} for user {user_id}, module {module_id}.")
        return self._validate(response.get("Attributes", {}))

    def set_progress_percentage(self, user_id: UserId, module_id: ModuleId, progress_percentage: int) -> None:
        self.table.update_item(
            Key={"userId": user_id, "moduleId": module_id},
            UpdateExpression="SET progressPercentage = :progress",
            ConditionExpression=_ENROLLMENT_EXISTS,
            ExpressionAttributeValues={":progress": progress_percentage},
        )
        _LOGGER.info(f"Progress for user {user_id} in module {module_id} is now {progress_percentage}%.")

    def record_level_score(
        self, user_id: UserId, module_id: ModuleId, level_id: LevelId, level_score: LevelScoreModel
    ) -> None:
        """Stores the latest level test outcome under levelTestScores[level_id]."""
        score_item = level_score.model_dump(exclude_none=True)
        try:
            self.table.update_item(
                Key={"userId": user_id, "moduleId": module_id},
                UpdateExpression="SET levelTestScores.#levelId = :score",
                ConditionExpression=f"{_ENROLLMENT_EXISTS} AND attribute_exists(levelTestScores)",
                ExpressionAttributeNames={"#levelId": level_id},
                ExpressionAttributeValues={":score": score_item},
            )
            return
        except ClientError as e:
            if not _is_conditional_check_failure(e):
                raise

        # Older enrollments may lack the map entirely; create it with this level's entry.
        self.table.update_item(
            Key={"userId": user_id, "moduleId": module_id},
            UpdateExpression="SET levelTestScores = if_not_exists(levelTestScores, :scores)",
            ConditionExpression=_ENROLLMENT_EXISTS,
            ExpressionAttributeValues={":scores": {level_id: score_item}},
        )

    def record_exam_pass(self, user_id: UserId, module_id: ModuleId, exam_score: int, passed_at: IsoTimestamp) -> None:
        """Marks the module exam as completed. completedAt keeps the first passing time."""
        self.table.update_item(
            Key={"userId": user_id, "moduleId": module_id},
            UpdateExpression=(
                "SET examCompleted = :true, examScore = :score, completedAt = if_not_exists(completedAt, :passedAt)"
            ),
            ConditionExpression=_ENROLLMENT_EXISTS,
            ExpressionAttributeValues={":true": True, ":score": exam_score, ":passedAt": passed_at},
        )
        _LOGGER.info(f"Exam passed for user {user_id}, module {module_id} with score {exam_score}.")

    def set_certificate_available_at_once(
        self, user_id: UserId, module_id: ModuleId, available_at: IsoTimestamp
    ) -> bool:
        """
        Sets certificateAvailableAt only if it has never been set.

        :return: True if this call set it, False if it was already set (or no enrollment exists).
        """
        try:
            self.table.update_item(
                Key={"userId": user_id, "moduleId": module_id},
                UpdateExpression="SET certificateAvailableAt = :availableAt",
                ConditionExpression=f"{_ENROLLMENT_EXISTS} AND attribute_not_exists(certificateAvailableAt)",
                ExpressionAttributeValues={":availableAt": available_at},
            )
            _LOGGER.info(f"Certificate for user {user_id}, module {module_id} available at {available_at}.")
            return True
        except ClientError as e:
            if _is_conditional_check_failure(e):
                _LOGGER.info(f"certificateAvailableAt already set for user {user_id}, module {module_id}.")
                return False
            raise

    def mark_certificate_issued(self, user_id: UserId, module_id: ModuleId, certificate_url: str) -> bool:
        """
        :return: True if this call issued the certificate, False if it had already been issued.
        """
        try:
            self.table.update_item(
                Key={"userId": user_id, "moduleId": module_id},
                UpdateExpression="SET certificateIssued = :true, certificateUrl = :url",
                ConditionExpression=(
                    f"{_ENROLLMENT_EXISTS} AND (attribute_not_exists(certificateIssued) OR certificateIssued = :false)"
                ),
                ExpressionAttributeValues={":true": True, ":false": False, ":url": certificate_url},
            )
            return True
        except ClientError as e:
            if _is_conditional_check_failure(e):
                return False
            raise
