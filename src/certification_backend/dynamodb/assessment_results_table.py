import logging
import typing

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError
from pydantic import ValidationError

from certification_backend.models.assessment_models import AssessmentResultModel, make_test_key
from certification_backend.utils.base_types import (
    IsoTimestamp,
    LevelId,
    ModuleId,
    OptionId,
    QuestionId,
    SubTopicId,
    TestId,
    TestKind,
    UserId,
)

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class AssessmentResultsTable:
    """
    Data Abstraction Layer for subtopic, level and module test results.

    The primary key is the uniqueness constraint: a user has at most one result per test, and a
    resubmission is a single UpdateItem that overwrites the previous attempt in place. Two
    concurrent submissions therefore serialize on the item and the last writer wins; no
    duplicate rows can exist.

    Table Schema:
      - PK: userId (String)
      - SK: testKey (String - "testKind#testId", e.g. "LEVEL#lt-1")
    """

    def __init__(self, table_name: str) -> None:
        self.client = boto3.resource("dynamodb")
        self.table = self.client.Table(table_name)

    def upsert_result(
        self,
        user_id: UserId,
        test_kind: TestKind,
        test_id: TestId,
        module_id: ModuleId,
        score: int,
        total_questions: int,
        correct_answers: int,
        answers: dict[QuestionId, OptionId],
        passed: bool,
        completed_at: IsoTimestamp,
        level_id: typing.Optional[LevelId] = None,
        sub_topic_id: typing.Optional[SubTopicId] = None,
        time_spent: typing.Optional[int] = None,
    ) -> AssessmentResultModel:
        """
        Inserts the user's result for a test, or overwrites the existing one.
        firstAttemptedAt is kept from the first submission and attempts counts submissions.
        """
        test_key = make_test_key(test_kind, test_id)

        fields: dict[str, typing.Any] = {
            "testKind": test_kind,
            "testId": test_id,
            "moduleId": module_id,
            "levelId": level_id,
            "subTopicId": sub_topic_id,
            "score": score,
            "totalQuestions": total_questions,
            "correctAnswers": correct_answers,
            "answers": dict(answers),
            "passed": passed,
            "timeSpent": time_spent,
            "completedAt": completed_at,
        }

        set_parts = [
            "firstAttemptedAt = if_not_exists(firstAttemptedAt, :completedAt)",
            "attempts = if_not_exists(attempts, :zero) + :one",
        ]
        remove_parts = []
        expression_attribute_names: dict[str, str] = {}
        expression_attribute_values: dict[str, typing.Any] = {":zero": 0, ":one": 1}

        for name, value in fields.items():
            expression_attribute_names[f"#{name}"] = name
            if value is None:
                remove_parts.append(f"#{name}")
            else:
                set_parts.append(f"#{name} = :{name}")
                expression_attribute_values[f":{name}"] = value

        update_expression = "SET " + ", ".join(set_parts)
        if remove_parts:
            update_expression += " REMOVE " + ", ".join(remove_parts)

        try:
            response = self.table.update_item(
                Key={"userId": user_id, "testKey": test_key},
                UpdateExpression=update_expression,
                ExpressionAttributeNames=expression_attribute_names,
                ExpressionAttributeValues=expression_attribute_values,
                ReturnValues="ALL_NEW",
            )
        except ClientError as e:
            _LOGGER.error(
                f"Error saving result {test_key} for user '{user_id}': {e.response['Error']['Message']}", exc_info=True
            )
            raise

        result = AssessmentResultModel.model_validate(response["Attributes"])
        _LOGGER.info(
            f"Saved result {test_key} for user '{user_id}': score {score}, passed {passed}, attempt {result.attempts}."
        )
        return result

    def get_result(
        self, user_id: UserId, test_kind: TestKind, test_id: TestId
    ) -> typing.Optional[AssessmentResultModel]:
        test_key = make_test_key(test_kind, test_id)
        try:
            response = self.table.get_item(Key={"userId": user_id, "testKey": test_key})
        except ClientError as e:
            _LOGGER.error(f"Failed to get result {test_key} for user {user_id}: {e.response['Error']['Message']}")
            raise

        item_data = response.get("Item")
        if not item_data:
            return None
        try:
            return AssessmentResultModel.model_validate(item_data)
        except ValidationError as ve:
            _LOGGER.error(f"Failed to validate result {test_key} for user {user_id}: {ve}", exc_info=True)
            return None

    def get_results_for_user(
        self, user_id: UserId, test_kind: typing.Optional[TestKind] = None
    ) -> list[AssessmentResultModel]:
        """Returns the user's results, optionally limited to one test kind, newest first."""
        key_condition_expression = Key("userId").eq(user_id)
        if test_kind:
            key_condition_expression = key_condition_expression & Key("testKey").begins_with(f"{test_kind}#")

        results: list[AssessmentResultModel] = []
        query_kwargs: dict[str, typing.Any] = {"KeyConditionExpression": key_condition_expression}
        try:
            while True:
                response = self.table.query(**query_kwargs)
                for item_data in response.get("Items", []):
                    try:
                        results.append(AssessmentResultModel.model_validate(item_data))
                    except ValidationError as ve:
                        _LOGGER.warning(f"Skipping invalid result item for user {user_id}: {item_data}. Error: {ve}")
                if "LastEvaluatedKey" not in response:
                    break
                query_kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]
        except ClientError as e:
            _LOGGER.error(f"Failed to query results for user {user_id}: {e.response['Error']['Message']}")
            raise

        results.sort(key=lambda r: r.completedAt, reverse=True)
        return results
