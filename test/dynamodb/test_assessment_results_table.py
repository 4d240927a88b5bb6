from concurrent.futures import ThreadPoolExecutor

import pytest
from boto3.dynamodb.conditions import Key
from moto import mock_aws

from certification_backend.dynamodb.assessment_results_table import AssessmentResultsTable
from certification_backend.utils.base_types import (
    IsoTimestamp,
    LevelId,
    ModuleId,
    SubTopicId,
    TestId,
    UserId,
)

from ..test_utils.tables import TEST_RESULTS_TABLE_NAME, create_table

USER_ID = UserId("user-1")
MODULE_ID = ModuleId("m1")


@pytest.fixture
def dynamodb_results_table(aws_credentials):
    with mock_aws():
        create_table(TEST_RESULTS_TABLE_NAME)
        yield


@pytest.fixture
def results_table(dynamodb_results_table) -> AssessmentResultsTable:
    return AssessmentResultsTable(TEST_RESULTS_TABLE_NAME)


def _upsert(
    table: AssessmentResultsTable,
    score: int,
    completed_at: str,
    test_id: str = "S1-test",
    test_kind: str = "SUB_TOPIC",
    user_id: UserId = USER_ID,
    time_spent=None,
):
    correct = score // 10
    return table.upsert_result(
        user_id=user_id,
        test_kind=test_kind,  # type: ignore
        test_id=TestId(test_id),
        module_id=MODULE_ID,
        level_id=LevelId("L1"),
        sub_topic_id=SubTopicId("S1") if test_kind == "SUB_TOPIC" else None,
        score=score,
        total_questions=10,
        correct_answers=correct,
        answers={"q1": "a"},
        passed=score >= 70,
        time_spent=time_spent,
        completed_at=IsoTimestamp(completed_at),
    )


def _count_rows(table: AssessmentResultsTable, user_id: UserId) -> int:
    return len(table.table.query(KeyConditionExpression=Key("userId").eq(user_id))["Items"])


def test_get_result_not_exists(results_table: AssessmentResultsTable):
    assert results_table.get_result(USER_ID, "LEVEL", TestId("nope")) is None


def test_upsert_inserts_first_attempt(results_table: AssessmentResultsTable):
    result = _upsert(results_table, 60, "2025-03-01T10:00:00+00:00", time_spent=120)

    assert result.testKey == "SUB_TOPIC#S1-test"
    assert result.score == 60
    assert result.passed is False
    assert result.attempts == 1
    assert result.timeSpent == 120
    assert result.firstAttemptedAt == "2025-03-01T10:00:00+00:00"
    assert results_table.get_result(USER_ID, "SUB_TOPIC", TestId("S1-test")) == result


def test_upsert_overwrites_in_place(results_table: AssessmentResultsTable):
    _upsert(results_table, 60, "2025-03-01T10:00:00+00:00", time_spent=120)
    second = _upsert(results_table, 80, "2025-03-01T11:00:00+00:00")

    assert second.score == 80
    assert second.correctAnswers == 8
    assert second.passed is True
    assert second.attempts == 2
    assert second.completedAt == "2025-03-01T11:00:00+00:00"
    assert second.firstAttemptedAt == "2025-03-01T10:00:00+00:00"
    # Optional fields from the previous attempt do not leak into the new one
    assert second.timeSpent is None
    assert _count_rows(results_table, USER_ID) == 1


def test_same_test_id_different_kind_are_separate(results_table: AssessmentResultsTable):
    _upsert(results_table, 60, "2025-03-01T10:00:00+00:00", test_id="shared", test_kind="SUB_TOPIC")
    _upsert(results_table, 90, "2025-03-01T11:00:00+00:00", test_id="shared", test_kind="LEVEL")

    assert _count_rows(results_table, USER_ID) == 2


def test_get_results_for_user_filters_and_sorts(results_table: AssessmentResultsTable):
    _upsert(results_table, 60, "2025-03-01T10:00:00+00:00", test_id="S1-test")
    _upsert(results_table, 90, "2025-03-03T10:00:00+00:00", test_id="L1-test", test_kind="LEVEL")
    _upsert(results_table, 70, "2025-03-02T10:00:00+00:00", test_id="S2-test")
    _upsert(results_table, 100, "2025-03-02T10:00:00+00:00", user_id=UserId("other"))

    all_results = results_table.get_results_for_user(USER_ID)
    assert [r.testId for r in all_results] == ["L1-test", "S2-test", "S1-test"]

    sub_topic_results = results_table.get_results_for_user(USER_ID, test_kind="SUB_TOPIC")
    assert [r.testId for r in sub_topic_results] == ["S2-test", "S1-test"]

    assert results_table.get_results_for_user(USER_ID, test_kind="MODULE") == []


def test_concurrent_submissions_leave_one_row(dynamodb_results_table):
    # Each worker gets its own table resource; boto3 resources are not shared across threads.
    tables = [AssessmentResultsTable(TEST_RESULTS_TABLE_NAME) for _ in range(2)]
    scores = [60, 80]

    with ThreadPoolExecutor(max_workers=2) as executor:
        futures = [
            executor.submit(_upsert, table, score, f"2025-03-01T10:00:0{i}+00:00")
            for i, (table, score) in enumerate(zip(tables, scores))
        ]
        for future in futures:
            future.result()

    assert _count_rows(tables[0], USER_ID) == 1
    stored = tables[0].get_result(USER_ID, "SUB_TOPIC", TestId("S1-test"))
    assert stored is not None
    assert stored.score in scores
    assert stored.passed == (stored.score >= 70)
