import pytest
from moto import mock_aws

from certification_backend.dynamodb.content_progress_table import ContentProgressTable
from certification_backend.utils.base_types import ContentId, IsoTimestamp, SubTopicId, UserId

from ..test_utils.tables import CONTENT_PROGRESS_TABLE_NAME, create_table

USER_ID = UserId("user-1")
COMPLETED_AT = IsoTimestamp("2025-03-01T10:00:00+00:00")


@pytest.fixture
def content_progress_table(aws_credentials):
    with mock_aws():
        create_table(CONTENT_PROGRESS_TABLE_NAME)
        yield ContentProgressTable(CONTENT_PROGRESS_TABLE_NAME)


def test_no_completions(content_progress_table: ContentProgressTable):
    assert content_progress_table.get_completed_content_ids(USER_ID) == set()


def test_mark_complete_is_write_once(content_progress_table: ContentProgressTable):
    assert content_progress_table.mark_complete(USER_ID, ContentId("c1"), SubTopicId("S1"), COMPLETED_AT) is True
    assert (
        content_progress_table.mark_complete(
            USER_ID, ContentId("c1"), SubTopicId("S1"), IsoTimestamp("2025-03-02T10:00:00+00:00")
        )
        is False
    )

    item = content_progress_table.table.get_item(Key={"userId": USER_ID, "contentId": "c1"})["Item"]
    assert item["completedAt"] == COMPLETED_AT


def test_completions_are_per_user(content_progress_table: ContentProgressTable):
    content_progress_table.mark_complete(USER_ID, ContentId("c1"), SubTopicId("S1"), COMPLETED_AT)
    content_progress_table.mark_complete(USER_ID, ContentId("c2"), SubTopicId("S1"), COMPLETED_AT)
    content_progress_table.mark_complete(UserId("user-2"), ContentId("c3"), SubTopicId("S1"), COMPLETED_AT)

    assert content_progress_table.get_completed_content_ids(USER_ID) == {"c1", "c2"}
    assert content_progress_table.get_completed_content_ids(UserId("user-2")) == {"c3"}
