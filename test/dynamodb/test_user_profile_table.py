import pytest
from moto import mock_aws

from certification_backend.dynamodb.user_profile_table import UserProfileTable
from certification_backend.utils.base_types import IsoTimestamp, UserId

from ..test_utils.tables import USER_PROFILE_TABLE_NAME, create_table


@pytest.fixture
def dynamodb_profile_table(aws_credentials):
    """Creates the mocked UserProfile table."""
    with mock_aws():
        create_table(USER_PROFILE_TABLE_NAME)
        yield


@pytest.fixture
def user_profile_table(dynamodb_profile_table) -> UserProfileTable:
    """Returns a UserProfileTable instance using the mocked table."""
    return UserProfileTable(USER_PROFILE_TABLE_NAME)


# Helper to cast strings to UserId for test readability
def as_userid(s: str) -> UserId:
    return UserId(s)


def test_get_profile_not_exists(user_profile_table: UserProfileTable):
    assert user_profile_table.get_profile(as_userid("nonexistent@example.com")) is None


def test_record_final_test_pass_creates_profile(user_profile_table: UserProfileTable):
    user_id = as_userid("user1@example.com")

    assert user_profile_table.record_final_test_pass(user_id, 85, IsoTimestamp("2025-03-01T10:00:00+00:00")) is True

    profile = user_profile_table.get_profile(user_id)
    assert profile is not None
    assert profile.testCompleted is True
    assert profile.testScore == 85
    assert profile.certificateAvailableAt is None
    assert profile.certificateIssued is False


def test_record_final_test_pass_updates_score(user_profile_table: UserProfileTable):
    user_id = as_userid("user2@example.com")
    user_profile_table.record_final_test_pass(user_id, 75, IsoTimestamp("2025-03-01T10:00:00+00:00"))
    user_profile_table.record_final_test_pass(user_id, 95, IsoTimestamp("2025-03-02T10:00:00+00:00"))

    profile = user_profile_table.get_profile(user_id)
    assert profile is not None
    assert profile.testScore == 95
    assert profile.updatedAt == "2025-03-02T10:00:00+00:00"


def test_set_certificate_available_at_once(user_profile_table: UserProfileTable):
    user_id = as_userid("user3@example.com")
    first = IsoTimestamp("2025-03-03T10:00:00+00:00")

    assert user_profile_table.set_certificate_available_at_once(user_id, first) is True
    later = IsoTimestamp("2025-06-01T00:00:00+00:00")
    assert user_profile_table.set_certificate_available_at_once(user_id, later) is False

    profile = user_profile_table.get_profile(user_id)
    assert profile is not None
    assert profile.certificateAvailableAt == first


def test_mark_certificate_issued_once(user_profile_table: UserProfileTable):
    user_id = as_userid("user4@example.com")

    assert user_profile_table.mark_certificate_issued(user_id, "certificate-user4.pdf") is True
    assert user_profile_table.mark_certificate_issued(user_id, "another.pdf") is False

    profile = user_profile_table.get_profile(user_id)
    assert profile is not None
    assert profile.certificateIssued is True
    assert profile.certificateUrl == "certificate-user4.pdf"


def test_invalid_profile_data_returns_none(user_profile_table: UserProfileTable):
    user_id = as_userid("user5@example.com")
    user_profile_table.table.put_item(Item={"userId": user_id, "testScore": 250})

    assert user_profile_table.get_profile(user_id) is None
