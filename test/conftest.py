"""
Pytest configuration and fixtures for all tests.

This file contains fixtures that are automatically available to all test files.
"""

import os
import typing

import pytest


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """
    Sets up environment variables required for all tests.

    The lambdas read their table names from the environment at construction time, so these
    must exist before any global handler is invoked.
    """
    os.environ["AWS_REGION"] = "us-west-1"

    # DynamoDB Table Names
    os.environ["CURRICULUM_TABLE_NAME"] = "test-curriculum-table"
    os.environ["CONTENT_PROGRESS_TABLE_NAME"] = "test-content-progress-table"
    os.environ["ENROLLMENTS_TABLE_NAME"] = "test-enrollments-table"
    os.environ["TEST_RESULTS_TABLE_NAME"] = "test-results-table"
    os.environ["USER_PROFILE_TABLE_NAME"] = "test-user-profile-table"
    os.environ["SECRETS_TABLE_NAME"] = "test-secrets-table"

    yield


@pytest.fixture(scope="function")
def aws_credentials() -> typing.Iterator[None]:
    """
    Mocks AWS credentials for moto (AWS mocking library).

    This fixture is used by DynamoDB table tests that use the mock_aws context manager from moto.
    """
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-west-1"
    yield
    del os.environ["AWS_ACCESS_KEY_ID"]
    del os.environ["AWS_SECRET_ACCESS_KEY"]
    del os.environ["AWS_SECURITY_TOKEN"]
    del os.environ["AWS_SESSION_TOKEN"]
    del os.environ["AWS_DEFAULT_REGION"]
