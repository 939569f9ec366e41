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

    The fixture uses session scope, as these env vars don't change between tests and
    don't need to be cleaned up (test process is isolated).
    """
    # AWS Configuration
    os.environ["AWS_REGION"] = "us-west-1"

    # DynamoDB Table Names
    os.environ["COURSES_TABLE_NAME"] = "test-courses-table"
    os.environ["MODULES_TABLE_NAME"] = "test-modules-table"
    os.environ["TOPICS_TABLE_NAME"] = "test-topics-table"
    os.environ["PROBLEMS_TABLE_NAME"] = "test-problems-table"
    os.environ["BATCHES_TABLE_NAME"] = "test-batches-table"
    os.environ["PROGRESS_TABLE_NAME"] = "test-progress-table"
    os.environ["TOPIC_NOTES_TABLE_NAME"] = "test-topic-notes-table"
    os.environ["SECRETS_TABLE_NAME"] = "test-secrets-table"

    # aws_embedded_metrics writes to stdout instead of looking for a CloudWatch agent
    os.environ["AWS_EMF_ENVIRONMENT"] = "local"

    yield


@pytest.fixture(scope="function")
def aws_credentials() -> typing.Iterator[None]:
    """
    Mocks AWS credentials for moto.

    Note: This is different from the AWS_REGION set in setup_test_environment.
    - AWS_REGION: Used by application code via get_aws_region()
    - These credentials: Used by moto for AWS service mocking
    """
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-west-1"
    yield
    # Clean up after each test
    del os.environ["AWS_ACCESS_KEY_ID"]
    del os.environ["AWS_SECRET_ACCESS_KEY"]
    del os.environ["AWS_SECURITY_TOKEN"]
    del os.environ["AWS_SESSION_TOKEN"]
    del os.environ["AWS_DEFAULT_REGION"]
