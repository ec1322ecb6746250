from __future__ import annotations

import os

import pytest

# Fake credentials so nothing can reach a real account.
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
os.environ["AWS_SECURITY_TOKEN"] = "testing"
os.environ["AWS_SESSION_TOKEN"] = "testing"
os.environ["AWS_DEFAULT_REGION"] = "us-east-1"

from moto import mock_aws  # noqa: E402

from s3bridge.common.config import Settings  # noqa: E402
from s3bridge.services.storage_service import build_storage_client  # noqa: E402

TEST_BUCKET = "test-bucket"


@pytest.fixture
def settings_factory():
    def _build(**overrides) -> Settings:
        values = {
            "S3_BUCKET": TEST_BUCKET,
            "S3_REGION": "us-east-1",
            "S3_ACCESS_KEY_ID": "testing",
            "S3_SECRET_ACCESS_KEY": "testing",
        }
        values.update(overrides)
        return Settings(**values)

    return _build


@pytest.fixture
def aws():
    with mock_aws():
        yield


@pytest.fixture(params=[True, False], ids=["aws-sdk", "s3-compatible"])
def storage_client(request, aws, settings_factory):
    settings = settings_factory(S3_AWS_SDK=request.param)
    return build_storage_client(settings, ensure_bucket=True)
