"""Pytest configuration and fixtures for picx.

Remote repository calls go through FakeHub (httpx.MockTransport); the
bucket provider talks to FakeS3Client. No test touches the network.
"""

from collections.abc import Callable

import pytest

from picx.core.config import Settings
from picx.infrastructure.external.storage.bucket_storage import BucketStorageService
from picx.infrastructure.external.storage.repo_storage import RepoStorageService
from tests.fakes import BASE_URL, HUB, REPO, TOKEN, FakeHub, FakeS3Client, SleepRecorder


@pytest.fixture
def hub() -> FakeHub:
    return FakeHub()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_repo(sleeper: SleepRecorder) -> Callable[..., RepoStorageService]:
    """Build a RepoStorageService wired to a FakeHub (10 attempts, 1s apart, no real sleep)."""

    def _make(fake: FakeHub, **kwargs) -> RepoStorageService:
        kwargs.setdefault("verify_attempts", 10)
        kwargs.setdefault("verify_delay", 1.0)
        return RepoStorageService(
            token=TOKEN,
            repo=REPO,
            base_url=BASE_URL,
            endpoint=HUB,
            http_client=fake.client(),
            sleep=sleeper,
            **kwargs,
        )

    return _make


@pytest.fixture
def repo(hub: FakeHub, make_repo) -> RepoStorageService:
    return make_repo(hub)


@pytest.fixture
def s3_client() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def bucket(s3_client: FakeS3Client) -> BucketStorageService:
    return BucketStorageService(bucket="picx", base_url=BASE_URL + "/", client=s3_client)


@pytest.fixture
def settings() -> Settings:
    """Settings with both providers configured; no .env lookup."""
    return Settings(
        _env_file=None,
        base_url=BASE_URL,
        s3_bucket="picx",
        s3_endpoint_url="https://account.r2.cloudflarestorage.com",
        s3_access_key="AKIATEST",
        s3_secret_key="secret",
        hf_token=TOKEN,
        hf_repo=REPO,
        hf_endpoint=HUB,
    )
