"""Pytest configuration and shared fixtures."""

import os

# Settings are read at import time
os.environ.setdefault("GEMINI_API_KEY", "test-key")
os.environ.setdefault("SUPABASE_URL", "http://storage.test")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "service-role-key")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient

from priceledger.core.config import settings
from priceledger.main import app
from priceledger.pipeline.document_parse import DocumentParseWorkflow
from priceledger.pipeline.finalizer import ParseRunFinalizer
from priceledger.pipeline.page_parser import PageParser
from priceledger.pipeline.step_runner import StepRunner
from priceledger.services.documents.page_assets import PageAssetPreparer
from tests.fakes import FakeExtractor, FakeStorage, InMemoryDatabase, RecordingSleep


@pytest.fixture
def test_client() -> TestClient:
    """Create FastAPI test client.

    Returns:
        TestClient: FastAPI test client instance
    """
    return TestClient(app)


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    """Ensure FastAPI dependency overrides are reset between tests."""
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}


@pytest.fixture
def db() -> InMemoryDatabase:
    return InMemoryDatabase()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def step_runner(sleep: RecordingSleep) -> StepRunner:
    return StepRunner(max_attempts=3, base_delay=30.0, max_delay=300.0, sleep=sleep)


@pytest.fixture
def pipeline_settings():
    return settings.pipeline.model_copy(update={"max_pdf_pages": 20, "max_pdf_mb": 20})


@pytest.fixture
def workflow(db, storage, extractor, step_runner, pipeline_settings) -> DocumentParseWorkflow:
    """Parse workflow wired to the in-memory database, store and extractor."""
    return DocumentParseWorkflow(
        preparer=PageAssetPreparer(
            storage, scope_factory=db.scope, pipeline_settings=pipeline_settings
        ),
        page_parser=PageParser(storage, extractor, scope_factory=db.scope),
        finalizer=ParseRunFinalizer(scope_factory=db.scope),
        step_runner=step_runner,
        scope_factory=db.scope,
    )
