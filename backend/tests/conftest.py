"""
Pytest configuration and fixtures
"""
import os
import sys
from pathlib import Path
from typing import Dict, List, Sequence, Union

import pytest

# Add backend directory to path for imports
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

# Settings are cached on first use; pin the test environment before importing the app
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DATABASE_CREATE_TABLES"] = "false"
os.environ["PDPTOOL_PATH"] = "/nonexistent/pdptool"
os.environ.setdefault("LOG_LEVEL", "WARNING")

from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from pdpgate.core.config import get_settings
from pdpgate.core.database import Base, build_engine
from pdpgate.services.pdp_backend import PDPBackend, ToolResult

Response = Union[bytes, str, Exception]


class FakePDPBackend(PDPBackend):
    """
    Scripted PDP backend.

    ``script`` maps a subcommand to the responses of successive calls; the last
    response repeats once the list is used up. Exceptions are raised instead of
    returned.
    """

    def __init__(self, script: Dict[str, List[Response]] = None):
        self.script = {name: list(responses) for name, responses in (script or {}).items()}
        self.calls: List[tuple] = []
        self.staged: List[dict] = []

    def on(self, subcommand: str, *responses: Response) -> "FakePDPBackend":
        self.script[subcommand] = list(responses)
        return self

    def calls_for(self, subcommand: str) -> List[List[str]]:
        return [args for name, args in self.calls if name == subcommand]

    async def invoke(self, subcommand: str, args: Sequence[str]) -> ToolResult:
        args = list(args)
        self.calls.append((subcommand, args))
        if subcommand == "upload-file":
            path = args[-1]
            with open(path, "rb") as f:
                self.staged.append({"path": path, "content": f.read()})

        responses = self.script.get(subcommand)
        if not responses:
            raise AssertionError(f"unexpected call to {subcommand}")
        response = responses.pop(0) if len(responses) > 1 else responses[0]
        if isinstance(response, Exception):
            raise response
        if isinstance(response, str):
            response = response.encode()
        return ToolResult(subcommand=subcommand, args=args, output=response)


class RecordingSleep:
    """Async sleep replacement that only records requested delays"""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def fake_backend() -> FakePDPBackend:
    return FakePDPBackend()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture(scope="function")
def engine():
    """Fresh in-memory SQLite database per test"""
    import pdpgate.models  # noqa: F401

    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db(engine) -> Session:
    """Create a database session for testing"""
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture(scope="function")
def client(db: Session, fake_backend: FakePDPBackend, sleep: RecordingSleep):
    """Create test client with database and PDP backend overrides"""
    from fastapi.testclient import TestClient

    from pdpgate.api.dependencies import get_workflow_coordinator
    from pdpgate.core.database import get_db
    from pdpgate.main import app
    from pdpgate.services.metadata_store import SQLAlchemyMetadataStore
    from pdpgate.services.pdp_backend import get_pdp_backend
    from pdpgate.services.workflow_service import PDPWorkflowCoordinator

    def override_get_db():
        yield db

    def override_coordinator():
        return PDPWorkflowCoordinator(fake_backend, SQLAlchemyMetadataStore(db), sleep=sleep)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_pdp_backend] = lambda: fake_backend
    app.dependency_overrides[get_workflow_coordinator] = override_coordinator
    test_client = TestClient(app)
    yield test_client
    app.dependency_overrides.clear()
