"""
Studianta - Test Configuration
Pytest fixtures and configuration for testing
"""
import json
import uuid
from collections.abc import AsyncGenerator
from typing import Any, Callable

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from langchain_core.language_models.fake_chat_models import FakeListChatModel
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

import studianta.models  # noqa: F401
from studianta.ai.agents.examiner import ExaminerAgent
from studianta.ai.core.llm import LLMClient
from studianta.api.deps import get_examiner, get_material_extractor
from studianta.core.database import Base, get_db
from studianta.core.security import create_access_token
from studianta.main import app
from studianta.models.subject import StudyMaterial, Subject
from studianta.services.material_extractor import (
    DocumentExtractionError,
    DocumentExtractor,
    MaterialTextExtractor,
)


# Test database URL (in-memory SQLite, one per test)
TEST_DATABASE_URL = "sqlite+aiosqlite://"

STORAGE_URL = "https://project.supabase.co/storage/v1/object/public/materials/{name}"


class FakeDocumentExtractor(DocumentExtractor):
    """Returns canned text per reference; references in `failures` raise."""

    def __init__(self, texts: dict[str, str] | None = None, failures: dict[str, str] | None = None):
        super().__init__()
        self.texts = texts or {}
        self.failures = failures or {}
        self.calls: list[str] = []

    async def extract_text(self, ref: str) -> str:
        self.calls.append(ref)
        if ref in self.failures:
            raise DocumentExtractionError(self.failures[ref])
        return self.texts.get(ref, f"Contenido de {ref}")


def build_exam_payload(count: int = 5, title: str = "Examen de Biología Celular") -> dict[str, Any]:
    """Multiple-choice exam as the model would return it (correct options cycle 1, 2, 3, 0)."""
    questions = []
    for number in range(1, count + 1):
        questions.append({
            "number": number,
            "type": "multiple-choice",
            "text": f"Pregunta {number}: ¿Qué orgánulo cumple la función {number}?",
            "options": ["Mitocondria", "Ribosoma", "Núcleo", "Lisosoma"],
            "correctAnswer": str(number % 4),
            "explanation": f"Explicación de la pregunta {number}",
            "rationale": f"Fundamento de la pregunta {number}",
            "sourceMaterial": "Material 1",
            "difficulty": "medium",
        })
    return {"exam": {"title": title, "questions": questions}}


def build_examiner(*responses: str) -> ExaminerAgent:
    """Examiner backed by a fake chat model replying with `responses` in order."""
    chat_model = FakeListChatModel(responses=list(responses))
    return ExaminerAgent(llm_client=LLMClient(chat_model=chat_model, json_mode=True))


@pytest_asyncio.fixture(scope="function")
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory database with the full schema."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Foreign keys (ON DELETE CASCADE) and SAVEPOINT support on SQLite
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    session_maker = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with session_maker() as session:
        yield session


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def auth_headers(user_id: uuid.UUID) -> dict[str, str]:
    token = create_access_token(str(user_id))
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def subject(db_session: AsyncSession, user_id: uuid.UUID) -> Subject:
    """A subject with two PDF materials stored by URL."""
    subject = Subject(user_id=user_id, name="Biología Celular")
    db_session.add(subject)
    await db_session.flush()

    for name in ("tema1.pdf", "tema2.pdf"):
        db_session.add(StudyMaterial(
            subject_id=subject.id,
            name=name,
            type="PDF",
            file_url=STORAGE_URL.format(name=name),
        ))
    await db_session.commit()
    await db_session.refresh(subject, ["materials"])
    return subject


@pytest.fixture
def fake_documents() -> type[FakeDocumentExtractor]:
    return FakeDocumentExtractor


@pytest.fixture
def document_extractor() -> FakeDocumentExtractor:
    return FakeDocumentExtractor()


@pytest.fixture
def material_extractor(document_extractor: FakeDocumentExtractor) -> MaterialTextExtractor:
    return MaterialTextExtractor(document_extractor=document_extractor)


@pytest.fixture
def exam_payload() -> dict[str, Any]:
    return build_exam_payload()


@pytest.fixture
def make_exam_payload() -> Callable[..., dict[str, Any]]:
    return build_exam_payload


@pytest.fixture
def examiner(exam_payload: dict[str, Any]) -> ExaminerAgent:
    return build_examiner(json.dumps(exam_payload, ensure_ascii=False))


@pytest.fixture
def make_examiner() -> Callable[..., ExaminerAgent]:
    return build_examiner


@pytest_asyncio.fixture(scope="function")
async def client(
    db_session: AsyncSession,
    examiner: ExaminerAgent,
    material_extractor: MaterialTextExtractor,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database, examiner and extractor overrides."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_examiner] = lambda: examiner
    app.dependency_overrides[get_material_extractor] = lambda: material_extractor

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
