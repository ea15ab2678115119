"""
Studianta - API Dependencies
FastAPI dependencies for authentication and the exam pipeline collaborators
"""
import uuid
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from studianta.ai.agents.examiner import ExaminerAgent, examiner_agent
from studianta.core.database import get_db
from studianta.core.security import user_id_from_token
from studianta.services.exam import ExamService
from studianta.services.material_extractor import MaterialTextExtractor

# Security scheme
security = HTTPBearer()


async def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> uuid.UUID:
    """
    Get the authenticated user id from the JWT bearer token.

    Raises:
        HTTPException: If token is invalid or carries no usable subject
    """
    user_id = user_id_from_token(credentials.credentials)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id


def get_examiner() -> ExaminerAgent:
    """Examiner agent used for generation."""
    return examiner_agent


def get_material_extractor() -> MaterialTextExtractor:
    """Extractor used to read study materials."""
    return MaterialTextExtractor()


DbSession = Annotated[AsyncSession, Depends(get_db)]
CurrentUserId = Annotated[uuid.UUID, Depends(get_current_user_id)]


def get_exam_service(
    db: DbSession,
    extractor: Annotated[MaterialTextExtractor, Depends(get_material_extractor)],
    examiner: Annotated[ExaminerAgent, Depends(get_examiner)],
) -> ExamService:
    return ExamService(db, extractor=extractor, examiner=examiner)
