"""
Studianta - Subject Models
SQLAlchemy models for subjects and their study materials.

Subject and material CRUD lives in another module of the app; the exam
pipeline only reads these rows to resolve source documents.
"""
import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studianta.core.database import Base


class Subject(Base):
    """A course tracked by a student."""

    __tablename__ = "subjects"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True)
    name: Mapped[str] = mapped_column(String(200))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )

    # Relationships
    materials: Mapped[list["StudyMaterial"]] = relationship(
        "StudyMaterial",
        back_populates="subject",
        cascade="all, delete-orphan",
        order_by="StudyMaterial.created_at",
    )


class StudyMaterial(Base):
    """A document uploaded to a subject (syllabus, notes, slides...)."""

    __tablename__ = "study_materials"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    subject_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("subjects.id", ondelete="CASCADE"),
        index=True
    )
    name: Mapped[str] = mapped_column(String(255))
    type: Mapped[str] = mapped_column(String(50), default="PDF")  # PDF, Apunte, ...
    category: Mapped[str] = mapped_column(String(50), default="contenido")

    # Either a storage URL or an inline base64 payload
    file_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )

    subject: Mapped["Subject"] = relationship("Subject", back_populates="materials")
