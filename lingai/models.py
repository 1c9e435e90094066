from sqlalchemy import (
    Column, Integer, String, Boolean, ForeignKey, Text, DateTime,
    UniqueConstraint, CheckConstraint, Index, JSON
)
from sqlalchemy.orm import relationship
from sqlalchemy import Enum as SAEnum
from .database import Base
import enum
import uuid
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, enum.Enum):
    pending = "pending"
    running = "running"
    succeeded = "succeeded"
    failed = "failed"


class JobKind(str, enum.Enum):
    first_lesson = "first_lesson"
    lesson_audio = "lesson_audio"
    comic_image = "comic_image"
    recap = "recap"


# ---------------------------
# USER MODEL (auth library table)
# ---------------------------
class User(Base):
    __tablename__ = "user"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(320), unique=True, index=True, nullable=False)
    hashed_password = Column(String(1024), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    is_superuser = Column(Boolean, default=False, nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    profile = relationship(
        "UserProfile",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    topics = relationship(
        "UserTopic",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


# ---------------------------
# ONBOARDING
# ---------------------------
class UserProfile(Base):
    __tablename__ = "user_profile"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), unique=True, nullable=False)
    target_language = Column(String(32), nullable=False, default="spanish")
    user_language = Column(String(32), nullable=False, default="english")
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    user = relationship("User", back_populates="profile")


class UserTopic(Base):
    __tablename__ = "user_topic"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), index=True, nullable=False)
    topic = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    user = relationship("User", back_populates="topics")


# ---------------------------
# LESSONS
# ---------------------------
class Lesson(Base):
    __tablename__ = "lesson"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), index=True, nullable=False)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    target_language = Column(String(32), nullable=False)
    user_language = Column(String(32), nullable=False, default="english")
    difficulty = Column(String(32), nullable=False, default="beginner")
    topics = Column(JSON, nullable=False, default=list)
    lesson_number = Column(Integer, nullable=False)
    total_sentences = Column(Integer, nullable=False, default=0)
    content_key = Column(String, nullable=True)  # blob key of the lesson markdown

    comic_image_url = Column(String, nullable=True)
    comic_image_generated = Column(Boolean, nullable=False, default=False)

    is_recap_lesson = Column(Boolean, nullable=False, default=False)
    recap_markdown_url = Column(String, nullable=True)
    recap_generated = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    sentences = relationship(
        "Sentence",
        back_populates="lesson",
        order_by="Sentence.sentence_order.asc()",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint("user_id", "target_language", "lesson_number", name="uq_lesson_user_language_number"),
    )


class Sentence(Base):
    __tablename__ = "sentence"

    id = Column(Integer, primary_key=True, index=True)
    lesson_id = Column(Integer, ForeignKey("lesson.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), index=True, nullable=False)
    target_text = Column(Text, nullable=False)
    user_text = Column(Text, nullable=False)
    audio_url = Column(String, nullable=True)
    audio_generated = Column(Boolean, nullable=False, default=False)
    sentence_order = Column(Integer, nullable=False)
    context = Column(Text, nullable=True)
    difficulty = Column(String(32), nullable=True)
    tags = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    lesson = relationship("Lesson", back_populates="sentences")

    __table_args__ = (
        UniqueConstraint("lesson_id", "sentence_order", name="uq_sentence_lesson_order"),
    )


class SentenceProgress(Base):
    __tablename__ = "sentence_progress"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    sentence_id = Column(Integer, ForeignKey("sentence.id", ondelete="CASCADE"), nullable=False)
    lesson_id = Column(Integer, ForeignKey("lesson.id", ondelete="CASCADE"), index=True, nullable=False)
    completed = Column(Boolean, nullable=False, default=False)
    practice_count = Column(Integer, nullable=False, default=0)
    last_practiced_at = Column(DateTime(timezone=True), nullable=True)
    mastery_level = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "sentence_id", name="uq_progress_user_sentence"),
        CheckConstraint("mastery_level >= 0 AND mastery_level <= 5", name="ck_progress_mastery_range"),
        Index("ix_progress_user_practiced", "user_id", "last_practiced_at"),
    )


# ---------------------------
# BACKGROUND JOBS
# ---------------------------
def _job_id() -> str:
    return uuid.uuid4().hex


class GenerationJob(Base):
    __tablename__ = "generation_job"

    id = Column(String(32), primary_key=True, default=_job_id)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), index=True, nullable=False)
    kind = Column(SAEnum(JobKind), nullable=False)
    lesson_id = Column(Integer, ForeignKey("lesson.id", ondelete="CASCADE"), nullable=True, index=True)
    status = Column(SAEnum(JobStatus), nullable=False, default=JobStatus.pending)
    error = Column(Text, nullable=True)
    result = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
