from sqlalchemy import Column, Integer, DateTime, ForeignKey, Float, Boolean, Enum, String, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from assessment.core.database import Base
from assessment.core.constants import ExamAttemptStatusEnum

class ExamAttempt(Base):
    __tablename__ = "exam_attempts"
    __table_args__ = (
        UniqueConstraint("exam_id", "student_id", "attempt_number", name="uq_exam_attempt_number"),
    )

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, nullable=False, index=True)
    exam_id = Column(Integer, ForeignKey("exams.id"), nullable=False)
    attempt_number = Column(Integer, nullable=False)
    status = Column(Enum(ExamAttemptStatusEnum), nullable=False, default=ExamAttemptStatusEnum.IN_PROGRESS)
    started_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    time_spent_seconds = Column(Integer, nullable=False, default=0)
    score = Column(Float, nullable=True)
    max_score = Column(Float, nullable=True)
    passed = Column(Boolean, nullable=True)
    is_fully_scored = Column(Boolean, nullable=True)
    needs_rescore = Column(Boolean, nullable=False, default=False)
    rescore_reason = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    exam = relationship("Exam", back_populates="attempts")
    user_answers = relationship("UserAnswer", back_populates="exam_attempt", cascade="all, delete-orphan")
