from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Boolean, Float, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from assessment.core.database import Base

class UserAnswer(Base):
    __tablename__ = "user_answers"
    __table_args__ = (
        UniqueConstraint("exam_attempt_id", "question_id", name="uq_user_answer_attempt_question"),
    )

    id = Column(Integer, primary_key=True, index=True)
    exam_attempt_id = Column(Integer, ForeignKey("exam_attempts.id"), nullable=False)
    question_id = Column(Integer, ForeignKey("questions.id"), nullable=False)
    answer_text = Column(String, nullable=False, default="")
    is_correct = Column(Boolean, nullable=True)  # For auto-graded questions
    score = Column(Float, nullable=True)
    manual_score = Column(Float, nullable=True)  # Essay grade recorded by a teacher
    graded_by = Column(Integer, nullable=True)
    last_modified_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    exam_attempt = relationship("ExamAttempt", back_populates="user_answers")
    question = relationship("Question", back_populates="user_answers")
