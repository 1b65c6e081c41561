from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from assessment.core.database import Base
from assessment.core.constants import QuestionTypeEnum

class Question(Base):
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, index=True)
    exam_id = Column(Integer, ForeignKey("exams.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    question_text = Column(String, nullable=False)
    question_type = Column(Enum(QuestionTypeEnum), nullable=False)
    options = Column(JSON, nullable=True)  # [{"id": ..., "text": ...}] for single choice
    correct_answer = Column(String, nullable=True)  # option id, "true"/"false" or canonical text
    points = Column(Integer, nullable=False, default=1)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    exam = relationship("Exam", back_populates="questions")
    user_answers = relationship("UserAnswer", back_populates="question", cascade="all, delete-orphan")
