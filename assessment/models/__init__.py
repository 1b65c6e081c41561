# Import every model so string relationships resolve when any one is used.
from assessment.models.course import Course
from assessment.models.lesson import Lesson
from assessment.models.lesson_progress import LessonProgress
from assessment.models.course_enrollment import CourseEnrollment
from assessment.models.exam import Exam
from assessment.models.question import Question
from assessment.models.exam_attempt import ExamAttempt
from assessment.models.user_answer import UserAnswer
