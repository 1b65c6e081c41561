from assessment.crud.base import CRUDBase
from assessment.models.exam import Exam
from assessment.schemas.exam import ExamRules

class CRUDExam(CRUDBase[Exam, ExamRules, ExamRules]):
    pass


exam = CRUDExam(Exam)
