from assessment.middleware.logging import attempt_id_from_path


def test_attempt_id_is_read_from_attempt_routes():
    assert attempt_id_from_path("/exams/attempts/17/answers") == 17
    assert attempt_id_from_path("/exams/attempts/17") == 17
    assert attempt_id_from_path("/exams/3/attempts") is None
    assert attempt_id_from_path("/courses/3/progress") is None
