from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from tests.helpers.factories import create_course, enroll, lessons_of

STUDENT_ID = 55


def test_lesson_completion_and_course_progress(client: TestClient, db_session: Session, auth_headers):
    course = create_course(db_session, lessons=2)
    enroll(db_session, STUDENT_ID, course.id)
    lessons = lessons_of(db_session, course.id)
    headers = auth_headers(STUDENT_ID)

    r = client.post(f"/lessons/{lessons[0].id}/complete", headers=headers)
    assert r.status_code == 200, r.text
    assert r.json()["data"]["is_completed"] is True

    r = client.get(f"/courses/{course.id}/progress", headers=headers)
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["completed_lessons"] == 1
    assert data["progress_percentage"] == 50
    assert data["status"] == "in_progress"


def test_watch_progress_completes_lesson(client: TestClient, db_session: Session, auth_headers):
    course = create_course(db_session, lessons=1)
    enroll(db_session, STUDENT_ID, course.id)
    lesson = lessons_of(db_session, course.id)[0]
    headers = auth_headers(STUDENT_ID)

    r = client.post(f"/lessons/{lesson.id}/watch", headers=headers, json={"watched_percentage": 50})
    assert r.json()["data"]["is_completed"] is False

    r = client.post(f"/lessons/{lesson.id}/watch", headers=headers, json={"watched_percentage": 95})
    assert r.json()["data"]["is_completed"] is True

    r = client.post(f"/lessons/{lesson.id}/watch", headers=headers, json={"watched_percentage": 150})
    assert r.status_code == 422


def test_progress_requires_enrollment(client: TestClient, db_session: Session, auth_headers):
    course = create_course(db_session, lessons=1)
    r = client.get(f"/courses/{course.id}/progress", headers=auth_headers(STUDENT_ID))
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "NOT_ENROLLED"


def test_unknown_lesson(client: TestClient, auth_headers):
    r = client.post("/lessons/4040/complete", headers=auth_headers(STUDENT_ID))
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "LESSON_NOT_FOUND"
