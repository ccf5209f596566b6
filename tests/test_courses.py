from datetime import datetime, timezone

from fakes import seed_account, seed_course, seed_session


def test_course_list_is_scoped_by_role(client, db, admin, teacher, student):
    mine = seed_course(db, teacher, students=[student], title="Mine")
    seed_course(db, seed_account(db, "teacher"), title="Theirs")

    admin_titles = {c["title"] for c in client.get("/api/courses/", headers=admin.headers).json()["courses"]}
    teacher_courses = client.get("/api/courses/", headers=teacher.headers).json()["courses"]
    student_courses = client.get("/api/courses/", headers=student.headers).json()["courses"]

    assert admin_titles == {"Mine", "Theirs"}
    assert [c["id"] for c in teacher_courses] == [mine["id"]]
    assert teacher_courses[0]["student_count"] == 1
    assert teacher_courses[0]["teacher"]["user"]["name"] == "Tom Teacher"
    assert [c["id"] for c in student_courses] == [mine["id"]]


def test_teacher_creates_course_for_themselves(client, db, teacher):
    other = seed_account(db, "teacher")
    response = client.post(
        "/api/courses/",
        json={"title": "Chemistry", "teacher_id": other.profile_id},
        headers=teacher.headers,
    )
    assert response.status_code == 200
    course = next(row for row in db.rows("courses") if row["id"] == response.json()["id"])
    assert course["teacher_id"] == teacher.profile_id


def test_student_cannot_create_course(client, student):
    assert client.post("/api/courses/", json={"title": "Nope"}, headers=student.headers).status_code == 403


def test_admin_course_with_curriculum(client, db, admin, teacher, student):
    payload = {
        "title": "Biology",
        "teacher_id": teacher.profile_id,
        "student_ids": [student.profile_id],
        "curriculum": [{
            "title": "Week 1",
            "lessons": [
                {"type": "lecture", "title": "Cells", "scheduled_at": "2026-04-01T09:00:00Z"},
                {"type": "assignment", "description": {"type": "doc", "content": []}, "total_marks": 10},
                {"type": "quiz", "title": "Cells quiz"},
            ],
        }],
    }
    response = client.post("/api/courses/", json=payload, headers=admin.headers)
    assert response.status_code == 200
    course_id = response.json()["id"]

    assert db.rows("course_students")[0]["course_id"] == course_id
    session = db.rows("course_sessions")[0]
    assert session["title"] == "Cells"
    assert session["teacher_id"] == teacher.profile_id
    assert db.rows("session_students")[0]["session_id"] == session["id"]
    assignment = db.rows("assignments")[0]
    assert assignment["title"] == "Assignment from Week 1"
    assert assignment["description_richjson"] == {"type": "doc", "content": []}
    assert db.rows("quizzes")[0]["title"] == "Cells quiz"
    assert db.rows("quiz_students")[0]["student_id"] == student.profile_id


def test_course_detail_includes_roster_for_owner_only(client, db, teacher, student):
    course = seed_course(db, teacher, students=[student])
    as_teacher = client.get(f"/api/courses/{course['id']}", headers=teacher.headers).json()["course"]
    as_student = client.get(f"/api/courses/{course['id']}", headers=student.headers).json()["course"]
    assert [s["name"] for s in as_teacher["students"]] == ["Sam Student"]
    assert "students" not in as_student


def test_only_admin_updates_and_deletes(client, db, admin, teacher):
    course = seed_course(db, teacher)
    assert client.patch(f"/api/courses/{course['id']}", json={"title": "x"}, headers=teacher.headers).status_code == 403
    assert client.patch(f"/api/courses/{course['id']}", json={"title": "Renamed"}, headers=admin.headers).status_code == 200
    assert db.rows("courses")[0]["title"] == "Renamed"
    assert client.delete(f"/api/courses/{course['id']}", headers=teacher.headers).status_code == 403
    assert client.delete(f"/api/courses/{course['id']}", headers=admin.headers).status_code == 200
    assert db.rows("courses") == []


def test_enrolment_is_admin_only_and_rejects_duplicates(client, db, admin, teacher, student):
    course = seed_course(db, teacher)
    url = f"/api/courses/{course['id']}/students"

    assert client.post(url, json={"student_id": student.profile_id}, headers=teacher.headers).status_code == 403
    assert client.post(url, json={"student_id": student.profile_id}, headers=admin.headers).status_code == 200
    duplicate = client.post(url, json={"student_id": student.profile_id}, headers=admin.headers)
    assert duplicate.status_code == 400
    assert len(db.rows("course_students")) == 1

    roster = client.get(url, headers=teacher.headers).json()["students"]
    assert [s["id"] for s in roster] == [student.profile_id]

    assert client.delete(f"{url}/{student.profile_id}", headers=admin.headers).status_code == 200
    assert client.delete(f"{url}/{student.profile_id}", headers=admin.headers).status_code == 404


def test_student_cannot_read_roster(client, db, teacher, student):
    course = seed_course(db, teacher, students=[student])
    response = client.get(f"/api/courses/{course['id']}/students", headers=student.headers)
    assert response.status_code == 404


def test_course_sessions_visible_to_enrolled_student(client, db, teacher, student):
    course = seed_course(db, teacher, students=[student])
    seed_session(db, course, datetime(2026, 5, 1, tzinfo=timezone.utc))
    outsider = seed_account(db, "student")

    assert len(client.get(f"/api/courses/{course['id']}/sessions", headers=student.headers).json()["sessions"]) == 1
    assert client.get(f"/api/courses/{course['id']}/sessions", headers=outsider.headers).status_code == 404


def test_course_sessions_hide_room_references(client, db, teacher, student):
    course = seed_course(db, teacher, students=[student])
    seed_session(db, course, datetime(2026, 5, 1, tzinfo=timezone.utc))

    sessions = client.get(f"/api/courses/{course['id']}/sessions", headers=student.headers).json()["sessions"]
    assert sessions[0]["title"] == "Live class"
    assert "daily_room_id" not in sessions[0]
    assert "daily_room_url" not in sessions[0]


def test_repeated_student_ids_enrol_once(client, db, admin, teacher, student):
    response = client.post("/api/courses/", json={
        "title": "Physics",
        "teacher_id": teacher.profile_id,
        "student_ids": [student.profile_id, student.profile_id],
        "curriculum": [{"title": "Week 1", "lessons": [{"type": "quiz", "title": "Units"}]}],
    }, headers=admin.headers)
    assert response.status_code == 200
    assert [row["student_id"] for row in db.rows("course_students")] == [student.profile_id]
    assert [row["student_id"] for row in db.rows("quiz_students")] == [student.profile_id]
