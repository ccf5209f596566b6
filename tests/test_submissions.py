import pytest

from fakes import seed_account, seed_course


@pytest.fixture
def homework(db, teacher, student):
    course = seed_course(db, teacher, students=[student])
    assignment = db.add("assignments", course_id=course["id"], title="Essay", created_at="2026-02-01T00:00:00+00:00")
    db.add("assignment_students", assignment_id=assignment["id"], student_id=student.profile_id)
    return course, assignment


@pytest.fixture
def quiz(db, teacher, student):
    course = seed_course(db, teacher, students=[student])
    quiz = db.add("quizzes", course_id=course["id"], title="Quiz 1", created_at="2026-02-01T00:00:00+00:00")
    db.add("quiz_students", quiz_id=quiz["id"], student_id=student.profile_id)
    db.add("quiz_questions", id="q1", quiz_id=quiz["id"], question_text="2+2", question_type="multiple_choice",
           options=["3", "4"], correct_answer="4", points=2, sort_order=0)
    db.add("quiz_questions", id="q2", quiz_id=quiz["id"], question_text="Capital of France",
           question_type="short_answer", correct_answer="Paris", points=3, sort_order=1)
    return quiz


def test_teacher_creates_assignment_with_students_and_attachments(client, db, teacher, student):
    course = seed_course(db, teacher, students=[student])
    response = client.post("/api/assignments", json={
        "title": "Lab report",
        "course_id": course["id"],
        "description": {"type": "doc", "content": [{"type": "paragraph"}]},
        "selected_students": [student.profile_id],
        "attachments": [{"file_path": "https://storage.test/a.pdf", "file_name": "a.pdf", "mime": "application/pdf"}],
    }, headers=teacher.headers)
    assert response.status_code == 200
    assignment = db.rows("assignments")[0]
    assert assignment["created_by"] == teacher.profile_id
    assert assignment["description_richjson"]["content"] == [{"type": "paragraph"}]
    assert db.rows("assignment_students")[0]["student_id"] == student.profile_id
    assert db.rows("assignment_attachments")[0]["file_name"] == "a.pdf"


def test_resubmission_updates_the_single_submission(client, db, student, homework):
    _, assignment = homework
    url = f"/api/assignments/{assignment['id']}/submit"
    first = client.post(url, json={
        "content": {"text": "draft"},
        "attachments": [{"file_path": "p1", "file_name": "one.txt"}],
    }, headers=student.headers)
    second = client.post(url, json={
        "content": {"text": "final"},
        "attachments": [{"file_path": "p2", "file_name": "two.txt"}],
    }, headers=student.headers)

    assert first.status_code == second.status_code == 200
    assert first.json()["id"] == second.json()["id"]
    submissions = db.rows("assignment_submissions")
    assert len(submissions) == 1
    assert submissions[0]["content_richjson"] == {"text": "final"}
    assert [a["file_name"] for a in db.rows("submission_attachments")] == ["two.txt"]


def test_unassigned_student_cannot_submit(client, db, homework):
    _, assignment = homework
    outsider = seed_account(db, "student")
    response = client.post(f"/api/assignments/{assignment['id']}/submit", json={"content": "hi"},
                           headers=outsider.headers)
    assert response.status_code == 403
    assert db.rows("assignment_submissions") == []


def test_teacher_cannot_submit(client, teacher, homework):
    _, assignment = homework
    response = client.post(f"/api/assignments/{assignment['id']}/submit", json={"content": "hi"},
                           headers=teacher.headers)
    assert response.status_code == 403


def test_grading_is_limited_to_course_owner(client, db, teacher, student, homework):
    _, assignment = homework
    submission_id = client.post(f"/api/assignments/{assignment['id']}/submit", json={"content": "done"},
                                headers=student.headers).json()["id"]
    other = seed_account(db, "teacher")

    assert client.post(f"/api/submissions/{submission_id}/grade", json={"grade": 9},
                       headers=other.headers).status_code == 403
    assert client.post(f"/api/submissions/{submission_id}/grade", json={"grade": -1},
                       headers=teacher.headers).status_code == 400
    assert client.post(f"/api/submissions/{submission_id}/grade", json={"grade": 9},
                       headers=teacher.headers).status_code == 200
    graded = db.rows("assignment_submissions")[0]
    assert graded["grade"] == 9
    assert graded["status"] == "graded"


def test_student_sees_only_own_submissions(client, db, student, homework):
    _, assignment = homework
    classmate = seed_account(db, "student")
    db.add("assignment_students", assignment_id=assignment["id"], student_id=classmate.profile_id)
    db.add("assignment_submissions", assignment_id=assignment["id"], student_id=classmate.profile_id,
           content_richjson="theirs")
    db.add("assignment_submissions", assignment_id=assignment["id"], student_id=student.profile_id,
           content_richjson="mine")

    listed = client.get("/api/assignments", headers=student.headers).json()["assignments"]
    assert len(listed) == 1
    assert [s["content_richjson"] for s in listed[0]["submissions"]] == ["mine"]
    assert "students" not in listed[0]


def test_teacher_lists_assignments_of_own_courses(client, db, teacher, homework):
    foreign = seed_course(db, seed_account(db, "teacher"))
    db.add("assignments", course_id=foreign["id"], title="Foreign")
    listed = client.get("/api/assignments", headers=teacher.headers).json()["assignments"]
    assert [a["title"] for a in listed] == ["Essay"]
    assert listed[0]["students"][0]["user"]["name"] == "Sam Student"


def test_quiz_submission_is_scored_and_upserted(client, db, student, quiz):
    url = f"/api/quizzes/{quiz['id']}/submit"
    first = client.post(url, json={"answers": {"q1": "4", "q2": "  paris "}}, headers=student.headers)
    assert first.status_code == 200
    assert first.json()["score"] == 5

    second = client.post(url, json={"answers": {"q1": "3", "q2": "Paris"}}, headers=student.headers)
    assert second.json()["score"] == 3
    assert second.json()["id"] == first.json()["id"]
    assert len(db.rows("quiz_submissions")) == 1


def test_student_quiz_list_hides_answers(client, student, quiz):
    listed = client.get("/api/quizzes/", headers=student.headers).json()["quizzes"]
    assert [q["question_text"] for q in listed[0]["questions"]] == ["2+2", "Capital of France"]
    assert all("correct_answer" not in q for q in listed[0]["questions"])


def test_teacher_overrides_quiz_score(client, db, teacher, student, quiz):
    submission_id = client.post(f"/api/quizzes/{quiz['id']}/submit", json={"answers": {}},
                                headers=student.headers).json()["id"]
    response = client.patch(f"/api/quizzes/submissions/{submission_id}", json={"score": 4}, headers=teacher.headers)
    assert response.status_code == 200
    assert db.rows("quiz_submissions")[0]["score"] == 4
    assert client.patch(f"/api/quizzes/submissions/{submission_id}", json={"score": 4},
                        headers=student.headers).status_code == 403


def test_teacher_creates_quiz_with_questions(client, db, teacher, student):
    course = seed_course(db, teacher, students=[student])
    response = client.post("/api/quizzes/", json={
        "title": "Pop quiz",
        "course_id": course["id"],
        "selected_students": [student.profile_id],
        "questions": [{"question_text": "1+1", "options": ["1", "2"], "correct_answer": "2"}],
    }, headers=teacher.headers)
    assert response.status_code == 200
    question = db.rows("quiz_questions")[0]
    assert question["quiz_id"] == response.json()["id"]
    assert question["question_type"] == "multiple_choice"


def test_repeated_students_are_assigned_once(client, db, teacher, student):
    course = seed_course(db, teacher, students=[student])
    twice = [student.profile_id, student.profile_id]
    assert client.post("/api/assignments", json={
        "title": "Essay", "course_id": course["id"], "selected_students": twice,
    }, headers=teacher.headers).status_code == 200
    assert client.post("/api/quizzes/", json={
        "title": "Pop quiz", "course_id": course["id"], "selected_students": twice,
    }, headers=teacher.headers).status_code == 200

    assert [row["student_id"] for row in db.rows("assignment_students")] == [student.profile_id]
    assert [row["student_id"] for row in db.rows("quiz_students")] == [student.profile_id]
