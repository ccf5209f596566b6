from lms_portal.core.security import get_password_hash

SIGN_UP = {"email": "New.Person@School.org", "password": "s3cret-pass", "name": "New Person", "role": "teacher"}


def test_sign_up_creates_user_credential_profile_and_session(client, db):
    response = client.post("/api/auth/sign-up", json=SIGN_UP)
    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["user"]["email"] == "new.person@school.org"
    assert body["user"]["role"] == "teacher"
    assert body["token"]
    assert response.cookies.get("ba_session") == body["token"]

    user_id = body["user"]["id"]
    assert [row["user_id"] for row in db.rows("password_credentials")] == [user_id]
    assert [row["user_id"] for row in db.rows("teachers")] == [user_id]
    assert db.rows("sessions")[0]["session_token"] == body["token"]
    assert db.rows("password_credentials")[0]["password_hash"] != SIGN_UP["password"]


def test_signed_up_token_resolves_on_me(client):
    token = client.post("/api/auth/sign-up", json=SIGN_UP).json()["token"]
    client.cookies.clear()
    response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    assert response.json()["name"] == "New Person"


def test_duplicate_email_is_invalid_request(client, db):
    db.add("users", email="new.person@school.org", name="Existing", role="student")
    response = client.post("/api/auth/sign-up", json=SIGN_UP)
    assert response.status_code == 400
    assert response.json()["error"]["kind"] == "invalid_request"
    assert len(db.rows("users")) == 1


def test_failed_profile_insert_rolls_everything_back(client, db):
    db.fail_on.add(("insert", "teachers"))
    response = client.post("/api/auth/sign-up", json=SIGN_UP)
    assert response.status_code == 502
    assert db.rows("users") == []
    assert db.rows("password_credentials") == []
    assert db.rows("sessions") == []


def test_failed_session_insert_rolls_everything_back(client, db):
    db.fail_on.add(("insert", "sessions"))
    response = client.post("/api/auth/sign-up", json=SIGN_UP)
    assert response.status_code == 502
    assert db.rows("users") == []
    assert db.rows("password_credentials") == []
    assert db.rows("teachers") == []


def test_sign_up_validates_input(client, db):
    short = client.post("/api/auth/sign-up", json={**SIGN_UP, "password": "short"})
    bad_email = client.post("/api/auth/sign-up", json={**SIGN_UP, "email": "nope"})
    bad_role = client.post("/api/auth/sign-up", json={**SIGN_UP, "role": "owner"})
    assert short.status_code == bad_email.status_code == bad_role.status_code == 400
    assert db.rows("users") == []


def test_sign_up_defaults_to_student(client, db):
    payload = {key: value for key, value in SIGN_UP.items() if key != "role"}
    assert client.post("/api/auth/sign-up", json=payload).json()["user"]["role"] == "student"
    assert len(db.rows("students")) == 1


def _seed_login(db, password="right-password"):
    user = db.add("users", email="login@school.org", name="Login", role="student")
    db.add("password_credentials", user_id=user["id"], password_hash=get_password_hash(password))
    return user


def test_sign_in_records_client_details(client, db):
    user = _seed_login(db)
    response = client.post(
        "/api/auth/sign-in",
        json={"email": "LOGIN@school.org", "password": "right-password"},
        headers={"User-Agent": "pytest-agent", "X-Forwarded-For": "203.0.113.7, 10.0.0.1"},
    )
    assert response.status_code == 200
    session = db.rows("sessions")[0]
    assert session["user_id"] == user["id"]
    assert session["user_agent"] == "pytest-agent"
    assert session["ip_address"] == "203.0.113.7"


def test_sign_in_failures_look_identical(client, db):
    _seed_login(db)
    db.add("users", email="nocred@school.org", name="No Cred", role="student")
    wrong = client.post("/api/auth/sign-in", json={"email": "login@school.org", "password": "wrong-password"})
    unknown = client.post("/api/auth/sign-in", json={"email": "ghost@school.org", "password": "whatever-1"})
    no_cred = client.post("/api/auth/sign-in", json={"email": "nocred@school.org", "password": "whatever-1"})
    assert wrong.status_code == unknown.status_code == no_cred.status_code == 401
    assert wrong.json() == unknown.json() == no_cred.json()
    assert wrong.json()["error"]["message"] == "Invalid credentials"
    assert db.rows("sessions") == []


def test_sign_out_deletes_session_and_clears_cookie(client, db, student):
    response = client.post("/api/auth/sign-out", headers=student.headers)
    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert db.rows("sessions") == []
    assert client.get("/api/auth/me", headers=student.headers).status_code == 401


def test_sign_out_without_session_still_succeeds(client):
    assert client.post("/api/auth/sign-out").json() == {"ok": True}
