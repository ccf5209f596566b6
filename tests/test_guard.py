from datetime import datetime, timedelta, timezone

import pytest
from fastapi.routing import APIRoute

from fakes import seed_account, seed_course, seed_session
from lms_portal.core.dependencies import Authorizer, course_ref, require_identity
from lms_portal.core.errors import Forbidden, NotFound
from lms_portal.core.policy import Action, Resource
from lms_portal.core.security import Identity
from lms_portal.db.ownership import OwnershipStore
from lms_portal.main import app

PUBLIC_ROUTES = {
    "/api/health",
    "/api/auth/sign-up",
    "/api/auth/sign-in",
    "/api/auth/sign-out",
}


def _calls(dependant):
    for dependency in dependant.dependencies:
        yield dependency.call
        yield from _calls(dependency)


def _api_routes(routes, prefix=""):
    """Walk the routing tree, descending into mounted or included routers."""
    for route in routes:
        if isinstance(route, APIRoute):
            yield (route.path if route.path.startswith(prefix) else prefix + route.path), route
            continue
        nested = getattr(route, "routes", None) or getattr(getattr(route, "router", None), "routes", None)
        if nested:
            yield from _api_routes(nested, prefix + (getattr(route, "prefix", None) or getattr(route, "path", "") or ""))


def test_every_api_route_resolves_the_caller():
    guarded = [
        (path, route) for path, route in _api_routes(app.routes)
        if path.startswith("/api") and path not in PUBLIC_ROUTES
    ]
    assert len(guarded) > 30
    for path, route in guarded:
        assert require_identity in set(_calls(route.dependant)), path


def test_missing_session_is_401_with_error_body(client):
    response = client.get("/api/courses/")
    assert response.status_code == 401
    assert response.json() == {"error": {"kind": "unauthenticated", "message": "Unauthorized"}}


def test_401_comes_before_body_validation(client):
    response = client.post("/api/sessions/", json={"title": "no course id"})
    assert response.status_code == 401


def test_body_validation_comes_before_authorization(client, student):
    response = client.post("/api/sessions/", json={"title": "bad"}, headers=student.headers)
    assert response.status_code == 400
    body = response.json()["error"]
    assert body["kind"] == "invalid_request"
    assert body["details"]


def test_expired_session_is_401(client, db):
    expired = seed_account(db, "admin", expires_at=datetime.now(timezone.utc) - timedelta(seconds=5))
    assert client.get("/api/courses/", headers=expired.headers).status_code == 401


def test_unknown_role_is_denied(client, db):
    odd = seed_account(db, "superuser")
    assert client.get("/api/courses/", headers=odd.headers).status_code == 403


def test_non_enrolled_student_cannot_tell_course_exists(client, db, teacher, student):
    course = seed_course(db, teacher)
    hidden = client.get(f"/api/courses/{course['id']}", headers=student.headers)
    missing = client.get("/api/courses/00000000-0000-0000-0000-000000000000", headers=student.headers)
    assert hidden.status_code == missing.status_code == 404
    assert hidden.json() == missing.json()


def test_other_teacher_gets_404_on_course_files(client, db, teacher):
    course = seed_course(db, teacher)
    other = seed_account(db, "teacher")
    response = client.get(f"/api/courses/{course['id']}/files", headers=other.headers)
    assert response.status_code == 404


def test_teacher_without_profile_is_denied(client, db, teacher):
    course = seed_course(db, teacher)
    orphan = seed_account(db, "teacher")
    db.tables["teachers"] = [row for row in db.rows("teachers") if row["user_id"] != orphan.user_id]
    session = seed_session(db, course, datetime.now(timezone.utc))
    response = client.patch(f"/api/sessions/{session['id']}", json={"title": "x"}, headers=orphan.headers)
    assert response.status_code == 403
    assert response.json()["error"]["message"] == "Teacher profile not found"


def test_ownership_lookup_failure_denies(db, teacher):
    course = seed_course(db, teacher)
    identity = Identity(user_id=teacher.user_id, email=teacher.email, role="teacher")
    db.fail_on.add(("select", "teachers"))
    authz = Authorizer(identity, OwnershipStore(db))
    with pytest.raises(Forbidden):
        authz.require(Resource.COURSE_SESSION, Action.UPDATE, course_ref(course["id"]))


def test_require_returns_loaded_row(db, admin, teacher):
    course = seed_course(db, teacher, title="Physics")
    identity = Identity(user_id=admin.user_id, email=admin.email, role="admin")
    loaded = Authorizer(identity, OwnershipStore(db)).require(Resource.COURSE, Action.READ, course_ref(course["id"]))
    assert loaded.title == "Physics"


def test_missing_resource_is_not_found(db, admin):
    identity = Identity(user_id=admin.user_id, email=admin.email, role="admin")
    authz = Authorizer(identity, OwnershipStore(db))
    with pytest.raises(NotFound) as exc_info:
        authz.require(Resource.COURSE, Action.UPDATE, course_ref("missing"))
    assert exc_info.value.message == "Course not found"
