import uuid

import anyio
import pytest
from fastapi.testclient import TestClient
from jose import jwt

from careportal.api import deps
from careportal.config import settings
from careportal.main import app

API = settings.api_prefix

PATIENT_BODY = {
    "first_name": "Grace",
    "last_name": "Hopper",
    "date_of_birth": "1956-12-09",
    "gender": "female",
    "email": "grace@mail.org",
    "phone": "555-0142",
}


def token_for(staff_id, email="someone@hospital.test", name=None) -> str:
    claims = {"sub": str(staff_id), "email": email}
    if name:
        claims["name"] = name
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def auth(identity) -> dict[str, str]:
    return {"Authorization": f"Bearer {token_for(identity.id, identity.email, identity.full_name)}"}


@pytest.fixture()
def client(role_store, patient_repo, record_repo, assignment_repo, recorder):
    app.dependency_overrides[deps.get_role_store] = lambda: role_store
    app.dependency_overrides[deps.get_patient_repo] = lambda: patient_repo
    app.dependency_overrides[deps.get_record_repo] = lambda: record_repo
    app.dependency_overrides[deps.get_assignment_repo] = lambda: assignment_repo
    app.state.audit_recorder = recorder

    yield TestClient(app)

    app.dependency_overrides.clear()
    del app.state.audit_recorder


@pytest.fixture()
def patient_id(client, nurse_identity):
    response = client.post(f"{API}/patients", json=PATIENT_BODY, headers=auth(nurse_identity))
    assert response.status_code == 201
    return response.json()["id"]


def test_health_and_headers(client):
    response = client.get("/health", headers={"X-Request-Id": "req-123"})

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.headers["X-Request-Id"] == "req-123"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"


def test_missing_token_rejected(client):
    response = client.get(f"{API}/patients")
    assert response.status_code in (401, 403)
    assert response.json()["error"]["type"] == "http_error"


@pytest.mark.parametrize(
    "token",
    [
        "not-a-jwt",
        jwt.encode({"sub": "not-a-uuid", "email": "x@hospital.test"}, "k", algorithm="HS256"),
    ],
)
def test_invalid_tokens_rejected(client, token):
    response = client.get(f"{API}/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"


def test_token_without_email_rejected(client):
    token = jwt.encode({"sub": str(uuid.uuid4())}, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
    response = client.get(f"{API}/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_me_provisions_pending_identity(client, role_store):
    staff_id = uuid.uuid4()
    headers = {"Authorization": f"Bearer {token_for(staff_id, 'new@hospital.test', 'New Hire')}"}

    response = client.get(f"{API}/me", headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "pending_approval"
    assert body["roles"] == []
    assert body["full_name"] == "New Hire"
    assert anyio.run(role_store.get_identity, staff_id) is not None

    blocked = client.get(f"{API}/patients", headers=headers)
    assert blocked.status_code == 403
    assert blocked.json()["error"]["message"] == "pending approval"


def test_me_for_staff(client, doctor_identity):
    body = client.get(f"{API}/me", headers=auth(doctor_identity)).json()
    assert body["status"] == "active"
    assert body["roles"] == ["doctor"]


def test_update_own_profile(client, nurse_identity):
    response = client.patch(
        f"{API}/me", json={"department": "Pediatrics"}, headers=auth(nurse_identity)
    )
    assert response.status_code == 200
    assert response.json()["department"] == "Pediatrics"
    assert response.json()["roles"] == ["nurse"]


def test_patient_lifecycle(client, recorder, audit_sink, admin_identity, nurse_identity, patient_id):
    listing = client.get(f"{API}/patients", params={"search": "hopper"}, headers=auth(nurse_identity))
    assert listing.status_code == 200
    assert [p["id"] for p in listing.json()] == [patient_id]

    detail = client.get(f"{API}/patients/{patient_id}", headers=auth(nurse_identity))
    assert detail.status_code == 200
    assert detail.json()["full_name"] == "Grace Hopper"
    assert detail.json()["created_by"] == str(nurse_identity.id)

    denied = client.delete(f"{API}/patients/{patient_id}", headers=auth(nurse_identity))
    assert denied.status_code == 403
    assert denied.json()["error"]["type"] == "forbidden"

    deleted = client.delete(f"{API}/patients/{patient_id}", headers=auth(admin_identity))
    assert deleted.status_code == 204

    missing = client.get(f"{API}/patients/{patient_id}", headers=auth(admin_identity))
    assert missing.status_code == 404
    assert missing.json()["error"] == {
        "message": "Patient not found",
        "status_code": 404,
        "type": "not_found",
        "request_id": missing.headers["X-Request-Id"],
    }

    anyio.run(recorder.flush)
    actions = [(e.action, e.resource_type) for e in audit_sink.entries]
    assert actions.count(("delete", "patient")) == 1
    assert ("create", "patient") in actions


def test_invalid_patient_body(client, nurse_identity):
    response = client.post(
        f"{API}/patients", json={**PATIENT_BODY, "email": "nope"}, headers=auth(nurse_identity)
    )
    assert response.status_code == 422
    assert response.json()["error"]["type"] == "validation_error"


def test_records_endpoints(client, doctor_identity, nurse_identity, patient_id):
    created = client.post(
        f"{API}/patients/{patient_id}/records",
        json={"record_type": "diagnosis", "title": "Hypertension", "description": "Stage 1"},
        headers=auth(doctor_identity),
    )
    assert created.status_code == 201
    assert created.json()["recorded_by"] == str(doctor_identity.id)

    listed = client.get(f"{API}/patients/{patient_id}/records", headers=auth(nurse_identity))
    assert listed.status_code == 200
    assert listed.json()[0]["title"] == "Hypertension"
    assert listed.json()[0]["recorded_by_name"] == "Dan Doctor"

    bad_type = client.post(
        f"{API}/patients/{patient_id}/records",
        json={"record_type": "lab", "title": "CBC"},
        headers=auth(doctor_identity),
    )
    assert bad_type.status_code == 422

    orphan = client.post(
        f"{API}/patients/{uuid.uuid4()}/records",
        json={"record_type": "note", "title": "Lost"},
        headers=auth(doctor_identity),
    )
    assert orphan.status_code == 404


def test_assignment_endpoints(client, doctor_identity, nurse_identity, admin_identity, patient_id):
    url = f"{API}/patients/{patient_id}/assignments"

    created = client.post(
        url, json={"staff_id": str(nurse_identity.id), "notes": "days"}, headers=auth(doctor_identity)
    )
    assert created.status_code == 201
    body = created.json()
    assert body["staff_name"] == "Nora Nurse"
    assert body["roles"] == ["nurse"]
    assert body["assigned_by"] == str(doctor_identity.id)

    duplicate = client.post(url, json={"staff_id": str(nurse_identity.id)}, headers=auth(admin_identity))
    assert duplicate.status_code == 409
    assert duplicate.json()["error"]["type"] == "conflict"

    nurse_attempt = client.post(
        url, json={"staff_id": str(doctor_identity.id)}, headers=auth(nurse_identity)
    )
    assert nurse_attempt.status_code == 403

    listed = client.get(url, headers=auth(nurse_identity))
    assert [a["staff_id"] for a in listed.json()] == [str(nurse_identity.id)]

    candidates = client.get(f"{url}/candidates", headers=auth(doctor_identity))
    assert {c["id"] for c in candidates.json()} == {str(doctor_identity.id), str(admin_identity.id)}

    removed = client.delete(f"{API}/assignments/{body['id']}", headers=auth(doctor_identity))
    assert removed.status_code == 204
    again = client.delete(f"{API}/assignments/{body['id']}", headers=auth(doctor_identity))
    assert again.status_code == 404

    reassigned = client.post(url, json={"staff_id": str(nurse_identity.id)}, headers=auth(doctor_identity))
    assert reassigned.status_code == 201


def test_role_management(client, role_store, admin_identity, doctor_identity, nurse_identity):
    directory = client.get(f"{API}/staff", headers=auth(admin_identity))
    assert directory.status_code == 200
    assert {m["email"] for m in directory.json()} >= {"dan@hospital.test", "nora@hospital.test"}

    assert client.get(f"{API}/staff", headers=auth(doctor_identity)).status_code == 403

    promoted = client.put(
        f"{API}/staff/{nurse_identity.id}/role", json={"role": "doctor"}, headers=auth(admin_identity)
    )
    assert promoted.status_code == 200
    assert promoted.json() == {"staff_id": str(nurse_identity.id), "roles": ["doctor"]}

    revoked = client.put(
        f"{API}/staff/{doctor_identity.id}/role", json={"role": "none"}, headers=auth(admin_identity)
    )
    assert revoked.json()["roles"] == []
    me = client.get(f"{API}/me", headers=auth(doctor_identity)).json()
    assert me["status"] == "pending_approval"

    own = client.put(
        f"{API}/staff/{admin_identity.id}/role", json={"role": "nurse"}, headers=auth(admin_identity)
    )
    assert own.status_code == 403
    assert own.json()["error"]["message"] == "self-modification"
    assert anyio.run(role_store.grants_for, admin_identity.id) == frozenset({"admin"})

    invalid = client.put(
        f"{API}/staff/{nurse_identity.id}/role", json={"role": "superuser"}, headers=auth(admin_identity)
    )
    assert invalid.status_code == 422


def test_audit_log_endpoint(client, recorder, admin_identity, nurse_identity, patient_id):
    client.delete(f"{API}/patients/{patient_id}", headers=auth(admin_identity))
    anyio.run(recorder.flush)

    everything = client.get(f"{API}/audit-logs", headers=auth(admin_identity))
    assert everything.status_code == 200
    entries = everything.json()
    assert entries[0]["action"] == "delete"
    assert entries[0]["actor_name"] == "Alice Admin"

    deletes = client.get(f"{API}/audit-logs", params={"action": "delete"}, headers=auth(admin_identity))
    assert [e["action"] for e in deletes.json()] == ["delete"]

    search = client.get(f"{API}/audit-logs", params={"search": "grace"}, headers=auth(admin_identity))
    assert search.json()
    assert all("Grace" in str(e["details"]) for e in search.json())

    limited = client.get(f"{API}/audit-logs", params={"limit": 0}, headers=auth(admin_identity))
    assert limited.status_code == 422
    assert limited.json()["error"]["message"] == "limit: must be at least 1"

    denied = client.get(f"{API}/audit-logs", headers=auth(nurse_identity))
    assert denied.status_code == 403


def test_dashboard(client, doctor_identity, patient_id):
    response = client.get(f"{API}/dashboard", headers=auth(doctor_identity))
    assert response.status_code == 200
    body = response.json()
    assert body["total_patients"] == 1
    assert body["total_records"] == 0
    assert body["recent_patients"][0]["id"] == patient_id
