from app import create_app
from utilities.database import db, Campus, SupportRequest, AuditLogEntry


def _request(campus_id, **overrides):
    payload = {
        "requester_email": "professor@escola.edu.br",
        "campus_id": campus_id,
        "setor": "Biblioteca",
        "sala": "12",
        "details": "Projetor não liga",
    }
    payload.update(overrides)
    return payload


def test_anyone_can_open_a_request(client, campuses):
    response = client.post("/requests", json=_request(campuses.aimores))
    assert response.status_code == 201
    body = response.get_json()["request"]
    assert body["status"] == "aberto"
    assert body["campus"] == "Aimorés"


def test_request_fields_are_validated(client, campuses):
    response = client.post("/requests", json=_request(campuses.aimores, requester_email="not-an-email", setor=""))
    assert response.status_code == 400
    errors = response.get_json()["errors"]
    assert set(errors) == {"requester_email", "setor"}


def test_request_details_length_is_limited(client, campuses):
    response = client.post("/requests", json=_request(campuses.aimores, details="x" * 2001))
    assert response.status_code == 400
    assert "details" in response.get_json()["errors"]


def test_request_cannot_target_administrador(client, campuses):
    response = client.post("/requests", json=_request(campuses.admin))
    assert response.status_code == 404
    assert response.get_json()["code"] == "campus_not_found"


def test_requests_are_listed_per_campus(client, aimores_client, admin_client, campuses):
    client.post("/requests", json=_request(campuses.aimores))
    client.post("/requests", json=_request(campuses.liberdade))

    assert len(aimores_client.get("/requests").get_json()["requests"]) == 1
    assert len(admin_client.get("/requests").get_json()["requests"]) == 2
    assert client.get("/requests").status_code == 401


def test_status_change_is_audited(app, client, aimores_client, campuses):
    request_id = client.post("/requests", json=_request(campuses.aimores)).get_json()["request"]["id"]

    response = aimores_client.post(f"/requests/{request_id}/status", json={"status": "em-andamento"})
    assert response.status_code == 200
    assert response.get_json()["request"]["status_label"] == "Em Andamento"

    with app.app_context():
        assert db.session.get(SupportRequest, request_id).status == "em-andamento"
        entry = AuditLogEntry.query.filter_by(action="update").one()
        assert entry.campus_name == "Aimorés"

    bad = aimores_client.post(f"/requests/{request_id}/status", json={"status": "resolvido"})
    assert bad.status_code == 400


def test_technician_cannot_touch_other_campus_request(client, liberdade_client, campuses):
    request_id = client.post("/requests", json=_request(campuses.aimores)).get_json()["request"]["id"]
    response = liberdade_client.post(f"/requests/{request_id}/status", json={"status": "concluido"})
    assert response.status_code == 404


def test_submission_rate_limit_comes_from_config(tmp_path):
    limited = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'limited.db'}",
        "WTF_CSRF_ENABLED": False,
        "RATELIMIT_ENABLED": True,
        "SUPPORT_RATE_LIMIT": "2 per hour",
        "LOG_FILE": None,
    })
    with limited.app_context():
        db.create_all()
        campus = Campus(name="Barreiro")
        db.session.add(campus)
        db.session.commit()
        campus_id = campus.id

        client = limited.test_client()
        statuses = [client.post("/requests", json=_request(campus_id)).status_code for _ in range(3)]
        assert statuses == [201, 201, 429]

        db.session.remove()
        db.drop_all()
