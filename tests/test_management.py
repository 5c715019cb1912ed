import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from maintenance import repair
from utilities.database import db, Campus, Category, Sector, Loan, AuditLogEntry, utc_now


def test_same_sector_name_in_two_campuses(admin_client, campuses):
    first = admin_client.post("/management/sectors", json={"name": "Biblioteca", "campus_id": campuses.aimores})
    second = admin_client.post("/management/sectors", json={"name": "Biblioteca", "campus_id": campuses.liberdade})
    assert first.status_code == 201
    assert second.status_code == 201
    assert first.get_json()["sector"]["id"] != second.get_json()["sector"]["id"]


def test_same_sector_name_twice_in_one_campus(admin_client, campuses):
    assert admin_client.post(
        "/management/sectors", json={"name": "Biblioteca", "campus_id": campuses.aimores}
    ).status_code == 201
    response = admin_client.post("/management/sectors", json={"name": "biblioteca", "campus_id": campuses.aimores})
    assert response.status_code == 409
    assert response.get_json()["code"] == "duplicate_name"


def test_schema_rejects_duplicate_category(app, campuses):
    with app.app_context():
        db.session.add(Category(name="Projetor", campus_id=campuses.aimores))
        db.session.commit()
        db.session.add(Category(name="Projetor", campus_id=campuses.aimores))
        with pytest.raises(IntegrityError):
            db.session.commit()
        db.session.rollback()


def test_technician_writes_into_own_campus(aimores_client, campuses, app):
    response = aimores_client.post(
        "/management/categories",
        json={"name": "Tablet", "campus_id": campuses.liberdade},
    )
    assert response.status_code == 201
    assert response.get_json()["category"]["campus_id"] == campuses.aimores


def test_technician_only_lists_own_campus(aimores_client, catalogue, campuses):
    response = aimores_client.get("/management/sectors")
    assert response.status_code == 200
    assert {row["campus_id"] for row in response.get_json()["sectors"]} == {campuses.aimores}


def test_technician_cannot_see_other_campus_row(aimores_client, catalogue):
    response = aimores_client.patch(f"/management/sectors/{catalogue.liberdade.sector}", json={"name": "Hack"})
    assert response.status_code == 404


def test_admin_without_campus_defaults_to_administrador(admin_client, campuses):
    response = admin_client.post("/management/categories", json={"name": "Geral"})
    assert response.status_code == 201
    assert response.get_json()["category"]["campus"] == "Administrador"


def test_delete_campus_with_items_is_rejected(admin_client, campuses, make_item):
    make_item(campus="liberdade")
    response = admin_client.delete(f"/management/campuses/{campuses.liberdade}")
    assert response.status_code == 409
    payload = response.get_json()
    assert payload["code"] == "campus_has_items"
    assert payload["count"] == 1


def test_delete_empty_campus_removes_catalogue(app, admin_client):
    created = admin_client.post("/management/campuses", json={"name": "Barreiro"}).get_json()["campus"]
    admin_client.post("/management/sectors", json={"name": "Sala 1", "campus_id": created["id"]})

    response = admin_client.delete(f"/management/campuses/{created['id']}")
    assert response.status_code == 200
    with app.app_context():
        assert db.session.get(Campus, created["id"]) is None
        assert Sector.query.filter_by(campus_id=created["id"]).count() == 0


def test_campus_names_unique_after_normalization(admin_client, campuses):
    response = admin_client.post("/management/campuses", json={"name": "aimores"})
    assert response.status_code == 409


def test_administrador_campus_is_protected(admin_client, campuses):
    assert admin_client.delete(f"/management/campuses/{campuses.admin}").status_code == 409
    assert admin_client.patch(f"/management/campuses/{campuses.admin}", json={"name": "Outro"}).status_code == 409


def test_technician_cannot_create_campus(aimores_client):
    assert aimores_client.post("/management/campuses", json={"name": "Novo"}).status_code == 403


def test_category_in_use_cannot_be_deleted(admin_client, catalogue, make_item):
    make_item(campus="aimores")
    response = admin_client.delete(f"/management/categories/{catalogue.aimores.category}")
    assert response.status_code == 409


def test_changes_are_audited(app, admin_client, campuses):
    admin_client.post("/management/sectors", json={"name": "Secretaria", "campus_id": campuses.aimores})
    with app.app_context():
        entry = AuditLogEntry.query.order_by(AuditLogEntry.id.desc()).first()
        assert entry.action == "create"
        assert entry.campus_name == "Aimorés"
        assert "Secretaria" in entry.details


def test_accent_variant_is_a_duplicate(app, admin_client, campuses):
    first = admin_client.post("/management/categories", json={"name": "Informática", "campus_id": campuses.aimores})
    assert first.status_code == 201

    response = admin_client.post("/management/categories", json={"name": "Informatica", "campus_id": campuses.aimores})
    assert response.status_code == 409
    assert response.get_json()["code"] == "duplicate_name"

    other = admin_client.post("/management/categories", json={"name": "Rede", "campus_id": campuses.aimores})
    renamed = admin_client.patch(
        f"/management/categories/{other.get_json()['category']['id']}", json={"name": "INFORMATICA"}
    )
    assert renamed.status_code == 409

    with app.app_context():
        assert repair.find_duplicate_names(Category) == []


def test_delete_campus_with_loan_history_is_rejected(app, admin_client):
    campus_id = admin_client.post("/management/campuses", json={"name": "Barreiro"}).get_json()["campus"]["id"]
    with app.app_context():
        db.session.add(Loan(
            item_serial="GONE-9",
            borrower_name="Rui",
            expected_return_date=utc_now(),
            actual_return_date=utc_now(),
            status="returned",
            campus_id=campus_id,
        ))
        db.session.commit()

    response = admin_client.delete(f"/management/campuses/{campus_id}")
    assert response.status_code == 409
    payload = response.get_json()
    assert payload["code"] == "campus_has_loans"
    assert payload["count"] == 1

    with app.app_context():
        assert db.session.get(Campus, campus_id) is not None


def test_sqlite_foreign_keys_are_enforced(app):
    with app.app_context():
        assert db.session.execute(text("PRAGMA foreign_keys")).scalar() == 1
