from utilities.database import db, InventoryItem, Loan, AuditLogEntry


def test_healthcheck(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json == {"ok": True}


def test_create_item(app, aimores_client, catalogue, campuses):
    response = aimores_client.post(
        "/inventory/items",
        json={
            "serial": "ABC123",
            "brand": "Dell",
            "category_id": catalogue.aimores.category,
            "sector_id": catalogue.aimores.sector,
            "sala": "101",
            "responsible": "Maria",
        },
    )
    assert response.status_code == 201
    item = response.get_json()["item"]
    assert item["campus_id"] == campuses.aimores
    assert item["status"] == "funcionando"
    assert item["responsible"] == "Maria"

    with app.app_context():
        entry = AuditLogEntry.query.filter_by(item_id=item["id"]).one()
        assert entry.action == "create"
        assert entry.item_snapshot["serial"] == "ABC123"


def test_item_catalogue_must_match_campus(aimores_client, catalogue):
    response = aimores_client.post(
        "/inventory/items",
        json={"serial": "X1", "category_id": catalogue.liberdade.category},
    )
    assert response.status_code == 400
    assert response.get_json()["code"] == "campus_mismatch"


def test_serial_is_required(aimores_client, catalogue):
    response = aimores_client.post("/inventory/items", json={"brand": "HP"})
    assert response.status_code == 400


def test_technician_sees_only_own_campus(aimores_client, make_item):
    own = make_item(campus="aimores", serial="OWN")
    other = make_item(campus="liberdade", serial="OTHER")

    listed = aimores_client.get("/inventory/items").get_json()["items"]
    assert [row["id"] for row in listed] == [own]

    response = aimores_client.get(f"/inventory/items/{other}")
    assert response.status_code == 404
    assert response.get_json()["code"] == "item_not_found"


def test_admin_filters_by_campus(admin_client, make_item, campuses):
    make_item(campus="aimores", serial="A")
    make_item(campus="liberdade", serial="L")
    listed = admin_client.get(f"/inventory/items?campus_id={campuses.liberdade}").get_json()["items"]
    assert [row["serial"] for row in listed] == ["L"]


def test_list_filters(aimores_client, make_item):
    make_item(serial="NB-1", status="defeito")
    make_item(serial="NB-2", is_fixed=True)
    assert [r["serial"] for r in aimores_client.get("/inventory/items?status=defeito").get_json()["items"]] == ["NB-1"]
    assert [r["serial"] for r in aimores_client.get("/inventory/items?fixed=true").get_json()["items"]] == ["NB-2"]
    assert [r["serial"] for r in aimores_client.get("/inventory/items?q=nb-2").get_json()["items"]] == ["NB-2"]


def test_disposal_hides_item_and_restore_brings_it_back(aimores_client, make_item):
    item_id = make_item(status="manutencao")

    response = aimores_client.post(f"/inventory/items/{item_id}/status", json={"status": "descarte"})
    assert response.status_code == 200
    assert response.get_json()["item"]["previous_status"] == "manutencao"

    listed = aimores_client.get("/inventory/items").get_json()["items"]
    assert item_id not in [row["id"] for row in listed]
    disposed = aimores_client.get("/inventory/disposal").get_json()["items"]
    assert [row["id"] for row in disposed] == [item_id]

    restored = aimores_client.post(f"/inventory/items/{item_id}/restore")
    assert restored.status_code == 200
    assert restored.get_json()["item"]["status"] == "manutencao"
    assert restored.get_json()["item"]["previous_status"] is None
    assert aimores_client.get("/inventory/disposal").get_json()["items"] == []


def test_restore_requires_disposal(aimores_client, make_item):
    item_id = make_item()
    response = aimores_client.post(f"/inventory/items/{item_id}/restore")
    assert response.status_code == 409


def test_delete_moves_to_disposal_then_removes(app, aimores_client, make_item):
    item_id = make_item(serial="DEL-1")

    first = aimores_client.delete(f"/inventory/items/{item_id}")
    assert first.status_code == 200
    assert first.get_json()["permanent"] is False
    assert first.get_json()["item"]["status"] == "descarte"

    second = aimores_client.delete(f"/inventory/items/{item_id}")
    assert second.status_code == 200
    assert second.get_json()["permanent"] is True

    with app.app_context():
        assert db.session.get(InventoryItem, item_id) is None
        actions = [e.action for e in AuditLogEntry.query.filter_by(item_id=item_id)]
        assert actions == ["delete", "delete"]

    assert aimores_client.get(f"/inventory/items/{item_id}").status_code == 404


def test_status_cannot_be_set_to_loaned(aimores_client, make_item):
    item_id = make_item()
    response = aimores_client.post(f"/inventory/items/{item_id}/status", json={"status": "emprestado"})
    assert response.status_code == 409
    assert response.get_json()["code"] == "use_loan_flow"


def test_loaned_item_status_is_locked(aimores_client, make_item):
    item_id = make_item(status="emprestado")
    response = aimores_client.post(f"/inventory/items/{item_id}/status", json={"status": "funcionando"})
    assert response.status_code == 409
    assert aimores_client.delete(f"/inventory/items/{item_id}").status_code == 409


def test_invalid_status_is_rejected(aimores_client, make_item):
    item_id = make_item()
    response = aimores_client.post(f"/inventory/items/{item_id}/status", json={"status": "quebrado"})
    assert response.status_code == 400
    assert response.get_json()["code"] == "invalid_status"


def test_local_use_cycle(aimores_client, make_item):
    item_id = make_item(status="backup")

    used = aimores_client.post(f"/inventory/items/{item_id}/use", json={"responsible_name": "Prof. Ana"})
    assert used.status_code == 200
    assert used.get_json()["item"]["status"] == "emuso"

    blocked = aimores_client.post(f"/inventory/items/{item_id}/status", json={"status": "defeito"})
    assert blocked.status_code == 409

    released = aimores_client.post(f"/inventory/items/{item_id}/release")
    assert released.status_code == 200
    assert released.get_json()["item"]["status"] == "funcionando"


def test_fixed_item_cannot_be_used(aimores_client, make_item):
    item_id = make_item(is_fixed=True)
    response = aimores_client.post(f"/inventory/items/{item_id}/use")
    assert response.status_code == 409
    assert response.get_json()["code"] == "item_fixed"


def test_toggle_fixed(aimores_client, make_item):
    item_id = make_item()
    response = aimores_client.post(f"/inventory/items/{item_id}/fixed", json={"is_fixed": True})
    assert response.get_json()["item"]["is_fixed"] is True


def test_update_item_fields(aimores_client, make_item):
    item_id = make_item(serial="OLD")
    response = aimores_client.patch(f"/inventory/items/{item_id}", json={"serial": "NEW", "obs": "Tela trincada"})
    assert response.status_code == 200
    assert response.get_json()["item"]["serial"] == "NEW"
    assert response.get_json()["item"]["obs"] == "Tela trincada"


def test_bulk_status_reports_per_item_errors(aimores_client, make_item):
    ok_id = make_item(serial="B1")
    loaned_id = make_item(serial="B2", status="emprestado")
    foreign_id = make_item(campus="liberdade", serial="B3")

    response = aimores_client.post(
        "/inventory/bulk/status",
        json={"item_ids": [ok_id, loaned_id, foreign_id], "status": "manutencao"},
    )
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["updated"] == [ok_id]
    assert payload["errors"][str(loaned_id)]["code"] == "item_on_loan"
    assert payload["errors"][str(foreign_id)]["code"] == "item_not_found"


def test_search_includes_disposal(aimores_client, make_item):
    make_item(serial="SRCH-1", status="descarte")
    make_item(serial="SRCH-2")
    found = aimores_client.get("/inventory/search?q=srch").get_json()["items"]
    assert sorted(row["serial"] for row in found) == ["SRCH-1", "SRCH-2"]


def test_anonymous_requests_are_rejected(client):
    response = client.get("/inventory/items")
    assert response.status_code == 401
    assert response.get_json()["success"] is False


def test_busy_item_keeps_campus_and_stays_movable(app, admin_client, make_item, campuses):
    item_id = make_item(serial="BUSY-1")
    loan = admin_client.post(
        "/loans",
        json={"item_ids": [item_id], "borrower_name": "Ana", "expected_return_date": "2099-01-31"},
    ).get_json()["loans"][0]

    moved = admin_client.patch(f"/inventory/items/{item_id}", json={"campus_id": campuses.liberdade})
    assert moved.status_code == 409
    assert moved.get_json()["code"] == "item_busy"

    fixed = admin_client.patch(f"/inventory/items/{item_id}", json={"is_fixed": True})
    assert fixed.status_code == 409
    assert fixed.get_json()["code"] == "item_busy"

    with app.app_context():
        item = db.session.get(InventoryItem, item_id)
        assert item.campus_id == campuses.aimores
        assert item.is_fixed is False
        assert db.session.get(Loan, loan["id"]).campus_id == item.campus_id


def test_item_in_use_cannot_be_fixed_through_patch(aimores_client, make_item):
    item_id = make_item()
    aimores_client.post(f"/inventory/items/{item_id}/use")
    response = aimores_client.patch(f"/inventory/items/{item_id}", json={"is_fixed": True})
    assert response.status_code == 409
    assert response.get_json()["code"] == "item_busy"
