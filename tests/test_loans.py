from datetime import timedelta

from utilities.database import db, InventoryItem, Loan, AuditLogEntry, utc_now


def _due(days=3):
    return (utc_now() + timedelta(days=days)).date().isoformat()


def test_loan_several_items(app, aimores_client, make_item):
    first = make_item(serial="L-1")
    second = make_item(serial="L-2", status="backup")

    response = aimores_client.post(
        "/loans",
        json={"item_ids": [first, second], "borrower_name": "João Silva", "expected_return_date": _due()},
    )
    assert response.status_code == 201
    loans = response.get_json()["loans"]
    assert [loan["item_serial"] for loan in loans] == ["L-1", "L-2"]
    assert all(loan["status"] == "loaned" for loan in loans)

    with app.app_context():
        assert db.session.get(InventoryItem, first).status == "emprestado"
        assert AuditLogEntry.query.filter_by(action="loan").count() == 2


def test_one_unavailable_item_rejects_the_whole_loan(app, aimores_client, make_item):
    available = make_item(serial="OK-1")
    broken = make_item(serial="BAD-1", status="defeito")

    response = aimores_client.post(
        "/loans",
        json={"item_ids": [available, broken], "borrower_name": "Ana", "expected_return_date": _due()},
    )
    assert response.status_code == 409
    assert response.get_json()["code"] == "item_unavailable"
    assert response.get_json()["item_id"] == broken

    with app.app_context():
        assert db.session.get(InventoryItem, available).status == "funcionando"
        assert Loan.query.count() == 0


def test_fixed_item_cannot_be_loaned(aimores_client, make_item):
    item_id = make_item(is_fixed=True)
    response = aimores_client.post(
        "/loans",
        json={"item_ids": [item_id], "borrower_name": "Ana", "expected_return_date": _due()},
    )
    assert response.status_code == 409
    assert response.get_json()["code"] == "item_fixed"


def test_loan_requires_borrower_and_future_date(aimores_client, make_item):
    item_id = make_item()
    missing_name = aimores_client.post("/loans", json={"item_ids": [item_id], "expected_return_date": _due()})
    assert missing_name.status_code == 400

    past = aimores_client.post(
        "/loans",
        json={"item_ids": [item_id], "borrower_name": "Ana", "expected_return_date": _due(-2)},
    )
    assert past.status_code == 400


def test_cannot_loan_item_of_another_campus(aimores_client, make_item):
    foreign = make_item(campus="liberdade")
    response = aimores_client.post(
        "/loans",
        json={"item_ids": [foreign], "borrower_name": "Ana", "expected_return_date": _due()},
    )
    assert response.status_code == 404


def test_return_frees_the_item(app, aimores_client, make_item):
    item_id = make_item(status="backup")
    loan = aimores_client.post(
        "/loans",
        json={"item_ids": [item_id], "borrower_name": "Carlos", "expected_return_date": _due()},
    ).get_json()["loans"][0]

    response = aimores_client.post(f"/loans/{loan['id']}/return")
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["loan"]["status"] == "returned"
    assert payload["loan"]["actual_return_date"] is not None
    assert payload["item"]["status"] == "funcionando"

    again = aimores_client.post(f"/loans/{loan['id']}/return")
    assert again.status_code == 409
    assert again.get_json()["code"] == "loan_returned"


def test_overdue_and_borrower_search(app, aimores_client, make_item, campuses):
    item_id = make_item(serial="OLD-1", status="emprestado")
    with app.app_context():
        db.session.add(Loan(
            item_id=item_id,
            item_serial="OLD-1",
            borrower_name="Maria Souza",
            loan_date=utc_now() - timedelta(days=10),
            expected_return_date=utc_now() - timedelta(days=2),
            status="loaned",
            campus_id=campuses.aimores,
        ))
        db.session.commit()

    overdue = aimores_client.get("/loans/overdue").get_json()["loans"]
    assert [loan["item_serial"] for loan in overdue] == ["OLD-1"]
    assert overdue[0]["overdue"] is True

    found = aimores_client.get("/loans/by-borrower?name=souza").get_json()["loans"]
    assert len(found) == 1
    assert aimores_client.get("/loans/by-borrower?name=s").get_json()["loans"] == []


def test_loan_history_survives_item_deletion(app, aimores_client, make_item):
    item_id = make_item(serial="GONE-1")
    loan = aimores_client.post(
        "/loans",
        json={"item_ids": [item_id], "borrower_name": "Pedro", "expected_return_date": _due()},
    ).get_json()["loans"][0]
    aimores_client.post(f"/loans/{loan['id']}/return")

    aimores_client.delete(f"/inventory/items/{item_id}")
    aimores_client.delete(f"/inventory/items/{item_id}")

    listed = aimores_client.get("/loans?status=returned").get_json()["loans"]
    assert listed[0]["item_id"] is None
    assert listed[0]["item_serial"] == "GONE-1"


def test_loans_are_scoped_to_campus(aimores_client, liberdade_client, make_item):
    item_id = make_item(campus="liberdade")
    liberdade_client.post(
        "/loans",
        json={"item_ids": [item_id], "borrower_name": "Lia", "expected_return_date": _due()},
    )
    assert aimores_client.get("/loans").get_json()["loans"] == []
    assert len(liberdade_client.get("/loans").get_json()["loans"]) == 1
