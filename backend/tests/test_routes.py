# Overview: Pytest coverage for the HTTP API.

"""
API Tests

Exercises the daily stock entry, reconciliation, reservation and health
endpoints through the Flask test client.
"""

from gasdsr.models import DailyStockReport


def post_entry(client, **fields):
    payload = {"date": "2024-03-01", "itemName": "Cylinder A"}
    payload.update(fields)
    return client.post("/api/daily-stock-entries", json=payload)


class TestDailyStockEntries:

    def test_upsert_and_partial_merge(self, client, db_session):
        response = post_entry(client, openingFull=10, openingEmpty=5, refilled=2)
        assert response.status_code == 200
        assert response.get_json()["success"] is True

        response = post_entry(client, itemName=" cylinder a", gasSales=3)
        data = response.get_json()["data"]
        assert data["openingFull"] == 10
        assert data["refilled"] == 2
        assert data["gasSales"] == 3
        assert data["openingLocked"] is True
        assert db_session.query(DailyStockReport).count() == 1

    def test_rejects_invalid_numbers(self, client, db_session):
        response = post_entry(client, closingFull=-1)
        assert response.status_code == 400
        assert response.get_json()["error"] == "closingFull must be >= 0"

        response = post_entry(client, gasSales="3.5")
        assert response.status_code == 400

        response = client.post("/api/daily-stock-entries", data="not json", content_type="text/plain")
        assert response.status_code == 400

    def test_list_filters_by_scope(self, client, db_session):
        post_entry(client, refilled=1)
        post_entry(client, refilled=2, employeeId="emp-1")
        post_entry(client, date="2024-03-02", refilled=3)

        admin = client.get("/api/daily-stock-entries?date=2024-03-01").get_json()["data"]
        assert [e["refilled"] for e in admin] == [1]
        assert admin[0]["employeeId"] is None

        employee = client.get("/api/daily-stock-entries?date=2024-03-01&employeeId=emp-1").get_json()["data"]
        assert [e["refilled"] for e in employee] == [2]

        everything = client.get("/api/daily-stock-entries").get_json()["data"]
        assert [e["date"] for e in everything] == ["2024-03-02", "2024-03-01"]

    def test_list_rejects_bad_dates(self, client, db_session):
        response = client.get("/api/daily-stock-entries?date=yesterday")
        assert response.status_code == 400

    def test_delete(self, client, db_session):
        post_entry(client)

        response = client.delete("/api/daily-stock-entries?date=2024-03-01&itemName=CYLINDER%20A")
        assert response.status_code == 200

        response = client.delete("/api/daily-stock-entries?date=2024-03-01&itemName=Cylinder%20A")
        assert response.status_code == 404

    def test_previous(self, client, db_session):
        post_entry(client, date="2024-02-27", closingFull=7, closingEmpty=3)

        response = client.get("/api/daily-stock-entries/previous?itemName=Cylinder%20A&date=2024-03-02")
        assert response.get_json()["data"]["closingFull"] == 7

        response = client.get("/api/daily-stock-entries/previous?itemName=Cylinder%20A&date=2024-02-27")
        assert response.get_json()["data"] is None

        response = client.get("/api/daily-stock-entries/previous?date=2024-02-27")
        assert response.status_code == 400

    def test_seed(self, client, db_session):
        response = client.post("/api/daily-stock-entries/seed", json={
            "date": "2024-03-01",
            "employeeId": "emp-1",
            "items": [
                {"name": "Cylinder A", "category": "cylinder", "availableFull": 6, "availableEmpty": 1},
                {"name": "LPG", "category": "gas"},
            ],
        })
        assert response.status_code == 201
        (seeded,) = response.get_json()["data"]
        assert seeded["employeeId"] == "emp-1"
        assert (seeded["openingFull"], seeded["openingEmpty"]) == (6, 1)


class TestReconciliationRun:

    def test_run_and_rollover(self, client, db_session):
        post_entry(client, openingFull=10, openingEmpty=5)

        response = client.post("/api/reconciliation/run", json={
            "date": "2024-03-01",
            "items": [{"_id": "c1", "name": "Cylinder A", "category": "cylinder"}],
            "sales": [{"createdAt": "2024-03-01T06:00:00Z", "items": [
                {"productName": "LPG", "category": "gas", "quantity": 4, "cylinderProductId": "c1"},
                {"productId": "c1", "productName": "Cylinder A", "category": "cylinder", "quantity": 1},
                {"productName": "", "category": "gas", "quantity": 1},
            ]}],
            "refills": [{"date": "2024-03-01", "cylinderProductId": "c1", "todayRefill": 3}],
        })
        assert response.status_code == 200
        data = response.get_json()["data"]

        (current,) = data["current"]
        assert (current["closingFull"], current["closingEmpty"]) == (9, 5)
        (rolled,) = data["nextDayOpenings"]
        assert rolled["date"] == "2024-03-02"
        assert (rolled["openingFull"], rolled["openingEmpty"]) == (9, 5)
        assert data["skipped"] == 1
        assert data["stale"] is False

        listed = client.get("/api/daily-stock-entries?date=2024-03-02").get_json()["data"]
        assert listed[0]["openingFull"] == 9

    def test_run_requires_a_date(self, client, db_session):
        response = client.post("/api/reconciliation/run", json={"items": []})
        assert response.status_code == 400

    def test_run_rejects_bad_items(self, client, db_session):
        response = client.post("/api/reconciliation/run", json={
            "date": "2024-03-01",
            "items": [{"name": "Hose", "category": "accessory"}],
        })
        assert response.status_code == 400


class TestReservationCheck:

    INVENTORY = [
        {"productId": "c1", "productName": "Cylinder A", "availableFull": 2, "availableEmpty": 0},
        {"productId": "g1", "productName": "LPG", "currentStock": 10},
    ]

    def test_insufficient_stock_is_409_with_counts(self, client):
        response = client.post("/api/reservations/check", json={
            "cart": [{"category": "gas", "productId": "c1", "productName": "Cylinder A", "quantity": 2,
                      "cylinderProductId": "c1"}],
            "line": {"category": "cylinder", "productId": "c1", "productName": "Cylinder A",
                     "cylinderStatus": "full", "quantity": 1},
            "inventory": self.INVENTORY,
        })
        assert response.status_code == 409
        body = response.get_json()
        assert (body["available"], body["reserved"], body["remaining"], body["required"]) == (2, 2, 0, 1)
        assert body["error"].startswith("Insufficient Full Cylinders stock for Cylinder A")

    def test_accepted_line(self, client):
        response = client.post("/api/reservations/check", json={
            "cart": [{"category": "gas", "productId": "g1", "quantity": 4}],
            "line": {"category": "gas", "productId": "g1", "quantity": 2, "cylinderProductId": "c1"},
            "inventory": self.INVENTORY,
        })
        assert response.status_code == 200
        checks = response.get_json()["data"]["checks"]
        assert [(c["category"], c["reserved"], c["remaining"]) for c in checks] == [("gas", 4, 6), ("cylinder", 0, 2)]

    def test_edit_index_excludes_the_edited_line(self, client):
        response = client.post("/api/reservations/check", json={
            "cart": [{"category": "gas", "productId": "g1", "quantity": 8}],
            "line": {"category": "gas", "productId": "g1", "quantity": 10},
            "inventory": self.INVENTORY,
            "editIndex": 0,
        })
        assert response.status_code == 200

    def test_invalid_line(self, client):
        response = client.post("/api/reservations/check", json={
            "cart": [],
            "line": {"category": "gas", "productId": "g1", "quantity": -2},
            "inventory": self.INVENTORY,
        })
        assert response.status_code == 400


def test_health(client, db_session):
    response = client.get("/api/health")
    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == "healthy"
    assert body["checks"]["database"]["details"]["daily_stock_entries"] == 0
