# Overview: Pytest coverage for the dsr CLI commands.

import json

from gasdsr.services import stock_entry_service


def test_reconcile_and_show(app, db_session, tmp_path):
    stock_entry_service.upsert_entry({"date": "2024-03-01", "itemName": "Cylinder A", "closingFull": 7, "closingEmpty": 3})
    db_session.commit()

    snapshot = tmp_path / "day.json"
    snapshot.write_text(json.dumps({
        "items": [{"_id": "c1", "name": "Cylinder A", "category": "cylinder"}],
        "sales": [],
        "refills": [{"date": "2024-03-02", "cylinderProductId": "c1", "todayRefill": 1}],
    }))

    runner = app.test_cli_runner()
    result = runner.invoke(args=["dsr", "reconcile", "--date", "2024-03-02", "--snapshot", str(snapshot)])
    assert result.exit_code == 0, result.output
    assert "Reconciled 2024-03-02 (admin)" in result.output
    assert "Rolled 1 opening(s) into 2024-03-03" in result.output

    result = runner.invoke(args=["dsr", "show", "--date", "2024-03-03"])
    assert result.exit_code == 0, result.output
    assert "Cylinder A" in result.output

    rolled = stock_entry_service.get_entry("2024-03-03", "Cylinder A")
    assert (rolled.opening_full, rolled.opening_empty) == (8, 2)


def test_show_empty_day(app, db_session):
    result = app.test_cli_runner().invoke(args=["dsr", "show", "--date", "2024-03-01"])
    assert result.exit_code == 0
    assert "No entries for 2024-03-01." in result.output


def test_sync_requires_a_remote(app, db_session):
    result = app.test_cli_runner().invoke(args=["dsr", "sync"])
    assert result.exit_code != 0
    assert "No remote configured" in result.output


def test_reconcile_rejects_bad_dates(app, db_session, tmp_path):
    snapshot = tmp_path / "day.json"
    snapshot.write_text("{}")
    result = app.test_cli_runner().invoke(args=["dsr", "reconcile", "--date", "March 2", "--snapshot", str(snapshot)])
    assert result.exit_code != 0
