"""
Tests for the planner API blueprint.

The Xano client is replaced with a MagicMock; the engines behind each route
run for real.
"""
from datetime import date
from io import BytesIO
from unittest.mock import MagicMock, patch

import pytest
from planner import create_app
from planner.config import TestingConfig
from planner.datetime_utils import date_to_timestamp
from planner.xano.exceptions import XanoAPIError, XanoUnauthorizedError


@pytest.fixture
def app():
    return create_app(TestingConfig)


@pytest.fixture
def client(app):
    client = app.test_client()
    with client.session_transaction() as sess:
        sess["xano_auth_token"] = "tok"
        sess["user"] = {"id": 1}
    return client


@pytest.fixture
def xano():
    mock = MagicMock()
    mock.get_jobs.return_value = [
        {"id": 1, "job_number": 1001, "facilities_id": 1, "quantity": 2000, "total_billing": 150.0},
        {"id": 2, "job_number": 1002, "facilities_id": 2, "quantity": 500, "total_billing": 50.0},
    ]
    mock.get_machines.return_value = [
        {"id": 10, "facilities_id": 1, "process_type_key": "insert", "speed_hr": 1000},
        {"id": 11, "facilities_id": 2, "process_type_key": "insert", "speed_hr": 800},
    ]
    mock.get_machine_rules.return_value = []
    mock.get_production_entries.return_value = []
    return mock


@pytest.fixture
def routes_xano(xano):
    with patch("planner.api.routes.get_xano_client", return_value=xano):
        yield xano


# ==============================================================================
# Access and error mapping
# ==============================================================================

class TestAccess:
    """Tests for login guard and error mapping."""

    def test_requires_login(self, app):
        """Test that data routes return 401 without a session."""
        response = app.test_client().get("/api/jobs")
        assert response.status_code == 401
        assert response.get_json()["redirect"] == "/login"

    def test_public_routes(self, app):
        """Test that reference data is served without login."""
        anonymous = app.test_client()
        process_types = anonymous.get("/api/process-types")
        assert process_types.status_code == 200
        assert process_types.get_json()["process_types"]
        assert process_types.get_json()["options"]
        assert anonymous.get("/api/facilities").get_json()["facilities"]

    def test_health(self, app):
        """Test the health endpoint."""
        response = app.test_client().get("/health")
        assert response.get_json() == {"status": "ok", "environment": "testing"}

    def test_request_id_echoed(self, app):
        """Test that the caller's request id is returned on the response."""
        response = app.test_client().get("/health", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"
        assert app.test_client().get("/health").headers["X-Request-ID"]

    def test_expired_token_clears_session(self, client, routes_xano):
        """Test that a Xano 401 becomes a 401 with the login redirect."""
        routes_xano.get_jobs.side_effect = XanoUnauthorizedError("Expired", status_code=401)
        response = client.get("/api/jobs")

        assert response.status_code == 401
        assert response.get_json()["redirect"] == "/login?error=unauthorized"
        with client.session_transaction() as sess:
            assert "xano_auth_token" not in sess

    def test_upstream_error(self, client, routes_xano):
        """Test that other Xano failures return 502."""
        routes_xano.get_machines.side_effect = XanoAPIError("Boom", status_code=500)
        response = client.get("/api/machines")
        assert response.status_code == 502
        assert response.get_json() == {"error": "Failed to load machines", "details": "Boom"}

    def test_bad_query_param(self, client, routes_xano):
        """Test that invalid input returns 400."""
        assert client.get("/api/jobs?facility=abc").status_code == 400
        assert client.get("/api/capacity?start=03/04/2024").status_code == 400

    def test_unknown_route(self, app):
        """Test that HTTP errors are returned as JSON."""
        response = app.test_client().get("/api/nope")
        assert response.status_code == 404
        assert response.get_json()["error"] == "Not Found"


# ==============================================================================
# Data routes
# ==============================================================================

class TestDataRoutes:
    """Tests for jobs, machines and rules listings."""

    def test_jobs_with_revenue(self, client, routes_xano):
        """Test that jobs are parsed and carry revenue."""
        data = client.get("/api/jobs").get_json()
        assert data["total_count"] == 2
        assert [job["revenue"] for job in data["jobs"]] == [150.0, 50.0]

    def test_jobs_facility_filter(self, client, routes_xano):
        """Test client-side facility filtering."""
        data = client.get("/api/jobs?facility=2").get_json()
        assert [job["id"] for job in data["jobs"]] == [2]
        routes_xano.get_jobs.assert_called_once_with(facilities_id=2)

    def test_machines(self, client, routes_xano):
        """Test machine listing with filters."""
        data = client.get("/api/machines?facility=1&status=active").get_json()
        assert [m["id"] for m in data["machines"]] == [10]
        routes_xano.get_machines.assert_called_once_with(status="active", facilities_id=1)

    def test_machine_rules_display(self, client, routes_xano):
        """Test that rules carry a readable condition string."""
        routes_xano.get_machine_rules.return_value = [
            {"id": 1, "conditions": [{"parameter": "pockets", "operator": "greater_than", "value": 6}]},
        ]
        data = client.get("/api/machine-rules?process_type_key=insert&active_only=true").get_json()
        assert data["total_count"] == 1
        assert data["rules"][0]["conditions_display"] == "pockets > 6"
        routes_xano.get_machine_rules.assert_called_once_with(
            process_type_key="insert", machine_id=None, active_only=True
        )


# ==============================================================================
# Projections
# ==============================================================================

class TestProjectionRoutes:
    """Tests for projection tables and split editing."""

    def test_projection_defaults(self, client, routes_xano):
        """Test default periods for monthly projections."""
        data = client.get("/api/projections?granularity=monthly&start=2024-01-01").get_json()
        assert data["granularity"] == "monthly"
        assert data["view"] == "service"
        assert len(data["ranges"]) == 6
        assert data["facility_id"] is None
        assert "grand_totals" in data

    def test_projection_process_view(self, client, routes_xano):
        """Test that the process view lists one row per job requirement."""
        routes_xano.get_jobs.return_value = [{
            "id": 7, "job_number": 2001, "facilities_id": 1, "quantity": 2000,
            "client": {"id": 3, "name": "Acme"}, "machines": [],
            "start_date": date_to_timestamp(date(2024, 1, 8)), "due_date": date_to_timestamp(date(2024, 1, 12)),
            "requirements": [{"process_type": "insert", "price_per_m": "10"}, {"process_type": "fold", "price_per_m": "5"}],
        }]
        data = client.get("/api/projections?view=process&start=2024-01-07&periods=3").get_json()
        assert len(data["ranges"]) == 3
        assert [(row["job_id"], row["process_type"]) for row in data["processes"]] == [(7, "insert"), (7, "fold")]
        assert data["processes"][0]["total_quantity"] == 1000
        assert data["processes"][0]["quantities"]["1/7"] == 1000

    def test_projection_invalid(self, client, routes_xano):
        """Test rejection of unknown granularity and view."""
        assert client.get("/api/projections?granularity=daily").status_code == 400
        assert client.get("/api/projections?view=bogus").status_code == 400
        assert client.get("/api/projections?periods=0").status_code == 400

    def test_redistribute_reset(self, client):
        """Test even redistribution."""
        response = client.post("/api/projections/redistribute",
                               json={"reset": True, "period_count": 3, "total_quantity": 10})
        assert response.status_code == 200
        data = response.get_json()
        assert sum(data["quantities"]) == 10
        assert data["locks"] == [False, False, False]

    def test_redistribute_validation(self, client):
        """Test required fields and negative values."""
        assert client.post("/api/projections/redistribute", json={"periods": []}).status_code == 400
        response = client.post("/api/projections/redistribute", json={
            "periods": [{"start_date": "2024-01-01", "end_date": "2024-01-07", "label": "W1", "quantity": 5}],
            "edited_index": 0, "new_value": -1, "total_quantity": 5,
        })
        assert response.status_code == 400
        assert response.get_json()["error"] == "new_value must not be negative"

    def test_convert_requires_body(self, client):
        """Test that a JSON body is required."""
        response = client.post("/api/projections/convert", data="x", content_type="text/plain")
        assert response.status_code == 400
        assert response.get_json()["error"] == "No JSON data provided"

    def test_convert_periods_to_weekly(self, client):
        """Test folding monthly periods back into weekly_split."""
        response = client.post("/api/projections/convert", json={
            "start_date": "2024-01-01", "due_date": "2024-01-14", "granularity": "monthly", "total_quantity": 1400,
            "periods": [{"start_date": "2024-01-01", "end_date": "2024-01-14", "label": "Jan '24",
                         "quantity": 1400, "is_locked": True}],
        })
        assert response.status_code == 200
        assert response.get_json() == {"weekly_split": [700, 700], "locked_weeks": [False, False]}

    def test_convert_weekly_periods_keep_locks(self, client):
        """Test that weekly periods map straight onto the split."""
        response = client.post("/api/projections/convert", json={
            "start_date": "2024-01-01", "due_date": "2024-01-14", "granularity": "weekly",
            "periods": [
                {"start_date": "2024-01-01", "end_date": "2024-01-07", "quantity": 900, "is_locked": True},
                {"start_date": "2024-01-08", "end_date": "2024-01-14", "quantity": 500},
            ],
        })
        assert response.get_json() == {"weekly_split": [900, 500], "locked_weeks": [True, False]}

    def test_convert_requires_target(self, client):
        """Test that expanding weekly_split needs a target granularity."""
        response = client.post("/api/projections/convert",
                               json={"start_date": "2024-01-01", "due_date": "2024-02-01", "weekly_split": [1, 2]})
        assert response.status_code == 400


# ==============================================================================
# Capacity, rules and matching
# ==============================================================================

class TestSchedulingRoutes:
    """Tests for capacity, rule evaluation and machine matching."""

    def test_capacity_window(self, client, routes_xano):
        """Test the capacity response shape for an explicit window."""
        data = client.get("/api/capacity?start=2024-03-04&end=2024-03-08&facility=1").get_json()
        assert data["start_date"] == "2024-03-04"
        assert data["end_date"] == "2024-03-08"
        assert data["facility_id"] == 1
        assert "summary" in data

    def test_capacity_reversed_window(self, client, routes_xano):
        """Test that an end before start is rejected."""
        assert client.get("/api/capacity?start=2024-03-08&end=2024-03-04").status_code == 400

    def test_evaluate_with_rule(self, client, routes_xano):
        """Test rule evaluation by process type and base speed."""
        routes_xano.get_machine_rules.return_value = [{
            "id": 1, "name": "Many pockets", "process_type_key": "insert", "machine_id": None,
            "priority": 0, "active": True,
            "conditions": [{"parameter": "pockets", "operator": "greater_than", "value": 6}],
            "outputs": {"speed_modifier": 80, "people_required": 2},
        }]
        response = client.post("/api/rules/evaluate", json={
            "process_type_key": "insert", "base_speed": 1000, "parameters": {"pockets": 8},
        })
        assert response.status_code == 200
        data = response.get_json()
        assert data["calculated_speed"] == 800
        assert data["people_required"] == 2

    def test_evaluate_by_machine(self, client, routes_xano):
        """Test that machine_id loads the machine for its speed."""
        routes_xano.get_machine.return_value = {"id": 10, "process_type_key": "insert", "speed_hr": 1200}
        data = client.post("/api/rules/evaluate", json={"machine_id": 10, "parameters": {}}).get_json()
        assert data["calculated_speed"] == 1200
        routes_xano.get_machine.assert_called_once_with(10)

    def test_evaluate_requires_target(self, client, routes_xano):
        """Test that a machine or process type is required."""
        response = client.post("/api/rules/evaluate", json={"parameters": {}})
        assert response.status_code == 400
        assert response.get_json()["error"] == "machine_id or process_type_key is required"

    def test_match_ranks_machines(self, client, routes_xano):
        """Test a full match, including an assigned job that has no dates yet."""
        routes_xano.get_jobs.return_value = [{
            "id": 3, "job_number": 1003, "facilities_id": 1, "quantity": 100,
            "client": {"id": 1, "name": "Acme"}, "machines": [{"id": 10}],
            "start_date": None, "due_date": None,
        }]
        routes_xano.get_machines.return_value = [
            {"id": 10, "facilities_id": 1, "process_type_key": "insert", "speed_hr": "1,000/hr"},
            {"id": 12, "facilities_id": 1, "process_type_key": "fold", "speed_hr": 4000},
        ]
        response = client.post("/api/machines/match", json={
            "process_type": "insert", "quantity": 5000, "facility_id": 1,
            "start_date": "2024-03-04", "due_date": "2024-03-08",
        })

        assert response.status_code == 200
        data = response.get_json()
        assert [m["machine"]["id"] for m in data["matches"]] == [10]
        best = data["best_match"]
        assert best["machine"]["id"] == 10
        assert best["can_handle"] is True
        assert best["current_utilization"] == 0
        assert best["estimated_hours"] == 5.0
        routes_xano.get_machine_rules.assert_called_once_with(process_type_key="insert", active_only=True)

    def test_match_requires_criteria(self, client, routes_xano):
        """Test that matching validates its criteria."""
        response = client.post("/api/machines/match", json={"process_type": "insert"})
        assert response.status_code == 400
        assert response.get_json()["error"].startswith("Missing matching criteria")


# ==============================================================================
# Production
# ==============================================================================

class TestProductionRoutes:
    """Tests for production comparison and uploads."""

    def test_comparison_window(self, client, routes_xano):
        """Test that entries are fetched for the requested window."""
        data = client.get("/api/production/comparison?start=2024-02-05&end=2024-02-11&facility=1").get_json()
        assert data["start_date"] == "2024-02-05"
        assert data["comparisons"] == []
        kwargs = routes_xano.get_production_entries.call_args.kwargs
        assert kwargs["facilities_id"] == 1
        assert kwargs["end_date"] > kwargs["start_date"]

    def test_upload_requires_file(self, client, routes_xano):
        """Test that an upload without a file is rejected."""
        response = client.post("/api/production/upload", data={}, content_type="multipart/form-data")
        assert response.status_code == 400
        assert response.get_json() == {"error": "No file provided"}

    def test_upload_preview(self, client, routes_xano):
        """Test that without commit nothing is saved."""
        csv = b"Job Number,Quantity,Date\n1001,500,2024-02-05\n9999,10,2024-02-05\n"
        response = client.post("/api/production/upload",
                               data={"file": (BytesIO(csv), "production.csv")},
                               content_type="multipart/form-data")
        assert response.status_code == 200
        data = response.get_json()
        assert data["summary"]["valid"] == 1
        assert data["summary"]["invalid"] == 1
        assert data["created"] == []
        routes_xano.batch_create_production_entries.assert_not_called()

    def test_upload_commit(self, client, routes_xano):
        """Test that commit saves the valid entries."""
        routes_xano.batch_create_production_entries.return_value = [{"id": 99}]
        csv = b"Job Number,Quantity,Date\n1001,500,2024-02-05\n"
        response = client.post("/api/production/upload",
                               data={"file": (BytesIO(csv), "production.csv"), "commit": "true", "facility": "1"},
                               content_type="multipart/form-data")
        assert response.status_code == 200
        assert response.get_json()["created"] == [{"id": 99}]
        entries = routes_xano.batch_create_production_entries.call_args.args[0]
        assert len(entries) == 1
        assert entries[0]["job"] == 1
        assert entries[0]["actual_quantity"] == 500.0

    def test_upload_unparseable(self, client, routes_xano):
        """Test that a file with no usable rows is a 400."""
        csv = b"Item,Count\nfoo,1\n"
        response = client.post("/api/production/upload",
                               data={"file": (BytesIO(csv), "production.csv")},
                               content_type="multipart/form-data")
        assert response.status_code == 400
        assert response.get_json()["error"] == "Failed to parse file"
