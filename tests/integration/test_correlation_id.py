import logging
import uuid

import pytest

pytestmark = pytest.mark.integration


class TestCorrelationIdMiddleware:
    def test_returns_provided_request_id(self, client):
        custom_id = "my-custom-request-id-123"
        response = client.get("/health", HTTP_X_REQUEST_ID=custom_id)
        assert response["X-Request-ID"] == custom_id

    def test_generates_uuid_when_no_request_id(self, client):
        response = client.get("/health")
        request_id = response["X-Request-ID"]
        parsed = uuid.UUID(request_id, version=4)
        assert str(parsed) == request_id

    def test_correlation_id_in_logs(self, client, caplog):
        custom_id = "log-test-correlation-456"
        with caplog.at_level(logging.INFO):
            client.get("/health", HTTP_X_REQUEST_ID=custom_id)
        found = any(custom_id in record.getMessage() for record in caplog.records)
        assert found, (
            f"correlation_id '{custom_id}' not found in log records: "
            f"{[r.getMessage() for r in caplog.records]}"
        )

    def test_header_echoed_on_api_errors(self, api_client):
        custom_id = "api-error-request-id"
        response = api_client.get("/api/v1/orders/", HTTP_X_REQUEST_ID=custom_id)
        assert response.status_code == 401
        assert response["X-Request-ID"] == custom_id

    def test_correlation_id_bound_to_assignment_logs(
        self, auth_client, caplog, make_waiter, venue, branch
    ):
        make_waiter()
        custom_id = "place-order-correlation"
        with caplog.at_level(logging.INFO):
            response = auth_client.post(
                "/api/v1/orders/",
                {"venue_id": str(venue.id), "branch_id": str(branch.id)},
                format="json",
                HTTP_X_REQUEST_ID=custom_id,
            )
        assert response.status_code == 201
        assignment_records = [
            r for r in caplog.records if r.name.startswith("modules.assignment")
        ]
        assert assignment_records
        assert all(custom_id in r.getMessage() for r in assignment_records)
