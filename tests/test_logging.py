import logging

import pytest

from config.settings import mask_sensitive_data


class TestVenueContext:
    def test_venue_id_bound_to_request_logs(self, client, caplog):
        with caplog.at_level(logging.INFO):
            client.get("/health", HTTP_X_VENUE_ID="venue-log-789")
        found = any("venue-log-789" in record.getMessage() for record in caplog.records)
        assert found

    def test_context_cleared_between_requests(self, client, caplog):
        client.get("/health", HTTP_X_VENUE_ID="venue-first")
        caplog.clear()
        with caplog.at_level(logging.INFO):
            client.get("/health")
        assert not any("venue-first" in r.getMessage() for r in caplog.records)


class TestSensitiveDataMasking:
    @pytest.mark.parametrize("phone", ["+91 9876543210", "+44-7911123456"])
    def test_phone_masked_in_log_output(self, phone):
        event_dict = {"event": "test", "customer": f"call {phone} on arrival"}
        result = mask_sensitive_data(None, None, event_dict)
        assert phone not in result["customer"]
        assert "***MASKED***" in result["customer"]

    def test_password_masked_in_log_output(self):
        event_dict = {"event": "test", "data": "password='s3cret123'"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "s3cret123" not in result["data"]
        assert "***MASKED***" in result["data"]

    def test_token_masked_in_log_output(self):
        event_dict = {"event": "test", "header": "token=abc123xyz"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "abc123xyz" not in result["header"]
        assert "***MASKED***" in result["header"]

    def test_authorization_masked_in_log_output(self):
        event_dict = {"event": "test", "header": "Authorization: Bearer-eyJhbGci"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "eyJhbGci" not in result["header"]

    def test_non_sensitive_data_unchanged(self):
        event_dict = {
            "event": "assignment.assigned",
            "order_number": "ORD-20260301-ABC123",
            "table_number": "12",
            "queue_position": 3,
        }
        result = mask_sensitive_data(None, None, event_dict)
        assert result["order_number"] == "ORD-20260301-ABC123"
        assert result["table_number"] == "12"
        assert result["queue_position"] == 3
