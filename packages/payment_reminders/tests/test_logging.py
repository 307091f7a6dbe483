"""
Tests for structured logging output.
"""

import json
import logging

from basecore.logging import JSONFormatter, TextFormatter, mask_phone, mask_value


def make_record(message, **extra):
    record = logging.LogRecord("payment_reminders.test", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestMaskPhone:
    def test_masks_e164_and_whatsapp_address(self):
        assert mask_phone("to whatsapp:+919876543210") == "to whatsapp:+919*******10"
        assert mask_phone("call +14155238886 now") == "call +141******86 now"

    def test_leaves_bare_digit_runs_alone(self):
        assert mask_phone("amount 1500000000 paid") == "amount 1500000000 paid"
        assert mask_phone("run at 1705309200123") == "run at 1705309200123"

    def test_leaves_identifiers_alone(self):
        tenant_id = "0f8fad5b-d9cb-469f-a165-70867728950e"
        assert mask_phone(tenant_id) == tenant_id
        assert mask_phone("SM1234567890123") == "SM1234567890123"

    def test_mask_value(self):
        assert mask_value("9876543210") == "9876****10"
        assert mask_value("12345") == "*****"


class TestJSONFormatter:
    def test_extra_fields_merged(self):
        record = make_record("Sent reminder", tenant_id="t-1", sent=3)
        entry = json.loads(JSONFormatter().format(record))

        assert entry["message"] == "Sent reminder"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "payment_reminders.test"
        assert entry["tenant_id"] == "t-1"
        assert entry["sent"] == 3
        assert "msg" not in entry

    def test_phone_masked_in_extra(self):
        record = make_record("Sending", to="whatsapp:+919876543210")
        entry = json.loads(JSONFormatter().format(record))
        assert "9876543210" not in entry["to"]


class TestTextFormatter:
    def test_masks_message(self):
        output = TextFormatter().format(make_record("Sending to +919876543210"))
        assert "+919876543210" not in output
        assert "payment_reminders.test" in output


class TestPhoneKeys:
    """Extra fields that always hold a phone number are masked in any format."""

    def test_national_number_under_phone_key(self):
        record = make_record("Invalid recipient", phone="9876543210", invoice_number="1234567890")
        entry = json.loads(JSONFormatter().format(record))

        assert entry["phone"] == "9876****10"
        assert entry["invoice_number"] == "1234567890"

    def test_address_under_to_key_keeps_prefix(self):
        record = make_record("Sending", to="whatsapp:+919876543210")
        entry = json.loads(JSONFormatter().format(record))

        assert entry["to"] == "whatsapp:+919*******10"
