from academy_booking.core.logging import redact_secrets


def test_signature_is_masked():
    event = redact_secrets(None, "info", {"event": "payment_verified", "signature": "abcdef123456", "order_id": "o1"})
    assert event["signature"] == "abcd***"
    assert event["order_id"] == "o1"


def test_empty_values_left_alone():
    event = redact_secrets(None, "info", {"event": "x", "gateway_signature": None})
    assert event["gateway_signature"] is None
