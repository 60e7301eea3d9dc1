"""
Tests for booking transition rules and the derived user-facing flags.
"""

import pytest

from academy_booking.core.exceptions import InvalidStateError
from academy_booking.services import state_machine as sm


def test_approve_only_from_slot_booked():
    sm.ensure_can_approve("slot_booked")
    sm.ensure_can_approve("requested")
    for status in ("approved", "confirmed", "cancelled", "rejected", "completed"):
        with pytest.raises(InvalidStateError):
            sm.ensure_can_approve(status)


def test_reject_before_confirmation_only():
    sm.ensure_can_reject("slot_booked")
    sm.ensure_can_reject("approved")
    sm.ensure_can_reject("payment_pending")
    with pytest.raises(InvalidStateError):
        sm.ensure_can_reject("confirmed")


def test_complete_only_confirmed():
    sm.ensure_can_complete("confirmed")
    with pytest.raises(InvalidStateError):
        sm.ensure_can_complete("approved")


def test_cancel_rules():
    assert sm.can_cancel("slot_booked", "not_initiated")
    assert sm.can_cancel("approved", "initiated")
    assert not sm.can_cancel("confirmed", "success")
    assert not sm.can_cancel("cancelled", "not_initiated")
    with pytest.raises(InvalidStateError, match="successful payment"):
        sm.ensure_can_cancel("approved", "success")
    with pytest.raises(InvalidStateError):
        sm.ensure_can_cancel("rejected", "not_initiated")


def test_create_order_requires_approval():
    sm.ensure_can_create_order("approved", "not_initiated")
    sm.ensure_can_create_order("approved", "failed")
    sm.ensure_can_create_order("payment_pending", "cancelled")
    with pytest.raises(InvalidStateError, match="approved bookings"):
        sm.ensure_can_create_order("slot_booked", "not_initiated")
    with pytest.raises(InvalidStateError, match="already been completed"):
        sm.ensure_can_create_order("approved", "success")


def test_cancel_order_only_while_live():
    sm.ensure_can_cancel_order("initiated")
    sm.ensure_can_cancel_order("pending")
    for payment_status in ("not_initiated", "failed", "cancelled", "success"):
        with pytest.raises(InvalidStateError):
            sm.ensure_can_cancel_order(payment_status)


def test_demoted_payment_status():
    assert sm.demoted_payment_status("initiated") == "cancelled"
    assert sm.demoted_payment_status("pending") == "cancelled"
    assert sm.demoted_payment_status("not_initiated") == "not_initiated"
    assert sm.demoted_payment_status("failed") == "failed"


def test_legacy_statuses_normalize():
    assert sm.normalize_status("requested") == "slot_booked"
    assert sm.normalize_status("payment_pending") == "approved"
    assert sm.normalize_status("confirmed") == "confirmed"


def test_payment_link():
    assert sm.is_payment_link_enabled("approved", "not_initiated")
    assert sm.is_payment_link_enabled("approved", "initiated")
    assert not sm.is_payment_link_enabled("slot_booked", "not_initiated")
    assert not sm.is_payment_link_enabled("confirmed", "success")


def test_status_messages():
    assert sm.status_message("slot_booked", "not_initiated") == (
        "Your booking request has been sent. Waiting for academy approval."
    )
    assert sm.status_message("approved", "not_initiated").startswith("Your booking has been approved")
    assert sm.status_message("confirmed", "success") == "Booking confirmed! Your payment was successful."
    assert sm.status_message("approved", "cancelled") == "Payment was cancelled."
