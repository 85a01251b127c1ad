"""Tests for the Payment model — status transitions, identifiers, ORM record."""

import re
from decimal import Decimal

import pytest

from remitrail.models.payment import (
    CANCELLABLE_STATUSES,
    TERMINAL_STATUSES,
    VALID_TRANSITIONS,
    PaymentRecord,
    PaymentStatus,
    generate_payment_id,
    is_valid_transition,
)


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------


class TestPaymentId:
    def test_format(self):
        """PAY- followed by 16 uppercase hex characters."""
        for _ in range(20):
            assert re.match(r"^PAY-[0-9A-F]{16}$", generate_payment_id())

    def test_uniqueness(self):
        ids = {generate_payment_id() for _ in range(200)}
        assert len(ids) == 200


# ---------------------------------------------------------------------------
# Status Transitions
# ---------------------------------------------------------------------------


class TestStatusTransitions:

    def test_full_happy_path(self):
        """Walk the pipeline path: CREATED -> COMPLETED."""
        path = [
            PaymentStatus.CREATED,
            PaymentStatus.COMPLIANCE_REVIEW,
            PaymentStatus.PROCESSING,
            PaymentStatus.BLOCKCHAIN_PENDING,
            PaymentStatus.CONVERTING,
            PaymentStatus.SETTLING,
            PaymentStatus.COMPLETED,
        ]
        for current, nxt in zip(path, path[1:]):
            assert is_valid_transition(current, nxt), f"{current} -> {nxt}"

    def test_kyc_pending_path(self):
        assert is_valid_transition(PaymentStatus.CREATED, PaymentStatus.KYC_PENDING)
        assert is_valid_transition(PaymentStatus.KYC_PENDING, PaymentStatus.COMPLIANCE_REVIEW)

    @pytest.mark.parametrize("status", [
        PaymentStatus.CREATED,
        PaymentStatus.KYC_PENDING,
        PaymentStatus.COMPLIANCE_REVIEW,
        PaymentStatus.PROCESSING,
        PaymentStatus.BLOCKCHAIN_PENDING,
        PaymentStatus.CONVERTING,
        PaymentStatus.SETTLING,
    ])
    def test_every_active_status_can_fail(self, status):
        assert is_valid_transition(status, PaymentStatus.FAILED)

    def test_cancellation_only_before_funds_move(self):
        for status, allowed in VALID_TRANSITIONS.items():
            can_cancel = PaymentStatus.CANCELLED in allowed
            assert can_cancel == (status in CANCELLABLE_STATUSES), status

    @pytest.mark.parametrize("status", sorted(TERMINAL_STATUSES, key=lambda s: s.value))
    def test_terminal_statuses_are_final(self, status):
        assert VALID_TRANSITIONS[status] == set()
        for target in PaymentStatus:
            assert not is_valid_transition(status, target)

    def test_no_skipping_stages(self):
        assert not is_valid_transition(PaymentStatus.CREATED, PaymentStatus.PROCESSING)
        assert not is_valid_transition(PaymentStatus.PROCESSING, PaymentStatus.SETTLING)
        assert not is_valid_transition(PaymentStatus.CONVERTING, PaymentStatus.COMPLETED)

    def test_no_going_back(self):
        assert not is_valid_transition(PaymentStatus.SETTLING, PaymentStatus.PROCESSING)
        assert not is_valid_transition(PaymentStatus.PROCESSING, PaymentStatus.COMPLIANCE_REVIEW)

    def test_every_status_has_a_row(self):
        assert set(VALID_TRANSITIONS) == set(PaymentStatus)


# ---------------------------------------------------------------------------
# ORM record
# ---------------------------------------------------------------------------


class TestPaymentRecord:
    def test_repr(self):
        record = PaymentRecord(
            id="PAY-0123456789ABCDEF",
            quote_id="QT-ABC123DEF456",
            sender_id="sender-1",
            status=PaymentStatus.SETTLING,
            request={},
            fees={},
            payout_amount=Decimal("1822.07"),
            steps=[],
        )
        r = repr(record)
        assert "PAY-0123456789ABCDEF" in r
        assert "settling" in r

    def test_status_values_stored_lowercase(self):
        enum_type = PaymentRecord.__table__.c.status.type
        assert "compliance_review" in enum_type.enums
        assert "COMPLIANCE_REVIEW" not in enum_type.enums
