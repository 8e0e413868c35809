"""
Tests for the payment request state machine (pure domain, no DB)
"""
from datetime import datetime, timezone

import pytest

from tesoreria.domain.payment_request import (
    EDITABLE_STATES,
    TERMINAL_STATES,
    TRANSITIONS,
    PaymentRequestAudit,
    PaymentRequestStateError,
    PaymentRequestStatus,
    state_fields_of,
    validate_request_fields,
    validate_state_payload,
)
from tesoreria.domain.permissions import Action


NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class TestTransitions:
    def test_lifecycle_edges(self):
        edges = {(t.source, t.target) for t in TRANSITIONS.values()}
        assert edges == {
            (PaymentRequestStatus.BORRADOR, PaymentRequestStatus.PENDIENTE),
            (PaymentRequestStatus.PENDIENTE, PaymentRequestStatus.APROBADO),
            (PaymentRequestStatus.PENDIENTE, PaymentRequestStatus.RECHAZADO),
            (PaymentRequestStatus.APROBADO, PaymentRequestStatus.EJECUTADO),
        }

    def test_no_transition_leaves_a_terminal_state(self):
        for transition in TRANSITIONS.values():
            assert transition.source not in TERMINAL_STATES

    def test_transition_keyed_by_its_action(self):
        for action, transition in TRANSITIONS.items():
            assert transition.action is action

    def test_audit_actions(self):
        assert TRANSITIONS[Action.SUBMIT_PAYMENT_REQUEST].audit_action == "submitted"
        assert TRANSITIONS[Action.APPROVE_PAYMENT_REQUEST].audit_action == "approved"
        assert TRANSITIONS[Action.REJECT_PAYMENT_REQUEST].audit_action == "rejected"
        assert TRANSITIONS[Action.EXECUTE_PAYMENT_REQUEST].audit_action == "executed"


class TestValidateStatePayload:
    def test_borrador_without_payload(self):
        validate_state_payload("borrador", {})

    def test_pendiente_rejects_approval_fields(self):
        with pytest.raises(PaymentRequestStateError):
            validate_state_payload("pendiente", {"approved_by": 1})

    def test_aprobado_requires_approver_and_time(self):
        validate_state_payload("aprobado", {"approved_by": 1, "approved_at": NOW})
        with pytest.raises(PaymentRequestStateError):
            validate_state_payload("aprobado", {"approved_by": 1})

    def test_aprobado_and_rechazado_are_exclusive(self):
        with pytest.raises(PaymentRequestStateError):
            validate_state_payload("aprobado", {
                "approved_by": 1,
                "approved_at": NOW,
                "rejected_by": 1,
            })

    def test_rechazado_requires_non_blank_comment(self):
        validate_state_payload("rechazado", {
            "rejected_by": 1, "rejected_at": NOW, "rejection_comment": "Sin fondos",
        })
        with pytest.raises(PaymentRequestStateError):
            validate_state_payload("rechazado", {
                "rejected_by": 1, "rejected_at": NOW, "rejection_comment": "   ",
            })

    def test_ejecutado_keeps_approval_and_requires_execution(self):
        fields = {
            "approved_by": 1,
            "approved_at": NOW,
            "executed_by": 2,
            "executed_at": NOW,
            "transaction_id": 7,
            "proof_reference": "1/comprobante.pdf",
        }
        validate_state_payload("ejecutado", fields)

        without_proof = dict(fields, proof_reference=None)
        with pytest.raises(PaymentRequestStateError):
            validate_state_payload("ejecutado", without_proof)

    def test_unknown_status(self):
        with pytest.raises(PaymentRequestStateError):
            validate_state_payload("pagado", {})

    def test_state_fields_of_reads_attributes(self):
        class Row:
            approved_by = 3
            approved_at = NOW

        fields = state_fields_of(Row())
        assert fields["approved_by"] == 3
        assert fields["rejected_by"] is None
        assert "proof_reference" in fields


class TestValidateRequestFields:
    def test_valid(self):
        assert validate_request_fields(15000, "Materiales de aseo", "Ferretería Sur") == {}

    @pytest.mark.parametrize("amount", [0, -5, 10.5, "100", True])
    def test_amount_must_be_positive_int(self, amount):
        errors = validate_request_fields(amount, "desc", "benef")
        assert errors["amount"] == "Monto debe ser un número entero positivo"

    def test_missing_amount(self):
        assert validate_request_fields(None, "desc", "benef")["amount"] == "El monto es requerido"

    def test_blank_description_and_beneficiary(self):
        errors = validate_request_fields(100, "  ", None)
        assert set(errors) == {"description", "beneficiary"}


class TestPaymentRequestAudit:
    def test_created(self):
        changes = PaymentRequestAudit.created("borrador", 100, "desc", "benef", None)
        assert changes["status"] == {"from": None, "to": "borrador"}
        assert changes["amount"] == 100

    def test_edited_only_changed_fields(self):
        changes = PaymentRequestAudit.edited(
            {"amount": 100, "description": "a"},
            {"amount": 200, "description": "a"},
        )
        assert changes["amount"] == {"from": 100, "to": 200}
        assert "description" not in changes

    def test_transition_payload(self):
        transition = TRANSITIONS[Action.EXECUTE_PAYMENT_REQUEST]
        changes = PaymentRequestAudit.transition(transition, comment="Pago ejecutado", transaction_id=9)
        assert changes["status"] == {"from": "aprobado", "to": "ejecutado"}
        assert changes["comment"] == "Pago ejecutado"
        assert changes["transaction_id"] == 9

    def test_transition_payload_without_comment(self):
        changes = PaymentRequestAudit.transition(TRANSITIONS[Action.SUBMIT_PAYMENT_REQUEST])
        assert changes == {"status": {"from": "borrador", "to": "pendiente"}}


class TestEditableStates:
    def test_only_drafts(self):
        assert EDITABLE_STATES == {PaymentRequestStatus.BORRADOR}
        assert not EDITABLE_STATES & TERMINAL_STATES
