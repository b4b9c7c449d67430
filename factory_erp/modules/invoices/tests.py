"""
Tests for the invoicing engine

Covers:
- Aggregate arithmetic (discounts, round-off, invariants)
- Status state machine and mutation guard
- Sequential numbering per month, widening past 9999, retry on conflicts
- Invoice API: create, read, update, payments, cancel, delete, listing
"""

import logging
import pytest
from datetime import date, timedelta
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from factory_erp.common.exceptions import (
    BusinessRuleViolation, InvalidStateTransition, InvoiceValidationError
)
from factory_erp.core.config import settings
from factory_erp.modules.invoices.guards import MutationGuard
from factory_erp.modules.invoices.models import DiscountType, Invoice, InvoiceSequence, InvoiceStatus
from factory_erp.modules.invoices.sequence import SequenceAllocator
from factory_erp.modules.invoices.state_machine import (
    TERMINAL, TRANSITIONS, request_manual_status, status_after_payment, transition
)
from factory_erp.modules.invoices.totals import build_totals
from factory_erp.modules.taxes.calculator import LineItemTaxResolver

TOL = Decimal("0.01")


def line(quantity, unit_price, tax_rate=None, discount=None, hsn_code=None):
    return SimpleNamespace(
        description="Line",
        quantity=Decimal(str(quantity)),
        unit_price=Decimal(str(unit_price)),
        tax_rate=None if tax_rate is None else Decimal(str(tax_rate)),
        discount=None if discount is None else Decimal(str(discount)),
        hsn_code=hsn_code,
    )


def create_invoice(client, headers, payload, **overrides):
    body = {**payload, **overrides}
    response = client.post("/invoices/", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def pay(client, headers, invoice_id, amount, method="BANK_TRANSFER"):
    return client.post(
        f"/invoices/{invoice_id}/payments",
        json={"amount": str(amount), "method": method, "reference": "UTR123"},
        headers=headers,
    )


# ===== AGGREGATE =====

class TestBuildTotals:
    """Subtotal, discount, tax, round-off and total"""

    def test_single_item_scenario(self):
        totals = build_totals([line(2, 500, tax_rate=18)], LineItemTaxResolver())
        assert totals.subtotal == Decimal("1000.00")
        assert totals.tax_amount == Decimal("180.00")
        assert totals.discount_amount == Decimal("0.00")
        assert totals.total_amount == Decimal("1180.00")

    def test_percentage_discount(self):
        totals = build_totals(
            [line(2, 500, tax_rate=18)], LineItemTaxResolver(),
            discount_type=DiscountType.PERCENTAGE, discount_value=10,
        )
        assert totals.discount_amount == Decimal("100.00")
        assert totals.total_amount == Decimal("1080.00")

    def test_fixed_discount_reports_rate(self):
        totals = build_totals(
            [line(4, 250)], LineItemTaxResolver(),
            discount_type=DiscountType.FIXED, discount_value=50,
        )
        assert totals.discount_amount == Decimal("50.00")
        assert totals.discount_rate == Decimal("5.00")
        assert totals.total_amount == Decimal("950.00")

    def test_fractional_percentage_discount_matches_stored_rate(self):
        totals = build_totals(
            [line(2, 500, tax_rate=18)], LineItemTaxResolver(),
            discount_type=DiscountType.PERCENTAGE, discount_value="12.345",
        )
        assert totals.discount_rate == Decimal("12.35")
        assert totals.discount_amount == Decimal("123.50")

    def test_quantity_rounding_to_zero_rejected(self):
        with pytest.raises(InvoiceValidationError):
            build_totals([line("0.0004", 100)], LineItemTaxResolver())

    def test_fixed_discount_above_subtotal_rejected(self):
        with pytest.raises(BusinessRuleViolation):
            build_totals(
                [line(1, 100)], LineItemTaxResolver(),
                discount_type=DiscountType.FIXED, discount_value=150,
            )

    def test_percentage_over_hundred_rejected(self):
        with pytest.raises(InvoiceValidationError):
            build_totals([line(1, 100)], LineItemTaxResolver(), discount_value=101)

    def test_round_off_limit(self):
        with pytest.raises(InvoiceValidationError):
            build_totals([line(1, 100)], LineItemTaxResolver(), round_off="1.50")

    def test_negative_total_rejected(self):
        with pytest.raises(BusinessRuleViolation):
            build_totals([line(1, "0.50")], LineItemTaxResolver(), round_off="-1.00")

    def test_empty_items_rejected(self):
        with pytest.raises(InvoiceValidationError):
            build_totals([], LineItemTaxResolver())

    def test_item_discount_out_of_range_rejected(self):
        with pytest.raises(InvoiceValidationError):
            build_totals([line(1, 100, discount=120)], LineItemTaxResolver())

    def test_suggested_round_off(self):
        totals = build_totals([line(1, "99.70")], LineItemTaxResolver())
        assert totals.suggested_round_off == Decimal("0.30")

    @pytest.mark.parametrize("items, discount_type, discount_value, round_off", [
        ([line(3, "33.335", tax_rate=5), line(7, "12.10", tax_rate=12, discount=5)], DiscountType.PERCENTAGE, "7.5", "0.25"),
        ([line("2.5", "95", tax_rate=12), line(1, 40, tax_rate=18)], DiscountType.FIXED, "10", "-0.40"),
        ([line(11, "17.99", tax_rate="2.5")], DiscountType.PERCENTAGE, "0", "0"),
    ])
    def test_total_reconciles(self, items, discount_type, discount_value, round_off):
        totals = build_totals(
            items, LineItemTaxResolver(), discount_type=discount_type,
            discount_value=discount_value, round_off=round_off,
        )
        expected = totals.subtotal - totals.discount_amount + totals.tax_amount + totals.round_off
        assert abs(totals.total_amount - expected) <= TOL
        assert abs(totals.breakdown.taxable_value - totals.subtotal) <= TOL
        assert abs(totals.breakdown.rounding_difference) <= TOL * len(totals.breakdown.groups)


# ===== STATE MACHINE =====

class TestStateMachine:

    def test_payment_driven_status(self):
        total = Decimal("1180.00")
        assert status_after_payment(InvoiceStatus.PENDING, Decimal("0"), total, TOL) == InvoiceStatus.PENDING
        assert status_after_payment(InvoiceStatus.PENDING, Decimal("600"), total, TOL) == InvoiceStatus.PARTIALLY_PAID
        assert status_after_payment(InvoiceStatus.PENDING, Decimal("1180"), total, TOL) == InvoiceStatus.PAID
        assert status_after_payment(InvoiceStatus.SENT, Decimal("1179.99"), total, TOL) == InvoiceStatus.PAID

    def test_terminal_states_have_no_exits(self):
        for state in TERMINAL:
            assert TRANSITIONS[state] == frozenset()

    def test_illegal_transition_raises(self):
        invoice = SimpleNamespace(status=InvoiceStatus.PAID)
        with pytest.raises(InvalidStateTransition):
            transition(invoice, InvoiceStatus.CANCELLED)
        assert invoice.status == InvoiceStatus.PAID

    def test_manual_status_cannot_mark_paid(self):
        invoice = SimpleNamespace(status=InvoiceStatus.PENDING)
        with pytest.raises(InvalidStateTransition):
            request_manual_status(invoice, InvoiceStatus.PAID)

    def test_manual_status_cannot_go_back_to_draft(self):
        invoice = SimpleNamespace(status=InvoiceStatus.SENT)
        with pytest.raises(InvalidStateTransition):
            request_manual_status(invoice, InvoiceStatus.DRAFT)

    def test_manual_overdue(self):
        invoice = SimpleNamespace(status=InvoiceStatus.PARTIALLY_PAID)
        request_manual_status(invoice, InvoiceStatus.OVERDUE)
        assert invoice.status == InvoiceStatus.OVERDUE


class TestMutationGuard:

    def test_delete_rejected_with_payments(self):
        invoice = SimpleNamespace(status=InvoiceStatus.PARTIALLY_PAID, amount_paid=Decimal("10"))
        with pytest.raises(InvalidStateTransition):
            MutationGuard.ensure_can_delete(invoice)

    def test_delete_allowed_without_payments(self):
        invoice = SimpleNamespace(status=InvoiceStatus.CANCELLED, amount_paid=Decimal("0"))
        MutationGuard.ensure_can_delete(invoice)

    def test_cancel_rejected_when_paid(self):
        invoice = SimpleNamespace(status=InvoiceStatus.PAID, amount_paid=Decimal("100"))
        with pytest.raises(InvalidStateTransition):
            MutationGuard.ensure_can_cancel(invoice)


# ===== NUMBERING =====

class TestSequenceAllocator:

    def test_numbers_increase_within_period(self, db_session):
        allocator = SequenceAllocator(db_session, prefix="INV")
        first = allocator.next_number(date(2024, 1, 5))
        second = allocator.next_number(date(2024, 1, 20))
        db_session.commit()
        assert first == "INV2024010001"
        assert second == "INV2024010002"

    def test_new_period_starts_at_one(self, db_session):
        allocator = SequenceAllocator(db_session, prefix="INV")
        allocator.next_number(date(2024, 1, 5))
        assert allocator.next_number(date(2024, 2, 1)) == "INV2024020001"
        db_session.commit()

    def test_continues_after_existing_numbers(self, db_session, customer):
        db_session.add(Invoice(
            invoice_number="INV2024010041", customer_id=customer.id, status=InvoiceStatus.PENDING,
            issue_date=date(2024, 1, 3), due_date=date(2024, 2, 3),
        ))
        db_session.commit()
        assert SequenceAllocator(db_session, prefix="INV").next_number(date(2024, 1, 20)) == "INV2024010042"
        db_session.commit()

    def test_widens_past_9999(self, db_session, customer):
        db_session.add(InvoiceSequence(prefix="INV", period="202401", current_value=9999))
        db_session.commit()
        allocator = SequenceAllocator(db_session, prefix="INV")
        widened = allocator.next_number(date(2024, 1, 31))
        db_session.add(Invoice(
            invoice_number=widened, customer_id=customer.id, status=InvoiceStatus.PENDING,
            issue_date=date(2024, 1, 31), due_date=date(2024, 2, 28),
        ))
        db_session.commit()

        assert widened == "INV20240110000"
        # Highest stored number is found by length, not plain string order
        db_session.query(InvoiceSequence).delete()
        db_session.commit()
        assert allocator.next_number(date(2024, 1, 31)) == "INV20240110001"
        db_session.commit()

    def test_preview_does_not_consume(self, db_session):
        allocator = SequenceAllocator(db_session, prefix="INV")
        preview = allocator.preview_number(date(2024, 3, 1))
        assert preview["next_number"] == "INV2024030001"
        assert allocator.preview_number(date(2024, 3, 1))["next_number"] == "INV2024030001"
        assert allocator.next_number(date(2024, 3, 1)) == preview["next_number"]
        db_session.commit()


# ===== API: CREATE / READ =====

class TestCreateInvoice:

    def test_create_computes_totals(self, client, admin_headers, invoice_payload):
        data = create_invoice(client, admin_headers, invoice_payload)

        assert data["invoice_number"] == "INV2024010001"
        assert data["status"] == "PENDING"
        assert Decimal(data["subtotal"]) == Decimal("1000")
        assert Decimal(data["tax_amount"]) == Decimal("180")
        assert Decimal(data["total_amount"]) == Decimal("1180")
        assert Decimal(data["amount_paid"]) == Decimal("0")
        assert data["created_by"] == "admin-1"
        assert data["customer"]["name"] == "Sri Lakshmi Textiles"

        group = data["tax_breakdown"]["groups"][0]
        assert group["hsn_code"] == "6109"
        assert Decimal(group["central_amount"]) == Decimal("90")
        assert Decimal(group["state_amount"]) == Decimal("90")

    def test_numbers_are_sequential(self, client, admin_headers, invoice_payload):
        numbers = [create_invoice(client, admin_headers, invoice_payload)["invoice_number"] for _ in range(3)]
        assert numbers == ["INV2024010001", "INV2024010002", "INV2024010003"]

    def test_percentage_discount(self, client, admin_headers, invoice_payload):
        data = create_invoice(client, admin_headers, invoice_payload, discount_type="percentage", discount_value="10")
        assert Decimal(data["discount_amount"]) == Decimal("100")
        assert Decimal(data["total_amount"]) == Decimal("1080")

    def test_hsn_default_rate_applied(self, client, admin_headers, invoice_payload, hsn_codes):
        items = [{"description": "Cotton T-Shirt", "hsn_code": "6109", "quantity": "2", "unit_price": "500"}]
        data = create_invoice(client, admin_headers, invoice_payload, items=items)
        assert Decimal(data["items"][0]["tax_rate"]) == Decimal("5")
        assert Decimal(data["tax_amount"]) == Decimal("50")

    def test_invoice_default_rate_applied(self, client, admin_headers, invoice_payload):
        items = [{"description": "Packing", "quantity": "1", "unit_price": "200"}]
        data = create_invoice(client, admin_headers, invoice_payload, items=items, tax_rate="12")
        assert Decimal(data["tax_amount"]) == Decimal("24")

    def test_item_discount_folded_into_amount(self, client, admin_headers, invoice_payload):
        items = [{"description": "Shirt", "quantity": "2", "unit_price": "500", "discount": "10", "tax_rate": "5"}]
        data = create_invoice(client, admin_headers, invoice_payload, items=items)
        assert Decimal(data["items"][0]["amount"]) == Decimal("900")
        assert Decimal(data["subtotal"]) == Decimal("900")
        assert Decimal(data["tax_amount"]) == Decimal("45")

    def test_transport_details_saved(self, client, admin_headers, invoice_payload):
        data = create_invoice(
            client, admin_headers, invoice_payload,
            dispatched_through="By Road", motor_vehicle_no="TN39AB1234", destination="Chennai",
        )
        assert data["motor_vehicle_no"] == "TN39AB1234"
        assert data["destination"] == "Chennai"

    def test_items_required(self, client, admin_headers, invoice_payload):
        response = client.post("/invoices/", json={**invoice_payload, "items": []}, headers=admin_headers)
        assert response.status_code == 422

    def test_due_date_before_issue_date(self, client, admin_headers, invoice_payload):
        body = {**invoice_payload, "due_date": "2024-01-01"}
        response = client.post("/invoices/", json=body, headers=admin_headers)
        assert response.status_code == 422

    def test_cannot_start_as_paid(self, client, admin_headers, invoice_payload):
        body = {**invoice_payload, "status": "PAID"}
        response = client.post("/invoices/", json=body, headers=admin_headers)
        assert response.status_code == 422

    def test_inactive_customer_rejected(self, client, admin_headers, invoice_payload, inactive_customer):
        body = {**invoice_payload, "customer_id": str(inactive_customer.id)}
        response = client.post("/invoices/", json=body, headers=admin_headers)
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "validation_error"

    def test_unknown_customer_rejected(self, client, admin_headers, invoice_payload):
        body = {**invoice_payload, "customer_id": str(uuid4())}
        response = client.post("/invoices/", json=body, headers=admin_headers)
        assert response.status_code == 422

    def test_round_off_too_large(self, client, admin_headers, invoice_payload):
        response = client.post("/invoices/", json={**invoice_payload, "round_off": "5"}, headers=admin_headers)
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "validation_error"

    def test_employee_cannot_create(self, client, employee_headers, invoice_payload):
        response = client.post("/invoices/", json=invoice_payload, headers=employee_headers)
        assert response.status_code == 403


class TestNumberConflicts:

    def test_retries_after_number_conflict(self, client, admin_headers, invoice_payload, monkeypatch):
        original = SequenceAllocator.next_number
        calls = {"count": 0}

        def flaky(self, issue_date=None):
            calls["count"] += 1
            if calls["count"] == 1:
                raise IntegrityError(
                    "INSERT INTO invoices", {}, Exception("UNIQUE constraint failed: invoices.invoice_number")
                )
            return original(self, issue_date)

        monkeypatch.setattr(SequenceAllocator, "next_number", flaky)
        data = create_invoice(client, admin_headers, invoice_payload)

        assert calls["count"] == 2
        assert data["invoice_number"] == "INV2024010001"

    def test_gives_up_after_max_retries(self, client, admin_headers, invoice_payload, monkeypatch):
        calls = {"count": 0}

        def always_conflicts(self, issue_date=None):
            calls["count"] += 1
            raise IntegrityError(
                "INSERT INTO invoice_sequences", {},
                Exception("UNIQUE constraint failed: invoice_sequences.prefix, invoice_sequences.period")
            )

        monkeypatch.setattr(SequenceAllocator, "next_number", always_conflicts)
        response = client.post("/invoices/", json=invoice_payload, headers=admin_headers)

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "conflict"
        assert calls["count"] == settings.INVOICE_NUMBER_MAX_RETRIES

    def test_other_integrity_errors_are_not_retried(self, client, admin_headers, invoice_payload, monkeypatch):
        calls = {"count": 0}

        def broken(self, issue_date=None):
            calls["count"] += 1
            raise IntegrityError("INSERT INTO invoices", {}, Exception("FOREIGN KEY constraint failed"))

        monkeypatch.setattr(SequenceAllocator, "next_number", broken)
        response = client.post("/invoices/", json=invoice_payload, headers=admin_headers)

        assert response.status_code == 500
        assert response.json()["detail"]["code"] == "storage_error"
        assert calls["count"] == 1


class TestReadInvoice:

    def test_get_is_idempotent(self, client, admin_headers, invoice_payload):
        invoice_id = create_invoice(client, admin_headers, invoice_payload)["id"]
        first = client.get(f"/invoices/{invoice_id}", headers=admin_headers).json()
        second = client.get(f"/invoices/{invoice_id}", headers=admin_headers).json()
        for key in ("subtotal", "tax_amount", "total_amount", "amount_paid", "status", "version"):
            assert first[key] == second[key]

    def test_unknown_invoice(self, client, admin_headers):
        response = client.get(f"/invoices/{uuid4()}", headers=admin_headers)
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "not_found"

    def test_employee_can_read(self, client, admin_headers, employee_headers, invoice_payload):
        invoice_id = create_invoice(client, admin_headers, invoice_payload)["id"]
        assert client.get(f"/invoices/{invoice_id}", headers=employee_headers).status_code == 200

    def test_tax_breakdown_endpoint(self, client, admin_headers, invoice_payload):
        items = [
            {"description": "T-Shirt", "hsn_code": "6109", "quantity": "10", "unit_price": "180", "tax_rate": "5"},
            {"description": "Polo", "hsn_code": "6109", "quantity": "5", "unit_price": "320", "tax_rate": "5"},
            {"description": "Stitching", "hsn_code": "9988", "quantity": "15", "unit_price": "40", "tax_rate": "18"},
        ]
        invoice = create_invoice(client, admin_headers, invoice_payload, items=items)
        response = client.get(f"/invoices/{invoice['id']}/tax-breakdown", headers=admin_headers)
        assert response.status_code == 200
        data = response.json()

        assert len(data["groups"]) == 2
        assert Decimal(data["taxable_value"]) == Decimal(invoice["subtotal"])
        assert Decimal(data["groups"][0]["taxable_value"]) == Decimal("3400")
        assert Decimal(data["groups"][0]["central_amount"]) == Decimal("85")
        assert Decimal(data["groups"][1]["central_amount"]) == Decimal("54")
        assert Decimal(data["tax_amount"]) == Decimal(invoice["tax_amount"])
        assert Decimal(data["rounding_difference"]) == Decimal("0")


class TestStoredPrecision:
    """Values finer than the stored columns stay consistent across reads and edits"""

    @pytest.mark.parametrize("items, discount_value, expected_subtotal", [
        (
            [{"description": "Button", "hsn_code": "9606", "quantity": "3", "unit_price": "0.333", "tax_rate": "18"}],
            "0", Decimal("0.99"),
        ),
        (
            [{"description": "Fabric (m)", "hsn_code": "5208", "quantity": "1.2345", "unit_price": "1000", "tax_rate": "5"}],
            "0", Decimal("1235.00"),
        ),
        (
            [
                {"description": "Shirt", "hsn_code": "6205", "quantity": "2.5", "unit_price": "95.555",
                 "discount": "7.125", "tax_rate": "12"},
                {"description": "Thread (kg)", "hsn_code": "5204", "quantity": "0.3333", "unit_price": "17.499",
                 "tax_rate": "18"},
            ],
            "12.345", Decimal("227.70"),
        ),
    ])
    def test_breakdown_matches_subtotal_after_edits(
        self, client, admin_headers, invoice_payload, items, discount_value, expected_subtotal
    ):
        created = create_invoice(client, admin_headers, invoice_payload, items=items, discount_value=discount_value)
        invoice_id = created["id"]

        assert Decimal(created["subtotal"]) == expected_subtotal
        assert sum(Decimal(i["amount"]) for i in created["items"]) == expected_subtotal
        breakdown = client.get(f"/invoices/{invoice_id}/tax-breakdown", headers=admin_headers).json()
        assert Decimal(breakdown["taxable_value"]) == expected_subtotal
        assert Decimal(breakdown["tax_amount"]) == Decimal(created["tax_amount"])

        response = client.patch(f"/invoices/{invoice_id}", json={"round_off": "0.10"}, headers=admin_headers)
        assert response.status_code == 200
        updated = response.json()

        assert Decimal(updated["subtotal"]) == expected_subtotal
        assert updated["tax_amount"] == created["tax_amount"]
        assert updated["discount_amount"] == created["discount_amount"]
        assert [i["amount"] for i in updated["items"]] == [i["amount"] for i in created["items"]]
        assert Decimal(updated["total_amount"]) == (
            Decimal(updated["subtotal"]) - Decimal(updated["discount_amount"])
            + Decimal(updated["tax_amount"]) + Decimal("0.10")
        )
        breakdown = client.get(f"/invoices/{invoice_id}/tax-breakdown", headers=admin_headers).json()
        assert Decimal(breakdown["taxable_value"]) == expected_subtotal

    def test_fractional_discount_rate_is_stored_as_applied(self, client, admin_headers, invoice_payload):
        data = create_invoice(client, admin_headers, invoice_payload, discount_value="12.345")
        assert Decimal(data["discount_rate"]) == Decimal("12.35")
        assert Decimal(data["discount_amount"]) == Decimal("123.50")

        updated = client.patch(f"/invoices/{data['id']}", json={"notes": "rechecked"}, headers=admin_headers).json()
        assert updated["discount_amount"] == data["discount_amount"]
        assert updated["total_amount"] == data["total_amount"]


# ===== API: PAYMENTS =====

class TestPayments:

    def test_full_payment_marks_paid(self, client, admin_headers, invoice_payload):
        invoice_id = create_invoice(client, admin_headers, invoice_payload)["id"]
        response = pay(client, admin_headers, invoice_id, "1180")

        assert response.status_code == 201
        data = response.json()
        assert Decimal(data["payment"]["amount"]) == Decimal("1180")
        assert data["payment"]["recorded_by"] == "admin-1"
        assert data["invoice"]["status"] == "PAID"
        assert Decimal(data["invoice"]["balance_due"]) == Decimal("0")

    def test_partial_then_remaining(self, client, accountant_headers, invoice_payload):
        invoice_id = create_invoice(client, accountant_headers, invoice_payload)["id"]

        first = pay(client, accountant_headers, invoice_id, "600").json()["invoice"]
        assert first["status"] == "PARTIALLY_PAID"
        assert Decimal(first["amount_paid"]) == Decimal("600")

        second = pay(client, accountant_headers, invoice_id, "580").json()["invoice"]
        assert second["status"] == "PAID"
        assert Decimal(second["amount_paid"]) == Decimal("1180")
        assert len(second["payments"]) == 2

    def test_overpayment_reports_remaining_balance(self, client, admin_headers, invoice_payload):
        invoice_id = create_invoice(client, admin_headers, invoice_payload)["id"]
        pay(client, admin_headers, invoice_id, "600")

        response = pay(client, admin_headers, invoice_id, "600")
        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["code"] == "overpayment"
        assert Decimal(detail["remaining_balance"]) == Decimal("580")

        invoice = client.get(f"/invoices/{invoice_id}", headers=admin_headers).json()
        assert Decimal(invoice["amount_paid"]) == Decimal("600")

    @pytest.mark.parametrize("amount", ["0", "-10"])
    def test_non_positive_amount_rejected(self, client, admin_headers, invoice_payload, amount):
        invoice_id = create_invoice(client, admin_headers, invoice_payload)["id"]
        response = pay(client, admin_headers, invoice_id, amount)
        assert response.status_code == 422

    def test_payment_on_paid_invoice_rejected(self, client, admin_headers, invoice_payload):
        invoice_id = create_invoice(client, admin_headers, invoice_payload)["id"]
        pay(client, admin_headers, invoice_id, "1180")
        response = pay(client, admin_headers, invoice_id, "1")
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "invalid_state_transition"

    def test_payment_on_cancelled_invoice_rejected(self, client, admin_headers, invoice_payload):
        invoice_id = create_invoice(client, admin_headers, invoice_payload)["id"]
        client.post(f"/invoices/{invoice_id}/cancel", json={"reason": "Duplicate"}, headers=admin_headers)
        response = pay(client, admin_headers, invoice_id, "100")
        assert response.status_code == 400
        assert response.json()["detail"]["current_status"] == "CANCELLED"

    def test_list_payments(self, client, admin_headers, invoice_payload):
        invoice_id = create_invoice(client, admin_headers, invoice_payload)["id"]
        pay(client, admin_headers, invoice_id, "100", method="CASH")
        pay(client, admin_headers, invoice_id, "200", method="UPI")

        response = client.get(f"/invoices/{invoice_id}/payments", headers=admin_headers)
        assert response.status_code == 200
        assert [p["method"] for p in response.json()] == ["CASH", "UPI"]

    def test_concurrent_modification_is_conflict(self, client, admin_headers, invoice_payload, monkeypatch):
        invoice_id = create_invoice(client, admin_headers, invoice_payload)["id"]

        def stale_commit(self):
            raise StaleDataError("UPDATE statement on table 'invoices' expected to update 1 row(s); 0 were matched.")

        monkeypatch.setattr(Session, "commit", stale_commit)
        response = pay(client, admin_headers, invoice_id, "100")
        monkeypatch.undo()

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "conflict"
        invoice = client.get(f"/invoices/{invoice_id}", headers=admin_headers).json()
        assert Decimal(invoice["amount_paid"]) == Decimal("0")
        assert invoice["payments"] == []


# ===== API: UPDATE / CANCEL / DELETE =====

class TestUpdateInvoice:

    def test_replace_items_recomputes(self, client, admin_headers, invoice_payload):
        invoice = create_invoice(client, admin_headers, invoice_payload)
        items = [
            {"description": "Shirt", "quantity": "4", "unit_price": "250", "tax_rate": "12"},
            {"description": "Trousers", "quantity": "1", "unit_price": "650", "tax_rate": "5"},
        ]
        response = client.patch(f"/invoices/{invoice['id']}", json={"items": items}, headers=admin_headers)
        assert response.status_code == 200
        data = response.json()

        assert len(data["items"]) == 2
        assert Decimal(data["subtotal"]) == Decimal("1650")
        assert Decimal(data["tax_amount"]) == Decimal("152.50")
        assert Decimal(data["total_amount"]) == Decimal("1802.50")
        assert data["invoice_number"] == invoice["invoice_number"]
        assert data["version"] > invoice["version"]

    def test_discount_change_keeps_items(self, client, admin_headers, invoice_payload):
        invoice_id = create_invoice(client, admin_headers, invoice_payload)["id"]
        response = client.patch(
            f"/invoices/{invoice_id}", json={"discount_value": "10", "round_off": "0.50"}, headers=admin_headers
        )
        data = response.json()
        assert Decimal(data["discount_amount"]) == Decimal("100")
        assert Decimal(data["total_amount"]) == Decimal("1080.50")
        assert len(data["items"]) == 1

    def test_manual_status_change(self, client, admin_headers, invoice_payload):
        invoice_id = create_invoice(client, admin_headers, invoice_payload, status="DRAFT")["id"]
        response = client.patch(f"/invoices/{invoice_id}", json={"status": "SENT"}, headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "SENT"

    def test_cannot_mark_paid_manually(self, client, admin_headers, invoice_payload):
        invoice_id = create_invoice(client, admin_headers, invoice_payload)["id"]
        response = client.patch(f"/invoices/{invoice_id}", json={"status": "PAID"}, headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "invalid_state_transition"

    def test_paid_invoice_cannot_be_edited(self, client, admin_headers, invoice_payload):
        invoice_id = create_invoice(client, admin_headers, invoice_payload)["id"]
        pay(client, admin_headers, invoice_id, "1180")
        response = client.patch(f"/invoices/{invoice_id}", json={"notes": "late edit"}, headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "invalid_state_transition"

    def test_cancelled_invoice_cannot_be_edited(self, client, admin_headers, invoice_payload):
        invoice_id = create_invoice(client, admin_headers, invoice_payload)["id"]
        client.post(f"/invoices/{invoice_id}/cancel", headers=admin_headers)
        response = client.patch(f"/invoices/{invoice_id}", json={"notes": "x"}, headers=admin_headers)
        assert response.status_code == 400

    def test_new_total_cannot_drop_below_paid(self, client, admin_headers, invoice_payload):
        invoice_id = create_invoice(client, admin_headers, invoice_payload)["id"]
        pay(client, admin_headers, invoice_id, "600")
        items = [{"description": "Shirt", "quantity": "1", "unit_price": "500", "tax_rate": "18"}]
        response = client.patch(f"/invoices/{invoice_id}", json={"items": items}, headers=admin_headers)
        assert response.status_code == 400

        invoice = client.get(f"/invoices/{invoice_id}", headers=admin_headers).json()
        assert Decimal(invoice["total_amount"]) == Decimal("1180")

    def test_status_follows_ledger_after_edit(self, client, admin_headers, invoice_payload):
        invoice_id = create_invoice(client, admin_headers, invoice_payload)["id"]
        pay(client, admin_headers, invoice_id, "600")
        items = [{"description": "Shirt", "quantity": "1", "unit_price": "600", "tax_rate": "0"}]
        response = client.patch(f"/invoices/{invoice_id}", json={"items": items}, headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "PAID"

    def test_due_date_before_issue_date(self, client, admin_headers, invoice_payload):
        invoice_id = create_invoice(client, admin_headers, invoice_payload)["id"]
        response = client.patch(f"/invoices/{invoice_id}", json={"due_date": "2024-01-01"}, headers=admin_headers)
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "validation_error"


class TestCancelAndDelete:

    def test_cancel_sets_reason(self, client, admin_headers, invoice_payload):
        invoice_id = create_invoice(client, admin_headers, invoice_payload)["id"]
        response = client.post(
            f"/invoices/{invoice_id}/cancel", json={"reason": "Order withdrawn"}, headers=admin_headers
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "CANCELLED"
        assert data["cancellation_reason"] == "Order withdrawn"
        assert data["cancelled_at"] is not None

    def test_cancel_partially_paid_keeps_payments(self, client, admin_headers, invoice_payload):
        invoice_id = create_invoice(client, admin_headers, invoice_payload)["id"]
        pay(client, admin_headers, invoice_id, "600")
        data = client.post(f"/invoices/{invoice_id}/cancel", headers=admin_headers).json()
        assert data["status"] == "CANCELLED"
        assert Decimal(data["amount_paid"]) == Decimal("600")
        assert len(data["payments"]) == 1

    def test_paid_invoice_cannot_be_cancelled(self, client, admin_headers, invoice_payload):
        invoice_id = create_invoice(client, admin_headers, invoice_payload)["id"]
        pay(client, admin_headers, invoice_id, "1180")
        response = client.post(f"/invoices/{invoice_id}/cancel", headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["detail"]["current_status"] == "PAID"

    def test_cancel_twice_rejected(self, client, admin_headers, invoice_payload):
        invoice_id = create_invoice(client, admin_headers, invoice_payload)["id"]
        client.post(f"/invoices/{invoice_id}/cancel", headers=admin_headers)
        response = client.post(f"/invoices/{invoice_id}/cancel", headers=admin_headers)
        assert response.status_code == 400

    def test_delete_unpaid_invoice(self, client, admin_headers, invoice_payload):
        invoice_id = create_invoice(client, admin_headers, invoice_payload)["id"]
        response = client.delete(f"/invoices/{invoice_id}", headers=admin_headers)
        assert response.status_code == 204
        assert client.get(f"/invoices/{invoice_id}", headers=admin_headers).status_code == 404

    def test_delete_with_payments_rejected(self, client, admin_headers, invoice_payload):
        invoice_id = create_invoice(client, admin_headers, invoice_payload)["id"]
        pay(client, admin_headers, invoice_id, "100")
        response = client.delete(f"/invoices/{invoice_id}", headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "invalid_state_transition"

    def test_delete_paid_rejected(self, client, admin_headers, invoice_payload):
        invoice_id = create_invoice(client, admin_headers, invoice_payload)["id"]
        pay(client, admin_headers, invoice_id, "1180")
        assert client.delete(f"/invoices/{invoice_id}", headers=admin_headers).status_code == 400

    def test_accountant_cannot_delete(self, client, accountant_headers, invoice_payload):
        invoice_id = create_invoice(client, accountant_headers, invoice_payload)["id"]
        assert client.delete(f"/invoices/{invoice_id}", headers=accountant_headers).status_code == 403


# ===== API: LISTING =====

class TestListInvoices:

    def test_list_with_stats(self, client, admin_headers, invoice_payload):
        paid_id = create_invoice(client, admin_headers, invoice_payload)["id"]
        create_invoice(client, admin_headers, invoice_payload)
        cancelled_id = create_invoice(client, admin_headers, invoice_payload)["id"]
        pay(client, admin_headers, paid_id, "1180")
        client.post(f"/invoices/{cancelled_id}/cancel", headers=admin_headers)

        response = client.get("/invoices/", headers=admin_headers)
        assert response.status_code == 200
        data = response.json()

        assert data["total"] == 3
        assert Decimal(data["stats"]["total_amount"]) == Decimal("2360")
        assert Decimal(data["stats"]["paid_amount"]) == Decimal("1180")
        assert Decimal(data["stats"]["pending_amount"]) == Decimal("1180")
        assert Decimal(data["stats"]["overdue_amount"]) == Decimal("0")
        counts = {c["status"]: c["count"] for c in data["counts_by_status"]}
        assert counts["PAID"] == 1
        assert counts["PENDING"] == 1
        assert counts["CANCELLED"] == 1

    def test_filter_by_status(self, client, admin_headers, invoice_payload):
        create_invoice(client, admin_headers, invoice_payload, status="DRAFT")
        create_invoice(client, admin_headers, invoice_payload)
        data = client.get("/invoices/", params={"status": "DRAFT"}, headers=admin_headers).json()
        assert data["total"] == 1
        assert data["invoices"][0]["status"] == "DRAFT"
        assert len(data["counts_by_status"]) == len(InvoiceStatus)

    def test_filter_by_date_range(self, client, admin_headers, invoice_payload):
        create_invoice(client, admin_headers, invoice_payload)
        create_invoice(client, admin_headers, invoice_payload, issue_date="2024-03-10", due_date="2024-04-10")
        data = client.get(
            "/invoices/", params={"start_date": "2024-03-01", "end_date": "2024-03-31"}, headers=admin_headers
        ).json()
        assert data["total"] == 1
        assert data["invoices"][0]["invoice_number"] == "INV2024030001"

    def test_search_by_number(self, client, admin_headers, invoice_payload):
        create_invoice(client, admin_headers, invoice_payload)
        second = create_invoice(client, admin_headers, invoice_payload, notes="Urgent dispatch")
        data = client.get("/invoices/", params={"search": "0002"}, headers=admin_headers).json()
        assert [i["id"] for i in data["invoices"]] == [second["id"]]
        data = client.get("/invoices/", params={"search": "urgent"}, headers=admin_headers).json()
        assert data["total"] == 1

    def test_pagination(self, client, admin_headers, invoice_payload):
        for _ in range(3):
            create_invoice(client, admin_headers, invoice_payload)
        data = client.get("/invoices/", params={"limit": 2, "offset": 2}, headers=admin_headers).json()
        assert data["total"] == 3
        assert len(data["invoices"]) == 1

    def test_summary_stats(self, client, admin_headers, invoice_payload):
        invoice_id = create_invoice(client, admin_headers, invoice_payload)["id"]
        pay(client, admin_headers, invoice_id, "600")
        data = client.get("/invoices/summary/stats", headers=admin_headers).json()
        assert data["total_invoices"] == 1
        assert Decimal(data["total_tax"]) == Decimal("180")
        assert Decimal(data["pending_amount"]) == Decimal("580")


class TestNumberPreviewAndTotalsPreview:

    def test_next_number(self, client, admin_headers, invoice_payload):
        params = {"issue_date": "2024-01-15"}
        assert client.get("/invoices/next-number", params=params, headers=admin_headers).json()["next_number"] == "INV2024010001"
        create_invoice(client, admin_headers, invoice_payload)
        data = client.get("/invoices/next-number", params=params, headers=admin_headers).json()
        assert data["next_number"] == "INV2024010002"
        assert data["current_sequence"] == 1

    def test_preview_totals(self, client, admin_headers, hsn_codes):
        body = {
            "items": [
                {"description": "T-Shirt", "hsn_code": "6109", "quantity": "1", "unit_price": "94.95"},
            ],
        }
        response = client.post("/invoices/preview", json=body, headers=admin_headers)
        assert response.status_code == 200
        data = response.json()
        # 94.95 + 5% (4.7475 -> 4.75) = 99.70
        assert Decimal(data["total_amount"]) == Decimal("99.70")
        assert Decimal(data["suggested_round_off"]) == Decimal("0.30")
        assert Decimal(data["lines"][0]["tax_rate"]) == Decimal("5")
        assert client.get("/invoices/", headers=admin_headers).json()["total"] == 0


class TestErrorResponses:

    def test_validation_error_status(self):
        error = InvoiceValidationError("bad input", field="items")
        assert error.status_code == 422
        assert error.detail["code"] == "validation_error"

    def test_rejections_are_not_logged_as_errors(self, client, admin_headers, invoice_payload, caplog):
        invoice_id = create_invoice(client, admin_headers, invoice_payload)["id"]

        with caplog.at_level(logging.ERROR):
            overpaid = pay(client, admin_headers, invoice_id, "5000")
            missing = client.get(f"/invoices/{uuid4()}", headers=admin_headers)

        assert overpaid.status_code == 400
        assert missing.status_code == 404
        assert [r for r in caplog.records if r.levelno >= logging.ERROR] == []
