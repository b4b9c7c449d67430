"""
Tests for the GST calculator and the HSN registry

Covers:
- Line amounts with item discount and commercial rounding
- Tax rate precedence (item, HSN default, invoice default)
- Grouping by HSN code and rate, CGST/SGST split and reconciliation
- HSN registry API (CRUD, duplicates, roles)
"""

import pytest
from decimal import Decimal
from types import SimpleNamespace

from factory_erp.modules.taxes.calculator import LineItemTaxResolver
from factory_erp.modules.taxes.service import HSNService, DEFAULT_HSN_CODES


def item(quantity, unit_price, discount=None, tax_rate=None, hsn_code=None, description="Item"):
    return SimpleNamespace(
        quantity=Decimal(str(quantity)),
        unit_price=Decimal(str(unit_price)),
        discount=None if discount is None else Decimal(str(discount)),
        tax_rate=None if tax_rate is None else Decimal(str(tax_rate)),
        hsn_code=hsn_code,
        description=description,
    )


# ===== CALCULATOR =====

class TestLineAmount:
    """Taxable amount of a single line"""

    def test_quantity_times_price(self):
        assert LineItemTaxResolver.line_amount(2, 500) == Decimal("1000.00")

    def test_item_discount_is_applied(self):
        assert LineItemTaxResolver.line_amount(2, 500, 10) == Decimal("900.00")

    def test_rounds_half_up_to_cents(self):
        assert LineItemTaxResolver.line_amount("3", "33.335") == Decimal("100.01")

    def test_fractional_quantity(self):
        assert LineItemTaxResolver.line_amount("2.5", "95") == Decimal("237.50")


class TestStoredScale:
    """Inputs finer than the stored columns are rounded before any arithmetic"""

    def test_sub_cent_unit_price(self):
        line = LineItemTaxResolver().resolve_item(item(3, "0.333", tax_rate=18))
        assert line.unit_price == Decimal("0.33")
        assert line.amount == Decimal("0.99")

    def test_four_decimal_quantity(self):
        line = LineItemTaxResolver().resolve_item(item("1.2345", 1000, tax_rate=5))
        assert line.quantity == Decimal("1.235")
        assert line.amount == Decimal("1235.00")

    def test_fractional_rates(self):
        line = LineItemTaxResolver().resolve_item(item(1, 100, discount="7.125", tax_rate="18.005"))
        assert line.discount == Decimal("7.13")
        assert line.tax_rate == Decimal("18.01")
        assert line.amount == Decimal("92.87")

    def test_resolving_a_stored_line_keeps_its_amount(self):
        resolver = LineItemTaxResolver()
        first = resolver.resolve_item(item("0.3333", "17.499", tax_rate=18))
        stored = SimpleNamespace(
            quantity=first.quantity, unit_price=first.unit_price, discount=first.discount,
            tax_rate=first.tax_rate, hsn_code=None, description="Item", amount=first.amount,
        )
        again = resolver.resolve_item(stored)
        assert again.amount == first.amount == Decimal("5.83")
        assert again.tax == first.tax

    def test_stored_amount_is_used_as_is(self):
        stored = SimpleNamespace(
            quantity=Decimal("2"), unit_price=Decimal("500"), discount=Decimal("0"),
            tax_rate=Decimal("18"), hsn_code="6109", description="Item", amount=Decimal("999.99"),
        )
        assert LineItemTaxResolver().resolve_item(stored).amount == Decimal("999.99")


class TestEffectiveRate:
    """Rate precedence: item, HSN registry, invoice default, zero"""

    def test_explicit_item_rate_wins(self):
        resolver = LineItemTaxResolver(default_tax_rate=12, rate_lookup=lambda code: Decimal("5"))
        assert resolver.effective_rate(item(1, 100, tax_rate=18, hsn_code="6109")) == Decimal("18")

    def test_zero_item_rate_is_explicit(self):
        resolver = LineItemTaxResolver(default_tax_rate=12, rate_lookup=lambda code: Decimal("5"))
        assert resolver.effective_rate(item(1, 100, tax_rate=0, hsn_code="6109")) == Decimal("0")

    def test_hsn_default_used_when_item_has_no_rate(self):
        resolver = LineItemTaxResolver(default_tax_rate=12, rate_lookup=lambda code: Decimal("5"))
        assert resolver.effective_rate(item(1, 100, hsn_code="6109")) == Decimal("5")

    def test_invoice_default_when_hsn_unknown(self):
        resolver = LineItemTaxResolver(default_tax_rate=12, rate_lookup=lambda code: None)
        assert resolver.effective_rate(item(1, 100, hsn_code="0000")) == Decimal("12")

    def test_zero_without_any_rate(self):
        resolver = LineItemTaxResolver()
        assert resolver.effective_rate(item(1, 100)) == Decimal("0")


class TestGrouping:
    """Grouping and CGST/SGST split"""

    def test_same_code_and_rate_share_a_group(self):
        resolver = LineItemTaxResolver()
        lines = resolver.resolve([
            item(2, 500, tax_rate="18", hsn_code="6109"),
            item(1, 200, tax_rate="18.00", hsn_code="6109"),
            item(1, 100, tax_rate="5", hsn_code="6109"),
        ])
        groups = resolver.group(lines)

        assert len(groups) == 2
        assert groups[0].taxable_value == Decimal("1200.00")
        assert groups[0].item_count == 2
        assert groups[1].taxable_value == Decimal("100.00")

    def test_split_is_symmetric(self):
        resolver = LineItemTaxResolver()
        breakdown = resolver.breakdown(resolver.resolve([item(2, 500, tax_rate=18, hsn_code="6109")]))
        group = breakdown.groups[0]

        assert group.central_rate == Decimal("9")
        assert group.state_rate == Decimal("9")
        assert group.central_amount == Decimal("90.00")
        assert group.state_amount == Decimal("90.00")
        assert breakdown.tax_amount == Decimal("180.00")
        assert breakdown.rounding_difference == Decimal("0.00")

    def test_group_taxable_values_sum_to_subtotal(self):
        resolver = LineItemTaxResolver()
        lines = resolver.resolve([
            item(3, "33.335", tax_rate=5, hsn_code="6109"),
            item(7, "12.10", discount=5, tax_rate=12, hsn_code="5208"),
            item(1, 40, tax_rate=18, hsn_code="9988"),
        ])
        breakdown = resolver.breakdown(lines)
        assert breakdown.taxable_value == sum(line.amount for line in lines)

    def test_rounding_difference_reconciles_split(self):
        # 5% of 0.10 is 0.005: rounds up to 0.01 as a whole, to 0.00 per half
        resolver = LineItemTaxResolver()
        breakdown = resolver.breakdown(resolver.resolve([item(1, "0.10", tax_rate=5)]))

        assert breakdown.tax_amount == Decimal("0.01")
        assert breakdown.central_total + breakdown.state_total == Decimal("0.00")
        assert breakdown.rounding_difference == Decimal("0.01")

    def test_item_without_hsn_code_groups_under_none(self):
        resolver = LineItemTaxResolver(default_tax_rate=18)
        groups = resolver.group(resolver.resolve([item(1, 100), item(2, 50)]))
        assert len(groups) == 1
        assert groups[0].hsn_code is None
        assert groups[0].taxable_value == Decimal("200.00")


# ===== HSN REGISTRY =====

class TestHSNService:

    def test_seed_defaults_is_idempotent(self, db_session):
        service = HSNService(db_session)
        assert service.seed_defaults() == len(DEFAULT_HSN_CODES)
        assert service.seed_defaults() == 0
        assert service.default_rate("9988") == Decimal("18")

    def test_default_rate_unknown_code(self, db_session):
        assert HSNService(db_session).default_rate("0000") is None
        assert HSNService(db_session).default_rate(None) is None


class TestHSNEndpoints:

    def test_create_and_get(self, client, admin_headers):
        response = client.post(
            "/hsn/", json={"code": "6109", "description": "T-Shirts", "tax_rate": "5"}, headers=admin_headers
        )
        assert response.status_code == 201
        assert Decimal(response.json()["tax_rate"]) == Decimal("5")

        response = client.get("/hsn/6109", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["description"] == "T-Shirts"

    def test_duplicate_code_is_conflict(self, client, admin_headers, hsn_codes):
        response = client.post("/hsn/", json={"code": "6109", "tax_rate": "12"}, headers=admin_headers)
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "conflict"

    def test_rate_out_of_range(self, client, admin_headers):
        response = client.post("/hsn/", json={"code": "6109", "tax_rate": "120"}, headers=admin_headers)
        assert response.status_code == 422

    def test_list_with_search(self, client, employee_headers, hsn_codes):
        response = client.get("/hsn/", params={"search": "stitch"}, headers=employee_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["code"] == "9988"

    def test_update_and_delete(self, client, admin_headers, hsn_codes):
        hsn_id = str(hsn_codes[0].id)
        response = client.put(f"/hsn/{hsn_id}", json={"tax_rate": "12"}, headers=admin_headers)
        assert response.status_code == 200
        assert Decimal(response.json()["tax_rate"]) == Decimal("12")

        response = client.delete(f"/hsn/{hsn_id}", headers=admin_headers)
        assert response.status_code == 204
        assert client.get("/hsn/6109", headers=admin_headers).status_code == 404

    def test_unknown_code_not_found(self, client, admin_headers):
        response = client.get("/hsn/0000", headers=admin_headers)
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "not_found"

    def test_employee_cannot_create(self, client, employee_headers):
        response = client.post("/hsn/", json={"code": "6109", "tax_rate": "5"}, headers=employee_headers)
        assert response.status_code == 403

    def test_requires_token(self, client):
        response = client.get("/hsn/")
        assert response.status_code in (401, 403)
