"""
Tests for ORM table definitions.
"""

from dataclasses import fields

from sqlalchemy import CheckConstraint

from app.db.models import GiftCardBillingLedger, GiftCardDenomination
from app.models.domain import PricingConfig


def check_constraints(model) -> dict[str, str]:
    return {
        c.name: str(c.sqltext)
        for c in model.__table__.constraints
        if isinstance(c, CheckConstraint)
    }


class TestDenominationTable:
    """gift_card_denominations holds pricing configuration only."""

    def test_pricing_columns_must_be_non_negative(self):
        checks = check_constraints(GiftCardDenomination)

        assert checks["ck_denomination_client_price_non_negative"] == "client_price >= 0"
        assert checks["ck_denomination_agency_price_non_negative"] == "agency_price >= 0"
        assert checks["ck_denomination_cost_basis_non_negative"] == "cost_basis >= 0"
        assert checks["ck_denomination_vendor_cost_non_negative"] == "vendor_cost_per_card >= 0"

    def test_columns_match_pricing_config(self):
        columns = set(GiftCardDenomination.__table__.columns.keys())

        assert columns == {"id", "brand_id", "denomination"} | {
            f.name for f in fields(PricingConfig)
        }


class TestLedgerTable:
    def test_amounts_must_be_non_negative(self):
        checks = check_constraints(GiftCardBillingLedger)

        assert checks["ck_ledger_amount_non_negative"] == "amount_billed >= 0"
        assert checks["ck_ledger_cost_non_negative"] == "cost_basis >= 0"
