"""
Tests for the pricing resolver.

Example-based tie-break checks plus Hypothesis properties over arbitrary
prices and denominations.
"""

from decimal import Decimal

from hypothesis import given
from hypothesis import strategies as st

from app.models.api import EntityType
from app.models.domain import PricingConfig
from app.services.pricing import (
    estimated_cost,
    resolve_amount_billed,
    resolve_cost_basis,
    resolve_pricing,
    vendor_card_cost,
)

# ============================================================================
# Hypothesis Strategies
# ============================================================================

money = st.decimals(
    min_value=Decimal("0.01"), max_value=Decimal("10000"), places=2, allow_nan=False
)
optional_money = st.none() | money
entity_types = st.sampled_from(list(EntityType))


@st.composite
def pricing_configs(draw):
    """Generate arbitrary pricing configurations."""
    return PricingConfig(
        use_custom_pricing=draw(st.booleans()),
        client_price=draw(optional_money),
        agency_price=draw(optional_money),
        cost_basis=draw(optional_money),
        vendor_cost_per_card=draw(optional_money),
    )


class TestAmountBilled:
    """Price tie-break."""

    def test_agency_price_wins_for_agency(self):
        """Agency 30, client 28, $25 card billed to agency: 30."""
        config = PricingConfig(
            use_custom_pricing=True, client_price=Decimal("28"), agency_price=Decimal("30")
        )

        assert resolve_amount_billed(config, Decimal("25"), EntityType.AGENCY) == Decimal("30.00")

    def test_client_price_for_client(self):
        config = PricingConfig(
            use_custom_pricing=True, client_price=Decimal("28"), agency_price=Decimal("30")
        )

        assert resolve_amount_billed(config, Decimal("25"), EntityType.CLIENT) == Decimal("28.00")

    def test_agency_without_agency_price_pays_face_value(self):
        """Agency without an agency price pays face value, not the client price."""
        config = PricingConfig(use_custom_pricing=True, client_price=Decimal("28"))

        assert resolve_amount_billed(config, Decimal("25"), EntityType.AGENCY) == Decimal("25.00")

    def test_custom_pricing_disabled_is_face_value(self):
        config = PricingConfig(
            use_custom_pricing=False, client_price=Decimal("28"), agency_price=Decimal("30")
        )

        assert resolve_amount_billed(config, Decimal("25"), EntityType.AGENCY) == Decimal("25.00")

    @given(config=pricing_configs(), denomination=money, entity_type=entity_types)
    def test_amount_is_one_of_the_candidates(self, config, denomination, entity_type):
        """The billed amount is always face value or a configured price."""
        amount = resolve_amount_billed(config, denomination, entity_type)

        candidates = {denomination, config.client_price, config.agency_price}
        assert amount in {c for c in candidates if c is not None}

    @given(config=pricing_configs(), denomination=money)
    def test_disabled_custom_pricing_ignores_overrides(self, config, denomination):
        config = PricingConfig(
            use_custom_pricing=False,
            client_price=config.client_price,
            agency_price=config.agency_price,
        )

        for entity_type in EntityType:
            assert resolve_amount_billed(config, denomination, entity_type) == denomination


class TestCostBasis:
    """Cost tie-break."""

    def test_configured_cost_basis_wins(self):
        config = PricingConfig(cost_basis=Decimal("22"))

        assert resolve_cost_basis(config, Decimal("25"), Decimal("23.50")) == Decimal("22.00")

    def test_card_cost_when_not_configured(self):
        assert resolve_cost_basis(PricingConfig(), Decimal("25"), Decimal("23.50")) == Decimal(
            "23.50"
        )

    def test_estimate_when_nothing_known(self):
        """No configured or card cost: face value times the default ratio."""
        assert resolve_cost_basis(PricingConfig(), Decimal("25"), None, Decimal("0.95")) == Decimal(
            "23.75"
        )

    def test_estimate_rounds_half_up(self):
        assert estimated_cost(Decimal("10.10"), Decimal("0.95")) == Decimal("9.60")

    @given(denomination=money)
    def test_default_estimate_never_exceeds_face_value(self, denomination):
        assert estimated_cost(denomination) <= denomination


class TestResolvePricing:
    """Combined resolution."""

    def test_profit(self):
        pricing = resolve_pricing(
            PricingConfig(use_custom_pricing=True, agency_price=Decimal("30")),
            Decimal("25"),
            EntityType.AGENCY,
            card_cost=Decimal("23.50"),
        )

        assert pricing.amount_billed == Decimal("30.00")
        assert pricing.cost_basis == Decimal("23.50")
        assert pricing.profit == Decimal("6.50")

    @given(
        config=pricing_configs(),
        denomination=money,
        entity_type=entity_types,
        card_cost=optional_money,
    )
    def test_result_is_non_negative_cents(self, config, denomination, entity_type, card_cost):
        """Both figures are non-negative and quantized to cents."""
        pricing = resolve_pricing(config, denomination, entity_type, card_cost, Decimal("0.95"))

        assert pricing.amount_billed >= 0
        assert pricing.cost_basis >= 0
        assert pricing.amount_billed.as_tuple().exponent == -2
        assert pricing.cost_basis.as_tuple().exponent == -2
        assert pricing.profit == pricing.amount_billed - pricing.cost_basis


class TestVendorCardCost:
    """Cost recorded on vendor-issued inventory rows."""

    def test_vendor_cost_per_card_first(self):
        config = PricingConfig(cost_basis=Decimal("22"), vendor_cost_per_card=Decimal("24"))

        assert vendor_card_cost(config, Decimal("25")) == Decimal("24.00")

    def test_falls_back_to_cost_basis(self):
        assert vendor_card_cost(PricingConfig(cost_basis=Decimal("22")), Decimal("25")) == Decimal(
            "22.00"
        )

    def test_falls_back_to_estimate(self):
        assert vendor_card_cost(PricingConfig(), Decimal("25"), Decimal("0.9")) == Decimal("22.50")
