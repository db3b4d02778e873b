"""
Pricing Resolver - Amount billed and cost basis for a provisioned card.

Pure functions, no I/O.

Price tie-break (custom pricing enabled):
    agency entity with agency price -> agency price
    client entity with client price -> client price
    otherwise                       -> face value
Custom pricing disabled -> face value.

Cost tie-break:
    configured cost basis -> card's own cost -> face value x default ratio
"""

from decimal import ROUND_HALF_UP, Decimal

from app.config import settings
from app.models.api import EntityType
from app.models.domain import PricingConfig, ResolvedPricing

CENT = Decimal("0.01")


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def estimated_cost(denomination: Decimal, ratio: Decimal | None = None) -> Decimal:
    """Estimated cost of a card when no real cost is known."""
    return _money(denomination * (ratio if ratio is not None else settings.default_cost_ratio))


def resolve_amount_billed(
    config: PricingConfig, denomination: Decimal, entity_type: EntityType
) -> Decimal:
    if config.use_custom_pricing:
        if entity_type == EntityType.AGENCY and config.agency_price is not None:
            return _money(config.agency_price)
        if entity_type == EntityType.CLIENT and config.client_price is not None:
            return _money(config.client_price)
    return _money(denomination)


def resolve_cost_basis(
    config: PricingConfig,
    denomination: Decimal,
    card_cost: Decimal | None,
    ratio: Decimal | None = None,
) -> Decimal:
    if config.cost_basis is not None:
        return _money(config.cost_basis)
    if card_cost is not None:
        return _money(card_cost)
    return estimated_cost(denomination, ratio)


def resolve_pricing(
    config: PricingConfig,
    denomination: Decimal,
    entity_type: EntityType,
    card_cost: Decimal | None = None,
    ratio: Decimal | None = None,
) -> ResolvedPricing:
    """Resolve amount billed and cost basis for one card."""
    return ResolvedPricing(
        amount_billed=resolve_amount_billed(config, denomination, entity_type),
        cost_basis=resolve_cost_basis(config, denomination, card_cost, ratio),
    )


def vendor_card_cost(
    config: PricingConfig, denomination: Decimal, ratio: Decimal | None = None
) -> Decimal:
    """Cost recorded on a vendor-issued inventory row."""
    if config.vendor_cost_per_card is not None:
        return _money(config.vendor_cost_per_card)
    if config.cost_basis is not None:
        return _money(config.cost_basis)
    return estimated_cost(denomination, ratio)
