"""Subscription eligibility rules.

Pure domain functions. No DB access, fully deterministic.
"""

from dataclasses import dataclass

from app.core.exceptions import ValidationRejection

MIN_PREFERRED_DAY = 1
MAX_PREFERRED_DAY = 28

COFFEE_POWDER_ONLY = "Subscriptions are only available for Coffee Powder products"
NOT_SUBSCRIBABLE = "This product is not available for subscription"
PLAN_NOT_CONFIGURED = "Subscription plan not configured for this product"


@dataclass(frozen=True)
class EligibilityRules:
    category_slug: str = "coffee-powders"
    variant_weight_grams: int = 1000

    @property
    def category_label(self) -> str:
        # "coffee-powders" -> "coffee powder"
        return self.category_slug.replace("-", " ").rstrip("s")


def check_preferred_day(preferred_day: int) -> None:
    if not MIN_PREFERRED_DAY <= preferred_day <= MAX_PREFERRED_DAY:
        raise ValidationRejection(
            f"Delivery date must be between {MIN_PREFERRED_DAY} and {MAX_PREFERRED_DAY}",
            code="invalid_delivery_day",
        )


def is_in_subscription_category(category_slug: str | None, category_name: str | None, rules: EligibilityRules) -> bool:
    """Slug match first, then a case-insensitive name match for legacy catalog rows."""
    if category_slug and category_slug == rules.category_slug:
        return True
    if category_name and rules.category_label in category_name.lower():
        return True
    return False


def check_product_eligible(product, variant, rules: EligibilityRules) -> str:
    """Validate a product/variant pair and return the billing plan id to subscribe to.

    Rules are checked in order: subscription flag, category, variant size,
    linked plan. The first failure raises ValidationRejection naming that rule.
    """
    if variant is None or variant.product_id != product.id:
        raise ValidationRejection("Variant does not belong to this product", code="variant_mismatch")

    if not product.subscription_eligible:
        raise ValidationRejection(NOT_SUBSCRIBABLE, code="not_subscription_eligible")

    if not is_in_subscription_category(product.category_slug, product.category_name, rules):
        raise ValidationRejection(COFFEE_POWDER_ONLY, code="ineligible_category")

    if variant.weight_grams != rules.variant_weight_grams:
        raise ValidationRejection(
            f"Subscriptions are only available for {rules.variant_weight_grams}g "
            f"({rules.variant_weight_grams / 1000:g}kg) variants",
            code="ineligible_variant",
        )

    plan_id = variant.billing_plan_id or product.billing_plan_id
    if not plan_id:
        raise ValidationRejection(
            f"{PLAN_NOT_CONFIGURED}. Please purchase it as a one-time order instead.",
            code="plan_not_configured",
        )
    return plan_id
