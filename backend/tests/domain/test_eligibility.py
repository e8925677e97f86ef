"""Tests for subscription eligibility rules."""

import uuid
from types import SimpleNamespace

import pytest

from app.core.exceptions import ValidationRejection
from app.domain.eligibility import (
    EligibilityRules,
    check_preferred_day,
    check_product_eligible,
    is_in_subscription_category,
)

pytestmark = pytest.mark.unit

RULES = EligibilityRules()


def _product(slug="coffee-powders", name="Coffee Powders", plan="plan_product", eligible=True):
    return SimpleNamespace(
        id=uuid.uuid4(),
        category_slug=slug,
        category_name=name,
        billing_plan_id=plan,
        subscription_eligible=eligible,
    )


def _variant(product, grams=1000, plan=None):
    return SimpleNamespace(id=uuid.uuid4(), product_id=product.id, weight_grams=grams, billing_plan_id=plan)


@pytest.mark.parametrize("day", [1, 15, 28])
def test_preferred_day_in_range(day):
    check_preferred_day(day)


@pytest.mark.parametrize("day", [0, 29, 31, -3])
def test_preferred_day_out_of_range(day):
    with pytest.raises(ValidationRejection) as exc_info:
        check_preferred_day(day)
    assert exc_info.value.reason == "Delivery date must be between 1 and 28"


def test_category_label_from_slug():
    assert RULES.category_label == "coffee powder"


def test_category_matches_on_slug():
    assert is_in_subscription_category("coffee-powders", None, RULES)


def test_category_falls_back_to_name():
    assert is_in_subscription_category(None, "South Indian Coffee Powder", RULES)


def test_category_rejects_other_products():
    assert not is_in_subscription_category("whole-beans", "Whole Beans", RULES)


def test_eligible_pair_returns_product_plan():
    product = _product()
    assert check_product_eligible(product, _variant(product), RULES) == "plan_product"


def test_variant_plan_takes_precedence():
    product = _product()
    variant = _variant(product, plan="plan_variant")
    assert check_product_eligible(product, variant, RULES) == "plan_variant"


def test_variant_of_another_product_is_rejected():
    product = _product()
    with pytest.raises(ValidationRejection) as exc_info:
        check_product_eligible(product, _variant(_product()), RULES)
    assert exc_info.value.code == "variant_mismatch"


def test_missing_variant_is_rejected():
    with pytest.raises(ValidationRejection):
        check_product_eligible(_product(), None, RULES)


def test_wrong_category_is_rejected():
    product = _product(slug="whole-beans", name="Whole Beans")
    with pytest.raises(ValidationRejection) as exc_info:
        check_product_eligible(product, _variant(product), RULES)
    assert exc_info.value.reason == "Subscriptions are only available for Coffee Powder products"


def test_wrong_weight_is_rejected():
    product = _product()
    with pytest.raises(ValidationRejection) as exc_info:
        check_product_eligible(product, _variant(product, grams=250), RULES)
    assert exc_info.value.reason == "Subscriptions are only available for 1000g (1kg) variants"


def test_missing_plan_is_rejected():
    product = _product(plan=None)
    with pytest.raises(ValidationRejection) as exc_info:
        check_product_eligible(product, _variant(product), RULES)
    assert exc_info.value.code == "plan_not_configured"
    assert "one-time order" in exc_info.value.reason


def test_category_checked_before_weight():
    product = _product(slug="whole-beans", name="Whole Beans", plan=None)
    with pytest.raises(ValidationRejection) as exc_info:
        check_product_eligible(product, _variant(product, grams=250), RULES)
    assert exc_info.value.code == "ineligible_category"


def test_product_switched_off_for_subscriptions_is_rejected():
    product = _product(eligible=False)
    with pytest.raises(ValidationRejection) as exc_info:
        check_product_eligible(product, _variant(product), RULES)
    assert exc_info.value.code == "not_subscription_eligible"


def test_subscription_flag_checked_before_category():
    product = _product(slug="whole-beans", name="Whole Beans", eligible=False)
    with pytest.raises(ValidationRejection) as exc_info:
        check_product_eligible(product, _variant(product), RULES)
    assert exc_info.value.code == "not_subscription_eligible"
