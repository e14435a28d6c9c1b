from datetime import datetime
from types import SimpleNamespace

import pytest

from admin_forms import (
    BANNER_RULES,
    EMPTY_PRODUCT,
    PRODUCT_RULES,
    banner_initial_values,
    coerce_product_fields,
    parse_bool,
    parse_date,
    parse_price,
    parse_tags,
    product_initial_values,
    submit_form,
)
from forms import FormState

LINK_ERROR = "Link must be a valid internal path (e.g., /products/rice)"


class TestBannerLink:
    def test_missing_leading_slash_fails(self):
        form = FormState(banner_initial_values(), BANNER_RULES)
        form.set_value("link", "products/rice")

        form.blur("link")

        assert form.errors["link"] == LINK_ERROR

    def test_internal_path_passes(self):
        form = FormState(banner_initial_values(), BANNER_RULES)
        form.set_value("link", "/products/rice")

        form.blur("link")

        assert "link" not in form.errors

    @pytest.mark.parametrize("link", ["https://example.com", "/products?tag=Sweets", "/a b"])
    def test_external_or_query_links_fail(self, link):
        form = FormState({**banner_initial_values(), "link": link}, BANNER_RULES)

        assert form.validate_field("link") == LINK_ERROR

    def test_empty_link_reports_required(self):
        form = FormState(banner_initial_values(), BANNER_RULES)

        assert form.validate_field("link") == "Link is required"


class TestCoercion:
    def test_price(self):
        assert parse_price("4.50") == 4.5
        assert parse_price(3) == 3.0
        assert parse_price("cheap") == "cheap"

    @pytest.mark.parametrize("raw", ["inf", "-inf", "nan", "1e400"])
    def test_non_finite_price_stays_raw(self, raw):
        assert parse_price(raw) == raw

    def test_tags_are_trimmed_and_deduplicated(self):
        assert parse_tags(" Rice, Indian ,,Rice ") == ["Rice", "Indian"]
        assert parse_tags("") == []

    def test_bool(self):
        assert parse_bool("on") is True
        assert parse_bool("TRUE") is True
        assert parse_bool("false") is False
        assert parse_bool(True) is True

    def test_date(self):
        assert parse_date("2026-12-31") == datetime(2026, 12, 31)
        assert parse_date("") is None
        assert parse_date("31/12/2026") == "31/12/2026"

    def test_unsubmitted_fields_are_dropped(self):
        assert coerce_product_fields({"name": "Dal", "price": None}) == {"name": "Dal"}


class TestProductRules:
    def test_blank_product_errors(self):
        form = FormState(EMPTY_PRODUCT, PRODUCT_RULES)

        assert form.validate() is False
        assert form.errors == {
            "name": "Name is required",
            "description": "Description is required",
            "price": "Price must be greater than 0",
            "image": "Image is required",
            "tags": "At least one tag is required",
        }

    def test_unparseable_price(self):
        form = FormState({**EMPTY_PRODUCT, "price": "cheap"}, PRODUCT_RULES)

        assert form.validate_field("price") == "Price must be a number"

    def test_infinite_price_is_not_a_number(self):
        form = FormState({**EMPTY_PRODUCT, "price": float("inf")}, PRODUCT_RULES)

        assert form.validate_field("price") == "Price must be a number"

    def test_bad_seasonal_date(self):
        form = FormState({**EMPTY_PRODUCT, "seasonal_end_date": "31/12/2026"}, PRODUCT_RULES)

        assert form.validate_field("seasonal_end_date") == "Seasonal end date must be a valid date (YYYY-MM-DD)"

    def test_upload_satisfies_image_rule(self):
        form = FormState({**EMPTY_PRODUCT, "image": SimpleNamespace(filename="rice.png")}, PRODUCT_RULES)

        assert form.validate_field("image") is None

    def test_upload_without_filename_fails_image_rule(self):
        form = FormState({**EMPTY_PRODUCT, "image": SimpleNamespace(filename="")}, PRODUCT_RULES)

        assert form.validate_field("image") == "Image is required"

    def test_initial_values_from_record(self):
        record = {"name": "Dal", "description": "Red lentils", "price": 5.99, "image_url": "http://x/y.png", "tags": ["Lentils"]}

        values = product_initial_values(record)

        assert values["image"] == "http://x/y.png"
        assert values["is_hot_product"] is False
        assert FormState(values, PRODUCT_RULES).validate() is True


class TestSubmitForm:
    @pytest.mark.asyncio
    async def test_valid_submission_reaches_callback(self):
        received = []

        async def on_submit(values):
            received.append(values)

        submitted = coerce_product_fields({
            "name": "Basmati Rice",
            "description": "Long grain",
            "price": "19.99",
            "tags": "Rice, Indian",
            "image": "http://cdn/rice.png",
        })
        form = await submit_form(product_initial_values(), PRODUCT_RULES, submitted, on_submit)

        assert form.is_valid
        assert received[0]["price"] == 19.99
        assert received[0]["tags"] == ["Rice", "Indian"]

    @pytest.mark.asyncio
    async def test_invalid_submission_skips_callback(self):
        received = []
        form = await submit_form(product_initial_values(), PRODUCT_RULES, {"name": "Rice"}, received.append)

        assert received == []
        assert not form.is_valid
        assert "name" not in form.errors
