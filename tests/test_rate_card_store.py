"""Tests for rate card normalization and the store queries."""
import pytest

from freightbid.models import RateCardPool
from freightbid.services.rate_card_store import (
    RateCardStore,
    check_invoice_value_charges,
    index_service_area,
    normalize_price_chart,
    normalize_price_rate,
    normalize_selected_zones,
)


class TestNormalizePriceChart:
    """Every stored shape ends up as {ORIGIN: {DEST: rate}}."""

    EXPECTED = {"N1": {"S1": 12.5, "W1": 10.0}}

    def test_nested(self):
        assert normalize_price_chart({"n1": {"s1": "12.5", "W1": 10}}) == self.EXPECTED

    def test_rows(self):
        rows = [
            {"from": "N1", "to": "S1", "rate": 12.5},
            {"fromZone": "n1", "toZone": "w1", "price": "10"},
        ]
        assert normalize_price_chart(rows) == self.EXPECTED

    def test_flat_keys(self):
        assert normalize_price_chart({"N1-S1": 12.5, "n1:w1": 10}) == self.EXPECTED

    def test_wrapped(self):
        assert normalize_price_chart({"priceChart": {"N1": {"S1": 12.5, "W1": 10}}}) == self.EXPECTED

    def test_first_value_wins(self):
        chart = normalize_price_chart([
            {"from": "N1", "to": "S1", "rate": 12.5},
            {"from": "n1", "to": "s1", "rate": 99},
        ])
        assert chart == {"N1": {"S1": 12.5}}

    @pytest.mark.parametrize("raw", [None, {}, [], "N1-S1", {"N1": {"S1": "n/a"}}, {"N1S1": 4}])
    def test_unusable_input_is_empty(self, raw):
        assert normalize_price_chart(raw) == {}


class TestNormalizePriceRate:

    def test_camel_case_and_blanks(self):
        rate = normalize_price_rate({
            "minWeight": "",
            "docketCharges": 100,
            "miscellanousCharges": 25,
            "insuaranceCharges": {"variable": 1, "fixed": ""},
            "odaCharges": "",
            "kFactor": 4500,
        })
        assert rate.min_weight == 0
        assert rate.docket_charges == 100
        assert rate.misc_charges == 25
        assert rate.insurance_charges.variable == 1
        assert rate.insurance_charges.fixed == 0
        assert rate.oda_charges.fixed == 0
        assert rate.k_factor == 4500

    def test_missing_document(self):
        rate = normalize_price_rate(None)
        assert rate.fuel == 0
        assert rate.k_factor is None


class TestServiceArea:

    def test_index(self):
        index = index_service_area([
            {"pincode": "411001", "zone": "w1", "isOda": True},
            {"pincode": "411001", "zone": "W2"},
            {"pincode": "110001"},
            "junk",
        ])
        assert index["411001"].zone == "W1"
        assert index["411001"].is_oda is True
        assert index["110001"].zone is None

    def test_selected_zones(self):
        assert normalize_selected_zones(["n1", "N1", " w1 ", None]) == ["N1", "W1"]
        assert normalize_selected_zones("N1") == []


class TestInvoiceSettings:

    def test_passed_through(self):
        raw = {"enabled": True, "percentage": 2, "minimumAmount": 100}
        assert check_invoice_value_charges(raw, "Alpha") == raw

    def test_missing(self):
        assert check_invoice_value_charges(None, "Alpha") is None
        assert check_invoice_value_charges("2%", "Alpha") is None

    def test_problems_logged(self, caplog):
        raw = {"enabled": True, "percentage": 150, "minimumAmount": 0}
        with caplog.at_level("WARNING", logger="freightbid.services.rate_card_store"):
            assert check_invoice_value_charges(raw, "Alpha") == raw
        assert "Alpha" in caplog.text
        assert "between 0 and 100" in caplog.text


class TestRateCardStore:

    async def test_rate_cards_sorted_and_filtered(self, db, make_customer, make_rate_card):
        customer = await make_customer()
        other = await make_customer()
        await make_rate_card(customer, "Zeta Cargo")
        await make_rate_card(customer, "Alpha Movers")
        await make_rate_card(customer, "Retired Lines", is_active=False)
        await make_rate_card(customer, "Temp Haul", pool=RateCardPool.TEMPORARY)
        await make_rate_card(other, "Someone Else")

        cards = await RateCardStore(db).get_rate_cards(customer.id, RateCardPool.TIED_UP)

        assert [c.vendor_name for c in cards] == ["Alpha Movers", "Zeta Cargo"]
        assert cards[0].price_chart == {"N1": {"W1": 10.0, "S1": 12.0}}

    async def test_invalid_charge_settings_skipped(self, db, make_customer, make_rate_card):
        customer = await make_customer()
        await make_rate_card(customer, "Broken", price_rate={"fuel": "ten percent"})
        await make_rate_card(customer, "Fine")

        cards = await RateCardStore(db).get_rate_cards(customer.id, RateCardPool.TIED_UP)

        assert [c.vendor_name for c in cards] == ["Fine"]

    async def test_public_vendors_need_both_pincodes(self, db, make_transporter):
        both = [{"pincode": "110001", "zone": "N1"}, {"pincode": "400001", "zone": "W1"}]
        await make_transporter("Covers Both", service_area=both, zone_rates={"N1": {"W1": 9}})
        await make_transporter("Origin Only", service_area=both[:1], zone_rates={"N1": {"W1": 9}})

        vendors = await RateCardStore(db).get_public_vendors("110001", "400001")

        assert [v.vendor_name for v in vendors] == ["Covers Both"]
        assert vendors[0].rate_card.price_chart == {"N1": {"W1": 9.0}}

    async def test_related_transporters(self, db, make_customer, make_transporter):
        customer = await make_customer()
        linked = await make_transporter("Linked", customer=customer)
        await make_transporter("Stranger")

        ids = await RateCardStore(db).get_related_transporter_ids(customer.id)

        assert ids == [linked.id]
