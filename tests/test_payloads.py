"""
Unit tests for payload normalization at the gateway boundary.
"""
from decimal import Decimal

import pytest

from fusion_payments.core.exceptions import GatewayError, ValidationError
from fusion_payments.core.payloads import (
    LineItem,
    PaymentRequest,
    build_create_body,
    normalize_check_response,
    normalize_line_item,
    normalize_line_items,
    response_flag,
)
from fusion_payments.core.state_machine import EventKind


class TestLineItems:
    """Test suite for line item normalization."""

    @pytest.mark.unit
    def test_english_keys(self) -> None:
        item = normalize_line_item({"name": "Pack", "price": 1500, "quantity": 2})

        assert item == LineItem(name="Pack", unit_price=Decimal("1500"), quantity=2)

    @pytest.mark.unit
    def test_gateway_keys(self) -> None:
        item = normalize_line_item({"nom": "Pack", "montant": "2500.50", "quantite": "3"})

        assert item == LineItem(name="Pack", unit_price=Decimal("2500.50"), quantity=3)

    @pytest.mark.unit
    def test_defaults(self) -> None:
        item = normalize_line_item({"unit_price": 100})

        assert item.name == "Article"
        assert item.quantity == 1

    @pytest.mark.unit
    def test_missing_price_is_rejected(self) -> None:
        with pytest.raises(ValidationError, match="has no price"):
            normalize_line_item({"name": "Pack"})

    @pytest.mark.unit
    def test_non_numeric_price_is_rejected(self) -> None:
        with pytest.raises(ValidationError, match="must be numeric"):
            normalize_line_item({"name": "Pack", "price": "abc"})

    @pytest.mark.unit
    def test_non_integer_quantity_is_rejected(self) -> None:
        with pytest.raises(ValidationError, match="non-integer quantity"):
            normalize_line_item({"name": "Pack", "price": 100, "quantity": "two"})

    @pytest.mark.unit
    def test_none_gives_empty_list(self) -> None:
        assert normalize_line_items(None) == []

    @pytest.mark.unit
    def test_record_form_is_json_safe(self) -> None:
        item = LineItem(name="Pack", unit_price=Decimal("99.90"), quantity=2)

        assert item.to_record() == {"name": "Pack", "unit_price": "99.90", "quantity": 2}
        assert item.to_gateway() == {"nom": "Pack", "montant": 99, "quantite": 2}


class TestCreateBody:
    """Test suite for the create-payment request body."""

    @pytest.mark.unit
    def test_body_shape(self) -> None:
        request = PaymentRequest(
            amount=Decimal("5000"),
            line_items=[LineItem(name="Abonnement", unit_price=Decimal("5000"))],
            customer_name="Awa Kone",
            customer_phone="0700000000",
            user_id="42",
            order_id="1001",
        )

        body = build_create_body(
            request,
            default_return_url="https://shop.test/return",
            default_webhook_url="https://shop.test/webhook",
        )

        assert body == {
            "totalPrice": "5000",
            "article": [{"nom": "Abonnement", "montant": 5000, "quantite": 1}],
            "personal_Info": [{"userId": "42", "orderId": "1001"}],
            "numeroSend": "0700000000",
            "nomclient": "Awa Kone",
            "return_url": "https://shop.test/return",
            "webhook_url": "https://shop.test/webhook",
        }

    @pytest.mark.unit
    def test_request_urls_override_defaults(self) -> None:
        request = PaymentRequest(
            amount=Decimal("100"),
            line_items=[LineItem(name="A", unit_price=Decimal("100"))],
            customer_name="Awa",
            return_url="https://other.test/return",
        )

        body = build_create_body(request, default_return_url="https://shop.test/return")

        assert body["return_url"] == "https://other.test/return"
        assert body["numeroSend"] == ""
        assert body["webhook_url"] is None


class TestGatewayResponses:
    """Test suite for gateway response parsing."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "body, expected",
        [
            ({"statut": True}, True),
            ({"status": True}, True),
            ({"statut": "true"}, True),
            ({"statut": False}, False),
            ({"status": "false"}, False),
            ({}, False),
        ],
    )
    def test_response_flag(self, body: dict, expected: bool) -> None:
        assert response_flag(body) is expected

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "statut, kind",
        [
            ("paid", EventKind.SUCCESS),
            ("pending", EventKind.PENDING),
            ("failure", EventKind.FAILURE),
            ("failed", EventKind.FAILURE),
            ("no paid", EventKind.FAILURE),
            ("cancelled", EventKind.CANCELLED),
            ("canceled", EventKind.CANCELLED),
            ("refunded", EventKind.UNKNOWN),
        ],
    )
    def test_check_status_mapping(self, statut: str, kind: EventKind) -> None:
        result_kind, _, _ = normalize_check_response({"statut": True, "data": {"statut": statut}})

        assert result_kind == kind

    @pytest.mark.unit
    def test_check_response_success_fields(self) -> None:
        body = {
            "statut": True,
            "data": {
                "statut": "paid",
                "numeroTransaction": "TRX1",
                "moyen": "wave",
                "frais": "250",
                "Montant": 5000,
            },
        }

        kind, payload, raw = normalize_check_response(body)

        assert kind == EventKind.SUCCESS
        assert payload == {"transaction_ref": "TRX1", "method": "wave", "fee": Decimal("250")}
        assert raw["Montant"] == 5000

    @pytest.mark.unit
    def test_check_response_rejected_flag(self) -> None:
        with pytest.raises(GatewayError, match="Status check rejected"):
            normalize_check_response({"statut": False, "message": "token invalide"})

    @pytest.mark.unit
    def test_check_response_without_data(self) -> None:
        with pytest.raises(GatewayError, match="no data object"):
            normalize_check_response({"statut": True})

    @pytest.mark.unit
    def test_check_response_with_malformed_fee(self) -> None:
        with pytest.raises(GatewayError, match="Malformed status payload"):
            normalize_check_response({"statut": True, "data": {"statut": "paid", "frais": "x"}})

    @pytest.mark.unit
    def test_check_response_with_negative_fee(self) -> None:
        with pytest.raises(GatewayError, match="must not be negative"):
            normalize_check_response({"statut": True, "data": {"statut": "paid", "frais": -5}})
