import datetime

import pytest

from receipt_pipeline.parser import (
    AmountMatch,
    ItemMatch,
    LineClassifier,
    LineKind,
    ParserConfig,
)

TODAY = datetime.date(2024, 6, 1)


@pytest.fixture
def classifier():
    return LineClassifier(ParserConfig())


@pytest.mark.parametrize(
    "text",
    ["", "   ", "Thank you for shopping!", "Cashier: Maria", "VISA ****1234", "-----", "14:32", "Items sold: 3"],
)
def test_noise_lines(classifier, text):
    assert classifier.classify(text, 4).kind == LineKind.NOISE


def test_merchant_near_the_top(classifier):
    result = classifier.classify("GROCERY STORE", 0, next_text="Apples 2.99", merchant_position=0)

    assert result.kind == LineKind.MERCHANT
    assert result.payload == "GROCERY STORE"


def test_merchant_check_only_when_enabled(classifier):
    result = classifier.classify("GROCERY STORE", 0, next_text="Apples 2.99")

    assert result.kind == LineKind.UNCLASSIFIED


def test_low_confidence_line_is_not_a_merchant(classifier):
    result = classifier.classify("GROCERY STORE", 0, merchant_position=0, confidence=0.3)

    assert result.kind != LineKind.MERCHANT


def test_merchant_score_penalizes_digits_and_position(classifier):
    top = classifier.score_merchant("CORNER MARKET", 0)
    lower = classifier.score_merchant("CORNER MARKET", 4)
    with_digits = classifier.score_merchant("CORNER MARKET 42", 0)

    assert top > lower
    assert top > with_digits
    assert classifier.score_merchant("RECEIPT", 0) is None
    assert classifier.score_merchant("Organic Milk", 0, next_text="4.99") is None


def test_date_line(classifier):
    result = classifier.classify("Date: 01/15/2024", 2, today=TODAY)

    assert result.kind == LineKind.DATE
    assert result.payload == datetime.date(2024, 1, 15)


@pytest.mark.parametrize(
    "text, label, amount",
    [
        ("Subtotal 4.48", "subtotal", 4.48),
        ("Sub-Total: $4.48", "subtotal", 4.48),
        ("Sales Tax 0.36", "tax", 0.36),
        ("Total 4.84", "total", 4.84),
        ("GRAND TOTAL $ 4.84", "total", 4.84),
        ("Amount Due 4.84", "amount_due", 4.84),
        ("Balance Due 4,84", "balance_due", 4.84),
    ],
)
def test_amount_labels(classifier, text, label, amount):
    result = classifier.classify(text, 5)

    assert result.kind == LineKind.TOTAL
    assert result.payload == AmountMatch(label=label, amount=amount)
    assert not result.consumes_next


def test_label_only_line_takes_the_next_price(classifier):
    result = classifier.classify("TOTAL", 5, next_text="$12.50")

    assert result.kind == LineKind.TOTAL
    assert result.payload.amount == 12.5
    assert result.consumes_next


def test_item_with_price(classifier):
    result = classifier.classify("Apples 2.99", 1)

    assert result.kind == LineKind.ITEM
    assert result.payload == ItemMatch(name="Apples", price=2.99, quantity=1)


@pytest.mark.parametrize(
    "text, name, quantity, price",
    [
        ("3 x Apples 5.97", "Apples", 3, 5.97),
        ("2X Yogurt 1.98", "Yogurt", 2, 1.98),
        ("Bananas 4 @ 0.25 1.00", "Bananas", 4, 1.0),
        ("Eggs qty: 2 6.50", "Eggs", 2, 6.5),
        ("MILK 2% 3.49 F", "MILK 2%", 1, 3.49),
    ],
)
def test_item_quantity_and_name_cleanup(classifier, text, name, quantity, price):
    payload = classifier.classify(text, 1).payload

    assert payload == ItemMatch(name=name, price=price, quantity=quantity)


def test_multi_line_item(classifier):
    result = classifier.classify("Organic Whole Milk", 1, next_text="4.99")

    assert result.kind == LineKind.ITEM
    assert result.payload == ItemMatch(name="Organic Whole Milk", price=4.99, quantity=1)
    assert result.consumes_next


def test_price_outside_sanity_bound_is_not_an_item(classifier):
    assert classifier.classify("Television 12000.00", 1).kind == LineKind.UNCLASSIFIED


def test_name_without_letters_is_not_an_item(classifier):
    assert classifier.classify("12 3.50", 1).kind == LineKind.UNCLASSIFIED


def test_is_price_only(classifier):
    assert classifier.is_price_only("$ 2.99 F")
    assert classifier.is_price_only("4.99")
    assert not classifier.is_price_only("Apples 2.99")
    assert not classifier.is_price_only("1.00 2.00")
    assert not classifier.is_price_only(None)
