import pytest

from app.services.amount_in_words import MAX_AMOUNT, rupees_in_words, to_words


@pytest.mark.parametrize(
    "amount,words",
    [
        (0, "Zero"),
        (7, "Seven"),
        (10, "Ten"),
        (19, "Nineteen"),
        (20, "Twenty"),
        (45, "Forty Five"),
        (100, "One Hundred"),
        (212, "Two Hundred Twelve"),
        (1500, "One Thousand Five Hundred"),
        (10001, "Ten Thousand One"),
        (100000, "One Lakh"),
        (150000, "One Lakh Fifty Thousand"),
        (2500000, "Twenty Five Lakh"),
        (10000000, "One Crore"),
        (123456789, "Twelve Crore Thirty Four Lakh Fifty Six Thousand Seven Hundred Eighty Nine"),
    ],
)
def test_indian_grouping(amount, words):
    assert to_words(amount) == words


def test_largest_supported_amount():
    assert to_words(MAX_AMOUNT) == (
        "Ninety Nine Thousand Nine Hundred Ninety Nine Crore "
        "Ninety Nine Lakh Ninety Nine Thousand Nine Hundred Ninety Nine"
    )


def test_crore_count_above_hundred():
    assert to_words(5_00_00_00_000) == "Five Hundred Crore"


@pytest.mark.parametrize("bad", [-1, MAX_AMOUNT + 1, 12.5, "100", True])
def test_rejects_unsupported_input(bad):
    with pytest.raises(ValueError):
        to_words(bad)


def test_invoice_wording():
    assert rupees_in_words(212) == "Two Hundred Twelve Rupees Only"
