"""Rupee amounts in words with Indian grouping (crore, lakh, thousand, hundred)."""

ONES = [
    "", "One", "Two", "Three", "Four", "Five", "Six", "Seven", "Eight", "Nine",
]
TEENS = [
    "Ten", "Eleven", "Twelve", "Thirteen", "Fourteen", "Fifteen",
    "Sixteen", "Seventeen", "Eighteen", "Nineteen",
]
TENS = [
    "", "", "Twenty", "Thirty", "Forty", "Fifty", "Sixty", "Seventy", "Eighty", "Ninety",
]

CRORE = 10_000_000
LAKH = 100_000
THOUSAND = 1_000
HUNDRED = 100

# Largest supported amount. The crore count itself is spelled with the same
# grouping, so 99,999 crore reads "Ninety Nine Thousand ... Crore".
MAX_AMOUNT = 999_999_999_999


def _below_hundred(n: int) -> str:
    if n < 10:
        return ONES[n]
    if n < 20:
        return TEENS[n - 10]
    words = TENS[n // 10]
    if n % 10:
        words += " " + ONES[n % 10]
    return words


def _group_words(n: int) -> str:
    words = ""
    for size, name in ((CRORE, "Crore"), (LAKH, "Lakh"), (THOUSAND, "Thousand"), (HUNDRED, "Hundred")):
        count, n = divmod(n, size)
        if count:
            words += f"{_group_words(count)} {name} "
    if n:
        words += _below_hundred(n)
    return words.strip()


def to_words(amount: int) -> str:
    """
    Spell a non-negative integer in English words.

    >>> to_words(0)
    'Zero'
    >>> to_words(150000)
    'One Lakh Fifty Thousand'

    Raises:
        ValueError: negative, non-integer, or above MAX_AMOUNT
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"amount must be an integer, got {type(amount).__name__}")
    if amount < 0:
        raise ValueError("amount must not be negative")
    if amount > MAX_AMOUNT:
        raise ValueError(f"amount above {MAX_AMOUNT} is not supported")
    if amount == 0:
        return "Zero"
    return _group_words(amount)


def rupees_in_words(amount: int) -> str:
    """Legal amount-in-words line printed on the invoice."""
    return f"{to_words(amount)} Rupees Only"
