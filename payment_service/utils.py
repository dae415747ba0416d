import random
import string
import time

CURRENCY_SYMBOLS = {
    "NGN": "₦",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
}

_BASE36 = string.digits + string.ascii_uppercase


def format_currency(amount: int, currency: str = "NGN") -> str:
    """Render an amount in minor units, e.g. 500000 NGN -> '₦5,000.00'."""
    code = currency.upper()
    symbol = CURRENCY_SYMBOLS.get(code, f"{code} ")
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(amount) / 100:,.2f}"


def to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_order_number() -> str:
    timestamp = to_base36(int(time.time() * 1000))
    suffix = "".join(random.choices(_BASE36, k=4))
    return f"FBG-{timestamp}{suffix}"


def generate_payment_reference(order_number: str) -> str:
    return f"PAY-{order_number}-{int(time.time() * 1000)}"
