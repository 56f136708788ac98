"""Unsigned 64-bit arithmetic. Results outside [0, 2**64) fail the instruction."""

from .errors import ArithmeticOverflow

U64_MAX = 2 ** 64 - 1


def check_u64(value: int, field: str = "value") -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ArithmeticOverflow(f"{field} must be an integer, got {value!r}")
    if value < 0 or value > U64_MAX:
        raise ArithmeticOverflow(f"{field} out of u64 range: {value}")
    return value


def checked_add(a: int, b: int) -> int:
    result = a + b
    if result > U64_MAX:
        raise ArithmeticOverflow(f"{a} + {b}")
    return result


def checked_sub(a: int, b: int) -> int:
    if b > a:
        raise ArithmeticOverflow(f"{a} - {b}")
    return a - b


def saturating_sub(a: int, b: int) -> int:
    return a - b if a > b else 0


def mul_div_floor(a: int, b: int, denominator: int) -> int:
    # Python ints are unbounded, so the 128-bit intermediate never wraps.
    if denominator == 0:
        raise ArithmeticOverflow("division by zero")
    return check_u64((a * b) // denominator, "mul_div")
