"""
Prime field helpers for the Pallas base field.

Field elements are plain Python ints in [0, PRIME). Every module that builds
census leaves, witnesses or relation cells goes through these helpers so the
range checks live in one place.
"""

import secrets
from typing import Any

# Pallas base field modulus (the field Poseidon P128Pow5T3 is defined over)
PRIME = 0x40000000000000000000000000000000224698fc094cf91b992d30ed00000001
MODULUS_BITS = PRIME.bit_length()  # 255

ZERO = 0


def is_field_element(value: Any) -> bool:
    """True for ints already reduced into [0, PRIME)"""
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value < PRIME


def check_field_element(value: Any, name: str = "value") -> int:
    """Return value unchanged, or raise ValueError if it is not a field element"""
    if not is_field_element(value):
        raise ValueError(f"{name} {value!r} outside field bounds")
    return value


def field_add(a: int, b: int) -> int:
    return (a + b) % PRIME


def field_sub(a: int, b: int) -> int:
    return (a - b) % PRIME


def field_mul(a: int, b: int) -> int:
    return (a * b) % PRIME


def field_inv(a: int) -> int:
    """Multiplicative inverse via Fermat's little theorem"""
    if a % PRIME == 0:
        raise ZeroDivisionError("zero has no inverse in Fp")
    return pow(a, PRIME - 2, PRIME)


def random_field_element() -> int:
    """Uniformly random field element from the OS CSPRNG"""
    return secrets.randbelow(PRIME)
