"""
Poseidon two-to-one compression over the Pallas base field.

Parameters follow P128Pow5T3: width 3, rate 2, 8 full rounds, 56 partial
rounds and an x^5 S-box. Round constants come from the Grain LFSR described
in the Poseidon paper (appendix F). The same LFSR stream then yields the
2 * WIDTH distinct values x_i, y_j of the Cauchy MDS matrix 1 / (x_i + y_j);
those are reduced mod p rather than rejection-sampled.

Hashing two elements uses the constant-length sponge domain: the capacity
element starts at L * 2^64 with L = 2, both inputs are absorbed into the rate
and the first state word is squeezed after one permutation.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional, Tuple

from .field import PRIME, MODULUS_BITS, field_add, field_inv, field_mul

logger = logging.getLogger(__name__)

# ============================================================================
# PARAMETER GENERATION
# ============================================================================


def _to_bits(value: int, width: int) -> List[int]:
    return [int(b) for b in bin(value)[2:].zfill(width)]


class GrainLFSR:
    """80-bit Grain LFSR in self-shrinking mode"""

    FIELD_PRIME = 1
    SBOX_POW = 0
    WARMUP_CLOCKS = 160

    def __init__(self, field_bits: int, width: int, full_rounds: int, partial_rounds: int):
        state = []
        state += _to_bits(self.FIELD_PRIME, 2)
        state += _to_bits(self.SBOX_POW, 4)
        state += _to_bits(field_bits, 12)
        state += _to_bits(width, 12)
        state += _to_bits(full_rounds, 10)
        state += _to_bits(partial_rounds, 10)
        state += [1] * 30
        self._state = state
        self._field_bits = field_bits

        for _ in range(self.WARMUP_CLOCKS):
            self._clock()

    def _clock(self) -> int:
        s = self._state
        new_bit = s[62] ^ s[51] ^ s[38] ^ s[23] ^ s[13] ^ s[0]
        s.pop(0)
        s.append(new_bit)
        return new_bit

    def next_bit(self) -> int:
        # Bits are consumed in pairs; the second one is emitted only when the first is set
        while True:
            first = self._clock()
            second = self._clock()
            if first:
                return second

    def _next_bits_value(self) -> int:
        value = 0
        for _ in range(self._field_bits):
            value = (value << 1) | self.next_bit()
        return value

    def next_field_element(self, prime: int) -> int:
        """Sample field_bits bits big-endian, rejecting values >= prime"""
        while True:
            value = self._next_bits_value()
            if value < prime:
                return value

    def next_field_element_without_rejection(self, prime: int) -> int:
        """Sample field_bits bits big-endian and reduce mod prime"""
        return self._next_bits_value() % prime


@dataclass(frozen=True)
class PoseidonParams:
    """Fixed Poseidon instance: round constants and MDS matrix"""
    width: int
    full_rounds: int
    partial_rounds: int
    alpha: int
    round_constants: Tuple[Tuple[int, ...], ...]
    mds: Tuple[Tuple[int, ...], ...]

    @property
    def rate(self) -> int:
        return self.width - 1


def _generate_mds(grain: GrainLFSR, width: int) -> Tuple[Tuple[int, ...], ...]:
    """Cauchy matrix from the first usable draw of 2 * width LFSR values"""
    while True:
        values = [grain.next_field_element_without_rejection(PRIME) for _ in range(2 * width)]
        if len(set(values)) != len(values):
            continue

        xs, ys = values[:width], values[width:]
        if any(field_add(x, y) == 0 for x in xs for y in ys):
            continue

        return tuple(
            tuple(field_inv(field_add(x, y)) for y in ys)
            for x in xs
        )


def generate_params(width: int = 3, full_rounds: int = 8, partial_rounds: int = 56,
                    alpha: int = 5) -> PoseidonParams:
    """Derive round constants and the MDS matrix for a width/round configuration"""
    grain = GrainLFSR(MODULUS_BITS, width, full_rounds, partial_rounds)

    round_constants = tuple(
        tuple(grain.next_field_element(PRIME) for _ in range(width))
        for _ in range(full_rounds + partial_rounds)
    )

    mds = _generate_mds(grain, width)

    return PoseidonParams(
        width=width,
        full_rounds=full_rounds,
        partial_rounds=partial_rounds,
        alpha=alpha,
        round_constants=round_constants,
        mds=mds,
    )


@lru_cache(maxsize=None)
def p128_pow5_t3() -> PoseidonParams:
    """The P128Pow5T3 parameter set, generated once per process"""
    params = generate_params(width=3, full_rounds=8, partial_rounds=56, alpha=5)
    logger.debug(
        f"Generated P128Pow5T3 parameters: {len(params.round_constants)} rounds")
    return params


# ============================================================================
# PERMUTATION AND HASH
# ============================================================================


def _sbox(value: int, alpha: int) -> int:
    return pow(value, alpha, PRIME)


def _mix(state: List[int], mds: Tuple[Tuple[int, ...], ...]) -> List[int]:
    """Apply MDS matrix multiplication"""
    width = len(state)
    new_state = [0] * width
    for i in range(width):
        acc = 0
        for j in range(width):
            acc = field_add(acc, field_mul(mds[i][j], state[j]))
        new_state[i] = acc
    return new_state


def permute(state: List[int], params: PoseidonParams) -> List[int]:
    """Poseidon permutation: half full rounds, partial rounds, half full rounds"""
    if len(state) != params.width:
        raise ValueError(
            f"Poseidon state must have {params.width} words, got {len(state)}")

    state = list(state)
    half_full = params.full_rounds // 2
    first_partial = half_full
    last_partial = half_full + params.partial_rounds

    for rnd, constants in enumerate(params.round_constants):
        state = [field_add(word, c) for word, c in zip(state, constants)]
        if first_partial <= rnd < last_partial:
            state[0] = _sbox(state[0], params.alpha)
        else:
            state = [_sbox(word, params.alpha) for word in state]
        state = _mix(state, params.mds)

    return state


class PoseidonHash:
    """Poseidon P128Pow5T3 used as a two-to-one compression function"""

    INPUT_LENGTH = 2

    def __init__(self, params: Optional[PoseidonParams] = None):
        self.params = params or p128_pow5_t3()
        if self.params.rate != self.INPUT_LENGTH:
            raise ValueError(
                f"two-to-one hashing needs rate {self.INPUT_LENGTH}, got {self.params.rate}")
        self._capacity_element = self.INPUT_LENGTH << 64

    def hash(self, a: int, b: int) -> int:
        state = [a % PRIME, b % PRIME, self._capacity_element]
        return permute(state, self.params)[0]

    def __call__(self, a: int, b: int) -> int:
        return self.hash(a, b)

    def __repr__(self) -> str:
        return (f"PoseidonHash(width={self.params.width}, "
                f"full_rounds={self.params.full_rounds}, "
                f"partial_rounds={self.params.partial_rounds})")


@lru_cache(maxsize=None)
def default_hasher() -> PoseidonHash:
    """Shared P128Pow5T3 instance used wherever no hasher is injected"""
    return PoseidonHash()


def poseidon_hash(a: int, b: int) -> int:
    return default_hasher().hash(a, b)
