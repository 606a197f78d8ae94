"""
Configuration values shared by every stage of the scanning engine.

Nothing in this module is global mutable state: the background distribution
and the scan parameters live in frozen dataclasses that are created once and
passed explicitly to the matrix builder, the null distribution engine, the
threshold resolver and the scanner.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

import numpy as np

# Smallest allowed background probability. Keeps the integer score range, and
# therefore the null distribution array, tractable:
#     max cell score: 1000*log2(1/0.001)     ->   9,965
#     min cell score: 1000*log2(0.001/0.997) ->  -9,961
#     array size:     (9965+9961)*50         -> 996,300
MIN_BKG_VALUE = 0.001
MAX_CDF_SIZE = 2097152

# Log-odds scores are stored as fixed-point integers (score * 1000).
PWM_INT_MULTIPLIER = 1000.0

# 50 * AMBIGUITY_SCORE stays far above the int64 (and int32) lower bound, and
# 50 positions of maximal cell score can never lift a window back above zero.
MAX_MOTIF_WIDTH = 50
AMBIGUITY_SCORE = -10000000

MAX_NAME_SIZE = 256

DEFAULT_PVALUE = 0.00001
DEFAULT_NSITES = 1000
DEFAULT_PSEUDOCOUNT = 1
DEFAULT_CHUNK_SIZE = 1 << 20

SYMBOLS = "ACGT"


@dataclass(frozen=True)
class Background:
    """Background symbol probabilities, in A, C, G, T order.

    Attributes
    ----------
    a, c, g, t : float
        Probabilities, each in (0, 1] and summing to 1.
    """

    a: float = 0.25
    c: float = 0.25
    g: float = 0.25
    t: float = 0.25

    def as_array(self) -> np.ndarray:
        """Return the probabilities as a float64 array of length 4."""
        return np.array([self.a, self.c, self.g, self.t], dtype=np.float64)

    def __iter__(self):
        return iter((self.a, self.c, self.g, self.t))


def uniform_background() -> Background:
    """Return the uniform background used when nothing else is given."""
    return Background()


def make_background(values: Iterable[float]) -> Background:
    """Clamp and renormalize raw background values.

    Each value smaller than ``MIN_BKG_VALUE`` is raised to it and the four
    values are then divided by their sum.
    """
    logger = logging.getLogger(__name__)
    raw = np.asarray(list(values), dtype=np.float64)
    if raw.size != 4:
        raise ValueError(f"Expected 4 background values (A,C,G,T), got {raw.size}")
    if not np.all(np.isfinite(raw)) or np.any(raw < 0):
        raise ValueError(f"Background values must be finite and non-negative, got {raw.tolist()}")

    if raw.min() < MIN_BKG_VALUE:
        logger.info(f"Background values smaller than allowed min, adjusting ({raw.min():.2g}<{MIN_BKG_VALUE:.2g})")
        raw = np.maximum(raw, MIN_BKG_VALUE)

    total = raw.sum()
    if abs(total - 1.0) > 0.001:
        logger.info(f"Background values don't add up to 1.0, adjusting (sum={total:.3g})")
    raw = raw / total

    return Background(*(float(x) for x in raw))


@dataclass(frozen=True)
class ScanConfig:
    """Immutable parameters for one scanning run.

    Attributes
    ----------
    pvalue : float
        Target p-value; windows whose score reaches the derived integer
        threshold are reported.
    nsites : int
        Expected site count used when turning probabilities into scores.
    pseudocount : int
        Pseudocount added during score calculation.
    scan_rc : bool
        Whether the reverse strand is scanned as well.
    background : Background or None
        User supplied background. Takes precedence over a background found
        in a motif file; ``None`` means "use the file's, else uniform".
    max_width : int
        Widest accepted motif.
    max_cdf_size : int
        Largest null distribution array that may be allocated.
    chunk_size : int
        Number of windows scored per kernel call.
    """

    pvalue: float = DEFAULT_PVALUE
    nsites: int = DEFAULT_NSITES
    pseudocount: int = DEFAULT_PSEUDOCOUNT
    scan_rc: bool = True
    background: Optional[Background] = None
    max_width: int = MAX_MOTIF_WIDTH
    max_cdf_size: int = MAX_CDF_SIZE
    chunk_size: int = DEFAULT_CHUNK_SIZE

    def resolve_background(self, motif_background: Optional[Background] = None) -> Background:
        """Pick the background for one motif: user, then file, then uniform."""
        if self.background is not None:
            return self.background
        if motif_background is not None:
            return motif_background
        return uniform_background()


def create_scan_config(
    pvalue: float = DEFAULT_PVALUE,
    nsites: int = DEFAULT_NSITES,
    pseudocount: int = DEFAULT_PSEUDOCOUNT,
    scan_rc: bool = True,
    background: Optional[Iterable[float]] = None,
    max_width: int = MAX_MOTIF_WIDTH,
    max_cdf_size: int = MAX_CDF_SIZE,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> ScanConfig:
    """Build a validated :class:`ScanConfig`."""

    if not pvalue > 0:
        raise ValueError(f"pvalue must be positive, got {pvalue}")
    if int(nsites) != nsites or nsites <= 0:
        raise ValueError(f"nsites must be a positive integer, got {nsites}")
    if int(pseudocount) != pseudocount or pseudocount <= 0:
        raise ValueError(f"pseudocount must be a positive integer, got {pseudocount}")
    if max_width <= 0:
        raise ValueError(f"max_width must be positive, got {max_width}")
    if max_cdf_size <= 0:
        raise ValueError(f"max_cdf_size must be positive, got {max_cdf_size}")
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")

    if background is not None and not isinstance(background, Background):
        background = make_background(background)

    return ScanConfig(
        pvalue=float(pvalue),
        nsites=int(nsites),
        pseudocount=int(pseudocount),
        scan_rc=bool(scan_rc),
        background=background,
        max_width=int(max_width),
        max_cdf_size=int(max_cdf_size),
        chunk_size=int(chunk_size),
    )
