"""
Null Distribution Engine
========================

Exact distribution of window scores for a completed matrix when every
position is drawn independently from the background. The per-position score
distributions are convolved one position at a time (dynamic programming over
shifted integer scores), which keeps the computation polynomial in the motif
width and exact up to floating point rounding.

The resulting right-tail CDF can reach a few million entries, so it is held
by a :class:`NullDistribution` whose array is released as soon as a motif has
been scanned; :func:`null_distribution` scopes that lifetime.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

import numpy as np

from motifscan.config import MAX_CDF_SIZE, MIN_BKG_VALUE, Background
from motifscan.errors import DistributionSizeError
from motifscan.functions import fill_pdf, pdf_to_cdf
from motifscan.models import ScoreMatrix

PDF_TOLERANCE = 0.0001


class NullDistribution:
    """Right-tail CDF of a matrix's window score.

    ``cdf[i]`` is P(score >= i + offset), where ``offset`` is
    ``width * min_cell`` of the matrix.
    """

    def __init__(self, name: str, cdf: np.ndarray, offset: int):
        self.name = name
        self.cdf: Optional[np.ndarray] = cdf
        self.offset = offset
        self.size = int(cdf.size)

    @property
    def released(self) -> bool:
        """Return True once the CDF array has been dropped."""
        return self.cdf is None

    @property
    def lower_bound(self) -> int:
        """Smallest score covered by the array."""
        return self.offset

    @property
    def upper_bound(self) -> int:
        """Largest score covered by the array."""
        return self.offset + self.size - 1

    def index_of(self, score: int) -> int:
        """Return the CDF index of an integer score."""
        return int(score) - self.offset

    def release(self) -> None:
        """Drop the CDF array."""
        self.cdf = None

    def __repr__(self):
        state = "released" if self.released else f"size={self.size}"
        return f"NullDistribution({self.name!r}, offset={self.offset}, {state})"


def distribution_size(matrix: ScoreMatrix) -> int:
    """Return the number of entries the distribution of ``matrix`` needs."""
    return matrix.width * matrix.cell_range + 1


def compute_pdf(matrix: ScoreMatrix, background: Background, max_cdf_size: int = MAX_CDF_SIZE) -> np.ndarray:
    """Compute the normalized score PDF of ``matrix``.

    Raises
    ------
    DistributionSizeError
        If the array would be larger than ``max_cdf_size``.
    """
    logger = logging.getLogger(__name__)

    size = distribution_size(matrix)
    if size > max_cdf_size:
        raise DistributionSizeError(
            f"Requested CDF size for [{matrix.name}] is too large ({size:,}>{max_cdf_size:,}). "
            f"Make sure no background values are below {MIN_BKG_VALUE}."
        )

    logger.debug(f"Generating CDF for [{matrix.name}] (n={size:,})")
    pdf = fill_pdf(matrix.pwm, background.as_array(), matrix.min_cell, matrix.cell_range)

    total = float(pdf.sum())
    if abs(total - 1.0) > PDF_TOLERANCE:
        logger.debug(f"sum(PDF) != 1.0 for [{matrix.name}] (sum={total:.2g}), renormalizing")
        pdf /= total

    return pdf


def compute_null_distribution(
    matrix: ScoreMatrix, background: Optional[Background] = None, max_cdf_size: int = MAX_CDF_SIZE
) -> NullDistribution:
    """Compute the right-tail CDF for ``matrix``.

    ``background`` defaults to the background the matrix was built with.
    """
    if background is None:
        background = matrix.background
    pdf = compute_pdf(matrix, background, max_cdf_size)
    return NullDistribution(matrix.name, pdf_to_cdf(pdf), matrix.width * matrix.min_cell)


@contextmanager
def null_distribution(
    matrix: ScoreMatrix, background: Optional[Background] = None, max_cdf_size: int = MAX_CDF_SIZE
) -> Iterator[NullDistribution]:
    """Context manager yielding a distribution that is released on exit."""
    dist = compute_null_distribution(matrix, background, max_cdf_size)
    try:
        yield dist
    finally:
        dist.release()
