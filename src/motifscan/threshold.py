"""
Threshold Resolver
==================

Derives the integer score threshold that meets a target p-value from a
:class:`~motifscan.distribution.NullDistribution`, converts observed scores
back to p-values and assembles the per-motif diagnostic summary.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from typing import List, Tuple

import numpy as np

from motifscan.config import PWM_INT_MULTIPLIER
from motifscan.distribution import NullDistribution
from motifscan.models import ScoreMatrix

# Threshold of a motif whose best score cannot reach the target p-value.
UNSCOREABLE = sys.maxsize


@dataclass(frozen=True)
class Threshold:
    """Inclusive integer score bound for one motif.

    Attributes
    ----------
    score : int
        Minimal passing score, or ``UNSCOREABLE``.
    pvalue : float
        Target p-value the bound was derived from.
    min_pvalue : float
        P-value of the motif's maximal score.
    """

    score: int
    pvalue: float
    min_pvalue: float

    @property
    def scoreable(self) -> bool:
        return self.score != UNSCOREABLE


def _check_resident(dist: NullDistribution) -> np.ndarray:
    if dist.cdf is None:
        raise RuntimeError(f"Null distribution for [{dist.name}] has already been released")
    return dist.cdf


def score_to_pvalue(dist: NullDistribution, score: int) -> float:
    """Return P(window score >= ``score``)."""
    cdf = _check_resident(dist)
    i = dist.index_of(score)
    if i < 0:
        return 1.0
    if i >= dist.size:
        return 0.0
    return float(cdf[i])


def scores_to_pvalues(dist: NullDistribution, scores: np.ndarray) -> np.ndarray:
    """Vectorized :func:`score_to_pvalue` for an array of integer scores."""
    cdf = _check_resident(dist)
    idx = np.asarray(scores, dtype=np.int64) - dist.offset
    pvalues = cdf[np.clip(idx, 0, dist.size - 1)]
    pvalues = np.where(idx < 0, 1.0, pvalues)
    return np.where(idx >= dist.size, 0.0, pvalues)


def resolve_threshold(matrix: ScoreMatrix, dist: NullDistribution, pvalue: float) -> Threshold:
    """Find the smallest score whose right-tail probability is below ``pvalue``.

    A p-value of 1 or more accepts every score. When even the maximal score
    of the matrix is not significant, the threshold is ``UNSCOREABLE`` and
    the motif yields no matches.
    """
    logger = logging.getLogger(__name__)
    cdf = _check_resident(dist)

    if pvalue >= 1.0:
        index = 0
    else:
        below = cdf < pvalue
        index = int(np.argmax(below)) if below.any() else dist.size

    min_pvalue = score_to_pvalue(dist, matrix.max_score)
    score = index + dist.offset
    if score > matrix.max_score:
        logger.debug(
            f"Min possible pvalue for [{matrix.name}] is greater than the threshold, "
            f"motif will not be scored ({min_pvalue:g}>{pvalue:g})"
        )
        return Threshold(UNSCOREABLE, pvalue, min_pvalue)

    return Threshold(int(score), pvalue, min_pvalue)


@dataclass(frozen=True)
class MotifSummary:
    """Diagnostic description of one prepared motif."""

    name: str
    line_num: int
    width: int
    min_score: int
    max_score: int
    threshold: Threshold
    scores: np.ndarray
    points: List[Tuple[int, float]]

    @property
    def threshold_value(self):
        """Threshold in real units, or ``None`` when unscoreable."""
        if not self.threshold.scoreable:
            return None
        return self.threshold.score / PWM_INT_MULTIPLIER


def _half(score: int) -> int:
    """Halve an integer score, truncating toward zero."""
    return int(score / 2)


def summarize_motif(matrix: ScoreMatrix, dist: NullDistribution, threshold: Threshold) -> MotifSummary:
    """Collect dimensions, bounds and five score -> p-value points."""
    checkpoints = [matrix.min_score, _half(matrix.min_score), 0, _half(matrix.max_score), matrix.max_score]
    points = [(score, score_to_pvalue(dist, score)) for score in checkpoints]
    return MotifSummary(
        name=matrix.name,
        line_num=matrix.line_num,
        width=matrix.width,
        min_score=matrix.min_score,
        max_score=matrix.max_score,
        threshold=threshold,
        scores=matrix.real_scores("+"),
        points=points,
    )
