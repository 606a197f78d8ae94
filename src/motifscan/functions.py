import logging

import numpy as np
from numba import njit

from motifscan.config import PWM_INT_MULTIPLIER
from motifscan.errors import MotifError


def calc_scores(probs: np.ndarray, background: np.ndarray, nsites: int, pseudocount: int) -> np.ndarray:
    """Convert symbol probabilities to fixed-point log-odds scores.

    ``probs`` has shape (width, 4); ``background`` has length 4. The result is
    an int64 array of the same shape as ``probs``.
    """
    adjusted = probs * nsites + pseudocount / 4.0
    adjusted = adjusted / (nsites + pseudocount)
    return np.floor(np.log2(adjusted / background) * PWM_INT_MULTIPLIER).astype(np.int64)


def normalize_probs(probs: np.ndarray, name: str) -> np.ndarray:
    """Check one position's probabilities, rescaling small deviations from 1."""
    total = float(np.sum(probs))
    if abs(total - 1.0) > 0.1:
        raise MotifError(f"Position for [{name}] does not add up to 1 (sum={total:.3g})")
    if abs(total - 1.0) > 0.02:
        logger = logging.getLogger(__name__)
        logger.debug(f"Position for [{name}] does not add up to 1, adjusting (sum={total:.3g})")
        return probs / total
    return probs


def pcm_to_ppm(pcm: np.ndarray, name: str) -> np.ndarray:
    """Convert a count matrix of shape (width, 4) to probabilities.

    Column totals may differ from the first column's total by at most one;
    larger differences mean the counts are inconsistent.
    """
    totals = pcm.sum(axis=1)
    if totals.size == 0:
        raise MotifError(f"Motif [{name}] is empty")
    if np.any(totals <= 0):
        raise MotifError(f"Motif [{name}] has a position without counts")

    diffs = np.abs(totals - totals[0])
    if np.any(diffs > 1):
        raise MotifError(f"Column sums for motif [{name}] are not equal")
    if np.any(diffs == 1):
        logger = logging.getLogger(__name__)
        logger.debug(f"Found difference of 1 between column sums for motif [{name}]")

    return pcm / totals[:, None]


def revcomp_matrix(pwm: np.ndarray) -> np.ndarray:
    """Mirror a (5, width) score matrix and swap A<->T, C<->G.

    The ambiguity row (index 4) keeps its place.
    """
    rc_rows = np.array([3, 2, 1, 0, 4], dtype=np.int64)
    return np.ascontiguousarray(pwm[rc_rows, ::-1])


@njit(cache=True)
def _fill_pdf_jit(pwm, bkg, min_cell, cell_range):
    """Exact score PDF of a matrix under an independent background model.

    Index ``k`` of the result holds P(total score == k + width * min_cell).
    """
    width = pwm.shape[1]
    size = width * cell_range + 1
    pdf = np.zeros(size, dtype=np.float64)
    prev = np.zeros(size, dtype=np.float64)
    pdf[0] = 1.0

    for pos in range(width):
        max_step = pos * cell_range
        for k in range(max_step + 1):
            prev[k] = pdf[k]
        for k in range(max_step + cell_range + 1):
            pdf[k] = 0.0
        for let in range(4):
            shift = pwm[let, pos] - min_cell
            p = bkg[let]
            for k in range(max_step + 1):
                if prev[k] != 0.0:
                    pdf[k + shift] += prev[k] * p

    return pdf


def fill_pdf(pwm: np.ndarray, bkg: np.ndarray, min_cell: int, cell_range: int) -> np.ndarray:
    """Run the PDF convolution kernel."""
    return _fill_pdf_jit(
        np.ascontiguousarray(pwm, dtype=np.int64), np.ascontiguousarray(bkg, dtype=np.float64), min_cell, cell_range
    )


def pdf_to_cdf(pdf: np.ndarray) -> np.ndarray:
    """Right-tail cumulative sum: ``cdf[i] = pdf[i] + cdf[i + 1]``."""
    return np.cumsum(pdf[::-1])[::-1].copy()


@njit(cache=True)
def score_window(codes, pwm, offset):
    """Score a single window starting at ``offset``.

    Returns the summed score and whether every symbol was a real base.
    """
    score = 0
    valid = True
    for j in range(pwm.shape[1]):
        code = codes[offset + j]
        if code > 3:
            valid = False
        score += pwm[code, j]
    return score, valid


@njit(cache=True)
def _window_hits_jit(codes, pwm, threshold, start, stop, hit_pos, hit_score):
    """Collect windows in ``[start, stop)`` whose score reaches ``threshold``."""
    n_hits = 0
    for i in range(start, stop):
        score, valid = score_window(codes, pwm, i)
        if valid and score >= threshold:
            hit_pos[n_hits] = i
            hit_score[n_hits] = score
            n_hits += 1
    return n_hits


def window_hits(codes: np.ndarray, pwm: np.ndarray, threshold: int, start: int, stop: int):
    """Return positions and integer scores of passing windows in ``[start, stop)``."""
    n = max(stop - start, 0)
    hit_pos = np.empty(n, dtype=np.int64)
    hit_score = np.empty(n, dtype=np.int64)
    if n == 0:
        return hit_pos, hit_score
    n_hits = _window_hits_jit(codes, pwm, np.int64(threshold), start, stop, hit_pos, hit_score)
    return hit_pos[:n_hits], hit_score[:n_hits]
