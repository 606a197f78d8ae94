"""
Score Matrix Builder
====================

Turns upstream motif records (probability or count matrices) into completed
integer log-odds score matrices.

Key Features:
- Immutable data containers using frozen dataclasses
- Fixed-point (x1000) integer scores so null distributions stay exact
- Ambiguity row per position that can never contribute positively
- Reverse-complement mirror derived once at build time
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from dataclasses import field as dc_field
from typing import Optional

import numpy as np

from motifscan.config import AMBIGUITY_SCORE, PWM_INT_MULTIPLIER, Background, ScanConfig
from motifscan.errors import MotifError
from motifscan.functions import calc_scores, normalize_probs, pcm_to_ppm, revcomp_matrix


@dataclass(frozen=True)
class MotifRecord:
    """Motif as produced by a format reader.

    Exactly one of ``probs`` and ``counts`` is set; both have shape
    (width, 4) in A, C, G, T column order.

    Attributes
    ----------
    name : str
        Motif name.
    line_num : int
        Line of the motif header in its source file.
    probs : np.ndarray or None
        Per-position symbol probabilities.
    counts : np.ndarray or None
        Per-position symbol counts.
    nsites : int or None
        Expected site count; ``None`` defers to the scan configuration.
    background : Background or None
        Background declared alongside the motif (MEME files).
    """

    name: str
    line_num: int = 0
    probs: Optional[np.ndarray] = dc_field(default=None, hash=False, compare=False)
    counts: Optional[np.ndarray] = dc_field(default=None, hash=False, compare=False)
    nsites: Optional[int] = None
    background: Optional[Background] = None

    @property
    def width(self) -> int:
        """Return the number of positions."""
        matrix = self.probs if self.probs is not None else self.counts
        return 0 if matrix is None else int(matrix.shape[0])


@dataclass(frozen=True)
class ScoreMatrix:
    """Completed integer score matrix.

    Attributes
    ----------
    name : str
        Motif name.
    line_num : int
        Source line of the motif header.
    pwm : np.ndarray
        Forward scores, int64 of shape (5, width); row 4 is the ambiguity row.
    pwm_rc : np.ndarray
        Reverse-complement scores, same layout.
    background : Background
        Background the scores were computed against.
    pos_min, pos_max : np.ndarray
        Per-position min/max over the four real symbols.
    min_score, max_score : int
        Smallest and largest achievable window score.
    min_cell, max_cell : int
        Smallest and largest single real-symbol score anywhere in the matrix.
    """

    name: str
    line_num: int
    pwm: np.ndarray = dc_field(hash=False, compare=False, repr=False)
    pwm_rc: np.ndarray = dc_field(hash=False, compare=False, repr=False)
    background: Background
    pos_min: np.ndarray = dc_field(hash=False, compare=False, repr=False)
    pos_max: np.ndarray = dc_field(hash=False, compare=False, repr=False)
    min_score: int
    max_score: int
    min_cell: int
    max_cell: int

    def __hash__(self):
        """Custom hash implementation excluding unhashable fields."""
        return hash((self.name, self.line_num, self.width))

    @property
    def width(self) -> int:
        """Return the number of positions."""
        return int(self.pwm.shape[1])

    @property
    def cell_range(self) -> int:
        """Return the uniform per-position score range used to size distributions."""
        return self.max_cell - self.min_cell

    def real_scores(self, strand: str = "+") -> np.ndarray:
        """Return the (width, 4) real-symbol scores rescaled to log2 units."""
        pwm = self.pwm if strand == "+" else self.pwm_rc
        return pwm[:4].T / PWM_INT_MULTIPLIER


def complete_matrix(name: str, line_num: int, scores: np.ndarray, background: Background) -> ScoreMatrix:
    """Add the ambiguity row, bounds and reverse complement to raw scores.

    ``scores`` is an int64 array of shape (width, 4).
    """
    width = scores.shape[0]
    pwm = np.empty((5, width), dtype=np.int64)
    pwm[:4] = scores.T
    pwm[4] = AMBIGUITY_SCORE

    pos_min = scores.min(axis=1)
    pos_max = scores.max(axis=1)

    return ScoreMatrix(
        name=name,
        line_num=line_num,
        pwm=pwm,
        pwm_rc=revcomp_matrix(pwm),
        background=background,
        pos_min=pos_min,
        pos_max=pos_max,
        min_score=int(pos_min.sum()),
        max_score=int(pos_max.sum()),
        min_cell=int(pos_min.min()),
        max_cell=int(pos_max.max()),
    )


def build_score_matrix(record: MotifRecord, config: ScanConfig, background: Optional[Background] = None) -> ScoreMatrix:
    """Build a completed :class:`ScoreMatrix` from a motif record.

    Parameters
    ----------
    record : MotifRecord
        Probability or count matrix.
    config : ScanConfig
        Provides pseudocount, default site count and the width limit.
    background : Background, optional
        Background to score against; defaults to
        ``config.resolve_background(record.background)``.

    Raises
    ------
    MotifError
        For empty or too wide motifs, malformed probabilities or
        inconsistent count columns.
    """
    logger = logging.getLogger(__name__)

    width = record.width
    if width == 0:
        raise MotifError(f"Motif [{record.name}] is empty")
    if width > config.max_width:
        raise MotifError(f"Motif [{record.name}] is too large ({width}>max={config.max_width})")

    if background is None:
        background = config.resolve_background(record.background)

    if record.probs is not None:
        probs = np.asarray(record.probs, dtype=np.float64)
        if probs.ndim != 2 or probs.shape[1] != 4:
            raise MotifError(f"Motif [{record.name}] must have 4 columns per position, got shape {probs.shape}")
        probs = np.vstack([normalize_probs(row, record.name) for row in probs])
    elif record.counts is not None:
        counts = np.asarray(record.counts, dtype=np.float64)
        if counts.ndim != 2 or counts.shape[1] != 4:
            raise MotifError(f"Motif [{record.name}] must have 4 rows of counts, got shape {counts.shape}")
        probs = pcm_to_ppm(counts, record.name)
    else:
        raise MotifError(f"Motif [{record.name}] has neither probabilities nor counts")

    nsites = record.nsites if record.nsites is not None else config.nsites
    scores = calc_scores(probs, background.as_array(), nsites, config.pseudocount)

    matrix = complete_matrix(record.name, record.line_num, scores, background)
    logger.debug(f"Built score matrix [{record.name}] (width={width}, min={matrix.min_score}, max={matrix.max_score})")
    return matrix


# IUPAC consensus letters -> A, C, G, T probabilities.
CONSENSUS_PROBS = {
    "A": (1.0, 0.0, 0.0, 0.0),
    "C": (0.0, 1.0, 0.0, 0.0),
    "G": (0.0, 0.0, 1.0, 0.0),
    "T": (0.0, 0.0, 0.0, 1.0),
    "U": (0.0, 0.0, 0.0, 1.0),
    "Y": (0.0, 0.5, 0.0, 0.5),
    "R": (0.5, 0.0, 0.5, 0.0),
    "W": (0.5, 0.0, 0.0, 0.5),
    "S": (0.0, 0.5, 0.5, 0.0),
    "K": (0.0, 0.0, 0.5, 0.5),
    "M": (0.5, 0.5, 0.0, 0.0),
    "D": (0.333, 0.0, 0.333, 0.333),
    "V": (0.333, 0.333, 0.333, 0.0),
    "H": (0.333, 0.333, 0.0, 0.333),
    "B": (0.0, 0.333, 0.333, 0.333),
    "N": (0.25, 0.25, 0.25, 0.25),
}


def consensus_to_record(consensus: str) -> MotifRecord:
    """Turn an IUPAC consensus string into a probability record named after it."""
    if not consensus:
        raise MotifError("Consensus sequence is empty")
    rows = []
    for letter in consensus:
        probs = CONSENSUS_PROBS.get(letter.upper())
        if probs is None:
            raise MotifError(f"Encountered unknown letter in consensus ({letter})")
        rows.append(probs)
    return MotifRecord(name=consensus, line_num=0, probs=np.array(rows, dtype=np.float64))
