"""
Scanning Engine
===============

Slides completed score matrices over sequences and reports every window whose
score reaches the motif's threshold.

Each motif goes through prepare -> scan every sequence -> release, strictly in
order, so output is deterministic: motif order, then sequence order, then
ascending window start with the forward strand before the reverse strand.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterable, Iterator, List, NamedTuple

import numpy as np
import pandas as pd

from motifscan.config import DEFAULT_CHUNK_SIZE, PWM_INT_MULTIPLIER, ScanConfig
from motifscan.distribution import NullDistribution, null_distribution
from motifscan.functions import window_hits
from motifscan.models import ScoreMatrix
from motifscan.ragged import SequenceSet
from motifscan.threshold import Threshold, resolve_threshold, scores_to_pvalues

MATCH_COLUMNS = ["seqname", "start", "end", "strand", "motif", "pvalue", "score", "score_pct", "match"]


class Match(NamedTuple):
    """One reported window, in 1-based inclusive forward-strand coordinates."""

    seqname: str
    start: int
    end: int
    strand: str
    motif: str
    pvalue: float
    score: float
    score_pct: float
    match: str


@dataclass
class PreparedMotif:
    """A matrix together with its resident distribution and threshold."""

    matrix: ScoreMatrix
    distribution: NullDistribution
    threshold: Threshold

    @property
    def scoreable(self) -> bool:
        return self.threshold.scoreable


@contextmanager
def prepare_motif(matrix: ScoreMatrix, config: ScanConfig, exact: bool = False) -> Iterator[PreparedMotif]:
    """Compute distribution and threshold for ``matrix`` for the duration of a block.

    With ``exact=True`` only windows reaching the maximal score pass, which is
    how consensus motifs are scanned. The distribution is released when the
    block exits, including on errors and for unscoreable motifs.
    """
    with null_distribution(matrix, matrix.background, config.max_cdf_size) as dist:
        threshold = resolve_threshold(matrix, dist, config.pvalue)
        if exact:
            threshold = Threshold(matrix.max_score, threshold.pvalue, threshold.min_pvalue)
        yield PreparedMotif(matrix, dist, threshold)


def _score_pct(scores: np.ndarray, max_score: int) -> np.ndarray:
    if max_score == 0:
        return np.full(scores.shape, np.nan)
    return 100.0 * scores / max_score


def scan_sequence(
    prepared: PreparedMotif,
    sequences: SequenceSet,
    seq_index: int,
    scan_rc: bool = True,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> Iterator[Match]:
    """Yield the matches of one prepared motif in one sequence."""
    if not prepared.scoreable:
        return

    matrix = prepared.matrix
    width = matrix.width
    codes = sequences.codes.get_slice(seq_index)
    n_windows = codes.size - width + 1
    if n_windows <= 0:
        return

    seqname = sequences.names[seq_index]
    threshold = prepared.threshold.score

    for chunk_start in range(0, n_windows, chunk_size):
        chunk_stop = min(chunk_start + chunk_size, n_windows)

        positions, scores = window_hits(codes, matrix.pwm, threshold, chunk_start, chunk_stop)
        strands = np.zeros(positions.size, dtype=np.int8)

        if scan_rc:
            rc_positions, rc_scores = window_hits(codes, matrix.pwm_rc, threshold, chunk_start, chunk_stop)
            positions = np.concatenate([positions, rc_positions])
            scores = np.concatenate([scores, rc_scores])
            strands = np.concatenate([strands, np.ones(rc_positions.size, dtype=np.int8)])
            order = np.lexsort((strands, positions))
            positions, scores, strands = positions[order], scores[order], strands[order]

        if positions.size == 0:
            continue

        pvalues = scores_to_pvalues(prepared.distribution, scores)
        pcts = _score_pct(scores, matrix.max_score)

        for pos, score, strand, pvalue, pct in zip(
            positions.tolist(), scores.tolist(), strands.tolist(), pvalues.tolist(), pcts.tolist(), strict=True
        ):
            yield Match(
                seqname=seqname,
                start=pos + 1,
                end=pos + width,
                strand="-" if strand else "+",
                motif=matrix.name,
                pvalue=pvalue,
                score=score / PWM_INT_MULTIPLIER,
                score_pct=pct,
                match=sequences.text(seq_index, pos, pos + width),
            )


def scan(
    matrices: Iterable[ScoreMatrix], sequences: SequenceSet, config: ScanConfig, exact: bool = False
) -> Iterator[Match]:
    """Scan every sequence with every matrix, one motif at a time."""
    logger = logging.getLogger(__name__)

    for matrix in matrices:
        logger.debug(f"Scanning motif: {matrix.name}")
        with prepare_motif(matrix, config, exact=exact) as prepared:
            if not prepared.scoreable:
                continue
            for seq_index in range(len(sequences)):
                logger.debug(f"Scanning sequence: {sequences.names[seq_index]}")
                yield from scan_sequence(prepared, sequences, seq_index, config.scan_rc, config.chunk_size)


def matches_to_frame(matches: Iterable[Match]) -> pd.DataFrame:
    """Collect matches into a DataFrame with one row per match."""
    rows: List[Match] = list(matches)
    return pd.DataFrame(rows, columns=MATCH_COLUMNS)
