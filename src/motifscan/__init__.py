"""
motifscan
==================

This package scans DNA/RNA sequences for occurrences of position weight
matrix (PWM) motifs. Every motif is turned into an integer log-odds score
matrix, the exact distribution of window scores under a background model is
computed by dynamic programming, and the score threshold meeting a target
p-value is read from that distribution before the matrix is slid over both
strands of every sequence.

The top level modules expose the following key components:

``config``
    Constants, the :class:`Background` distribution and the immutable
    :class:`ScanConfig` passed through every stage.

``models``
    Motif records as read from files and completed :class:`ScoreMatrix`
    objects with their reverse-complement mirror.

``distribution``
    Null distribution engine producing right-tail CDFs of window scores.

``threshold``
    Threshold resolver, score to p-value lookup and motif summaries.

``scanner``
    Sliding-window scanning engine yielding :class:`Match` records.

``io``
    Readers for MEME, HOMER and JASPAR motifs and FASTA sequences, name
    deduplication, sequence statistics and tabular writers.

``api``
    Single-call library entry points returning pandas DataFrames.

``cli``
    The ``motifscan`` command line interface.
"""

__version__ = "0.1.0"
