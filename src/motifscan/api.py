"""High-level public API for motif scanning."""

from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import pandas as pd

from motifscan.config import ScanConfig, create_scan_config
from motifscan.io import deduplicate_names, read_fasta, read_motifs, trim_names
from motifscan.models import MotifRecord, ScoreMatrix, build_score_matrix, consensus_to_record
from motifscan.ragged import SequenceSet, sequence_set_from_strings
from motifscan.scanner import matches_to_frame, scan

MotifRef = Union[MotifRecord, ScoreMatrix, str, Path]
SequenceRef = Union[SequenceSet, Dict[str, str], Sequence[str], str, Path]


def scan_motifs(
    motifs: Union[MotifRef, List[MotifRef]],
    sequences: SequenceRef,
    config: Optional[ScanConfig] = None,
    dedup: bool = False,
    trim: bool = False,
    **config_kwargs,
) -> pd.DataFrame:
    """Single-call entry point: scan sequences with motifs, return matches.

    Parameters
    ----------
    motifs : MotifRecord, ScoreMatrix, path or list of these
        Motif files are parsed by content; in-memory records are built with
        the scan configuration, completed matrices are used as-is.
    sequences : SequenceSet, dict, list of str or path
        A dict maps names to sequences; a plain list is named ``1..n``.
    config : ScanConfig, optional
        Prebuilt configuration; otherwise ``config_kwargs`` are passed to
        :func:`~motifscan.config.create_scan_config`.
    dedup : bool
        Rename duplicate motif/sequence names instead of failing.
    trim : bool
        Keep only the first word of every name.

    Returns
    -------
    pd.DataFrame
        One row per match, columns as in :data:`~motifscan.scanner.MATCH_COLUMNS`.
    """
    if config is not None and config_kwargs:
        raise ValueError("Use either 'config' or config kwargs, not both.")
    config = config or create_scan_config(**config_kwargs)

    seqs = _resolve_sequences(sequences)
    if trim:
        seqs.names = trim_names(seqs.names)
    seqs.names = deduplicate_names(seqs.names, seqs.line_nums, dedup, kind="sequence")

    matrices = build_matrices(_resolve_motifs(motifs, config), config, dedup=dedup, trim=trim)
    return matches_to_frame(scan(matrices, seqs, config))


def scan_consensus(consensus: str, sequences: SequenceRef, scan_rc: bool = True) -> pd.DataFrame:
    """Report exact occurrences of an IUPAC consensus (ambiguity letters allowed)."""
    config = create_scan_config(pvalue=1.0, nsites=1000, pseudocount=1, scan_rc=scan_rc, background=None)
    matrix = build_score_matrix(consensus_to_record(consensus), config)
    return matches_to_frame(scan([matrix], _resolve_sequences(sequences), config, exact=True))


def build_matrices(
    items: List[Union[MotifRecord, ScoreMatrix]], config: ScanConfig, dedup: bool = False, trim: bool = False
) -> List[ScoreMatrix]:
    """Apply name handling and build score matrices for every record."""
    names = [item.name for item in items]
    if trim:
        names = trim_names(names)
    names = deduplicate_names(names, [item.line_num for item in items], dedup, kind="motif")

    matrices = []
    for item, name in zip(items, names, strict=True):
        if isinstance(item, ScoreMatrix):
            matrices.append(item if item.name == name else _renamed(item, name))
        else:
            record = item if item.name == name else _renamed(item, name)
            matrices.append(build_score_matrix(record, config))
    return matrices


def _renamed(item, name):
    """Return a copy of a frozen record or matrix under another name."""
    return replace(item, name=name)


def _resolve_motifs(motifs, config: ScanConfig) -> List[Union[MotifRecord, ScoreMatrix]]:
    """Expand motif references into records and matrices."""
    if isinstance(motifs, (MotifRecord, ScoreMatrix, str, Path)):
        motifs = [motifs]

    items: List[Union[MotifRecord, ScoreMatrix]] = []
    for motif in motifs:
        if isinstance(motif, (MotifRecord, ScoreMatrix)):
            items.append(motif)
        elif isinstance(motif, (str, Path)):
            path = Path(motif)
            if not path.exists():
                raise FileNotFoundError(f"Motif file not found: {path}")
            items.extend(read_motifs(path, scan_rc=config.scan_rc))
        else:
            raise TypeError(f"Unsupported motif reference type: {type(motif)!r}")
    return items


def _resolve_sequences(source: SequenceRef) -> SequenceSet:
    """Resolve a sequence source to a SequenceSet."""
    if isinstance(source, SequenceSet):
        return source
    if isinstance(source, (str, Path)):
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"Sequence file not found: {path}")
        return read_fasta(path)
    if isinstance(source, dict):
        return sequence_set_from_strings(list(source.values()), names=list(source.keys()))
    if isinstance(source, (list, tuple)):
        return sequence_set_from_strings(list(source))
    raise TypeError(f"Unsupported sequence source type: {type(source)!r}")
