from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, TextIO, Tuple

import joblib
import numpy as np
import pandas as pd

from motifscan.config import MAX_NAME_SIZE, PWM_INT_MULTIPLIER, Background, make_background
from motifscan.errors import MotifError, SequenceError
from motifscan.models import MotifRecord, ScoreMatrix
from motifscan.ragged import SequenceSet, ragged_from_list
from motifscan.scanner import Match
from motifscan.threshold import MotifSummary

# ---------------------------------------------------------------------------
# Sequences
# ---------------------------------------------------------------------------


def _open_binary(path: str | Path):
    if str(path) == "-":
        return sys.stdin.buffer
    return open(path, "rb")


def read_fasta(path: str | Path) -> SequenceSet:
    """Read a FASTA file (``-`` for stdin) keeping raw sequence bytes.

    Spaces inside sequence lines are dropped; any other byte is kept and
    later scored as a non-matching symbol if it is not A/C/G/T/U.
    """
    names: List[str] = []
    line_nums: List[int] = []
    chunks: List[bytearray] = []

    handle = _open_binary(path)
    try:
        for line_num, line in enumerate(handle, start=1):
            line = line.rstrip(b"\r\n")
            if not line.strip():
                continue
            if line.startswith(b">"):
                names.append(line[1:].decode("utf-8", errors="replace")[:MAX_NAME_SIZE])
                line_nums.append(line_num)
                chunks.append(bytearray())
            elif chunks:
                chunks[-1].extend(line.replace(b" ", b""))
    finally:
        if handle is not sys.stdin.buffer:
            handle.close()

    if not names:
        raise SequenceError("Sequences don't appear to be fasta-formatted")

    arrays = [np.frombuffer(bytes(chunk), dtype=np.uint8) for chunk in chunks]
    sequences = SequenceSet(names, line_nums, ragged_from_list(arrays, dtype=np.uint8))
    check_sequences(sequences)
    return sequences


def _base_counts(codes: np.ndarray) -> np.ndarray:
    """Counts of codes 0..4 (A, C, G, T/U, other)."""
    return np.bincount(codes.astype(np.int64), minlength=5)[:5]


def sequence_set_summary(sequences: SequenceSet) -> dict:
    """Return totals over all sequences: count, bases, non-standard bases, GC%."""
    counts = _base_counts(sequences.codes.data)
    standard = int(counts[:4].sum())
    total = sequences.raw.total_elements()
    gc_pct = 100.0 * (counts[1] + counts[2]) / standard if standard else float("nan")
    return {
        "count": len(sequences),
        "total_bases": total,
        "unknowns": total - standard,
        "gc_pct": float(gc_pct),
    }


def check_sequences(sequences: SequenceSet) -> dict:
    """Validate loaded sequences and log their composition."""
    logger = logging.getLogger(__name__)
    summary = sequence_set_summary(sequences)
    total = summary["total_bases"]

    if not total:
        raise SequenceError("Only encountered empty sequences")
    if summary["unknowns"] == total:
        raise SequenceError("Failed to read any standard DNA/RNA bases")

    unknowns_pct = 100.0 * summary["unknowns"] / total
    if unknowns_pct >= 90.0:
        logger.warning(f"Non-standard base count is extremely high ({unknowns_pct:.2f}%)")
    elif unknowns_pct >= 50.0:
        logger.info(f"Non-standard base count is very high ({unknowns_pct:.2f}%)")
    elif unknowns_pct >= 10.0:
        logger.info(f"Non-standard base count seems high ({unknowns_pct:.2f}%)")

    logger.info(f"Loaded {summary['count']:,} sequence(s). size={total:,} GC={summary['gc_pct']:.2f}%")
    if summary["unknowns"]:
        logger.info(f"Found {summary['unknowns']:,} ({unknowns_pct:.2f}%) non-standard bases")
    return summary


def sequence_stats(sequences: SequenceSet) -> pd.DataFrame:
    """Per-sequence size, GC percentage and non-standard base count."""
    rows = []
    for i in range(len(sequences)):
        counts = _base_counts(sequences.codes.get_slice(i))
        size = sequences.raw.get_length(i)
        standard = int(counts[:4].sum())
        gc_pct = 100.0 * (counts[1] + counts[2]) / standard if standard else float("nan")
        rows.append(
            {
                "seqnum": i + 1,
                "line_num": sequences.line_nums[i],
                "seqname": sequences.names[i],
                "size": size,
                "gc_pct": gc_pct,
                "n_count": size - standard,
            }
        )
    return pd.DataFrame(rows, columns=["seqnum", "line_num", "seqname", "size", "gc_pct", "n_count"])


# ---------------------------------------------------------------------------
# Names
# ---------------------------------------------------------------------------


def trim_names(names: Iterable[str]) -> List[str]:
    """Keep only the first word of every name."""
    return [name.split(" ", 1)[0] for name in names]


def find_duplicates(names: List[str]) -> List[bool]:
    """Flag every name that occurs more than once."""
    seen: Dict[str, int] = {}
    for name in names:
        seen[name] = seen.get(name, 0) + 1
    return [seen[name] > 1 for name in names]


def deduplicate_names(names: List[str], line_nums: List[int], dedup: bool, kind: str = "sequence") -> List[str]:
    """Make names unique or fail.

    With ``dedup`` every duplicated name gets ``__N<index>_L<line>`` appended;
    otherwise duplicates raise, listing up to five of them.
    """
    is_dup = find_duplicates(names)
    dup_count = sum(is_dup)
    if not dup_count:
        return list(names)

    if dedup:
        return [
            f"{name}__N{i + 1}_L{line_nums[i]}" if dup else name
            for i, (name, dup) in enumerate(zip(names, is_dup, strict=True))
        ]

    listed = [f"L{line_nums[i]} #{i + 1}: {names[i]}" for i, dup in enumerate(is_dup) if dup][:5]
    message = f"Encountered duplicate {kind} name (use -d to deduplicate).\n    " + "\n    ".join(listed)
    if dup_count > 5:
        message += f"\n    ...\n    Found {dup_count:,} total non-unique names."
    error_cls = MotifError if kind == "motif" else SequenceError
    raise error_cls(message)


# ---------------------------------------------------------------------------
# Backgrounds
# ---------------------------------------------------------------------------


def parse_background(text: str) -> Background:
    """Parse comma-separated A,C,G,T background probabilities."""
    parts = [part.strip() for part in text.replace(" ", "").split(",")]
    if len(parts) > 4:
        raise ValueError("Too many background values provided (need 4)")
    if len(parts) < 4 or any(not part for part in parts):
        raise ValueError("Too few background values found (need 4)")
    try:
        values = [float(part) for part in parts]
    except ValueError as e:
        raise ValueError(f"Could not parse background values: {text!r}") from e
    return make_background(values)


# ---------------------------------------------------------------------------
# Motifs
# ---------------------------------------------------------------------------


class FormatRegistry:
    """Registry for motif file readers using decorator pattern."""

    def __init__(self):
        """Initialize registry state."""
        self._readers: Dict[str, Callable[..., List[MotifRecord]]] = {}

    def register(self, key: str):
        """Decorator to register a motif reader."""

        def decorator(reader):
            """Store a callable in the registry."""
            self._readers[key] = reader
            return reader

        return decorator

    def get(self, key: str) -> Callable[..., List[MotifRecord]]:
        """Get reader by format key."""
        if key not in self._readers:
            available = list(self._readers.keys())
            raise ValueError(f"Motif format '{key}' not found. Available: {available}")
        return self._readers[key]

    def keys(self) -> List[str]:
        return list(self._readers.keys())


registry = FormatRegistry()


def detect_motif_format(lines: List[str]) -> Optional[str]:
    """Guess the motif file dialect from its content."""
    after_header = False
    for line in lines:
        if not line.strip():
            continue
        if line.startswith("MEME version "):
            return "meme"
        if after_header:
            if line[0] in "01":
                return "homer"
            if line[0] == "A":
                return "jaspar"
        elif line[0] == ">":
            after_header = True
    return None


def _parse_row(line: str, name: str, n: int = 4) -> np.ndarray:
    """Parse one whitespace separated row of exactly ``n`` numbers."""
    parts = line.split()
    if not parts:
        raise MotifError(f"Motif [{name}] has an empty row")
    if len(parts) > n:
        raise MotifError(f"Motif [{name}] has too many columns (need {n})")
    if len(parts) < n:
        raise MotifError(f"Motif [{name}] has too few columns (need {n})")
    try:
        return np.array([float(x) for x in parts], dtype=np.float64)
    except ValueError as e:
        raise MotifError(f"Motif [{name}] has a non-numeric value: {line.strip()!r}") from e


def _parse_meme_background(line: str, line_num: int) -> Background:
    """Parse ``A 0.3 C 0.2 G 0.2 T 0.3`` (U accepted for T)."""
    tokens = line.split()
    if not tokens or tokens[0] != "A":
        raise MotifError(f"Expected first character of background line to be 'A' (L{line_num})")
    letters = tokens[0::2]
    values = tokens[1::2]
    if len(letters) > 4:
        raise MotifError(f"Parsed too many background values in MEME file (L{line_num})")
    if len(letters) < 4 or len(values) < 4:
        raise MotifError(f"Too few background values found in MEME file (L{line_num})")
    if letters[1] != "C" or letters[2] != "G" or letters[3] not in ("T", "U"):
        raise MotifError(f"Expected background letters in A, C, G, T/U order (L{line_num})")
    try:
        probs = [float(x) for x in values]
    except ValueError as e:
        raise MotifError(f"Encountered unexpected value in MEME background (L{line_num})") from e
    return make_background(probs)


def _check_meme_strands(line: str, line_num: int, scan_rc: bool) -> None:
    logger = logging.getLogger(__name__)
    fwd = line.count("+")
    rev = line.count("-")
    if fwd > 1 or rev > 1 or (not fwd and not rev):
        logger.info(f"Possible malformed strand field (L{line_num})")
    if scan_rc and fwd and not rev:
        logger.info(f"MEME motifs are only for the forward strand (L{line_num})")
    if not fwd and rev:
        logger.info(f"MEME motifs are only for the reverse strand (L{line_num})")
    if not scan_rc and fwd and rev:
        logger.info(f"MEME motifs are for both strands (L{line_num})")


@registry.register("meme")
def read_meme(lines: List[str], scan_rc: bool = True) -> List[MotifRecord]:
    """Parse MEME minimal/full text into probability records."""
    logger = logging.getLogger(__name__)

    background: Optional[Background] = None
    bkg_line = 0
    alphabet_seen = False
    strands_seen = False

    motifs: List[Tuple[str, int, List[np.ndarray]]] = []
    matrix_line = 0
    live = False

    for line_num, line in enumerate(lines, start=1):
        if line.startswith("Background letter frequencies"):
            if bkg_line:
                raise MotifError(f"Detected multiple background definition lines in MEME file (L{line_num})")
            if motifs:
                raise MotifError(f"Found background definition line after motifs (L{line_num})")
            bkg_line = line_num
        elif bkg_line and line_num == bkg_line + 1:
            background = _parse_meme_background(line, line_num)
            logger.debug(f"Found MEME background values: {background}")
        elif line.startswith("ALPHABET"):
            if alphabet_seen:
                raise MotifError(f"Detected multiple alphabet definition lines in MEME file (L{line_num})")
            if motifs:
                raise MotifError(f"Found alphabet definition line after motifs (L{line_num})")
            if line.startswith("ALPHABET= ACDEFGHIKLMNPQRSTVWY"):
                raise MotifError(f"Detected protein alphabet (L{line_num})")
            alphabet_seen = True
        elif line.startswith("strands:"):
            if strands_seen:
                raise MotifError(f"Detected multiple strand information lines in MEME file (L{line_num})")
            if motifs:
                raise MotifError(f"Found strand information line after motifs (L{line_num})")
            _check_meme_strands(line, line_num, scan_rc)
            strands_seen = True
        elif line.startswith("MOTIF"):
            parts = line.split()
            name = parts[1][:MAX_NAME_SIZE] if len(parts) > 1 else "motif"
            motifs.append((name, line_num, []))
            live = False
        elif line.startswith("letter-probability matrix"):
            if not motifs or motifs[-1][2]:
                raise MotifError(f"Possible malformed MEME motif (L{line_num})")
            matrix_line = line_num
            live = True
        elif live:
            stripped = line.strip()
            name, _, rows = motifs[-1]
            if not stripped or stripped[0] in "-*":
                live = False
            elif line_num == matrix_line + len(rows) + 1:
                rows.append(_parse_row(line, name))
            else:
                live = False

    if not motifs:
        raise MotifError("Failed to detect any motifs in MEME file")

    records = [
        MotifRecord(
            name=name,
            line_num=line_num,
            probs=np.vstack(rows) if rows else np.empty((0, 4)),
            background=background,
        )
        for name, line_num, rows in motifs
    ]
    logger.info(f"Found {len(records):,} MEME motif(s)")
    return records


@registry.register("homer")
def read_homer(lines: List[str], scan_rc: bool = True) -> List[MotifRecord]:
    """Parse HOMER motifs (``>consensus<TAB>name<TAB>logodds`` headers)."""
    logger = logging.getLogger(__name__)
    motifs: List[Tuple[str, int, List[np.ndarray]]] = []

    for line_num, line in enumerate(lines, start=1):
        if line.startswith(">"):
            fields = line.rstrip("\r\n").split("\t")
            if len(fields) < 2 or not fields[1]:
                logger.debug(f"Failed to parse motif name [#{len(motifs) + 1:,}]")
                name = "motif"
            else:
                name = fields[1][:MAX_NAME_SIZE]
                if len(fields) < 3:
                    logger.debug(f"HOMER motif is missing logodds score [#{len(motifs) + 1:,}]")
            motifs.append((name, line_num, []))
        elif line.strip():
            if not motifs:
                raise MotifError(f"Found motif row before any HOMER header (L{line_num})")
            name, _, rows = motifs[-1]
            rows.append(_parse_row(line, name))

    records = [
        MotifRecord(name=name, line_num=line_num, probs=np.vstack(rows) if rows else np.empty((0, 4)))
        for name, line_num, rows in motifs
    ]
    logger.info(f"Found {len(records):,} HOMER motif(s)")
    return records


_JASPAR_ROWS = {"A": 0, "C": 1, "G": 2, "T": 3, "U": 3}


def _parse_jaspar_row(line: str, name: str) -> Tuple[int, np.ndarray]:
    stripped = line.strip()
    row_i = _JASPAR_ROWS.get(stripped[0].upper())
    if row_i is None:
        raise MotifError(f"Couldn't find ACGTU in motif [{name}] row names")
    left = stripped.find("[")
    right = stripped.find("]")
    if left == -1 or right == -1 or right < left:
        raise MotifError(f"Couldn't find '[]' in motif [{name}] row ({row_i + 1})")
    values = stripped[left + 1 : right].split()
    if not values:
        raise MotifError(f"Motif [{name}] has an empty row")
    try:
        return row_i, np.array([float(x) for x in values], dtype=np.float64)
    except ValueError as e:
        raise MotifError(f"Motif [{name}] has a non-numeric count: {stripped!r}") from e


@registry.register("jaspar")
def read_jaspar(lines: List[str], scan_rc: bool = True) -> List[MotifRecord]:
    """Parse JASPAR count matrices (``>name`` then ``A [ ... ]`` rows)."""
    logger = logging.getLogger(__name__)
    motifs: List[Tuple[str, int, Dict[int, np.ndarray]]] = []

    def check_rows(name: str, rows: Dict[int, np.ndarray], n_rows: int) -> None:
        if n_rows < 4:
            raise MotifError(f"Motif [{name}] has too few rows")
        if n_rows > 4:
            raise MotifError(f"Motif [{name}] has too many rows")
        if len(rows) != 4:
            missing = "".join(sym for i, sym in enumerate("ACGT") if i not in rows)
            raise MotifError(f"Motif [{name}] has duplicate rows, missing: {missing}")
        if len({row.size for row in rows.values()}) != 1:
            raise MotifError(f"Motif [{name}] has rows with differing numbers of counts")

    n_rows = 0
    for line_num, line in enumerate(lines, start=1):
        if line.startswith(">"):
            if motifs:
                check_rows(motifs[-1][0], motifs[-1][2], n_rows)
            motifs.append((line[1:].strip()[:MAX_NAME_SIZE], line_num, {}))
            n_rows = 0
        elif line.strip():
            if not motifs:
                raise MotifError(f"Found motif row before any JASPAR header (L{line_num})")
            name, _, rows = motifs[-1]
            n_rows += 1
            if n_rows > 4:
                raise MotifError(f"Motif [{name}] has too many rows")
            row_i, counts = _parse_jaspar_row(line, name)
            rows[row_i] = counts

    if motifs:
        check_rows(motifs[-1][0], motifs[-1][2], n_rows)

    records = [
        MotifRecord(name=name, line_num=line_num, counts=np.vstack([rows[i] for i in range(4)]).T)
        for name, line_num, rows in motifs
    ]
    logger.info(f"Found {len(records):,} JASPAR motif(s)")
    return records


def read_motifs(path: str | Path, scan_rc: bool = True) -> List[MotifRecord | ScoreMatrix]:
    """Read every motif from a MEME, HOMER, JASPAR or joblib ``.pkl`` file."""
    _, ext = os.path.splitext(str(path).lower())
    if ext == ".pkl":
        loaded = joblib.load(path)
        items = loaded if isinstance(loaded, list) else [loaded]
        for item in items:
            if not isinstance(item, (MotifRecord, ScoreMatrix)):
                raise MotifError(f"Unsupported object in {path}: {type(item).__name__}")
        return items

    with open(path, "r") as handle:
        lines = handle.readlines()

    fmt = detect_motif_format(lines)
    if fmt is None:
        raise MotifError("Failed to detect motif format")
    logging.getLogger(__name__).debug(f"Detected {fmt.upper()} format")
    return registry.get(fmt)(lines, scan_rc=scan_rc)


def write_score_matrices(matrices: List[ScoreMatrix], path: str | Path) -> None:
    """Persist completed score matrices with joblib."""
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    joblib.dump(list(matrices), path)


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


def format_match(match: Match) -> str:
    """Render one match as a tab separated line (no newline)."""
    return (
        f"{match.seqname}\t{match.start}\t{match.end}\t{match.strand}\t{match.motif}\t"
        f"{match.pvalue:.9g}\t{match.score:.3f}\t{match.score_pct:.1f}\t{match.match}"
    )


def write_match_header(
    out: TextIO, command: str, version: str, motifs: List[ScoreMatrix], seq_summary: dict
) -> None:
    """Write the comment lines that precede the match table."""
    motif_size = sum(m.width for m in motifs)
    out.write(f"##motifscan v{version} [ {command} ]\n")
    out.write(
        f"##MotifCount={len(motifs)} MotifSize={motif_size} SeqCount={seq_summary['count']} "
        f"SeqSize={seq_summary['total_bases']} GC={seq_summary['gc_pct']:.2f}% Ns={seq_summary['unknowns']}\n"
    )
    out.write("##seqname\tstart\tend\tstrand\tmotif\tpvalue\tscore\tscore_pct\tmatch\n")


def write_matches(matches: Iterable[Match], out: TextIO) -> int:
    """Stream matches to ``out``; returns the number written."""
    n = 0
    for match in matches:
        out.write(format_match(match) + "\n")
        n += 1
    return n


def format_motif_summary(summary: MotifSummary, n: int) -> str:
    """Render the diagnostic block printed when no sequences are given."""
    lines = [f"Motif: {summary.name} (N{n} L{summary.line_num})"]
    max_score = summary.max_score / PWM_INT_MULTIPLIER
    if summary.threshold_value is None:
        lines.append(f"MaxScore={max_score:.2f}\tThreshold=[exceeds max]")
    else:
        lines.append(f"MaxScore={max_score:.2f}\tThreshold={summary.threshold_value:.2f}")
    lines.append("Motif PWM:\n\tA\tC\tG\tT")
    for i, row in enumerate(summary.scores, start=1):
        lines.append(f"{i}:\t" + "\t".join(f"{x:.2f}" for x in row))
    for score, pvalue in summary.points:
        lines.append(f"Score={score / PWM_INT_MULTIPLIER:.2f}\t-->     p={pvalue:.2g}")
    return "\n".join(lines) + "\n"


def write_sequence_stats(sequences: SequenceSet, out: TextIO) -> None:
    """Write per-sequence statistics as a tab separated table."""
    stats = sequence_stats(sequences)
    out.write("##seqnum\tline_num\tseqname\tsize\tgc_pct\tn_count\n")
    for row in stats.itertuples(index=False):
        gc = "nan" if np.isnan(row.gc_pct) else f"{row.gc_pct:.2f}"
        out.write(f"{row.seqnum}\t{row.line_num}\t{row.seqname}\t{row.size}\t{gc}\t{row.n_count}\n")
