import argparse
import logging
import os
import sys
from contextlib import nullcontext
from typing import List, Optional

from motifscan import __version__
from motifscan.api import build_matrices
from motifscan.config import (
    DEFAULT_NSITES,
    DEFAULT_PSEUDOCOUNT,
    DEFAULT_PVALUE,
    ScanConfig,
    create_scan_config,
)
from motifscan.errors import MotifError
from motifscan.io import (
    deduplicate_names,
    format_motif_summary,
    parse_background,
    read_fasta,
    read_motifs,
    sequence_set_summary,
    trim_names,
    write_match_header,
    write_matches,
    write_score_matrices,
    write_sequence_stats,
)
from motifscan.models import ScoreMatrix, build_score_matrix, consensus_to_record
from motifscan.scanner import prepare_motif, scan
from motifscan.threshold import summarize_motif


def setup_logging(verbose: bool, very_verbose: bool = False):
    """Setup logging configuration."""
    if very_verbose:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    logging.getLogger("numba").setLevel(logging.WARNING)


def create_arg_parser() -> argparse.ArgumentParser:
    """Create and configure argument parser."""
    parser = argparse.ArgumentParser(
        prog="motifscan",
        description="motifscan: scan DNA/RNA sequences for PWM motif matches with exact p-value thresholds",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
 Examples:
   # Scan both strands with MEME motifs at p < 1e-5
   motifscan -m motifs.meme -s sequences.fa -o matches.txt

   # Forward strand only, custom threshold and background
   motifscan -m motifs.jaspar -s sequences.fa -f -t 0.0001 -b 0.3,0.2,0.2,0.3

   # Exact matches of an IUPAC consensus
   motifscan -1 TGASTCA -s sequences.fa

   # Motif summaries (no sequences) / sequence statistics (no motifs)
   motifscan -m motifs.homer
   motifscan -s sequences.fa
         """,
    )

    io_group = parser.add_argument_group("Input/Output Options")
    io_group.add_argument(
        "-m",
        "--motifs",
        help="Motif file in MEME, HOMER or JASPAR format, or a .pkl file of saved matrices.",
    )
    io_group.add_argument(
        "-1",
        "--consensus",
        help="IUPAC consensus sequence to use as a motif instead of a motif file; only exact matches are reported.",
    )
    io_group.add_argument(
        "-s",
        "--sequences",
        help="FASTA file of sequences to scan. Use '-' to read from standard input.",
    )
    io_group.add_argument(
        "-o",
        "--output",
        help="Output file for results. (default: standard output)",
    )
    io_group.add_argument(
        "--save-matrices",
        help="Save the completed score matrices to this .pkl file.",
    )

    scan_group = parser.add_argument_group("Scanning Options")
    scan_group.add_argument(
        "-b",
        "--background",
        help=(
            "Comma-separated A,C,G,T background probabilities. Overrides a background "
            "found in the motif file; uniform otherwise."
        ),
    )
    scan_group.add_argument(
        "-f",
        "--forward-only",
        action="store_true",
        help="Only scan the forward strand.",
    )
    scan_group.add_argument(
        "-t",
        "--threshold",
        type=float,
        default=DEFAULT_PVALUE,
        help="P-value threshold for reporting matches. (default: %(default)s)",
    )
    scan_group.add_argument(
        "-p",
        "--pseudocount",
        type=int,
        default=DEFAULT_PSEUDOCOUNT,
        help="Pseudocount added to motif probabilities. (default: %(default)s)",
    )
    scan_group.add_argument(
        "-n",
        "--nsites",
        type=int,
        default=DEFAULT_NSITES,
        help="Number of sites used to turn probabilities into counts. (default: %(default)s)",
    )
    scan_group.add_argument(
        "-d",
        "--dedup",
        action="store_true",
        help="Deduplicate motif and sequence names instead of failing.",
    )
    scan_group.add_argument(
        "-r",
        "--trim-names",
        action="store_true",
        help="Trim motif and sequence names to the first word.",
    )

    technical_group = parser.add_argument_group("Technical Options")
    technical_group.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable informative logging messages.",
    )
    technical_group.add_argument(
        "-w",
        "--very-verbose",
        action="store_true",
        help="Enable debug logging messages (implies -v).",
    )
    technical_group.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    return parser


def validate_inputs(args) -> None:
    """Validate input files and parameters."""
    if args.motifs and args.consensus:
        raise ValueError("Use either -m or -1, not both.")
    if not args.motifs and not args.consensus and not args.sequences:
        raise ValueError("Need at least one of -m, -1 or -s.")
    if args.motifs and not os.path.exists(args.motifs):
        raise FileNotFoundError(f"Motif file not found: {args.motifs}")
    if args.sequences and args.sequences != "-" and not os.path.exists(args.sequences):
        raise FileNotFoundError(f"FASTA file not found: {args.sequences}")


def create_config_from_args(args) -> ScanConfig:
    """Map CLI arguments to a scan configuration."""
    logger = logging.getLogger(__name__)

    if args.consensus:
        if args.background or args.threshold != DEFAULT_PVALUE:
            logger.info("Consensus mode ignores -b and -t, only exact matches are reported")
        if args.nsites != DEFAULT_NSITES or args.pseudocount != DEFAULT_PSEUDOCOUNT:
            logger.info("Consensus mode ignores -n and -p")
        return create_scan_config(pvalue=1.0, nsites=1000, pseudocount=1, scan_rc=not args.forward_only)

    background = parse_background(args.background) if args.background else None
    return create_scan_config(
        pvalue=args.threshold,
        nsites=args.nsites,
        pseudocount=args.pseudocount,
        scan_rc=not args.forward_only,
        background=background,
    )


def load_matrices(args, config: ScanConfig) -> List[ScoreMatrix]:
    """Read and build every motif requested on the command line."""
    if args.consensus:
        return [build_score_matrix(consensus_to_record(args.consensus), config)]
    if args.motifs:
        records = read_motifs(args.motifs, scan_rc=config.scan_rc)
        if not records:
            raise MotifError(f"No motifs found in {args.motifs}")
        return build_matrices(records, config, dedup=args.dedup, trim=args.trim_names)
    return []


def run(args, argv: Optional[List[str]] = None) -> None:
    """Execute the requested mode and write results."""
    logger = logging.getLogger(__name__)

    config = create_config_from_args(args)
    matrices = load_matrices(args, config)
    exact = bool(args.consensus)

    sequences = None
    if args.sequences:
        sequences = read_fasta(args.sequences)
        if args.trim_names:
            sequences.names = trim_names(sequences.names)
        sequences.names = deduplicate_names(sequences.names, sequences.line_nums, args.dedup, kind="sequence")

    if args.save_matrices:
        write_score_matrices(matrices, args.save_matrices)
        logger.info(f"Saved {len(matrices):,} score matrices to {args.save_matrices}")

    with open(args.output, "w") if args.output else nullcontext(sys.stdout) as out:
        if matrices and sequences is not None:
            command = " ".join(["motifscan", *argv] if argv is not None else sys.argv)
            write_match_header(out, command, __version__, matrices, sequence_set_summary(sequences))
            n = write_matches(scan(matrices, sequences, config, exact=exact), out)
            logger.info(f"Found {n:,} match(es)")
        elif matrices:
            for i, matrix in enumerate(matrices, start=1):
                with prepare_motif(matrix, config, exact=exact) as prepared:
                    summary = summarize_motif(matrix, prepared.distribution, prepared.threshold)
                out.write(("\n" if i > 1 else "") + format_motif_summary(summary, i))
        else:
            write_sequence_stats(sequences, out)


def main_cli(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    parser = create_arg_parser()

    if argv is None and len(sys.argv) == 1:
        parser.print_help(sys.stderr)
        sys.exit(1)

    args = parser.parse_args(argv)

    setup_logging(args.verbose, args.very_verbose)

    try:
        validate_inputs(args)
        run(args, argv)
    except Exception as e:
        print(f"ERROR: {e}", file=sys.stderr)
        if args.verbose or args.very_verbose:
            import traceback

            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main_cli()
