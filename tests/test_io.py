"""
Unit tests for motif and sequence input/output in motifscan.io.
"""

import io
import logging

import numpy as np
import pytest

from motifscan.config import create_scan_config
from motifscan.errors import MotifError, SequenceError
from motifscan.io import (
    deduplicate_names,
    detect_motif_format,
    find_duplicates,
    format_match,
    format_motif_summary,
    parse_background,
    read_fasta,
    read_homer,
    read_jaspar,
    read_meme,
    read_motifs,
    registry,
    sequence_set_summary,
    sequence_stats,
    trim_names,
    write_match_header,
    write_score_matrices,
    write_sequence_stats,
)
from motifscan.models import ScoreMatrix, build_score_matrix
from motifscan.scanner import Match, prepare_motif
from motifscan.threshold import summarize_motif

MEME_HEADER = """MEME version 4

ALPHABET= ACGT

"""


def write_text(path, text):
    path.write_text(text)
    return path


def lines_of(text):
    return text.splitlines(keepends=True)


# ---------------------------------------------------------------------------
# Motif formats
# ---------------------------------------------------------------------------


def test_registry_has_all_formats():
    """Test that every motif reader is registered"""
    assert set(registry.keys()) == {"meme", "homer", "jaspar"}
    assert registry.get("meme") is read_meme
    with pytest.raises(ValueError):
        registry.get("transfac")


def test_detect_motif_format(examples_dir):
    """Test format detection on the example files"""
    for name, expected in [("gata.meme", "meme"), ("gata.homer", "homer"), ("gata.jaspar", "jaspar")]:
        with open(examples_dir / name) as handle:
            assert detect_motif_format(handle.readlines()) == expected
    assert detect_motif_format(["hello\n", "world\n"]) is None


def test_read_meme_example(examples_dir):
    """Test MEME parsing of names, widths, line numbers and background"""
    records = read_motifs(examples_dir / "gata.meme")

    assert [r.name for r in records] == ["GATA1", "CTCF_core"]
    assert [r.width for r in records] == [6, 5]
    assert records[0].line_num == 10
    np.testing.assert_allclose(records[0].probs[1], [0.85, 0.05, 0.05, 0.05])
    np.testing.assert_allclose(records[0].background.as_array(), [0.3, 0.2, 0.2, 0.3])
    assert records[1].background == records[0].background


def test_read_meme_matrix_ends_at_separator():
    """Test that a dashed line terminates the matrix"""
    text = MEME_HEADER + (
        "MOTIF m1\n"
        "letter-probability matrix: alength= 4 w= 2\n"
        "0.25 0.25 0.25 0.25\n"
        "0.1 0.2 0.3 0.4\n"
        "--------------------------\n"
        "0.1 0.2 0.3 0.4\n"
    )
    records = read_meme(lines_of(text))

    assert records[0].width == 2


@pytest.mark.parametrize(
    "body",
    [
        "ALPHABET= ACDEFGHIKLMNPQRSTVWY\n",
        "Background letter frequencies\nA 0.25 C 0.25 G 0.25 T 0.25\n"
        "Background letter frequencies\nA 0.25 C 0.25 G 0.25 T 0.25\n",
        "MOTIF m\nletter-probability matrix:\n0.25 0.25 0.25 0.25 0.1\n",
        "MOTIF m\nletter-probability matrix:\n0.25 0.25 0.5\n",
        "MOTIF m\nletter-probability matrix:\n0.25 0.25 0.25 0.25\n\nALPHABET= ACGT\n",
        "Background letter frequencies\nA 0.25 C 0.25 G 0.25\n",
        "nothing here\n",
    ],
)
def test_read_meme_errors(body):
    """Test fatal MEME syntax errors"""
    with pytest.raises(MotifError):
        read_meme(lines_of("MEME version 4\n\n" + body))


def test_read_meme_strand_advisory(caplog):
    """Test that forward-only MEME motifs are reported when scanning both strands"""
    text = MEME_HEADER + "strands: +\n\nMOTIF m\nletter-probability matrix:\n0.25 0.25 0.25 0.25\n"
    with caplog.at_level(logging.INFO, logger="motifscan.io"):
        read_meme(lines_of(text), scan_rc=True)

    assert "only for the forward strand" in caplog.text


def test_read_homer_example(examples_dir):
    """Test HOMER parsing"""
    records = read_motifs(examples_dir / "gata.homer")

    assert len(records) == 1
    assert records[0].name == "GATA1_homer"
    assert records[0].width == 6
    assert records[0].counts is None


def test_read_homer_missing_name():
    """Test that a HOMER header without a name gets a placeholder"""
    records = read_homer(lines_of(">GATA\n0.1 0.2 0.3 0.4\n"))

    assert records[0].name == "motif"


def test_read_jaspar_example(examples_dir):
    """Test JASPAR count matrix parsing"""
    records = read_motifs(examples_dir / "gata.jaspar")

    assert len(records) == 1
    assert records[0].name == "MA0035.4 GATA1"
    assert records[0].probs is None
    assert records[0].counts.shape == (6, 4)
    np.testing.assert_array_equal(records[0].counts[0], [2, 2, 14, 2])


def test_read_jaspar_row_order_free():
    """Test that JASPAR rows are assigned by their letter"""
    text = ">m\nT [ 1 2 ]\nG [ 3 4 ]\nC [ 5 6 ]\nA [ 7 8 ]\n"
    records = read_jaspar(lines_of(text))

    np.testing.assert_array_equal(records[0].counts, [[7, 5, 3, 1], [8, 6, 4, 2]])


@pytest.mark.parametrize(
    "text",
    [
        ">m\nA [ 1 2 ]\nC [ 1 2 ]\nG [ 1 2 ]\n",
        ">m\nA [ 1 2 ]\nC [ 1 2 ]\nG [ 1 2 ]\nT [ 1 2 ]\nA [ 1 2 ]\n",
        ">m\nA [ 1 2 ]\nC [ 1 2 ]\nG [ 1 2 ]\nT [ 1 ]\n",
        ">m\nA 1 2\nC 1 2\nG 1 2\nT 1 2\n",
        ">m\nX [ 1 2 ]\nC [ 1 2 ]\nG [ 1 2 ]\nT [ 1 2 ]\n",
    ],
)
def test_read_jaspar_errors(text):
    """Test fatal JASPAR syntax errors"""
    with pytest.raises(MotifError):
        read_jaspar(lines_of(text))


def test_read_jaspar_duplicate_row():
    """Test that a repeated row letter is reported as a duplicate, not as extra rows"""
    text = ">m\nA [ 1 2 ]\nC [ 1 2 ]\nG [ 1 2 ]\nA [ 1 2 ]\n"
    with pytest.raises(MotifError, match=r"duplicate rows, missing: T"):
        read_jaspar(lines_of(text))


def test_formats_agree(examples_dir):
    """Test that equivalent MEME, HOMER and JASPAR motifs give close scores"""
    config = create_scan_config(background=[0.25, 0.25, 0.25, 0.25], nsites=20)
    meme = build_score_matrix(read_motifs(examples_dir / "gata.meme")[0], config)
    homer = build_score_matrix(read_motifs(examples_dir / "gata.homer")[0], config)
    jaspar = build_score_matrix(read_motifs(examples_dir / "gata.jaspar")[0], config)

    np.testing.assert_array_equal(meme.pwm, homer.pwm)
    np.testing.assert_array_equal(meme.pwm, jaspar.pwm)


def test_read_motifs_unknown_format(temp_dir):
    """Test that undetectable motif files are fatal"""
    path = write_text(temp_dir / "motifs.txt", "just some text\n")
    with pytest.raises(MotifError):
        read_motifs(path)


def test_score_matrices_pickle(examples_dir, temp_dir):
    """Test saving completed matrices with joblib and reading them back"""
    config = create_scan_config()
    matrices = [build_score_matrix(r, config) for r in read_motifs(examples_dir / "gata.meme")]
    path = temp_dir / "out" / "matrices.pkl"

    write_score_matrices(matrices, path)
    loaded = read_motifs(path)

    assert all(isinstance(m, ScoreMatrix) for m in loaded)
    assert [m.name for m in loaded] == ["GATA1", "CTCF_core"]
    np.testing.assert_array_equal(loaded[0].pwm_rc, matrices[0].pwm_rc)


def test_parse_background():
    """Test comma-separated background parsing"""
    bkg = parse_background("0.3, 0.2,0.2,0.3")
    np.testing.assert_allclose(bkg.as_array(), [0.3, 0.2, 0.2, 0.3])

    for bad in ["0.3,0.2,0.5", "0.2,0.2,0.2,0.2,0.2", "a,b,c,d", "0.5,,0.25,0.25"]:
        with pytest.raises(ValueError):
            parse_background(bad)


# ---------------------------------------------------------------------------
# Sequences
# ---------------------------------------------------------------------------


def test_read_fasta_example(examples_dir):
    """Test FASTA loading of names, line numbers and multi-line sequences"""
    seqs = read_fasta(examples_dir / "sequences.fa")

    assert len(seqs) == 3
    assert seqs.names[0] == "chr1_fragment promoter region"
    assert seqs.line_nums == [1, 4, 6]
    assert seqs.text(0, 0, 10) == "ACGTTAGATA"
    assert seqs.text(2, 0, 5) == "ccgat"
    assert seqs.codes.get_slice(1)[:4].tolist() == [4, 4, 4, 4]


def test_read_fasta_keeps_odd_bytes(temp_dir):
    """Test that spaces are removed while other bytes are kept"""
    path = write_text(temp_dir / "s.fa", ">s1\r\nAC GT\r\nxU\r\n")
    seqs = read_fasta(path)

    assert seqs.text(0, 0, 6) == "ACGTxU"
    assert seqs.codes.get_slice(0).tolist() == [0, 1, 2, 3, 4, 3]


@pytest.mark.parametrize("text", ["ACGT\n", ">s1\n>s2\n", ">s1\nNNNN\n>s2\n----\n"])
def test_read_fasta_errors(temp_dir, text):
    """Test fatal FASTA conditions"""
    path = write_text(temp_dir / "bad.fa", text)
    with pytest.raises(SequenceError):
        read_fasta(path)


def test_read_fasta_unknown_base_warning(temp_dir, caplog):
    """Test the warning for sequences that are almost entirely non-standard"""
    path = write_text(temp_dir / "n.fa", ">s\n" + "N" * 95 + "ACGTA\n")
    with caplog.at_level(logging.WARNING, logger="motifscan.io"):
        read_fasta(path)

    assert "extremely high" in caplog.text


def test_sequence_stats(temp_dir):
    """Test per-sequence size, GC and non-standard counts"""
    path = write_text(temp_dir / "s.fa", ">a x\nGGCCAATT\n>b\nGGNN\n>c\n\n>d\nNN\n")
    seqs = read_fasta(path)
    stats = sequence_stats(seqs)

    assert stats["seqname"].tolist() == ["a x", "b", "c", "d"]
    assert stats["size"].tolist() == [8, 4, 0, 2]
    assert stats["n_count"].tolist() == [0, 2, 0, 2]
    np.testing.assert_allclose(stats["gc_pct"].iloc[:2], [50.0, 100.0])
    assert np.isnan(stats["gc_pct"].iloc[2])

    summary = sequence_set_summary(seqs)
    assert summary == {"count": 4, "total_bases": 14, "unknowns": 4, "gc_pct": pytest.approx(60.0)}

    out = io.StringIO()
    write_sequence_stats(seqs, out)
    rows = out.getvalue().splitlines()
    assert rows[0].startswith("##seqnum")
    assert rows[3] == "3\t5\tc\t0\tnan\t0"


# ---------------------------------------------------------------------------
# Names
# ---------------------------------------------------------------------------


def test_trim_names():
    """Test trimming names to the first word"""
    assert trim_names(["chr1 some description", "chr2"]) == ["chr1", "chr2"]


def test_deduplicate_names():
    """Test renaming of duplicated names"""
    names = ["a", "b", "a", "c"]

    assert find_duplicates(names) == [True, False, True, False]
    assert deduplicate_names(names, [1, 3, 5, 7], dedup=True) == ["a__N1_L1", "b", "a__N3_L5", "c"]
    assert deduplicate_names(["x", "y"], [1, 2], dedup=False) == ["x", "y"]


def test_duplicate_names_are_fatal():
    """Test that duplicates without deduplication raise and list the offenders"""
    names = ["a"] * 7
    with pytest.raises(SequenceError) as excinfo:
        deduplicate_names(names, list(range(7)), dedup=False)
    assert "Found 7 total non-unique names" in str(excinfo.value)

    with pytest.raises(MotifError):
        deduplicate_names(["m", "m"], [1, 2], dedup=False, kind="motif")


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


def test_format_match():
    """Test the tab separated match line"""
    match = Match("seq1", 3, 8, "-", "GATA1", 1.23456789012e-05, 7.1234, 87.654, "GATAAG")

    assert format_match(match) == "seq1\t3\t8\t-\tGATA1\t1.23456789e-05\t7.123\t87.7\tGATAAG"


def test_write_match_header(examples_dir):
    """Test the comment lines preceding a match table"""
    config = create_scan_config()
    matrices = [build_score_matrix(r, config) for r in read_motifs(examples_dir / "gata.meme")]
    seqs = read_fasta(examples_dir / "sequences.fa")
    out = io.StringIO()

    write_match_header(out, "motifscan -m x -s y", "0.1.0", matrices, sequence_set_summary(seqs))
    lines = out.getvalue().splitlines()

    assert lines[0] == "##motifscan v0.1.0 [ motifscan -m x -s y ]"
    assert lines[1].startswith("##MotifCount=2 MotifSize=11 SeqCount=3 ")
    assert lines[2] == "##seqname\tstart\tend\tstrand\tmotif\tpvalue\tscore\tscore_pct\tmatch"


def test_format_motif_summary(examples_dir):
    """Test the per-motif summary block"""
    config = create_scan_config()
    matrix = build_score_matrix(read_motifs(examples_dir / "gata.meme")[0], config)
    with prepare_motif(matrix, config) as prepared:
        summary = summarize_motif(matrix, prepared.distribution, prepared.threshold)

    text = format_motif_summary(summary, 1)
    lines = text.splitlines()

    assert lines[0] == "Motif: GATA1 (N1 L10)"
    assert lines[1].startswith("MaxScore=")
    assert "Threshold=" in lines[1]
    assert lines[2] == "Motif PWM:"
    assert len([line for line in lines if line.startswith("Score=")]) == 5
