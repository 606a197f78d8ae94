"""
Tests for the high-level library API in motifscan.api.
"""

import numpy as np
import pytest

from motifscan.api import build_matrices, scan_consensus, scan_motifs
from motifscan.config import create_scan_config
from motifscan.errors import MotifError
from motifscan.models import MotifRecord, build_score_matrix

PURE_A = MotifRecord(name="pureA", probs=np.array([[1.0, 0.0, 0.0, 0.0]]))


def test_scan_motifs_records_and_strings():
    """Test scanning in-memory records against plain strings"""
    frame = scan_motifs(PURE_A, ["AAAA"], pvalue=1.0)

    assert len(frame) == 8
    assert frame["seqname"].unique().tolist() == ["1"]
    assert frame.loc[frame["strand"] == "+", "pvalue"].tolist() == pytest.approx([0.25] * 4)


def test_scan_motifs_files(examples_dir):
    """Test scanning motif and FASTA files with name trimming"""
    frame = scan_motifs(examples_dir / "gata.jaspar", examples_dir / "sequences.fa", trim=True, pvalue=0.001)

    assert not frame.empty
    assert set(frame["motif"]) == {"MA0035.4"}
    assert set(frame["seqname"]) <= {"chr1_fragment", "chr2_fragment", "chr3_fragment"}
    assert (frame["pvalue"] < 0.001).all()


def test_scan_motifs_dict_sequences():
    """Test that dict keys name the sequences"""
    frame = scan_motifs(PURE_A, {"first": "AC", "second": "CA"}, pvalue=1.0, scan_rc=False)

    assert frame["seqname"].tolist() == ["first", "first", "second", "second"]


def test_scan_motifs_non_ascii_sequence():
    """Test that non-ASCII symbols are skipped without shifting positions"""
    frame = scan_motifs(PURE_A, {"s": "A\u00e9AA"}, pvalue=1.0, scan_rc=False)

    assert frame["start"].tolist() == [1, 3, 4]
    assert frame["match"].tolist() == ["A", "A", "A"]


def test_scan_motifs_config_conflict():
    """Test that a config object and config kwargs cannot be mixed"""
    with pytest.raises(ValueError):
        scan_motifs(PURE_A, ["A"], config=create_scan_config(), pvalue=0.1)


def test_build_matrices_names():
    """Test motif deduplication and prebuilt matrices"""
    config = create_scan_config()
    prebuilt = build_score_matrix(PURE_A, config)

    with pytest.raises(MotifError):
        build_matrices([PURE_A, prebuilt], config)

    matrices = build_matrices([PURE_A, prebuilt], config, dedup=True)
    assert [m.name for m in matrices] == ["pureA__N1_L0", "pureA__N2_L0"]
    np.testing.assert_array_equal(matrices[0].pwm, matrices[1].pwm)


def test_scan_consensus():
    """Test exact IUPAC consensus scanning"""
    frame = scan_consensus("GATW", ["CCGATAGGATTGATC"], scan_rc=False)

    assert frame["start"].tolist() == [3, 8]
    assert frame["match"].tolist() == ["GATA", "GATT"]
