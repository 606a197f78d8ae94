from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

# Byte -> symbol code. A/C/G/T(U) in either case map to 0..3, anything else to 4.
SYMBOL_CODES = np.full(256, 4, dtype=np.int8)
for _char, _code in zip(b"ACGTUacgtu", [0, 1, 2, 3, 3] * 2, strict=True):
    SYMBOL_CODES[_char] = _code


def encode_symbols(raw: np.ndarray) -> np.ndarray:
    """Map raw sequence bytes to symbol codes 0..4."""
    return SYMBOL_CODES[raw]


class RaggedData:
    """
    Variable-length arrays stored as one flat buffer plus offsets.

    Sequence ``i`` occupies ``data[offsets[i]:offsets[i + 1]]``. Slices are
    views, so scanning never copies sequence data.
    """

    def __init__(self, data: np.ndarray, offsets: np.ndarray):
        """Initialize the RaggedData object."""
        self.data = data
        self.offsets = offsets

    def get_length(self, i: int) -> int:
        """Return the length of the i-th sequence."""
        return int(self.offsets[i + 1] - self.offsets[i])

    def get_slice(self, i: int) -> np.ndarray:
        """Return a slice of data for the i-th sequence (view)."""
        return self.data[self.offsets[i] : self.offsets[i + 1]]

    def total_elements(self) -> int:
        """Return the total number of elements across all sequences."""
        return int(self.data.size)

    @property
    def num_sequences(self) -> int:
        """Return the number of sequences."""
        return self.offsets.size - 1


def ragged_from_list(data_list: List[np.ndarray], dtype=None) -> RaggedData:
    """Create RaggedData from a list of numpy arrays."""
    if len(data_list) == 0:
        return RaggedData(np.empty(0, dtype=dtype if dtype else np.uint8), np.zeros(1, dtype=np.int64))

    if dtype is None:
        dtype = data_list[0].dtype

    lengths = np.fromiter((len(item) for item in data_list), dtype=np.int64, count=len(data_list))
    offsets = np.zeros(len(data_list) + 1, dtype=np.int64)
    offsets[1:] = np.cumsum(lengths)

    data = np.empty(offsets[-1], dtype=dtype)
    for i, item in enumerate(data_list):
        data[offsets[i] : offsets[i + 1]] = item

    return RaggedData(data, offsets)


@dataclass
class SequenceSet:
    """Named sequences as loaded, plus their symbol codes.

    Attributes
    ----------
    names : list of str
        Sequence names in load order.
    line_nums : list of int
        Line of each header in the source file (0 when built in memory).
    raw : RaggedData
        Raw sequence bytes (uint8), used for reporting matched text.
    codes : RaggedData
        Symbol codes (int8, 0..4) sharing ``raw``'s offsets.
    """

    names: List[str]
    line_nums: List[int]
    raw: RaggedData
    codes: RaggedData = field(init=False, repr=False)

    def __post_init__(self):
        self.codes = RaggedData(encode_symbols(self.raw.data), self.raw.offsets)

    def __len__(self) -> int:
        return self.raw.num_sequences

    def text(self, i: int, start: int, end: int) -> str:
        """Return the literal text of sequence ``i`` between ``start`` and ``end``."""
        return self.raw.get_slice(i)[start:end].tobytes().decode("ascii", errors="replace")


def sequence_set_from_strings(
    sequences: List[str], names: Optional[List[str]] = None, line_nums: Optional[List[int]] = None
) -> SequenceSet:
    """Build a :class:`SequenceSet` from in-memory strings."""
    if names is None:
        names = [str(i + 1) for i in range(len(sequences))]
    if line_nums is None:
        line_nums = [0] * len(sequences)
    if len(names) != len(sequences) or len(line_nums) != len(sequences):
        raise ValueError("names, line_nums and sequences must have the same length")

    # one byte per character; non-ASCII symbols become "?" and are never scored
    arrays = [
        np.frombuffer(seq.replace(" ", "").encode("ascii", errors="replace"), dtype=np.uint8) for seq in sequences
    ]
    return SequenceSet(list(names), list(line_nums), ragged_from_list(arrays, dtype=np.uint8))
