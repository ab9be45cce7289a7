import pytest

from seqproc.pipeline.executor import MateRecord, PairedRecord


def fastq_text(records):
    return "".join(f"@{name}\n{seq}\n+\n{'I' * len(seq)}\n" for name, seq in records)


def read_fastq(path):
    """(name, sequence, quality) tuples of a small uncompressed FASTQ file"""
    with open(path) as fh:
        lines = fh.read().splitlines()
    return [(lines[i][1:], lines[i + 1], lines[i + 3]) for i in range(0, len(lines), 4)]


def make_pair(seq1, seq2="ACGTACGT", name="read"):
    return PairedRecord({
        1: MateRecord(name, seq1, 'I' * len(seq1)),
        2: MateRecord(name, seq2, 'I' * len(seq2)),
    })


@pytest.fixture
def write_fastq(tmp_path):
    """Writes ``[(name, seq), ...]`` as a FASTQ file under ``tmp_path``"""
    def _write(filename, records):
        path = tmp_path / filename
        path.write_text(fastq_text(records))
        return str(path)
    return _write
