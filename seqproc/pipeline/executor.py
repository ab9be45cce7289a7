"""
Reference executor for compiled geometries.

Interprets the operations of a :class:`~seqproc.pipeline.types.GeometryPlan`
against paired FASTQ records. Every mate keeps its sequence, its qualities and
a table of named intervals (fields) over the sequence. Records failing an
anchor match or a length check are dropped, never written truncated.

Typical use::

    plan = compile_geometry("1{b[16]u[12]x:}2{r:}")
    report = PairedReadProcessor(plan).run("R1.fq.gz", "R2.fq.gz", "o1.fq.gz", "o2.fq.gz", threads=4)
"""
import gzip
import itertools
from dataclasses import dataclass, field
from multiprocessing import Pool
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import polars as pl
import pysam
import regex

from seqproc.utils.log import Rlogger, call
from .types import (
        ALL_RECORDS,
        AlignmentMode,
        Cut,
        GeometryPlan,
        LeftEnd,
        LengthInBounds,
        MatchAnchor,
        Operation,
        Pad,
        RightEnd,
        Trim,
)

__all__ = [
        'PairedStreamError',
        'MateRecord',
        'PairedRecord',
        'FilterReport',
        'PairedReadProcessor',
        'open_paired_stream',
        'write_paired',
]

logger = Rlogger().get_logger()

WHOLE_READ = '*'
PAD_BASE = 'N'
PAD_QUAL = '!'
# quality string used for records without qualities
FAKE_QUAL = 'I'


class PairedStreamError(RuntimeError):
    """The two input streams do not hold the same number of records"""
    pass


@dataclass
class Interval:
    start: int
    end: int
    attrs: Dict[str, bool] = field(default_factory=dict)

    def __len__(self):
        return self.end - self.start


@dataclass
class MateRecord:
    name: str
    sequence: str
    quality: str
    comment: Optional[str] = None
    fields: Dict[str, Interval] = field(default_factory=dict)

    def get(self, name: str) -> Optional[Interval]:
        if name == WHOLE_READ:
            return Interval(0, len(self.sequence))
        return self.fields.get(name)

    def text(self, interval: Interval) -> str:
        return self.sequence[interval.start:interval.end]

    def splice(self, owner: str, start: int, end: int, insert: str = '', insert_qual: str = '') -> None:
        """Replace ``[start, end)`` by ``insert`` and re-index every field.

        The field named ``owner`` keeps its start and absorbs the change at its
        end, as do the fields it was split from (``_r`` for ``_r_l``). Positions
        inside the replaced span collapse onto ``start``.
        """
        delta = len(insert) - (end - start)
        self.sequence = self.sequence[:start] + insert + self.sequence[end:]
        self.quality = self.quality[:start] + insert_qual + self.quality[end:]

        def shift(position: int, grows: bool) -> int:
            if position < start:
                return position
            if position > end:
                return position + delta
            if start == end:
                return position + delta if grows else position
            return start if not insert else position + delta

        for name, interval in self.fields.items():
            if name == owner:
                interval.end = interval.end + delta
                continue
            encloses = owner.startswith(f"{name}_")
            new_start = shift(interval.start, grows=not encloses)
            new_end = shift(interval.end, grows=encloses)
            interval.start, interval.end = new_start, max(new_end, new_start)

    def to_fastq(self) -> str:
        header = self.name if not self.comment else f"{self.name} {self.comment}"
        return f"@{header}\n{self.sequence}\n+\n{self.quality}\n"


@dataclass
class PairedRecord:
    mates: Dict[int, MateRecord]

    def resolve(self, label: str) -> Tuple[MateRecord, str, Optional[str]]:
        """Split ``seqN.name[.attr]`` into the mate record, field name and attribute"""
        tag, dot, rest = label.partition('.')
        if not dot or not tag.startswith('seq') or not tag[3:].isdigit():
            raise ValueError(f"Invalid field label: {label!r}")
        mate = self.mates.get(int(tag[3:]))
        if mate is None:
            raise ValueError(f"Label {label!r} refers to a missing mate")
        name, _, attr = rest.partition('.')
        return mate, name, attr or None

    def selected(self, selector: str) -> bool:
        """Evaluate a selector: a field must exist, an attribute must be true"""
        if selector == ALL_RECORDS:
            return True
        mate, name, attr = self.resolve(selector)
        interval = mate.get(name)
        if interval is None:
            return False
        return True if attr is None else interval.attrs.get(attr, False)


def _fuzzy_pattern(pattern: str, identity: float):
    mismatches = int(len(pattern) * (1.0 - identity))
    if mismatches == 0:
        return regex.compile(regex.escape(pattern))
    return regex.compile(f"(?b)(?:{regex.escape(pattern)}){{s<={mismatches}}}")


class PairedReadProcessor:
    """Applies the operations of a plan to paired records.

    Args:
        plan: compiled geometry
        chunk_size: records handed to a worker at once
    """

    def __init__(self, plan: GeometryPlan, chunk_size: int = 256):
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self.plan = plan
        self.operations: Tuple[Operation, ...] = tuple(plan)
        self.chunk_size = chunk_size
        self._patterns = {}
        for op in self.operations:
            if isinstance(op, MatchAnchor):
                if op.match_type.overlap != 1.0:
                    raise ValueError(f"Partial anchor overlap is not supported: {op.describe()}")
                if not 0.0 < op.match_type.identity <= 1.0:
                    raise ValueError(f"Anchor identity must lie in (0, 1]: {op.describe()}")
                self._patterns[op] = _fuzzy_pattern(op.pattern, op.match_type.identity)

    def __getstate__(self):
        # compiled patterns are rebuilt in the worker
        state = self.__dict__.copy()
        state['_patterns'] = None
        return state

    def __setstate__(self, state):
        self.__dict__.update(state)
        self._patterns = {
                op: _fuzzy_pattern(op.pattern, op.match_type.identity)
                for op in self.operations if isinstance(op, MatchAnchor)}

    # -- per operation

    def _cut(self, record: PairedRecord, op: Cut) -> bool:
        mate, name, _ = record.resolve(op.transform.source)
        source = mate.get(name)
        if source is None:
            return True
        if isinstance(op.index, LeftEnd):
            split = min(source.start + op.index.index, source.end)
        elif isinstance(op.index, RightEnd):
            split = max(source.end - op.index.index, source.start)
        else:
            raise ValueError(f"Unsupported cut index: {op.index!r}")
        left, right = (record.resolve(t)[1] for t in op.transform.targets)
        mate.fields[left] = Interval(source.start, split)
        mate.fields[right] = Interval(split, source.end)
        return True

    def _match(self, record: PairedRecord, op: MatchAnchor) -> bool:
        mate, name, _ = record.resolve(op.transform.source)
        source = mate.get(name)
        if source is not None:
            pattern = self._patterns[op]
            if op.match_type.mode is AlignmentMode.PREFIX:
                hit = pattern.match(mate.sequence, source.start, source.end)
            else:
                hit = pattern.search(mate.sequence, source.start, source.end)

            if hit is not None:
                targets = [record.resolve(t)[1] for t in op.transform.targets]
                spans = [(hit.start(), hit.end()), (hit.end(), source.end)]
                if op.match_type.mode is AlignmentMode.LOCAL:
                    spans.insert(0, (source.start, hit.start()))
                for target, (start, end) in zip(targets, spans):
                    mate.fields[target] = Interval(start, end)
        return record.selected(op.retain)

    def _length(self, record: PairedRecord, op: LengthInBounds) -> bool:
        mate, name, _ = record.resolve(op.transform.source)
        source = mate.get(name)
        if source is not None:
            _, target, attr = record.resolve(op.transform.targets[0])
            holder = mate.fields.get(target)
            if holder is None:
                holder = mate.fields[target] = Interval(source.start, source.end)
            holder.attrs[attr or "v_len"] = op.minimum <= len(source) <= op.maximum
        return record.selected(op.retain)

    def _pad(self, record: PairedRecord, op: Pad) -> bool:
        for label in op.labels:
            mate, name, _ = record.resolve(label)
            interval = mate.get(name)
            if interval is None or len(interval) >= op.length:
                continue
            missing = op.length - len(interval)
            mate.splice(name, interval.end, interval.end, PAD_BASE * missing, PAD_QUAL * missing)
        return True

    def _trim(self, record: PairedRecord, op: Trim) -> bool:
        for label in op.labels:
            mate, name, _ = record.resolve(label)
            interval = mate.get(name)
            if interval is None:
                continue
            mate.splice(name, interval.start, interval.end)
        return True

    def apply(self, record: PairedRecord, op: Operation) -> bool:
        """Apply one operation, returns False when the record is dropped"""
        if not record.selected(op.selector):
            return True
        if isinstance(op, Cut):
            return self._cut(record, op)
        if isinstance(op, MatchAnchor):
            return self._match(record, op)
        if isinstance(op, LengthInBounds):
            return self._length(record, op)
        if isinstance(op, Pad):
            return self._pad(record, op)
        if isinstance(op, Trim):
            return self._trim(record, op)
        raise TypeError(f"Unknown operation: {op!r}")

    def process(self, record: PairedRecord) -> Optional[int]:
        """Run every operation on ``record`` in place.

        Returns:
            ``None`` if the record survives, else the index of the dropping operation
        """
        for step, op in enumerate(self.operations):
            if not self.apply(record, op):
                return step
        return None

    def process_chunk(self, records: Sequence[PairedRecord]) -> Tuple[List[PairedRecord], List[int]]:
        kept, dropped = [], []
        for record in records:
            step = self.process(record)
            if step is None:
                kept.append(record)
            else:
                dropped.append(step)
        return kept, dropped

    # -- streams

    def _chunks(self, records: Iterable[PairedRecord]) -> Iterator[List[PairedRecord]]:
        iterator = iter(records)
        while True:
            chunk = list(itertools.islice(iterator, self.chunk_size))
            if not chunk:
                return
            yield chunk

    def transform(self, records: Iterable[PairedRecord], threads: int = 1, report: Optional["FilterReport"] = None) -> Iterator[PairedRecord]:
        """Lazily process ``records``, preserving input order"""
        if threads < 1:
            raise ValueError(f"threads must be positive, got {threads}")
        report = report if report is not None else FilterReport(self.plan)

        if threads == 1:
            results = map(self.process_chunk, self._chunks(records))
            yield from report.consume(results)
            return

        with Pool(threads) as pool:
            results = pool.imap(self.process_chunk, self._chunks(records))
            yield from report.consume(results)

    @call
    def run(self, file1: str, file2: str, out1: str, out2: str, threads: int = 1) -> "FilterReport":
        """Stream both inputs through the plan and write the surviving pairs"""
        report = FilterReport(self.plan)
        records = open_paired_stream(file1, file2)
        write_paired(self.transform(records, threads=threads, report=report), out1, out2)
        report.log()
        return report


@dataclass
class FilterReport:
    """Counts of records read, written and dropped per operation"""
    plan: GeometryPlan
    records_in: int = 0
    records_out: int = 0
    drops: Dict[int, int] = field(default_factory=dict)

    def consume(self, results: Iterable[Tuple[List[PairedRecord], List[int]]]) -> Iterator[PairedRecord]:
        for kept, dropped in results:
            self.records_in += len(kept) + len(dropped)
            self.records_out += len(kept)
            for step in dropped:
                self.drops[step] = self.drops.get(step, 0) + 1
            yield from kept

    @property
    def records_dropped(self) -> int:
        return self.records_in - self.records_out

    def to_frame(self) -> pl.DataFrame:
        rows = []
        step = 0
        for mate in self.plan.mates:
            for op in mate.operations:
                rows.append({
                    'mate': mate.mate_index,
                    'step': step,
                    'operation': op.describe(),
                    'dropped': self.drops.get(step, 0),
                })
                step += 1
        schema = {'mate': pl.Int64, 'step': pl.Int64, 'operation': pl.Utf8, 'dropped': pl.Int64}
        return pl.DataFrame(rows, schema=schema)

    def write(self, path: str | Path) -> None:
        """Write the per-operation table, parquet if the suffix asks for it, else TSV"""
        df = self.to_frame()
        path_str = str(path)
        Path(path_str).parent.mkdir(parents=True, exist_ok=True)
        if path_str.endswith('.parquet'):
            df.write_parquet(path_str)
        else:
            df.write_csv(path_str, separator='\t')
        logger.io(f"filter report written to {path_str}")

    def log(self) -> None:
        logger.info(f"records read: {self.records_in}, written: {self.records_out}, dropped: {self.records_dropped}")
        for row in self.to_frame().filter(pl.col('dropped') > 0).iter_rows(named=True):
            logger.info(f"  mate {row['mate']} {row['operation']}: {row['dropped']} dropped")


def _mate_record(entry) -> MateRecord:
    quality = entry.quality if entry.quality is not None else FAKE_QUAL * len(entry.sequence)
    return MateRecord(entry.name, entry.sequence, quality, entry.comment)


def open_paired_stream(file1: str, file2: str) -> Iterator[PairedRecord]:
    """Iterate over the records of two FASTQ files in lockstep.

    Raises:
        PairedStreamError: one file ends before the other
    """
    for path in (file1, file2):
        if not Path(path).exists():
            raise FileNotFoundError(f"Input file not found: {path}")

    logger.io(f"reading {file1} and {file2}")
    return _iter_pairs(file1, file2)


def _iter_pairs(file1: str, file2: str) -> Iterator[PairedRecord]:
    with pysam.FastxFile(str(file1)) as r1, pysam.FastxFile(str(file2)) as r2:
        for n, (e1, e2) in enumerate(itertools.zip_longest(r1, r2)):
            if e1 is None or e2 is None:
                shorter = file1 if e1 is None else file2
                raise PairedStreamError(f"{shorter} ended after {n} records while its mate file continues")
            yield PairedRecord({1: _mate_record(e1), 2: _mate_record(e2)})


def _open_out(path: str):
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    if str(path).endswith('.gz'):
        return gzip.open(path, 'wt')
    return open(path, 'w')


def write_paired(records: Iterable[PairedRecord], out1: str, out2: str) -> int:
    """Write mate 1 and mate 2 of every record, returns the number of pairs written"""
    written = 0
    with _open_out(out1) as o1, _open_out(out2) as o2:
        for record in records:
            o1.write(record.mates[1].to_fastq())
            o2.write(record.mates[2].to_fastq())
            written += 1
    logger.io(f"wrote {written} pairs to {out1} and {out2}")
    return written
