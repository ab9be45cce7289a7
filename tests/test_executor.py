import polars as pl
import pytest

from seqproc.pipeline.compiler import compile_geometry
from seqproc.pipeline.executor import (
        FilterReport,
        MateRecord,
        PairedReadProcessor,
        PairedStreamError,
        open_paired_stream,
        write_paired,
)
from seqproc.pipeline.types import (
        AlignmentMode,
        Cut,
        GeometryPlan,
        MatchAnchor,
        MatchType,
        MatePlan,
        RightEnd,
        TransformExpr,
)
from conftest import make_pair, read_fastq


def processor(geometry, **kwargs):
    return PairedReadProcessor(compile_geometry(geometry), **kwargs)


def text(record, mate, name):
    m = record.mates[mate]
    return m.text(m.fields[name])


class TestRecordProcessing:
    def test_barcode_umi_fields(self):
        barcode, umi, cdna = "ACGTACGTACGTACGT", "TTTTCCCCGGGG", "AACCGGTTAA"
        record = make_pair(barcode + umi + cdna, "GGGGCCCC")
        assert processor("1{b[16]u[12]r:}2{r:}").process(record) is None

        assert record.mates[1].sequence == barcode + umi + cdna
        assert text(record, 1, "_l") == barcode
        assert text(record, 1, "_r_l") == umi
        assert text(record, 1, "_r_r") == cdna
        assert record.mates[2].sequence == "GGGGCCCC"

    def test_anchor_then_discard(self):
        proc = processor("1{b[4]f[ATGC]x[0-10]}2{r:}")
        record = make_pair("AAAA" + "ATGC" + "CCCCC")
        assert proc.process(record) is None
        assert record.mates[1].sequence == "AAAAATGC"
        assert text(record, 1, "_r_anchor") == "ATGC"

    def test_tail_beyond_range_is_trimmed(self):
        record = make_pair("AAAA" + "ATGC" + "C" * 15)
        assert processor("1{b[4]f[ATGC]x[0-10]}2{r:}").process(record) is None
        assert record.mates[1].sequence == "AAAAATGC"

    def test_missing_prefix_anchor_drops_record(self):
        proc = processor("1{b[4]f[ATGC]x[0-10]}2{r:}")
        # anchor present but not right after the barcode
        assert proc.process(make_pair("AAAAGATGCCC")) == 2

    def test_short_fixed_segment_drops_record(self):
        assert processor("1{b[4]f[ATGC]x[0-10]}2{r:}").process(make_pair("AA")) == 1

    def test_ranged_region_is_padded(self):
        record = make_pair("ACT" + "GG" + "TTTT")
        assert processor("1{u[2-5]f[GG]r:}2{r:}").process(record) is None
        mate = record.mates[1]
        assert mate.sequence == "ACTNNN" + "GG" + "TTTT"
        assert mate.quality == "III!!!" + "II" + "IIII"
        assert text(record, 1, "_l") == "ACTNNN"
        assert text(record, 1, "_anchor") == "GG"
        assert text(record, 1, "_r") == "TTTT"

    def test_empty_region_padding_stays_in_place(self):
        record = make_pair("ACGT" + "GG" + "TT")
        assert processor("1{b[4]u[0-2]f[GG]r:}2{r:}").process(record) is None
        assert record.mates[1].sequence == "ACGT" + "NNN" + "GGTT"
        assert text(record, 1, "_l") == "ACGT"
        assert text(record, 1, "_r_l") == "NNN"

    def test_ranged_region_too_long_drops_record(self):
        # leftmost GG ends a 7 bp region
        assert processor("1{u[2-5]f[GG]r:}2{r:}").process(make_pair("ACTCTAC" + "GG" + "TT")) == 1

    def test_local_anchor_missing_drops_record(self):
        assert processor("1{u[2-5]f[GG]r:}2{r:}").process(make_pair("ACTTT")) == 0

    def test_discard_before_anchor(self):
        record = make_pair("TTTTT" + "GATC" + "ACGT")
        assert processor("1{x:f[GATC]r:}2{r:}").process(record) is None
        assert record.mates[1].sequence == "GATCACGT"

    def test_trim_reindexes_later_fields(self):
        record = make_pair("NNN" + "AC" + "GTTT")
        assert processor("1{x[3]b[2]r:}2{r:}").process(record) is None
        assert record.mates[1].sequence == "ACGTTT"
        assert text(record, 1, "_r_l") == "AC"
        assert text(record, 1, "_r_r") == "GTTT"

    def test_terminal_ranged_is_cut_padded_and_trimmed(self):
        record = make_pair("ACGTAC")
        assert processor("1{r[2-4]}2{r:}").process(record) is None
        assert record.mates[1].sequence == "ACGTN"
        assert record.mates[1].quality == "IIII!"

    def test_terminal_ranged_too_short(self):
        assert processor("1{r[2-4]}2{r:}").process(make_pair("A")) == 1

    def test_leftover_frontier_removed(self):
        record = make_pair("ACGT")
        assert processor("1{b[2]}2{r:}").process(record) is None
        assert record.mates[1].sequence == "AC"

    def test_discarded_mate_is_emptied(self):
        record = make_pair("ACGT", "GGGG")
        assert processor("1{r:}2{x:}").process(record) is None
        assert record.mates[2].sequence == ""
        assert record.mates[1].sequence == "ACGT"

    def test_second_mate_operations(self):
        record = make_pair("ACGT", "CCAAGGTT")
        assert processor("1{r:}2{b[2]x:}").process(record) is None
        assert record.mates[2].sequence == "CC"

    def test_empty_anchor_always_matches(self):
        record = make_pair("ACGT")
        assert processor("1{b[2]f[]r:}2{r:}").process(record) is None
        assert record.mates[1].sequence == "ACGT"
        assert text(record, 1, "_r_anchor") == ""
        assert text(record, 1, "_r_r") == "GT"

    def test_empty_anchor_after_discard(self):
        record = make_pair("ACGT")
        assert processor("1{x:f[]r:}2{r:}").process(record) is None
        assert record.mates[1].sequence == "ACGT"


class TestCut:
    def processor(self, index):
        op = Cut(TransformExpr("seq1.*", ("seq1._l", "seq1._r")), index)
        return PairedReadProcessor(GeometryPlan("", (MatePlan(1, (op,)), MatePlan(2, ())))), op

    def test_right_end(self):
        proc, op = self.processor(RightEnd(3))
        record = make_pair("ACGTACGT")
        assert proc.apply(record, op)
        assert text(record, 1, "_l") == "ACGTA"
        assert text(record, 1, "_r") == "CGT"

    def test_right_end_past_start(self):
        proc, op = self.processor(RightEnd(20))
        record = make_pair("ACGT")
        assert proc.apply(record, op)
        assert text(record, 1, "_l") == ""
        assert text(record, 1, "_r") == "ACGT"


class TestAnchorMatching:
    def plan(self, identity=1.0, overlap=1.0):
        op = MatchAnchor(
                TransformExpr("seq1.*", ("seq1._anchor", "seq1._r")),
                "ACGTACGT",
                MatchType(AlignmentMode.PREFIX, identity=identity, overlap=overlap),
                retain="seq1._anchor")
        return GeometryPlan("", (MatePlan(1, (op,)), MatePlan(2, ())))

    def test_identity_allows_substitutions(self):
        proc = PairedReadProcessor(self.plan(identity=0.875))
        record = make_pair("ACGTTCGTGG")
        assert proc.process(record) is None
        assert text(record, 1, "_anchor") == "ACGTTCGT"
        assert text(record, 1, "_r") == "GG"

    def test_identity_limit(self):
        proc = PairedReadProcessor(self.plan(identity=0.875))
        assert proc.process(make_pair("AGGTTCGTGG")) == 0

    def test_exact_by_default(self):
        assert PairedReadProcessor(self.plan()).process(make_pair("ACGTTCGTGG")) == 0

    def test_partial_overlap_unsupported(self):
        with pytest.raises(ValueError):
            PairedReadProcessor(self.plan(overlap=0.5))

    def test_identity_bounds(self):
        with pytest.raises(ValueError):
            PairedReadProcessor(self.plan(identity=0.0))


class TestTransform:
    def test_order_and_report(self):
        proc = processor("1{b[4]f[ATGC]x[0-10]}2{r:}", chunk_size=2)
        records = [
            make_pair("AAAAATGCC", name="keep1"),
            make_pair("AAAAGGGGC", name="bad_anchor"),
            make_pair("AA", name="short"),
            make_pair("CCCCATGCA", name="keep2"),
        ]
        report = FilterReport(proc.plan)
        kept = list(proc.transform(records, report=report))

        assert [r.mates[1].name for r in kept] == ["keep1", "keep2"]
        assert report.records_in == 4
        assert report.records_out == 2
        assert report.records_dropped == 2
        assert report.drops == {1: 1, 2: 1}

        frame = report.to_frame()
        assert frame.height == len(proc.operations)
        assert frame.filter(pl.col('dropped') > 0)['step'].to_list() == [1, 2]

    def test_threads_must_be_positive(self):
        with pytest.raises(ValueError):
            list(processor("1{r:}2{r:}").transform([], threads=0))

    def test_chunk_size_must_be_positive(self):
        with pytest.raises(ValueError):
            processor("1{r:}2{r:}", chunk_size=0)


class TestStreams:
    def test_run_writes_only_surviving_pairs(self, write_fastq, tmp_path):
        r1 = write_fastq("r1.fq", [("a", "AAAAATGCCC"), ("b", "AAAATTTTCC"), ("c", "GGGGATGCTT")])
        r2 = write_fastq("r2.fq", [("a", "CCCC"), ("b", "GGGG"), ("c", "TTTT")])
        out1, out2 = tmp_path / "o1.fq", tmp_path / "o2.fq"

        report = processor("1{b[4]f[ATGC]x[0-10]}2{r:}").run(r1, r2, str(out1), str(out2))

        assert read_fastq(out1) == [("a", "AAAAATGC", "IIIIIIII"), ("c", "GGGGATGC", "IIIIIIII")]
        assert read_fastq(out2) == [("a", "CCCC", "IIII"), ("c", "TTTT", "IIII")]
        assert report.records_in == 3
        assert report.records_out == 2

    def test_unchanged_passthrough(self, write_fastq, tmp_path):
        r1 = write_fastq("r1.fq", [("a", "ACGT" * 10)])
        r2 = write_fastq("r2.fq", [("a", "TTGCA")])
        out1, out2 = tmp_path / "o1.fq", tmp_path / "o2.fq"

        processor("1{b[16]u[12]r:}2{r:}").run(r1, r2, str(out1), str(out2))

        assert read_fastq(out1)[0][1] == "ACGT" * 10
        assert read_fastq(out2)[0][1] == "TTGCA"

    def test_multiple_workers_keep_order(self, write_fastq, tmp_path):
        names = [f"r{i}" for i in range(25)]
        r1 = write_fastq("r1.fq", [(n, "AC" + "GT" * (i % 5)) for i, n in enumerate(names)])
        r2 = write_fastq("r2.fq", [(n, "TTTT") for n in names])
        out1, out2 = tmp_path / "o1.fq", tmp_path / "o2.fq"

        report = processor("1{b[2]r:}2{r:}", chunk_size=3).run(r1, r2, str(out1), str(out2), threads=2)

        assert [name for name, _, _ in read_fastq(out1)] == names
        assert report.records_out == 25

    def test_gzip_output(self, write_fastq, tmp_path):
        import gzip

        r1 = write_fastq("r1.fq", [("a", "ACGT")])
        r2 = write_fastq("r2.fq", [("a", "TTTT")])
        out1, out2 = tmp_path / "o1.fq.gz", tmp_path / "o2.fq.gz"
        processor("1{r:}2{r:}").run(r1, r2, str(out1), str(out2))

        with gzip.open(out1, 'rt') as fh:
            assert fh.read() == "@a\nACGT\n+\nIIII\n"

    def test_comment_is_preserved(self, tmp_path):
        record = MateRecord("a", "AC", "II", comment="1:N:0:1")
        assert record.to_fastq() == "@a 1:N:0:1\nAC\n+\nII\n"

    def test_unequal_inputs(self, write_fastq):
        r1 = write_fastq("r1.fq", [("a", "ACGT"), ("b", "ACGT")])
        r2 = write_fastq("r2.fq", [("a", "ACGT")])
        with pytest.raises(PairedStreamError):
            list(open_paired_stream(r1, r2))

    def test_missing_input(self, write_fastq, tmp_path):
        r1 = write_fastq("r1.fq", [("a", "ACGT")])
        with pytest.raises(FileNotFoundError):
            open_paired_stream(r1, str(tmp_path / "nope.fq"))

    def test_write_paired_counts(self, tmp_path):
        written = write_paired([make_pair("AC", "GT")], str(tmp_path / "a.fq"), str(tmp_path / "b.fq"))
        assert written == 1

    def test_report_written_as_tsv(self, tmp_path):
        proc = processor("1{b[4]f[ATGC]x[0-10]}2{r:}")
        report = FilterReport(proc.plan, records_in=3, records_out=1, drops={2: 2})
        path = tmp_path / "report.tsv"
        report.write(path)

        frame = pl.read_csv(path, separator='\t')
        assert frame.columns == ['mate', 'step', 'operation', 'dropped']
        assert frame['dropped'].sum() == 2
