import gzip
import logging

import pytest

from lncpy.bedio import BedWriter, annotation_record, parse_bed_line, read_bed
from lncpy.errors import UnsortedInputError
from lncpy.lncpyClasses import BOTH, MINUS, Interval


def test_parse_bed3():
    a = parse_bed_line("chr1\t10\t20\n")
    assert a.blocks == (Interval("chr1", 10, 20, BOTH),)
    assert a.name == "."


def test_parse_bed6_strand():
    a = parse_bed_line("chr1\t10\t20\tfoo\t0\t-\n")
    assert a.name == "foo"
    assert a.strand == MINUS


def test_parse_bed12_blocks():
    a = parse_bed_line("chr1\t100\t400\tg1\t0\t+\t100\t400\t0\t2\t100,100,\t0,200,\n")
    assert [(b.start, b.end) for b in a.blocks] == [(100, 200), (300, 400)]
    assert a.span == 300


def test_parse_bed12_bad_block_count():
    with pytest.raises(ValueError):
        parse_bed_line("chr1\t100\t400\tg1\t0\t+\t100\t400\t0\t3\t100,100,\t0,200,\n")


def test_parse_bed12_unsorted_blocks():
    with pytest.raises(UnsortedInputError):
        parse_bed_line("chr1\t100\t400\tg1\t0\t+\t100\t400\t0\t2\t100,100,\t200,0,\n")


def test_read_bed_skips_headers_and_malformed(tmp_path, caplog):
    bed = tmp_path / "genes.bed.gz"
    with gzip.open(bed, "wt") as fh:
        fh.write("# comment\ntrack name=x\nbrowser position chr1\n\n")
        fh.write("chr1\t10\t20\ta\t0\t+\n")
        fh.write("chr1\tten\t20\n")
        fh.write("chr1\t30\t30\n")
        fh.write("chr2\t5\t15\tb\t0\t-\n")
    logger = logging.getLogger("lncpy.test")
    with caplog.at_level(logging.WARNING, logger="lncpy.test"):
        recs = list(read_bed(bed, logger=logger))
    assert [r.name for r in recs] == ["a", "b"]
    assert caplog.text.count("skipping malformed BED line") == 2


def test_bed_writer_plain_and_gz(tmp_path):
    rec = annotation_record(Interval("chr1", 1, 5), score="0.5000")
    for name in ("out/plain.bed", "out/packed.bed.gz"):
        path = tmp_path / name
        with BedWriter(path) as bw:
            bw.write(rec)
            bw.write(rec)
        assert bw.count == 2
        opener = gzip.open if name.endswith(".gz") else open
        with opener(path, "rt") as fh:
            assert fh.read() == "chr1\t1\t5\t.\t0.5000\t.\n" * 2
