import gzip

import pytest

from lncpy import windows
from lncpy.errors import ConfigurationError, UnsortedInputError
from lncpy.lncpyClasses import Annotation, Interval, WindowTile
from lncpy.windows import (
    count_record,
    coverage_record,
    first_window_start,
    percent_masked,
    tile,
    unmasked_bases,
)


def iv(chrom, start, end):
    return Interval(chrom, start, end)


def spans(tiles):
    return [(t.window.chrom, t.window.start, t.window.end) for t in tiles]


def test_population_and_coverage_of_first_window():
    items = [iv("chr1", 0, 500), iv("chr1", 800, 1200)]
    tiles = list(tile(items, 1000, 1000))
    assert spans(tiles) == [("chr1", 0, 1000), ("chr1", 1000, 2000)]
    first = tiles[0]
    assert first.population == tuple(items)
    assert unmasked_bases(first) == 300
    assert percent_masked(first) == pytest.approx(0.70)
    assert tiles[1].population == (items[1],)


def test_overlapping_windows_share_items():
    items = [iv("chr1", 0, 500), iv("chr1", 800, 1200)]
    tiles = list(tile(items, 1000, 500))
    assert spans(tiles) == [("chr1", 0, 1000), ("chr1", 500, 1500), ("chr1", 1000, 2000)]
    assert [len(t.population) for t in tiles] == [2, 1, 1]
    assert all(items[1] in t.population for t in tiles)


def test_gapped_windows_can_miss_items():
    items = [iv("chr1", 150, 160), iv("chr1", 320, 330)]
    tiles = list(tile(items, 100, 300))
    assert spans(tiles) == [("chr1", 300, 400)]
    assert tiles[0].population == (items[1],)


def test_empty_windows_between_items():
    items = [iv("chr1", 0, 50), iv("chr1", 350, 360)]
    tiles = list(tile(items, 100))
    assert spans(tiles) == [
        ("chr1", 0, 100), ("chr1", 100, 200), ("chr1", 200, 300), ("chr1", 300, 400)
    ]
    assert [len(t.population) for t in tiles] == [1, 0, 0, 1]


def test_first_window_on_grid():
    assert first_window_start(0, 1000, 1000) == 0
    assert first_window_start(999, 1000, 1000) == 0
    assert first_window_start(1000, 1000, 1000) == 1000
    assert first_window_start(1200, 1000, 500) == 500
    tiles = list(tile([iv("chr1", 5500, 5600)], 1000))
    assert spans(tiles) == [("chr1", 5000, 6000)]


def test_references_in_input_order():
    items = [iv("chr2", 10, 20), iv("chr2", 30, 40), iv("chr1", 0, 5)]
    tiles = list(tile(items, 100))
    assert spans(tiles) == [("chr2", 0, 100), ("chr1", 0, 100)]
    assert len(tiles[0].population) == 2


def test_long_item_spans_many_windows():
    tiles = list(tile([iv("chr1", 50, 350)], 100))
    assert spans(tiles) == [("chr1", 0, 100), ("chr1", 100, 200), ("chr1", 200, 300), ("chr1", 300, 400)]
    assert [percent_masked(t) for t in tiles] == pytest.approx([0.5, 1.0, 1.0, 0.5])


def test_unsorted_starts_raise():
    with pytest.raises(UnsortedInputError):
        list(tile([iv("chr1", 500, 600), iv("chr1", 100, 200)], 1000))


def test_reference_reappearing_raises():
    items = [iv("chr1", 0, 10), iv("chr2", 0, 10), iv("chr1", 20, 30)]
    with pytest.raises(UnsortedInputError):
        list(tile(items, 100))


def test_bad_sizes_raise_before_iteration():
    def never():
        raise AssertionError("input must not be read")
        yield

    with pytest.raises(ConfigurationError):
        tile(never(), 0)
    with pytest.raises(ConfigurationError):
        tile(never(), 100, -5)


def test_empty_input():
    assert list(tile([], 100)) == []


def test_masked_plus_unmasked_is_window_span():
    window = Interval("chr1", 0, 1000)
    population = (iv("chr1", 10, 100), iv("chr1", 50, 300), iv("chr1", 600, 700))
    t = WindowTile(window, population)
    covered = 290 + 100
    assert unmasked_bases(t) + covered == window.span


def test_spliced_mask_items_only_count_blocks():
    item = Annotation.from_blocks("chr1", [(0, 100), (900, 1000)])
    t = WindowTile(Interval("chr1", 0, 1000), (item,))
    assert percent_masked(t) == pytest.approx(0.2)


def test_records():
    items = [iv("chr1", 0, 500), iv("chr1", 800, 1200)]
    first = next(tile(items, 1000))
    assert coverage_record(first).to_line() == "chr1\t0\t1000\tchr1:0-1000\t0.7000\t.\n"
    assert count_record(first).to_line() == "chr1\t0\t1000\t.\t2\t.\n"
    empty = WindowTile(Interval("chr1", 0, 10), ())
    assert coverage_record(empty).score == "0.0000"


def test_quantify_mask(tmp_path):
    mask = tmp_path / "mask.bed"
    mask.write_text("chr1\t0\t500\nchr1\t800\t1200\nchr2\t0\t1000\n")
    out = tmp_path / "masked.bed"
    assert windows.quantify_mask(mask, out, window=1000) == 0
    assert out.read_text().splitlines() == [
        "chr1\t0\t1000\tchr1:0-1000\t0.7000\t.",
        "chr1\t1000\t2000\tchr1:1000-2000\t0.2000\t.",
        "chr2\t0\t1000\tchr2:0-1000\t1.0000\t.",
    ]


def test_quantify_mask_unsorted_input_fails(tmp_path):
    mask = tmp_path / "mask.bed"
    mask.write_text("chr1\t800\t1200\nchr1\t0\t500\n")
    assert windows.quantify_mask(mask, tmp_path / "out.bed", window=1000) == 1


def test_count_windows_bad_stagger(tmp_path):
    assert windows.count_windows(tmp_path / "in.bed", tmp_path / "out.bed", stagger=0) == 2


def test_count_windows_from_bam(tmp_path, fake_bam, make_read):
    fake_bam([
        make_read("a", "chr1", 10, "20M"),
        make_read("b", "chr1", 90, "20M", flag=0x1 | 0x40),
        make_read("c", "chr1", 150, "10M"),
    ])
    out = tmp_path / "counts.bed.gz"
    assert windows.count_windows("reads.bam", out, window=100) == 0
    with gzip.open(out, "rt") as fh:
        assert fh.read().splitlines() == [
            "chr1\t0\t100\t.\t2\t.",
            "chr1\t100\t200\t.\t2\t.",
        ]
