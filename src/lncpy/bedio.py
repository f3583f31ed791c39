from __future__ import annotations
from pathlib import Path
import gzip
import logging
from typing import Iterator, List, Optional, TextIO, Tuple

from .lncpyClasses import Annotation, BedRecord, normalize_strand


def _open_text_auto(path: str | Path, mode: str = "rt") -> TextIO:
    p = Path(path)
    if p.suffix.lower() == ".gz":
        return gzip.open(p, mode, encoding="utf-8", errors="replace")
    return open(p, mode, encoding="utf-8", errors="replace")


def _is_header(line: str) -> bool:
    return line.startswith(("#", "track", "browser"))


def _block_spans(cols: List[str], start: int, end: int) -> List[Tuple[int, int]]:
    """BED12 blockSizes/blockStarts as absolute (start, end) spans."""
    count = int(cols[9])
    sizes = [int(x) for x in cols[10].rstrip(",").split(",") if x]
    starts = [int(x) for x in cols[11].rstrip(",").split(",") if x]
    if count != len(sizes) or count != len(starts):
        raise ValueError(f"blockCount={count} does not match blockSizes/blockStarts")
    spans = [(start + s, start + s + z) for s, z in zip(starts, sizes)]
    if spans and max(e for _, e in spans) != end:
        raise ValueError(f"blocks end at {max(e for _, e in spans)}, record ends at {end}")
    return spans


def parse_bed_line(line: str) -> Annotation:
    """
    Parse one BED3-BED12 line into an Annotation.
    Columns 4 and 6 are optional (name '.', strand '.'); BED12 block columns
    produce one block per exon.
    """
    cols = line.rstrip("\n").split("\t")
    if len(cols) < 3:
        raise ValueError(f"expected at least 3 columns, got {len(cols)}")
    chrom = cols[0]
    start = int(cols[1])
    end = int(cols[2])
    name = cols[3] if len(cols) > 3 and cols[3] else "."
    strand = normalize_strand(cols[5]) if len(cols) > 5 else "."
    if len(cols) >= 12:
        spans = _block_spans(cols, start, end)
    else:
        spans = [(start, end)]
    return Annotation.from_blocks(chrom, spans, strand=strand, name=name)


def read_bed(
    path: str | Path,
    logger: logging.Logger | None = None,
) -> Iterator[Annotation]:
    """Stream annotations from a (possibly gzipped) BED file; malformed lines are skipped."""
    skipped = 0
    n = 0
    with _open_text_auto(path) as fh:
        for lineno, line in enumerate(fh, start=1):
            if not line.strip() or _is_header(line):
                continue
            try:
                rec = parse_bed_line(line)
            except ValueError as e:
                skipped += 1
                if logger:
                    logger.warning(f"{path}:{lineno}: skipping malformed BED line ({e})")
                continue
            n += 1
            yield rec

    if logger:
        logger.info(f"Read {n:,} BED records from {path}" + (f" ({skipped} skipped)" if skipped else ""))


class BedWriter:
    """Append-only BED6 sink; gzip-compressed when the path ends with .gz."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if self.path.suffix.lower() == ".gz":
            self._fh = gzip.open(self.path, "wt", encoding="utf-8")
        else:
            self._fh = open(self.path, "wt", encoding="utf-8")
        self.count = 0

    def write(self, record: BedRecord) -> None:
        self._fh.write(record.to_line())
        self.count += 1

    def close(self) -> None:
        self._fh.close()

    def __enter__(self) -> BedWriter:
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def annotation_record(annot, score: Optional[str] = None) -> BedRecord:
    """BED6 line for an annotation, alignment or interval (span only)."""
    return BedRecord(
        chrom=annot.chrom,
        start=annot.start,
        end=annot.end,
        name=getattr(annot, "name", "."),
        score=score if score is not None else ".",
        strand=annot.strand,
    )
