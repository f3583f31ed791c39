from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Tuple

from .errors import UnsortedInputError

PLUS = "+"
MINUS = "-"
BOTH = "."
STRANDS = (PLUS, MINUS, BOTH)


def normalize_strand(strand: str | None) -> str:
    """Map BED/BAM strand symbols to '+', '-' or '.' (both)."""
    if strand in (PLUS, MINUS):
        return strand
    return BOTH


def strands_compatible(a: str, b: str) -> bool:
    return a == BOTH or b == BOTH or a == b


# Genomic interval, 0-based half-open
@dataclass(frozen=True, order=True)
class Interval:
    chrom: str
    start: int
    end: int
    strand: str = BOTH

    def __post_init__(self):
        if self.start < 0:
            raise ValueError(f"Interval start must be >= 0: {self.chrom}:{self.start}-{self.end}")
        if self.end <= self.start:
            raise ValueError(f"Interval end must be > start: {self.chrom}:{self.start}-{self.end}")
        if self.strand not in STRANDS:
            raise ValueError(f"Unknown strand {self.strand!r}")

    @property
    def size(self) -> int:
        return self.end - self.start

    span = size

    @property
    def body(self) -> Interval:
        return self

    def with_strand(self, strand: str) -> Interval:
        return Interval(self.chrom, self.start, self.end, strand)

    def __str__(self) -> str:
        return f"{self.chrom}:{self.start}-{self.end}({self.strand})"


@dataclass(frozen=True)
class Annotation:
    """
    Spliced feature made of one or more blocks on a single reference and strand.
    Blocks must be sorted by start; they are allowed to overlap (padded exons).
    """
    blocks: Tuple[Interval, ...]
    name: str = BOTH

    def __post_init__(self):
        if not self.blocks:
            raise ValueError("Annotation needs at least one block")
        first = self.blocks[0]
        for prev, b in zip(self.blocks, self.blocks[1:]):
            if b.chrom != first.chrom or b.strand != first.strand:
                raise ValueError(f"Annotation {self.name!r} mixes references or strands")
            if b.start < prev.start:
                raise UnsortedInputError(
                    f"Blocks of {self.name!r} are not sorted by start ({prev} before {b})"
                )

    @classmethod
    def from_blocks(
        cls,
        chrom: str,
        spans: Iterable[Tuple[int, int]],
        strand: str = BOTH,
        name: str = BOTH,
    ) -> Annotation:
        return cls(tuple(Interval(chrom, s, e, strand) for s, e in spans), name=name)

    @property
    def chrom(self) -> str:
        return self.blocks[0].chrom

    @property
    def strand(self) -> str:
        return self.blocks[0].strand

    @property
    def start(self) -> int:
        return self.blocks[0].start

    @property
    def end(self) -> int:
        # padded blocks may overlap, so the last block is not always the rightmost
        return max(b.end for b in self.blocks)

    @property
    def body(self) -> Interval:
        return Interval(self.chrom, self.start, self.end, self.strand)

    @property
    def span(self) -> int:
        return self.end - self.start

    @property
    def size(self) -> int:
        return sum(b.size for b in self.blocks)

    def with_strand(self, strand: str) -> Annotation:
        return Annotation(tuple(b.with_strand(strand) for b in self.blocks), name=self.name)

    def __str__(self) -> str:
        return f"{self.name} {self.chrom}:{self.start}-{self.end}({self.strand}) blocks={len(self.blocks)}"


@dataclass(frozen=True)
class Alignment(Annotation):
    """A mapped read (or read pair) with its splice flag."""
    spliced: bool = False
    mapq: int = 255


@dataclass
class BedRecord:
    chrom: str
    start: int
    end: int
    name: str = BOTH
    score: str = BOTH
    strand: str = BOTH

    def to_line(self) -> str:
        return f"{self.chrom}\t{self.start}\t{self.end}\t{self.name}\t{self.score}\t{self.strand}\n"


# Window produced by the tiler; population holds overlapping input items in input order
@dataclass(frozen=True)
class WindowTile:
    window: Interval
    population: Tuple = field(default_factory=tuple)

    @property
    def name(self) -> str:
        w = self.window
        return f"{w.chrom}:{w.start}-{w.end}"


# ----------------------------
# Set operations on spans
# ----------------------------
def overlaps(a, b) -> bool:
    """Same reference, intersecting spans and compatible strands."""
    return (
        a.chrom == b.chrom
        and a.start < b.end
        and b.start < a.end
        and strands_compatible(a.strand, b.strand)
    )


def contains(outer, inner) -> bool:
    return (
        outer.chrom == inner.chrom
        and outer.start <= inner.start
        and inner.end <= outer.end
        and strands_compatible(outer.strand, inner.strand)
    )


def union(intervals: Iterable) -> List[Interval]:
    """
    Merge overlapping or adjacent spans into maximal disjoint intervals.
    Strand is ignored; results are strand '.' and sorted by (chrom, start).
    """
    spans = sorted((iv.chrom, iv.start, iv.end) for iv in intervals)
    merged: List[Interval] = []
    for chrom, s, e in spans:
        if merged and merged[-1].chrom == chrom and s <= merged[-1].end:
            last = merged[-1]
            if e > last.end:
                merged[-1] = Interval(chrom, last.start, e, BOTH)
            continue
        merged.append(Interval(chrom, s, e, BOTH))
    return merged


def subtract(a: Interval, b) -> List[Interval]:
    """Part of a not covered by b: zero, one or two intervals."""
    if a.chrom != b.chrom or b.end <= a.start or a.end <= b.start:
        return [a]
    out: List[Interval] = []
    if a.start < b.start:
        out.append(Interval(a.chrom, a.start, b.start, a.strand))
    if b.end < a.end:
        out.append(Interval(a.chrom, b.end, a.end, a.strand))
    return out


def minus(a: Interval, others: Iterable) -> List[Interval]:
    remaining = [a]
    for b in others:
        remaining = [piece for r in remaining for piece in subtract(r, b)]
        if not remaining:
            break
    return remaining


def total_size(intervals: Iterable) -> int:
    return sum(iv.size for iv in intervals)


def clip(iv, window: Interval) -> Interval | None:
    """Restrict a span to the window; None if they do not intersect."""
    if iv.chrom != window.chrom:
        return None
    s = max(iv.start, window.start)
    e = min(iv.end, window.end)
    if e <= s:
        return None
    return Interval(window.chrom, s, e, BOTH)
