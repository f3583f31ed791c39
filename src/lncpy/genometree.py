from __future__ import annotations

from typing import Dict, Iterator, List

from intervaltree import IntervalTree

from .lncpyClasses import strands_compatible


def _order_key(item):
    # leftmost start first, then shortest, then name
    return (item.start, item.end, getattr(item, "name", ""))


class GenomeTree:
    """
    Interval index over genomic features, one IntervalTree per reference.

    Items are anything exposing chrom/start/end/strand (Interval, Annotation).
    They are indexed by span; overlap and containment questions are answered on
    spans under the strand rule ('.' matches either strand).
    """

    def __init__(self):
        self._trees: Dict[str, IntervalTree] = {}
        self._frozen = False

    def insert(self, item) -> None:
        if self._frozen:
            raise RuntimeError("GenomeTree is read-only after construction")
        tree = self._trees.get(item.chrom)
        if tree is None:
            tree = self._trees[item.chrom] = IntervalTree()
        tree.addi(item.start, item.end, item)

    def freeze(self) -> GenomeTree:
        self._frozen = True
        return self

    def overlaps(self, query) -> bool:
        tree = self._trees.get(query.chrom)
        if tree is None:
            return False
        return any(
            strands_compatible(iv.data.strand, query.strand)
            for iv in tree.overlap(query.start, query.end)
        )

    def overlappers(self, query) -> List:
        """All stored items overlapping the query, ordered by (start, end, name)."""
        tree = self._trees.get(query.chrom)
        if tree is None:
            return []
        hits = [
            iv.data for iv in tree.overlap(query.start, query.end)
            if strands_compatible(iv.data.strand, query.strand)
        ]
        hits.sort(key=_order_key)
        return hits

    @property
    def references(self) -> List[str]:
        return sorted(self._trees.keys())

    def __len__(self) -> int:
        return sum(len(t) for t in self._trees.values())

    def __iter__(self) -> Iterator:
        for chrom in self.references:
            for iv in sorted(self._trees[chrom], key=lambda x: _order_key(x.data)):
                yield iv.data
