from __future__ import annotations
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple
import logging
import re
import bamnostic as bn

from .lncpyClasses import MINUS, PLUS, Alignment, Interval, union

# SAM flag bits
FLAG_PAIRED = 0x1
FLAG_UNMAPPED = 0x4
FLAG_MATE_UNMAPPED = 0x8
FLAG_REVERSE = 0x10
FLAG_READ1 = 0x40
FLAG_SECONDARY = 0x100
FLAG_SUPPLEMENTARY = 0x800

CIGAR_OPS = "MIDNSHP=X"
_CIGAR_RE = re.compile(r"(\d+)([MIDNSHP=X])")
# Ops that consume the reference inside a block; N closes the block
_REF_BLOCK_OPS = {"M", "D", "=", "X"}


def _get_read_name(aln) -> str:
    for attr in ("query_name", "qname", "read_name"):
        v = getattr(aln, attr, None)
        if v:
            return v
    return ""


def _get_flag(aln) -> int:
    return int(getattr(aln, "flag", 0) or 0)


def _has_flag(aln, attr: str, bit: int) -> bool:
    v = getattr(aln, attr, None)
    if v is None:
        return bool(_get_flag(aln) & bit)
    return bool(v)


def _cigar_ops(aln) -> List[Tuple[str, int]]:
    """CIGAR as (op_char, length); bamnostic exposes either tuples or a string."""
    for attr in ("cigartuples", "cigar"):
        ops = getattr(aln, attr, None)
        if ops and not isinstance(ops, str):
            out = []
            for op, length in ops:
                out.append((CIGAR_OPS[op] if isinstance(op, int) else str(op), int(length)))
            return out
    cig = getattr(aln, "cigarstring", None) or getattr(aln, "cigar", None)
    if isinstance(cig, str) and cig != "*":
        return [(op, int(n)) for n, op in _CIGAR_RE.findall(cig)]
    return []


def _blocks_from_cigar(start: int, ops: List[Tuple[str, int]]) -> Tuple[List[Tuple[int, int]], bool]:
    """
    Reference blocks covered by an alignment starting at 0-based `start`.
    Returns (blocks, spliced); spliced is True iff an N operation is present.
    """
    blocks: List[Tuple[int, int]] = []
    pos = start
    block_start = start
    spliced = False
    for op, length in ops:
        if op in _REF_BLOCK_OPS:
            pos += length
        elif op == "N":
            spliced = True
            if pos > block_start:
                blocks.append((block_start, pos))
            pos += length
            block_start = pos
    if pos > block_start:
        blocks.append((block_start, pos))
    if not blocks:
        # no reference-consuming ops (or no CIGAR at all): fall back to one base
        blocks.append((start, start + 1))
    return blocks, spliced


def _extract_alignment(aln) -> Optional[Alignment]:
    """Minimal Alignment from a bamnostic record; None for unmapped records."""
    if _has_flag(aln, "is_unmapped", FLAG_UNMAPPED):
        return None

    chr_ = getattr(aln, "reference_name", None)
    if chr_ is None:
        return None

    # bamnostic uses 'pos' (0-based) instead of 'reference_start'
    start = getattr(aln, "pos", None)
    if start is None:
        start = getattr(aln, "reference_start", 0)
    start = start or 0
    blocks, spliced = _blocks_from_cigar(start, _cigar_ops(aln))
    strand = MINUS if _has_flag(aln, "is_reverse", FLAG_REVERSE) else PLUS
    mapq = getattr(aln, "mapq", None)
    if mapq is None:
        mapq = getattr(aln, "mapping_quality", 255)

    return Alignment(
        blocks=tuple(Interval(chr_, s, e, strand) for s, e in blocks),
        name=_get_read_name(aln) or ".",
        spliced=spliced,
        mapq=int(mapq),
    )


def merge_mates(first: Alignment, second: Alignment, read1_strand: str) -> Alignment:
    """Fragment alignment spanning both mates; spliced if either mate is spliced."""
    merged = union(list(first.blocks) + list(second.blocks))
    return Alignment(
        blocks=tuple(Interval(b.chrom, b.start, b.end, read1_strand) for b in merged),
        name=first.name,
        spliced=first.spliced or second.spliced,
        mapq=min(first.mapq, second.mapq),
    )


def _pairable(aln) -> bool:
    return (
        _has_flag(aln, "is_paired", FLAG_PAIRED)
        and not _has_flag(aln, "mate_is_unmapped", FLAG_MATE_UNMAPPED)
        and not _has_flag(aln, "is_secondary", FLAG_SECONDARY)
        and not _has_flag(aln, "is_supplementary", FLAG_SUPPLEMENTARY)
    )


def read_alignments(
    bam_path: str | Path,
    *,
    single: bool = False,
    logger: logging.Logger | None = None,
) -> Iterator[Alignment]:
    """
    Stream mapped alignments from a BAM file.

    single=True yields one Alignment per mapped record, in file order.
    Otherwise mates of a pair mapped to the same reference are buffered by read
    name and yielded as one fragment once the second mate is read; mates that
    never find a partner are yielded individually at the end.
    """
    n_records = 0
    n_fragments = 0
    # read name -> (alignment, is_read1)
    pending: Dict[str, Tuple[Alignment, bool]] = {}

    with bn.AlignmentFile(str(bam_path), "rb") as bam:
        for aln in bam:
            rec = _extract_alignment(aln)
            if rec is None:
                continue
            n_records += 1

            if single or not _pairable(aln):
                yield rec
                continue

            is_read1 = _has_flag(aln, "is_read1", FLAG_READ1)
            mate = pending.pop(rec.name, None)
            if mate is None:
                pending[rec.name] = (rec, is_read1)
                continue

            mate_rec, mate_is_read1 = mate
            if mate_rec.chrom != rec.chrom:
                yield mate_rec
                yield rec
                continue
            read1_strand = mate_rec.strand if mate_is_read1 else rec.strand
            n_fragments += 1
            yield merge_mates(mate_rec, rec, read1_strand)

    if pending:
        if logger:
            logger.warning(f"{len(pending):,} mates without a partner in {bam_path}; emitted as single reads")
        for rec, _ in pending.values():
            yield rec

    if logger:
        logger.debug(f"{bam_path}: {n_records:,} mapped records, {n_fragments:,} paired fragments")
