from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Tuple
import logging

from .bedio import BedWriter, annotation_record
from .errors import ConfigurationError
from .genometree import GenomeTree
from .lncpyClasses import BOTH, Annotation, Interval


@dataclass(frozen=True)
class GeneModel:
    """Derived views of one gene annotation."""
    body: Interval
    exons: Annotation
    padded: Annotation
    introns: Tuple[Interval, ...]


@dataclass(frozen=True)
class GeneModels:
    """The three read-only indexes the classifier works from."""
    gene_bodies: GenomeTree
    padded_genes: GenomeTree
    introns: GenomeTree


def pad_annotation(annot: Annotation, padding: int) -> Annotation:
    """
    Extend every block by `padding` bases on both ends, independently.
    Starts are clamped at 0; blocks that now overlap are left as they are.
    """
    if padding < 0:
        raise ConfigurationError(f"Exon padding must be >= 0, got {padding}")
    if padding == 0:
        return annot
    return Annotation(
        tuple(
            Interval(b.chrom, max(0, b.start - padding), b.end + padding, b.strand)
            for b in annot.blocks
        ),
        name=annot.name,
    )


def derive_introns(annot: Annotation) -> List[Interval]:
    """Gaps between consecutive blocks; touching or overlapping blocks leave no intron."""
    introns: List[Interval] = []
    for prev, nxt in zip(annot.blocks, annot.blocks[1:]):
        if nxt.start > prev.end:
            introns.append(Interval(prev.chrom, prev.end, nxt.start, prev.strand))
    return introns


def make_gene_model(annot: Annotation, padding: int = 0, stranded: bool = False) -> GeneModel:
    exons = annot if stranded else annot.with_strand(BOTH)
    padded = pad_annotation(exons, padding)
    return GeneModel(
        body=exons.body,
        exons=exons,
        padded=padded,
        introns=tuple(derive_introns(padded)),
    )


def build(
    annotations: Iterable[Annotation],
    padding: int = 0,
    stranded: bool = False,
    logger: logging.Logger | None = None,
) -> GeneModels:
    """
    Build the gene-body, padded-gene and intron indexes from gene annotations.
    Returned indexes are frozen; nothing can be inserted after this returns.
    """
    if padding < 0:
        raise ConfigurationError(f"Exon padding must be >= 0, got {padding}")

    gene_bodies = GenomeTree()
    padded_genes = GenomeTree()
    introns = GenomeTree()

    n_genes = 0
    n_introns = 0
    for annot in annotations:
        model = make_gene_model(annot, padding=padding, stranded=stranded)
        gene_bodies.insert(model.body)
        padded_genes.insert(model.padded)
        for intron in model.introns:
            introns.insert(intron)
        n_genes += 1
        n_introns += len(model.introns)

    if logger:
        logger.info(f"Gene models built: {n_genes:,} genes, {n_introns:,} introns (padding={padding})")
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"References with genes: {gene_bodies.references[:20]}")

    return GeneModels(
        gene_bodies=gene_bodies.freeze(),
        padded_genes=padded_genes.freeze(),
        introns=introns.freeze(),
    )


def write_debug_models(
    models: GeneModels,
    bodies_path: str | Path,
    introns_path: str | Path,
    logger: logging.Logger | None = None,
) -> None:
    """Dump gene bodies and introns as BED for inspection in a genome browser."""
    with BedWriter(bodies_path) as bw:
        for body in models.gene_bodies:
            bw.write(annotation_record(body))
    with BedWriter(introns_path) as bw:
        for intron in models.introns:
            bw.write(annotation_record(intron))
    if logger:
        logger.info(f"Wrote debug gene bodies to {bodies_path} and introns to {introns_path}")
