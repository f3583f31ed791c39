from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable
import logging
import os
import time
import traceback
import psutil

from .bamio import read_alignments
from .bedio import BedWriter, annotation_record, read_bed
from .errors import ConfigurationError
from .genes import GeneModels, build, write_debug_models
from .lncpyClasses import Alignment, contains

EXON = "exon"
INTRON = "intron"
UNCLASSIFIED = "unclassified"
CATEGORIES = (EXON, INTRON, UNCLASSIFIED)

DEFAULT_EXON_PATH = "exons.bed"
DEFAULT_INTRON_PATH = "introns.bed"
DEFAULT_UNCLASSIFIED_PATH = "unclassified.bed"
DEBUG_GENE_BODIES_NAME = "gene_bodies.debug.bed"
DEBUG_INTRONS_NAME = "introns.debug.bed"


@dataclass(frozen=True)
class SplitConfig:
    padding: int = 0
    stranded: bool = False
    single: bool = False
    debug: bool = False

    def __post_init__(self):
        if self.padding < 0:
            raise ConfigurationError(f"--exon-padding must be >= 0, got {self.padding}")


def _make_logger(level: str) -> logging.Logger:
    lvl = getattr(logging, level.upper(), logging.INFO)
    logger = logging.getLogger("lncpy.split")
    if not logger.handlers:
        handler = logging.StreamHandler()
        fmt = logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
        handler.setFormatter(fmt)
        logger.addHandler(handler)
    logger.setLevel(lvl)
    return logger


def _get_memory_usage():
    process = psutil.Process(os.getpid())
    return process.memory_info().rss / 1024 / 1024 # Current memory usage in MB


def classify(alignment: Alignment, models: GeneModels) -> str:
    """
    Assign an alignment to exactly one of exon / intron / unclassified.

    Rules, first match wins:
      1. no overlap with any gene body           -> unclassified
      2. first padded gene containing the read:
           spliced read                          -> exon
           unspliced read overlapping an intron  -> unclassified
           otherwise                             -> exon
      3. overlaps an intron                      -> intron
      4. otherwise                               -> unclassified

    Padded genes are visited leftmost-start first, so with several containing
    genes the result does not depend on index internals.
    """
    if not models.gene_bodies.overlaps(alignment):
        return UNCLASSIFIED

    for gene in models.padded_genes.overlappers(alignment):
        if contains(gene, alignment):
            if alignment.spliced:
                return EXON
            if models.introns.overlaps(alignment):
                return UNCLASSIFIED
            return EXON

    if models.introns.overlaps(alignment):
        return INTRON

    return UNCLASSIFIED


def split_alignments(
    alignments: Iterable[Alignment],
    models: GeneModels,
    sinks: Dict[str, BedWriter],
    *,
    logger: logging.Logger | None = None,
    log_reads: int = 0,
    progress_every: int = 1000000,
) -> Dict[str, int]:
    """Classify each alignment and write it to the sink of its category, in input order."""
    counts = {c: 0 for c in CATEGORIES}
    total = 0
    for aln in alignments:
        category = classify(aln, models)
        sinks[category].write(annotation_record(aln, score=str(aln.mapq)))
        counts[category] += 1
        total += 1

        if logger and logger.isEnabledFor(logging.DEBUG) and total <= log_reads:
            logger.debug(
                f"{aln.name}: {aln.chrom}:{aln.start}-{aln.end}({aln.strand}) "
                f"blocks={len(aln.blocks)} spliced={aln.spliced} -> {category}"
            )
        if logger and total % progress_every == 0:
            logger.info(f"Processed {total:,} alignments... (Memory: {_get_memory_usage():.1f} MB)")
    return counts


def split_bam(
    bam_path: str | Path,
    genes_path: str | Path,
    *,
    exons_path: str | Path = DEFAULT_EXON_PATH,
    introns_path: str | Path = DEFAULT_INTRON_PATH,
    unclassified_path: str | Path = DEFAULT_UNCLASSIFIED_PATH,
    padding: int = 0,
    stranded: bool = False,
    single: bool = False,
    debug: bool = False,
    log_level: str = "INFO",
    log_reads: int = 0,
) -> int:
    """
    Split the alignments of a BAM file into exonic, intronic and unclassified
    BED files according to a BED file of gene models.
    """
    logger = _make_logger("DEBUG" if debug else log_level)

    try:
        config = SplitConfig(padding=padding, stranded=stranded, single=single, debug=debug)
    except ConfigurationError as e:
        logger.error(str(e))
        return 2

    t0 = time.time()
    logger.info(f"BAM file of reads: {bam_path}")
    logger.info(f"BED file of gene annotations: {genes_path}")
    logger.info(f"Exon output file: {exons_path}")
    logger.info(f"Intron output file: {introns_path}")
    logger.info(f"Unclassified output file: {unclassified_path}")
    logger.info(f"Padding exons with {config.padding} bases.")
    if config.stranded:
        logger.info("Considering strandedness when calculating overlap.")
    else:
        logger.info("Not considering strandedness when calculating overlap.")
    if config.single:
        logger.info("Reading BAM records as single reads.")

    try:
        models = build(read_bed(genes_path, logger=logger), padding=config.padding,
                       stranded=config.stranded, logger=logger)

        if config.debug:
            debug_dir = Path(exons_path).parent
            write_debug_models(
                models,
                debug_dir / DEBUG_GENE_BODIES_NAME,
                debug_dir / DEBUG_INTRONS_NAME,
                logger=logger,
            )

        logger.info("Parsing BAM file")
        with BedWriter(exons_path) as exon_w, \
                BedWriter(introns_path) as intron_w, \
                BedWriter(unclassified_path) as other_w:
            counts = split_alignments(
                read_alignments(bam_path, single=config.single, logger=logger),
                models,
                {EXON: exon_w, INTRON: intron_w, UNCLASSIFIED: other_w},
                logger=logger,
                log_reads=log_reads,
            )
    except Exception as e:
        logger.error(f"{bam_path}: {e}")
        logger.debug("Traceback:\n" + traceback.format_exc())
        return 1

    total = sum(counts.values())
    logger.info(
        f"Classified {total:,} alignments: exon={counts[EXON]:,}, "
        f"intron={counts[INTRON]:,}, unclassified={counts[UNCLASSIFIED]:,}"
    )
    logger.info(f"Process complete. Took {time.time() - t0:.1f}s (Memory: {_get_memory_usage():.1f} MB)")
    return 0
