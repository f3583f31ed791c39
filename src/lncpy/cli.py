import argparse

from .split import (
    DEFAULT_EXON_PATH,
    DEFAULT_INTRON_PATH,
    DEFAULT_UNCLASSIFIED_PATH,
    split_bam,
)
from .windows import DEFAULT_WINDOW_SIZE, count_windows, quantify_mask

VERSION = "1.0.0"


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # Split alignments into exonic / intronic / unclassified
    if args.cmd == "split":
        return split_bam(
            bam_path=args.bam,
            genes_path=args.genes,
            exons_path=args.exons,
            introns_path=args.introns,
            unclassified_path=args.unclassified,
            padding=args.exon_padding,
            stranded=args.stranded,
            single=args.single,
            debug=args.debug,
            log_level=args.log_level,
            log_reads=args.log_reads,
        )

    # Number of alignments or intervals per window
    elif args.cmd == "windows":
        return count_windows(
            args.input,
            args.output,
            window=args.window,
            stagger=args.stagger,
            log_level=args.log_level,
        )

    # Masked fraction per window
    elif args.cmd == "mask":
        return quantify_mask(
            args.mask,
            args.output,
            window=args.window,
            stagger=args.stagger,
            log_level=args.log_level,
        )
    else:
        parser.error("Unknown command")

    return 2


def _add_tiling_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--output",
        required=True,
        help="Output BED6 file (.gz for compressed output)."
    )
    p.add_argument(
        "--window",
        type=int,
        default=DEFAULT_WINDOW_SIZE,
        help="Length of windows to tile the genome (default 1 Mb)."
    )
    p.add_argument(
        "--stagger",
        type=int,
        default=None,
        help="Tiling offset between window starts (defaults to window length for 1x coverage)."
    )
    p.add_argument(
        "--log-level",
        default="INFO",
        choices=["ERROR", "WARNING", "INFO", "DEBUG"],
        help="Logging verbosity (default: INFO)."
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="lncpy",
        description="Split RNA-seq alignments into exonic and intronic reads, and summarise genome windows."
    )
    p.add_argument(
        "-v", "--version",
        action="version",
        version=VERSION,
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    # split (IntronExon)
    s = sub.add_parser(
        "split",
        help="Classify alignments of a BAM as exonic, intronic or unclassified against BED gene models."
    )
    s.add_argument(
        "--bam",
        required=True,
        help="Input BAM file."
    )
    s.add_argument(
        "--genes",
        required=True,
        help="BED file (BED12 for spliced models) of genes or transcripts."
    )
    s.add_argument(
        "--exons",
        default=DEFAULT_EXON_PATH,
        help=f"Output BED of reads contained entirely within exons (default {DEFAULT_EXON_PATH})."
    )
    s.add_argument(
        "--introns",
        default=DEFAULT_INTRON_PATH,
        help=f"Output BED of reads overlapping introns (default {DEFAULT_INTRON_PATH})."
    )
    s.add_argument(
        "--unclassified",
        default=DEFAULT_UNCLASSIFIED_PATH,
        help=f"Output BED of reads not assigned to exons or introns (default {DEFAULT_UNCLASSIFIED_PATH})."
    )
    s.add_argument(
        "--exon-padding",
        dest="exon_padding",
        type=int,
        default=0,
        help="Pad exons by this many bases on each end (default 0)."
    )
    s.add_argument(
        "--stranded",
        action="store_true",
        help="Consider strandedness when calculating overlap."
    )
    s.add_argument(
        "--single",
        action="store_true",
        help="Read the BAM as single-read alignments, even if it is paired-end."
    )
    s.add_argument(
        "--debug",
        action="store_true",
        help="Debug mode: DEBUG logging, and write gene bodies and introns as BED next to the exon output."
    )
    s.add_argument(
        "--log-level",
        default="INFO",
        choices=["ERROR", "WARNING", "INFO", "DEBUG"],
        help="Logging verbosity (default: INFO)."
    )
    s.add_argument(
        "--log-reads",
        type=int,
        default=0,
        help="When DEBUG, log the classification of the first N alignments (default: 0)."
    )

    # windows (counts)
    w = sub.add_parser(
        "windows",
        help="Count alignments (BAM) or intervals (BED) over tiled genome windows. Input must be coordinate-sorted."
    )
    w.add_argument(
        "--input",
        required=True,
        help="Coordinate-sorted BAM or BED file."
    )
    _add_tiling_args(w)

    # mask (percent masked)
    m = sub.add_parser(
        "mask",
        help="Report the fraction of each tiled genome window covered by a BED mask."
    )
    m.add_argument(
        "--mask",
        required=True,
        help="Coordinate-sorted BED mask file."
    )
    _add_tiling_args(m)
    return p

if __name__ == "__main__":
    raise SystemExit(main())
