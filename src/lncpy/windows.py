from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional, Set
import logging
import os
import time
import traceback
import psutil

from .bamio import read_alignments
from .bedio import BedWriter, read_bed
from .errors import ConfigurationError, UnsortedInputError
from .lncpyClasses import BedRecord, Interval, WindowTile, clip, minus, total_size, union

DEFAULT_WINDOW_SIZE = 1_000_000  # 1 Mb


@dataclass(frozen=True)
class TileConfig:
    window_size: int = DEFAULT_WINDOW_SIZE
    stagger_size: Optional[int] = None

    def __post_init__(self):
        if self.window_size <= 0:
            raise ConfigurationError(f"Window length must be > 0, got {self.window_size}")
        if self.stagger_size is not None and self.stagger_size <= 0:
            raise ConfigurationError(f"Stagger length must be > 0, got {self.stagger_size}")

    @property
    def stagger(self) -> int:
        return self.stagger_size if self.stagger_size is not None else self.window_size


def _make_logger(level: str) -> logging.Logger:
    lvl = getattr(logging, level.upper(), logging.INFO)
    logger = logging.getLogger("lncpy.windows")
    if not logger.handlers:
        handler = logging.StreamHandler()
        fmt = logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
        handler.setFormatter(fmt)
        logger.addHandler(handler)
    logger.setLevel(lvl)
    return logger


def _get_memory_usage():
    process = psutil.Process(os.getpid())
    return process.memory_info().rss / 1024 / 1024


def first_window_start(item_start: int, window_size: int, stagger_size: int) -> int:
    """Start of the first grid window (k * stagger) whose end lies past item_start."""
    if item_start < window_size:
        return 0
    k = (item_start - window_size) // stagger_size + 1
    return k * stagger_size


def tile(
    items: Iterable,
    window_size: int = DEFAULT_WINDOW_SIZE,
    stagger_size: Optional[int] = None,
) -> Iterator[WindowTile]:
    """
    Tile each reference with windows of `window_size` whose starts advance by
    `stagger_size` (defaults to window_size), attaching every input item that
    overlaps the window.

    Items must be sorted by start within a reference, and each reference must be
    contiguous in the input; violations raise UnsortedInputError. Parameters are
    checked immediately, before the first window is requested.
    """
    config = TileConfig(window_size=window_size, stagger_size=stagger_size)
    return _sweep(iter(items), config.window_size, config.stagger)


def _sweep(it: Iterator, window_size: int, stagger_size: int) -> Iterator[WindowTile]:
    seen_refs: Set[str] = set()
    nxt = next(it, None)

    while nxt is not None:
        chrom = nxt.chrom
        if chrom in seen_refs:
            raise UnsortedInputError(f"Reference {chrom!r} appears again after other references")
        seen_refs.add(chrom)

        pending: List = []
        last_start = nxt.start
        win_start = first_window_start(nxt.start, window_size, stagger_size)

        while True:
            win_end = win_start + window_size
            while nxt is not None and nxt.chrom == chrom and nxt.start < win_end:
                if nxt.start < last_start:
                    raise UnsortedInputError(
                        f"Input not sorted by start on {chrom}: {nxt.start} after {last_start}"
                    )
                last_start = nxt.start
                pending.append(nxt)
                nxt = next(it, None)

            # items ending at or before this window cannot reach any later window
            pending = [x for x in pending if x.end > win_start]
            yield WindowTile(Interval(chrom, win_start, win_end), tuple(pending))

            win_start += stagger_size
            more_on_ref = nxt is not None and nxt.chrom == chrom
            if not more_on_ref and not any(x.end > win_start for x in pending):
                break


# ----------------------------
# Aggregation
# ----------------------------
def count_record(window: WindowTile) -> BedRecord:
    """Window with the number of overlapping items as score."""
    w = window.window
    return BedRecord(w.chrom, w.start, w.end, score=str(len(window.population)))


def masked_union(window: WindowTile) -> List[Interval]:
    """Union of the population's blocks, clipped to the window, strand ignored."""
    blocks = (b for x in window.population for b in getattr(x, "blocks", (x,)))
    clipped = (clip(b, window.window) for b in blocks)
    return union(c for c in clipped if c is not None)


def unmasked_bases(window: WindowTile) -> int:
    return total_size(minus(window.window, masked_union(window)))


def percent_masked(window: WindowTile) -> float:
    return 1 - unmasked_bases(window) / window.window.span


def coverage_record(window: WindowTile) -> BedRecord:
    """Window named '<chrom>:<start>-<end>' with the masked fraction as score."""
    w = window.window
    return BedRecord(w.chrom, w.start, w.end, name=window.name, score=f"{percent_masked(window):.4f}")


# ----------------------------
# Entry points
# ----------------------------
def _read_intervals(path: str | Path, logger: logging.Logger | None = None) -> Iterator:
    if str(path).lower().endswith(".bam"):
        return read_alignments(path, single=True, logger=logger)
    return read_bed(path, logger=logger)


def _write_windows(
    items: Iterable,
    out_path: str | Path,
    aggregate: Callable[[WindowTile], BedRecord],
    config: TileConfig,
    logger: logging.Logger,
    progress_every: int = 100000,
) -> int:
    n = 0
    with BedWriter(out_path) as bw:
        for window in tile(items, config.window_size, config.stagger):
            bw.write(aggregate(window))
            n += 1
            if n % progress_every == 0:
                logger.info(f"Wrote {n:,} windows... (Memory: {_get_memory_usage():.1f} MB)")
                if logger.isEnabledFor(logging.DEBUG):
                    logger.debug(f"Current window {window.name}, population={len(window.population)}")
    return n


def _run(
    kind: str,
    in_path: str | Path,
    out_path: str | Path,
    aggregate: Callable[[WindowTile], BedRecord],
    *,
    window: int,
    stagger: Optional[int],
    log_level: str,
) -> int:
    logger = _make_logger(log_level)
    try:
        config = TileConfig(window_size=window, stagger_size=stagger)
    except ConfigurationError as e:
        logger.error(str(e))
        return 2

    t0 = time.time()
    logger.info(f"Input {kind} file: {in_path}")
    logger.info(f"Output BED file: {out_path}")
    logger.info(f"Window length {config.window_size:,}; stagger {config.stagger:,}")

    try:
        n = _write_windows(_read_intervals(in_path, logger=logger), out_path, aggregate, config, logger)
    except Exception as e:
        logger.error(f"{in_path}: {e}")
        logger.debug("Traceback:\n" + traceback.format_exc())
        return 1

    logger.info(f"Wrote {n:,} windows to {out_path}")
    logger.info(f"Program complete. {time.time() - t0:.1f}s elapsed.")
    return 0


def count_windows(
    in_path: str | Path,
    out_path: str | Path,
    *,
    window: int = DEFAULT_WINDOW_SIZE,
    stagger: Optional[int] = None,
    log_level: str = "INFO",
) -> int:
    """Count alignments (BAM) or intervals (BED) per genome window."""
    return _run("alignment/interval", in_path, out_path, count_record,
                window=window, stagger=stagger, log_level=log_level)


def quantify_mask(
    mask_path: str | Path,
    out_path: str | Path,
    *,
    window: int = DEFAULT_WINDOW_SIZE,
    stagger: Optional[int] = None,
    log_level: str = "INFO",
) -> int:
    """
    Write a BED6 file of genome windows scored by the fraction masked by the
    intervals of a BED mask, e.g. 'chr1  5000000  6000000  chr1:5000000-6000000  0.9500  .'
    """
    return _run("mask", mask_path, out_path, coverage_record,
                window=window, stagger=stagger, log_level=log_level)
