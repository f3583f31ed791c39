from types import SimpleNamespace

import pytest

from lncpy import bamio


def read(name, chrom, pos, cigar, flag=0, mapq=60):
    return SimpleNamespace(
        query_name=name,
        reference_name=chrom,
        pos=pos,
        cigarstring=cigar,
        flag=flag,
        mapq=mapq,
    )


@pytest.fixture
def fake_bam(monkeypatch):
    """Replace bamnostic.AlignmentFile so that any path yields the given records."""
    opened = {}

    def install(records):
        class Dummy:
            def __init__(self, path, mode):
                opened["path"] = path
                opened["mode"] = mode

            def __enter__(self):
                return self

            def __exit__(self, *exc):
                return False

            def __iter__(self):
                return iter(records)

            def close(self):
                pass

        monkeypatch.setattr(bamio.bn, "AlignmentFile", Dummy)
        return opened

    return install


@pytest.fixture
def make_read():
    return read
