import os
import re
import time

import pytest

from volmed.services.storage_errors import MoveFailed
from volmed.services.stored_file import IncomingFile


def _pdf(name, data=b"%PDF-1.4"):
    return IncomingFile(name, "application/pdf", data)


def test_duplicate_names_in_one_batch_get_timestamp_suffix(store):
    staged = store.accept(None, [_pdf("report.pdf", b"one"), _pdf("report.pdf", b"second")])

    assert staged[0].stored_name == "report.pdf"
    assert re.fullmatch(r"report-\d+\.pdf", staged[1].stored_name)
    assert all(f.is_staged for f in staged)
    batch_dir = store.staging.batch_path(staged[0].batch_id)
    assert sorted(p.name for p in batch_dir.iterdir()) == sorted(f.stored_name for f in staged)


def test_commit_moves_batch_into_record_folder(store):
    staged = store.accept(None, [_pdf("report.pdf", b"one"), _pdf("report.pdf", b"second")])

    committed = store.commit(77, staged)

    assert [f.directory for f in committed] == [77, 77]
    listed = store.list(77)
    assert {(f.stored_name, f.size_bytes) for f in listed} == {(f.stored_name, f.size_bytes) for f in staged}
    assert len({f.stored_name for f in listed}) == 2
    assert list(store.staging.path.iterdir()) == []


def test_commit_without_files_creates_nothing(store):
    assert store.commit(8, []) == []
    assert not store.records.path_for(8).exists()


def test_commit_rejects_files_from_different_batches(store):
    first = store.accept(None, [_pdf("a.pdf")])
    second = store.accept(None, [_pdf("b.pdf")])
    with pytest.raises(ValueError):
        store.commit(9, first + second)


def test_failed_commit_leaves_neither_location_holding_the_batch(store):
    staged = store.accept(None, [_pdf("a.pdf"), _pdf("b.pdf")])
    folder = store.records.ensure(10)
    (folder / "b.pdf").write_bytes(b"old")

    with pytest.raises(MoveFailed):
        store.commit(10, staged)

    assert [f.stored_name for f in store.list(10)] == ["b.pdf"]
    assert (folder / "b.pdf").read_bytes() == b"old"
    assert not store.staging.batch_path(staged[0].batch_id).exists()


def test_commit_never_replaces_a_file_created_mid_move(store, monkeypatch):
    staged = store.accept(None, [_pdf("a.pdf", b"staged")])
    folder = store.records.ensure(3)
    real_link = os.link

    def link_after_sibling_write(src, dst):
        # another writer claims the name right before the move
        with open(dst, "xb") as fh:
            fh.write(b"sibling")
        return real_link(src, dst)

    monkeypatch.setattr(os, "link", link_after_sibling_write)

    with pytest.raises(MoveFailed):
        store.commit(3, staged)

    assert (folder / "a.pdf").read_bytes() == b"sibling"
    assert not store.staging.batch_path(staged[0].batch_id).exists()


def test_discard_removes_batch(store):
    staged = store.accept(None, [_pdf("a.pdf")])
    store.discard(staged)
    assert not store.staging.batch_path(staged[0].batch_id).exists()
    # discarding twice is harmless
    store.discard(staged)


def test_batch_ids_are_validated(store):
    with pytest.raises(ValueError):
        store.staging.batch_path("../10")


def test_sweep_removes_only_stale_entries(store):
    old = store.accept(None, [_pdf("old.pdf")])
    fresh = store.accept(None, [_pdf("fresh.pdf")])
    stray = store.staging.path / "stray.pdf"
    stray.write_bytes(b"x")

    long_ago = time.time() - 3 * 24 * 3600
    os.utime(store.staging.batch_path(old[0].batch_id), (long_ago, long_ago))
    os.utime(stray, (long_ago, long_ago))

    removed = store.sweep_staging(24 * 3600)

    assert sorted(removed) == sorted([old[0].batch_id, "stray.pdf"])
    assert store.staging.batch_path(fresh[0].batch_id).exists()
    assert not store.staging.batch_path(old[0].batch_id).exists()


def test_sweep_without_staging_folder(store):
    assert store.sweep_staging(0) == []
