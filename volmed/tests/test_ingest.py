import pytest

from volmed.services.collisions import CollisionPolicy
from volmed.services.ingest import UploadIngestor, normalize_content_type
from volmed.services.record_directory import RecordDirectory
from volmed.services.staging import StagingArea
from volmed.services.storage_errors import FileTooLarge, InvalidMimeType, WriteFailed
from volmed.services.stored_file import IncomingFile

ALLOWED = ("application/pdf", "image/jpeg", "image/png")


@pytest.fixture
def ingestor(tmp_path):
    records = RecordDirectory(tmp_path)
    return UploadIngestor(records, StagingArea(records), ALLOWED, max_file_bytes=100)


def _count(folder):
    return len(list(folder.iterdir())) if folder.exists() else 0


def test_disallowed_mime_type_leaves_folder_untouched(ingestor):
    folder = ingestor.records.ensure(4)
    (folder / "existing.pdf").write_bytes(b"x")

    with pytest.raises(InvalidMimeType) as info:
        ingestor.accept(4, [IncomingFile("notes.txt", "text/plain", b"hello")])

    assert "text/plain" in str(info.value)
    assert _count(folder) == 1


def test_mixed_batch_is_rejected_before_any_write(ingestor):
    files = [
        IncomingFile("ok.pdf", "application/pdf", b"%PDF"),
        IncomingFile("bad.exe", "application/octet-stream", b"MZ"),
    ]
    with pytest.raises(InvalidMimeType):
        ingestor.accept(4, files)
    with pytest.raises(InvalidMimeType):
        ingestor.accept(None, files)

    assert _count(ingestor.records.path_for(4)) == 0
    assert _count(ingestor.staging.path) == 0


def test_size_ceiling_boundary(ingestor):
    ok = ingestor.accept(6, [IncomingFile("under.png", "image/png", b"x" * 99)])
    assert ok[0].size_bytes == 99
    at_limit = ingestor.accept(6, [IncomingFile("limit.png", "image/png", b"x" * 100)])
    assert at_limit[0].stored_name == "limit.png"

    with pytest.raises(FileTooLarge):
        ingestor.accept(6, [IncomingFile("over.png", "image/png", b"x" * 101)])
    assert sorted(p.name for p in ingestor.records.path_for(6).iterdir()) == ["limit.png", "under.png"]


def test_aggregate_ceiling(tmp_path):
    records = RecordDirectory(tmp_path)
    ingestor = UploadIngestor(records, StagingArea(records), ALLOWED, max_file_bytes=100, max_batch_bytes=150)
    files = [IncomingFile("a.pdf", "application/pdf", b"x" * 80), IncomingFile("b.pdf", "application/pdf", b"x" * 80)]
    with pytest.raises(FileTooLarge) as info:
        ingestor.accept(None, files)
    assert info.value.aggregate is True


def test_content_type_parameters_and_case_are_ignored(ingestor):
    assert normalize_content_type("Application/PDF; name=x") == "application/pdf"
    stored = ingestor.accept(2, [IncomingFile("r.pdf", "APPLICATION/PDF; charset=binary", b"%PDF")])
    assert stored[0].stored_name == "r.pdf"


def test_attach_twice_uses_numbered_suffix(ingestor):
    scan = IncomingFile("scan.png", "image/png", b"\x89PNG")
    first = ingestor.accept(42, [scan], CollisionPolicy.NUMBERED)
    second = ingestor.accept(42, [scan], CollisionPolicy.NUMBERED)
    assert first[0].stored_name == "scan.png"
    assert second[0].stored_name == "scan (1).png"


def test_files_are_written_in_order(ingestor):
    files = [IncomingFile(f"f{i}.pdf", "application/pdf", b"x") for i in range(5)]
    stored = ingestor.accept(3, files)
    assert [f.stored_name for f in stored] == [f"f{i}.pdf" for i in range(5)]


def test_empty_batch_writes_nothing(ingestor):
    assert ingestor.accept(None, []) == []
    assert not ingestor.staging.path.exists()


def test_write_failure_removes_files_written_by_the_batch(ingestor, monkeypatch):
    import volmed.services.record_directory as record_directory

    real_write = record_directory.write_exclusive
    calls = {"n": 0}

    def flaky_write(*args, **kwargs):
        calls["n"] += 1
        if calls["n"] == 2:
            raise WriteFailed("disk full")
        return real_write(*args, **kwargs)

    monkeypatch.setattr(record_directory, "write_exclusive", flaky_write)
    files = [IncomingFile("a.pdf", "application/pdf", b"x"), IncomingFile("b.pdf", "application/pdf", b"y")]

    with pytest.raises(WriteFailed):
        ingestor.accept(11, files)
    assert _count(ingestor.records.path_for(11)) == 0


def test_staging_write_failure_discards_batch(ingestor, monkeypatch):
    import volmed.services.staging as staging

    def broken_write(*args, **kwargs):
        raise WriteFailed("disk full")

    monkeypatch.setattr(staging, "write_exclusive", broken_write)
    with pytest.raises(WriteFailed):
        ingestor.accept(None, [IncomingFile("a.pdf", "application/pdf", b"x")])
    assert _count(ingestor.staging.path) == 0


def test_check_file_reports_type_before_size(ingestor):
    with pytest.raises(InvalidMimeType):
        ingestor.check_file("big.exe", "application/x-msdownload", 500)
    with pytest.raises(FileTooLarge):
        ingestor.check_file("big.pdf", "application/pdf", 500)
    # size unknown until the body is read
    ingestor.check_file("big.pdf", "application/pdf", None)
