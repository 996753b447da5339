import pytest

from conftest import BrokenFile
from gitarchive.errors import BlobWriteFailed, RemoteAborted

NAME = "https://github.com/alice/repo.git|1700000000000000000"


class TestBlobStore:
    def test_write_and_read(self, blobs):
        with blobs.new_writer(NAME) as writer:
            writer.write(b"PACK")
            writer.write(b"data")
        assert blobs.exists(NAME)
        assert blobs.read(NAME) == b"PACKdata"
        assert list(blobs.names()) == [NAME]

    def test_nothing_written_leaves_no_blob(self, blobs):
        writer = blobs.new_writer(NAME)
        writer.close()
        assert not writer.written
        assert not blobs.exists(NAME)

    def test_discard(self, blobs):
        writer = blobs.new_writer(NAME)
        writer.write(b"partial")
        writer.discard()
        assert not blobs.exists(NAME)
        assert list(blobs.names()) == []

    def test_never_overwrites(self, blobs):
        with blobs.new_writer(NAME) as writer:
            writer.write(b"first")
        with pytest.raises(BlobWriteFailed):
            blobs.new_writer(NAME)
        assert blobs.read(NAME) == b"first"

    def test_write_failure(self, tmp_path):
        from gitarchive.models import BlobStore

        store = BlobStore(str(tmp_path / "packs"))
        writer = store.new_writer(NAME)
        writer.path = str(tmp_path / "missing" / "dir" / "blob")
        with pytest.raises(BlobWriteFailed):
            writer.write(b"data")

    def test_close_failure(self, blobs):
        writer = blobs.new_writer(NAME)
        writer._file = BrokenFile()
        with pytest.raises(BlobWriteFailed):
            with writer:
                writer.write(b"PACK")

    def test_close_failure_keeps_original_error(self, blobs, caplog):
        writer = blobs.new_writer(NAME)
        writer._file = BrokenFile()
        with pytest.raises(RemoteAborted):
            with writer:
                writer.write(b"PACK")
                raise RemoteAborted("object missing")
        assert "also failed" in caplog.text
