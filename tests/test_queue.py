import pytest

from gitarchive.errors import QueueFailed
from gitarchive.models import FileQueue


class TestFileQueue:
    def test_pop(self, tmp_path):
        path = tmp_path / "queue.txt"
        path.write_text("# comment\nalice/repo\n\nalice/fork bob/orig\n")
        queue = FileQueue(path)
        assert queue.pop() == ("alice/repo", "")
        assert queue.pop() == ("alice/fork", "bob/orig")
        assert queue.pop() == ("", "")

    def test_picks_up_appended_lines(self, tmp_path):
        path = tmp_path / "queue.txt"
        path.write_text("alice/repo\n")
        queue = FileQueue(path)
        assert queue.pop() == ("alice/repo", "")
        assert queue.pop() == ("", "")
        with path.open("a") as f:
            f.write("carol/other\n")
        assert queue.pop() == ("carol/other", "")

    def test_reads_file_once_per_batch(self, tmp_path):
        path = tmp_path / "queue.txt"
        path.write_text("alice/repo\nbob/repo\n")
        queue = FileQueue(path)
        assert queue.pop() == ("alice/repo", "")
        path.write_text("carol/a\ncarol/b\ncarol/c\n")
        assert queue.pop() == ("bob/repo", "")
        assert queue.pop() == ("carol/c", "")

    def test_missing_file_is_empty(self, tmp_path):
        assert FileQueue(tmp_path / "nope.txt").pop() == ("", "")

    def test_unreadable(self, tmp_path):
        with pytest.raises(QueueFailed):
            FileQueue(tmp_path).pop()
