"""Unit tests for the upload file store and vector preview formatting."""

from pathlib import Path

import pytest

from slr_index.storage import FileStore, unique_filename
from slr_index.viewer import vector_preview


class TestUniqueFilename:
    def test_sanitizes_and_keeps_extension(self) -> None:
        name = unique_filename("My Paper (v2).pdf")
        assert name.startswith("My_Paper__v2__")
        assert name.endswith(".pdf")

    def test_stem_truncated(self) -> None:
        name = unique_filename("a" * 80 + ".pdf")
        assert name.startswith("a" * 50 + "_")
        assert not name.startswith("a" * 51)

    def test_names_do_not_collide(self) -> None:
        assert unique_filename("paper.pdf") != unique_filename("paper.pdf")


class TestFileStore:
    def test_save_read_delete(self, tmp_path: Path) -> None:
        store = FileStore(tmp_path)

        stored = store.save("project-1", b"%PDF-1.4 data", "paper.pdf")

        assert stored.file_name == "paper.pdf"
        assert stored.size_bytes == 13
        assert stored.path.startswith("project-1/")
        assert store.read(stored.path) == b"%PDF-1.4 data"

        store.delete(stored.path)
        assert not store.exists(stored.path)

    def test_delete_missing_is_ignored(self, tmp_path: Path) -> None:
        FileStore(tmp_path).delete("project-1/missing.pdf")

    def test_path_escape_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="escapes the upload directory"):
            FileStore(tmp_path / "uploads").read("../secrets.yml")


class TestVectorPreview:
    def test_long_vector(self) -> None:
        assert vector_preview([0.1, 0.2, 0.3, 0.4, 0.5, 0.6]) == (
            "[0.1000, 0.2000, 0.3000, 0.4000, ... +2 more]"
        )

    def test_short_vector(self) -> None:
        assert vector_preview([1.0, -0.5]) == "[1.0000, -0.5000]"
