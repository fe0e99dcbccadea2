"""Tests for the invoke tasks."""

import os

from design_vault.cli.tasks import find_media_files


class TestFindMediaFiles:
    """Test find_media_files."""

    def setup_files(self, root):
        for name in ("a.png", "b.MOV", "notes.txt", "sub/c.jpg", "sub/d.mp4"):
            path = root / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(b"data")

    def test_top_level_only(self, tmp_path):
        """Test only supported files directly in the directory are listed."""
        self.setup_files(tmp_path)

        found = find_media_files(str(tmp_path))

        assert [os.path.basename(path) for path in found] == ["a.png", "b.MOV"]

    def test_recursive(self, tmp_path):
        """Test subdirectories are searched when recursive."""
        self.setup_files(tmp_path)

        found = find_media_files(str(tmp_path), recursive=True)

        assert sorted(os.path.relpath(path, tmp_path) for path in found) == [
            "a.png",
            "b.MOV",
            os.path.join("sub", "c.jpg"),
            os.path.join("sub", "d.mp4"),
        ]
