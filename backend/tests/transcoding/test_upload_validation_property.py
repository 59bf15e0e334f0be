"""Property-based tests for upload validation and the per-user layout."""

import io

import pytest
from hypothesis import given, settings, strategies as st

from app.modules.transcoding.uploads import (
    InvalidUploadError,
    UploadLayout,
    validate_user_id,
    validate_video_upload,
)


VIDEO_TYPES = {
    ".mp4": "video/mp4",
    ".mov": "video/quicktime",
    ".avi": "video/x-msvideo",
    ".mkv": "video/x-matroska",
}

MAX_BYTES = 100_000_000

name_strategy = st.text(
    alphabet=st.characters(whitelist_categories=("Ll", "Lu", "Nd"), whitelist_characters="-_ "),
    min_size=1,
    max_size=40,
)


class TestVideoValidation:
    """Property tests for accepting and rejecting uploads."""

    @given(
        name=name_strategy,
        ext=st.sampled_from(sorted(VIDEO_TYPES)),
        upper=st.booleans(),
        size=st.integers(min_value=0, max_value=MAX_BYTES),
    )
    @settings(max_examples=100)
    def test_videos_within_limit_are_accepted(self, name: str, ext: str, upper: bool, size: int) -> None:
        """For any video name and type within the limit, the upload SHALL be
        accepted and its extension returned in lower case."""
        filename = f"{name}{ext.upper() if upper else ext}"

        assert validate_video_upload(filename, VIDEO_TYPES[ext], size, MAX_BYTES) == ext

    @given(size=st.integers(min_value=MAX_BYTES + 1, max_value=10 * MAX_BYTES))
    @settings(max_examples=50)
    def test_oversized_uploads_are_rejected(self, size: int) -> None:
        with pytest.raises(InvalidUploadError):
            validate_video_upload("clip.mp4", "video/mp4", size, MAX_BYTES)

    @pytest.mark.parametrize(
        "filename,content_type",
        [
            ("clip.txt", "video/mp4"),
            ("clip", "video/mp4"),
            ("clip.mp4", "text/plain"),
            ("clip.mp4", "application/mp4"),
            ("clip.mp4", "video/webm"),
            ("clip.mp4", None),
            (None, "video/mp4"),
            ("", "video/mp4"),
        ],
    )
    def test_non_videos_are_rejected(self, filename, content_type) -> None:
        with pytest.raises(InvalidUploadError):
            validate_video_upload(filename, content_type, 10, MAX_BYTES)

    def test_unknown_size_is_accepted(self) -> None:
        assert validate_video_upload("clip.mkv", "video/x-matroska", None, MAX_BYTES) == ".mkv"


class TestUserIds:
    @given(user_id=st.from_regex(r"[A-Za-z0-9_@-]{1,64}", fullmatch=True))
    @settings(max_examples=100)
    def test_safe_ids_are_accepted(self, user_id: str) -> None:
        assert validate_user_id(user_id) == user_id

    @pytest.mark.parametrize("user_id", ["", ".", "..", "a/b", "a\\b", "x" * 129, "bad$user"])
    def test_unsafe_ids_are_rejected(self, user_id: str) -> None:
        with pytest.raises(InvalidUploadError):
            validate_user_id(user_id)


class TestUploadLayout:
    """Tests for where uploads and outputs go."""

    def test_paths(self, tmp_path) -> None:
        layout = UploadLayout(str(tmp_path))

        assert layout.upload_dir("alice") == tmp_path / "alice" / "upload"
        assert layout.output_prefix("alice") == "alice/transcode"

    def test_stored_name(self) -> None:
        name = UploadLayout("/tmp").stored_name(".mov")

        assert name.startswith("video-") and name.endswith(".mov")
        millis, suffix = name[len("video-"):-len(".mov")].split("-")
        assert millis.isdigit()
        assert len(suffix) == 8

    def test_save_copies_stream(self, tmp_path) -> None:
        layout = UploadLayout(str(tmp_path))

        saved = layout.save("alice", io.BytesIO(b"\x01" * 3_000_000), ".mp4", MAX_BYTES)

        assert saved.parent == tmp_path / "alice" / "upload"
        assert saved.stat().st_size == 3_000_000

    def test_save_enforces_limit(self, tmp_path) -> None:
        layout = UploadLayout(str(tmp_path))

        with pytest.raises(InvalidUploadError):
            layout.save("alice", io.BytesIO(b"\x01" * 2048), ".mp4", 1024)

        assert list((tmp_path / "alice" / "upload").iterdir()) == []

    def test_same_millisecond_uploads_get_distinct_sources(self, tmp_path, monkeypatch) -> None:
        """Uploads landing in the same millisecond SHALL never share a source
        file or an output key."""
        monkeypatch.setattr(
            "app.modules.transcoding.uploads.time.time_ns", lambda: 1_718_000_000_000_000_000
        )
        layout = UploadLayout(str(tmp_path))

        first = layout.save("alice", io.BytesIO(b"first"), ".mp4", MAX_BYTES)
        second = layout.save("alice", io.BytesIO(b"second"), ".mp4", MAX_BYTES)
        third = layout.save("alice", io.BytesIO(b"third"), ".mov", MAX_BYTES)

        assert len({first, second, third}) == 3
        assert len({first.stem, second.stem, third.stem}) == 3
        assert first.read_bytes() == b"first"
        assert second.read_bytes() == b"second"
