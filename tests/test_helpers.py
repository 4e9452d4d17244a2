import uuid

import pytest

from shared.helper.HelperFile import get_file_extension, is_valid_uuid, require_uuid, sanitize_filename
from shared.helper.HelperHash import fingerprint, hash_prefix, make_point_id, path_cache_key
from shared.models.errors import InvalidIdentifierError


def test_fingerprint_is_sha256_hex():
    # sha256 of the empty string
    assert fingerprint(b"") == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
    assert len(fingerprint(b"course material")) == 64


def test_fingerprint_is_deterministic():
    data = b"x" * 500
    assert fingerprint(data) == fingerprint(bytes(data))


def test_single_bit_flip_changes_fingerprint():
    data = bytearray(b"lecture notes, week 1")
    flipped = bytearray(data)
    flipped[0] ^= 0x01
    assert fingerprint(bytes(data)) != fingerprint(bytes(flipped))


def test_hash_prefix_keeps_first_16_characters():
    digest = fingerprint(b"abc")
    assert hash_prefix(digest) == digest[:16]


def test_path_cache_key_differs_per_path():
    assert path_cache_key("/uploads/a.pdf") != path_cache_key("/uploads/b.pdf")
    assert path_cache_key("/uploads/a.pdf") == fingerprint(b"/uploads/a.pdf")


def test_point_id_is_deterministic_uuid():
    first = make_point_id("file-1", 3)
    assert first == make_point_id("file-1", 3)
    assert first != make_point_id("file-2", 3)
    assert first != make_point_id("file-1", 4)
    assert str(uuid.UUID(first)) == first


@pytest.mark.parametrize("value, expected", [
    ("a3c0e1f2-5b6d-4e7f-8091-a2b3c4d5e6f7", True),
    ("A3C0E1F2-5B6D-4E7F-8091-A2B3C4D5E6F7", True),
    ("a3c0e1f25b6d4e7f8091a2b3c4d5e6f7", False),
    ("a3c0e1f2-5b6d4-e7f-8091-a2b3c4d5e6f7", False),
    ("../../etc", False),
    ("", False),
    (None, False),
])
def test_is_valid_uuid(value, expected):
    assert is_valid_uuid(value) is expected


def test_require_uuid_raises_with_field_name():
    with pytest.raises(InvalidIdentifierError) as exc_info:
        require_uuid("course_id", "course-1")
    assert exc_info.value.field == "course_id"
    assert "course-1" in str(exc_info.value)


def test_sanitize_filename_replaces_unsafe_characters():
    assert sanitize_filename("Week 1 (draft)/notes.pdf") == "Week_1__draft__notes.pdf"
    assert sanitize_filename("safe-name_1.txt") == "safe-name_1.txt"


@pytest.mark.parametrize("filename, expected", [
    ("Slides.PDF", "pdf"),
    ("archive.tar.gz", "gz"),
    ("README", ""),
])
def test_get_file_extension(filename, expected):
    assert get_file_extension(filename) == expected
