import pytest

from zip_builder import Entry, build_zip


SJIS_NAMES = ["ｱ.txt", "テスト.txt", "ソフト/"]


@pytest.fixture
def sjis_zip():
    """Names written by a Japanese Windows archiver: Shift-JIS, flag unset."""
    return build_zip([
        Entry(name.encode('cp932'), f"content of {i}".encode(), deflate=i == 1)
        for i, name in enumerate(SJIS_NAMES)
    ])


@pytest.fixture
def ambiguous_zip():
    """A single name that is valid both as Shift-JIS and as GBK."""
    return build_zip([Entry("テスト.txt".encode('cp932'), b"hello")])


@pytest.fixture
def ascii_zip():
    return build_zip([
        Entry(b"readme.txt", b"read me"),
        Entry(b"docs/", b""),
        Entry(b"docs/guide.md", b"# guide" * 20, deflate=True),
    ])


@pytest.fixture
def nfd_zip():
    """UTF-8 names stored decomposed, as macOS archivers do."""
    return build_zip([
        Entry("e\u0301te\u0301.txt".encode('utf-8'), b"summer", flags=0x0800),
        Entry("\u30c6\u3099\u30fc\u30bf.csv".encode('utf-8'), b"1,2,3", flags=0x0800),
        Entry("plain.txt".encode('utf-8'), b"plain", flags=0x0800),
    ])
