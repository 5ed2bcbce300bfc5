import unicodedata

from namefix.normalization import compose_hfs, is_irregular, check_utf8_name


def test_composes_decomposed_latin():
    assert compose_hfs("e\u0301te\u0301.txt") == "\u00e9t\u00e9.txt"


def test_composes_kana_with_voiced_mark():
    assert compose_hfs("\u30c6\u3099\u30fc\u30bf") == "\u30c7\u30fc\u30bf"


def test_composes_hangul_jamo():
    assert compose_hfs("\u1112\u1161\u11ab\u1100\u1173\u11af") == "\ud55c\uae00"


def test_keeps_hfs_excluded_ranges():
    # NFC maps these singletons to other code points
    ohm = "\u2126"
    cjk_compat = "\uf900"
    assert unicodedata.normalize('NFC', ohm) != ohm
    assert unicodedata.normalize('NFC', cjk_compat) != cjk_compat
    assert compose_hfs(ohm) == ohm
    assert compose_hfs(cjk_compat) == cjk_compat
    assert compose_hfs("e\u0301" + ohm + "a\u0300") == "\u00e9" + ohm + "\u00e0"


def test_is_irregular():
    assert is_irregular("e\u0301.txt")
    assert not is_irregular("\u00e9.txt")
    assert not is_irregular("plain.txt")
    assert not is_irregular("\u2126.txt")


def test_check_utf8_name():
    assert check_utf8_name(b"plain.txt") == b"plain.txt"
    assert check_utf8_name("e\u0301.txt".encode('utf-8')) == "\u00e9.txt".encode('utf-8')
    assert check_utf8_name("\u30c6\u30b9\u30c8.txt".encode('cp932')) is None
