from namefix.encodings import LegacyEncoding
from namefix.planner import (
    AlreadyCleanUtf8,
    ReencodeFrom,
    RenormalizeUtf8,
    Unrecoverable,
    Verdict,
    diagnose,
    plan_repair,
)
from namefix.zip_structures import ZipArchive
from zip_builder import Entry, build_zip, unicode_path_extra

SJIS_NAMES = ["ｱ.txt", "テスト.txt", "ソフト/"]


def test_shift_jis_without_hint_is_repaired(sjis_zip):
    plan = plan_repair(ZipArchive(sjis_zip))
    assert plan.verdict is Verdict.REPAIRED
    assert plan.encoding is LegacyEncoding.CP932
    assert not plan.is_partial
    for decision, name in zip(plan, SJIS_NAMES):
        assert isinstance(decision, ReencodeFrom)
        assert decision.encoding is LegacyEncoding.CP932
        assert decision.name == name.encode('utf-8')


def test_ambiguous_archive(ambiguous_zip):
    plan = plan_repair(ZipArchive(ambiguous_zip))
    assert plan.verdict is Verdict.AMBIGUOUS
    assert plan.encoding is None
    assert LegacyEncoding.CP932 in plan.candidates
    assert LegacyEncoding.CP936 in plan.candidates
    assert all(isinstance(d, Unrecoverable) for d in plan)


def test_forced_encoding_resolves_ambiguity(ambiguous_zip):
    plan = plan_repair(ZipArchive(ambiguous_zip), forced=LegacyEncoding.CP932)
    assert plan.verdict is Verdict.REPAIRED
    assert plan.new_name(0) == "テスト.txt".encode('utf-8')


def test_hint_resolves_ambiguity(ambiguous_zip):
    plan = plan_repair(ZipArchive(ambiguous_zip), hint=LegacyEncoding.CP936)
    assert plan.verdict is Verdict.REPAIRED
    assert plan.encoding is LegacyEncoding.CP936
    assert plan.new_name(0) == "テスト.txt".encode('cp932').decode('gbk').encode('utf-8')


def test_ascii_archive_is_already_valid(ascii_zip):
    plan = plan_repair(ZipArchive(ascii_zip), hint=LegacyEncoding.CP932)
    assert plan.verdict is Verdict.ALREADY_VALID
    assert plan.encoding is None
    assert all(d == AlreadyCleanUtf8(None, None) for d in plan)


def test_decomposed_utf8_is_renormalized(nfd_zip):
    plan = plan_repair(ZipArchive(nfd_zip))
    assert plan.verdict is Verdict.REPAIRED
    assert plan.decisions[0] == RenormalizeUtf8("été.txt".encode('utf-8'), None)
    assert plan.decisions[1] == RenormalizeUtf8("データ.csv".encode('utf-8'), None)
    assert plan.decisions[2] == AlreadyCleanUtf8(None, None)


def test_composed_utf8_is_left_alone():
    data = build_zip([Entry("été.txt".encode('utf-8'), b"x", flags=0x0800)])
    plan = plan_repair(ZipArchive(data))
    assert plan.verdict is Verdict.ALREADY_VALID


def test_consistent_unicode_path_is_authoritative():
    legacy = "Über.txt".encode('cp850')
    extra = unicode_path_extra(legacy, "Über.txt".encode('utf-8'))
    data = build_zip([Entry(legacy, b"x", extra=extra), Entry(b"plain.txt", b"y")])
    plan = plan_repair(ZipArchive(data))
    assert plan.verdict is Verdict.REPAIRED
    assert plan.encoding is None
    assert plan.decisions[0] == AlreadyCleanUtf8("Über.txt".encode('utf-8'), None)


def test_inconsistent_unicode_path_is_ignored():
    legacy = "テスト.txt".encode('cp932')
    extra = unicode_path_extra(b"stale name", "wrong.txt".encode('utf-8'))
    data = build_zip([
        Entry(legacy, b"x", extra=extra),
        Entry("ｱ.txt".encode('cp932'), b"y"),
    ])
    plan = plan_repair(ZipArchive(data))
    assert plan.encoding is LegacyEncoding.CP932
    assert plan.decisions[0] == ReencodeFrom(LegacyEncoding.CP932, "テスト.txt".encode('utf-8'), None)


def test_unicode_path_entry_comment_uses_archive_encoding():
    legacy = "ｱ.txt".encode('cp932')
    extra = unicode_path_extra(legacy, "ｱ.txt".encode('utf-8'))
    data = build_zip([Entry(legacy, b"x", extra=extra, comment="メモ".encode('cp932'))])
    plan = plan_repair(ZipArchive(data), hint=LegacyEncoding.CP932)
    assert plan.decisions[0] == AlreadyCleanUtf8("ｱ.txt".encode('utf-8'), "メモ".encode('utf-8'))


def test_utf8_flag_that_lies_goes_through_detection():
    data = build_zip([
        Entry("ｱ.txt".encode('cp932'), b"x", flags=0x0800),
        Entry("テスト.txt".encode('cp932'), b"y"),
    ])
    plan = plan_repair(ZipArchive(data))
    assert plan.encoding is LegacyEncoding.CP932
    assert plan.new_name(0) == "ｱ.txt".encode('utf-8')


def test_entry_comment_is_reencoded():
    data = build_zip([Entry("ｱ.txt".encode('cp932'), b"x", comment="説明".encode('cp932'))])
    plan = plan_repair(ZipArchive(data))
    assert plan.decisions[0].comment == "説明".encode('utf-8')


def test_comments_are_detection_evidence():
    # the name alone is ambiguous; the comment is Shift-JIS only
    data = build_zip([Entry("テスト.txt".encode('cp932'), b"x", comment="ｱ".encode('cp932'))])
    plan = plan_repair(ZipArchive(data))
    assert plan.encoding is LegacyEncoding.CP932


def test_prefer_utf8_for_unflagged_utf8_names():
    data = build_zip([Entry("été.txt".encode('utf-8'), b"x")])
    assert plan_repair(ZipArchive(data)).verdict is Verdict.AMBIGUOUS

    plan = plan_repair(ZipArchive(data), prefer_utf8=True)
    assert plan.encoding is LegacyEncoding.UTF8
    assert plan.new_name(0) == "été.txt".encode('utf-8')


def test_forced_encoding_marks_undecodable_entries():
    data = build_zip([
        Entry("ｱ.txt".encode('cp932'), b"x"),
        Entry(b"\x81\x20bad.txt", b"y"),
        Entry(b"ascii.txt", b"z"),
    ])
    plan = plan_repair(ZipArchive(data), forced=LegacyEncoding.CP932)
    assert plan.verdict is Verdict.REPAIRED
    assert plan.is_partial
    assert plan.unrecoverable == [1]
    assert "Shift_JIS" in plan.decisions[1].reason
    assert plan.new_name(1) is None


def test_no_viable_encoding_is_unsupported():
    data = build_zip([Entry(b"\x81\x20bad.txt", b"y")])
    plan = plan_repair(ZipArchive(data),
                       candidates=(LegacyEncoding.UTF8, LegacyEncoding.CP932))
    assert plan.verdict is Verdict.UNSUPPORTED
    assert plan.unrecoverable == [0]


def test_overlong_utf8_name_is_unrecoverable():
    # half-width katakana take one byte in Shift-JIS and three in UTF-8
    data = build_zip([Entry(b"\xb1" * 30000, b"x"), Entry("ｱ.txt".encode('cp932'), b"y")])
    plan = plan_repair(ZipArchive(data), forced=LegacyEncoding.CP932)
    assert plan.unrecoverable == [0]
    assert "65535" in plan.decisions[0].reason
    assert isinstance(plan.decisions[1], ReencodeFrom)


def test_diagnose():
    assert diagnose(ZipArchive(build_zip([Entry(b"a.txt")]))).is_universal
    sjis = diagnose(ZipArchive(build_zip([Entry("ｱ.txt".encode('cp932'))])))
    assert sjis.has_implicit_non_ascii_names and not sjis.has_irregular_utf8_names
    assert "implicitly" in sjis.message
    nfd = diagnose(ZipArchive(build_zip([Entry("e\u0301".encode('utf-8'), flags=0x0800)])))
    assert nfd.has_irregular_utf8_names and not nfd.is_universal
    assert "normalization" in nfd.message
