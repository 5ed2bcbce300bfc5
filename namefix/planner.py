"""
Per-entry repair decisions and the archive-wide verdict.

plan_repair() is a pure function of the parsed archive and the caller's
encoding preferences. It never touches payload bytes; the rebuilder turns
the resulting RepairPlan into a new archive.
"""

from enum import Enum
from collections import namedtuple

from namefix.encodings import PRIORITY_ORDER, Detection, detect_encoding
from namefix.normalization import compose_hfs, check_utf8_name, is_irregular
from namefix.zip_structures import MAX_COMMENT_LENGTH

# name and comment are the replacement UTF-8 bytes, or None to keep what is stored
AlreadyCleanUtf8 = namedtuple('AlreadyCleanUtf8', ['name', 'comment'])
ReencodeFrom = namedtuple('ReencodeFrom', ['encoding', 'name', 'comment'])
RenormalizeUtf8 = namedtuple('RenormalizeUtf8', ['name', 'comment'])
Unrecoverable = namedtuple('Unrecoverable', ['reason'])


class Verdict(Enum):
    ALREADY_VALID = 'already valid'
    REPAIRED = 'repaired'
    AMBIGUOUS = 'ambiguous'
    UNSUPPORTED = 'unsupported'


class Diagnosis(namedtuple('Diagnosis', ['has_implicit_non_ascii_names', 'has_irregular_utf8_names'])):
    """What is wrong with the stored names, independent of any encoding choice."""

    @property
    def message(self):
        return {
            (False, False): "All file names are encoded in ASCII or explicitly in UTF-8.",
            (True, False): "Some file names are encoded implicitly in a legacy encoding.",
            (False, True): "Some file names use irregular unicode normalization.",
            (True, True): "Some file names use irregular unicode normalization and others "
                          "are encoded implicitly in a legacy encoding.",
        }[tuple(self)]

    @property
    def note(self):
        if self.has_implicit_non_ascii_names:
            return "Repair it, or the receiver may not see the correct file names."
        if self.has_irregular_utf8_names:
            return "Repair it, or the receiver may not match names with this normalization."
        return "Almost all unzip tools can decode its file names correctly."

    @property
    def is_universal(self):
        return not (self.has_implicit_non_ascii_names or self.has_irregular_utf8_names)


def diagnose(archive):
    """Summarize the names of archive without choosing an encoding."""
    implicit = False
    irregular = False
    for entry in archive:
        if entry.is_utf8:
            try:
                name = entry.raw_name.decode('utf-8')
            except UnicodeDecodeError:
                implicit = True
                continue
            irregular = irregular or is_irregular(name)
        elif not entry.raw_name.isascii():
            implicit = True
    return Diagnosis(implicit, irregular)


class RepairPlan:
    """Decisions for every entry, in central directory order, plus the verdict."""

    def __init__(self, decisions, verdict, detection):
        self.decisions = decisions
        self.verdict = verdict
        self.detection = detection

    @property
    def encoding(self):
        """The archive-wide legacy encoding, or None if no entry needed one."""
        if self.detection.status in (Detection.DETECTED, Detection.FORCED):
            return self.detection.encoding
        return None

    @property
    def candidates(self):
        return list(self.detection.candidates)

    @property
    def unrecoverable(self):
        """Indices of entries that will be written through unchanged."""
        return [i for i, d in enumerate(self.decisions) if isinstance(d, Unrecoverable)]

    @property
    def is_partial(self):
        return self.verdict is Verdict.REPAIRED and bool(self.unrecoverable)

    def new_name(self, index):
        """Name bytes entry index gets in the rebuilt archive, or None if unchanged."""
        decision = self.decisions[index]
        if isinstance(decision, Unrecoverable):
            return None
        return decision.name

    def __iter__(self):
        return iter(self.decisions)

    def __len__(self):
        return len(self.decisions)

    def __repr__(self):
        return f"<RepairPlan {self.verdict.name} encoding={self.encoding} entries={len(self)}>"


def _decode_legacy(encoding, raw):
    """Decode raw with the archive encoding into composed UTF-8 bytes, or None."""
    try:
        text = encoding.decode(raw)
    except UnicodeDecodeError:
        return None
    return compose_hfs(text).encode('utf-8')


def _too_long(*fields):
    return any(field is not None and len(field) > MAX_COMMENT_LENGTH for field in fields)


def _legacy_decision(entry, encoding):
    name = _decode_legacy(encoding, entry.raw_name)
    if name is None:
        return Unrecoverable(f"name cannot be decoded as {encoding}")
    comment = None
    if entry.comment:
        comment = _decode_legacy(encoding, entry.comment)
        if comment is None:
            return Unrecoverable(f"comment cannot be decoded as {encoding}")
    if _too_long(name, comment):
        return Unrecoverable("name or comment exceeds 65535 bytes in UTF-8")
    return ReencodeFrom(encoding, name, comment)


def _unicode_path_decision(entry, unicode_name, encoding):
    name = compose_hfs(unicode_name.decode('utf-8')).encode('utf-8')
    if name == entry.raw_name and (entry.is_utf8 or name.isascii()):
        name = None

    comment = None
    if not entry.is_utf8 and not entry.comment.isascii():
        if encoding is None:
            return Unrecoverable("comment needs a legacy encoding that could not be chosen")
        comment = _decode_legacy(encoding, entry.comment)
        if comment is None:
            return Unrecoverable(f"comment cannot be decoded as {encoding}")

    if _too_long(name, comment):
        return Unrecoverable("name or comment exceeds 65535 bytes in UTF-8")
    return AlreadyCleanUtf8(name, comment)


def plan_repair(archive, hint=None, forced=None, prefer_utf8=False, candidates=PRIORITY_ORDER):
    """Decide what happens to every entry of archive.

    Args:
        archive: a parsed ZipArchive.
        hint: preferred LegacyEncoding used to break ties, or None.
        forced: LegacyEncoding to use without detection, or None.
        prefer_utf8: choose UTF-8 first whenever it decodes every name.
        candidates: encodings detection may choose from, in priority order.

    Returns:
        RepairPlan. Detection failures are reported through its verdict,
        never raised; the caller decides whether they are fatal.
    """
    # (entry, kind, unicode name) for entries that wait for the archive-wide encoding
    pending = []
    decisions = [None] * len(archive)
    evidence = []

    for entry in archive:
        unicode_name = entry.unicode_path
        if unicode_name is not None:
            pending.append((entry, 'unicode_path', unicode_name))
            if not entry.is_utf8:
                evidence.append(entry.comment)
            continue

        if entry.is_utf8:
            composed = check_utf8_name(entry.raw_name)
            if composed is None:
                # The flag lies; the name goes through detection like an implicit one
                pending.append((entry, 'legacy', None))
                evidence.extend((entry.raw_name, entry.comment))
            elif composed == entry.raw_name:
                decisions[entry.index] = AlreadyCleanUtf8(None, None)
            elif _too_long(composed):
                decisions[entry.index] = Unrecoverable("name exceeds 65535 bytes once composed")
            else:
                decisions[entry.index] = RenormalizeUtf8(composed, None)
            continue

        if entry.raw_name.isascii() and entry.comment.isascii():
            decisions[entry.index] = AlreadyCleanUtf8(None, None)
        else:
            pending.append((entry, 'legacy', None))
            evidence.extend((entry.raw_name, entry.comment))

    detection = detect_encoding(evidence, hint=hint, forced=forced,
                               prefer_utf8=prefer_utf8, candidates=candidates)
    encoding = None
    if detection.status in (Detection.DETECTED, Detection.FORCED):
        encoding = detection.encoding

    for entry, kind, unicode_name in pending:
        if kind == 'unicode_path':
            decisions[entry.index] = _unicode_path_decision(entry, unicode_name, encoding)
        elif encoding is not None:
            decisions[entry.index] = _legacy_decision(entry, encoding)
        elif detection.status is Detection.AMBIGUOUS:
            decisions[entry.index] = Unrecoverable("more than one encoding decodes every name")
        else:
            decisions[entry.index] = Unrecoverable("no supported encoding decodes every name")

    if detection.status is Detection.AMBIGUOUS:
        verdict = Verdict.AMBIGUOUS
    elif detection.status is Detection.UNSUPPORTED:
        verdict = Verdict.UNSUPPORTED
    elif all(isinstance(d, AlreadyCleanUtf8) and d.name is None and d.comment is None
             for d in decisions):
        verdict = Verdict.ALREADY_VALID
    else:
        verdict = Verdict.REPAIRED

    return RepairPlan(decisions, verdict, detection)
