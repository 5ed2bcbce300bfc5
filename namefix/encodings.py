"""
Legacy encodings that ZIP archivers put into file names, and the detector
that picks the one encoding an archive was written with.

Windows encodes a whole archive with a single code page, so the choice is
archive-wide: an encoding is viable only if it strictly decodes every name
(and comment) that needs decoding.
"""

import re
import locale
from enum import Enum
from collections import namedtuple

from namefix.errors import UnknownEncodingError


def _normalize_label(label):
    return re.sub(r'[\s_\-.]', '', label.lower())


class LegacyEncoding(Enum):
    """Closed set of supported encodings, in detection priority order.

    Value: (display name, Python codec, code page, multibyte, aliases)
    """
    # Multibyte encodings reject many byte sequences, so viability is real evidence
    UTF8 = ('UTF-8', 'utf-8', 65001, True, ('utf8', 'unicode'))
    CP932 = ('Shift_JIS', 'cp932', 932, True,
             ('sjis', 'shiftjis', 'mskanji', 'windows31j', 'ms932', 'csshiftjis', 'xsjis'))
    CP936 = ('GBK', 'gbk', 936, True, ('gbk', 'gb2312', 'ms936', 'euccn', 'chinese'))
    CP949 = ('EUC-KR', 'cp949', 949, True, ('euckr', 'uhc', 'ms949', 'ksc56011987', 'korean'))
    CP950 = ('Big5', 'cp950', 950, True, ('big5', 'ms950', 'csbig5'))

    # Single-byte OEM and ANSI code pages
    CP437 = ('CP437', 'cp437', 437, False, ('oemus', 'pc8', 'doslatinus'))
    CP850 = ('CP850', 'cp850', 850, False, ('doslatin1',))
    CP852 = ('CP852', 'cp852', 852, False, ('doslatin2',))
    CP866 = ('CP866', 'cp866', 866, False, ('doscyrillic',))
    CP737 = ('CP737', 'cp737', 737, False, ())
    CP775 = ('CP775', 'cp775', 775, False, ())
    CP855 = ('CP855', 'cp855', 855, False, ())
    CP857 = ('CP857', 'cp857', 857, False, ())
    CP862 = ('CP862', 'cp862', 862, False, ())
    CP720 = ('CP720', 'cp720', 720, False, ())
    CP874 = ('CP874', 'cp874', 874, False, ('tis620', 'thai'))
    CP1250 = ('windows-1250', 'cp1250', 1250, False, ())
    CP1251 = ('windows-1251', 'cp1251', 1251, False, ())
    CP1252 = ('windows-1252', 'cp1252', 1252, False, ())
    CP1253 = ('windows-1253', 'cp1253', 1253, False, ())
    CP1254 = ('windows-1254', 'cp1254', 1254, False, ())
    CP1255 = ('windows-1255', 'cp1255', 1255, False, ())
    CP1256 = ('windows-1256', 'cp1256', 1256, False, ())
    CP1257 = ('windows-1257', 'cp1257', 1257, False, ())
    CP1258 = ('windows-1258', 'cp1258', 1258, False, ())

    def __init__(self, display_name, codec, codepage, multibyte, aliases):
        self.display_name = display_name
        self.codec = codec
        self.codepage = codepage
        self.multibyte = multibyte
        self.aliases = frozenset(_normalize_label(a) for a in aliases + (codec, display_name))

    def decode(self, raw):
        """Decode raw strictly; raises UnicodeDecodeError on any invalid sequence."""
        return raw.decode(self.codec)

    def can_decode(self, raw):
        try:
            self.decode(raw)
        except UnicodeDecodeError:
            return False
        return True

    def __str__(self):
        return self.display_name


PRIORITY_ORDER = tuple(LegacyEncoding)

_CODEPAGE_LABEL = re.compile(r'^(?:cp|oem|ibm|windows|win|ms)?(\d+)$')


def resolve_encoding(label):
    """Resolve a user-supplied encoding label such as "sjis" or "OEM 850".

    Raises:
        UnknownEncodingError: the label names no supported encoding.
    """
    normalized = _normalize_label(label)
    for encoding in LegacyEncoding:
        if normalized in encoding.aliases:
            return encoding

    match = _CODEPAGE_LABEL.match(normalized)
    if match:
        codepage = int(match.group(1))
        for encoding in LegacyEncoding:
            if encoding.codepage == codepage:
                return encoding

    raise UnknownEncodingError(label)


# Windows OEM code page by language, the one Explorer's ZIP writer uses
_LANGUAGE_CODEPAGES = {
    'ja': LegacyEncoding.CP932,
    'ko': LegacyEncoding.CP949,
    'th': LegacyEncoding.CP874,
    'vi': LegacyEncoding.CP1258,
    'ru': LegacyEncoding.CP866,
    'uk': LegacyEncoding.CP866,
    'be': LegacyEncoding.CP866,
    'bg': LegacyEncoding.CP866,
    'el': LegacyEncoding.CP737,
    'tr': LegacyEncoding.CP857,
    'he': LegacyEncoding.CP862,
    'ar': LegacyEncoding.CP720,
    'fa': LegacyEncoding.CP720,
    'lt': LegacyEncoding.CP775,
    'lv': LegacyEncoding.CP775,
    'et': LegacyEncoding.CP775,
}
_CENTRAL_EUROPEAN = ('pl', 'cs', 'sk', 'hu', 'sl', 'hr', 'ro', 'bs', 'sq')
_WESTERN = ('de', 'fr', 'es', 'it', 'pt', 'nl', 'sv', 'da', 'nb', 'nn', 'no',
            'fi', 'is', 'ca', 'eu', 'gl', 'ga')


def hint_from_locale(locale_name=None):
    """Guess the archive encoding preferred on this machine from its locale.

    Args:
        locale_name: e.g. "ja_JP.UTF-8"; defaults to the current process locale.

    Returns:
        A LegacyEncoding, or None when the locale is unknown.
    """
    if locale_name is None:
        try:
            locale_name = locale.getlocale()[0]
        except ValueError:
            return None
    if not locale_name:
        return None

    language, _, territory = locale_name.split('.')[0].partition('_')
    language = language.lower()
    territory = territory.upper()

    if language == 'zh':
        if territory in ('TW', 'HK', 'MO'):
            return LegacyEncoding.CP950
        return LegacyEncoding.CP936
    if language == 'en':
        return LegacyEncoding.CP437 if territory in ('US', '') else LegacyEncoding.CP850
    if language in _CENTRAL_EUROPEAN:
        return LegacyEncoding.CP852
    if language in _WESTERN:
        return LegacyEncoding.CP850
    return _LANGUAGE_CODEPAGES.get(language)


class Detection(Enum):
    NOT_NEEDED = 'not needed'
    DETECTED = 'detected'
    FORCED = 'forced'
    AMBIGUOUS = 'ambiguous'
    UNSUPPORTED = 'unsupported'


DetectionResult = namedtuple('DetectionResult', ['status', 'encoding', 'candidates'])


def viable_encodings(samples, candidates=PRIORITY_ORDER):
    """Candidates, in the given order, that strictly decode every sample."""
    return [c for c in candidates if all(c.can_decode(s) for s in samples)]


def detect_encoding(samples, hint=None, forced=None, prefer_utf8=False, candidates=PRIORITY_ORDER):
    """Choose the single encoding for every legacy-encoded name in an archive.

    Args:
        samples: raw names and comments that need decoding.
        hint: preferred encoding (usually from the locale), or None.
        forced: encoding to use without detection, or None.
        prefer_utf8: choose UTF-8 first whenever it is viable.
        candidates: encodings to consider, in priority order.

    Returns:
        DetectionResult. For AMBIGUOUS, encoding is the highest-priority
        candidate and is only fit for display.
    """
    if forced is not None:
        return DetectionResult(Detection.FORCED, forced, [forced])

    samples = [s for s in samples if not s.isascii()]
    if not samples:
        return DetectionResult(Detection.NOT_NEEDED, None, [])

    viable = viable_encodings(samples, candidates)
    if not viable:
        return DetectionResult(Detection.UNSUPPORTED, None, [])

    if prefer_utf8 and LegacyEncoding.UTF8 in viable:
        return DetectionResult(Detection.DETECTED, LegacyEncoding.UTF8, viable)

    if hint in viable:
        return DetectionResult(Detection.DETECTED, hint, viable)

    # Single-byte code pages decode almost anything; without a hint they only compete when no multibyte one fits
    pool = [c for c in viable if c.multibyte] or viable
    if len(pool) == 1:
        return DetectionResult(Detection.DETECTED, pool[0], pool)
    return DetectionResult(Detection.AMBIGUOUS, pool[0], pool)
