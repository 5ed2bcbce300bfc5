"""
Unicode normalization checks for names that are already flagged as UTF-8.

Archivers running on macOS store names the way HFS+ does: decomposed, but
not quite NFD. HFS+ leaves U+2000-U+2FFF, U+F900-U+FAFF and U+2F800-U+2FAFF
untouched, so plain NFC would also rewrite CJK compatibility ideographs
that the author really typed. compose_hfs() composes everything else and
keeps those ranges as stored.
"""

import unicodedata

# Code points excluded from HFS+ decomposition
HFS_EXCLUDED_RANGES = (
    (0x2000, 0x2FFF),
    (0xF900, 0xFAFF),
    (0x2F800, 0x2FAFF),
)


def _is_hfs_excluded(char):
    code_point = ord(char)
    for low, high in HFS_EXCLUDED_RANGES:
        if low <= code_point <= high:
            return True
    return False


def compose_hfs(text):
    """Return the canonical composed form of text, leaving HFS+ excluded code points alone."""
    if text.isascii():
        return text

    parts = []
    run = []
    for char in text:
        if _is_hfs_excluded(char):
            if run:
                parts.append(unicodedata.normalize('NFC', ''.join(run)))
                run = []
            parts.append(char)
        else:
            run.append(char)
    if run:
        parts.append(unicodedata.normalize('NFC', ''.join(run)))
    return ''.join(parts)


def is_irregular(text):
    """True if text is not in canonical composed form."""
    return compose_hfs(text) != text


def check_utf8_name(raw_name):
    """Check a name whose UTF-8 flag is set.

    Returns:
        None if raw_name is not valid UTF-8 (the flag lies and the name must go
        through encoding detection), otherwise the composed replacement bytes,
        which equal raw_name when the name is already canonical.
    """
    try:
        name = raw_name.decode('utf-8')
    except UnicodeDecodeError:
        return None
    return compose_hfs(name).encode('utf-8')
