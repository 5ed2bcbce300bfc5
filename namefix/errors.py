"""
Errors and warnings raised while reading, planning and rebuilding archives.
"""


class ZipNameError(Exception):
    """Base class for every failure the repair engine reports."""
    pass


class ArchiveFormatError(ZipNameError):
    """The input is not a structurally valid ZIP archive."""
    pass


class UnsupportedArchiveError(ArchiveFormatError):
    """The archive is valid but uses a feature we do not rewrite (Zip64, split, encrypted)."""
    pass


class AmbiguousEncodingError(ZipNameError):
    """More than one legacy encoding decodes every name and nothing breaks the tie."""

    def __init__(self, candidates):
        self.candidates = list(candidates)
        names = ", ".join(c.display_name for c in self.candidates)
        super().__init__(
            f"file names can be decoded as any of {names}. "
            f"Try with -e <encoding> to choose one."
        )


class UnsupportedEncodingError(ZipNameError):
    """No candidate encoding decodes every name in the archive."""

    def __init__(self, message=None):
        super().__init__(message or
                         "file names are not encoded in UTF-8 or any supported legacy encoding. "
                         "Try with -e <another encoding> option.")


class UnknownEncodingError(ZipNameError, ValueError):
    """An encoding label does not name one of the supported encodings."""

    def __init__(self, label):
        self.label = label
        super().__init__(f"unknown encoding name: {label}")


class PartialRecoveryWarning(UserWarning):
    """Some entries could not be repaired and were written through unchanged."""

    def __init__(self, indices, reasons=None):
        self.indices = list(indices)
        self.reasons = list(reasons or [])
        super().__init__(
            f"{len(self.indices)} entr{'y' if len(self.indices) == 1 else 'ies'} "
            f"could not be repaired and were copied unchanged"
        )
