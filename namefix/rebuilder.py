"""
Write a new archive from a parsed ZipArchive and its RepairPlan.

Only names, comments, flags, extra fields and offsets change. Compressed
payloads, CRCs, sizes and data descriptors are copied byte for byte.
"""

import warnings

from namefix.errors import (
    AmbiguousEncodingError,
    UnsupportedEncodingError,
    UnsupportedArchiveError,
    PartialRecoveryWarning,
)
from namefix.planner import Unrecoverable, Verdict
from namefix.zip_structures import (
    FLAG_UTF8,
    UNICODE_PATH_EXTRA_ID,
    remove_extra_field,
    pack_local_header,
    pack_central_header,
    pack_eocd,
)

MAX_OFFSET = 0xFFFFFFFF


def _with_utf8_flag(flags, enabled):
    if enabled:
        return flags | FLAG_UTF8
    return flags & ~FLAG_UTF8


def _rewrite_entry(archive, entry, decision, offset):
    """Return (local record bytes, new central header) for one repaired entry."""
    lfh = archive.local_header(entry.index)
    central = entry.central

    name = decision.name if decision.name is not None else central.filename
    comment = decision.comment if decision.comment is not None else central.comment
    # Untouched clean entries keep their flag; anything rewritten is UTF-8 by construction
    changed = decision.name is not None or decision.comment is not None
    utf8 = changed or bool(central.flags & FLAG_UTF8)

    new_lfh = lfh._replace(
        flags=_with_utf8_flag(lfh.flags, utf8),
        filename=name,
        extra=remove_extra_field(lfh.extra, UNICODE_PATH_EXTRA_ID),
    )
    new_central = central._replace(
        flags=_with_utf8_flag(central.flags, utf8),
        filename=name,
        extra=remove_extra_field(central.extra, UNICODE_PATH_EXTRA_ID),
        comment=comment,
        lfh_offset=offset,
    )
    record = pack_local_header(new_lfh) + archive.data[lfh.data_offset:lfh.record_end]
    return record, new_central


def _copy_entry(archive, entry, offset):
    """Return (local record bytes, central header) for an entry passed through unchanged."""
    lfh = archive.local_header(entry.index)
    record = archive.data[lfh.offset:lfh.record_end]
    return record, entry.central._replace(lfh_offset=offset)


def rebuild_archive(archive, plan):
    """Produce the repaired archive as bytes.

    Raises:
        AmbiguousEncodingError: the plan could not choose an encoding.
        UnsupportedEncodingError: no encoding decodes every name.
        UnsupportedArchiveError: the result would need Zip64 offsets.

    Warns:
        PartialRecoveryWarning: some entries were copied through unchanged.
    """
    if plan.verdict is Verdict.AMBIGUOUS:
        raise AmbiguousEncodingError(plan.candidates)
    if plan.verdict is Verdict.UNSUPPORTED:
        raise UnsupportedEncodingError()

    parts = [archive.prefix]
    offset = len(archive.prefix)
    centrals = []

    for entry, decision in zip(archive, plan):
        if offset > MAX_OFFSET:
            raise UnsupportedArchiveError(
                f"local header of entry {entry.index} would start beyond 4 GiB")

        if isinstance(decision, Unrecoverable):
            record, central = _copy_entry(archive, entry, offset)
        else:
            record, central = _rewrite_entry(archive, entry, decision, offset)
        parts.append(record)
        centrals.append(central)
        offset += len(record)

    cd_offset = offset
    central_directory = b''.join(pack_central_header(central) for central in centrals)
    cd_size = len(central_directory)
    parts.append(central_directory)

    if cd_offset > MAX_OFFSET or cd_size > MAX_OFFSET:
        raise UnsupportedArchiveError("central directory would start beyond 4 GiB")

    eocd = archive.eocd._replace(
        disk_number=0,
        cd_disk=0,
        disk_entries=len(centrals),
        total_entries=len(centrals),
        cd_size=cd_size,
        cd_offset=cd_offset,
    )
    parts.append(pack_eocd(eocd))

    unrecoverable = plan.unrecoverable
    if unrecoverable:
        reasons = [plan.decisions[i].reason for i in unrecoverable]
        warnings.warn(PartialRecoveryWarning(unrecoverable, reasons), stacklevel=2)

    return b''.join(parts)


def rebuild_to_stream(archive, plan, stream):
    """Write the repaired archive to a binary stream and return the number of bytes written."""
    data = rebuild_archive(archive, plan)
    stream.write(data)
    return len(data)
