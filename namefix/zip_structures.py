"""
Byte-level model of a ZIP archive: End of Central Directory record,
Central Directory Headers and (lazily) Local File Headers.

The archive is parsed from an immutable byte buffer. Nothing here decodes
file names; names, extra fields and comments are kept as raw bytes so that
the encoding detector and the rebuilder see exactly what is on disk.
"""

import struct
import binascii
from collections import namedtuple

from namefix.errors import ArchiveFormatError, UnsupportedArchiveError

# Signatures
LFH_SIGNATURE = b'PK\x03\x04'                     # Local File Header
CDH_SIGNATURE = b'PK\x01\x02'                     # Central Directory Header
EOCD_SIGNATURE = b'PK\x05\x06'                    # End of Central Directory
DD_SIGNATURE = b'PK\x07\x08'                      # Data Descriptor
ZIP64_EOCD_LOCATOR_SIGNATURE = b'PK\x06\x07'      # ZIP64 End of Central Directory Locator

# Constants for ZIP structure sizes
LFH_FIXED_SIZE = 30      # Local File Header fixed part size
CDH_FIXED_SIZE = 46      # Central Directory Header fixed part size
EOCD_FIXED_SIZE = 22     # End of Central Directory fixed part size
ZIP64_LOCATOR_SIZE = 20  # ZIP64 End of Central Directory Locator size
MAX_COMMENT_LENGTH = 0xFFFF

STRUCT_LFH = '<4sHHHHHLLLHH'
STRUCT_CDH = '<4sHHHHHHLLLHHHHHLL'
STRUCT_EOCD = '<4sHHHHLLH'

# General purpose bit flags
FLAG_ENCRYPTED = 0x0001
FLAG_DATA_DESCRIPTOR = 0x0008
FLAG_UTF8 = 0x0800
FLAG_CD_ENCRYPTED = 0x2000

# Info-ZIP Unicode Path extra field
UNICODE_PATH_EXTRA_ID = 0x7075

EndOfCentralDirectory = namedtuple('EndOfCentralDirectory', [
    'offset', 'disk_number', 'cd_disk', 'disk_entries', 'total_entries',
    'cd_size', 'cd_offset', 'comment'
])

CentralDirectoryHeader = namedtuple('CentralDirectoryHeader', [
    'offset', 'version_made_by', 'version_needed', 'flags', 'compression_method',
    'last_mod_time', 'last_mod_date', 'crc32', 'compressed_size', 'uncompressed_size',
    'disk_start', 'internal_attr', 'external_attr', 'lfh_offset',
    'filename', 'extra', 'comment'
])

# data_end is the end of the compressed payload, record_end also covers a data descriptor
LocalFileHeader = namedtuple('LocalFileHeader', [
    'offset', 'version_needed', 'flags', 'compression_method', 'last_mod_time',
    'last_mod_date', 'crc32', 'compressed_size', 'uncompressed_size',
    'filename', 'extra', 'data_offset', 'data_end', 'record_end'
])


def iter_extra_fields(extra):
    """Yield (header_id, data) for every well-formed field in an extra block.

    Parsing stops at the first field whose declared size runs past the block.
    """
    pos = 0
    while pos + 4 <= len(extra):
        header_id, data_size = struct.unpack('<HH', extra[pos:pos+4])
        if pos + 4 + data_size > len(extra):
            break
        yield header_id, extra[pos+4:pos+4+data_size]
        pos += 4 + data_size


def parse_extra_field(extra):
    """Map header id to field data, keeping the first occurrence of each id."""
    result = {}
    for header_id, data in iter_extra_fields(extra):
        result.setdefault(header_id, data)
    return result


def remove_extra_field(extra, header_id):
    """Return the extra block with every field of the given id removed.

    Other fields, and any trailing bytes that do not form a complete field,
    are copied through unchanged.
    """
    pos = 0
    new_extra = bytearray()

    while pos + 4 <= len(extra):
        field_id, data_size = struct.unpack('<HH', extra[pos:pos+4])
        if pos + 4 + data_size > len(extra):
            break

        field_size = 4 + data_size
        if field_id != header_id:
            new_extra.extend(extra[pos:pos+field_size])
        pos += field_size

    new_extra.extend(extra[pos:])
    return bytes(new_extra)


def parse_unicode_path(data):
    """Parse an Info-ZIP Unicode Path field into (version, name_crc32, utf8_name).

    Returns None when the field is too short to hold version and CRC.
    """
    if len(data) < 5:
        return None
    version = data[0]
    name_crc32 = struct.unpack('<L', data[1:5])[0]
    return version, name_crc32, data[5:]


def unicode_path_name(raw_name, extra):
    """Return the UTF-8 name carried by a consistent Unicode Path field, else None.

    A field is consistent when its version is 1, its CRC32 matches the legacy
    name stored in the header and its payload is valid UTF-8.
    """
    data = parse_extra_field(extra).get(UNICODE_PATH_EXTRA_ID)
    if data is None:
        return None

    parsed = parse_unicode_path(data)
    if parsed is None:
        return None

    version, name_crc32, utf8_name = parsed
    if version != 1 or name_crc32 != binascii.crc32(raw_name) & 0xffffffff:
        return None
    try:
        utf8_name.decode('utf-8')
    except UnicodeDecodeError:
        return None
    return utf8_name


def pack_local_header(lfh):
    """Serialize the fixed part, name and extra field of a Local File Header."""
    header = struct.pack(
        STRUCT_LFH,
        LFH_SIGNATURE,
        lfh.version_needed,
        lfh.flags,
        lfh.compression_method,
        lfh.last_mod_time,
        lfh.last_mod_date,
        lfh.crc32,
        lfh.compressed_size,
        lfh.uncompressed_size,
        len(lfh.filename),
        len(lfh.extra),
    )
    return header + lfh.filename + lfh.extra


def pack_central_header(cdh):
    """Serialize a Central Directory Header including name, extra and comment."""
    header = struct.pack(
        STRUCT_CDH,
        CDH_SIGNATURE,
        cdh.version_made_by,
        cdh.version_needed,
        cdh.flags,
        cdh.compression_method,
        cdh.last_mod_time,
        cdh.last_mod_date,
        cdh.crc32,
        cdh.compressed_size,
        cdh.uncompressed_size,
        len(cdh.filename),
        len(cdh.extra),
        len(cdh.comment),
        cdh.disk_start,
        cdh.internal_attr,
        cdh.external_attr,
        cdh.lfh_offset,
    )
    return header + cdh.filename + cdh.extra + cdh.comment


def pack_eocd(eocd):
    """Serialize an End of Central Directory record with its comment."""
    header = struct.pack(
        STRUCT_EOCD,
        EOCD_SIGNATURE,
        eocd.disk_number,
        eocd.cd_disk,
        eocd.disk_entries,
        eocd.total_entries,
        eocd.cd_size,
        eocd.cd_offset,
        len(eocd.comment),
    )
    return header + eocd.comment


class ArchiveEntry:
    """One entry of the archive, identified by its central directory index.

    Everything here comes from the Central Directory Header; the Local File
    Header is resolved on demand through ZipArchive.local_header(index).
    """

    def __init__(self, index, central):
        self.index = index
        self.central = central

    @property
    def raw_name(self):
        return self.central.filename

    @property
    def flags(self):
        return self.central.flags

    @property
    def is_utf8(self):
        """True if general purpose bit 11 is set."""
        return bool(self.central.flags & FLAG_UTF8)

    @property
    def compression_method(self):
        return self.central.compression_method

    @property
    def crc32(self):
        return self.central.crc32

    @property
    def compressed_size(self):
        return self.central.compressed_size

    @property
    def uncompressed_size(self):
        return self.central.uncompressed_size

    @property
    def local_header_offset(self):
        return self.central.lfh_offset

    @property
    def comment(self):
        return self.central.comment

    @property
    def extra_fields(self):
        return parse_extra_field(self.central.extra)

    @property
    def has_unicode_path_field(self):
        return UNICODE_PATH_EXTRA_ID in self.extra_fields

    @property
    def unicode_path(self):
        """UTF-8 name from a consistent Unicode Path field, or None."""
        return unicode_path_name(self.central.filename, self.central.extra)

    def __repr__(self):
        return f"<ArchiveEntry #{self.index} {self.raw_name!r} flags=0x{self.flags:04x}>"


class ZipArchive:
    """Read-only view of a ZIP archive held in memory."""

    def __init__(self, data):
        """Parse an archive.

        Args:
            data: bytes-like object, or a binary file object that is read to the end.

        Raises:
            ArchiveFormatError: the structure is missing, truncated or inconsistent.
            UnsupportedArchiveError: Zip64, split or encrypted archives.
        """
        if hasattr(data, 'read'):
            data = data.read()
        self.data = bytes(data)
        self._local_headers = {}

        self.eocd = self._find_eocd()
        self._check_supported()
        self.entries = self._read_central_directory()

    @classmethod
    def open(cls, path):
        """Read and parse the archive stored at path."""
        with open(path, 'rb') as f:
            return cls(f.read())

    def __len__(self):
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    @property
    def comment(self):
        return self.eocd.comment

    @property
    def prefix(self):
        """Bytes preceding the first local header (e.g. a self-extractor stub)."""
        if not self.entries:
            return self.data[:self.eocd.cd_offset]
        first = min(entry.local_header_offset for entry in self.entries)
        return self.data[:first]

    def _find_eocd(self):
        """Locate the End of Central Directory record by scanning backward.

        The record is variable length because of the trailing archive comment, so
        a signature only counts when its comment length ends exactly at EOF.
        """
        data = self.data
        search_start = max(0, len(data) - EOCD_FIXED_SIZE - MAX_COMMENT_LENGTH)

        pos = data.rfind(EOCD_SIGNATURE, search_start)
        while pos != -1:
            if pos + EOCD_FIXED_SIZE <= len(data):
                header = struct.unpack(STRUCT_EOCD, data[pos:pos + EOCD_FIXED_SIZE])
                comment_length = header[7]
                comment_end = pos + EOCD_FIXED_SIZE + comment_length
                if comment_end == len(data):
                    return EndOfCentralDirectory(
                        offset=pos,
                        disk_number=header[1],
                        cd_disk=header[2],
                        disk_entries=header[3],
                        total_entries=header[4],
                        cd_size=header[5],
                        cd_offset=header[6],
                        comment=data[pos + EOCD_FIXED_SIZE:comment_end],
                    )
            pos = data.rfind(EOCD_SIGNATURE, search_start, pos)

        raise ArchiveFormatError(
            "valid end of central directory signature (PK\\x05\\x06) was not found")

    def _check_supported(self):
        eocd = self.eocd
        locator_offset = eocd.offset - ZIP64_LOCATOR_SIZE
        if locator_offset >= 0 and \
                self.data[locator_offset:locator_offset + 4] == ZIP64_EOCD_LOCATOR_SIGNATURE:
            raise UnsupportedArchiveError("it is ZIP64 formatted")
        if eocd.cd_offset == 0xFFFFFFFF or eocd.cd_size == 0xFFFFFFFF or \
                eocd.total_entries == 0xFFFF or eocd.disk_entries == 0xFFFF:
            raise UnsupportedArchiveError("it is ZIP64 formatted")

        if eocd.disk_number != 0 or eocd.cd_disk != 0 or eocd.disk_entries != eocd.total_entries:
            raise UnsupportedArchiveError("it is one of split archives")

        if eocd.cd_offset + eocd.cd_size > eocd.offset:
            raise ArchiveFormatError(
                f"central directory (offset {eocd.cd_offset}, size {eocd.cd_size}) "
                f"overlaps the end of central directory record at {eocd.offset}")

    def _read_central_directory(self):
        data = self.data
        limit = self.eocd.offset
        pos = self.eocd.cd_offset
        entries = []

        for index in range(self.eocd.total_entries):
            if pos + CDH_FIXED_SIZE > limit:
                raise ArchiveFormatError(
                    f"central directory is truncated at entry {index} (position {pos})")

            header = struct.unpack(STRUCT_CDH, data[pos:pos + CDH_FIXED_SIZE])
            if header[0] != CDH_SIGNATURE:
                raise ArchiveFormatError(
                    f"assumed central directory signature doesn't appear at position {pos}")

            filename_length, extra_length, comment_length = header[10], header[11], header[12]
            name_start = pos + CDH_FIXED_SIZE
            extra_start = name_start + filename_length
            comment_start = extra_start + extra_length
            end = comment_start + comment_length
            if end > limit:
                raise ArchiveFormatError(
                    f"central directory entry {index} runs past the end of the central directory")

            central = CentralDirectoryHeader(
                offset=pos,
                version_made_by=header[1],
                version_needed=header[2],
                flags=header[3],
                compression_method=header[4],
                last_mod_time=header[5],
                last_mod_date=header[6],
                crc32=header[7],
                compressed_size=header[8],
                uncompressed_size=header[9],
                disk_start=header[13],
                internal_attr=header[14],
                external_attr=header[15],
                lfh_offset=header[16],
                filename=data[name_start:extra_start],
                extra=data[extra_start:comment_start],
                comment=data[comment_start:end],
            )
            self._check_entry_supported(index, central)
            entries.append(ArchiveEntry(index, central))
            pos = end

        expected_end = self.eocd.cd_offset + self.eocd.cd_size
        if pos != expected_end:
            raise ArchiveFormatError(
                f"central directory size mismatch (expected end {expected_end}, parsed up to {pos})")
        return entries

    def _check_entry_supported(self, index, central):
        if central.disk_start != 0:
            raise UnsupportedArchiveError("it is one of split archives")
        if central.flags & FLAG_ENCRYPTED or central.flags & FLAG_CD_ENCRYPTED:
            raise UnsupportedArchiveError(f"entry {index} is encrypted")
        if 0xFFFFFFFF in (central.lfh_offset, central.compressed_size, central.uncompressed_size):
            raise UnsupportedArchiveError("it is ZIP64 formatted")
        if central.lfh_offset + LFH_FIXED_SIZE > self.eocd.cd_offset:
            raise ArchiveFormatError(
                f"local header offset {central.lfh_offset} of entry {index} "
                f"points into the central directory")

    def local_header(self, index):
        """Parse (once) and return the Local File Header of entry index."""
        if index in self._local_headers:
            return self._local_headers[index]

        central = self.entries[index].central
        data = self.data
        offset = central.lfh_offset
        limit = self.eocd.cd_offset

        header = struct.unpack(STRUCT_LFH, data[offset:offset + LFH_FIXED_SIZE])
        if header[0] != LFH_SIGNATURE:
            raise ArchiveFormatError(
                f"assumed local file header signature doesn't appear at position {offset}")

        filename_length, extra_length = header[9], header[10]
        name_start = offset + LFH_FIXED_SIZE
        extra_start = name_start + filename_length
        data_offset = extra_start + extra_length
        # Sizes in the local header may be zero when a data descriptor follows
        data_end = data_offset + central.compressed_size
        record_end = data_end

        flags = header[2]
        if flags & FLAG_DATA_DESCRIPTOR:
            if data[data_end:data_end + 4] == DD_SIGNATURE:
                record_end += 16
            else:
                record_end += 12

        if record_end > limit:
            raise ArchiveFormatError(
                f"compressed data of entry {index} runs past the central directory "
                f"(ends at {record_end}, central directory starts at {limit})")

        lfh = LocalFileHeader(
            offset=offset,
            version_needed=header[1],
            flags=flags,
            compression_method=header[3],
            last_mod_time=header[4],
            last_mod_date=header[5],
            crc32=header[6],
            compressed_size=header[7],
            uncompressed_size=header[8],
            filename=data[name_start:extra_start],
            extra=data[extra_start:data_offset],
            data_offset=data_offset,
            data_end=data_end,
            record_end=record_end,
        )
        self._local_headers[index] = lfh
        return lfh

    def payload(self, index):
        """Compressed bytes of entry index, without headers or data descriptor."""
        lfh = self.local_header(index)
        return self.data[lfh.data_offset:lfh.data_end]
