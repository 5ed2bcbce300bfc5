"""
ZIP file name repair engine
"""

from namefix.zip_structures import ZipArchive, ArchiveEntry
from namefix.encodings import LegacyEncoding, resolve_encoding, hint_from_locale, detect_encoding
from namefix.planner import RepairPlan, Verdict, plan_repair, diagnose
from namefix.rebuilder import rebuild_archive
from namefix.zip_handler import ZipNameHandler

__all__ = ['ZipArchive', 'ArchiveEntry', 'LegacyEncoding', 'resolve_encoding', 'hint_from_locale',
           'detect_encoding', 'RepairPlan', 'Verdict', 'plan_repair', 'diagnose',
           'rebuild_archive', 'ZipNameHandler']
