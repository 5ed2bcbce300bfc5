"""
Handler for the check, list and repair commands.
Each command takes the parsed argparse namespace and returns an exit status.
"""

import os
import warnings

from namefix.atomic import atomic_output
from namefix.encodings import Detection, resolve_encoding, hint_from_locale
from namefix.errors import (
    AmbiguousEncodingError,
    UnsupportedEncodingError,
    PartialRecoveryWarning,
)
from namefix.normalization import check_utf8_name
from namefix.planner import Unrecoverable, Verdict, diagnose, plan_repair
from namefix.rebuilder import rebuild_archive
from namefix.zip_structures import ZipArchive

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_NEEDS_REPAIR = 2
EXIT_AMBIGUOUS = 3
EXIT_UNSUPPORTED = 4
EXIT_PARTIAL = 5


class ZipNameHandler:
    """Checks, lists and repairs the entry names of ZIP archives."""

    def __init__(self, hint_provider=hint_from_locale):
        """Initialize the handler.

        Args:
            hint_provider: callable returning the preferred LegacyEncoding (or None)
                           when -e is not given. Defaults to the process locale.
        """
        self.hint_provider = hint_provider

    def _is_quiet(self, args):
        return getattr(args, 'quiet', False) or getattr(args, 'silent', False)

    def _say(self, args, message=""):
        if not self._is_quiet(args):
            print(message)

    def _plan(self, args):
        """Parse the input archive and decide what to do with every entry."""
        archive = ZipArchive.open(args.input)

        forced = resolve_encoding(args.encoding) if args.encoding else None
        hint = None if forced else self.hint_provider()
        if args.verbose:
            if forced:
                print(f"Forced encoding: {forced}")
            else:
                print(f"Preferred encoding from locale: {hint or 'none'}")

        plan = plan_repair(archive, hint=hint, forced=forced, prefer_utf8=args.utf8)
        return archive, plan

    def _describe_zip_flags(self, flags):
        """Describe the meaning of ZIP general purpose bit flags."""
        descriptions = []

        if flags & 0x0001:
            descriptions.append("encrypted")
        if flags & 0x0008:
            descriptions.append("data descriptor follows")
        if flags & 0x0040:
            descriptions.append("strong encryption")
        if flags & 0x0800:
            descriptions.append("UTF-8 encoding")
        if flags & 0x2000:
            descriptions.append("encrypted central directory")

        return ", ".join(descriptions) if descriptions else "none"

    def _get_compression_type_name(self, compress_type):
        """Get a human-readable name for the compression type."""
        compression_types = {
            0: "stored",
            1: "shrunk",
            6: "imploded",
            8: "deflated",
            9: "enhanced deflated",
            12: "BZIP2",
            14: "LZMA",
            93: "Zstandard",
            95: "XZ",
            98: "PPMd",
        }
        return compression_types.get(compress_type, f"unknown ({compress_type})")

    def _entry_status(self, entry, decision, detection):
        """Return (status label, display name) for one entry as currently stored."""
        raw = entry.raw_name

        unicode_name = entry.unicode_path
        if unicode_name is not None:
            return "UNICODE PATH", unicode_name.decode('utf-8')

        if entry.is_utf8:
            composed = check_utf8_name(raw)
            if composed is not None:
                status = "REGULAR UTF-8" if composed == raw else "IRREGULAR UTF-8"
                return status, raw.decode('utf-8')
        elif raw.isascii():
            return "ASCII", raw.decode('ascii')

        encoding = detection.encoding
        if encoding is None or not encoding.can_decode(raw):
            return "UNDECODABLE", raw.decode('utf-8', 'replace')

        status = f"{encoding} GUESSED"
        if detection.status is Detection.AMBIGUOUS:
            status += f" (ambiguous: {', '.join(str(c) for c in detection.candidates)})"
        elif isinstance(decision, Unrecoverable):
            return "UNDECODABLE", raw.decode('utf-8', 'replace')
        return status, encoding.decode(raw)

    def _print_entry_details(self, entry):
        central = entry.central
        print(f"    flags               : 0x{central.flags:04x} ({self._describe_zip_flags(central.flags)})")
        print(f"    compression_method  : {central.compression_method} "
              f"({self._get_compression_type_name(central.compression_method)})")
        print(f"    local_header_offset : {central.lfh_offset}")
        print(f"    compressed_size     : {central.compressed_size}")
        print(f"    uncompressed_size   : {central.uncompressed_size}")
        print(f"    raw_name            : {central.filename.hex()}")
        if entry.has_unicode_path_field:
            consistent = "consistent" if entry.unicode_path is not None else "inconsistent, ignored"
            print(f"    unicode_path_field  : present ({consistent})")

    def list(self, args):
        """List every entry name with how it is encoded."""
        archive, plan = self._plan(args)

        if not len(archive):
            print(f"Archive {args.input} is empty")
            return EXIT_OK

        for entry, decision in zip(archive, plan):
            status, name = self._entry_status(entry, decision, plan.detection)
            print(f"{status}:{name}")
            if args.verbose:
                self._print_entry_details(entry)
        return EXIT_OK

    def check(self, args):
        """Report whether the archive needs repair; write nothing."""
        archive, plan = self._plan(args)
        diagnosis = diagnose(archive)

        self._say(args, diagnosis.message)
        self._say(args, diagnosis.note)

        if plan.verdict is Verdict.ALREADY_VALID:
            self._say(args, "Nothing to repair.")
            return EXIT_OK
        if plan.verdict is Verdict.AMBIGUOUS:
            names = ", ".join(str(c) for c in plan.candidates)
            self._say(args, f"Warning: file names can be decoded as any of {names}; use -e to choose one")
            return EXIT_AMBIGUOUS
        if plan.verdict is Verdict.UNSUPPORTED:
            self._say(args, "Warning: no supported encoding decodes every file name")
            return EXIT_UNSUPPORTED

        if plan.encoding is not None:
            self._say(args, f"Legacy encoding: {plan.encoding}")
        if plan.is_partial:
            self._say(args, f"Warning: {len(plan.unrecoverable)} entries cannot be repaired")
            return EXIT_PARTIAL
        return EXIT_NEEDS_REPAIR

    def _confirm(self, args):
        if args.yes or self._is_quiet(args):
            return True
        try:
            answer = input("Are these file names correct? [Y/n] ")
        except EOFError:
            return False
        return answer.strip().lower() in ('', 'y', 'yes')

    def _destination(self, args):
        """Return the output path, or None after printing why there is none."""
        if args.in_place:
            return args.input

        if not args.output:
            print("Error: an output file is required (or use -i to repair in place)")
            return None
        if os.path.abspath(args.output) == os.path.abspath(args.input):
            print("Error: input and output must be different files (use -i to repair in place)")
            return None
        if os.path.exists(args.output):
            print(f"Error: {args.output} already exists")
            return None
        return args.output

    def repair(self, args):
        """Rewrite the archive with UTF-8 names."""
        destination = self._destination(args)
        if destination is None:
            return EXIT_FAILURE

        archive, plan = self._plan(args)

        if plan.verdict is Verdict.AMBIGUOUS:
            raise AmbiguousEncodingError(plan.candidates)
        if plan.verdict is Verdict.UNSUPPORTED:
            raise UnsupportedEncodingError()
        if plan.verdict is Verdict.ALREADY_VALID and not args.force:
            self._say(args, "All file names are already ASCII or UTF-8; nothing to do.")
            return EXIT_OK

        if plan.encoding is not None:
            self._say(args, f"Legacy encoding: {plan.encoding}")
        if not self._is_quiet(args):
            for entry, decision in zip(archive, plan):
                if isinstance(decision, Unrecoverable):
                    print(f"UNCHANGED:{entry.raw_name.decode('utf-8', 'replace')} ({decision.reason})")
                else:
                    name = decision.name if decision.name is not None else entry.raw_name
                    print(name.decode('utf-8', 'replace'))

        if not self._confirm(args):
            print("Aborted, nothing was written")
            return EXIT_FAILURE

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter('always', PartialRecoveryWarning)
            data = rebuild_archive(archive, plan)

        with atomic_output(destination) as f:
            f.write(data)

        partial = False
        for warning in caught:
            if issubclass(warning.category, PartialRecoveryWarning):
                partial = True
                self._say(args, f"Warning: {warning.message}")
            else:
                warnings.warn_explicit(warning.message, warning.category,
                                       warning.filename, warning.lineno)

        self._say(args, f"Wrote {destination}")
        return EXIT_PARTIAL if partial else EXIT_OK
