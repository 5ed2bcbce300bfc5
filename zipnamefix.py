#!/usr/bin/env python3
"""
zipnamefix - Repair garbled file names in ZIP archives.

Archives created on Windows store entry names in the code page of the
machine that wrote them, and archives created on macOS store UTF-8 names in
decomposed form. Both show up as broken names elsewhere. This tool finds
the single legacy encoding used across an archive and rewrites every name
as canonical UTF-8, copying compressed data untouched.
"""

import sys
sys.dont_write_bytecode = True # no __pycache__ bs

import argparse
from namefix.errors import (
    ArchiveFormatError,
    AmbiguousEncodingError,
    UnsupportedEncodingError,
    UnknownEncodingError,
)
from namefix.zip_handler import (
    ZipNameHandler,
    EXIT_OK,
    EXIT_FAILURE,
    EXIT_AMBIGUOUS,
    EXIT_UNSUPPORTED,
)


class ZipNameFix:
    def __init__(self, handler=None):
        self.parser = self._create_parser()
        self.handler = handler or ZipNameHandler()

    def _create_parser(self):
        """Create the command line argument parser."""
        parser = argparse.ArgumentParser(
            prog="zipnamefix",
            description="Convert legacy-encoded and decomposed file names in a ZIP archive to UTF-8.",
            epilog="Exit status: 0 ok, 1 error, 2 check found names to repair, "
                   "3 ambiguous encoding, 4 unsupported encoding, 5 partial repair.",
        )

        parser.add_argument("input", help="ZIP archive to read")
        parser.add_argument("output", nargs="?", help="Path of the repaired archive (must not exist)")

        modes = parser.add_mutually_exclusive_group()
        modes.add_argument("-c", "--check", action="store_true",
                           help="Only check whether the archive needs repair; write nothing")
        modes.add_argument("-l", "--list", action="store_true",
                           help="List file names and how they are encoded; write nothing")
        modes.add_argument("-i", "--in-place", action="store_true",
                           help="Repair the input archive in place")

        parser.add_argument("-e", "--encoding",
                            help="Use this legacy encoding instead of detecting it (e.g. sjis, cp437, gbk)")
        parser.add_argument("-u", "--utf8", action="store_true",
                            help="Prefer UTF-8 when it decodes every file name")
        parser.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation")
        parser.add_argument("-q", "--quiet", action="store_true",
                            help="Print errors only (implies -y)")
        parser.add_argument("-s", "--silent", action="store_true",
                            help="Same as --quiet")
        parser.add_argument("-f", "--force", action="store_true",
                            help="Rewrite the archive even when no name needs repair")
        parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

        return parser

    def run(self, argv=None):
        """Run the main program and return the exit status."""
        try:
            args = self.parser.parse_args(argv)
        except SystemExit as e:
            # argparse exits 2 on bad arguments, which is our "needs repair" status
            return EXIT_FAILURE if e.code else EXIT_OK

        if (args.check or args.list or args.in_place) and args.output:
            self.parser.print_usage()
            print("Error: an output file cannot be combined with -c, -l or -i")
            return EXIT_FAILURE

        try:
            if args.check:
                return self.handler.check(args)
            if args.list:
                return self.handler.list(args)
            return self.handler.repair(args)
        except UnknownEncodingError as e:
            print(f"Error: {e}")
            return EXIT_FAILURE
        except AmbiguousEncodingError as e:
            print(f"Error: {e}")
            return EXIT_AMBIGUOUS
        except UnsupportedEncodingError as e:
            print(f"Error: {e}")
            return EXIT_UNSUPPORTED
        except ArchiveFormatError as e:
            print(f"Error: {args.input} cannot be processed because {e}")
            return EXIT_FAILURE
        except OSError as e:
            print(f"Error: {e}")
            return EXIT_FAILURE


def main(argv=None):
    sys.exit(ZipNameFix().run(argv))


if __name__ == "__main__":
    main()
