#!/usr/bin/env python3
import argparse
import sys
import colorama
from colorama import Fore, Style
from absdepfile.lib.depfile import ResolveError, check_base_dir, resolve

DESCRIPTION = """\
Reads the given dependency file generated by passing the '-MF' flag to a C
compiler (e.g. clang). Paths are parsed from the read content and are resolved
relative to the given directory. The resolved paths are then written back to
the file.
"""

verbose = False

def error(message):
    sys.exit(f"{Fore.RED}{Style.BRIGHT}error:{Style.RESET_ALL} {message}")

def debug(message):
    if verbose:
        print(f"{Style.DIM}debug: {message}{Style.RESET_ALL}", file=sys.stderr)


class ArgumentParser(argparse.ArgumentParser):
    def error(self, message):
        error(message)


def main(argv=None):
    global verbose
    colorama.init()

    parser = ArgumentParser(prog="absdepfile", description=DESCRIPTION)
    parser.add_argument("depfile", metavar="DEPFILE",
        help="Path to a file. It is read and then overwritten in place.")
    parser.add_argument("dir", metavar="DIR",
        help="Path to a directory. Must be absolute.")
    parser.add_argument("-v", "--verbose", action="store_true",
        help="Print the thought process of this program.")

    if argv is None:
        argv = sys.argv[1:]
    if not argv:
        parser.print_help()
        return

    args = parser.parse_args(argv)
    verbose = args.verbose

    debug(f"directory: {args.dir}")
    try:
        check_base_dir(args.dir)
    except ResolveError as e:
        error(e.message)

    debug(f"file: {args.depfile}")
    try:
        with open(args.depfile, "rb") as f:
            original = f.read()
        content = original.decode("utf-8")
    except OSError as e:
        error(f"cannot read contents of file ({args.depfile}): {e.strerror}")
    except UnicodeDecodeError as e:
        error(f"cannot read contents of file ({args.depfile}): {e}")
    debug(f"file content size: {len(original)}")

    try:
        resolved = resolve(content, args.dir, trace=debug)
    except ResolveError as e:
        if e.hint is not None:
            error(f"{e.message}, {e.hint}")
        error(e.message)

    if resolved == original:
        # Keep the mtime intact so that make won't rebuild dependents.
        debug("file is already resolved")
        return

    try:
        with open(args.depfile, "wb") as f:
            f.write(resolved)
    except OSError as e:
        error(f"cannot write back file ({args.depfile}): {e.strerror}")

if __name__ == "__main__":
    main()
