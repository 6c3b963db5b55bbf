"""The ``asml`` command line."""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence

from asml import commands
from asml.artifact import ArtifactError
from asml.bom import ASML_VERSION
from asml.commands import CommandError


def build_parser() -> argparse.ArgumentParser:
    """The argument parser with one sub-command per command."""
    parser = argparse.ArgumentParser(prog="asml")
    parser.add_argument(
        "-V", "--version", action="version", version=f"asml {ASML_VERSION}"
    )
    sub = parser.add_subparsers(dest="command", metavar="<command>")

    about = "Initialize a basic AssemblyLift application"
    init = sub.add_parser("init", help=about, description=about)
    init.add_argument("-l", "--lang", dest="language", default="rust")
    init.add_argument("-n", "--name", dest="project_name", required=True)
    init.set_defaults(func=commands.init)

    about = "Make a new service or function"
    make = sub.add_parser(
        "make",
        help=about,
        description=about,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "RESOURCE SYNTAX:\n"
            "    asml make service <service-name>\n"
            "    asml make function <service-name>.<function-name>"
        ),
    )
    make.add_argument("resource", nargs="+")
    make.set_defaults(func=commands.make)

    about = "Build the AssemblyLift application"
    cast = sub.add_parser("cast", help=about, description=about)
    cast.set_defaults(func=commands.cast)

    about = "Bind the application to the cloud backend"
    bind = sub.add_parser("bind", aliases=["sync"], help=about, description=about)
    bind.set_defaults(func=commands.bind)

    about = "Destroy all infrastructure created by 'bind'"
    burn = sub.add_parser(
        "burn",
        help=about,
        description=about,
        epilog="Equivalent to 'terraform destroy'",
    )
    burn.set_defaults(func=commands.burn)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command named in ``argv``; returns the exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)
    func = getattr(args, "func", None)
    if func is None:
        parser.print_help(sys.stderr)
        return 2
    try:
        func(args)
    except (CommandError, ArtifactError, ValueError, OSError) as exc:
        print(f"asml: error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())