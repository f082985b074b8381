"""Subcommand dispatcher for reelcompose.

Usage:
    reelcompose export   --project reel.yaml --output reel.mp4
    reelcompose validate --project reel.yaml
    reelcompose sprites  clip1.mp4 clip2.mov
"""

import argparse
import sys


def main(args=None):
    parser = argparse.ArgumentParser(
        prog="reelcompose",
        description="Highlight reel composition: sprites, trims, transitions, export.",
    )
    subparsers = parser.add_subparsers(dest="command")

    # Register subcommands. Each delegates to its own module's main().
    subparsers.add_parser("export", help="Render a project manifest to one video")
    subparsers.add_parser("validate", help="Ingest a project and print its render plan")
    subparsers.add_parser("sprites", help="Build scrub sprite sheets for clips")

    # Parse only the subcommand name, pass the rest to the subcommand's parser.
    parsed, remaining = parser.parse_known_args(args)

    if parsed.command is None:
        parser.print_help()
        sys.exit(1)

    if parsed.command == "export":
        from .export_cli import main as export_main
        export_main(remaining)
    elif parsed.command == "validate":
        from .export_cli import validate_main
        validate_main(remaining)
    elif parsed.command == "sprites":
        from .sprites_cli import main as sprites_main
        sprites_main(remaining)


if __name__ == "__main__":
    main()
