"""Build a rolling archive from grid files."""
# /// script
# dependencies = [
#   "gridarchive",
# ]
# ///

import argparse
import glob
import logging

import gridarchive
from gridarchive import ArchiveConfig


def main():
    "Build a rolling archive from grid files."
    parser = argparse.ArgumentParser(description="Build a rolling archive from grid files.")
    parser.add_argument(
        "files", nargs="+", help="Input grid files followed by the archive file"
    )
    parser.add_argument("-c", "--config", help="YAML archive configuration")
    parser.add_argument(
        "--append",
        action="store_true",
        help="Append to an existing archive instead of creating a new one",
    )
    parser.add_argument(
        "--finalize",
        action="store_true",
        help="Fix the length of the time dimension when done",
    )
    parser.add_argument("-v", "--verbose", action="store_true")

    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)

    if len(args.files) < 2:
        print("Error: At least one input file and the archive file are required.")
        return

    archive_file = args.files[-1]
    input_patterns = args.files[:-1]
    input_files = sorted(
        file for pattern in input_patterns for file in glob.glob(pattern)
    )

    if not input_files:
        print("Error: No matching input files found.")
        return

    config = ArchiveConfig.from_yaml(args.config) if args.config else ArchiveConfig()

    if args.append:
        archive = gridarchive.open(archive_file, config)
    else:
        archive = gridarchive.create(archive_file, config)
        archive.define(input_files[0])

    with archive:
        for file in input_files:
            result = archive.add_file(file)
            print(f"{file}: {len(result)} time steps")
        if args.finalize:
            archive.finalize()

    print(f"Created: {archive_file} ({archive.time_cursor} time steps)")


if __name__ == "__main__":
    main()
