#!/usr/bin/env python3
"""
Upload pipeline artifacts to object storage.

CLI wrapper for the uploader providing command-line access to the upload
engine with environment-based configuration.

Usage:
    python scripts/upload.py results.zip
    python scripts/upload.py results.zip summary.txt --subdirectory benchmarks/2026-10-19
    python scripts/upload.py *.zip --config uploader.yaml --max-attempts 5
"""

import argparse
import sys
from dataclasses import replace
from pathlib import Path

import yaml

# Add project root to path for imports (before other imports)
_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from artifact_uploader.uploader import upload_files  # noqa: E402
from artifact_uploader.utils.config import get_config  # noqa: E402
from artifact_uploader.utils.config_loader import load_config, validate_config  # noqa: E402
from artifact_uploader.utils.logging import get_logger, setup_logging  # noqa: E402

logger = get_logger(__name__)


def parse_args(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Upload pipeline artifacts to object storage",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Upload a single file to the bucket root
  %(prog)s results.zip

  # Upload under a subdirectory
  %(prog)s results.zip summary.txt --subdirectory benchmarks/

  # Read credentials and defaults from a YAML config file
  %(prog)s results.zip --config uploader.yaml
        """,
    )

    parser.add_argument(
        "files",
        nargs="+",
        help="File(s) to upload",
    )

    parser.add_argument(
        "-s",
        "--subdirectory",
        default=None,
        help="Object key prefix (default: from config file, else bucket root)",
    )

    parser.add_argument(
        "-c",
        "--config",
        help="YAML config file with credentials and upload defaults",
    )

    parser.add_argument(
        "-a",
        "--max-attempts",
        type=int,
        help="Retry budget for the whole run (default: from config)",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose output",
    )

    return parser.parse_args(argv)


def main(argv=None):
    """Main entry point for upload CLI."""
    args = parse_args(argv)

    setup_logging(level="DEBUG" if args.verbose else "INFO")

    try:
        config = get_config()
    except ValueError as e:
        print(f"❌ Configuration error: {e}")
        return 1

    subdirectory = args.subdirectory
    if args.config:
        try:
            file_config = load_config(args.config)
        except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
            print(f"❌ Configuration error: {e}")
            return 1

        errors = validate_config(file_config)
        if errors:
            print("❌ Invalid configuration file:")
            for error in errors:
                print(f"  • {error}")
            return 1

        upload_section = file_config.get("upload") or {}
        try:
            config = replace(
                config,
                config_file=args.config,
                max_attempts=upload_section.get("max_attempts", config.max_attempts),
                backoff_seconds=upload_section.get("backoff_seconds", config.backoff_seconds),
            )
        except ValueError as e:
            print(f"❌ Configuration error: {e}")
            return 1
        if subdirectory is None:
            subdirectory = upload_section.get("subdirectory", "")

    if args.max_attempts is not None:
        try:
            config = replace(config, max_attempts=args.max_attempts)
        except ValueError as e:
            print(f"❌ Configuration error: {e}")
            return 1

    subdirectory = subdirectory or ""

    print(f"📤 Uploading {len(args.files)} file(s)")
    print(f"   Subdirectory: {subdirectory or '(bucket root)'}")
    print(f"   Retry budget: {config.max_attempts}")
    print()

    try:
        outcome = upload_files(subdirectory, args.files, config=config)
    except KeyboardInterrupt:
        print("\n⚠️  Upload cancelled by user")
        return 130
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        print(f"❌ Unexpected error: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1

    if not outcome.success:
        print("❌ Upload failed:")
        print(f"  Error: {outcome.error_message}")
        return 1

    print(f"✅ {len(outcome.urls)} file(s) available ({outcome.duration_seconds:.2f}s)")
    for path, url in outcome.urls:
        print(f"  {path} -> {url}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
