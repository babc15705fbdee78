"""Main entry point for se-stats-exporter CLI."""

import sys

from se_stats_exporter.cli import cli_main


def main() -> int:
    """Main entry point for se-stats-exporter.

    Returns:
        Exit code (0 after graceful shutdown, 1 on startup errors)
    """
    try:
        cli_main()
        return 0
    except SystemExit as e:
        return e.code if isinstance(e.code, int) else 0
    except KeyboardInterrupt:
        return 130  # Standard exit code for SIGINT


if __name__ == "__main__":
    sys.exit(main())
