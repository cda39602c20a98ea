import argparse
import logging
import sys
from typing import List, Optional

from dotenv import load_dotenv

from tunesync.application.pipeline import LibraryMigrator, MigrationResult
from tunesync.crosscutting.config import ConfigError, MigrationConfig, load_config
from tunesync.crosscutting.logging import setup_logging
from tunesync.crosscutting.reporting import render_text
from tunesync.domain.errors import AuthError, ParseError
from tunesync.infrastructure.library_xml import parse
from tunesync.infrastructure.providers.spotify import SpotifyRemoteLibrary

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_AUTH = 2
EXIT_INTERRUPTED = 130

logger = logging.getLogger(__name__)


class UsageErrorParser(argparse.ArgumentParser):
    """Argument parser that reports usage errors with EXIT_USAGE."""

    def error(self, message):
        self.print_usage(sys.stderr)
        sys.stderr.write(f"Missing required flags. Please seek help.\nerror: {message}\n")
        sys.exit(EXIT_USAGE)


class CLI:
    """Command Line Interface for tunesync."""

    def __init__(self):
        """Initialize CLI."""
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create argument parser."""
        parser = UsageErrorParser(
            prog='tunesync',
            description='Migrate an iTunes / Apple Music library to Spotify'
        )
        parser.add_argument(
            '--token',
            required=True,
            help='OAuth2 access token from the Spotify developer console'
        )
        parser.add_argument(
            '--library',
            required=True,
            help='Library.xml file exported from iTunes / Apple Music'
        )
        return parser

    def _parse_args(self, argv: Optional[List[str]]) -> argparse.Namespace:
        args = self.parser.parse_args(argv)
        if not args.token.strip() or not args.library.strip():
            self.parser.error("--token and --library must not be empty")
        return args

    def _create_remote(self, token: str, config: MigrationConfig) -> SpotifyRemoteLibrary:
        """Create the Spotify remote library."""
        return SpotifyRemoteLibrary(
            token,
            market=config.market,
            search_limit=config.search_limit,
            requests_timeout=config.requests_timeout,
            max_retries=config.max_retries,
        )

    def _print_summary(self, result: MigrationResult) -> None:
        print(f"Logged in as {result.user.display_name or '-'} (user id: {result.user.id})")
        print(f"Library tracks added: {result.library_resolved}")
        created = sum(1 for p in result.playlists if p.created)
        print(f"Playlists created: {created}/{len(result.playlists)}")

    def run(self, argv: Optional[List[str]] = None) -> int:
        """Run the CLI and return the process exit code."""
        args = self._parse_args(argv)

        try:
            config = load_config()
        except ConfigError as e:
            sys.stderr.write(f"Invalid configuration: {e}\n")
            return EXIT_USAGE

        try:
            setup_logging(config.log_level, config.log_file, config.log_format, secrets=[args.token])
        except OSError as e:
            sys.stderr.write(f"Invalid configuration: cannot open log file {config.log_file}: {e}\n")
            return EXIT_USAGE

        try:
            library = parse(args.library)
        except ParseError as e:
            sys.stderr.write(f"Could not parse the library {args.library}: {e}\n")
            return EXIT_USAGE

        migrator = LibraryMigrator(self._create_remote(args.token, config), config)
        try:
            result = migrator.migrate(library)
        except AuthError as e:
            sys.stderr.write(f"{e}\n")
            return EXIT_AUTH
        except KeyboardInterrupt:
            logger.warning("Operation cancelled by user")
            return EXIT_INTERRUPTED

        self._print_summary(result)
        report = result.report(args.library)
        print(render_text(report))

        if config.report_path:
            try:
                report.write_json(config.report_path)
                logger.info(f"Report saved to: {config.report_path}")
            except OSError as e:
                logger.error(f"Failed to write report: {e}")

        return EXIT_OK


def main():
    """Main entry point."""
    load_dotenv()
    sys.exit(CLI().run())


if __name__ == '__main__':
    main()
