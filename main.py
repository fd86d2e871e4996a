'''
Hunting Triage CLI

Single responsibility: glue the catalog runs together.

Responsibilities:
- Parse CLI arguments into an InvestigationContext
- Load configuration and establish a backend session
- Run the device catalog, then the identity catalog

This file contains no business logic.

'''
import argparse
import logging
import sys

from rich.console import Console
from rich.logging import RichHandler

from HUNT.Auth.session import build_authenticator
from HUNT.Config.settings import HuntConfigLoader, default_config_path
from HUNT.Orchestrator.orchestrator import run_device_queries, run_identity_queries
from HUNT.Query.backend import GraphHuntingBackend, StaticBackend
from HUNT.Query.parameters import DEFAULT_TIME_FRAME, build_context
from HUNT.errors import AuthenticationError, CatalogParseError, ConfigError

logger = logging.getLogger("hunt")

EXIT_OK = 0
EXIT_CATALOG_ERROR = 1
EXIT_STARTUP_ERROR = 2
EXIT_INTERRUPTED = 130


def parse_args(argv=None):
	p = argparse.ArgumentParser(description="Run hunting query catalogs for a device and/or identity")
	p.add_argument("-d", "--device-id", help="Device id (40 hexadecimal characters)")
	p.add_argument("-u", "--upn", help="User principal name (user@domain)")
	p.add_argument("-t", "--timeframe", default=DEFAULT_TIME_FRAME, help="Query time filter, e.g. 7d, 12h")
	p.add_argument("-v", "--verbose", action="store_true", help="Echo result tables to the terminal")
	p.add_argument("-e", "--export", action="store_true", help="Export non-empty results to <QueryName>.csv")
	p.add_argument("--config", default=default_config_path(), help="Path to config.yml")
	p.add_argument("--workers", type=int, help="Parallel backend queries (overrides config)")
	p.add_argument("--offline", action="store_true", help="Use an empty in-memory backend (no sign-in)")
	p.add_argument("--debug", action="store_true", help="Debug logging")
	return p.parse_args(argv)


def setup_logging(debug: bool) -> None:
	logging.basicConfig(
		level=logging.DEBUG if debug else logging.INFO,
		format="%(message)s",
		datefmt="[%X]",
		handlers=[RichHandler(console=Console(stderr=True), show_path=debug)],
	)


def build_backend(config: HuntConfigLoader, offline: bool):
	if offline:
		logger.info("Offline mode: queries return no rows")
		return StaticBackend()
	authenticator = build_authenticator(config.auth_config)
	session = authenticator.authenticate()
	return GraphHuntingBackend(session, timeout=config.get_timeout(), endpoint=config.get_endpoint())


def main(argv=None) -> int:
	args = parse_args(argv)
	setup_logging(args.debug)
	console = Console()

	try:
		config = HuntConfigLoader(args.config)
		workers = args.workers if args.workers is not None else config.get_workers()
		if workers < 1:
			raise ConfigError("--workers must be at least 1")
	except (FileNotFoundError, ConfigError) as e:
		print(f"Error loading configuration: {e}", file=sys.stderr)
		return EXIT_STARTUP_ERROR

	context = build_context(
		device_id=args.device_id,
		user_principal_name=args.upn,
		time_frame=args.timeframe,
		echo=args.verbose,
		export=args.export,
		export_dir=config.get_export_dir(),
	)
	if not context.device_id and not context.user_principal_name:
		print("Error: provide a valid --device-id and/or --upn", file=sys.stderr)
		return EXIT_STARTUP_ERROR

	try:
		backend = build_backend(config, args.offline)
	except (AuthenticationError, ConfigError, NotImplementedError) as e:
		print(f"Error establishing backend session: {e}", file=sys.stderr)
		return EXIT_STARTUP_ERROR

	runner_options = {"report_dir": config.get_report_dir(), "workers": workers, "console": console}
	exit_code = EXIT_OK
	for entity_key, run in (("device", run_device_queries), ("identity", run_identity_queries)):
		try:
			result = run(config.get_catalog_path(entity_key), backend, context, **runner_options)
		except (CatalogParseError, ConfigError) as e:
			logger.error("Skipping %s queries: %s", entity_key, e)
			exit_code = EXIT_CATALOG_ERROR
			continue
		if result is None:
			continue

		if result.report_path:
			console.print(f"Report: {result.report_path}")
		else:
			logger.warning("No %s report was written", entity_key)
		if result.failures:
			logger.warning("%d %s queries did not complete", len(result.failures), entity_key)
		if result.cancelled:
			return EXIT_INTERRUPTED

	return exit_code


if __name__ == "__main__":
	sys.exit(main())
