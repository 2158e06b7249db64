"""
Command line entry point for the UAT Routing Service.

Commands:
- route   route a single work item and print the result as JSON
- batch   route several work items, optionally exporting an Excel report
- serve   run the HTTP API
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import click

from .config import AppConfig, get_config
from .errors import NotFoundError, RoutingError
from .report import ReportError, generate_batch_report
from .service import build_service


def setup_logging(level: str) -> None:
    """
    Configure application logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Configuration is incomplete."""
    pass


def validate_config(config: AppConfig) -> None:
    """
    Validate configuration before running.

    Args:
        config: Application configuration.

    Raises:
        ConfigurationError: If configuration is invalid.
    """
    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(f"Configuration error: {error}")
        raise ConfigurationError(
            f"Configuration validation failed with {len(errors)} error(s)"
        )


@click.group(invoke_without_command=True)
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug logging",
)
@click.option(
    "--validate-only",
    is_flag=True,
    default=False,
    help="Only validate configuration without running a command",
)
@click.pass_context
def cli(ctx: click.Context, debug: bool, validate_only: bool) -> None:
    """
    UAT Routing Service.

    Produces routing recommendations for Azure DevOps UAT work items
    using an Azure OpenAI deployment.
    """
    config = get_config()
    setup_logging("DEBUG" if debug else config.log_level)
    ctx.obj = {"config": config, "debug": debug}

    try:
        validate_config(config)
    except ConfigurationError as e:
        click.echo(f"Invalid configuration: {e}", err=True)
        sys.exit(1)

    if validate_only:
        logger.info("Configuration is valid!")
        ctx.exit(0)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.argument("work_item_id")
@click.option("--project", "-p", default=None, help="Azure DevOps project (enables comments)")
@click.pass_context
def route(ctx: click.Context, work_item_id: str, project: Optional[str]) -> None:
    """Route a single work item and print the result as JSON."""
    service = build_service(ctx.obj["config"])
    try:
        response = service.route_ticket(work_item_id, project)
    except NotFoundError as e:
        click.echo(f"Not found: {e}", err=True)
        sys.exit(2)
    except RoutingError as e:
        click.echo(f"Routing failed: {e}", err=True)
        sys.exit(1)
    finally:
        service.close()

    click.echo(response.model_dump_json(by_alias=True, exclude_none=True, indent=2))


@cli.command()
@click.argument("work_item_ids", nargs=-1, required=True)
@click.option("--project", "-p", default=None, help="Azure DevOps project (enables comments)")
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write an Excel report of the results to this path",
)
@click.pass_context
def batch(
    ctx: click.Context,
    work_item_ids: tuple[str, ...],
    project: Optional[str],
    output: Optional[Path],
) -> None:
    """Route several work items."""
    service = build_service(ctx.obj["config"])
    try:
        response = service.route_batch(list(work_item_ids), project)
    finally:
        service.close()

    if output:
        try:
            generate_batch_report(response, output)
        except ReportError as e:
            click.echo(f"Report generation failed: {e}", err=True)
            sys.exit(1)

    click.echo(response.model_dump_json(by_alias=True, exclude_none=True, indent=2))


@cli.command()
@click.option("--host", default="0.0.0.0", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
@click.pass_context
def serve(ctx: click.Context, host: str, port: int) -> None:
    """Run the HTTP API."""
    import uvicorn

    from .api import create_app

    config: AppConfig = ctx.obj["config"]
    app = create_app(build_service(config), config)
    uvicorn.run(app, host=host, port=port, log_level="debug" if ctx.obj["debug"] else "info")


def main() -> None:
    try:
        cli()
    except KeyboardInterrupt:
        click.echo("\nOperation cancelled by user", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
