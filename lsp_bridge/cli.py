"""lsp-bridge CLI entry point."""

import asyncio
import json
import sys
from typing import Optional

import click

from lsp_bridge import __version__
from lsp_bridge.config import SUPPORTED_TRANSPORTS, BridgeConfig
from lsp_bridge.exceptions import BridgeError
from lsp_bridge.utils.logger import configure_logging


def _load_config(ctx: click.Context) -> BridgeConfig:
    try:
        config = BridgeConfig.from_env(dotenv_path=ctx.obj.get("env_file"))
        if ctx.obj.get("log_level"):
            config.log_level = ctx.obj["log_level"].upper()
        config.validate()
    except BridgeError as e:
        raise click.ClickException(e.message) from e
    configure_logging(config.log_level, force=True)
    return config


def _echo_json(payload: dict) -> None:
    click.echo(json.dumps(payload, indent=2))


@click.group()
@click.version_option(version=__version__, prog_name="lsp-bridge")
@click.option(
    "--env-file",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help=".env file to load before reading LSP_BRIDGE_* variables",
)
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, ...)")
@click.pass_context
def cli(ctx: click.Context, env_file: Optional[str], log_level: Optional[str]):
    """lsp-bridge - C# code intelligence over a language server.

    Logs go to stderr; command output goes to stdout.
    """
    ctx.ensure_object(dict)
    ctx.obj["env_file"] = env_file
    ctx.obj["log_level"] = log_level


@cli.command()
@click.option(
    "--transport",
    "-t",
    default=None,
    type=click.Choice(SUPPORTED_TRANSPORTS),
    help="MCP transport (default: LSP_BRIDGE_TRANSPORT or streamable-http)",
)
@click.option("--host", "-h", default=None, help="Host to bind to")
@click.option("--port", "-p", default=None, type=int, help="Port to bind to")
@click.pass_context
def serve(
    ctx: click.Context,
    transport: Optional[str],
    host: Optional[str],
    port: Optional[int],
):
    """Start the MCP server.

    Examples:

        lsp-bridge serve

        lsp-bridge serve --transport stdio
    """
    from lsp_bridge.server import BridgeServer

    config = _load_config(ctx)
    if transport:
        config.transport = transport
    if host:
        config.host = host
    if port is not None:
        config.port = port

    try:
        server = BridgeServer(config)
    except BridgeError as e:
        raise click.ClickException(e.message) from e

    try:
        server.run()
    except KeyboardInterrupt:
        click.echo("Stopped.", err=True)


@cli.command()
@click.argument("repo", type=click.Path(exists=True, file_okay=False))
@click.argument("query")
@click.pass_context
def symbols(ctx: click.Context, repo: str, query: str):
    """Search REPO for symbols matching QUERY.

    Examples:

        lsp-bridge symbols ~/src/app Foo
    """
    from lsp_bridge.runtime import BridgeRuntime

    config = _load_config(ctx)

    async def run():
        async with BridgeRuntime(config) as runtime:
            matches = await runtime.code_intel.search_symbols(repo, query)
            return [match.to_lsp() for match in matches]

    try:
        result = asyncio.run(run())
    except BridgeError as e:
        click.echo(f"{type(e).__name__}: {e.message}", err=True)
        sys.exit(1)
    _echo_json({"count": len(result), "symbols": result})


@cli.command()
@click.argument("repo", type=click.Path(exists=True, file_okay=False))
@click.argument("file")
@click.pass_context
def diagnostics(ctx: click.Context, repo: str, file: str):
    """Print diagnostics for FILE in REPO.

    FILE may be absolute or relative to REPO.

    Examples:

        lsp-bridge diagnostics ~/src/app src/Foo.cs
    """
    from lsp_bridge.runtime import BridgeRuntime

    config = _load_config(ctx)

    async def run():
        async with BridgeRuntime(config) as runtime:
            report = await runtime.code_intel.fetch_diagnostics(repo, file)
            return report.to_lsp()

    try:
        result = asyncio.run(run())
    except BridgeError as e:
        click.echo(f"{type(e).__name__}: {e.message}", err=True)
        sys.exit(1)
    _echo_json(result)


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
