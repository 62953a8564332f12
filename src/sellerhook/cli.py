"""Sellerhook CLI - Command line interface."""

from __future__ import annotations

import json
import sys
import time

import click
from rich.console import Console
from rich.table import Table

console = Console()

BANNER = """
 ___  ___  _    _    ___  ___  _  _  ___   ___  _  __
/ __|| __|| |  | |  | __|| _ \\| || |/ _ \\ / _ \\| |/ /
\\__ \\| _| | |__| |__| _| |   /| __ | (_) | (_) | ' <
|___/|___||____|____|___||_|_\\|_||_|\\___/ \\___/|_|\\_\\
       Signed webhooks for LicenseChain sellers
"""


def _read_body(body_file: str | None) -> bytes:
    if body_file and body_file != "-":
        with open(body_file, "rb") as f:
            return f.read()
    return click.get_binary_stream("stdin").read()


@click.group(invoke_without_command=True)
@click.pass_context
def main(ctx: click.Context):
    """Sellerhook - Signed webhook ingress for LicenseChain sellers.

    Examples:

        sellerhook serve --port 3002

        sellerhook sign body.json --secret s3cr3t

        sellerhook verify body.json --secret s3cr3t --signature <hex> --timestamp <ts>

        sellerhook send http://localhost:3002/api/webhooks/licensechain license.created

    Use 'sellerhook COMMAND --help' for more info on specific commands.
    """
    if ctx.invoked_subcommand is None:
        console.print(BANNER, style="cyan")
        console.print("Usage: sellerhook serve --port 3002", style="yellow")
        console.print("\nCommands:", style="bold")
        console.print("  sellerhook serve    Run the webhook server", style="dim")
        console.print("  sellerhook sign     Sign a webhook body", style="dim")
        console.print("  sellerhook verify   Verify a signed webhook body", style="dim")
        console.print("  sellerhook send     Sign and deliver a test event", style="dim")
        console.print("  sellerhook config   Show and validate configuration", style="dim")
        console.print("  sellerhook version  Show version information", style="dim")


@main.command()
@click.option(
    "--config", "-c",
    "config_file",
    type=click.Path(exists=True),
    help="Path to YAML or TOML config file",
)
@click.option("--host", default=None, help="Bind address")
@click.option("--port", "-p", type=int, default=None, help="Bind port")
@click.option(
    "--log-level",
    "-l",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Log level (default: info)",
)
@click.option(
    "--log-format",
    type=click.Choice(["json", "console"], case_sensitive=False),
    default=None,
    help="Log renderer (default: json)",
)
def serve(
    config_file: str | None,
    host: str | None,
    port: int | None,
    log_level: str | None,
    log_format: str | None,
):
    """Run the webhook server.

    Settings come from SELLERHOOK_* environment variables, then the config
    file, then these options.
    """
    from sellerhook.core.config import load_settings
    from sellerhook.logconfig import configure_logging
    from sellerhook.server import run_server

    try:
        settings, server = load_settings(config_file)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Failed to load config: {e}[/red]")
        sys.exit(1)

    overrides = {
        key: value
        for key, value in {
            "host": host,
            "port": port,
            "log_level": log_level,
            "log_format": log_format,
        }.items()
        if value is not None
    }
    if overrides:
        server = server.model_copy(update=overrides)

    configure_logging(server.log_level, server.log_format)
    run_server(settings, server)


@main.command()
@click.argument("body_file", required=False, type=click.Path(allow_dash=True))
@click.option("--secret", envvar="SELLERHOOK_SECRET", required=True, help="Webhook secret")
@click.option("--timestamp", "-t", type=int, default=None, help="Signing time (default: now)")
@click.option("--prefix", default="", help="Signature prefix, e.g. 'sha256='")
@click.option("--json", "json_output", is_flag=True, help="Output headers as JSON")
def sign(
    body_file: str | None,
    secret: str,
    timestamp: int | None,
    prefix: str,
    json_output: bool,
):
    """Sign a webhook body read from BODY_FILE or stdin."""
    from sellerhook.client import sign_payload

    signed = sign_payload(_read_body(body_file), secret, timestamp=timestamp, prefix=prefix)
    headers = signed.headers()

    if json_output:
        click.echo(json.dumps(headers, indent=2))
        return

    table = Table(title="Webhook Headers")
    table.add_column("Header", style="cyan")
    table.add_column("Value", style="green")
    for name, value in headers.items():
        table.add_row(name, value)
    console.print(table)


@main.command()
@click.argument("body_file", required=False, type=click.Path(allow_dash=True))
@click.option("--secret", envvar="SELLERHOOK_SECRET", required=True, help="Webhook secret")
@click.option("--signature", "-s", required=True, help="Hex signature, optionally prefixed")
@click.option("--timestamp", "-t", required=True, help="Signing time in epoch seconds")
@click.option("--tolerance", type=int, default=300, help="Replay window in seconds (default: 300)")
def verify(
    body_file: str | None,
    secret: str,
    signature: str,
    timestamp: str,
    tolerance: int,
):
    """Verify a webhook body read from BODY_FILE or stdin.

    Exits with status 1 if verification fails.
    """
    from sellerhook.webhooks import (
        IncomingRequest,
        WebhookConfig,
        parse_signature_header,
        verify_request,
    )

    try:
        config = WebhookConfig(secret=secret, tolerance=tolerance)
    except ValueError as e:
        console.print(f"[red]Invalid settings:[/red] {e}")
        sys.exit(1)

    request = IncomingRequest(
        body=_read_body(body_file),
        signature=parse_signature_header(signature),
        timestamp=timestamp,
    )
    result = verify_request(request, config)

    if result.valid:
        console.print(f"[green]OK[/green] {result.status.value}")
        return

    console.print(f"[red]FAILED[/red] {result.status.value}: {result.error}")
    sys.exit(1)


@main.command()
@click.argument("url")
@click.argument("kind")
@click.option("--data", "-d", default="{}", help="Event data as a JSON object")
@click.option("--secret", envvar="SELLERHOOK_SECRET", required=True, help="Webhook secret")
@click.option("--seller", help="Seller ID, sent in the body and the seller header")
@click.option("--timeout", type=float, default=30.0, help="Request timeout in seconds")
def send(url: str, kind: str, data: str, secret: str, seller: str | None, timeout: float):
    """Sign and POST an event of type KIND to URL."""
    import httpx

    from sellerhook.client import WebhookSender, build_event_body

    try:
        event_data = json.loads(data)
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid --data JSON:[/red] {e}")
        sys.exit(1)
    if not isinstance(event_data, dict):
        console.print("[red]--data must be a JSON object[/red]")
        sys.exit(1)

    body = build_event_body(kind, event_data, source_id=seller)
    start = time.perf_counter()
    try:
        with WebhookSender(url, secret, timeout=timeout) as sender:
            response = sender.send(body, source=seller)
    except httpx.HTTPError as e:
        console.print(f"[red]Error delivering webhook:[/red] {e}")
        sys.exit(1)
    elapsed_ms = (time.perf_counter() - start) * 1000

    style = "green" if response.is_success else "red"
    console.print(f"[{style}]{response.status_code}[/{style}] in {elapsed_ms:.1f}ms")
    console.print(response.text)
    if not response.is_success:
        sys.exit(1)


@main.command()
def version():
    """Show version information."""
    from sellerhook import __version__

    console.print(BANNER, style="cyan")
    console.print(f"[bold]Version:[/bold] {__version__}")
    console.print(f"[bold]Python:[/bold] {sys.version}")


@main.group()
def config():
    """View and export configuration settings.

    All settings can be configured via environment variables with the
    SELLERHOOK_ prefix. Use these commands to see current values.

    Examples:

        sellerhook config show            # Show all config settings

        sellerhook config export          # Export as env vars

        sellerhook config validate        # Validate current config
    """
    pass


@config.command("show")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.option("--section", "-s", help="Show only specific section (webhooks, server)")
def config_show(json_output: bool, section: str | None):
    """Show current configuration settings.

    Secrets are masked; seller secrets are listed by seller ID only.
    """
    from sellerhook.core.config import get_config

    display = get_config().to_display_dict()

    if section:
        section = section.lower()
        if section not in display:
            console.print(f"[red]Unknown section:[/red] {section}")
            console.print(f"[dim]Available: {', '.join(display.keys())}[/dim]")
            sys.exit(1)
        display = {section: display[section]}

    if json_output:
        click.echo(json.dumps(display, indent=2))
        return

    console.print("[bold]Current Configuration[/bold]\n")

    for section_name, settings in display.items():
        table = Table(title=section_name.title())
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="green")
        table.add_column("Env Variable", style="dim")

        for key, value in settings.items():
            env_var = f"SELLERHOOK_{key.upper()}"
            value_str = str(value) if value is not None else "[dim]None[/dim]"
            table.add_row(key, value_str, env_var)

        console.print(table)
        console.print()


@config.command("export")
@click.option("--shell", type=click.Choice(["bash", "powershell", "cmd"]), default="bash", help="Shell format")
def config_export(shell: str):
    """Export current configuration as environment variables.

    Secrets are not exported.
    """
    from sellerhook.core.config import get_config

    env_dict = get_config().to_env_dict()

    click.echo(f"# Sellerhook Configuration Export ({shell})")

    for key, value in env_dict.items():
        if shell == "bash":
            click.echo(f'export {key}="{value}"')
        elif shell == "powershell":
            click.echo(f'$env:{key}="{value}"')
        elif shell == "cmd":
            click.echo(f"set {key}={value}")


@config.command("validate")
def config_validate():
    """Validate current configuration.

    Checks that settings load and that at least one webhook secret exists.
    """
    from pydantic import ValidationError

    from sellerhook.core.config import clear_config, get_config

    clear_config()

    try:
        cfg = get_config()
        hooks = cfg.webhooks
        server = cfg.server
    except (ValidationError, ValueError) as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(1)

    errors = []
    warnings = []

    if not hooks.secret and not hooks.seller_secrets:
        errors.append("no webhook secret configured (SELLERHOOK_SECRET or SELLERHOOK_SELLER_SECRETS)")
    elif hooks.secret and len(hooks.secret) < 16:
        warnings.append("SELLERHOOK_SECRET is shorter than 16 characters")
    if hooks.tolerance == 0:
        warnings.append("tolerance is 0, only exact-second timestamps will be accepted")
    elif hooks.tolerance > 3600:
        warnings.append(f"tolerance ({hooks.tolerance}s) is over an hour, widening the replay window")
    if server.log_level.lower() not in ("debug", "info", "warning", "error"):
        errors.append(f"log_level ({server.log_level}) must be one of debug, info, warning, error")

    if errors:
        console.print("[red bold]Configuration Errors:[/red bold]")
        for error in errors:
            console.print(f"  [red]x[/red] {error}")
        console.print()

    if warnings:
        console.print("[yellow bold]Configuration Warnings:[/yellow bold]")
        for warning in warnings:
            console.print(f"  [yellow]![/yellow] {warning}")
        console.print()

    if not errors and not warnings:
        console.print("[green]OK - Configuration is valid[/green]")
    elif not errors:
        console.print("[green]OK - Configuration is valid (with warnings)[/green]")
    else:
        console.print("[red]ERROR - Configuration has errors[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
