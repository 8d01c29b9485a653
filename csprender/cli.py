"""CLI commands for csprender."""

import asyncio
import logging
import sys
from pathlib import Path

import click
import yaml

from csprender.config import get_settings, set_config_path
from csprender.lib.csp import CSP_HEADER, generate_nonce
from csprender.lib.exceptions import CSPRenderError
from csprender.pipeline import reconcile_html, render_page
from csprender.render import PageContent, PageMeta, PipelineState
from csprender.response import PipelineResponse


def _write_output(html: str, output: str | None) -> None:
    if output:
        Path(output).write_text(html, encoding="utf-8")
    else:
        click.echo(html)


def _echo_csp(response: PipelineResponse) -> None:
    csp = response.headers.get(CSP_HEADER)
    if csp is not None:
        click.echo(f"{CSP_HEADER}: {csp}", err=True)


@click.group()
@click.version_option(package_name="csprender")
@click.option(
    "-f",
    "--config-file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Path to the YAML config file (defaults to ./app.yaml)",
)
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["debug", "info", "warning", "error"]),
    help="Logging level (defaults to the configured log_level)",
)
def cli(config_file, log_level):
    """csprender - render HTML pages with reconciled Content Security Policy."""
    if config_file:
        set_config_path(config_file)
    level = log_level or get_settings().log_level
    logging.basicConfig(level=level.upper(), format="%(levelname)s %(name)s: %(message)s")


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--csp", "csp_header", default=None, help="Content-Security-Policy header of the response")
@click.option("-o", "--output", type=click.Path(dir_okay=False), default=None, help="Write HTML here instead of stdout")
def reconcile(file, csp_header, output):
    """Reconcile the CSP of a static HTML FILE.

    The resulting content-security-policy header is printed to stderr.
    """
    settings = get_settings()
    response = PipelineResponse()
    if csp_header:
        response.headers[CSP_HEADER] = csp_header

    body = Path(file).read_text(encoding="utf-8")
    try:
        html = reconcile_html(body, response, nonce_bytes=settings.csp.nonce_bytes)
    except CSPRenderError as exc:
        raise click.ClickException(str(exc)) from exc

    _write_output(html, output)
    _echo_csp(response)


def load_page(path: Path) -> PipelineState:
    """Load a YAML page description into a PipelineState."""
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if "html" not in data:
        raise click.ClickException(f"{path} has no 'html' key")

    meta = PageMeta(
        title=data.get("title"),
        canonical=data.get("canonical"),
        feed=data.get("feed"),
        page=data.get("page") or {},
    )
    return PipelineState(
        content=PageContent(html=data["html"], meta=meta),
        selector=data.get("selector", ""),
    )


@cli.command()
@click.argument("page", type=click.Path(exists=True, dir_okay=False))
@click.option("--csp", "csp_header", default=None, help="Content-Security-Policy header set before rendering")
@click.option("-o", "--output", type=click.Path(dir_okay=False), default=None, help="Write HTML here instead of stdout")
def render(page, csp_header, output):
    """Render a YAML PAGE description to HTML.

    The page file holds 'html' plus optional 'title', 'canonical', 'feed',
    'selector' and a 'page' mapping of meta tags.
    """
    settings = get_settings()
    state = load_page(Path(page))
    state.head_html = settings.render.resolve_head_html()
    state.nonce_bytes = settings.csp.nonce_bytes

    response = PipelineResponse()
    if csp_header:
        response.headers[CSP_HEADER] = csp_header

    try:
        response = asyncio.run(render_page(state, response))
    except CSPRenderError as exc:
        raise click.ClickException(str(exc)) from exc

    _write_output(response.body, output)
    _echo_csp(response)


@cli.command()
@click.option("--length", default=16, type=click.IntRange(min=16), help="Number of random bytes")
def nonce(length):
    """Generate a CSP nonce value."""
    try:
        click.echo(generate_nonce(length))
    except CSPRenderError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    cli()
