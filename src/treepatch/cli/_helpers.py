"""Shared helpers, option decorators, and the main CLI group."""

from __future__ import annotations

import asyncio
import json
import logging
import sys

import click

from ..exceptions import TreePatchError, ValidationError
from ..remote import DEFAULT_API_URL, GitHubClient, RemoteConfig
from ..tree import Tree


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _status(ctx, msg):
    """Emit a status message to stderr when verbose mode (-v) is on."""
    if ctx.obj.get("verbose"):
        click.echo(msg, err=True)


def _remote_options(f):
    """Shared options naming the hosted repository and credentials."""
    f = click.option("--api-url", envvar="TREEPATCH_API_URL", default=DEFAULT_API_URL,
                     show_default=True, help="API root (or set TREEPATCH_API_URL).")(f)
    f = click.option("--token", envvar="TREEPATCH_TOKEN", default=None,
                     help="API token (or set TREEPATCH_TOKEN).")(f)
    f = click.option("--repo", "-r", envvar="TREEPATCH_REPO", default=None,
                     help="Repository name (or set TREEPATCH_REPO).")(f)
    f = click.option("--owner", "-o", envvar="TREEPATCH_OWNER", default=None,
                     help="Repository owner (or set TREEPATCH_OWNER).")(f)
    return f


def _make_config(owner, repo, token, api_url) -> RemoteConfig:
    """Build a RemoteConfig, raising a clear error if owner/repo are missing."""
    if not owner or not repo:
        raise click.ClickException(
            "No repository specified. Use --owner/--repo or set "
            "TREEPATCH_OWNER and TREEPATCH_REPO."
        )
    return RemoteConfig(owner=owner, repo=repo, token=token, api_url=api_url)


def _open_client(ctx, config: RemoteConfig) -> GitHubClient:
    """Create the API client; ``ctx.obj["transport"]`` overrides the network."""
    return GitHubClient(config, transport=ctx.obj.get("transport"))


def _run(coro):
    """Run *coro* to completion, turning library errors into CLI errors."""
    try:
        return asyncio.run(coro)
    except TreePatchError as exc:
        raise click.ClickException(str(exc))


def _load_tree(fp) -> Tree:
    """Read a tree written by ``treepatch fetch``."""
    try:
        data = json.load(fp)
    except json.JSONDecodeError as exc:
        raise click.ClickException(f"Invalid tree JSON in {fp.name}: {exc}")
    try:
        return Tree.from_json(data)
    except ValidationError as exc:
        raise click.ClickException(f"Invalid tree in {fp.name}: {exc}")


def _echo_json(data, output=None):
    click.echo(json.dumps(data, indent=2), file=output)


# ---------------------------------------------------------------------------
# Main group
# ---------------------------------------------------------------------------

@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Verbose output on stderr.")
@click.pass_context
def main(ctx, verbose):
    """treepatch: push one component's changes as a minimal tree patch.

    \b
    Typical workflow:
      treepatch fetch --commit PARENT -p release/s/shan > tree.json
      treepatch changes -C checkout
      treepatch plan -C checkout -p release/s/shan --previous tree.json --submit

    \b
    Set TREEPATCH_OWNER, TREEPATCH_REPO and TREEPATCH_TOKEN to avoid
    passing --owner/--repo/--token on every call.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG, stream=sys.stderr,
            format="%(levelname)s %(name)s: %(message)s",
        )
