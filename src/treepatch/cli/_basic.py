"""Commands: fetch, changes, plan."""

from __future__ import annotations

import json

import click

from ..changes import FileChange, classify
from ..exceptions import TreePatchError
from ..fetch import materialize
from ..local import changes_for_commit
from ..merge import merge
from ..submit import submit
from ._helpers import (
    _echo_json,
    _load_tree,
    _make_config,
    _open_client,
    _remote_options,
    _run,
    _status,
    main,
)


# ---------------------------------------------------------------------------
# fetch
# ---------------------------------------------------------------------------

@main.command()
@_remote_options
@click.argument("sha")
@click.option("--path", "-p", "desired_path", default="",
              help="Expand only along this repo path (default: everything).")
@click.option("--commit", "is_commit", is_flag=True,
              help="SHA names a commit; fetch its root tree.")
@click.option("--output", "-O", type=click.File("w"), default="-",
              help="Write the JSON tree here (default: stdout).")
@click.pass_context
def fetch(ctx, sha, desired_path, is_commit, output, owner, repo, token, api_url):
    """Materialize a remote tree along a path and print it as JSON."""
    config = _make_config(owner, repo, token, api_url)

    async def _fetch():
        async with _open_client(ctx, config) as client:
            tree_sha = sha
            if is_commit:
                _, tree_sha = await client.get_commit(sha)
                _status(ctx, f"Commit {sha} has tree {tree_sha}")
            return await materialize(client, tree_sha, desired_path)

    tree = _run(_fetch())
    _echo_json(tree.to_json(), output)
    _status(ctx, f"Fetched {tree.sha} along {desired_path or '/'}")


# ---------------------------------------------------------------------------
# changes
# ---------------------------------------------------------------------------

def _read_changes(work_dir, commit, changes_file) -> list[FileChange]:
    if changes_file is not None:
        try:
            records = json.load(changes_file)
        except json.JSONDecodeError as exc:
            raise click.ClickException(f"Invalid changes JSON: {exc}")
        if not isinstance(records, list):
            raise click.ClickException("Changes JSON must be a list of records")
        return [FileChange.from_json(r) for r in records]
    return changes_for_commit(work_dir, commit)


@main.command()
@click.option("--work-dir", "-C", type=click.Path(exists=True, file_okay=False),
              default=".", show_default=True, help="Local working copy.")
@click.option("--commit", "-c", default=None, help="Commit to inspect (default: HEAD).")
@click.option("--json", "as_json", is_flag=True, help="Print change records as JSON.")
@click.pass_context
def changes(ctx, work_dir, commit, as_json):
    """List the files a local commit changes, with their kind.

    The working copy must be checked out at that commit.
    """
    try:
        file_changes = changes_for_commit(work_dir, commit)
        kinds = [classify(work_dir, fc) for fc in file_changes]
    except TreePatchError as exc:
        raise click.ClickException(str(exc))
    if as_json:
        _echo_json([
            {**fc.to_json(), "kind": str(kind)}
            for fc, kind in zip(file_changes, kinds)
        ])
        return
    for fc, kind in zip(file_changes, kinds):
        click.echo(f"{kind}\t{fc.path}")


# ---------------------------------------------------------------------------
# plan
# ---------------------------------------------------------------------------

@main.command()
@_remote_options
@click.option("--previous", type=click.File("r"), required=True,
              help="Tree JSON from 'treepatch fetch'.")
@click.option("--path", "-p", "keyboard_path", required=True,
              help="Repo path of the component being pushed.")
@click.option("--work-dir", "-C", type=click.Path(exists=True, file_okay=False),
              default=".", show_default=True, help="Local working copy.")
@click.option("--commit", "-c", default=None, help="Local commit to push (default: HEAD).")
@click.option("--changes", "changes_file", type=click.File("r"), default=None,
              help="JSON change records to use instead of reading a commit.")
@click.option("--submit", "do_submit", is_flag=True,
              help="Create the trees on the remote and print the result.")
@click.pass_context
def plan(ctx, previous, keyboard_path, work_dir, commit, changes_file, do_submit,
         owner, repo, token, api_url):
    """Merge local changes into a fetched tree and print the patch tree."""
    previous_tree = _load_tree(previous)
    try:
        file_changes = _read_changes(work_dir, commit, changes_file)
        tree = merge(work_dir, file_changes, previous_tree, keyboard_path)
    except TreePatchError as exc:
        raise click.ClickException(str(exc))
    _status(ctx, f"Merged {len(file_changes)} change(s) onto {previous_tree.sha}")

    if do_submit:
        config = _make_config(owner, repo, token, api_url)

        async def _submit():
            async with _open_client(ctx, config) as client:
                return await submit(client, tree)

        tree = _run(_submit())
        _status(ctx, f"Created tree {tree.sha}")
    _echo_json(tree.to_json())
