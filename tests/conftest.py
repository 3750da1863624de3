"""Shared fixtures for treepatch tests."""

from __future__ import annotations

import asyncio
import copy
import hashlib
import json
import os
import time

import httpx
import pytest
from click.testing import CliRunner
from dulwich.index import commit_tree
from dulwich.objects import Blob as DulwichBlob
from dulwich.objects import Commit
from dulwich.repo import Repo

from treepatch.remote import RemoteConfig
from treepatch.tree import Tree

API = "https://api.example.com"
REPO_URL = f"{API}/repos/foo/keyboards"

ROOT_SHA = "9fb037999f264ba9a7fc6274d15fa3ae2ab98312"
RELEASE_SHA = "f484d249c660418515fb01c2b9662073663c242e"
S_SHA = "8ae17eca4bbc4676a0c0c7a8e2a51375"
T_SHA = "8f403a03f6974917a2ac6687f5eb88d0"
SHAN_SHA = "e0307963c0c348869106747c5fe155e4"
SOURCE_SHA = "aecefd114ec0427e81246386147a1d53"
TAMIL_SHA = "5d8e0a4c5a3d4f0e9a1b2c3d4e5f6a7b"


def _blob(path, sha, size, mode="100644"):
    return {"path": path, "mode": mode, "type": "blob", "size": size,
            "sha": sha, "url": f"{REPO_URL}/git/blobs/{sha}"}


def _tree_entry(path, sha):
    return {"path": path, "mode": "040000", "type": "tree",
            "sha": sha, "url": f"{REPO_URL}/git/trees/{sha}"}


def _listing(sha, entries, truncated=False):
    return {"sha": sha, "url": f"{REPO_URL}/git/trees/{sha}",
            "tree": entries, "truncated": truncated}


def keyboards_listings() -> dict[str, dict]:
    """Remote tree listings of a small keyboards repository.

    Tree:
        build.sh (executable), README.md,
        release/s/shan/README.md, release/s/shan/source/shan.kps,
        release/t/tamil/tamil.kps
    """
    return {
        ROOT_SHA: _listing(ROOT_SHA, [
            _blob("build.sh", "45b983be36b73c0788dc9cbcb76cbb80fc7bb057", 3145, "100755"),
            _blob("README.md", "44b4fc6d56897b048c772eb4087f854f46256132", 2849),
            _tree_entry("release", RELEASE_SHA),
        ]),
        RELEASE_SHA: _listing(RELEASE_SHA, [
            _tree_entry("s", S_SHA),
            _tree_entry("t", T_SHA),
        ]),
        S_SHA: _listing(S_SHA, [_tree_entry("shan", SHAN_SHA)]),
        T_SHA: _listing(T_SHA, [_tree_entry("tamil", TAMIL_SHA)]),
        TAMIL_SHA: _listing(TAMIL_SHA, [
            _blob("tamil.kps", "0c1d2e3f405162738495a6b7c8d9eaf0", 1200),
        ]),
        SHAN_SHA: _listing(SHAN_SHA, [
            _blob("README.md", "761b0e49dc264407b40e3b7ec6613a3b", 438),
            _tree_entry("source", SOURCE_SHA),
        ]),
        SOURCE_SHA: _listing(SOURCE_SHA, [
            _blob("shan.kps", "bb1f0dda56794a5fa2abaaa26f459d0a", 4360),
        ]),
    }


def _sha1(data) -> str:
    return hashlib.sha1(json.dumps(data, sort_keys=True).encode()).hexdigest()


class FakeTreeAPI:
    """In-memory stand-in for the hosted git data API.

    Serves tree listings from *listings*, creates trees honouring
    ``base_tree`` and delete entries (``sha: null``), and records every
    call.  ``handler`` exposes the same store as an httpx transport.
    """

    def __init__(self, listings: dict[str, dict] | None = None):
        self.listings = listings if listings is not None else keyboards_listings()
        self.blobs: dict[str, dict] = {}
        self.commits: dict[str, str] = {}
        self.existing_repos: set[str] = set()
        self.calls: list[tuple[str, str]] = []
        self.created: list[dict] = []
        self.fail: set[str] = set()
        self.delay = 0.0
        self.in_flight = 0
        self.max_in_flight = 0

    # -- protocol methods --------------------------------------------------

    async def get_tree(self, sha: str) -> Tree:
        self.calls.append(("get_tree", sha))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        if sha in self.fail:
            raise RuntimeError(f"boom: {sha}")
        return Tree.from_json(self._listing(sha))

    async def create_tree(self, payload: dict) -> Tree:
        self.calls.append(("create_tree", payload.get("base_tree")))
        return Tree.from_json(self._create_tree(payload))

    async def create_blob(self, content: str, encoding: str = "utf-8") -> str:
        self.calls.append(("create_blob", encoding))
        return self._create_blob(content, encoding)

    # -- store -------------------------------------------------------------

    def _listing(self, sha: str) -> dict:
        try:
            return copy.deepcopy(self.listings[sha])
        except KeyError:
            raise LookupError(f"no tree {sha}") from None

    def _create_blob(self, content: str, encoding: str) -> str:
        sha = _sha1({"blob": content, "encoding": encoding})
        self.blobs[sha] = {"content": content, "encoding": encoding}
        return sha

    def _create_tree(self, payload: dict) -> dict:
        self.created.append(copy.deepcopy(payload))
        entries: dict[str, dict] = {}
        if payload.get("base_tree"):
            for e in self._listing(payload["base_tree"])["tree"]:
                entries[e["path"]] = e
        for item in payload["tree"]:
            if "content" in item:
                sha = self._create_blob(item["content"], "utf-8")
                entries[item["path"]] = _blob(item["path"], sha, len(item["content"]), item["mode"])
            elif item.get("sha") is None:
                entries.pop(item["path"], None)
            elif item["type"] == "tree":
                entries[item["path"]] = _tree_entry(item["path"], item["sha"])
            else:
                entries[item["path"]] = {
                    "path": item["path"], "mode": item["mode"], "type": item["type"],
                    "sha": item["sha"], "url": f"{REPO_URL}/git/blobs/{item['sha']}",
                }
        listing = list(entries.values())
        sha = _sha1(listing)
        self.listings[sha] = _listing(sha, listing)
        return copy.deepcopy(self.listings[sha])

    # -- HTTP --------------------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append((request.method, str(request.url)))
        prefix = "/repos/foo/keyboards/git/"
        if request.url.host != "api.example.com":
            repo = path.strip("/")
            return httpx.Response(200 if repo in self.existing_repos else 404, text=repo)
        if not path.startswith(prefix):
            return httpx.Response(404, json={"message": "Not Found"})
        kind, _, rest = path[len(prefix):].partition("/")
        if request.method == "GET" and kind == "trees":
            if rest in self.fail or rest not in self.listings:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(200, json=self._listing(rest))
        if request.method == "GET" and kind == "commits":
            if rest not in self.commits:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(200, json={
                "sha": rest, "tree": {"sha": self.commits[rest], "url": ""},
            })
        if request.method == "POST" and kind == "trees":
            return httpx.Response(201, json=self._create_tree(json.loads(request.content)))
        if request.method == "POST" and kind == "blobs":
            body = json.loads(request.content)
            sha = self._create_blob(body["content"], body["encoding"])
            return httpx.Response(201, json={"sha": sha, "url": f"{REPO_URL}/git/blobs/{sha}"})
        return httpx.Response(405)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def api():
    return FakeTreeAPI()


@pytest.fixture
def config():
    return RemoteConfig(owner="foo", repo="keyboards", token="12345", api_url=API)


@pytest.fixture
def runner():
    return CliRunner()


# ---------------------------------------------------------------------------
# Local working copies
# ---------------------------------------------------------------------------

def write(root, rel, data, executable=False):
    """Write *data* to ``root/rel``, creating parents."""
    p = root.joinpath(*rel.split("/"))
    p.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(data, bytes):
        p.write_bytes(data)
    else:
        p.write_text(data)
    if executable:
        os.chmod(p, 0o755)
    return p


@pytest.fixture
def work_dir(tmp_path):
    """A keyboards working copy after editing the shan keyboard.

    ``release/s/shan/README.md`` gained a line and
    ``release/s/shan/source/welcome/welcome.htm`` is new.
    """
    d = tmp_path / "keyboards"
    write(d, "build.sh", "This pretends to be build.sh", executable=True)
    write(d, "README.md", "This is the readme")
    write(d, "release/s/shan/README.md", "Readme for Shan keyboard\nAddition to readme\n")
    write(d, "release/s/shan/source/shan.kps", "The KPS file for shan")
    write(d, "release/s/shan/source/welcome/welcome.htm", "This is welcome.htm")
    (d / "release" / "t").mkdir(parents=True)
    return d


def commit_files(repo: Repo, files: dict[str, bytes], message: str = "commit",
                 parents: list[bytes] | None = None, modes: dict[str, int] | None = None) -> bytes:
    """Commit *files* (the complete tree) on HEAD and return the commit sha."""
    modes = modes or {}
    entries = []
    for path, data in sorted(files.items()):
        blob = DulwichBlob.from_string(data)
        repo.object_store.add_object(blob)
        entries.append((path.encode(), blob.id, modes.get(path, 0o100644)))
    c = Commit()
    c.tree = commit_tree(repo.object_store, entries)
    if parents is None:
        try:
            parents = [repo.head()]
        except KeyError:
            parents = []
    c.parents = parents
    c.author = c.committer = b"Test <test@example.com>"
    c.author_time = c.commit_time = int(time.time())
    c.author_timezone = c.commit_timezone = 0
    c.encoding = b"UTF-8"
    c.message = message.encode() + b"\n"
    repo.object_store.add_object(c)
    repo.refs[b"HEAD"] = c.id
    return c.id


@pytest.fixture
def local_repo(tmp_path):
    """A non-bare dulwich repository with no commits."""
    d = tmp_path / "local"
    d.mkdir()
    repo = Repo.init(str(d))
    yield repo
    repo.close()
