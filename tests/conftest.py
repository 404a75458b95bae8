"""Shared fixtures: in-memory GitHub and CMS backends and an instant sleep."""

from __future__ import annotations

import io
import itertools
from typing import Dict, List, Optional, Tuple

import pytest
from rich.console import Console

from cmsprobe.backends import BranchInfo, CommitInfo, ContentFile, QueryResult
from cmsprobe.config import Settings
from cmsprobe.errors import BackendUnreachable
from cmsprobe.evaluator.harness import EvaluatorConfig
from cmsprobe.evaluator.report import ReportAggregator


class FakeGitHub:
    """Enough of the GitHub REST surface for the scenarios, kept in memory."""

    def __init__(
        self,
        *,
        base_branch: str = "main",
        hide_listings: int = 0,
        fail_create: bool = False,
        fail_after_create: bool = False,
        fail_delete: bool = False,
    ) -> None:
        self._shas = (f"{n:040x}" for n in itertools.count(1))
        root = next(self._shas)
        self.branches: Dict[str, str] = {base_branch: root}
        self.commits: Dict[str, CommitInfo] = {root: CommitInfo(sha=root, message="Initial commit", author="dev")}
        self.files: Dict[Tuple[str, str], ContentFile] = {}
        self.files_by_commit: Dict[str, Dict[str, str]] = {}
        self.hide_listings = hide_listings
        self.fail_create = fail_create
        self.fail_after_create = fail_after_create
        self.fail_delete = fail_delete
        self.created_branches: List[str] = []
        self.deleted_branches: List[str] = []
        self.deleted_files: List[Tuple[str, str]] = []
        self.closed = False

    async def __aenter__(self) -> "FakeGitHub":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.closed = True

    def seed_file(self, path: str, text: str, branch: str = "main") -> None:
        self.files[(branch, path)] = ContentFile(path=path, sha=next(self._shas), text=text)

    async def get_content(self, path: str, ref: Optional[str] = None) -> Optional[ContentFile]:
        ref = ref or "main"
        if ref in self.files_by_commit:
            text = self.files_by_commit[ref].get(path)
            return ContentFile(path=path, sha=ref, text=text) if text is not None else None
        return self.files.get((ref, path))

    async def list_commits(self, branch: str, per_page: int = 5) -> List[CommitInfo]:
        head = self.branches.get(branch)
        return [self.commits[head]] if head else []

    async def get_commit(self, ref: str) -> Optional[CommitInfo]:
        return self.commits.get(ref)

    async def list_branches(self, per_page: int = 100) -> List[str]:
        if self.hide_listings > 0:
            self.hide_listings -= 1
            return [name for name in self.branches if name not in self.created_branches]
        return list(self.branches)

    async def get_branch(self, branch: str) -> Optional[BranchInfo]:
        sha = self.branches.get(branch)
        if sha is None:
            return None
        return BranchInfo(name=branch, sha=sha, message=self.commits[sha].message)

    async def create_branch(self, name: str, sha: str) -> str:
        if self.fail_create:
            raise BackendUnreachable("Resource not accessible by integration", status_code=403)
        if name in self.branches:
            raise BackendUnreachable("Reference already exists", status_code=422)
        self.branches[name] = sha
        self.created_branches.append(name)
        if self.fail_after_create:
            raise BackendUnreachable("GitHub POST /git/refs returned 502: Bad Gateway", status_code=502)
        return sha

    async def delete_branch(self, name: str) -> None:
        if self.fail_delete:
            raise BackendUnreachable("delete refused", status_code=403)
        if self.branches.pop(name, None) is None:
            raise BackendUnreachable("Reference does not exist", status_code=422)
        self.deleted_branches.append(name)
        for key in [key for key in self.files if key[0] == name]:
            del self.files[key]

    async def put_file(self, path: str, text: str, message: str, branch: str, sha: Optional[str] = None) -> str:
        if branch not in self.branches:
            raise BackendUnreachable(f"Branch {branch} not found", status_code=404)
        commit = next(self._shas)
        self.commits[commit] = CommitInfo(sha=commit, message=message, author="cmsprobe")
        self.files[(branch, path)] = ContentFile(path=path, sha=next(self._shas), text=text)
        self.files_by_commit[commit] = {path: text}
        self.branches[branch] = commit
        return commit

    async def delete_file(self, path: str, message: str, branch: str) -> None:
        if self.fail_delete:
            raise BackendUnreachable("delete refused", status_code=403)
        if self.files.pop((branch, path), None) is None:
            raise BackendUnreachable(f"{path} not found on {branch}", status_code=404)
        self.deleted_files.append((branch, path))


class FakeCMS:
    """CMS stand-in; branch queries fail unless ``branch_pages`` is set."""

    def __init__(self, *, branch_pages: bool = False, site_up: bool = True, fail_reads: bool = False) -> None:
        self.branch_pages = branch_pages
        self.site_up = site_up
        self.fail_reads = fail_reads
        self.page_reads = 0
        self.queries: List[Tuple[str, str]] = []

    async def __aenter__(self) -> "FakeCMS":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        return None

    async def fetch_page(self, path: str = "/") -> str:
        self.page_reads += 1
        if self.fail_reads:
            raise BackendUnreachable("CMS read failed: HTTP 502", status_code=502)
        return "<html><body>Home</body></html>"

    async def page_on_branch(self, relative_path: str, branch: str) -> QueryResult:
        self.queries.append((relative_path, branch))
        if self.branch_pages:
            return QueryResult(data={"page": {"title": f"Content on {branch}", "branch": branch}})
        return QueryResult(errors=[{"message": f"Unable to find record content/pages/{relative_path}"}])

    async def check_site(self) -> bool:
        return self.site_up

    async def check_api(self) -> bool:
        return self.site_up


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        github_owner="acme",
        github_repo="site",
        github_personal_access_token="ghp_test",
        github_branch="main",
        nextauth_secret="secret",
    )


@pytest.fixture
def config(tmp_path) -> EvaluatorConfig:
    return EvaluatorConfig(
        results_root=tmp_path / "results",
        poll_delays_ms=(50, 100, 500),
        read_iterations=2,
        perf_iterations=2,
        request_timeout=5.0,
    )


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def github() -> FakeGitHub:
    fake = FakeGitHub()
    fake.seed_file("content/pages/home.md", "---\ntitle: Home\n---\n\nWelcome")
    return fake


@pytest.fixture
def cms() -> FakeCMS:
    return FakeCMS()


@pytest.fixture
def reporter(config) -> ReportAggregator:
    return ReportAggregator(config.results_root, console=Console(file=io.StringIO()))


@pytest.fixture
def make_runner(config, settings, reporter, sleep):
    def _make(runner_cls):
        return runner_cls(config, settings, reporter, sleep=sleep)

    return _make
