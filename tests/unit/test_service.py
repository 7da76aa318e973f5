"""Unit tests for the repository data service."""

import tempfile
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import git
import pytest

from gitcanopy.execution import GitCommandError, InvalidRepositoryError, ValidationError
from gitcanopy.models import Branch, CanopySettings, CommitFilter
from gitcanopy.service import ReadStatus, RepositoryService, repository_name_from_url

HASH = "a" * 40


def make_service(handler=None, **overrides) -> RepositoryService:
    """Service backed by a fake executor dispatching on the argument vector."""
    executor = MagicMock()
    executor.run = AsyncMock(side_effect=handler, return_value="")
    return RepositoryService(CanopySettings(**overrides), executor=executor)


@pytest.fixture
def test_repo():
    """Create a temporary Git repository for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        repo_path = Path(tmpdir)
        repo = git.Repo.init(repo_path)

        # Configure git
        repo.config_writer().set_value("user", "name", "Test User").release()
        repo.config_writer().set_value("user", "email", "test@example.com").release()

        (repo_path / "README.md").write_text("# Test Project\n")
        repo.index.add(["README.md"])
        repo.index.commit("Initial commit")

        (repo_path / "main.py").write_text("def hello():\n    print('Hello, World!')\n")
        repo.index.add(["main.py"])
        repo.index.commit("feat: add main.py")

        (repo_path / "main.py").write_text("def hello():\n    print('Hello, GitCanopy!')\n")
        repo.index.add(["main.py"])
        repo.index.commit("fix: update hello message")

        repo.git.branch("-M", "main")

        yield repo_path


class TestDiffThresholds:
    """Tests for binary and oversized diff short-circuits."""

    @pytest.mark.asyncio
    async def test_binary_file(self):
        async def handler(args, cwd=None):
            assert "--numstat" in args
            return "-\t-\tbinary.png\n"

        service = make_service(handler)

        result = await service.get_diff("/repo", HASH, "binary.png")

        assert result.kind == "binary"
        assert result.is_binary
        assert result.content == "Binary file, no preview available"
        assert service.executor.run.await_count == 1

    @pytest.mark.asyncio
    async def test_too_large(self):
        async def handler(args, cwd=None):
            return "6000\t0\tbig.txt\n"

        service = make_service(handler)

        result = await service.get_diff("/repo", HASH, "big.txt")

        assert result.kind == "too_large"
        assert result.is_too_large
        assert result.content == "Diff too large to display (6000 changed lines)"
        assert service.executor.run.await_count == 1

    @pytest.mark.asyncio
    async def test_small_diff_is_fetched(self):
        async def handler(args, cwd=None):
            if "--numstat" in args:
                return "3\t1\ta.py\n"
            return "diff --git a/a.py b/a.py\n+new line\n"

        service = make_service(handler)

        result = await service.get_diff("/repo", HASH, "a.py")

        assert result.kind == "text"
        assert result.content.startswith("diff --git")
        assert result.additions == 3
        assert result.deletions == 1
        assert service.executor.run.await_count == 2

    @pytest.mark.asyncio
    async def test_threshold_is_configurable(self):
        async def handler(args, cwd=None):
            return "8\t3\ta.py\n"

        service = make_service(handler, diff_line_limit=10)

        result = await service.get_diff("/repo", HASH, "a.py")

        assert result.kind == "too_large"


class TestCaching:
    """Tests for branch and tag caching behavior."""

    @pytest.mark.asyncio
    async def test_cache_hit_skips_executor(self):
        service = make_service()
        branch = Branch(name="main", type="main", object_name=HASH, color="#1f2937")
        service.caches.set_branches("/repo", [branch])

        branches = await service.get_branches("/repo")

        assert branches == [branch]
        service.executor.run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_is_not_cached(self):
        async def handler(args, cwd=None):
            raise GitCommandError(args, 128, "fatal: not a git repository")

        service = make_service(handler)

        result = await service.read_branches("/repo")

        assert result.status is ReadStatus.FAILED
        assert result.data == []
        assert "not a git repository" in result.error
        assert service.caches.get_branches("/repo") is None

        await service.read_branches("/repo")
        assert service.executor.run.await_count == 2

    @pytest.mark.asyncio
    async def test_branches_are_cached(self):
        async def handler(args, cwd=None):
            return f"refs/heads/main|{HASH}|*|\n"

        service = make_service(handler)

        first = await service.get_branches("/repo")
        second = await service.get_branches("/repo")

        assert first == second
        assert service.executor.run.await_count == 1

    @pytest.mark.asyncio
    async def test_no_tags_reads_as_empty(self):
        async def handler(args, cwd=None):
            raise GitCommandError(args, 1, "")

        service = make_service(handler)

        result = await service.read_tags("/repo")

        assert result.status is ReadStatus.EMPTY
        assert result.data == {}
        assert service.caches.get_tags("/repo") == {}

    @pytest.mark.asyncio
    async def test_invalidate_forces_reload(self):
        async def handler(args, cwd=None):
            return f"refs/heads/main|{HASH}| |\n"

        service = make_service(handler)

        await service.get_branches("/repo")
        service.invalidate("/repo")
        await service.get_branches("/repo")

        assert service.executor.run.await_count == 2


class TestCommitQueries:
    """Tests for log argument construction and degradation."""

    @pytest.mark.asyncio
    async def test_filters_and_paging(self):
        calls = []

        async def handler(args, cwd=None):
            calls.append(args)
            if args[0] == "log":
                return f"{HASH}||Alice|alice@example.com|1700000000|fix: bug|"
            return ""

        service = make_service(handler)
        filters = CommitFilter(author="alice", since="2024-01-01", query="bug", path="src")

        commits = await service.get_commits("/repo", limit=5, offset=10, filters=filters)

        log_args = next(args for args in calls if args[0] == "log")
        assert "--all" in log_args
        assert "--skip=10" in log_args
        assert log_args[log_args.index("-n") + 1] == "5"
        assert "--author=alice" in log_args
        assert "--since=2024-01-01" in log_args
        assert "--regexp-ignore-case" in log_args
        assert "--grep=bug" in log_args
        assert log_args[-2:] == ["--", "src"]
        assert len(commits) == 1
        assert commits[0].type == "fix"

    @pytest.mark.asyncio
    async def test_default_limit(self):
        calls = []

        async def handler(args, cwd=None):
            calls.append(args)
            return ""

        service = make_service(handler)

        result = await service.read_commits("/repo")

        log_args = next(args for args in calls if args[0] == "log")
        assert log_args[log_args.index("-n") + 1] == "100"
        assert result.status is ReadStatus.EMPTY

    @pytest.mark.asyncio
    async def test_explicit_zero_limit_is_kept(self):
        service = make_service()

        await service.read_commits("/repo", limit=0)

        log_args = next(c.args[0] for c in service.executor.run.await_args_list if c.args[0][0] == "log")
        assert log_args[log_args.index("-n") + 1] == "0"

    @pytest.mark.asyncio
    async def test_author_filter_is_literal(self):
        service = make_service()

        await service.read_commits("/repo", filters=CommitFilter(author="dependabot[bot]"))

        log_args = next(c.args[0] for c in service.executor.run.await_args_list if c.args[0][0] == "log")
        assert r"--author=dependabot\[bot\]" in log_args
        assert "--regexp-ignore-case" in log_args

    @pytest.mark.asyncio
    async def test_log_failure_degrades(self):
        async def handler(args, cwd=None):
            if args[0] == "log":
                raise GitCommandError(args, 128, "fatal: bad default revision 'HEAD'")
            return ""

        service = make_service(handler)

        result = await service.read_commits("/repo")

        assert result.status is ReadStatus.FAILED
        assert result.data == []


class TestMutations:
    """Tests for mutating helpers."""

    @pytest.mark.asyncio
    async def test_empty_commit_message_is_rejected(self):
        service = make_service()

        with pytest.raises(ValidationError):
            await service.commit("/repo", "   ")

        service.executor.run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_checkout_failure_propagates(self):
        async def handler(args, cwd=None):
            raise GitCommandError(args, 1, "error: pathspec 'nope' did not match")

        service = make_service(handler)

        with pytest.raises(GitCommandError, match="pathspec"):
            await service.checkout_branch("/repo", "nope")

    @pytest.mark.asyncio
    async def test_commit_invalidates_branch_cache(self):
        service = make_service()
        service.caches.set_branches("/repo", [])

        await service.commit("/repo", "feat: thing")

        assert service.caches.get_branches("/repo") is None
        args = service.executor.run.await_args.args[0]
        assert args == ["commit", "-m", "feat: thing"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("revision", ["--output=/tmp/out", "-p", "", "  "])
    async def test_option_like_revisions_are_rejected(self, revision):
        service = make_service()

        with pytest.raises(ValidationError):
            await service.get_commit_details("/repo", revision)
        with pytest.raises(ValidationError):
            await service.get_diff("/repo", revision, "README.md")
        with pytest.raises(ValidationError):
            await service.checkout_branch("/repo", revision)

        service.executor.run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_option_like_stash_reference_is_rejected(self):
        service = make_service()

        with pytest.raises(ValidationError):
            await service.drop_stash("/repo", "--all")

        service.executor.run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stash_references(self):
        service = make_service()

        await service.apply_stash("/repo", 2)
        assert service.executor.run.await_args.args[0] == ["stash", "apply", "stash@{2}"]

        await service.drop_stash("/repo", "stash@{1}: WIP on main")
        assert service.executor.run.await_args.args[0] == ["stash", "drop", "stash@{1}"]

    @pytest.mark.asyncio
    async def test_clone_to_parent(self):
        service = make_service()

        target = await service.clone_to_parent("https://github.com/org/project.git", "/tmp/parent")

        assert target == str(Path("/tmp/parent") / "project")
        call = service.executor.run.await_args
        assert call.args[0] == ["clone", "--", "https://github.com/org/project.git", target]
        assert call.kwargs["cwd"] == Path("/tmp/parent")

    def test_repository_name_from_url(self):
        assert repository_name_from_url("git@github.com:org/repo.git") == "repo"
        assert repository_name_from_url("https://example.com/team/tool/") == "tool"


class TestRealRepository:
    """Tests against repositories created with GitPython."""

    @pytest.mark.asyncio
    async def test_get_repository(self, test_repo):
        service = RepositoryService(CanopySettings())
        repo = git.Repo(test_repo)

        info = await service.get_repository(test_repo)

        assert info.name == test_repo.resolve().name
        assert info.current_branch == "main"
        assert info.head_commit == repo.head.commit.hexsha
        assert info.is_detached is False
        assert info.is_merging is False
        assert info.is_rebasing is False
        assert [b.name for b in info.branches] == ["main"]
        assert info.branches[0].is_head is True

    @pytest.mark.asyncio
    async def test_invalid_repository(self):
        service = RepositoryService(CanopySettings())

        with tempfile.TemporaryDirectory() as tmpdir:
            with pytest.raises(InvalidRepositoryError):
                await service.get_repository(tmpdir)

        with pytest.raises(InvalidRepositoryError):
            await service.get_repository("/nonexistent/path")

    @pytest.mark.asyncio
    async def test_get_commits(self, test_repo):
        service = RepositoryService(CanopySettings())

        commits = await service.get_commits(test_repo)

        assert [c.message for c in commits] == [
            "fix: update hello message",
            "feat: add main.py",
            "Initial commit",
        ]
        assert all(c.branch_name == "main" for c in commits)
        assert commits[-1].parents == []
        assert commits[0].parents == [commits[1].hash]

    @pytest.mark.asyncio
    async def test_feature_branch_attribution(self, test_repo):
        repo = git.Repo(test_repo)
        repo.git.checkout("-b", "feature/x")
        (test_repo / "feature.py").write_text("x = 1\n")
        repo.index.add(["feature.py"])
        repo.index.commit("feat: feature work")
        repo.git.checkout("main")
        repo.create_tag("v1.0")

        service = RepositoryService(CanopySettings())
        commits = await service.get_commits(test_repo)

        by_message = {c.message: c for c in commits}
        assert by_message["feat: feature work"].branch_name == "feature/x"
        assert by_message["fix: update hello message"].branch_name == "main"
        assert by_message["fix: update hello message"].tags == ["v1.0"]

    @pytest.mark.asyncio
    async def test_commit_details(self, test_repo):
        service = RepositoryService(CanopySettings())
        repo = git.Repo(test_repo)
        target = repo.head.commit.parents[0]

        commit = await service.get_commit_details(test_repo, target.hexsha)

        assert commit.hash == target.hexsha
        assert commit.type == "feat"
        assert [(c.status, c.path) for c in commit.file_changes] == [("A", "main.py")]
        assert commit.stats.additions == 2
        assert commit.stats.deletions == 0
        assert "main" in commit.branches

    @pytest.mark.asyncio
    async def test_diff(self, test_repo):
        service = RepositoryService(CanopySettings())
        head = git.Repo(test_repo).head.commit.hexsha

        result = await service.get_diff(test_repo, head, "main.py")

        assert result.kind == "text"
        assert "Hello, GitCanopy!" in result.content
        assert result.additions == 1
        assert result.deletions == 1

    @pytest.mark.asyncio
    async def test_status_and_staging(self, test_repo):
        service = RepositoryService(CanopySettings())
        (test_repo / "README.md").write_text("# Changed\n")
        (test_repo / "notes.txt").write_text("todo\n")

        status = await service.get_status(test_repo)

        entries = {(f.path, f.status, f.staged) for f in status.files}
        assert ("README.md", "modified", False) in entries
        assert ("notes.txt", "untracked", False) in entries
        assert status.branch == "main"

        await service.stage_file(test_repo, "notes.txt")
        status = await service.get_status(test_repo)

        assert ("notes.txt", "added", True) in {(f.path, f.status, f.staged) for f in status.files}

    @pytest.mark.asyncio
    async def test_commit_and_history(self, test_repo):
        service = RepositoryService(CanopySettings())
        before = await service.get_current_head(test_repo)
        (test_repo / "new.py").write_text("pass\n")

        await service.stage_all(test_repo)
        await service.commit(test_repo, "chore: add new.py")
        after = await service.get_current_head(test_repo)

        assert after and after != before
        history = service.get_command_history()
        assert history[0].args == ["rev-parse", "HEAD"]
        assert history[1].args == ["commit", "-m", "chore: add new.py"]

        service.clear_command_history()
        assert service.get_command_history() == []

    @pytest.mark.asyncio
    async def test_analytics(self, test_repo):
        service = RepositoryService(CanopySettings())

        hot = await service.get_hot_files(test_repo, limit=1)
        contributors = await service.get_contributors(test_repo)

        assert hot[0].path == "main.py"
        assert hot[0].count == 2
        assert len(contributors) == 1
        assert contributors[0].commit_count == 3
        assert contributors[0].email == "test@example.com"

    @pytest.mark.asyncio
    async def test_author_filter_with_brackets(self, test_repo):
        repo = git.Repo(test_repo)
        (test_repo / "requirements.txt").write_text("requests==2.32.0\n")
        repo.index.add(["requirements.txt"])
        bot = git.Actor("dependabot[bot]", "bot@example.com")
        repo.index.commit("chore: bump requests", author=bot, committer=bot)
        service = RepositoryService(CanopySettings())

        matched = await service.get_commits(test_repo, filters=CommitFilter(author="dependabot[bot]"))
        dotted = await service.get_commits(test_repo, filters=CommitFilter(author="d.pendabot"))

        assert [c.message for c in matched] == ["chore: bump requests"]
        assert dotted == []

    @pytest.mark.asyncio
    async def test_commit_details_never_treats_hash_as_option(self, test_repo):
        service = RepositoryService(CanopySettings())
        target = test_repo / "leaked.txt"

        with pytest.raises(ValidationError):
            await service.get_commit_details(test_repo, f"--output={target}")

        assert not target.exists()
