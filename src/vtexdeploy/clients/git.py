"""Git state reader backed by the git CLI."""

import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from vtexdeploy.core.exceptions import GitError
from vtexdeploy.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class AheadBehind:
    """Commit counts relative to the upstream branch."""

    ahead: int = 0
    behind: int = 0


@dataclass(frozen=True)
class CommitInfo:
    """Metadata for a single commit."""

    hash: str
    message: str
    author: str
    date: str

    @property
    def short_hash(self) -> str:
        return self.hash[:7]


class GitReader(ABC):
    """Read-only view of the working copy being deployed."""

    @abstractmethod
    def current_branch(self) -> str:
        ...

    @abstractmethod
    def is_dirty(self) -> bool:
        ...

    @abstractmethod
    def ahead_behind(self) -> AheadBehind:
        ...

    @abstractmethod
    def latest_commit(self) -> CommitInfo:
        ...


class GitCLIReader(GitReader):
    """GitReader that shells out to ``git``."""

    def __init__(self, repo_path: str | Path | None = None, timeout: int = 30):
        self.repo_path = Path(repo_path) if repo_path else Path.cwd()
        self.timeout = timeout

    def _run(self, *args: str) -> str:
        cmd = ["git", *args]
        logger.debug(f"Running: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                cwd=self.repo_path,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError:
            raise GitError("git not found in PATH", command=" ".join(cmd))
        except subprocess.TimeoutExpired:
            raise GitError(
                f"git command timed out after {self.timeout}s", command=" ".join(cmd)
            )

        if result.returncode != 0:
            raise GitError(result.stderr.strip() or f"git exited with {result.returncode}", command=" ".join(cmd))

        return result.stdout

    def current_branch(self) -> str:
        return self._run("rev-parse", "--abbrev-ref", "HEAD").strip()

    def is_dirty(self) -> bool:
        return bool(self._run("status", "--porcelain").strip())

    def ahead_behind(self) -> AheadBehind:
        # Output is "<ahead>\t<behind>" for HEAD...@{upstream}
        output = self._run("rev-list", "--left-right", "--count", "HEAD...@{upstream}").split()
        if len(output) != 2:
            raise GitError(f"Unexpected rev-list output: {' '.join(output)!r}")
        return AheadBehind(ahead=int(output[0]), behind=int(output[1]))

    def latest_commit(self) -> CommitInfo:
        output = self._run("log", "-1", "--format=%H%x1f%s%x1f%an%x1f%aI").strip()
        parts = output.split("\x1f")
        if len(parts) != 4:
            raise GitError("No commits found in repository")
        return CommitInfo(hash=parts[0], message=parts[1], author=parts[2], date=parts[3])
