"""Version information for the planning poker room."""

import os
import subprocess
from dataclasses import dataclass
from functools import lru_cache

# Semantic version - update this when releasing
__version__ = "0.3.0"


@dataclass
class VersionInfo:
    """Application version information."""

    version: str
    git_commit: str
    build_time: str

    @property
    def git_commit_short(self) -> str:
        if self.git_commit == "unknown":
            return "unknown"
        return self.git_commit[:7]

    def to_dict(self) -> dict[str, str]:
        return {
            "version": self.version,
            "git_commit": self.git_commit,
            "git_commit_short": self.git_commit_short,
            "build_time": self.build_time,
        }


def _get_git_commit() -> str:
    """Get current git commit hash."""
    env_commit = os.getenv("GIT_COMMIT")
    if env_commit and env_commit != "unknown":
        return env_commit

    try:
        result = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            capture_output=True,
            text=True,
            timeout=5,
        )
        if result.returncode == 0:
            return result.stdout.strip()
    except (subprocess.SubprocessError, FileNotFoundError, OSError):
        pass

    return "unknown"


@lru_cache
def get_version_info() -> VersionInfo:
    """Get version information (cached)."""
    return VersionInfo(
        version=os.getenv("APP_VERSION", __version__),
        git_commit=_get_git_commit(),
        build_time=os.getenv("BUILD_TIME", "unknown"),
    )
