"""SCM provider implementations and interfaces."""

from swe_sandbox.providers.scm.base import ScmProvider
from swe_sandbox.providers.scm.github import GitHubProvider

__all__ = ["GitHubProvider", "ScmProvider"]
