"""Access token lookup and authenticated remote URLs."""

import logging
import os
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from git import GitCommandError
from git.cmd import Git

from .errors import ConfigurationError, RemoteUnreachableError
from .platform import get_git_executable

_CREDENTIAL_LINE = re.compile(r"//([^:]+):([^@]+)@")
_AUTH_STATUS = re.compile(r"\b40[13]\b")


@dataclass(frozen=True)
class GitUrl:
    """Protocol, host and path of a remote, as git credential helpers see it."""
    protocol: str
    host: str
    path: str


def parse_git_url(url: str) -> Optional[GitUrl]:
    """
    Split a remote URL into credential lookup parts.

    SSH shorthand (git@host:owner/repo) maps to https. Paths are normalized
    to start with "/" and end with ".git".

    Returns:
        GitUrl, or None for local paths and unsupported schemes
    """
    if not url:
        return None

    match = re.match(r"^(https?)://([^/]+)(/.*)?$", url)
    if match:
        protocol, host, path = match.group(1), match.group(2), match.group(3) or ""
        host = host.rsplit("@", 1)[-1]
    else:
        match = re.match(r"^git@([^:]+):(.+)$", url)
        if not match:
            return None
        protocol, host, path = "https", match.group(1), "/" + match.group(2)

    if path and not path.endswith(".git"):
        path = path.rstrip("/") + ".git"
    return GitUrl(protocol=protocol, host=host, path=path)


def build_authenticated_url(url: str, token: Optional[str]) -> str:
    """
    Inject an access token into an HTTPS remote URL.

    GitLab expects personal access tokens as "oauth2:<token>". SSH shorthand
    is rewritten to HTTPS so the token can be used. Other URLs (local paths,
    file://) are returned unchanged.
    """
    if not token:
        return url

    auth = f"oauth2:{token}" if "gitlab" in url else token

    if url.startswith("https://"):
        return url.replace("https://", f"https://{auth}@", 1)

    match = re.match(r"^git@([^:]+):(.+)$", url)
    if match:
        return f"https://{auth}@{match.group(1)}/{match.group(2)}"

    return url


class TokenProvider:
    """Source of an access token for a remote URL."""

    name = "provider"

    def get_token(self, url: str) -> Optional[str]:
        raise NotImplementedError


class StaticTokenProvider(TokenProvider):
    """Token supplied directly, typically from Config.token."""

    name = "static"

    def __init__(self, token: Optional[str]):
        self.token = token

    def get_token(self, url: str) -> Optional[str]:
        return self.token or None


class EnvironmentTokenProvider(TokenProvider):
    """Token read from an environment variable at lookup time."""

    name = "environment"

    def __init__(self, variable: str = "MIRRORSYNC_TOKEN"):
        self.variable = variable

    def get_token(self, url: str) -> Optional[str]:
        return os.getenv(self.variable) or None


class GitCredentialHelperProvider(TokenProvider):
    """Token from the configured git credential helper (`git credential fill`)."""

    name = "credential_helper"

    def __init__(self, timeout: float = 5.0):
        self.timeout = timeout
        self.logger = logging.getLogger('mirrorsync.credentials')

    def get_token(self, url: str) -> Optional[str]:
        parsed = parse_git_url(url)
        if not parsed:
            return None

        request = f"protocol={parsed.protocol}\nhost={parsed.host}\npath={parsed.path}\n\n"
        env = dict(os.environ, GIT_TERMINAL_PROMPT="0")
        try:
            result = subprocess.run(
                [get_git_executable(), "credential", "fill"],
                input=request,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=env,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            self.logger.debug(f"git credential fill unavailable: {e}")
            return None

        if result.returncode != 0:
            return None

        for line in result.stdout.splitlines():
            if line.startswith("password="):
                return line[len("password="):].strip() or None
        return None


class GitCredentialsFileProvider(TokenProvider):
    """
    Token read from a git-credentials store file.

    An entry for the exact repository path wins over a host-wide entry,
    which wins over any other entry on the same host.
    """

    name = "credentials_file"

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else Path.home() / ".git-credentials"

    def get_token(self, url: str) -> Optional[str]:
        parsed = parse_git_url(url)
        if not parsed or not self.path.exists():
            return None

        try:
            lines = self.path.read_text(encoding="utf-8").splitlines()
        except OSError:
            return None

        host_marker = f"@{parsed.host}"
        repo_marker = f"{host_marker}{parsed.path}"
        passes = (
            lambda line: repo_marker in line,
            lambda line: host_marker in line and f"{host_marker}/" not in line,
            lambda line: host_marker in line,
        )
        for matches in passes:
            for line in lines:
                if not matches(line):
                    continue
                match = _CREDENTIAL_LINE.search(line)
                if match:
                    return match.group(2)
        return None


def default_providers(token: Optional[str] = None) -> list:
    """Providers in lookup order: explicit token, environment, git helper, store file."""
    return [
        StaticTokenProvider(token),
        EnvironmentTokenProvider(),
        GitCredentialHelperProvider(),
        GitCredentialsFileProvider(),
    ]


def resolve_token(providers: Iterable[TokenProvider], url: str) -> Optional[str]:
    """Return the first token any provider yields for url."""
    logger = logging.getLogger('mirrorsync.credentials')
    for provider in providers:
        token = provider.get_token(url)
        if token:
            logger.debug(f"Access token resolved by {provider.name} provider")
            return token
    return None


def verify_access(url: str, token: Optional[str] = None) -> None:
    """
    Check that the remote can be listed with the given token.

    Raises:
        ConfigurationError: If no URL is given
        RemoteUnreachableError: With a readable reason if ls-remote fails
    """
    if not url:
        raise ConfigurationError("No remote URL configured", "verify_access")

    try:
        Git().ls_remote(build_authenticated_url(url, token), env={"GIT_TERMINAL_PROMPT": "0"})
    except GitCommandError as e:
        detail = str(e).replace(token, "***") if token else str(e)
        if _AUTH_STATUS.search(detail):
            raise RemoteUnreachableError(
                "Invalid access token or no permission to access this repository", "verify_access"
            )
        if "could not read" in detail.lower():
            raise RemoteUnreachableError(
                "Repository not found or access denied with this token", "verify_access"
            )
        raise RemoteUnreachableError(f"Cannot access repository: {detail}", "verify_access")
