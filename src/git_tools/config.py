"""Options, roots-file resolution and logging setup."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from .exceptions import ConfigurationError

DEFAULT_PROTECTED_BRANCHES: frozenset[str] = frozenset({"master", "main", "develop"})

PROTECTED_BRANCHES_ENV = "GIT_TOOLS_PROTECTED_BRANCHES"
LOG_GIT_COMMANDS_ENV = "GIT_TOOLS_LOG_GIT_COMMANDS"
ROOTS_ENV = "GIT_TOOLS_ROOTS"

_TRUTHY = {"1", "true", "yes", "on"}


def normalize_branch_names(names: Iterable[str]) -> frozenset[str]:
    """Lower-case, strip and de-duplicate branch names; blanks are dropped."""
    return frozenset(n.strip().lower() for n in names if n and n.strip())


@dataclass(frozen=True)
class GitToolsOptions:
    """Options shared by every component of a run."""

    log_all_git_commands: bool = False
    log_file_path: Path | None = None
    include_submodules: bool = True
    repository_filters: tuple[str, ...] = ()
    protected_branches: frozenset[str] = field(default=DEFAULT_PROTECTED_BRANCHES)

    def __post_init__(self):
        object.__setattr__(
            self, "protected_branches", normalize_branch_names(self.protected_branches)
        )
        object.__setattr__(self, "repository_filters", tuple(self.repository_filters))

    @property
    def has_repository_filters(self) -> bool:
        return bool(self.repository_filters)

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None, **overrides) -> GitToolsOptions:
        """Build options from ``GIT_TOOLS_*`` environment variables, then apply overrides."""
        env = os.environ if env is None else env
        options = cls()

        protected = env.get(PROTECTED_BRANCHES_ENV)
        if protected:
            options = replace(options, protected_branches=frozenset(protected.split(",")))

        log_commands = env.get(LOG_GIT_COMMANDS_ENV, "")
        if log_commands.strip().lower() in _TRUTHY:
            options = replace(options, log_all_git_commands=True)

        return replace(options, **overrides) if overrides else options


def load_roots_file(roots_file: Path) -> list[Path]:
    """Load repository roots from a file (one path per line).

    Supports:
    - Comments starting with #
    - Environment variables: $HOME, ${HOME}, $DEV_ROOT, etc.
    - Tilde expansion: ~/path

    Lines that do not name an existing directory are skipped.
    """
    roots = []
    try:
        with open(roots_file.expanduser(), encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#"):
                    path = Path(os.path.expandvars(line)).expanduser()
                    if path.is_dir():
                        roots.append(path)
    except FileNotFoundError:
        pass
    return roots


def resolve_roots_file(env: dict[str, str] | None = None, home: Path | None = None) -> Path | None:
    """Auto-resolve the roots file.

    Priority order:
    1. $GIT_TOOLS_ROOTS environment variable
    2. ~/.config/git-tools/roots (XDG-compliant)
    3. ~/.git-tools-roots (legacy fallback)
    """
    env = os.environ if env is None else env
    home = Path.home() if home is None else home

    env_roots = env.get(ROOTS_ENV)
    if env_roots:
        env_path = Path(env_roots).expanduser()
        if env_path.is_file():
            return env_path

    xdg_path = home / ".config" / "git-tools" / "roots"
    if xdg_path.is_file():
        return xdg_path

    legacy_path = home / ".git-tools-roots"
    if legacy_path.is_file():
        return legacy_path

    return None


def configure_logging(
    verbose: bool = False,
    log_file: Path | None = None,
    console: Console | None = None,
    show_git_commands: bool = False,
) -> None:
    """Route log records to a rich handler on stderr and, optionally, to a file.

    Git commands are logged at INFO; ``show_git_commands`` lets them through to the console.
    """
    root = logging.getLogger("git_tools")
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    rich_handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    if verbose:
        rich_handler.setLevel(logging.DEBUG)
    elif show_git_commands:
        rich_handler.setLevel(logging.INFO)
    else:
        rich_handler.setLevel(logging.WARNING)
    root.addHandler(rich_handler)

    if log_file is not None:
        try:
            file_handler = logging.FileHandler(log_file.expanduser(), encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"Cannot open log file {log_file}: {e}") from e
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        file_handler.setLevel(logging.DEBUG)
        root.addHandler(file_handler)
