"""Tokens used to talk to GitHub and the account the bot's comments appear under.

Inside GitHub Actions the workflow's ``GITHUB_TOKEN`` is enough; anything it
writes is authored by ``github-actions[bot]``. A dedicated app or user token
(``CLAIM_BOT_GITHUB_*``) takes precedence, and ``CLAIM_BOT_LOGIN`` then names
the account it writes as, so marker comments can be told apart from look-alikes
posted by contributors.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

ACTIONS_BOT_LOGIN = "github-actions[bot]"


@dataclass(frozen=True)
class GitHubAuth:
    read_token: str | None = None
    write_token: str | None = None
    source: str = "none"
    bot_login: str = ""

    def redacted(self) -> dict[str, str]:
        return {
            "source": self.source,
            "read_token": _mask(self.read_token),
            "write_token": _mask(self.write_token),
            "bot_login": self.bot_login or "unset",
        }


def load_github_auth_from_env(env: dict[str, str] | None = None) -> GitHubAuth:
    """Resolve tokens: dedicated ``CLAIM_BOT_*`` tokens first, then Actions' ``GITHUB_TOKEN``.

    ``source`` records which one writes: ``claim_bot``, ``actions`` or ``none``.
    """
    env_map = os.environ if env is None else env
    dedicated = _clean(env_map.get("CLAIM_BOT_GITHUB_TOKEN"))
    read_token = _clean(env_map.get("CLAIM_BOT_GITHUB_READ_TOKEN")) or dedicated
    write_token = _clean(env_map.get("CLAIM_BOT_GITHUB_WRITE_TOKEN")) or dedicated
    actions_token = _clean(env_map.get("GITHUB_TOKEN"))
    login = _clean(env_map.get("CLAIM_BOT_LOGIN")) or ""

    if write_token is None and actions_token is not None:
        return GitHubAuth(
            read_token=read_token or actions_token,
            write_token=actions_token,
            source="actions",
            bot_login=login or ACTIONS_BOT_LOGIN,
        )
    return GitHubAuth(
        read_token=read_token or actions_token,
        write_token=write_token,
        source="claim_bot" if write_token or read_token else "none",
        bot_login=login,
    )


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


def _mask(token: str | None) -> str:
    if token is None:
        return "unset"
    if len(token) < 12:
        return "set"
    return f"set (...{token[-4:]})"
