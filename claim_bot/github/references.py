"""Issue reference parsing for pull request bodies."""

from __future__ import annotations

import re

CLOSING_VERBS = (
    "close",
    "closes",
    "closed",
    "fix",
    "fixes",
    "fixed",
    "resolve",
    "resolves",
    "resolved",
)

_TARGET = (
    r"(?:"
    r"https?://github\.com/(?P<url_owner>[A-Za-z0-9_.-]+)/(?P<url_repo>[A-Za-z0-9_.-]+)"
    r"/issues/(?P<url_number>\d+)\b"
    r"|(?<![\w/])(?:(?P<owner>[A-Za-z0-9_.-]+)/(?P<repo>[A-Za-z0-9_.-]+))?#(?P<number>\d+)\b"
    r")"
)

CLOSING_REF_RE = re.compile(r"(?i)\b(?:" + "|".join(CLOSING_VERBS) + r")\b:?\s+" + _TARGET)
MENTION_RE = re.compile(r"(?i)" + _TARGET)


def parse_closing_references(text: str, repo: str) -> set[int]:
    """Return issue numbers in ``repo`` that ``text`` closes.

    Bare ``#N`` references belong to ``repo``; qualified ``owner/name#N`` and
    full issue URLs count only when they name ``repo`` (case-insensitive).
    """
    return _numbers(CLOSING_REF_RE, text, repo)


def parse_issue_mentions(text: str, repo: str) -> set[int]:
    """Return every issue number in ``repo`` that ``text`` mentions, closing or not.

    These are the references GitHub turns into cross-reference timeline events.
    """
    return _numbers(MENTION_RE, text, repo)


def _numbers(pattern: re.Pattern[str], text: str, repo: str) -> set[int]:
    if not text:
        return set()
    current = repo.strip().lower()
    found: set[int] = set()
    for match in pattern.finditer(text):
        if match.group("url_number"):
            target = f"{match.group('url_owner')}/{match.group('url_repo')}".lower()
            number = match.group("url_number")
        else:
            owner, name = match.group("owner"), match.group("repo")
            target = f"{owner}/{name}".lower() if owner and name else current
            number = match.group("number")
        if target != current:
            continue
        value = int(number)
        if value > 0:
            found.add(value)
    return found
