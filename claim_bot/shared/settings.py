"""Runtime settings for the claim reconciler, loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta

MAX_SWEEP_WORKERS = 8


@dataclass(frozen=True)
class ReconcilerSettings:
    """Labels, thresholds, and limits shared by every reconciler component."""

    repo: str
    claimed_label: str = "assigned"
    pending_label: str = "pending-unassignment"
    claim_ttl: timedelta = timedelta(hours=24)
    grace_window: timedelta = timedelta(hours=12)
    takeover_threshold: timedelta = timedelta(days=60)
    claim_limit_without_pr: int = 1
    sweep_workers: int = 4
    bot_login: str = ""
    bounty_label_prefix: str = "$"
    slack_webhook_url: str = ""
    slack_channel: str = "#bounty-alerts"

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> "ReconcilerSettings":
        source = os.environ if env is None else env
        repo = (source.get("CLAIM_BOT_REPO") or source.get("GITHUB_REPOSITORY") or "").strip()
        if "/" not in repo:
            raise ValueError("CLAIM_BOT_REPO or GITHUB_REPOSITORY must be set to owner/name")
        workers = _int(source.get("CLAIM_BOT_SWEEP_WORKERS"), 4)
        return cls(
            repo=repo,
            claimed_label=source.get("CLAIM_BOT_CLAIMED_LABEL", "assigned").strip() or "assigned",
            pending_label=(
                source.get("CLAIM_BOT_PENDING_LABEL", "pending-unassignment").strip()
                or "pending-unassignment"
            ),
            claim_ttl=timedelta(hours=_float(source.get("CLAIM_BOT_CLAIM_TTL_HOURS"), 24.0)),
            grace_window=timedelta(hours=_float(source.get("CLAIM_BOT_GRACE_HOURS"), 12.0)),
            takeover_threshold=timedelta(
                days=_float(source.get("CLAIM_BOT_TAKEOVER_STALE_DAYS"), 60.0)
            ),
            claim_limit_without_pr=max(1, _int(source.get("CLAIM_BOT_CLAIM_LIMIT"), 1)),
            sweep_workers=min(MAX_SWEEP_WORKERS, max(1, workers)),
            bot_login=(source.get("CLAIM_BOT_LOGIN") or "").strip(),
            bounty_label_prefix=source.get("CLAIM_BOT_BOUNTY_PREFIX", "$") or "$",
            slack_webhook_url=(source.get("CLAIM_BOT_SLACK_WEBHOOK_URL") or "").strip(),
            slack_channel=source.get("CLAIM_BOT_SLACK_CHANNEL", "#bounty-alerts").strip(),
        )

    def redacted(self) -> dict[str, str]:
        return {
            "repo": self.repo,
            "claimed_label": self.claimed_label,
            "pending_label": self.pending_label,
            "claim_ttl_hours": f"{self.claim_ttl.total_seconds() / 3600:g}",
            "grace_hours": f"{self.grace_window.total_seconds() / 3600:g}",
            "takeover_stale_days": f"{self.takeover_threshold.total_seconds() / 86400:g}",
            "claim_limit_without_pr": str(self.claim_limit_without_pr),
            "sweep_workers": str(self.sweep_workers),
            "bot_login": self.bot_login or "unset",
            "slack_webhook_url": "set" if self.slack_webhook_url else "unset",
        }


def _int(value: str | None, default: int) -> int:
    try:
        return int(str(value).strip()) if value not in (None, "") else default
    except ValueError:
        return default


def _float(value: str | None, default: float) -> float:
    try:
        parsed = float(str(value).strip()) if value not in (None, "") else default
    except ValueError:
        return default
    return parsed if parsed > 0 else default
