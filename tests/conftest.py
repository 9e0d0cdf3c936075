from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from claim_bot.collaborators.notifier import NullNotifier
from claim_bot.github.github_connector_inmemory import InMemoryGitHubConnector
from claim_bot.reconciler.context import ReconcileContext
from claim_bot.shared.settings import ReconcilerSettings

REPO = "acme/widgets"
T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def connector(clock: FakeClock) -> InMemoryGitHubConnector:
    return InMemoryGitHubConnector(allowed_repos={REPO}, clock=clock)


@pytest.fixture
def settings() -> ReconcilerSettings:
    return ReconcilerSettings(repo=REPO, bot_login="claim-bot[bot]")


@pytest.fixture
def notifier() -> NullNotifier:
    return NullNotifier()


@pytest.fixture
def ctx(
    connector: InMemoryGitHubConnector,
    settings: ReconcilerSettings,
    clock: FakeClock,
    notifier: NullNotifier,
) -> ReconcileContext:
    return ReconcileContext(connector=connector, settings=settings, clock=clock, notifier=notifier)
