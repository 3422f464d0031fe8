"""Shared fixtures for the test suite."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

import pytest

from credtools.config import Settings
from credtools.models.identity import SessionIdentity
from credtools.services.publisher import BranchSequence, PublishOrchestrator
from credtools.tests.fakes import FROZEN_NOW, FakeGitHub


@pytest.fixture()
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        repo_owner="acme",
        repo_name="governance",
        base_url="https://vdr.example",
        app_url="https://apps.example",
    )


@pytest.fixture()
def frozen_clock() -> Callable[[], datetime]:
    return lambda: FROZEN_NOW


@pytest.fixture()
def orchestrator(
    fake_github: FakeGitHub, settings: Settings, frozen_clock: Callable[[], datetime]
) -> PublishOrchestrator:
    return PublishOrchestrator(fake_github, settings=settings, clock=frozen_clock, sequence=BranchSequence())


@pytest.fixture()
def identity() -> SessionIdentity:
    return SessionIdentity(id="101", login="octocat", token="test-token", name="Octo Cat", email="octo@example.com")


@pytest.fixture()
def other_identity() -> SessionIdentity:
    return SessionIdentity(id="202", login="hubot", token="other-token")
