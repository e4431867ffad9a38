"""
Shared fixtures for the proctored Q&A test session.
"""
import pytest

from fakes import (
    MANUAL_TIMINGS, FakeClock, FakeFullscreen, FakeKeys, FakeSubmissionService,
    RecordingConfirmer, RecordingNotifier,
)
from qa_test_cbt.services.session_controller import ProctoredSessionController


@pytest.fixture
def fullscreen():
    return FakeFullscreen()


@pytest.fixture
def keys():
    return FakeKeys()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def submission_service():
    return FakeSubmissionService()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def confirmer():
    return RecordingConfirmer(answer=False)


@pytest.fixture
def controller(fullscreen, keys, notifier, submission_service, clock, confirmer):
    return ProctoredSessionController(
        fullscreen=fullscreen,
        key_interceptor=keys,
        notifier=notifier,
        submission_service=submission_service,
        confirm=confirmer,
        timings=MANUAL_TIMINGS,
        clock=clock,
    )
