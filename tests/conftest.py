"""Shared pytest fixtures and fake collaborators."""

import json

import pytest

from simpatient.errors import CaseNotFound
from simpatient.session import SessionLifecycle, SessionPolicy, SessionStore

CASE_ID = "7d0f6c1e-2b7a-4a57-9a43-3f1c0e1d9b11"
CASE_DESCRIPTION = json.dumps(
    {"name": "John Carter", "age": 54, "presenting_complaint": "Chest pain"}
)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeCases:
    def __init__(self, cases=None):
        self.cases = {CASE_ID: CASE_DESCRIPTION} if cases is None else cases
        self.calls = []

    async def resolve_case(self, case_reference):
        self.calls.append(case_reference)
        if case_reference not in self.cases:
            raise CaseNotFound("OSCE case not found")
        return self.cases[case_reference]


class FakeTranscriber:
    def __init__(self, texts=("What brings you in?",), error=None):
        self.texts = list(texts)
        self.error = error
        self.calls = []

    async def transcribe(self, audio):
        self.calls.append(audio)
        if self.error:
            raise self.error
        if len(self.texts) > 1:
            return self.texts.pop(0)
        return self.texts[0]


class FakeChat:
    def __init__(self, replies=("Chest pain.",), error=None):
        self.replies = list(replies)
        self.error = error
        self.calls = []

    async def complete(self, transcript):
        self.calls.append(list(transcript))
        if self.error:
            raise self.error
        if len(self.replies) > 1:
            return self.replies.pop(0)
        return self.replies[0]


class FakeSpeech:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    async def synthesize(self, text, voice_gender):
        self.calls.append((text, voice_gender))
        if self.error:
            raise self.error
        return f"audio:{text}".encode()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return SessionStore(clock=clock)


@pytest.fixture
def cases():
    return FakeCases()


@pytest.fixture
def transcriber():
    return FakeTranscriber()


@pytest.fixture
def chat():
    return FakeChat()


@pytest.fixture
def speech():
    return FakeSpeech()


@pytest.fixture
def policy():
    return SessionPolicy(idle_timeout_seconds=1800, sweep_interval_seconds=300)


@pytest.fixture
def lifecycle(store, cases, transcriber, chat, speech, policy):
    return SessionLifecycle(
        store=store,
        cases=cases,
        transcriber=transcriber,
        chat=chat,
        speech=speech,
        policy=policy,
    )
