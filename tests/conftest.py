"""Shared fixtures: in-memory stores, ledgers, seeded generators and fake collaborators."""

import random

import pytest

from robopet.db.storage import MemoryStore, NamespacedStore
from robopet.engine.events import EventQueue
from robopet.models.device import (
    ComponentType,
    PetType,
    Problem,
    ProblemType,
    RobotPet,
    create_pet,
    default_components,
)
from robopet.services.ledger import ProgressLedger
from robopet.services.problem_generator import ProblemGenerator, describe_problem, required_tool_for


class RecordingSink:
    """Feedback sink that remembers every cue it was asked to play."""

    def __init__(self):
        self.played = []

    def play(self, cue, intensity):
        self.played.append((cue, intensity))


class BrokenSink:
    """Sink whose audio device has gone away."""

    def play(self, cue, intensity):
        raise RuntimeError("audio device unavailable")


class RecordingView:
    """Render view that keeps every snapshot it is shown."""

    def __init__(self):
        self.snapshots = []

    def present(self, snapshot):
        self.snapshots.append(snapshot)


def make_problem(component, problem_type, severity=1, problem_id=None):
    component = ComponentType(component)
    problem_type = ProblemType(problem_type)
    return Problem(
        id=problem_id or f"problem_{component.value}",
        component=component,
        problem_type=problem_type,
        severity=severity,
        required_tool=required_tool_for(problem_type, component),
        description=describe_problem(problem_type, component),
    )


def make_pet(*component_types, pet_type=PetType.DOG):
    """A pet with only the given components (all five when none are given)."""
    components = default_components(pet_type)
    if component_types:
        wanted = {ComponentType(c) for c in component_types}
        components = [c for c in components if c.type in wanted]
    return RobotPet(id="pet_test", name="Bolt", pet_type=pet_type, components=components)


@pytest.fixture
def store():
    return NamespacedStore(MemoryStore(), namespace="robo_pet_")


@pytest.fixture
def events():
    return EventQueue()


@pytest.fixture
def ledger(store, events):
    return ProgressLedger(store=store, events=events, age_group="6-8")


@pytest.fixture
def young_ledger(store, events):
    return ProgressLedger(store=store, events=events, age_group="3-5")


@pytest.fixture
def generator():
    return ProblemGenerator(random.Random(1234))


@pytest.fixture
def pet():
    return create_pet("Bolt", PetType.DOG, pet_id="pet_test")


@pytest.fixture
def sink():
    return RecordingSink()
