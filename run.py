"""Headless driver: plays one scripted diagnose-and-repair session and prints the report as JSON."""

import json
import logging
import random

from robopet.config import settings
from robopet.db.collection import PetCollection
from robopet.db.storage import NamespacedStore, open_store
from robopet.engine.events import EventQueue, InputEvent, ProgressEventType
from robopet.engine.game_loop import GameLoop
from robopet.engine.state_machine import StateManager
from robopet.models.device import PetType, create_pet
from robopet.services.ledger import ProgressLedger
from robopet.services.problem_generator import ProblemGenerator
from robopet.services.report import build_progress_report
from robopet.states.diagnostic import DiagnosticState
from robopet.states.interstitial import InterstitialState
from robopet.states.repair import RepairState

logging.basicConfig(level=settings.log_level, format="%(levelname)-5s [%(name)s] %(message)s")
logger = logging.getLogger("robopet.run")


def play(seed: int = 7) -> dict:
    events = EventQueue()
    events.subscribe(ProgressEventType.MILESTONE_REACHED,
                     lambda e: logger.info("Milestone: %s", e.data["milestone_id"]))

    store = NamespacedStore(open_store())
    ledger = ProgressLedger(store=store, events=events)
    manager = StateManager()
    loop = GameLoop(manager, events)

    pet = create_pet("Sparky", PetType.DOG)
    age_group = ledger.age_group
    ledger.start_session()

    diagnostic = DiagnosticState(ledger=ledger, generator=ProblemGenerator(random.Random(seed)))
    diagnostic.initialize(pet, age_group)
    manager.change_state(diagnostic)
    loop.handle_input(InputEvent.tap(20, 20))
    for area in list(diagnostic.areas.values()):
        if area.problem is not None:
            loop.run_for(1_500)
            diagnostic.inspect_area(area.id)

    manager.change_state(InterstitialState("Grab your tools!", min_display_ms=300))
    loop.run_for(300)

    repair = RepairState(ledger=ledger)
    repair.initialize(pet, diagnostic.identified_problems(), age_group)
    manager.change_state(repair)
    for area in list(repair.areas.values()):
        repair.select_tool(area.required_tool)
        repair.attempt_repair(area.id)
        while repair.cleaning.is_active:
            loop.tick(16)
    loop.tick(0)
    PetCollection(store).save(pet)

    ledger.end_session()
    loop.tick(0)
    return build_progress_report(ledger).model_dump(mode="json")


if __name__ == "__main__":
    print(json.dumps(play(), indent=2))
