import types
from typing import Generator

import pytest
import numpy as np

from ucmflow import config, gamedata, engine
from ucmflow.script import InputState, ScriptManager
from . import RecordingObserver

# some logging to turn on if we like
#import logging
#logging.getLogger("ucmflow.cursors").level = logging.DEBUG

@pytest.fixture
def game_data() -> gamedata.GameData:
    return gamedata.GameData()

@pytest.fixture
def input_state() -> InputState:
    return InputState()

@pytest.fixture
def script_manager(game_data:gamedata.GameData, input_state:InputState) -> ScriptManager:
    return ScriptManager(game_data, input_state)

@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()

@pytest.fixture
def narrative(observer:RecordingObserver) -> engine.NarrativeEngine:
    e = engine.NarrativeEngine(r=np.random.default_rng(1234))
    e.observe(observer)
    return e

@pytest.fixture
def settings(monkeypatch:pytest.MonkeyPatch) -> Generator[types.SimpleNamespace, None, None]:
    """ a fresh config.Settings, the previous one is restored after the test """
    monkeypatch.setattr(config, "Settings", config.Settings)
    yield config.load_config()
