"""Shared fixtures for midiroute tests."""

import pytest

from midiroute.callbacks import DispatchQueue
from midiroute.compiler import compile_actions
from midiroute.config import ALL_APPLICATIONS, ManagerSettings
from midiroute.controls import ControlRegistry
from midiroute.dispatcher import EventDispatcher
from midiroute.plugins.loupedeck_plus import LoupedeckPlusPlugin
from midiroute.registry import ActionHandlerRegistry
from midiroute.resolver import BankContextResolver

FCP = "com.apple.FinalCut"


class RecordingHandler:
    """Action handler that records every payload it receives."""

    def __init__(self):
        self.actions = []

    def execute(self, action):
        self.actions.append(action)


class FailingHandler:
    def execute(self, action):
        raise RuntimeError("handler exploded")


class FakePort:
    """Stand-in for a mido input port."""

    def __init__(self, name, messages=None):
        self.name = name
        self.messages = list(messages or [])
        self.closed = False

    def iter_pending(self):
        while self.messages:
            yield self.messages.pop(0)

    def close(self):
        self.closed = True


class FakeOpener:
    """Port factory recording which ports were opened."""

    def __init__(self, fail=()):
        self.fail = set(fail)
        self.opened = []
        self.ports = {}

    def __call__(self, name, virtual=False):
        if name in self.fail:
            raise IOError(f"cannot open {name}")
        self.opened.append((name, virtual))
        port = FakePort(name)
        self.ports[name] = port
        return port


def button(device="Keys", channel=0, command_type="noteOn", number=36, value="", action=None, handler_id="test_actions"):
    return {
        "device": device,
        "channel": channel,
        "commandType": command_type,
        "number": number,
        "value": value,
        "action": action if action is not None else {"id": f"action{number}"},
        "handlerID": handler_id,
    }


@pytest.fixture
def midi_tree():
    return {
        ALL_APPLICATIONS: {
            "1": {
                "bankLabel": "Main",
                "1": button(number=36, action={"id": "play"}),
                "2": button(command_type="controlChange", number=7, value=127, action={"id": "up"}),
                "3": button(command_type="controlChange", number=7, value=1, action={"id": "down"}),
                "4": button(command_type="controlChange", number=10, action={"id": "pan"}),
                "5": button(command_type="pitchWheelChange", number="", action={"id": "wheel"}),
            },
            "2": {
                "1": button(number=36, action={"id": "stop"}),
            },
        },
        FCP: {
            "1": {
                "1": button(number=36, action={"id": "blade"}),
            },
        },
    }


@pytest.fixture
def loupedeck_tree():
    return {
        ALL_APPLICATIONS: {
            "1": {
                "3Left": {"action": {"id": "nudge_left"}, "handlerID": "test_actions"},
                "3Right": {"action": {"id": "nudge_right"}, "handlerID": "test_actions"},
                "5Press": {"action": {"id": "mark"}, "handlerID": "test_actions"},
            },
            "1fn": {
                "5Press": {"action": {"id": "unmark"}, "handlerID": "test_actions"},
            },
        },
    }


@pytest.fixture
def plugin():
    return LoupedeckPlusPlugin()


@pytest.fixture
def recorder():
    return RecordingHandler()


@pytest.fixture
def handlers(recorder):
    registry = ActionHandlerRegistry()
    registry.add_handler("test_actions", recorder)
    return registry


@pytest.fixture
def controls():
    return ControlRegistry()


class Router:
    """A dispatcher wired to plain dicts, for driving tests."""

    def __init__(self, midi_tree, loupedeck_tree, plugin, handlers, controls):
        self.midi_tree = midi_tree
        self.loupedeck_tree = loupedeck_tree
        self.active_banks = {}
        self.loupedeck_banks = {}
        self.frontmost = None
        self.learning = False
        self.index = compile_actions(midi_tree, loupedeck_tree, plugin)
        self.queue = DispatchQueue()
        self.resolver = BankContextResolver(lambda: self.midi_tree, lambda: self.active_banks)
        self.loupedeck_resolver = BankContextResolver(
            lambda: self.loupedeck_tree,
            lambda: self.loupedeck_banks,
            modifier=plugin.modifier,
        )
        self.dispatcher = EventDispatcher(
            index=lambda: self.index,
            resolver=self.resolver,
            surface_resolvers={plugin.device_name: self.loupedeck_resolver},
            controls=controls,
            handlers=handlers,
            queue=self.queue,
            frontmost_application=lambda: self.frontmost,
            learning_mode=lambda: self.learning,
        )

    def send(self, device_name, command_type, metadata):
        bound = self.dispatcher.dispatch(device_name, command_type, metadata)
        self.queue.process_pending()
        return bound


@pytest.fixture
def router(midi_tree, loupedeck_tree, plugin, handlers, controls):
    return Router(midi_tree, loupedeck_tree, plugin, handlers, controls)


@pytest.fixture
def settings(tmp_path):
    return ManagerSettings(config_root=tmp_path / "config", number_of_banks=4)
