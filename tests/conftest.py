import json
import time

import pytest

from react_harness.completion import CompletionService
from react_harness.deadline import Deadline
from react_harness.errors import ProviderError
from react_harness.models import CompletionResponse, ToolCall
from react_harness.registry import Tool, ToolRegistry
from react_harness.tools import ECHO, MATH


class ScriptedService(CompletionService):
    """
    Replays a fixed list of turns. Each entry is a string (text content), a
    CompletionResponse, an exception to raise, or a callable(request, deadline).
    """

    def __init__(self, turns):
        self.turns = list(turns)
        self.requests = []

    def complete(self, request, deadline):
        self.requests.append(request)
        if not self.turns:
            raise ProviderError("Scripted service ran out of turns.")
        turn = self.turns.pop(0)
        if isinstance(turn, Exception):
            raise turn
        if callable(turn):
            return turn(request, deadline)
        if isinstance(turn, str):
            return CompletionResponse(content=turn)
        return turn


def call(name, **arguments):
    return ToolCall(name=name, arguments=json.dumps(arguments))


def calls(*tool_calls):
    return CompletionResponse(tool_calls=list(tool_calls))


def _tool_wait_for_cancel(args, deadline):
    # Cooperative handler: gives up as soon as the deadline fires.
    while not deadline.cancelled:
        time.sleep(0.01)
    return "too late"


def _tool_boom(args, deadline):
    raise RuntimeError("kaboom")


SLOW = Tool.define("slow", "Blocks until the deadline fires.", _tool_wait_for_cancel)
BOOM = Tool.define("boom", "Always fails.", _tool_boom)


@pytest.fixture
def registry():
    return ToolRegistry([ECHO, MATH, SLOW, BOOM])


@pytest.fixture
def deadline():
    d = Deadline(5.0)
    yield d
    d.close()
