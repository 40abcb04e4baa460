"""State machines built on the ``transitions`` library.

Two machines live here:

* the **run** lifecycle, ``pending -> running -> cleaning_up -> finished``
  with ``abort`` short-circuiting a running build into cleanup;
* the **integration harness** window,
  ``idle -> starting -> settling -> probing -> tearing_down -> idle``
  where ``tear_down`` is reachable from every non-idle state so that
  release happens on every exit path.
"""

from __future__ import annotations

import logging
from typing import Any

from transitions.extensions.asyncio import AsyncMachine

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Run lifecycle
# ---------------------------------------------------------------------------
RUN_STATES: list[str] = [
    "pending",
    "running",
    "cleaning_up",
    "finished",
]

RUN_TRANSITIONS: list[dict[str, Any]] = [
    {
        "trigger": "start",
        "source": "pending",
        "dest": "running",
        "conditions": ["has_stages"],
    },
    {
        "trigger": "stages_done",
        "source": "running",
        "dest": "cleaning_up",
    },
    {
        "trigger": "abort",
        "source": ["pending", "running"],
        "dest": "cleaning_up",
    },
    {
        "trigger": "finish",
        "source": "cleaning_up",
        "dest": "finished",
    },
]

# ---------------------------------------------------------------------------
# Integration harness window
# ---------------------------------------------------------------------------
HARNESS_STATES: list[str] = [
    "idle",
    "starting",
    "settling",
    "probing",
    "tearing_down",
]

HARNESS_TRANSITIONS: list[dict[str, Any]] = [
    {"trigger": "begin_startup", "source": "idle", "dest": "starting"},
    {"trigger": "begin_settle", "source": "starting", "dest": "settling"},
    {"trigger": "begin_probe", "source": "settling", "dest": "probing"},
    {
        "trigger": "begin_teardown",
        "source": ["starting", "settling", "probing"],
        "dest": "tearing_down",
    },
    {"trigger": "finish_teardown", "source": "tearing_down", "dest": "idle"},
]


def create_run_machine(model: Any, initial_state: str = "pending") -> AsyncMachine:
    """Create an ``AsyncMachine`` for a build run bound to *model*.

    The model must implement ``has_stages`` (guard for ``start``).

    Args:
        model: The object whose state the machine manages.
        initial_state: The initial state for the machine.

    Returns:
        Configured ``AsyncMachine`` instance.
    """
    return AsyncMachine(
        model=model,
        states=RUN_STATES,
        transitions=RUN_TRANSITIONS,
        initial=initial_state,
        auto_transitions=False,
        send_event=True,
        queued=True,
        ignore_invalid_triggers=True,
    )


def create_harness_machine(model: Any) -> AsyncMachine:
    """Create the integration harness machine bound to *model*.

    Invalid triggers raise ``MachineError``: the harness must never skip
    a phase of its window silently.  If the model defines
    ``record_transition`` it is called after every state change.
    """
    kwargs: dict[str, Any] = {}
    if hasattr(model, "record_transition"):
        kwargs["after_state_change"] = "record_transition"
    return AsyncMachine(
        model=model,
        states=HARNESS_STATES,
        transitions=HARNESS_TRANSITIONS,
        initial="idle",
        auto_transitions=False,
        send_event=True,
        ignore_invalid_triggers=False,
        **kwargs,
    )
