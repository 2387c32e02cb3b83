# run.py
# Entry point. Config and wiring only, no logic lives here.
#
# Swap the model string for any OpenRouter-supported model.
# https://openrouter.ai/models
#
# Environment (.env is read): OPENROUTER_API_KEY, REACT_MODEL, and the
# REACT_* execution settings understood by ExecutionConfig.from_env().

import logging
import os

from rich.logging import RichHandler

from react_harness import display
from react_harness.completion import OpenAICompletionService
from react_harness.errors import ConfigurationError
from react_harness.harness import Harness
from react_harness.models import ExecutionConfig, Mode
from react_harness.prompts import example_set
from react_harness.tools import default_registry

MODEL = "anthropic/claude-3.5-haiku"

# Test prompts, one per built-in capability.
PROMPTS = [
    # math: evaluate + statistics
    "What is the mean of 12, 18 and 27, multiplied by 3?",

    # search → summarize chain
    "Find recent papers on transformer attention mechanisms and summarize the key findings.",

    # search → file_write inside the workspace
    "Search for the latest Python packaging best practices and save the summary "
    "to notes/packaging_notes.txt for my reference.",
]


def main() -> None:
    logging.basicConfig(
        level=os.getenv("REACT_LOG_LEVEL", "WARNING"),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=display.console, rich_tracebacks=True)],
    )

    model = os.getenv("REACT_MODEL", MODEL)
    config = ExecutionConfig.from_env().with_overrides(
        examples=example_set("calculation"),
        iteration_reminders=True,
    )
    harness = Harness(OpenAICompletionService(model=model), default_registry(), config)

    for mode in (Mode.TEXT, Mode.NATIVE):
        mode_config = config.with_overrides(mode=mode)
        display.banner(model, mode_config)
        for prompt in PROMPTS:
            display.task_received(prompt)
            try:
                result = harness.stream(
                    prompt, mode_config, on_step=display.print_step, on_tool=display.tool_timing
                )
            except ConfigurationError as exc:
                display.halt(exc.describe())
                return
            display.show_result(result)


if __name__ == "__main__":
    main()
