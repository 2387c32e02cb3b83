# display.py
# All terminal output for the ReAct harness demo.
#
# This module owns presentation entirely. harness.py never formats strings;
# callers pass print_step as the stream sink and call the named functions here.
# Swap this file to change the entire UI.
#
# Colour language:
#   cyan    scaffolding / configuration
#   magenta ReAct internals (Thought / Action / Observation)
#   yellow  recoverable errors fed back to the model
#   green   success
#   red     halts and fatal terminations

import json

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from react_harness.models import (
    Action,
    ExecutionConfig,
    ExecutionResult,
    Final,
    Observation,
    Step,
    TerminationReason,
    Thought,
)

console = Console()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: str, max_len: int = 120) -> str:
    value = " ".join(value.split())
    if len(value) > max_len:
        return escape(value[:max_len]) + "…"
    return escape(value)


# ---------------------------------------------------------------------------
# Entry
# ---------------------------------------------------------------------------


def banner(model: str, config: ExecutionConfig) -> None:
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]ReAct Harness[/bold cyan]\n"
            "[dim]Reason → Act → Observe with bounded iterations and time[/dim]\n\n"
            f"[dim]Model      :[/dim] [white]{model}[/white]\n"
            f"[dim]Mode       :[/dim] [white]{config.mode.value}[/white]\n"
            f"[dim]Iterations :[/dim] [white]{config.max_iterations}[/white]"
            f"   [dim]Timeout :[/dim] [white]{config.timeout:g}s[/white]"
            f"   [dim]Strict :[/dim] [white]{config.strict}[/white]",
            border_style="cyan",
            padding=(1, 4),
        )
    )


def task_received(task: str) -> None:
    console.print()
    console.print(Rule("[cyan]NEW TASK[/cyan]", style="cyan"))
    console.print(f"  [white]{escape(task)}[/white]")
    console.print()


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------


def react_thought(thought: str) -> None:
    console.print(f"  [magenta]Thought[/magenta]  [dim white]{_mono(thought, 200)}[/dim white]")


def react_action(tool: str, args: dict) -> None:
    console.print(
        f"  [magenta]Action[/magenta]   [bold white]{escape(tool)}[/bold white]"
        f"  [dim]{escape(json.dumps(args, default=str))}[/dim]"
    )


def react_observation(observation: str) -> None:
    console.print(f"  [magenta]Observe[/magenta]  [white]{_mono(observation, 140)}[/white]")


def react_error(tool_name: str, error_kind: str | None, text: str) -> None:
    console.print(
        f"  [yellow]Error[/yellow]    [bold yellow]{error_kind or 'error'}[/bold yellow]"
        f" [dim]({escape(tool_name)})[/dim]  [white]{_mono(text, 140)}[/white]"
    )


def react_final(answer: str) -> None:
    console.print(f"  [green]Final[/green]    [bold white]{_mono(answer, 200)}[/bold white]")


def print_step(step: Step) -> None:
    """Step sink for Harness.stream()."""
    if isinstance(step, Thought):
        react_thought(step.text)
    elif isinstance(step, Action):
        react_action(step.tool_name, step.arguments)
    elif isinstance(step, Observation):
        if step.is_error:
            react_error(step.tool_name, step.error_kind, step.result)
        else:
            react_observation(step.result)
    elif isinstance(step, Final):
        react_final(step.answer)


def tool_timing(action: Action, observation: Observation, duration: float) -> None:
    """on_tool hook for Harness.stream()."""
    status = "[yellow]failed[/yellow]" if observation.is_error else "[dim]done[/dim]"
    console.print(f"           [dim]{escape(action.tool_name)}[/dim] {status} [dim]in {duration:.2f}s[/dim]")


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


def execution_summary(result: ExecutionResult) -> None:
    console.print()
    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="dim",
        show_header=True,
        header_style="bold dim",
        padding=(0, 1),
    )
    table.add_column("Outcome", width=10)
    table.add_column("Iterations", justify="center", width=10)
    table.add_column("Tool calls", justify="center", width=10)
    table.add_column("Errors", justify="center", width=8)
    table.add_column("Duration", justify="right", width=9)

    color = "green" if result.success else "red"
    table.add_row(
        f"[bold {color}]{result.termination_reason.value}[/bold {color}]",
        str(result.iterations_used),
        str(result.tool_call_count),
        str(result.error_count),
        f"{result.duration:.2f}s",
    )

    console.print(
        Panel(
            table,
            title="[dim]EXECUTION SUMMARY[/dim]",
            border_style="dim",
            padding=(0, 1),
        )
    )


def timeline(result: ExecutionResult) -> None:
    """Chronological event table. Empty unless the run recorded a timeline."""
    if not result.timeline:
        return
    table = Table(box=box.SIMPLE, show_header=True, header_style="bold dim", padding=(0, 1))
    table.add_column("#", justify="right", width=3)
    table.add_column("Event", width=16)
    table.add_column("Detail")
    table.add_column("Took", justify="right", width=8)
    for event in result.timeline:
        detail = f"{event.tool_name}: {event.content}" if event.tool_name else event.content
        table.add_row(
            str(event.iteration),
            f"[cyan]{event.kind}[/cyan]",
            _mono(detail, 80),
            f"{event.duration:.2f}s" if event.duration else "",
        )
    console.print(Panel(table, title="[dim]TIMELINE[/dim]", border_style="dim", padding=(0, 1)))


def final_result(answer: str, confidence: float | None = None) -> None:
    console.print()
    title = "RESULT" if confidence is None else f"RESULT ({confidence:.0%} confident)"
    console.print(
        Panel(
            f"[white]{escape(answer)}[/white]",
            title=_label(title, "green"),
            border_style="green",
            padding=(1, 2),
        )
    )
    console.print()


def halt(reason: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold white]{escape(reason)}[/bold white]",
            title=_label("HALT", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )
    console.print()


def show_result(result: ExecutionResult) -> None:
    """Summary table followed by the answer, or a halt panel with the diagnosis."""
    execution_summary(result)
    timeline(result)
    if result.termination_reason == TerminationReason.SUCCESS:
        final_result(result.final_answer or "", result.confidence)
        return
    describe = getattr(result.error, "describe", None)
    halt(describe(result.transcript) if describe else str(result.error or result.termination_reason.value))
