"""Entry point: interactive terminal front end for the widget builder."""

import asyncio
import logging
import signal
import sys

from awb.builder import PROMPT_SUGGESTIONS, WidgetBuilder
from awb.config import get_config
from awb.utils.formatter import write_widget

HELP = """\
Commands:
  /fix          run an extra fix round on the remaining issues
  /restore N    restore checkpoint N as the live code
  /checkpoints  list the checkpoints of this session
  /retry        resubmit the prompt of the last failed run
  /reset        start over
  /save         write the widget to the output directory
  /ideas        show prompt ideas
  /quit         exit
Anything else is sent as a prompt. Ctrl+C cancels a running generation."""


def _configure_logging() -> None:
    level = str(get_config().get("log_level", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[AWB] %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _print_outcome(builder: WidgetBuilder) -> None:
    if builder.error:
        print(f"[AWB] Error: {builder.error}")
        if builder.retry_prompt:
            print("[AWB] Type /retry to try again.")
        return
    if not builder.messages:
        return
    last = builder.messages[-1]
    if last.is_clarify:
        print(f"\n{last.content}\n")
        print("[AWB] Answer the questions above (or say 'use defaults').")
    elif last.is_code:
        print(f"[AWB] {last.summary}")
        if builder.can_fix_remaining:
            print(f"[AWB] /fix to run another fix round ({builder.extra_fixes_left} left).")


def _print_checkpoints(builder: WidgetBuilder) -> None:
    if not len(builder.ledger):
        print("[AWB] No checkpoints yet.")
        return
    for i, checkpoint in enumerate(builder.ledger):
        marker = "*" if builder.ledger.active_index == i else " "
        verdict = "passed" if checkpoint.passed else f"{len(checkpoint.issues)} issues"
        print(f" {marker}{i}. {checkpoint.label} — score {checkpoint.score:g}/10, {verdict}")


async def _handle_command(builder: WidgetBuilder, line: str) -> bool:
    """Run one slash command. Returns False when the session should end."""
    command, _, arg = line.partition(" ")
    if command == "/quit":
        return False
    if command == "/fix":
        if not builder.can_fix_remaining:
            print("[AWB] Nothing to fix.")
        else:
            await builder.fix_remaining_issues()
            _print_outcome(builder)
    elif command == "/restore":
        try:
            index = int(arg)
        except ValueError:
            print("[AWB] Usage: /restore N")
            return True
        if builder.restore_checkpoint(index):
            print(f"[AWB] Restored checkpoint {index}: {builder.ledger[index].label}")
        else:
            print(f"[AWB] No checkpoint {index}.")
    elif command == "/checkpoints":
        _print_checkpoints(builder)
    elif command == "/retry":
        if not await builder.retry():
            print("[AWB] Nothing to retry.")
        _print_outcome(builder)
    elif command == "/reset":
        builder.start_over()
        print("[AWB] Started over.")
    elif command == "/save":
        try:
            code, title = builder.finalize()
        except ValueError as exc:
            print(f"[AWB] {exc}")
            return True
        output_path = write_widget(code, title, builder.last_report)
        print(f"[AWB] Output written to: {output_path}")
    elif command == "/ideas":
        for idea in PROMPT_SUGGESTIONS:
            print(f"  - {idea}")
    else:
        print(HELP)
    return True


def _install_interrupt(builder: WidgetBuilder) -> None:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, builder.abort)
    except (NotImplementedError, RuntimeError):
        # Windows event loops have no signal handler support
        pass


async def run(prompt: str = "", clarify: bool | None = None) -> None:
    """Run an interactive session, optionally starting with a prompt.

    Args:
        prompt: First prompt to submit. Empty starts at the input line.
        clarify: Override for clarify-first. None uses config default.
    """
    async with WidgetBuilder(clarify_first=clarify) as builder:
        _install_interrupt(builder)
        print(HELP)
        pending = prompt.strip()
        while True:
            if pending:
                line, pending = pending, ""
            else:
                try:
                    line = (await asyncio.to_thread(input, "\nawb> ")).strip()
                except EOFError:
                    break
            if not line:
                continue
            if line.startswith("/"):
                if not await _handle_command(builder, line):
                    break
                continue
            await builder.submit(line)
            if builder.status:
                print(f"[AWB] {builder.status}")
            _print_outcome(builder)


def main() -> None:
    """CLI entry point — accepts a first prompt as arguments."""
    _configure_logging()
    clarify = None
    args = sys.argv[1:]

    if "--no-clarify" in args:
        clarify = False
        args.remove("--no-clarify")

    asyncio.run(run(" ".join(args), clarify=clarify))


if __name__ == "__main__":
    main()
