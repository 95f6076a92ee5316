"""Interactive command-line entry point."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import Awaitable, Callable

from dotenv import load_dotenv

from .cancellation import CancellationController
from .config import AgentConfig
from .loop import ToolCallLoop
from .tools import create_default_registry
from .types import Context, StopReason, StreamEvent

logger = logging.getLogger("chatloop")

EXIT_COMMANDS = ("exit", "quit")
PROMPT = "\nYou (exit/quit to leave): "

InputFn = Callable[[str], Awaitable[str]]
OutputFn = Callable[[str], None]


async def _read_line(prompt: str) -> str:
    return await asyncio.to_thread(input, prompt)


def _write(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()


class ChatSession:
    """Reads user lines and runs each one as a turn on a shared context."""

    def __init__(
        self,
        loop: ToolCallLoop,
        context: Context,
        *,
        read_line: InputFn = _read_line,
        write: OutputFn = _write,
    ) -> None:
        self.loop = loop
        self.context = context
        self.read_line = read_line
        self.write = write
        self._controller: CancellationController | None = None
        self._shutdown = False

    @property
    def busy(self) -> bool:
        return self._controller is not None

    async def handle_line(self, line: str) -> bool:
        """Process one input line. Returns False when the session should end."""
        text = line.strip()
        if text in EXIT_COMMANDS:
            return False
        if not text:
            return True
        await self.run_turn(text)
        return True

    async def run_turn(self, text: str) -> None:
        controller = CancellationController()
        self._controller = controller
        turn = self.loop.stream(self.context, text, controller.signal)
        try:
            async for event in turn:
                self._render(event)
            message = await turn.result()
            if message.stop_reason == StopReason.ABORTED:
                self.write("\n[generation cancelled]\n")
            elif message.stop_reason == StopReason.ERROR:
                self.write(f"\n[model error: {message.error_message}]\n")
            elif message.stop_reason == StopReason.LENGTH:
                self.write("\n[response truncated]\n")
            else:
                self.write("\n")
        except Exception as exc:
            logger.exception("Turn failed")
            self.write(f"\nError: {exc}\n")
        finally:
            await turn.aclose()
            self._controller = None

    def _render(self, event: StreamEvent) -> None:
        if event.type == "start":
            self.write("\nAssistant: ")
        elif event.type == "text_delta":
            self.write(event.delta)
        elif event.type == "tool_call":
            self.write(
                f"\n[tool] {event.data['tool_name']}({event.data['tool_input']})"
            )
        elif event.type == "tool_result":
            self.write(f" -> {event.data['result']}\n")

    def interrupt(self) -> None:
        """Cancel the running turn, or end the session when idle."""
        if self._controller is not None:
            logger.info("Cancel received")
            self._controller.abort("interrupted")
            return
        self._shutdown = True
        self.write("\nPress Enter to exit.\n")

    async def run(self) -> None:
        self.write("Assistant ready. Arithmetic is handled by the calculate_expression tool.\n")
        while not self._shutdown:
            try:
                line = await self.read_line(PROMPT)
            except EOFError:
                break
            if self._shutdown:
                break
            if not await self.handle_line(line):
                break


async def main() -> None:
    """Entry point: configure from the environment and run the REPL."""
    load_dotenv()
    config = AgentConfig.from_env()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )

    model = config.resolve_model()
    if not model.api_key:
        logger.warning("No API key configured for provider %s", model.provider)
    logger.info("Starting session (provider=%s, model=%s)", model.provider, model.id)

    agent_loop = ToolCallLoop(
        model,
        create_default_registry(),
        max_iterations=config.max_iterations,
    )
    session = ChatSession(agent_loop, Context(system_prompt=config.system_prompt))

    loop = asyncio.get_running_loop()
    if sys.platform != "win32":
        loop.add_signal_handler(signal.SIGINT, session.interrupt)

    await session.run()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
