"""Opt-in shell execution for ``!command`` chat messages.

Not a sandbox: commands run with the bridge process's own privileges, so
enabling this is equivalent to handing the configured Slack identity a local
shell.  Disabled unless ``shell.enabled`` is set.
"""

from __future__ import annotations

from opencode_slack.logger import logger
from opencode_slack.utils import (
    ShellResult,
    log_shell_result,
    run_shell_command,
    truncate,
)

SHELL_MARKER = "!"


class ShellGate:
    def __init__(
        self,
        *,
        enabled: bool = False,
        timeout: float = 30.0,
        max_output: int = 3000,
        cwd: str | None = None,
    ) -> None:
        self.enabled = enabled
        self._timeout = timeout
        self._max_output = max_output
        self._cwd = cwd

    def command_for(self, text: str) -> str | None:
        """Return the command body if ``text`` should go to the shell, else None."""
        if not self.enabled or not text.startswith(SHELL_MARKER):
            return None
        body = text[len(SHELL_MARKER) :].strip()
        return body or None

    async def run(self, command: str) -> ShellResult:
        logger.info("Running shell command from chat", command=command[:200])
        result = await run_shell_command(
            command,
            cwd=self._cwd,
            timeout_seconds=self._timeout,
            max_bytes=self._max_output * 4,
        )
        log_shell_result(result, label="Chat shell command")
        return result

    async def execute(self, command: str) -> str:
        """Run ``command`` and return chat-ready, fenced output."""
        return self.format_result(await self.run(command))

    def format_result(self, result: ShellResult) -> str:
        if result.start_error:
            body = f"(failed to start: {result.start_error})"
        elif result.timed_out:
            body = f"(timed out after {self._timeout:g}s)"
        elif result.output:
            body = truncate(result.output, self._max_output)
            if result.truncated and len(result.output) <= self._max_output:
                body += "\n...(truncated)"
        elif result.returncode:
            body = f"(exit code: {result.returncode})"
        else:
            body = "(no output)"
        return f"```\n{body}\n```"
