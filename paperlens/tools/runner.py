"""Async runner for external format-conversion tools with hard timeouts.

Wraps pdftotext, pdftoppm and soffice invocations:
- Hard timeout per call; the child process is killed on expiry
- Non-zero exit raises ToolExecutionError with stderr attached
- Metrics and structured logging per invocation
"""

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass

from paperlens.errors import ToolExecutionError, ToolTimeoutError
from paperlens.utils.metrics import pipeline_metrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolContext:
    """Context for tool execution with tracing."""

    upload_id: str
    tool_name: str


async def run_tool(
    ctx: ToolContext,
    args: Sequence[str],
    *,
    timeout_s: float,
) -> bytes:
    """Run an external tool and return its stdout.

    Args:
        ctx: Tool context (upload id and tool name)
        args: Program and arguments; never passed through a shell
        timeout_s: Hard timeout in seconds

    Returns:
        Raw stdout bytes

    Raises:
        ToolTimeoutError: Tool did not finish within timeout_s
        ToolExecutionError: Tool missing or exited non-zero
    """
    start_time = time.monotonic()

    try:
        process = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        pipeline_metrics.inc_tool_error(ctx.tool_name, "not_found")
        raise ToolExecutionError(f"Tool {ctx.tool_name} could not be started: {e}") from e

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout_s)
    except TimeoutError as e:
        process.kill()
        await process.wait()
        elapsed_ms = (time.monotonic() - start_time) * 1000
        pipeline_metrics.inc_tool_error(ctx.tool_name, "timeout")
        pipeline_metrics.record_latency(ctx.tool_name, "timeout", elapsed_ms)
        logger.warning(
            f"Tool {ctx.tool_name} timed out after {timeout_s}s",
            extra={"structured": {"upload_id": ctx.upload_id, "tool": ctx.tool_name}},
        )
        raise ToolTimeoutError(f"Tool {ctx.tool_name} timed out after {timeout_s}s") from e

    elapsed_ms = (time.monotonic() - start_time) * 1000

    if process.returncode != 0:
        pipeline_metrics.inc_tool_error(ctx.tool_name, "exit_code")
        pipeline_metrics.record_latency(ctx.tool_name, "error", elapsed_ms)
        message = stderr.decode("utf-8", errors="replace").strip()[:500]
        raise ToolExecutionError(
            f"Tool {ctx.tool_name} exited with {process.returncode}: {message}"
        )

    pipeline_metrics.record_latency(ctx.tool_name, "success", elapsed_ms)
    return stdout
