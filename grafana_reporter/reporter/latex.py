import logging
import subprocess
from pathlib import Path
from typing import Optional, Sequence

from .config import COMPILER_COMMAND, COMPILER_LOG_TAIL, COMPILER_PASSES
from .errors import CompileError

logger = logging.getLogger(__name__)


def tail(text: str, limit: int = COMPILER_LOG_TAIL) -> str:
    if len(text) <= limit:
        return text
    return f"... (last {limit} chars)\n{text[-limit:]}"


def read_log_tail(log_path: Path, limit: int = COMPILER_LOG_TAIL) -> str:
    try:
        return tail(log_path.read_text(encoding="utf-8", errors="replace"), limit)
    except OSError as exc:
        return f"<log unavailable: {exc}>"


class LatexCompiler:
    """
    Runs the TeX engine non-interactively inside a report workspace.
    Two passes so references and the table of contents resolve. Each pass
    overwrites the log file with its combined stdout/stderr.
    """

    def __init__(
        self,
        command: Sequence[str] = COMPILER_COMMAND,
        passes: int = COMPILER_PASSES,
        timeout: Optional[float] = None,
    ):
        self.command = tuple(command)
        self.passes = passes
        self.timeout = timeout

    def compile(self, workspace: Path, tex_name: str, log_path: Path) -> None:
        args = [*self.command, tex_name]
        for current in range(1, self.passes + 1):
            logger.info("Running LaTeX pass %d: %s (dir %s)", current, " ".join(args), workspace)
            try:
                proc = subprocess.run(
                    args,
                    cwd=workspace,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    timeout=self.timeout,
                    check=False,
                )
            except (OSError, subprocess.TimeoutExpired) as exc:
                raise CompileError(
                    f"error running LaTeX (pass {current}): {exc}", stage="compile", log_path=log_path
                ) from exc

            output = proc.stdout.decode("utf-8", errors="replace")
            try:
                log_path.write_text(output, encoding="utf-8")
            except OSError as exc:
                logger.warning("Failed to write LaTeX output log to %s: %s", log_path, exc)

            if proc.returncode != 0:
                raise CompileError(
                    f"error running LaTeX (pass {current}): exit status {proc.returncode}. "
                    f"Output logged to {log_path}\n"
                    f"-- LaTeX Output Tail --\n{tail(output)}\n-- LaTeX Output End --",
                    stage="compile",
                    log_path=log_path,
                )
            logger.info("LaTeX pass %d completed.", current)
