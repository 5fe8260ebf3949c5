"""
A tool running bash scripts.

Example:
    ```python
    from lmo.tools import ShellTool, ShellInput

    shell = ShellTool()
    print(shell.run(ShellInput(bash_script='echo "Hello from $SHELL!"')))
    model = create_chat_model(settings, tools=[shell.tool()])
    ```

The scripts run with the privileges of the process. A confirmation
callback may be given, which receives the script and returns False to
refuse running it.
"""

import subprocess
from collections.abc import Callable

from pydantic import BaseModel, Field

from lmo.language_models.tools import Tool
from lmo.utils import logger as default_logger
from lmo.utils.logging import LoggerBase

SHELL_TOOL_DESCRIPTION = (
    "A tool that runs a given bash script and returns its output."
)


class ShellInput(BaseModel):
    bash_script: str = Field(description="the bash script to run")


class ShellTool:
    """Runs bash scripts in a subprocess."""

    def __init__(
        self,
        *,
        shell: str = "bash",
        timeout: float | None = 60.0,
        confirm: Callable[[str], bool] | None = None,
        logger: LoggerBase = default_logger,
    ) -> None:
        self.shell = shell
        self.timeout = timeout
        self.confirm = confirm
        self.logger = logger

    def run(self, script: ShellInput) -> str:
        """Run the script and return its standard output. A failed
        script returns the error and the standard error."""
        if self.confirm is not None and not self.confirm(script.bash_script):
            return "script not allowed by the user"

        try:
            completed = subprocess.run(
                [self.shell, "-c", script.bash_script],
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            self.logger.warning(
                f"Shell script timed out after {self.timeout} seconds"
            )
            return f"failed to run script: timed out after {self.timeout} seconds"
        except OSError as e:
            self.logger.error(f"Could not start {self.shell}: {e}")
            return f"failed to run script: {e}"

        if completed.returncode != 0:
            return (
                f"failed to run script: exit status {completed.returncode}, "
                f"stderr: {completed.stderr}"
            )
        return completed.stdout

    def tool(self, name: str = "bash") -> Tool:
        """The tool to register with a chat model."""
        return Tool(
            name=name,
            description=SHELL_TOOL_DESCRIPTION,
            args_model=ShellInput,
            fn=self.run,
        )
