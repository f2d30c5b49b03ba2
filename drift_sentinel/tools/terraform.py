"""
Terragrunt plan source.

Invokes the provisioning tool in plan mode for one (environment, region)
pair and returns its raw output together with its exit code. The raw
output is written to a timestamped artifact before returning so that a
later failure never loses the evidence.
"""

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from ..config.settings import REGION_PATTERN
from ..errors import ConfigurationError, ExternalToolError

logger = logging.getLogger(__name__)

# Exit codes of terraform/terragrunt with -detailed-exitcode
PLAN_NO_CHANGES = 0
PLAN_CHANGES = 2

# Lines of tool output quoted in error messages
ERROR_TAIL_LINES = 40


@dataclass(frozen=True)
class PlanResult:
    """Raw output of one plan invocation."""
    raw_output: bytes
    exit_code: int
    artifact_path: str

    @property
    def changes_detected(self) -> bool:
        return self.exit_code == PLAN_CHANGES

    @property
    def failed(self) -> bool:
        return self.exit_code not in (PLAN_NO_CHANGES, PLAN_CHANGES)


def tail_output(output: bytes, lines: int = ERROR_TAIL_LINES) -> str:
    text = output.decode("utf-8", errors="replace") if output else ""
    return "\n".join(text.splitlines()[-lines:])


class TerragruntPlanSource:
    """
    Plan source backed by the terragrunt CLI.

    In text mode it runs ``terragrunt run-all plan`` over the environment's
    stack. In JSON mode it saves a plan file and renders it with
    ``terragrunt show -json`` so the change extractor can read the
    structured document.
    """

    def __init__(self, config):
        """
        Initialize the plan source.

        Args:
            config: Application configuration
        """
        self.config = config
        self.output_dir = Path(config.drift_output_dir)

    def validate_target(self, environment: str, region: str) -> Path:
        """
        Check the target before any external call.

        Returns:
            Working directory of the environment's stack

        Raises:
            ConfigurationError: for unknown environments, malformed regions or
                a missing stack directory
        """
        allowed = self.config.allowed_environments
        if environment not in allowed:
            raise ConfigurationError(
                f"Invalid environment: {environment}. Must be one of: {', '.join(allowed)}"
            )

        if not REGION_PATTERN.match(region or ""):
            raise ConfigurationError(f"Invalid AWS region: {region}")

        working_dir = self.config.get_environment_dir(environment, region)
        if not working_dir.is_dir():
            raise ConfigurationError(f"Environment directory not found: {working_dir}")

        return working_dir

    def check_prerequisites(self) -> str:
        """
        Ensure the provisioning tool is installed.

        Returns:
            Resolved path of the executable

        Raises:
            ExternalToolError: when the executable cannot be found
        """
        executable = shutil.which(self.config.plan_command)
        if executable is None:
            raise ExternalToolError(f"{self.config.plan_command} is not installed or not on PATH")
        return executable

    def artifact_path(self, environment: str, region: str, timestamp: datetime) -> Path:
        stamp = timestamp.astimezone(timezone.utc).strftime("%Y%m%d_%H%M%S")
        extension = "json" if self.config.use_json_plan else "txt"
        return self.output_dir / f"{environment}-{region}-plan-{stamp}.{extension}"

    def run(self, environment: str, region: str, timestamp: Optional[datetime] = None) -> PlanResult:
        """
        Run the plan and persist its output.

        Args:
            environment: Deployment environment
            region: AWS region
            timestamp: Run timestamp used to name the artifact

        Returns:
            PlanResult carrying the tool's exit code unchanged

        Raises:
            ConfigurationError: invalid target, raised before the tool is invoked
            ExternalToolError: tool missing, timed out or interrupted
        """
        timestamp = timestamp or datetime.now(timezone.utc)
        working_dir = self.validate_target(environment, region)
        self.check_prerequisites()

        self.output_dir.mkdir(parents=True, exist_ok=True)
        artifact = self.artifact_path(environment, region, timestamp)

        logger.info(f"Running drift detection for {environment}/{region} in {working_dir}")

        if self.config.use_json_plan:
            plan_file = artifact.with_suffix(".tfplan").resolve()
            output, exit_code = self._execute(self._plan_args(plan_file), working_dir, artifact)
            if exit_code in (PLAN_NO_CHANGES, PLAN_CHANGES):
                show_output, show_exit_code = self._execute(
                    self._show_args(plan_file), working_dir, artifact, merge_stderr=False
                )
                if show_exit_code != 0:
                    self._write_artifact(artifact, output + show_output)
                    raise ExternalToolError(
                        f"{self.config.plan_command} show exited with code {show_exit_code}",
                        exit_code=show_exit_code,
                        output=tail_output(show_output),
                        artifact_path=str(artifact),
                    )
                output = show_output
        else:
            output, exit_code = self._execute(self._run_all_plan_args(), working_dir, artifact)

        self._write_artifact(artifact, output)
        logger.info(f"Plan finished with exit code {exit_code}, output saved to {artifact}")

        return PlanResult(raw_output=output, exit_code=exit_code, artifact_path=str(artifact))

    def _run_all_plan_args(self) -> List[str]:
        return [
            self.config.plan_command, "run-all", "plan",
            "--terragrunt-non-interactive",
            "--detailed-exitcode",
        ]

    def _plan_args(self, plan_file: Path) -> List[str]:
        return [
            self.config.plan_command, "plan",
            "--terragrunt-non-interactive",
            "-detailed-exitcode",
            "-input=false",
            f"-out={plan_file}",
        ]

    def _show_args(self, plan_file: Path) -> List[str]:
        return [
            self.config.plan_command, "show",
            "--terragrunt-non-interactive",
            "-json",
            str(plan_file),
        ]

    def _environment(self) -> dict:
        env = dict(os.environ)
        if self.config.aws_profile:
            env["AWS_PROFILE"] = self.config.aws_profile
        env["TF_IN_AUTOMATION"] = "1"
        return env

    def _execute(self, args: List[str], working_dir: Path, artifact: Path, merge_stderr: bool = True):
        logger.debug(f"Executing: {' '.join(args)}")
        try:
            completed = subprocess.run(
                args,
                cwd=str(working_dir),
                env=self._environment(),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT if merge_stderr else subprocess.PIPE,
                timeout=self.config.plan_timeout,
                check=False,
            )
        except FileNotFoundError:
            raise ExternalToolError(f"{args[0]} is not installed or not on PATH")
        except subprocess.TimeoutExpired as e:
            output = e.output or b""
            self._write_artifact(artifact, output)
            raise ExternalToolError(
                f"{args[0]} did not finish within {self.config.plan_timeout} seconds",
                output=tail_output(output),
                artifact_path=str(artifact),
            )
        except KeyboardInterrupt:
            # subprocess.run kills the child before re-raising
            raise ExternalToolError(f"{args[0]} was interrupted before completing")

        output = completed.stdout or b""
        if not merge_stderr and completed.stderr:
            logger.debug(completed.stderr.decode("utf-8", errors="replace"))
            if completed.returncode != 0:
                output += completed.stderr
        if completed.returncode not in (PLAN_NO_CHANGES, PLAN_CHANGES):
            logger.error(f"{args[0]} {args[1]} exited with code {completed.returncode}")
        return output, completed.returncode

    def _write_artifact(self, path: Path, output: bytes) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path.write_bytes(output)
