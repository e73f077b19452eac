import logging
import os
import shlex
import subprocess
import tempfile
from pathlib import Path
from typing import Optional, Sequence

from ..persistence.playbook import dump_playbook
from ..planner.models import Plan

logger = logging.getLogger(__name__)


class ExecutionError(Exception):
    """The playbook engine could not be started."""


class Executor:
    """Runs a Plan with `ansible-playbook`.

    The playbook is written to a temporary file that is removed once the
    engine exits, whatever the outcome. The engine's exit code is returned
    unchanged.
    """

    def __init__(self, playbook_command: str = 'ansible-playbook', tmp_dir: Optional[Path] = None):
        try:
            self.playbook_command = shlex.split(playbook_command)
        except ValueError as exc:
            raise ExecutionError(f"Cannot parse playbook command {playbook_command!r}: {exc}") from exc
        if not self.playbook_command:
            raise ExecutionError("Playbook command is empty")
        self.tmp_dir = tmp_dir

    def command_for(self, playbook_path: Path, extra_args: Sequence[str] = ()) -> list:
        return [*self.playbook_command, *extra_args, str(playbook_path)]

    def run_plan(self, plan: Plan, extra_args: Sequence[str] = ()) -> int:
        text = dump_playbook(plan)
        fd, tmp = tempfile.mkstemp(prefix='sshman-', suffix='.yml', dir=self.tmp_dir)
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(text)
            cmd = self.command_for(Path(tmp), extra_args)
            logger.info('Starting executor for plan %s: %s', plan.name, shlex.join(cmd))
            try:
                result = subprocess.run(cmd)
            except OSError as exc:
                raise ExecutionError(f"Cannot run {self.playbook_command[0]}: {exc}") from exc
        finally:
            Path(tmp).unlink(missing_ok=True)

        if result.returncode == 0:
            logger.info('Plan %s execution finished', plan.name)
        else:
            logger.error('Plan %s execution failed with exit code %s', plan.name, result.returncode)
        return result.returncode
