import subprocess
from pathlib import Path

import pytest
import yaml

from sshman.core.executor.worker import ExecutionError, Executor
from sshman.core.intent.models import load_config
from sshman.core.planner import compile_config_to_plan

DATA = Path(__file__).parent / 'data'


def make_sample_plan():
    return compile_config_to_plan(load_config(DATA / 'config.yml'), name='test-plan')


class FakeRun:
    def __init__(self, returncode=0):
        self.returncode = returncode
        self.calls = []
        self.playbooks = []

    def __call__(self, cmd, **kwargs):
        self.calls.append(cmd)
        path = Path(cmd[-1])
        self.playbooks.append(yaml.safe_load(path.read_text(encoding='utf-8')))
        return subprocess.CompletedProcess(cmd, self.returncode)


def test_executor_runs_playbook_and_cleans_up(tmp_path: Path, monkeypatch):
    fake = FakeRun()
    monkeypatch.setattr('sshman.core.executor.worker.subprocess.run', fake)
    executor = Executor(tmp_dir=tmp_path)

    assert executor.run_plan(make_sample_plan(), ['-i', 'hosts.ini', '--check']) == 0

    [cmd] = fake.calls
    assert cmd[:4] == ['ansible-playbook', '-i', 'hosts.ini', '--check']
    assert cmd[-1].endswith('.yml')
    assert fake.playbooks[0][0]['name'] == 'Create groups.'
    assert list(tmp_path.iterdir()) == []


def test_executor_relays_exit_code(tmp_path: Path, monkeypatch):
    monkeypatch.setattr('sshman.core.executor.worker.subprocess.run', FakeRun(returncode=2))
    assert Executor(tmp_dir=tmp_path).run_plan(make_sample_plan()) == 2
    assert list(tmp_path.iterdir()) == []


def test_executor_command_may_carry_arguments(tmp_path: Path):
    executor = Executor(playbook_command='uv run ansible-playbook', tmp_dir=tmp_path)
    assert executor.command_for(Path('/tmp/p.yml'), ['-K']) == ['uv', 'run', 'ansible-playbook', '-K', '/tmp/p.yml']


def test_missing_engine_raises(tmp_path: Path):
    executor = Executor(playbook_command=str(tmp_path / 'no-such-ansible-playbook'), tmp_dir=tmp_path)
    with pytest.raises(ExecutionError):
        executor.run_plan(make_sample_plan())
    assert list(tmp_path.iterdir()) == []


def test_interrupt_still_cleans_up(tmp_path: Path, monkeypatch):
    def interrupted(cmd, **kwargs):
        raise KeyboardInterrupt

    monkeypatch.setattr('sshman.core.executor.worker.subprocess.run', interrupted)
    with pytest.raises(KeyboardInterrupt):
        Executor(tmp_dir=tmp_path).run_plan(make_sample_plan())
    assert list(tmp_path.iterdir()) == []


@pytest.mark.parametrize('command', ['', '   ', "ansible-playbook 'unterminated"])
def test_unusable_engine_command_rejected(tmp_path: Path, command):
    with pytest.raises(ExecutionError):
        Executor(playbook_command=command, tmp_dir=tmp_path)
    assert list(tmp_path.iterdir()) == []
