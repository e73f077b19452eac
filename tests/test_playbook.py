from pathlib import Path

import pytest
import yaml

from sshman.core.intent.models import AccessEntry, Role, SSHConfig, User, load_config
from sshman.core.persistence.playbook import dump_playbook, export_plan, operation_to_tasks, plan_to_playbook
from sshman.core.planner import (
    CollectAuthorizedKeys,
    CompilationError,
    EnsureAccount,
    RecordDesiredKeys,
    compile_audit_plan,
    compile_config_to_plan,
)

DATA = Path(__file__).parent / 'data'


def make_sample_plan():
    return compile_config_to_plan(load_config(DATA / 'config.yml'))


def test_playbook_output():
    actual = yaml.safe_load(dump_playbook(make_sample_plan()))
    expected = yaml.safe_load((DATA / 'playbook.yml').read_text(encoding='utf-8'))
    assert actual == expected


def test_dump_keeps_play_key_order():
    text = dump_playbook(make_sample_plan())
    assert text.startswith('- name: Create groups.\n  hosts: all\n')
    # multi-line sudoers content is written as a literal block
    assert 'content: |\n' in text


def test_module_booleans_are_strings():
    [task] = operation_to_tasks(EnsureAccount(name='root2', groups=('root',), uid_zero=True, non_unique=True))
    args = task['ansible.builtin.user']
    assert args['uid'] == '0'
    assert args['non_unique'] == 'true'
    assert args['append'] == 'true'
    assert args['password'] == '*'
    assert 'seuser' not in args


def test_account_without_groups_leaves_membership_alone():
    [task] = operation_to_tasks(EnsureAccount(name='joe'))
    assert 'groups' not in task['ansible.builtin.user']
    assert 'append' not in task['ansible.builtin.user']


def test_blocked_scope_ignores_errors():
    config = SSHConfig(users=(User('gone', ('ssh-ed25519 AAAA gone@x',), (AccessEntry('all', Role.BLOCKED),)),))
    playbook = plan_to_playbook(compile_config_to_plan(config))
    accounts, keys = playbook[1], playbook[2]
    assert accounts['tasks'] == []
    [task] = keys['tasks']
    assert task['ignore_errors'] is True
    assert task['ansible.posix.authorized_key']['state'] == 'absent'


def test_desired_keys_fact_is_valid_literal():
    [task] = operation_to_tasks(RecordDesiredKeys(user='joe', keys=('ssh-ed25519 A "q"', 'ssh-rsa B')))
    expr = task['ansible.builtin.set_fact']['desired_pubkeys']
    assert expr == (
        '{{ desired_pubkeys | default({}) | combine('
        '{"joe": ["ssh-ed25519 A \\"q\\"", "ssh-rsa B"]}) }}'
    )


def test_audit_playbook():
    playbook = plan_to_playbook(compile_audit_plan(load_config(DATA / 'config.yml')))
    assert all(play['become'] is False for play in playbook)
    collect = playbook[-2]
    modules = [next(k for k in t if k.startswith('ansible.')) for t in collect['tasks']]
    assert modules == [
        'ansible.builtin.getent',
        'ansible.builtin.set_fact',
        'ansible.builtin.slurp',
        'ansible.builtin.set_fact',
    ]
    slurp = collect['tasks'][2]
    assert slurp['become'] is True
    assert slurp['ignore_errors'] is True
    report = playbook[-1]['tasks'][-1]
    assert report['failed_when'] == 'pubkey_diff | default({}) | length > 0'


def test_collect_operation_expands_to_several_tasks():
    assert len(operation_to_tasks(CollectAuthorizedKeys())) == 4


def test_unknown_operation_rejected():
    with pytest.raises(CompilationError):
        operation_to_tasks(object())


def test_export_plan_writes_file(tmp_path: Path):
    target = tmp_path / 'out' / 'site.yml'
    export_plan(make_sample_plan(), target)
    assert yaml.safe_load(target.read_text(encoding='utf-8')) == yaml.safe_load(
        (DATA / 'playbook.yml').read_text(encoding='utf-8'))
    assert [p.name for p in target.parent.iterdir()] == ['site.yml']


def test_export_plan_cleans_up_on_failure(tmp_path: Path, monkeypatch):
    target = tmp_path / 'site.yml'
    target.write_text('old', encoding='utf-8')

    def fail_replace(src, dst):
        raise OSError('disk full')

    monkeypatch.setattr('sshman.core.persistence.playbook.os.replace', fail_replace)
    with pytest.raises(OSError):
        export_plan(make_sample_plan(), target)
    assert target.read_text(encoding='utf-8') == 'old'
    assert [p.name for p in tmp_path.iterdir()] == ['site.yml']
