"""
CLI tests for branchpromote.

Commands are invoked in-process with click's CliRunner against a
temporary --config file. Tests check the observable contract: output,
exit codes and file effects.
"""

import json
from unittest.mock import patch

import pytest
import yaml
from click.testing import CliRunner

from branchpromote.cli import cli
from branchpromote.domain.outcome import PipelineState, PromotionContext, PromotionOutcome
from branchpromote.exit_codes import (
    COLLABORATOR_FAILED,
    CONFIG_ERROR,
    DATA_ERROR,
    DESCRIPTOR_ERROR,
    POLICY_REJECTED,
    USAGE_ERROR,
)

# CI variables that would otherwise leak the host's branch into resolution
CLEAN_ENV = {
    'BRANCH_NAME': None,
    'GIT_BRANCH': None,
    'CHANGE_BRANCH': None,
    'GITHUB_REF_NAME': None,
    'CI_COMMIT_REF_NAME': None,
    'BUILD_NUMBER': None,
    'BRANCHPROMOTE_CONFIG': None,
}

DESCRIPTOR = "spec:\n  containers:\n    - name: app\n      image: app:main-1\n"


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "branchpromote.yaml"
    path.write_text(yaml.safe_dump({
        'general': {'source_dir': str(tmp_path)},
        'image': {'registry': 'registry.example.com', 'repository': 'shop'},
    }))
    return path


def invoke(runner, config_file, *args, env=None):
    merged = dict(CLEAN_ENV)
    merged.update(env or {})
    return runner.invoke(cli, ['--config', str(config_file), *args], env=merged)


def last_json(output):
    return json.loads(output.strip().splitlines()[-1])


class TestTag:

    def test_tag(self, runner):
        result = runner.invoke(cli, ['tag', 'release/v1', '42'])
        assert result.exit_code == 0
        assert result.output.strip() == "release-v1-42"

    def test_non_positive_sequence(self, runner):
        result = runner.invoke(cli, ['tag', 'dev', '0'])
        assert result.exit_code == DATA_ERROR
        assert '"InvalidInput"' in result.output

    def test_non_integer_sequence(self, runner):
        result = runner.invoke(cli, ['tag', 'dev', 'abc'])
        assert result.exit_code == USAGE_ERROR


class TestRewrite:

    def test_rewrite_in_place(self, runner, tmp_path):
        path = tmp_path / "deployment.yaml"
        path.write_text(DESCRIPTOR)

        result = runner.invoke(cli, ['rewrite', str(path), 'shop:dev-7'])

        assert result.exit_code == 0
        data = last_json(result.output)
        assert data['previous_image'] == "app:main-1"
        assert data['changed'] is True
        assert path.read_text() == DESCRIPTOR.replace("app:main-1", "shop:dev-7")

    def test_rewrite_dry_run(self, runner, tmp_path):
        path = tmp_path / "deployment.yaml"
        path.write_text(DESCRIPTOR)

        result = runner.invoke(cli, ['rewrite', str(path), 'shop:dev-7', '--dry-run'])

        assert result.exit_code == 0
        assert "      image: shop:dev-7\n" in result.output
        assert path.read_text() == DESCRIPTOR

    def test_rewrite_unchanged(self, runner, tmp_path):
        path = tmp_path / "deployment.yaml"
        path.write_text(DESCRIPTOR)
        result = runner.invoke(cli, ['rewrite', str(path), 'app:main-1'])
        assert last_json(result.output)['changed'] is False

    def test_rewrite_malformed(self, runner, tmp_path):
        path = tmp_path / "service.yaml"
        path.write_text("kind: Service\n")

        result = runner.invoke(cli, ['rewrite', str(path), 'shop:dev-7'])

        assert result.exit_code == DESCRIPTOR_ERROR
        assert '"DescriptorMalformed"' in result.output
        assert path.read_text() == "kind: Service\n"


class TestResolveAndPlan:

    def test_resolve_from_ci_variable(self, runner, config_file):
        result = invoke(runner, config_file, 'resolve', env={'GIT_BRANCH': 'origin/hotfix/urgent-fix'})
        assert result.exit_code == 0
        assert last_json(result.output) == {'branch': 'hotfix/urgent-fix'}

    def test_resolve_explicit_wins(self, runner, config_file):
        result = invoke(runner, config_file, 'resolve', '--branch', 'uat', env={'BRANCH_NAME': 'main'})
        assert last_json(result.output)['branch'] == 'uat'

    def test_resolve_default(self, runner, config_file):
        result = invoke(runner, config_file, 'resolve')
        assert last_json(result.output)['branch'] == 'dev'

    def test_plan(self, runner, config_file):
        result = invoke(runner, config_file, 'plan', env={'BRANCH_NAME': 'hotfix/urgent-fix', 'BUILD_NUMBER': '13'})

        assert result.exit_code == 0
        data = last_json(result.output)
        assert data['decision']['environment'] == 'prod'
        assert data['decision']['descriptor_path'] == 'k8s/prod/deployment.yaml'
        assert data['tag'] == 'hotfix-urgent-fix-13'
        assert data['image'] == 'registry.example.com/shop:hotfix-urgent-fix-13'

    def test_plan_uncovered_branch(self, runner, config_file):
        result = invoke(runner, config_file, 'plan', '-b', 'feature/unlisted', '-n', '5')
        assert result.exit_code == 0
        data = last_json(result.output)
        assert data['decision']['proceed'] is False
        assert 'tag' not in data


class TestRules:

    def test_list(self, runner, config_file):
        result = invoke(runner, config_file, 'rules')
        rows = [json.loads(line) for line in result.output.strip().splitlines()]
        assert [r['match'] for r in rows] == ['dev', 'uat', 'main', 'master', 'release/*', 'hotfix/*']
        assert rows[0]['order'] == 0

    def test_pretty(self, runner, config_file):
        result = invoke(runner, config_file, 'rules', '--pretty')
        assert result.exit_code == 0
        assert 'hotfix/*' in result.output

    def test_check_clean(self, runner, config_file):
        result = invoke(runner, config_file, 'rules', '--check')
        assert result.exit_code == 0
        assert result.output.strip() == ''

    def test_check_reports_shadowed(self, runner, tmp_path):
        config = tmp_path / "shadowed.json"
        config.write_text(json.dumps({'rules': [
            {'match': 'release/*', 'environment': 'uat', 'credential_set': 'kc-uat', 'descriptor': 'u.yaml'},
            {'match': 'release/special', 'environment': 'prod', 'credential_set': 'kc-prod', 'descriptor': 'p.yaml'},
        ]}))

        result = invoke(runner, config, 'rules', '--check')

        assert result.exit_code == DATA_ERROR
        assert 'release/special' in result.output

    def test_invalid_rule_table(self, runner, tmp_path):
        config = tmp_path / "bad.json"
        config.write_text(json.dumps({'rules': [{'match': 'dev', 'environment': 'staging',
                                                 'credential_set': 'x', 'descriptor': 'y'}]}))
        result = invoke(runner, config, 'rules')
        assert result.exit_code == DATA_ERROR


class TestRun:

    def outcome(self, state, **kwargs):
        return PromotionOutcome(
            state=state,
            reason=kwargs.pop('reason', state.value),
            history=[PipelineState.START, state],
            context=PromotionContext(branch='dev'),
            **kwargs,
        )

    @pytest.mark.parametrize("outcome_args,exit_code", [
        ({'state': PipelineState.DEPLOYED}, 0),
        ({'state': PipelineState.SKIPPED}, 0),
        ({'state': PipelineState.REJECTED, 'error_type': 'PolicyRejected'}, POLICY_REJECTED),
        ({'state': PipelineState.FAILED, 'failed_at': PipelineState.BUILDING,
          'cause': 'BUILD FAILURE', 'error_type': 'CollaboratorFailure'}, COLLABORATOR_FAILED),
        ({'state': PipelineState.FAILED, 'failed_at': PipelineState.DESCRIPTOR_UPDATED,
          'error_type': 'DescriptorMalformed'}, DESCRIPTOR_ERROR),
        ({'state': PipelineState.FAILED, 'failed_at': PipelineState.POLICY_EVALUATED,
          'error_type': 'InvalidInput'}, DATA_ERROR),
    ])
    def test_exit_codes(self, runner, config_file, outcome_args, exit_code):
        with patch('branchpromote.commands.promote.PromotionService') as service_cls:
            service_cls.return_value.run.return_value = self.outcome(**outcome_args)
            result = invoke(runner, config_file, 'run', '-b', 'dev', '-n', '3')

        assert result.exit_code == exit_code
        data = last_json(result.output)
        assert data['type'] == 'outcome'
        assert data['state'] == outcome_args['state'].value
        service_cls.return_value.run.assert_called_once_with(branch='dev', sequence_number='3')

    def test_failure_reports_cause(self, runner, config_file):
        outcome = self.outcome(PipelineState.FAILED, failed_at=PipelineState.PUSHED,
                               cause='denied: requested access', error_type='CollaboratorFailure')
        with patch('branchpromote.commands.promote.PromotionService') as service_cls:
            service_cls.return_value.run.return_value = outcome
            result = invoke(runner, config_file, 'run')

        data = last_json(result.output)
        assert data['failed_at'] == 'pushed'
        assert data['cause'] == 'denied: requested access'


class TestConfigCommands:

    def test_show(self, runner, config_file):
        result = invoke(runner, config_file, 'config', 'show')
        assert result.exit_code == 0
        config = json.loads(result.output)
        assert config['image']['repository'] == 'shop'
        assert config['general']['default_branch'] == 'dev'

    def test_show_path(self, runner, config_file):
        result = invoke(runner, config_file, 'config', 'show', '--path')
        assert json.loads(result.output) == {'config_path': str(config_file)}

    def test_init(self, runner, tmp_path):
        target = tmp_path / ".branchpromote.yaml"

        result = runner.invoke(cli, ['config', 'init', str(target)], env=CLEAN_ENV)

        assert result.exit_code == 0
        assert yaml.safe_load(target.read_text())['general']['default_branch'] == 'dev'

    def test_init_refuses_overwrite(self, runner, tmp_path):
        target = tmp_path / ".branchpromote.json"
        target.write_text("{}")

        result = runner.invoke(cli, ['config', 'init', str(target)], env=CLEAN_ENV)

        assert result.exit_code != 0
        assert target.read_text() == "{}"

    def test_missing_config_file(self, runner, tmp_path):
        result = invoke(runner, tmp_path / "missing.yaml", 'config', 'show')
        assert result.exit_code == CONFIG_ERROR
        assert '"ConfigError"' in result.output
