"""
Unit tests for branchpromote.config module
"""
import unittest
import tempfile
import os
import shutil
import json
from pathlib import Path
from unittest.mock import patch

import toml
import yaml

from branchpromote.config import (
    apply_env_overrides,
    get_config_path,
    get_default_config,
    load_config,
    merge_configs,
    save_config,
)
from branchpromote.exit_codes import CONFIG_ERROR, ConfigError


class ConfigTestCase(unittest.TestCase):
    """Isolated HOME, working directory and environment."""

    def setUp(self):
        """Set up test environment"""
        self.temp_dir = tempfile.mkdtemp()
        self.home = Path(self.temp_dir) / 'home'
        self.work = Path(self.temp_dir) / 'work'
        self.home.mkdir()
        self.work.mkdir()

        env = {k: v for k, v in os.environ.items() if not k.startswith('BRANCHPROMOTE_')}
        env['HOME'] = str(self.home)
        self.env_patch = patch.dict(os.environ, env, clear=True)
        self.env_patch.start()

        self.original_cwd = os.getcwd()
        os.chdir(self.work)

    def tearDown(self):
        """Clean up test environment"""
        os.chdir(self.original_cwd)
        self.env_patch.stop()
        shutil.rmtree(self.temp_dir)

    def write_home_config(self, name, text):
        config_dir = self.home / '.branchpromote'
        config_dir.mkdir(exist_ok=True)
        path = config_dir / name
        path.write_text(text)
        return path


class TestDefaults(ConfigTestCase):

    def test_get_default_config(self):
        """Test default configuration structure"""
        config = get_default_config()

        for section in ('general', 'automation', 'image', 'rules', 'commands', 'scan', 'deploy', 'git', 'logging'):
            self.assertIn(section, config)

        self.assertEqual(config['general']['default_branch'], 'dev')
        self.assertEqual(config['general']['sequence_env'], 'BUILD_NUMBER')
        self.assertFalse(config['scan']['fail_on_findings'])
        self.assertEqual([r['match'] for r in config['rules']],
                         ['dev', 'uat', 'main', 'master', 'release/*', 'hotfix/*'])

    def test_load_config_no_file(self):
        """Test loading config when no file exists"""
        self.assertEqual(load_config(), get_default_config())

    def test_default_path_for_saving(self):
        self.assertEqual(get_config_path(), self.home / '.branchpromote' / 'config.json')


class TestLoading(ConfigTestCase):

    def test_load_json_from_home(self):
        self.write_home_config('config.json', json.dumps({
            'automation': {'email': 'jenkins@corp.example'},
            'logging': {'level': 'DEBUG'},
        }))

        config = load_config()

        self.assertEqual(config['automation']['email'], 'jenkins@corp.example')
        # Merged, not replaced
        self.assertEqual(config['automation']['name'], 'ci-bot')
        self.assertEqual(config['logging']['level'], 'DEBUG')

    def test_load_toml(self):
        self.write_home_config('config.toml', '[image]\nregistry = "registry.example.com"\n')
        config = load_config()
        self.assertEqual(config['image']['registry'], 'registry.example.com')

    def test_load_yaml(self):
        self.write_home_config('config.yaml', yaml.safe_dump({
            'rules': [{
                'match': 'trunk',
                'environment': 'prod',
                'credential_set': 'kc-prod',
                'descriptor': 'deploy/prod.yaml',
            }],
        }))

        config = load_config()

        # Rule tables replace the defaults
        self.assertEqual(len(config['rules']), 1)
        self.assertEqual(config['rules'][0]['match'], 'trunk')

    def test_workspace_config_wins_over_home(self):
        self.write_home_config('config.json', json.dumps({'deploy': {'resource': 'from-home'}}))
        (self.work / '.branchpromote.json').write_text(json.dumps({'deploy': {'resource': 'from-workspace'}}))

        self.assertEqual(load_config()['deploy']['resource'], 'from-workspace')

    def test_env_var_path_wins(self):
        (self.work / '.branchpromote.json').write_text(json.dumps({'deploy': {'resource': 'from-workspace'}}))
        explicit = Path(self.temp_dir) / 'ci.yaml'
        explicit.write_text('deploy:\n  resource: from-env\n')

        with patch.dict(os.environ, {'BRANCHPROMOTE_CONFIG': str(explicit)}):
            self.assertEqual(get_config_path(), explicit)
            self.assertEqual(load_config()['deploy']['resource'], 'from-env')

    def test_explicit_path(self):
        path = Path(self.temp_dir) / 'pipeline.json'
        path.write_text(json.dumps({'general': {'remote': 'upstream'}}))
        self.assertEqual(load_config(path)['general']['remote'], 'upstream')

    def test_explicit_missing_path(self):
        with self.assertRaises(ConfigError):
            load_config(Path(self.temp_dir) / 'missing.json')

    def test_malformed_file_raises(self):
        self.write_home_config('config.json', '{"general": ')
        with self.assertRaises(ConfigError) as cm:
            load_config()
        self.assertEqual(cm.exception.exit_code, CONFIG_ERROR)

    def test_non_mapping_file_raises(self):
        self.write_home_config('config.yaml', '- just\n- a list\n')
        with self.assertRaises(ConfigError):
            load_config()


class TestEnvOverrides(ConfigTestCase):

    def test_boolean_override(self):
        with patch.dict(os.environ, {'BRANCHPROMOTE_SCAN_FAIL_ON_FINDINGS': 'true'}):
            config = load_config()
        self.assertIs(config['scan']['fail_on_findings'], True)

    def test_integer_override(self):
        with patch.dict(os.environ, {'BRANCHPROMOTE_DEPLOY_ROLLOUT_TIMEOUT_SECONDS': '600'}):
            config = apply_env_overrides(get_default_config())
        self.assertEqual(config['deploy']['rollout_timeout_seconds'], 600)

    def test_string_override(self):
        with patch.dict(os.environ, {'BRANCHPROMOTE_AUTOMATION_EMAIL': 'bot@corp.example'}):
            config = apply_env_overrides(get_default_config())
        self.assertEqual(config['automation']['email'], 'bot@corp.example')

    def test_unknown_key_ignored(self):
        with patch.dict(os.environ, {'BRANCHPROMOTE_NOPE_VALUE': 'x'}):
            config = apply_env_overrides(get_default_config())
        self.assertNotIn('nope', config)


class TestSaveAndMerge(ConfigTestCase):

    def test_save_json_default_location(self):
        written = save_config({'deploy': {'resource': 'api'}})
        self.assertEqual(written, self.home / '.branchpromote' / 'config.json')
        self.assertEqual(json.loads(written.read_text()), {'deploy': {'resource': 'api'}})

    def test_save_toml(self):
        path = self.work / '.branchpromote.toml'
        save_config({'image': {'registry': 'r.example.com'}}, path)
        self.assertEqual(toml.load(path), {'image': {'registry': 'r.example.com'}})

    def test_save_then_load_yaml(self):
        path = self.work / '.branchpromote.yaml'
        save_config(get_default_config(), path)
        self.assertEqual(load_config(path), get_default_config())

    def test_merge_configs_nested(self):
        merged = merge_configs({'a': {'b': 1, 'c': 2}}, {'a': {'c': 3}, 'd': 4})
        self.assertEqual(merged, {'a': {'b': 1, 'c': 3}, 'd': 4})

    def test_merge_configs_replaces_lists(self):
        merged = merge_configs({'rules': [1, 2]}, {'rules': [3]})
        self.assertEqual(merged['rules'], [3])


if __name__ == '__main__':
    unittest.main()
