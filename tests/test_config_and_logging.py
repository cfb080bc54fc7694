"""
Config loading and logging setup tests.

config.json is created with defaults on first load, user values survive a
merge with new defaults and a corrupt file falls back to defaults.
"""

import json
import logging
import sys

import pytest

from zkledger.anomaly_detector import AnomalyDetector
from zkledger.utils import constants
from zkledger.utils.config import DEFAULT_CONFIG, load_config, update_config, resolve_path
from zkledger.utils.logger import get_run_context, logger, setup_logging


class TestConfig:
    def test_first_load_writes_defaults(self, tmp_path):
        path = tmp_path / 'configs' / 'config.json'
        config = load_config(path)
        assert config == DEFAULT_CONFIG
        assert json.loads(path.read_text()) == DEFAULT_CONFIG

    def test_default_path_from_constants(self):
        load_config()
        assert constants.CONFIG_FILE.exists()

    def test_user_values_merged_with_defaults(self, tmp_path):
        path = tmp_path / 'config.json'
        path.write_text(json.dumps({'anomaly': {'amount_z_threshold': 3.0}}))
        config = load_config(path)
        assert config['anomaly']['amount_z_threshold'] == 3.0
        assert config['anomaly']['category_z_threshold'] == 2.0
        assert config['encryption']['kdf_iterations'] == 100000
        saved = json.loads(path.read_text())
        assert 'logging' in saved

    def test_corrupt_file_uses_defaults(self, tmp_path):
        path = tmp_path / 'config.json'
        path.write_text('{oops')
        assert load_config(path) == DEFAULT_CONFIG
        assert path.read_text() == '{oops'

    def test_non_object_uses_defaults(self, tmp_path):
        path = tmp_path / 'config.json'
        path.write_text('[1, 2]')
        assert load_config(path) == DEFAULT_CONFIG

    def test_defaults_not_mutated(self, tmp_path):
        config = load_config(tmp_path / 'config.json')
        config['anomaly']['amount_z_threshold'] = 99
        assert DEFAULT_CONFIG['anomaly']['amount_z_threshold'] == 2.5

    def test_update_config(self, tmp_path):
        path = tmp_path / 'config.json'
        update_config('anomaly', 'spike_ratio_threshold', 2.0, path)
        assert load_config(path)['anomaly']['spike_ratio_threshold'] == 2.0

    def test_update_unknown_section(self, tmp_path):
        with pytest.raises(KeyError):
            update_config('nope', 'x', 1, tmp_path / 'config.json')

    def test_resolve_path(self, tmp_path):
        assert resolve_path(None, tmp_path / 'a.db') == tmp_path / 'a.db'
        assert resolve_path(str(tmp_path / 'b.db'), tmp_path / 'a.db') == tmp_path / 'b.db'

    def test_detector_reads_anomaly_section(self, tmp_path):
        path = tmp_path / 'config.json'
        update_config('anomaly', 'min_batch_size', 3, path)
        detector = AnomalyDetector(load_config(path)['anomaly'])
        assert detector.min_batch_size == 3


class TestLogging:
    def teardown_method(self):
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        logger.setLevel(logging.INFO)

    def test_setup_creates_log_file(self):
        setup_logging('test')
        logger.info('[TEST] hello')
        assert get_run_context() == 'test'
        logs = list(constants.LOG_DIR.glob('*.test.log'))
        assert len(logs) == 1
        assert '[test]: [TEST] hello' in logs[0].read_text(encoding='utf-8')

    def test_console_only(self):
        setup_logging('cli', level='WARNING', log_to_file=False)
        assert not constants.LOG_DIR.exists()
        assert logger.level == logging.WARNING
        assert len(logger.handlers) == 1

    def test_handlers_replaced_not_stacked(self):
        setup_logging('test', log_to_file=False)
        setup_logging('test', log_to_file=False)
        assert len(logger.handlers) == 1

    def test_default_level_resets_previous_level(self):
        setup_logging('cli', level='WARNING', log_to_file=False)
        setup_logging('test')
        assert logger.level == logging.INFO
        logger.info('[TEST] after reset')
        logs = list(constants.LOG_DIR.glob('*.test.log'))
        assert 'after reset' in logs[0].read_text(encoding='utf-8')

    def test_console_stream_selectable(self, capsys):
        setup_logging('cli', log_to_file=False, stream=sys.stderr)
        logger.info('[TEST] to stderr')
        captured = capsys.readouterr()
        assert '[TEST] to stderr' in captured.err
        assert captured.out == ''
