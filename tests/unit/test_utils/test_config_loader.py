"""
tests/unit/test_utils/test_config_loader.py

Unit tests for YAML configuration loading.
"""

import sys
from pathlib import Path

import yaml

# Add project root to Python path for imports
project_root = Path(__file__).parent.parent.parent.parent
sys.path.append(str(project_root))
sys.path.append(str(project_root / "src"))

from slippage_guard.utils.config_loader import ConfigLoader, get_slippage_setting

# ============================================
# TEST CONFIG LOADER
# ============================================

class TestConfigLoader:
    """Test loading, defaults and environment substitution against a temporary config dir"""

    def write_config(self, config_dir: Path, data: dict):
        with open(config_dir / "slippage_config.yaml", 'w', encoding='utf-8') as f:
            yaml.dump(data, f)

    def test_defaults_written_when_missing(self, tmp_path):
        loader = ConfigLoader(config_dir=tmp_path)

        assert (tmp_path / "slippage_config.yaml").exists()
        assert (tmp_path / "logging.yaml").exists()
        assert loader.get('slippage_config', 'slippage.defaults.max_slippage_percent') == 0.5

    def test_reads_existing_file(self, tmp_path):
        self.write_config(tmp_path, {'slippage': {'reports': {'max_reports_in_memory': 50}}})

        loader = ConfigLoader(config_dir=tmp_path)

        assert loader.get('slippage_config', 'slippage.reports.max_reports_in_memory') == 50
        assert loader.get('slippage_config', 'slippage.defaults.max_slippage_percent', 'n/a') == 'n/a'

    def test_environment_substitution(self, tmp_path, monkeypatch):
        monkeypatch.setenv('SG_TEST_LEVEL', 'STRICT')
        self.write_config(tmp_path, {'slippage': {'defaults': {
            'tolerance_level': '${SG_TEST_LEVEL}',
            'max_slippage_percent': '${SG_TEST_MISSING:0.25}',
        }}})

        loader = ConfigLoader(config_dir=tmp_path)

        assert loader.get('slippage_config', 'slippage.defaults.tolerance_level') == 'STRICT'
        assert loader.get('slippage_config', 'slippage.defaults.max_slippage_percent') == '0.25'

    def test_missing_required_section_uses_defaults(self, tmp_path):
        self.write_config(tmp_path, {'other': 1})

        loader = ConfigLoader(config_dir=tmp_path)

        assert loader.get('slippage_config', 'slippage.order_sizing.min_chunk_fraction') == 0.1

    def test_invalid_yaml_uses_defaults(self, tmp_path):
        (tmp_path / "slippage_config.yaml").write_text("slippage: [unclosed", encoding='utf-8')

        loader = ConfigLoader(config_dir=tmp_path)

        assert loader.get('slippage_config', 'slippage.reports.max_reports_in_memory') == 1000

    def test_unknown_config_is_empty(self, tmp_path):
        assert ConfigLoader(config_dir=tmp_path).get_config('missing') == {}

    def test_config_dir_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv('SLIPPAGE_GUARD_CONFIG_DIR', str(tmp_path))
        loader = ConfigLoader()

        assert loader.config_dir == tmp_path

# ============================================
# TEST PROJECT CONFIGURATION
# ============================================

class TestProjectConfiguration:
    """Test the shipped config/slippage_config.yaml"""

    def test_default_limits(self):
        assert get_slippage_setting('defaults.max_slippage_percent') == 0.5
        assert get_slippage_setting('defaults.tolerance_level') == 'MODERATE'

    def test_order_sizing_settings(self):
        assert get_slippage_setting('order_sizing.min_chunk_fraction') == 0.1
        assert get_slippage_setting('order_sizing.convergence_fraction') == 0.05

    def test_missing_setting_default(self):
        assert get_slippage_setting('does.not.exist', 42) == 42
