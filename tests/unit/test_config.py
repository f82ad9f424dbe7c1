"""Tests for configuration loading and analysis options."""

import json

import pytest

from config.config_loader import (
    DEFAULT_SETTINGS, get_layer_definitions, load_analysis_settings, load_config
)
from core.errors import ConfigurationError
from core.layer_processor import AnalysisConfig, AnalysisRules
from core.models import AreaType


class TestLoadConfig:
    def test_bundled_config(self):
        config = load_config()
        keys = [layer['key'] for layer in config['layers']]

        assert len(keys) == 14
        assert keys[0] == 'localidades'
        assert keys[-1] == 'rutaWixarika'
        assert len(set(keys)) == len(keys)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / 'missing.json')

    def test_missing_layers_key(self, tmp_path):
        path = tmp_path / 'config.json'
        path.write_text(json.dumps({'settings': {}}), encoding='utf-8')
        with pytest.raises(KeyError, match="layers"):
            load_config(path)

    def test_layer_without_key(self, tmp_path):
        path = tmp_path / 'config.json'
        path.write_text(json.dumps({'settings': {}, 'layers': [{'display_name': 'X'}]}), encoding='utf-8')
        with pytest.raises(KeyError):
            load_config(path)

    def test_layer_definitions_by_key(self):
        definitions = get_layer_definitions(load_config())
        assert definitions['lenguas']['count_mode'] == 'distinct'
        assert list(definitions)[0] == 'localidades'


class TestAnalysisSettings:
    def test_defaults_fill_missing_keys(self):
        settings = load_analysis_settings({'layers': [], 'settings': {'batch_size': 10}})
        assert settings['batch_size'] == 10
        assert settings['max_areas'] == DEFAULT_SETTINGS['max_areas']

    def test_inverted_progress_span_rejected(self):
        with pytest.raises(ValueError):
            load_analysis_settings({'settings': {'progress_start': 90, 'progress_end': 10}})


class TestAnalysisRules:
    def test_bundled_config_matches_defaults(self):
        rules = AnalysisRules.from_config(load_config())
        defaults = AnalysisRules()

        assert rules.distinct_count_layers == defaults.distinct_count_layers
        assert set(rules.overlap_layers) == set(defaults.overlap_layers)
        assert rules.population_layer == 'localidades'
        assert rules.population_fields == ('POBTOT', 'POBTOTAL')

    def test_two_population_layers_rejected(self):
        config = {'layers': [
            {'key': 'a', 'population_source': True},
            {'key': 'b', 'population_source': True},
        ]}
        with pytest.raises(ConfigurationError):
            AnalysisRules.from_config(config)


class TestAnalysisConfig:
    def test_core_defaults_to_half_km(self):
        config = AnalysisConfig(area_type=AreaType.CORE)
        assert config.effective_buffer_km == 0.5

    def test_exact_ignores_buffer(self):
        config = AnalysisConfig(area_type='exact', buffer_km=2)
        assert config.area_type is AreaType.EXACT
        assert config.effective_buffer_km == 0.0

    def test_spanish_alias(self):
        assert AnalysisConfig(area_type='nucleo').area_type is AreaType.CORE

    @pytest.mark.parametrize("buffer_km", [-0.5, 'abc', float('nan')])
    def test_invalid_buffer_rejected(self, buffer_km):
        with pytest.raises(ConfigurationError):
            AnalysisConfig(area_type=AreaType.CORE, buffer_km=buffer_km)

    def test_zero_buffer_rejected_for_core(self):
        with pytest.raises(ConfigurationError):
            AnalysisConfig(area_type=AreaType.CORE, buffer_km=0)

    def test_zero_buffer_allowed_for_exact(self):
        assert AnalysisConfig(area_type=AreaType.EXACT, buffer_km=0).buffer_km == 0.0

    def test_unknown_area_type_rejected(self):
        with pytest.raises(ConfigurationError):
            AnalysisConfig(area_type='regional')

    def test_selected_layers_normalized(self):
        assert AnalysisConfig(selected_layers=[]).selected_layers is None
        assert AnalysisConfig(selected_layers=['ramsar']).selected_layers == frozenset({'ramsar'})

    def test_string_selection_rejected(self):
        with pytest.raises(ConfigurationError):
            AnalysisConfig(selected_layers='ramsar')

    def test_from_settings(self):
        config = AnalysisConfig.from_settings({'default_area_type': 'core', 'default_buffer_km': 1.5})
        assert config.area_type is AreaType.CORE
        assert config.effective_buffer_km == 1.5
