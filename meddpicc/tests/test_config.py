"""Tests for configuration loading and load-time validation."""
from __future__ import annotations

import pytest
import yaml

from meddpicc.config import get_config, get_settings, load_config, load_yaml, parse_config
from meddpicc.models import ConfigurationError

PILLAR_ORDER = [
    "metrics", "economic_buyer", "decision_criteria", "decision_process",
    "paper_process", "implicate_the_pain", "champion", "competition",
]


class TestCanonicalConfig:
    def test_shape(self, config):
        assert config.pillar_ids == PILLAR_ORDER
        assert config.total_questions == 40
        assert config.max_total_score == 320

    def test_every_pillar_maxes_at_40(self, config):
        for p in config.pillars:
            assert len(p.questions) == 5
            assert p.max_score == 40

    def test_option_scores(self, config):
        for p in config.pillars:
            yes = [q.option("yes").score for q in p.questions]
            partial = [q.option("partial").score for q in p.questions]
            no = [q.option("no").score for q in p.questions]
            assert yes == [4, 6, 8, 10, 12]
            assert partial == [s // 2 for s in yes]
            assert no == [0] * 5

    def test_stage_table(self, config):
        stages = {s.id: s for s in config.stages}
        assert list(stages) == ["prospect", "engage", "acquire", "keep"]
        assert set(stages["prospect"].pillars) == {"metrics", "implicate_the_pain"}
        assert stages["acquire"].min_fraction == 0.6
        assert set(stages["keep"].pillars) == set(PILLAR_ORDER)
        assert stages["keep"].min_fraction == 0.75

    def test_risk_table_ends_with_catch_all(self, config):
        assert config.risk_rules[-1].is_catch_all
        assert config.risk_rules[-1].level == "low"

    def test_confidence_weights(self, config):
        assert config.confidence_weights == {"low": 33, "medium": 66, "high": 100}

    def test_every_pillar_has_a_no_prompt(self, config):
        pillars_with_no_prompt = {p.pillar for p in config.coaching_prompts if p.trigger == "no"}
        assert pillars_with_no_prompt == set(PILLAR_ORDER)


class TestSettings:
    def test_env_override(self, monkeypatch, tmp_path, raw_config):
        raw_config["version"] = "9.9.9"
        path = tmp_path / "custom.yaml"
        path.write_text(yaml.safe_dump(raw_config), encoding="utf-8")
        monkeypatch.setenv("MEDDPICC_CONFIG", str(path))
        get_settings.cache_clear()
        get_config.cache_clear()
        try:
            assert get_settings().config_path == path.resolve()
            assert get_config().version == "9.9.9"
        finally:
            get_settings.cache_clear()
            get_config.cache_clear()

    def test_port_from_env(self, monkeypatch):
        monkeypatch.setenv("MEDDPICC_PORT", "9123")
        get_settings.cache_clear()
        try:
            assert get_settings().port == 9123
        finally:
            get_settings.cache_clear()


class TestLoadErrors:
    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("pillars: [unclosed", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_yaml(path)

    def test_root_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_yaml(path)

    def test_schema_error_is_configuration_error(self, raw_config):
        raw_config["pillars"][0]["questions"][0]["options"][0]["score"] = -1
        with pytest.raises(ConfigurationError, match="Malformed"):
            parse_config(raw_config)

    def test_question_without_options(self, raw_config):
        raw_config["pillars"][0]["questions"][0]["options"] = []
        with pytest.raises(ConfigurationError):
            parse_config(raw_config)


class TestCrossFieldValidation:
    def test_duplicate_pillar_id(self, raw_config):
        raw_config["pillars"][1]["id"] = "metrics"
        with pytest.raises(ConfigurationError, match="Duplicate pillar ids: metrics"):
            parse_config(raw_config)

    def test_duplicate_question_id_across_pillars(self, raw_config):
        raw_config["pillars"][1]["questions"][0]["id"] = "q_metrics_1"
        with pytest.raises(ConfigurationError, match="Duplicate question ids"):
            parse_config(raw_config)

    def test_prompt_with_unknown_pillar(self, raw_config):
        raw_config["coaching_prompts"][0]["pillar"] = "budget"
        with pytest.raises(ConfigurationError, match="unknown pillar 'budget'"):
            parse_config(raw_config)

    def test_missing_catch_all(self, raw_config):
        raw_config["risk_rules"] = raw_config["risk_rules"][:-1]
        with pytest.raises(ConfigurationError, match="catch-all"):
            parse_config(raw_config)

    def test_catch_all_must_be_last(self, raw_config):
        raw_config["risk_rules"].insert(0, {"level": "low"})
        with pytest.raises(ConfigurationError, match="Only the last"):
            parse_config(raw_config)

    def test_decreasing_score_bands(self, raw_config):
        raw_config["risk_rules"] = [
            {"level": "high", "below_score": 256},
            {"level": "critical", "below_score": 192},
            {"level": "low"},
        ]
        with pytest.raises(ConfigurationError, match="non-decreasing"):
            parse_config(raw_config)

    def test_confidence_weights_out_of_order(self, raw_config):
        raw_config["confidence_weights"] = {"low": 70, "medium": 66, "high": 100}
        with pytest.raises(ConfigurationError, match="Confidence weights"):
            parse_config(raw_config)

    def test_missing_confidence_weight(self, raw_config):
        raw_config["confidence_weights"] = {"low": 33, "high": 100}
        with pytest.raises(ConfigurationError, match="medium"):
            parse_config(raw_config)

    def test_stage_with_unknown_pillar(self, raw_config):
        raw_config["stages"][0]["pillars"].append("budget")
        with pytest.raises(ConfigurationError, match="unknown pillars: budget"):
            parse_config(raw_config)

    def test_stage_less_strict_than_previous(self, raw_config):
        raw_config["stages"][3]["min_fraction"] = 0.5
        with pytest.raises(ConfigurationError, match="less strict"):
            parse_config(raw_config)

    def test_stage_dropping_a_pillar(self, raw_config):
        raw_config["stages"][1]["pillars"] = ["metrics", "economic_buyer"]
        with pytest.raises(ConfigurationError, match="less strict"):
            parse_config(raw_config)

    def test_relaxes_previous_allows_weaker_stage(self, raw_config):
        raw_config["stages"][3]["min_fraction"] = 0.5
        raw_config["stages"][3]["relaxes_previous"] = True
        config = parse_config(raw_config)
        assert config.stages[3].min_fraction == 0.5

    def test_completion_threshold_range(self, raw_config):
        raw_config["completion_threshold"] = 0
        with pytest.raises(ConfigurationError, match="completion_threshold"):
            parse_config(raw_config)
