"""
test_config.py - Unit tests for risk configuration

Tests:
- Defaults and Decimal conversion through str()
- Validation errors for missing, unknown and malformed fields
- YAML loading, flat and nested under `risk:`
"""

from decimal import Decimal

import pytest

from margin_ledger import ConfigValidationError, RiskConfig, load_config


class TestFromMapping:

    def test_defaults(self):
        config = RiskConfig.from_mapping({"borrow_limits": [100, 200, 300]})
        assert config.init_ratio == Decimal("1.20")
        assert config.maint_ratio == Decimal("1.10")
        assert config.num_tokens == 3
        assert config.borrow_limits == (100, 200, 300)

    def test_floats_keep_written_digits(self):
        config = RiskConfig.from_mapping({"borrow_limits": [1, 1], "init_ratio": 1.3})
        assert config.init_ratio == Decimal("1.3")

    def test_rate_model(self):
        config = RiskConfig.from_mapping({
            "borrow_limits": [1, 1],
            "optimal_util": "0.8", "optimal_rate": "0.05", "max_rate": "0.6",
        })
        model = config.rate_model()
        assert model.optimal_util == Decimal("0.8")
        assert model.max_rate == Decimal("0.6")

    def test_missing_borrow_limits(self):
        with pytest.raises(ConfigValidationError, match="borrow_limits"):
            RiskConfig.from_mapping({"init_ratio": "1.2"})

    def test_unknown_field(self):
        with pytest.raises(ConfigValidationError, match="Unknown"):
            RiskConfig.from_mapping({"borrow_limits": [1, 1], "leverage": 10})

    @pytest.mark.parametrize("limits", [[1], "100", [1, -1], [1, True], [1, 2 ** 64]])
    def test_bad_borrow_limits(self, limits):
        with pytest.raises(ConfigValidationError):
            RiskConfig.from_mapping({"borrow_limits": limits})

    @pytest.mark.parametrize("value", ["abc", True, "-1", "NaN"])
    def test_bad_number(self, value):
        with pytest.raises(ConfigValidationError):
            RiskConfig.from_mapping({"borrow_limits": [1, 1], "init_ratio": value})

    def test_init_must_exceed_maint(self):
        with pytest.raises(ConfigValidationError):
            RiskConfig.from_mapping({"borrow_limits": [1, 1], "init_ratio": "1.1", "maint_ratio": "1.1"})

    def test_bad_rate_curve(self):
        with pytest.raises(ConfigValidationError):
            RiskConfig.from_mapping({"borrow_limits": [1, 1], "optimal_util": "1.5"})

    def test_not_a_mapping(self):
        with pytest.raises(ConfigValidationError):
            RiskConfig.from_mapping([1, 2])

    def test_is_a_value_error(self):
        with pytest.raises(ValueError):
            RiskConfig.from_mapping({})


class TestLoadConfig:

    def test_flat_file(self, tmp_path):
        path = tmp_path / "risk.yaml"
        path.write_text(
            "init_ratio: 1.25\n"
            "maint_ratio: '1.05'\n"
            "borrow_limits: [1000000, 2000000]\n"
        )
        config = load_config(path)
        assert config.init_ratio == Decimal("1.25")
        assert config.maint_ratio == Decimal("1.05")
        assert config.borrow_limits == (1000000, 2000000)

    def test_nested_under_risk(self, tmp_path):
        path = tmp_path / "pool.yaml"
        path.write_text(
            "name: btc-eth-usdc\n"
            "risk:\n"
            "  borrow_limits: [1, 2, 3]\n"
            "  max_rate: 2.0\n"
        )
        config = load_config(str(path))
        assert config.max_rate == Decimal("2.0")
        assert config.num_tokens == 3

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        with pytest.raises(ConfigValidationError):
            load_config(path)
