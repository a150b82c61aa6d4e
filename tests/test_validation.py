"""
Tests for parameter validation and the configuration schemas.
"""

import warnings

import pytest
from pydantic import ValidationError

from models.profiles import TherapyMode
from schemas.errors import CommandResult
from schemas.simulation import SimulationConfig
from utils.validation import (
    validate_carrying_capacity,
    validate_immune_competence,
    validate_initial_population,
    validate_simulation_parameters,
    validate_speed,
    validate_time_step,
)


class TestValidators:
    """Test the standalone validators."""

    def test_initial_population(self):
        """Test population bounds."""
        assert validate_initial_population(0) == 0
        assert validate_initial_population(500) == 500
        with pytest.raises(ValueError):
            validate_initial_population(-1)
        with pytest.raises(ValueError):
            validate_initial_population(501)

    def test_carrying_capacity(self):
        """Test capacity bounds."""
        assert validate_carrying_capacity(1) == 1
        with pytest.raises(ValueError):
            validate_carrying_capacity(0)

    def test_immune_competence(self):
        """Test competence bounds."""
        assert validate_immune_competence(0.0) == 0.0
        with pytest.raises(ValueError):
            validate_immune_competence(2.5)

    def test_speed(self):
        """Test speed must be positive and capped."""
        assert validate_speed(2.0) == 2.0
        with pytest.raises(ValueError):
            validate_speed(0.0)
        with pytest.raises(ValueError):
            validate_speed(1000.0)
        with pytest.raises(ValueError):
            validate_speed(float("nan"))

    def test_time_step(self):
        """Test dt must be positive and large steps warn."""
        with pytest.raises(ValueError):
            validate_time_step(0.0)
        for value in (float("nan"), float("inf")):
            with pytest.raises(ValueError):
                validate_time_step(value)
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            assert validate_time_step(2.0) == 2.0
        assert any(issubclass(w.category, UserWarning) for w in caught)

    def test_parameter_set(self):
        """Test whole parameter dicts are validated key by key."""
        validated = validate_simulation_parameters({"initial_population": 10, "label": "x"})
        assert validated == {"initial_population": 10, "label": "x"}
        with pytest.raises(ValueError):
            validate_simulation_parameters({"speed": -1.0})


class TestSimulationConfig:
    """Test the configure command schema."""

    def test_defaults(self):
        """Test the default configuration."""
        config = SimulationConfig()
        assert config.initial_population == 0
        assert config.therapy_mode == TherapyMode.OFF
        assert config.antibiotics == []

    def test_valid_config(self):
        """Test a full valid configuration."""
        config = SimulationConfig(
            initial_population=50, species="E_coli", antibiotics=["Ciprofloxacin"],
            therapy_mode="targeted", carrying_capacity=100, seed=3,
        )
        assert config.antibiotics == ["ciprofloxacin"]
        assert config.therapy_mode == TherapyMode.TARGETED

    def test_unknown_species_allowed(self):
        """Test unknown species are accepted and resolved later."""
        assert SimulationConfig(species="Y_pestis").species == "Y_pestis"

    @pytest.mark.parametrize("payload", [
        {"initial_population": -5},
        {"initial_population": 100, "carrying_capacity": 50},
        {"antibiotics": ["aspirin"]},
        {"immune_competence": 3.0},
        {"atherosclerosis_level": 1.5},
        {"dosing_interval": 0.0},
        {"therapy_mode": "maximum"},
        {"unexpected": True},
    ])
    def test_invalid_config(self, payload):
        """Test invalid configurations are rejected."""
        with pytest.raises(ValidationError):
            SimulationConfig.model_validate(payload)


class TestCommandResult:
    """Test command outcome models."""

    def test_from_validation_error(self):
        """Test validation errors become error details."""
        with pytest.raises(ValidationError) as excinfo:
            SimulationConfig.model_validate({"initial_population": -5})
        result = CommandResult.from_validation_error(excinfo.value)
        assert not result.accepted
        assert result.errors[0].field == "initial_population"
        assert result.errors[0].value == -5

    def test_ok_and_rejected(self):
        """Test convenience constructors."""
        assert CommandResult.ok("fine").accepted
        rejected = CommandResult.rejected("bad speed", field="speed", value=0)
        assert not rejected.accepted
        assert rejected.errors[0].field == "speed"
