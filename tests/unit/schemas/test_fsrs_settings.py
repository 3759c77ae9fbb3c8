"""
Tests for the FSRS settings schemas
"""
import pytest
from pydantic import ValidationError

from fsrs_engine.fsrs.parameters import Parameters
from fsrs_engine.schemas.fsrs_settings import ParametersUpdate, SettingsView


class TestParametersUpdate:
    """Tests for partial settings updates"""

    def test_empty_update(self):
        update = ParametersUpdate()
        assert update.changes() == {}

    def test_changes_only_set_fields(self):
        update = ParametersUpdate(request_retention=0.85, enable_fuzz=False)

        assert update.changes() == {"request_retention": 0.85, "enable_fuzz": False}

    @pytest.mark.parametrize("field, value", [
        ("request_retention", 0.5),
        ("request_retention", 0.995),
        ("maximum_interval", 10),
        ("maximum_interval", 40000),
        ("graduating_interval", 0),
        ("easy_interval", 400),
        ("fuzz_factor", 0.3),
        ("fuzz_factor", -0.1),
    ])
    def test_out_of_range_rejected(self, field, value):
        with pytest.raises(ValidationError):
            ParametersUpdate(**{field: value})

    def test_steps_must_be_non_empty(self):
        with pytest.raises(ValidationError):
            ParametersUpdate(learning_steps=[])

    def test_steps_must_be_positive(self):
        with pytest.raises(ValidationError):
            ParametersUpdate(relearning_steps=[10, 0])

    def test_valid_steps(self):
        update = ParametersUpdate(learning_steps=[1, 5, 15])
        assert update.learning_steps == [1, 5, 15]


class TestSettingsView:
    """Tests for the settings payload"""

    def test_from_parameters(self):
        view = SettingsView.from_parameters(Parameters(request_retention=0.85))

        assert view.request_retention == 0.85
        assert view.learning_steps == [1, 10]
        assert len(view.weights) == 19
        assert view.enable_fuzz is True

    def test_serializes(self):
        data = SettingsView.from_parameters(Parameters.default()).model_dump()

        assert data["maximum_interval"] == 36500
        assert data["relearning_steps"] == [10]
