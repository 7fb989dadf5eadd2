"""
Tests for Stokes-vector utilities and input presets.
"""

import numpy as np
import pytest

from spindle_stokes import (
    CUSTOM_LABEL,
    PRESETS,
    DegenerateStokesWarning,
    as_stokes,
    degree_of_polarization,
    normalize_stokes,
    preset_labels,
    resolve_input_state,
    stokes_to_cartesian,
)


class TestConversions:
    """Sphere projection and normalisation."""

    def test_cartesian_is_unit_length(self):
        xyz = stokes_to_cartesian([2.0, 0.6, -0.8, 1.2])
        assert np.linalg.norm(xyz) == pytest.approx(1.0, abs=1e-12)
        np.testing.assert_allclose(xyz, np.array([0.6, -0.8, 1.2]) / np.sqrt(2.44))

    def test_cartesian_degenerate_maps_to_origin(self):
        np.testing.assert_array_equal(stokes_to_cartesian([1.0, 0.0, 0.0, 0.0]),
                                      np.zeros(3))
        np.testing.assert_array_equal(stokes_to_cartesian([1.0, 1e-13, 0.0, 0.0]),
                                      np.zeros(3))

    def test_normalize_forces_unit_intensity(self):
        s = normalize_stokes([5.0, 3.0, 0.0, 4.0])
        np.testing.assert_allclose(s, [1.0, 0.6, 0.0, 0.8])

    def test_normalize_degenerate_warns_and_uses_sentinel(self):
        with pytest.warns(DegenerateStokesWarning):
            s = normalize_stokes([1.0, 0.0, 0.0, 0.0])
        np.testing.assert_array_equal(s, [1.0, 0.0, 0.0, 0.0])

    def test_normalize_does_not_modify_input(self):
        raw = np.array([2.0, 1.0, 1.0, 0.0])
        normalize_stokes(raw)
        np.testing.assert_array_equal(raw, [2.0, 1.0, 1.0, 0.0])

    def test_degree_of_polarization(self):
        assert degree_of_polarization([1.0, 1.0, 0.0, 0.0]) == pytest.approx(1.0)
        assert degree_of_polarization([2.0, 0.0, 0.6, 0.8]) == pytest.approx(0.5)
        assert degree_of_polarization([0.0, 0.0, 0.0, 0.0]) == 0.0

    def test_wrong_arity_rejected(self):
        with pytest.raises(ValueError):
            as_stokes([1.0, 0.0, 0.0])
        with pytest.raises(ValueError):
            stokes_to_cartesian(np.zeros((2, 4)))


class TestPresets:
    """Preset table and selector resolution."""

    def test_preset_order(self):
        assert [p.label for p in PRESETS] == [
            "Linear H (0°)",
            "Linear V (90°)",
            "Linear +45°",
            "Linear -45°",
            "Right Circular",
            "Left Circular",
        ]
        assert preset_labels()[-1] == CUSTOM_LABEL

    def test_presets_lie_on_unit_sphere(self):
        for preset in PRESETS:
            s = preset.as_array()
            assert s[0] == 1.0
            assert np.linalg.norm(s[1:]) == pytest.approx(1.0)

    def test_resolve_known_label(self):
        np.testing.assert_array_equal(resolve_input_state("Right Circular"),
                                      [1.0, 0.0, 0.0, 1.0])

    def test_resolve_returns_copy(self):
        s = resolve_input_state("Linear H (0°)")
        s[1] = -5.0
        np.testing.assert_array_equal(resolve_input_state("Linear H (0°)"),
                                      [1.0, 1.0, 0.0, 0.0])

    def test_resolve_unknown_label_falls_back_to_first_preset(self):
        np.testing.assert_array_equal(resolve_input_state("Elliptical 17°"),
                                      PRESETS[0].as_array())

    def test_resolve_custom_normalises(self):
        s = resolve_input_state(CUSTOM_LABEL, [3.0, 0.0, 3.0, 0.0])
        np.testing.assert_allclose(s, [1.0, 0.0, 1.0, 0.0])

    def test_resolve_custom_requires_components(self):
        with pytest.raises(ValueError):
            resolve_input_state(CUSTOM_LABEL)
