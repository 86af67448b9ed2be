"""Tests for configuration loading and validation."""

from pathlib import Path

import pytest
import yaml

from radar_odometry import ConfigError, GraphOptimizerConfig, NoiseConfig


class TestGraphOptimizerConfig:
    """Test suite for GraphOptimizerConfig."""

    def test_defaults(self):
        """Test default thresholds and heuristics."""
        config = GraphOptimizerConfig()

        assert config.max_window_frames == 3
        assert config.min_solve_frames == 2
        assert config.noise.prior == (0.01, 0.01, 0.001)
        assert config.noise.rotation == (0.01,)

    def test_from_yaml_with_aliases(self, tmp_path: Path):
        """Test loading a parameter file that uses launch-file names."""
        path = tmp_path / "params.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "odom_factor_cost_threshold": 0.9,
                    "keyframe_factor_cost_threshold": 0.4,
                    "RESOL": 0.0432,
                    "noise": {"odometry": [0.5, 0.5, 0.05]},
                    "solver": {"max_iterations": 20},
                }
            )
        )

        config = GraphOptimizerConfig.from_yaml(path)

        assert config.odom_threshold == pytest.approx(0.9)
        assert config.keyframe_threshold == pytest.approx(0.4)
        assert config.resolution == pytest.approx(0.0432)
        assert config.noise.odometry == (0.5, 0.5, 0.05)
        assert config.noise.prior == (0.01, 0.01, 0.001)
        assert config.solver.max_iterations == 20

    def test_empty_yaml_gives_defaults(self, tmp_path: Path):
        """Test that an empty file keeps every default."""
        path = tmp_path / "params.yaml"
        path.write_text("")

        assert GraphOptimizerConfig.from_yaml(path) == GraphOptimizerConfig()

    def test_missing_file(self, tmp_path: Path):
        """Test that a missing parameter file is reported."""
        with pytest.raises(ConfigError, match="Parameter file not found"):
            GraphOptimizerConfig.from_yaml(tmp_path / "missing.yaml")

    def test_non_mapping_yaml(self, tmp_path: Path):
        """Test that a YAML list is rejected."""
        path = tmp_path / "params.yaml"
        path.write_text("- 1\n- 2\n")

        with pytest.raises(ConfigError, match="Expected a mapping"):
            GraphOptimizerConfig.from_yaml(path)

    def test_unknown_key(self):
        """Test that unknown parameters are rejected."""
        with pytest.raises(ConfigError, match="Unknown parameter: window"):
            GraphOptimizerConfig.from_dict({"window": 4})

    def test_invalid_nested_key(self):
        """Test that unknown nested keys become config errors."""
        with pytest.raises(ConfigError, match="Invalid parameters"):
            GraphOptimizerConfig.from_dict({"solver": {"tolerance": 1e-3}})

    @pytest.mark.parametrize(
        "params",
        [
            {"resolution": -0.1},
            {"odom_threshold": 1.5},
            {"keyframe_threshold": -1.0},
            {"max_window_frames": 0},
            {"min_solve_frames": 0},
            {"solver": {"active_nodes": 0}},
        ],
    )
    def test_out_of_range(self, params):
        """Test range validation of scalar parameters."""
        with pytest.raises(ConfigError):
            GraphOptimizerConfig.from_dict(params)

    def test_bad_sigmas(self):
        """Test that sigma dimensions and signs are validated."""
        with pytest.raises(ConfigError, match="needs 3 sigmas"):
            NoiseConfig(prior=(0.1, 0.1))
        with pytest.raises(ConfigError, match="must be positive"):
            GraphOptimizerConfig.from_dict({"noise": {"rotation": [0.0]}})

    def test_to_dict_round_trip(self):
        """Test that to_dict output loads back to an equal config."""
        config = GraphOptimizerConfig(resolution=0.1, max_window_frames=5)
        assert GraphOptimizerConfig.from_dict(config.to_dict()) == config

    def test_config_error_is_value_error(self):
        """Test that callers catching ValueError also catch ConfigError."""
        assert issubclass(ConfigError, ValueError)

    def test_unbounded_solver_window(self):
        """Test that active_nodes may be disabled."""
        config = GraphOptimizerConfig.from_dict({"solver": {"active_nodes": None}})
        assert config.solver.active_nodes is None
        assert GraphOptimizerConfig().solver.active_nodes == 100
