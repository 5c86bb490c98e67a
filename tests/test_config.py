"""Unit tests for PipelineConfig and YAML config loading."""

import pytest

from motifscope.config import PipelineConfig, load_config


def test_defaults() -> None:
    config = PipelineConfig()
    assert config.min_pattern_length == 3
    assert config.max_pattern_length == 26
    assert config.group_threshold == 0.3
    assert config.display_length == 20
    assert config.reject_flagged is True


def test_load_config_none_returns_defaults() -> None:
    assert load_config(None) == PipelineConfig()


def test_missing_file_falls_back_to_defaults(tmp_path: pytest.TempPathFactory) -> None:
    assert load_config(str(tmp_path / "absent.yaml")) == PipelineConfig()  # type: ignore[operator]


def test_yaml_values_are_applied(tmp_path: pytest.TempPathFactory) -> None:
    path = tmp_path / "motifscope.yaml"  # type: ignore[operator]
    path.write_text("min_pattern_length: 4\ngroup_threshold: 0.2\n", encoding="utf-8")
    config = load_config(str(path))
    assert config.min_pattern_length == 4
    assert config.group_threshold == 0.2
    assert config.max_pattern_length == 26


def test_empty_yaml_file_gives_defaults(tmp_path: pytest.TempPathFactory) -> None:
    path = tmp_path / "empty.yaml"  # type: ignore[operator]
    path.write_text("", encoding="utf-8")
    assert load_config(str(path)) == PipelineConfig()


@pytest.mark.parametrize(
    "content",
    [
        "unknown_key: 1\n",
        "- just\n- a list\n",
        "min_pattern_length: [unclosed\n",
        "min_pattern_length: five\n",
        "display_length: true\n",
        "reject_flagged: 1\n",
        "group_threshold: low\n",
    ],
)
def test_bad_config_files_raise(tmp_path: pytest.TempPathFactory, content: str) -> None:
    path = tmp_path / "bad.yaml"  # type: ignore[operator]
    path.write_text(content, encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(str(path))


def test_overrides_skip_none_values() -> None:
    config = PipelineConfig(min_pattern_length=4).with_overrides(
        min_pattern_length=None, display_length=12
    )
    assert config.min_pattern_length == 4
    assert config.display_length == 12


def test_to_dict_round_trips_through_from_mapping() -> None:
    config = PipelineConfig(max_pattern_length=10, reject_flagged=False)
    assert PipelineConfig.from_mapping(config.to_dict()) == config
