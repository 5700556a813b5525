"""Configuration models and the layered loader."""

from pathlib import Path

import pytest
import yaml

from landprep.config import (
    AppConfig,
    ConfigurationNotFoundError,
    ConfigurationValidationError,
    DatasetConfig,
    PathsConfig,
)
from landprep.config.loader import ConfigManager


def write_yaml(path: Path, data: dict) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


def test_defaults():
    config = AppConfig()
    assert config.global_.common_crs == "EPSG:32632"
    assert config.raster.nodata == -9999
    assert config.raster.pixel_size == 10
    assert config.fetch.timeout == 600
    assert config.fetch.max_retries == 3
    assert config.boundary.hole_area_threshold_km2 == 1000
    assert config.datasets == []


def test_paths_must_be_distinct():
    with pytest.raises(ValueError, match="distinct"):
        PathsConfig(raw_dir="data/raw", unzipped_dir="data/raw", clean_dir="data/clean")


def test_paths_must_not_nest():
    with pytest.raises(ValueError, match="non-nested"):
        PathsConfig(raw_dir="data", unzipped_dir="data/unzipped", clean_dir="clean")


def test_url_template_expansion():
    dataset = DatasetConfig(
        name="prg",
        url_template="http://example.org/gml/{id}.zip",
        ids=[1002, 1006],
        urls=["http://example.org/extra.zip"],
        pattern="prg/**/*.gml",
        column="DECODIFICA",
        themes={"prg_ind": {"patterns": ["Produttivo"]}},
    )
    assert dataset.resolved_urls() == [
        "http://example.org/extra.zip",
        "http://example.org/gml/1002.zip",
        "http://example.org/gml/1006.zip",
    ]
    assert dataset.download_subdir == "prg"


def test_url_template_needs_placeholder():
    with pytest.raises(ValueError, match="placeholder"):
        DatasetConfig(
            name="x",
            url_template="http://example.org/fixed.zip",
            ids=[1],
            pattern="*.shp",
            themes={"x": {}},
        )


def test_patterns_need_column():
    with pytest.raises(ValueError, match="column"):
        DatasetConfig(
            name="prg",
            pattern="*.gml",
            themes={"prg_ind": {"patterns": ["Produttivo"]}},
        )


def test_theme_names_unique_across_datasets():
    dataset = {"pattern": "*.shp", "themes": {"same": {}}}
    with pytest.raises(ValueError, match="unique"):
        AppConfig(datasets=[{"name": "a", **dataset}, {"name": "b", **dataset}])


def test_get_dataset_unknown():
    with pytest.raises(KeyError):
        AppConfig().get_dataset("missing")


class TestConfigManager:
    def test_explicit_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationNotFoundError):
            ConfigManager().load_config(tmp_path / "nope.yaml", load_env_files=False)

    def test_environment_file_is_merged(self, tmp_path):
        base = write_yaml(
            tmp_path / "landprep_config.yaml",
            {"global": {"log_level": "INFO", "max_workers": 4}, "raster": {"pixel_size": 10}},
        )
        write_yaml(
            tmp_path / "environments" / "staging.yaml",
            {"_environment": "staging", "global": {"log_level": "DEBUG"}},
        )

        config = ConfigManager().load_config(base, "staging", load_env_files=False)

        assert config.global_.log_level == "DEBUG"
        assert config.global_.max_workers == 4
        assert config.raster.pixel_size == 10

    def test_env_var_override(self, tmp_path, monkeypatch):
        base = write_yaml(tmp_path / "landprep_config.yaml", {"global": {"log_level": "INFO"}})
        monkeypatch.setenv("LANDPREP_GLOBAL_LOG_LEVEL", "warning")
        monkeypatch.setenv("LANDPREP_FETCH_MAX_RETRIES", "5")

        config = ConfigManager().load_config(base, "none", load_env_files=False)

        assert config.global_.log_level == "WARNING"
        assert config.fetch.max_retries == 5

    def test_nested_env_var_override(self, tmp_path, monkeypatch):
        base = write_yaml(
            tmp_path / "landprep_config.yaml", {"global": {"logging": {"file": {"enabled": True}}}}
        )
        monkeypatch.setenv("LANDPREP_GLOBAL_LOGGING_FILE_ENABLED", "false")

        config = ConfigManager().load_config(base, "none", load_env_files=False)

        assert config.global_.logging.file.enabled is False

    def test_sources_recorded(self, tmp_path, monkeypatch):
        base = write_yaml(tmp_path / "landprep_config.yaml", {})
        env = write_yaml(tmp_path / "environments" / "test.yaml", {"raster": {"nodata": -1}})
        monkeypatch.setenv("LANDPREP_RASTER_PIXEL_SIZE", "5")

        manager = ConfigManager()
        config = manager.load_config(base, "test", load_env_files=False)

        assert manager.sources == [str(base), str(env), "LANDPREP_RASTER_PIXEL_SIZE"]
        assert config.raster.pixel_size == 5
        assert config.raster.nodata == -1

    def test_variable_substitution(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ZONES_DIR", "/data/zones")
        base = write_yaml(
            tmp_path / "landprep_config.yaml",
            {"boundary": {"zones_path": "${ZONES_DIR}/TUR_results.shp"}},
        )

        config = ConfigManager().load_config(base, "none", load_env_files=False)

        assert config.boundary.zones_path == Path("/data/zones/TUR_results.shp")

    def test_missing_variable(self, tmp_path, monkeypatch):
        monkeypatch.delenv("LANDPREP_UNSET_VAR", raising=False)
        base = write_yaml(
            tmp_path / "landprep_config.yaml",
            {"boundary": {"zones_path": "${LANDPREP_UNSET_VAR}/zones.shp"}},
        )
        with pytest.raises(ConfigurationValidationError, match="LANDPREP_UNSET_VAR"):
            ConfigManager().load_config(base, "none", load_env_files=False)

    def test_invalid_values_are_wrapped(self, tmp_path):
        base = write_yaml(tmp_path / "landprep_config.yaml", {"global": {"log_level": "LOUD"}})
        with pytest.raises(ConfigurationValidationError):
            ConfigManager().load_config(base, "none", load_env_files=False)


def test_shipped_config_is_valid():
    root = Path(__file__).parent.parent
    config = ConfigManager().load_config(
        root / "config" / "landprep_config.yaml", "test", load_env_files=False
    )

    assert config.global_.max_workers == 1
    bdtre = config.get_dataset("bdtre")
    assert len(bdtre.resolved_urls()) == 33
    assert bdtre.themes["bdtre_wtr"].dissolve is False
    assert len(config.elevation.resolved_urls()) == 12
