# src/landprep/config/models.py
"""
Unified Pydantic configuration models
"""

import re
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


LOG_LEVELS = ("DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")

# loguru accepts "10 MB", "1 week", ... for rotation and retention
_QUANTITY = re.compile(r"^\d+(\.\d+)?\s*[A-Za-z]+$")


class FileLoggingConfig(BaseModel):
    """Rotating log file; ``path`` may use {environment} and {date}"""

    enabled: bool = True
    path: str = "logs/landprep_{environment}_{date}.log"
    rotation: str = "10 MB"
    retention: str = "30 days"
    compression: str = "gz"

    @field_validator("path")
    @classmethod
    def path_placeholders_known(cls, v):
        unknown = set(re.findall(r"\{([^}]*)\}", v)) - {"environment", "date"}
        if unknown:
            raise ValueError(f"unknown placeholder(s) in log path: {sorted(unknown)}")
        return v

    @field_validator("rotation", "retention")
    @classmethod
    def quantity_with_unit(cls, v, info):
        if not _QUANTITY.match(v.strip()):
            raise ValueError(f"{info.field_name} must look like '10 MB' or '30 days', got '{v}'")
        return v

    def resolve_path(self, environment: str) -> Path:
        return Path(
            self.path.format(environment=environment, date=datetime.now().strftime("%Y%m%d"))
        )


class ConsoleLoggingConfig(BaseModel):
    format: Literal["simple", "detailed"] = "simple"
    show_time: bool = True
    show_level: bool = True
    show_path: bool = False


class LoggingConfig(BaseModel):
    """Console and file sinks, plus per-module level overrides"""

    file: FileLoggingConfig = FileLoggingConfig()
    console: ConsoleLoggingConfig = ConsoleLoggingConfig()
    modules: Dict[str, str] = {}

    @field_validator("modules")
    @classmethod
    def module_levels_valid(cls, v):
        levels = {module: level.upper() for module, level in v.items()}
        bad = {m: lv for m, lv in levels.items() if lv not in LOG_LEVELS}
        if bad:
            raise ValueError(f"invalid module log level(s) {bad}; use one of {LOG_LEVELS}")
        return levels

    def file_path(self, environment: str) -> Optional[Path]:
        """Resolved log file, None when file logging is off."""
        return self.file.resolve_path(environment) if self.file.enabled else None


class GlobalConfig(BaseModel):
    """Process-wide settings: log level, common CRS, worker pool size"""

    log_level: str = "INFO"
    common_crs: str = "EPSG:32632"
    max_workers: int = Field(4, ge=1, le=64)
    logging: LoggingConfig = LoggingConfig()

    @field_validator("log_level")
    @classmethod
    def log_level_must_be_valid(cls, v):
        if v.upper() not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {LOG_LEVELS}")
        return v.upper()

    @field_validator("common_crs")
    @classmethod
    def crs_must_be_authority_code(cls, v):
        if not re.match(r"^[A-Za-z]+:\d+$", v):
            raise ValueError("common_crs must be an authority code like 'EPSG:32632'")
        return v.upper()


class PathsConfig(BaseModel):
    """Working directories: raw downloads, unzipped archives and cleaned outputs"""

    raw_dir: Path = Path("data/raw/zipped")
    unzipped_dir: Path = Path("data/raw/unzipped")
    clean_dir: Path = Path("data/clean")

    @model_validator(mode="after")
    def directories_must_be_distinct(self):
        dirs = {
            "raw_dir": self.raw_dir,
            "unzipped_dir": self.unzipped_dir,
            "clean_dir": self.clean_dir,
        }
        resolved = {name: path.expanduser().resolve() for name, path in dirs.items()}
        names = list(resolved)
        for i, first in enumerate(names):
            for second in names[i + 1 :]:
                a, b = resolved[first], resolved[second]
                if a == b or a in b.parents or b in a.parents:
                    raise ValueError(
                        f"{first} ({dirs[first]}) and {second} ({dirs[second]}) "
                        "must be distinct, non-nested directories"
                    )
        return self


class FetchConfig(BaseModel):
    """Download settings"""

    timeout: int = Field(600, ge=1, le=3600)
    max_retries: int = Field(3, ge=1, le=10)
    backoff_factor: float = Field(2.0, ge=0)
    max_workers: int = Field(4, ge=1, le=32)
    overwrite: bool = True


class BoundaryConfig(BaseModel):
    """Study boundary construction settings"""

    zones_path: Optional[Path] = None
    zones_layer: Optional[str] = None
    zone_id_column: str = "NO"
    local_zone_ids: List[Any] = []
    hole_area_threshold_km2: float = Field(1000.0, ge=0)
    population_start_column: Optional[str] = None
    population_end_column: Optional[str] = None


class RasterConfig(BaseModel):
    """Common raster grid contract"""

    pixel_size: float = Field(10.0, gt=0)
    nodata: float = -9999.0


class UrlSourceMixin(BaseModel):
    """Either an explicit URL list or a template expanded over ids"""

    urls: List[str] = []
    url_template: Optional[str] = None
    ids: List[Any] = []

    @model_validator(mode="after")
    def template_needs_ids(self):
        if self.url_template and "{id}" not in self.url_template:
            raise ValueError("url_template must contain an '{id}' placeholder")
        if self.url_template and not self.ids:
            raise ValueError("url_template requires a non-empty 'ids' list")
        return self

    def resolved_urls(self) -> List[str]:
        """Explicit URLs followed by the expanded template, without duplicates."""
        urls = list(self.urls)
        if self.url_template:
            urls.extend(self.url_template.format(id=i) for i in self.ids)
        return list(dict.fromkeys(urls))


class ElevationConfig(UrlSourceMixin):
    """Elevation tiles and slope output"""

    subdir: str = "slp"
    tile_pattern: str = "slp/**/*.tif"
    output: str = "dem_slp.tif"
    resolution: Optional[float] = Field(None, gt=0)
    mask_to_boundary: bool = False


class ThemeConfig(BaseModel):
    """One thematic output of a dataset"""

    patterns: List[str] = []
    dissolve: bool = True


class DatasetConfig(UrlSourceMixin):
    """A dataset family: where it comes from and how it splits into themes"""

    name: str
    subdir: Optional[str] = None
    pattern: str
    layer: Optional[str] = None
    column: Optional[str] = None
    match: Literal["substring", "exact"] = "substring"
    themes: Dict[str, ThemeConfig]

    @field_validator("name")
    @classmethod
    def name_must_be_identifier(cls, v):
        if not re.match(r"^[A-Za-z0-9_\-]+$", v):
            raise ValueError("dataset name may only contain letters, digits, '_' and '-'")
        return v

    @model_validator(mode="after")
    def patterns_need_column(self):
        if not self.themes:
            raise ValueError(f"dataset '{self.name}' defines no themes")
        with_patterns = [t for t, cfg in self.themes.items() if cfg.patterns]
        if with_patterns and not self.column:
            raise ValueError(
                f"dataset '{self.name}': themes {with_patterns} define patterns "
                "but no classification 'column' is set"
            )
        return self

    @property
    def download_subdir(self) -> str:
        return self.subdir or self.name


class AppConfig(BaseModel):
    """Main application configuration"""

    model_config = ConfigDict(populate_by_name=True)

    global_: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    paths: PathsConfig = PathsConfig()
    fetch: FetchConfig = FetchConfig()
    boundary: BoundaryConfig = BoundaryConfig()
    raster: RasterConfig = RasterConfig()
    elevation: ElevationConfig = ElevationConfig()
    datasets: List[DatasetConfig] = []

    @field_validator("datasets")
    @classmethod
    def dataset_names_unique(cls, v):
        names = [d.name for d in v]
        duplicates = {n for n in names if names.count(n) > 1}
        if duplicates:
            raise ValueError(f"duplicate dataset names: {sorted(duplicates)}")
        themes = [t for d in v for t in d.themes]
        duplicates = {t for t in themes if themes.count(t) > 1}
        if duplicates:
            raise ValueError(f"theme names must be unique across datasets: {sorted(duplicates)}")
        return v

    def get_dataset(self, name: str) -> DatasetConfig:
        for dataset in self.datasets:
            if dataset.name == name:
                return dataset
        raise KeyError(
            f"Unknown dataset '{name}'. Available: {[d.name for d in self.datasets]}"
        )
