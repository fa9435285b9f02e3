"""Pipeline configuration.

``PipelineConfig`` collects every study-specific constant the pipeline
needs: cohort selection criteria, site code length, response label
mappings, exclusion rules and the location of the source spreadsheets.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

import yaml

from recist_timeline.types import DEFAULT_PASSTHROUGH_RESPONSE_COLUMNS, ExclusionRule

logger = logging.getLogger(__name__)


SOURCE_TABLES = (
    "cohort",
    "baseline_measurable",
    "baseline_non_measurable",
    "post_measurable",
    "post_non_measurable",
    "new_lesions",
    "responses",
)


@dataclass
class SourceSpec:
    """Where one source table lives and how its headers map to column names.

    Attributes:
        path: CSV or Excel file
        sheet: Worksheet name for Excel sources (first sheet when None)
        columns: Raw header -> canonical column name
    """
    path: Path
    sheet: Optional[str] = None
    columns: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: dict, base_dir: Optional[Path] = None) -> "SourceSpec":
        path = Path(d["path"])
        if base_dir is not None and not path.is_absolute():
            path = base_dir / path
        return cls(path=path, sheet=d.get("sheet"), columns=dict(d.get("columns") or {}))


@dataclass
class PipelineConfig:
    """Configuration for the timeline pipeline.

    Attributes:
        site_code_length: Number of leading patient-id characters naming the site
        cohort_visit_index: Visit at which treatment administration is checked
        treatment_administered_value: Cohort-table value meaning "treated"
        affirmative_values: Lower-cased strings read as True in boolean-like flags
        response_labels: Extra long-form label -> canonical code mappings
        passthrough_response_columns: Response columns carried into the output
        exclusions: Named patient-specific data corrections
        sources: Source table name -> SourceSpec
    """
    site_code_length: int = 4
    cohort_visit_index: int = 1
    treatment_administered_value: str = "Yes"
    affirmative_values: tuple[str, ...] = ("yes", "y", "true", "1")
    response_labels: dict[str, str] = field(default_factory=dict)
    passthrough_response_columns: list[str] = field(
        default_factory=lambda: list(DEFAULT_PASSTHROUGH_RESPONSE_COLUMNS)
    )
    exclusions: list[ExclusionRule] = field(default_factory=list)
    sources: dict[str, SourceSpec] = field(default_factory=dict)

    def __post_init__(self):
        if self.site_code_length <= 0:
            raise ValueError(f"site_code_length must be positive, got {self.site_code_length}")
        unknown = [name for name in self.sources if name not in SOURCE_TABLES]
        if unknown:
            raise ValueError(f"Unknown source tables: {unknown}")
        names = [rule.name for rule in self.exclusions]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate exclusion rule names: {names}")
        self.affirmative_values = tuple(str(v).strip().lower() for v in self.affirmative_values)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any], base_dir: Optional[Path] = None) -> "PipelineConfig":
        """Build a config from a (possibly nested) dictionary.

        Args:
            config_dict: Parsed configuration; unknown keys are ignored
            base_dir: Directory that relative source paths are resolved against

        Returns:
            PipelineConfig instance
        """
        kwargs = {}

        if "site_code_length" in config_dict:
            kwargs["site_code_length"] = int(config_dict["site_code_length"])
        if "affirmative_values" in config_dict:
            kwargs["affirmative_values"] = tuple(config_dict["affirmative_values"])
        if "response_labels" in config_dict:
            kwargs["response_labels"] = dict(config_dict["response_labels"] or {})
        if "passthrough_response_columns" in config_dict:
            kwargs["passthrough_response_columns"] = list(config_dict["passthrough_response_columns"] or [])

        # Cohort config
        if "cohort" in config_dict:
            cc = config_dict["cohort"] or {}
            if "visit_index" in cc:
                kwargs["cohort_visit_index"] = int(cc["visit_index"])
            if "treatment_administered_value" in cc:
                kwargs["treatment_administered_value"] = str(cc["treatment_administered_value"])

        if "exclusions" in config_dict:
            kwargs["exclusions"] = [
                ExclusionRule.from_dict(rule) for rule in config_dict["exclusions"] or []
            ]

        if "sources" in config_dict:
            kwargs["sources"] = {
                name: SourceSpec.from_dict(spec, base_dir=base_dir)
                for name, spec in (config_dict["sources"] or {}).items()
            }

        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "PipelineConfig":
        """Load configuration from a YAML file.

        Relative source paths are resolved against the YAML file's directory.

        Args:
            path: Path to YAML config file

        Returns:
            PipelineConfig instance
        """
        path = Path(path)
        with open(path, "r") as f:
            config_dict = yaml.safe_load(f) or {}

        config = cls.from_dict(config_dict, base_dir=path.parent)
        logger.info(
            f"Loaded config from {path}: {len(config.sources)} sources, "
            f"{len(config.exclusions)} exclusion rules"
        )
        return config
