import logging
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator


LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


class GridConfig(BaseModel):
    """
    Settings of one map2grid run.

    Keys can be given in snake_case or in the camelCase spelling used by the
    exported configuration files (e.g. "countryCode").
    """
    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    # Two character country code, according to ISO-3166-1, prefixes all IDs
    country_code: str = Field("AT", alias="countryCode")

    # Radius in km in which endnodes get grouped together
    neighbourhood_threshold: float = Field(0.5, gt=0, alias="neighbourhoodThreshold")

    # Max. length of a line which can be a type "busbar", in km
    busbar_max_length: float = Field(1.0, gt=0, alias="busbarMaxLength")

    # Multiplier for the exported length of a line (slack compensation)
    length_slack_multiplier: float = Field(1.2, ge=1, alias="lengthSlackMultiplier")

    # Sum up the original polyline instead of using the beeline
    compute_real_length: bool = Field(True, alias="computeRealLength")

    # Voltage levels in V which will be processed, None selects all of them
    voltage_levels_selected: list[int] | None = Field(None, alias="voltageLevelsSelected")

    # A real length counts as deviating from the beeline above both thresholds
    beeline_diff_threshold_percent: float = Field(5.0, ge=0, alias="beelineDiffThresholdPercent")
    beeline_diff_threshold_km: float = Field(0.5, ge=0, alias="beelineDiffThresholdKm")

    # Search endpoint pairs with a k-d tree instead of the full distance matrix
    use_spatial_index: bool = Field(False, alias="useSpatialIndex")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field("INFO", alias="logLevel")

    @field_validator("country_code")
    @classmethod
    def _two_letters(cls, v: str) -> str:
        v = v.strip()
        if len(v) != 2 or not v.isascii() or not v.isalpha():
            raise ValueError(f"country code must be two letters, got {v!r}")
        return v.upper()

    @field_validator("voltage_levels_selected")
    @classmethod
    def _positive_levels(cls, v):
        if v is not None and any(level <= 0 for level in v):
            raise ValueError("voltage levels must be positive values in volts")
        return v

    @classmethod
    def from_yaml(cls, yaml_path) -> "GridConfig":
        """Load configuration from a YAML file."""
        with open(yaml_path, 'r') as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"{yaml_path} does not contain a mapping of settings")
        return cls.model_validate(data)


def setup_logging(level="INFO"):
    logging.basicConfig(level=getattr(logging, level), format=LOG_FORMAT)
