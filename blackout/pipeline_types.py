"""
Typed configuration and result dataclasses for the blackout pipeline.

PipelineConfig is the single immutable context passed to every step.
StepResult and PipelineRunResult record what each step did so a run can be
audited from its ``pipeline_run.json`` alone.
"""

import argparse
import subprocess
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from blackout import config


class StepStatus(str, Enum):
    """Pipeline step outcome status."""
    SUCCESS = "success"
    EMPTY = "empty"
    ERROR = "error"


def _now_iso():
    return datetime.now(timezone.utc).isoformat()


def _get_git_sha():
    """Return the short git SHA of the current HEAD, or None."""
    try:
        return subprocess.check_output(
            ["git", "rev-parse", "--short", "HEAD"],
            stderr=subprocess.DEVNULL,
            text=True,
        ).strip()
    except (subprocess.SubprocessError, FileNotFoundError):
        return None


@dataclass(frozen=True)
class PipelineConfig:
    """Immutable run configuration.

    Defaults come from ``blackout.config``; the CLI may override any field
    through ``from_args``. Use ``dataclasses.replace`` to derive variants
    (e.g. in the sensitivity sweep) rather than mutating.
    """

    raster_dir: str = config.DEFAULT_RASTER_DIR
    pre_event_date: str = config.PRE_EVENT_DATE_CODE
    post_event_date: str = config.POST_EVENT_DATE_CODE
    roads_path: str = config.DEFAULT_ROADS_PATH
    roads_layer: Optional[str] = config.DEFAULT_ROADS_LAYER
    buildings_path: str = config.DEFAULT_BUILDINGS_PATH
    buildings_layer: Optional[str] = config.DEFAULT_BUILDINGS_LAYER
    census_gdb: str = config.DEFAULT_CENSUS_GDB
    tract_layer: str = config.TRACT_LAYER
    income_layer: str = config.INCOME_LAYER
    output_dir: str = config.DEFAULT_OUTPUT_DIR

    threshold: float = config.BLACKOUT_THRESHOLD_NW
    highway_buffer_m: float = config.HIGHWAY_BUFFER_M
    highway_class: str = config.HIGHWAY_CLASS
    planar_epsg: int = config.PLANAR_CRS_EPSG
    boundary_lonlat: tuple = tuple(config.HOUSTON_BOUNDARY_LONLAT)
    residential_types: frozenset = config.RESIDENTIAL_BUILDING_TYPES

    strict_validation: bool = False
    sensitivity_thresholds: tuple = ()

    def __post_init__(self):
        if self.threshold < 0:
            raise ValueError(f"threshold must be >= 0, got {self.threshold}")
        if self.highway_buffer_m < 0:
            raise ValueError(
                f"highway_buffer_m must be >= 0, got {self.highway_buffer_m}"
            )
        if len(self.boundary_lonlat) < 3:
            raise ValueError("boundary_lonlat needs at least three vertices")

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "PipelineConfig":
        """Build a config from parsed CLI arguments, skipping unset ones."""
        names = cls.__dataclass_fields__.keys()
        overrides = {
            k: v for k, v in vars(args).items()
            if k in names and v is not None
        }
        if "sensitivity_thresholds" in overrides:
            overrides["sensitivity_thresholds"] = tuple(
                overrides["sensitivity_thresholds"]
            )
        return cls(**overrides)

    def to_dict(self):
        d = asdict(self)
        d["residential_types"] = sorted(self.residential_types)
        d["boundary_lonlat"] = [list(p) for p in self.boundary_lonlat]
        d["sensitivity_thresholds"] = list(self.sensitivity_thresholds)
        return d


@dataclass
class StepResult:
    """Result of a single pipeline step execution."""

    step_name: str
    status: str  # "success", "empty", "error"
    input_summary: dict = field(default_factory=dict)
    output_summary: dict = field(default_factory=dict)
    timing_seconds: float = 0.0
    warnings: list = field(default_factory=list)
    error: Optional[str] = None
    started_at: str = field(default_factory=_now_iso)
    completed_at: Optional[str] = None

    @property
    def ok(self):
        """True unless the step failed; an empty result is still ok."""
        return self.status != StepStatus.ERROR.value

    @property
    def empty(self):
        return self.status == StepStatus.EMPTY.value

    def to_dict(self):
        return {
            "step_name": self.step_name,
            "status": self.status,
            "input_summary": self.input_summary,
            "output_summary": self.output_summary,
            "timing_seconds": self.timing_seconds,
            "warnings": self.warnings,
            "error": self.error,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }

    @classmethod
    def from_dict(cls, d):
        """Reconstruct a StepResult from a serialized dict."""
        return cls(
            step_name=d["step_name"],
            status=d["status"],
            input_summary=d.get("input_summary", {}),
            output_summary=d.get("output_summary", {}),
            timing_seconds=d.get("timing_seconds", 0.0),
            warnings=d.get("warnings", []),
            error=d.get("error"),
            started_at=d.get("started_at", ""),
            completed_at=d.get("completed_at"),
        )


@dataclass
class PipelineRunResult:
    """Result of a complete pipeline execution."""

    run_dir: str = ""
    config: dict = field(default_factory=dict)
    step_results: list = field(default_factory=list)
    impacted_homes: Optional[int] = None
    total_time_seconds: float = 0.0
    output_files: list = field(default_factory=list)
    git_sha: Optional[str] = field(default_factory=_get_git_sha)
    started_at: str = field(default_factory=_now_iso)

    @property
    def all_ok(self):
        return all(s.ok for s in self.step_results)

    @property
    def failed_steps(self):
        return [s for s in self.step_results if not s.ok]

    @property
    def empty_steps(self):
        return [s for s in self.step_results if s.empty]

    def to_dict(self):
        return {
            "run_dir": self.run_dir,
            "config": self.config,
            "steps": [s.to_dict() for s in self.step_results],
            "impacted_homes": self.impacted_homes,
            "total_time_seconds": self.total_time_seconds,
            "output_files": self.output_files,
            "all_ok": self.all_ok,
            "git_sha": self.git_sha,
            "started_at": self.started_at,
        }

    @classmethod
    def from_dict(cls, d):
        """Reconstruct a PipelineRunResult from a serialized dict."""
        result = cls(
            run_dir=d.get("run_dir", ""),
            config=d.get("config", {}),
            impacted_homes=d.get("impacted_homes"),
            total_time_seconds=d.get("total_time_seconds", 0.0),
            output_files=d.get("output_files", []),
            git_sha=d.get("git_sha"),
            started_at=d.get("started_at", ""),
        )
        result.step_results = [
            StepResult.from_dict(s) for s in d.get("steps", [])
        ]
        return result
