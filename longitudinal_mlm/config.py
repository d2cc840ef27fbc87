"""
Study layout and run configuration for the language growth models.

Tweak the constants below to point the analysis at a differently named
dataset; per-run options live on :class:`AnalysisConfig`.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Optional, Tuple

###############################################################################
# Dataset layout                                                              #
###############################################################################

SUBJECT_COL: str = "ID"
CLUSTER_COL: str = "school"
OUTCOME_COL: str = "Language"
LABEL_COL: str = "ind"
TIME_COL: str = "Time"

# Canonical covariate name -> column name in the source file
COVARIATE_SOURCES: Dict[str, str] = {
    "Process": "Process",
    "Application": "Application",
    "Grammar": "Grammar",
    "Goal": "Goal4RitScoref08",
}
COVARIATES: Tuple[str, ...] = tuple(COVARIATE_SOURCES)

OCCASION_COLS: Tuple[str, ...] = tuple(f"LangScore{i}" for i in range(1, 7))

# Occasion label -> time index. Kept apart from the stacked columns: a label
# stacked but absent here has no time index.
TIME_CODES: Dict[str, int] = {label: i for i, label in enumerate(OCCASION_COLS)}

DATA_PATH_ENV: str = "LANG_DATA_PATH"
DEFAULT_DATA_PATH: Path = Path("Language.csv")

OPTIMIZER: str = "lbfgs"

###############################################################################
# Models                                                                      #
###############################################################################


@dataclass(frozen=True)
class ModelSpec:
    """One mixed model: fixed part plus its random-intercept grouping.

    ``group`` is the subject level. When ``nested_in`` is set the model has
    random intercepts for the cluster and for subjects within the cluster.
    """

    name: str
    fixed: Tuple[str, ...]
    outcome: str = OUTCOME_COL
    group: str = SUBJECT_COL
    nested_in: Optional[str] = None
    categorical: Tuple[str, ...] = (TIME_COL,)

    def formula(self) -> str:
        terms = [f"C({t})" if t in self.categorical else t for t in self.fixed]
        return f"{self.outcome} ~ " + (" + ".join(terms) if terms else "1")

    def random_part(self) -> str:
        if self.nested_in:
            return f"(1 | {self.nested_in}/{self.group})"
        return f"(1 | {self.group})"

    def columns(self) -> Tuple[str, ...]:
        cols = [self.outcome, *self.fixed, self.group]
        if self.nested_in:
            cols.append(self.nested_in)
        return tuple(cols)

    def with_linear_time(self) -> "ModelSpec":
        return replace(self, categorical=tuple(c for c in self.categorical if c != TIME_COL))

    def __str__(self) -> str:
        return f"{self.formula()} + {self.random_part()}"


MODEL_SPECS: Tuple[ModelSpec, ...] = (
    ModelSpec("Model1.0", fixed=(TIME_COL,)),
    ModelSpec("Model1.1", fixed=(TIME_COL, "Grammar")),
    ModelSpec("Model1.3", fixed=(TIME_COL,), nested_in=CLUSTER_COL),
)

# (reduced, full) pair handed to the likelihood-ratio test
COMPARISON: Tuple[str, str] = ("Model1.0", "Model1.3")

###############################################################################
# Run configuration                                                           #
###############################################################################


def default_data_path() -> Path:
    return Path(os.environ.get(DATA_PATH_ENV, DEFAULT_DATA_PATH))


@dataclass
class AnalysisConfig:
    data_path: Path = field(default_factory=default_data_path)
    out_dir: Optional[Path] = None
    time_as_factor: bool = True
    occasion_cols: Tuple[str, ...] = OCCASION_COLS
    time_codes: Dict[str, int] = field(default_factory=lambda: dict(TIME_CODES))
    on_unmapped: str = "raise"  # "raise" or "null"
    plot: bool = False
    models: Tuple[ModelSpec, ...] = MODEL_SPECS
    comparison: Optional[Tuple[str, str]] = COMPARISON
    method: str = OPTIMIZER

    def model_specs(self) -> Tuple[ModelSpec, ...]:
        if self.time_as_factor:
            return self.models
        return tuple(spec.with_linear_time() for spec in self.models)
