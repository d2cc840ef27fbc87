# tests/conftest.py
import os
import sys
import tempfile
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

# Put the project root on sys.path so `import longitudinal_mlm` works.
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

# keep log files out of the repo
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="lmm-logs-"))

OCCASION_MEANS = [195.0, 203.0, 203.0, 209.5, 208.0, 213.0]


def make_wide(n_schools=6, per_school=10, seed=7):
    """Person-level table shaped like the language data, with real
    school and student variance so the growth models converge."""
    rng = np.random.default_rng(seed)
    rows = []
    sid = 1000
    for s in range(n_schools):
        # evenly spread so the school level is unmistakable
        school_eff = (s - (n_schools - 1) / 2) * 5.0
        for _ in range(per_school):
            sid += 1
            student_eff = rng.normal(0, 10)
            grammar = 200 + student_eff + rng.normal(0, 4)
            row = {
                "ID": sid,
                "school": f"S{s + 1:02d}",
                "Process": round(rng.normal(200, 10), 1),
                "Application": round(rng.normal(200, 10), 1),
                "Grammar": round(grammar, 1),
                "Goal4RitScoref08": round(rng.normal(200, 10), 1),
            }
            for k, mean in enumerate(OCCASION_MEANS, start=1):
                row[f"LangScore{k}"] = round(mean + school_eff + student_eff + rng.normal(0, 5), 1)
            rows.append(row)
    return pd.DataFrame(rows)


@pytest.fixture
def wide_csv(tmp_path):
    path = tmp_path / "Language.csv"
    make_wide().to_csv(path, index=False)
    return path


@pytest.fixture(scope="session")
def long_table():
    from longitudinal_mlm.pipeline import build_long_table

    wide = make_wide().rename(columns={"Goal4RitScoref08": "Goal"})
    return build_long_table(wide)
