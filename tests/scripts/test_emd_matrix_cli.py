# tests/scripts/test_emd_matrix_cli.py
"""
End-to-end and error-path tests for `emd_matrix_cli.py`.

Covers:
- discovery mode (--data) with resolution inferred from the file names;
- run mode (--run) with region/run TOML files under a temporary project root;
- progress prints, TSV report and optional PNG plots;
- error branches: missing mode, empty month, colliding rows, mixed resolutions.

The script is loaded from its file path; one test also runs it as a
subprocess with PYTHONPATH pointing at src/.
"""

from __future__ import annotations

import importlib.util
import os
import subprocess
import sys
from pathlib import Path

import pandas as pd
import pytest

from chloro_wasserstein.io.report import read_matrix_tsv

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

BBOX = ["--bbox", "10", "13", "-20", "-17"]


def _repo_root() -> Path:
    # Assuming this test lives in tests/scripts/, go two levels up to repo root
    return Path(__file__).resolve().parents[2]


def _script_path() -> Path:
    return _repo_root() / "scripts" / "emd_matrix_cli.py"


def _load_cli():
    spec = importlib.util.spec_from_file_location("emd_matrix_cli", _script_path())
    mod = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(mod)
    return mod


@pytest.fixture
def cli():
    return _load_cli()


@pytest.fixture
def two_sources(write_csv, make_rows, tmp_path):
    write_csv("modis_1deg.csv", make_rows())
    write_csv("model_1deg.csv", make_rows(shift=3.0))
    return tmp_path


def _write_project(root: Path, rows) -> None:
    (root / "config" / "regions").mkdir(parents=True)
    (root / "config" / "runs").mkdir(parents=True)
    (root / "data").mkdir()
    rows.rename(columns={"value": "chl"}).to_csv(
        root / "data" / "modis_1deg.csv", index=False
    )
    (root / "config" / "regions" / "box.toml").write_text(
        '[region]\nname = "Test box"\n'
        "lon_min = 10.0\nlon_max = 13.0\nlat_min = -20.0\nlat_max = -17.0\n",
        encoding="utf-8",
    )
    (root / "config" / "runs" / "demo.toml").write_text(
        'include_region = "config/regions/box.toml"\n'
        "[grid]\nresolution_deg = 1.0\n"
        '[[sources]]\nname = "modis"\npath = "data/modis_1deg.csv"\n'
        "[analysis]\nmonths = [1, 2, 3]\nn_clusters = 2\n",
        encoding="utf-8",
    )


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


def test_discovery_mode_end_to_end(cli, two_sources, capsys):
    out = two_sources / "out"
    res = cli.main(
        ["--data", str(two_sources), *BBOX,
         "--set", "analysis.months=1,2,3", "--outdir", str(out)]
    )
    stdout = capsys.readouterr().out

    assert [s.label for s in res.signatures] == [
        "model-01", "model-02", "model-03", "modis-01", "modis-02", "modis-03",
    ]
    assert res.matrix.oracle_calls == 15
    assert res.matrix.is_complete
    assert "[INFO] Discovered 2 table(s)" in stdout
    assert "[OK] 1/6: model-01" in stdout
    assert "[OK] 6/6: modis-03" in stdout
    assert "[INFO] Computing 15 pairwise distances" in stdout
    assert "[INFO] Dendrogram order:" in stdout

    df = read_matrix_tsv(out / "distance_matrix.tsv")
    assert list(df.index) == [s.label for s in res.signatures]
    assert {"mds_1", "mds_2"} <= set(df.columns)
    assert f"[DRIVER] Wrote {out / 'distance_matrix.tsv'}" in stdout
    assert not (out / "dendrogram.png").exists()


def test_discovery_mode_with_plots(cli, two_sources):
    out = two_sources / "plots_out"
    cli.main(
        ["--data", str(two_sources), "--tile", "1deg", *BBOX,
         "--set", "analysis.months=1,2", "--outdir", str(out), "--plots"]
    )
    assert (out / "dendrogram.png").exists()
    assert (out / "mds.png").exists()
    assert (out / "maps" / "modis-02.png").exists()
    assert (out / "flow_model-01_model-02.png").exists()


def test_run_mode_uses_region_and_run_files(cli, tmp_path, make_rows, capsys):
    _write_project(tmp_path, make_rows())
    out = tmp_path / "results"
    res = cli.main(
        ["--run", "demo", "--project-root", str(tmp_path), "--outdir", str(out)]
    )
    stdout = capsys.readouterr().out
    assert "[INFO] Loaded config:" in stdout
    assert "[INFO] Region:" in stdout
    assert res.matrix.labels == ["modis-01", "modis-02", "modis-03"]
    assert res.clustering.clusters is not None
    text = (out / "distance_matrix.tsv").read_text(encoding="utf-8")
    assert "#  Name: Test box" in text
    assert "#  Oracle calls: 3" in text


def test_print_config(cli, tmp_path, make_rows, capsys):
    _write_project(tmp_path, make_rows())
    assert cli.main(
        ["--run", "demo", "--project-root", str(tmp_path),
         "--set", "analysis.linkage=complete", "--print-config"]
    ) is None
    stdout = capsys.readouterr().out
    assert 'linkage = "complete"' in stdout
    assert not (tmp_path / "results").exists()


def test_single_signature_skips_clustering(cli, tmp_path, make_rows, capsys):
    d = tmp_path / "one"
    d.mkdir()
    make_rows().rename(columns={"value": "chl"}).to_csv(d / "modis_1deg.csv", index=False)
    res = cli.main(
        ["--data", str(d), *BBOX, "--set", "analysis.months=2",
         "--outdir", str(tmp_path / "o")]
    )
    assert res.clustering is None
    assert res.matrix.values.tolist() == [[0.0]]
    assert "[WARN] Single signature" in capsys.readouterr().out


def test_empty_month_reports_error(cli, two_sources):
    with pytest.raises(SystemExit) as ei:
        cli.main(
            ["--data", str(two_sources), *BBOX, "--set", "analysis.months=1,7",
             "--outdir", str(two_sources / "o")]
        )
    msg = str(ei.value)
    assert msg.startswith("[ERROR]")
    assert "month 7" in msg


def test_colliding_rows_report_error(cli, write_csv, tmp_path):
    rows = pd.DataFrame(
        {"lon": [10.5, 10.9], "lat": [-19.5, -19.5], "month": [1, 1], "value": [1.0, 2.0]}
    )
    write_csv("modis_1deg.csv", rows)
    with pytest.raises(SystemExit) as ei:
        cli.main(["--data", str(tmp_path), *BBOX, "--set", "analysis.months=1"])
    msg = str(ei.value)
    assert msg.startswith("[ERROR]")
    assert "'modis-01' hold more than one observation" in msg


def test_mixed_resolutions_need_tile(cli, write_csv, make_rows, tmp_path):
    write_csv("modis_1deg.csv", make_rows())
    write_csv("modis_0p25deg.csv", make_rows())
    with pytest.raises(SystemExit, match="mixed resolutions"):
        cli.main(["--data", str(tmp_path), *BBOX])


def test_missing_mode_is_usage_error(cli, capsys):
    with pytest.raises(SystemExit) as ei:
        cli.main([])
    assert ei.value.code == 2
    assert "--run" in capsys.readouterr().err


def test_examples_flag_in_process(cli, capsys):
    assert cli.main(["--examples"]) is None
    out = capsys.readouterr().out
    assert "Command-line usage examples" in out
    assert "--run benguela" in out
    assert "Notes" not in out


def test_examples_flag_subprocess():
    env = dict(os.environ)
    src = str(_repo_root() / "src")
    env["PYTHONPATH"] = src + os.pathsep + env.get("PYTHONPATH", "")
    proc = subprocess.run(
        [sys.executable, str(_script_path()), "--examples"],
        capture_output=True,
        text=True,
        env=env,
    )
    assert proc.returncode == 0, proc.stderr
    assert "--print-config" in proc.stdout
