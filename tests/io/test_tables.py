import numpy as np
import pandas as pd
import pytest

from chloro_wasserstein.io.tables import read_observations, validate_observations


def test_read_csv_renames_value_column(write_csv, monthly_rows):
    p = write_csv("modis_1deg.csv", monthly_rows)
    df = read_observations(str(p))
    assert list(df.columns) == ["lon", "lat", "month", "value"]
    assert len(df) == len(monthly_rows)
    assert df["month"].dtype.kind == "i"
    assert df["value"].iloc[0] == pytest.approx(5.0)


def test_read_detects_other_delimiters(write_csv, monthly_rows):
    p = write_csv("model_1deg.csv", monthly_rows, value_col="chlor_a", sep=";")
    df = read_observations(str(p), value_col="chlor_a")
    assert df["value"].sum() == pytest.approx(monthly_rows["value"].sum())


def test_read_strips_header_spaces_and_comments(tmp_path):
    p = tmp_path / "x_1deg.csv"
    p.write_text(
        "# exported by the regridder\n"
        " lon , lat , month , chl \n"
        "10.0,-20.0,1,0.5\n"
        "11.0,-20.0,1,\n",
        encoding="utf-8",
    )
    df = read_observations(str(p))
    assert df["value"].iloc[0] == pytest.approx(0.5)
    assert np.isnan(df["value"].iloc[1])


def test_read_missing_value_column(write_csv, monthly_rows):
    p = write_csv("modis_1deg.csv", monthly_rows)
    with pytest.raises(ValueError, match="Missing value column 'sst'"):
        read_observations(str(p), value_col="sst")


@pytest.mark.parametrize(
    "row, msg",
    [
        ({"lon": np.nan, "lat": 0.0, "month": 1, "value": 1.0}, "lon/lat/month"),
        ({"lon": 0.0, "lat": 0.0, "month": 13, "value": 1.0}, "1..12"),
        ({"lon": 0.0, "lat": 0.0, "month": 1.5, "value": 1.0}, "1..12"),
        ({"lon": 0.0, "lat": 0.0, "month": 1, "value": -0.1}, "Negative"),
    ],
)
def test_validate_rejects_bad_rows(row, msg):
    with pytest.raises(ValueError, match=msg):
        validate_observations(pd.DataFrame([row]), source="t")


def test_validate_missing_columns():
    with pytest.raises(ValueError, match="Missing required columns"):
        validate_observations(pd.DataFrame({"lon": [0.0], "lat": [0.0]}))
