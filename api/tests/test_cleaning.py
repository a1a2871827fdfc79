import json

import numpy as np
import pandas as pd
import pytest

from conftest import FakeGateway
from insightstream.agents.cleaning import (
    OPERATIONS,
    CleaningStep,
    apply_steps,
    clean_dataset,
    heuristic_plan,
    mentioned_columns,
    plan_cleaning,
)


def test_remove_outliers_on_named_column(frame):
    outcome = apply_steps(frame, [CleaningStep("remove_outliers", {"column": "x"})])
    assert outcome.rows_before == 100
    assert outcome.rows_after == 92
    assert outcome.rows_changed == 8
    assert outcome.frame["X"].max() <= 20
    assert "Removed 8 rows with outliers in 'X'" in outcome.applied[0]
    assert outcome.explanation().endswith("Rows: 100 -> 92 (8 removed).")


def test_drop_duplicates_and_nulls():
    df = pd.DataFrame({"a": [1, 1, 2, None], "b": ["x", "x", "y", "z"]})
    outcome = apply_steps(df, [CleaningStep("drop_duplicates"), CleaningStep("drop_nulls")])
    assert outcome.rows_after == 2
    assert outcome.applied == ["Removed 1 duplicate row", "Removed 1 row with missing values"]


def test_fill_nulls_auto_uses_median_and_mode():
    df = pd.DataFrame({"age": [20.0, np.nan, 40.0, 30.0], "city": ["Oslo", None, "Oslo", "Lima"]})
    outcome = apply_steps(df, [CleaningStep("fill_nulls", {"strategy": "auto"})])
    assert outcome.frame["age"].tolist() == [20.0, 30.0, 40.0, 30.0]
    assert outcome.frame["city"].tolist() == ["Oslo", "Oslo", "Oslo", "Lima"]
    assert outcome.rows_changed == 0
    assert outcome.applied[0].startswith("Filled 2 missing values")


def test_fill_nulls_with_value():
    df = pd.DataFrame({"score": [1.0, np.nan]})
    outcome = apply_steps(df, [CleaningStep("fill_nulls", {"column": "score", "value": 0})])
    assert outcome.frame["score"].tolist() == [1.0, 0.0]


def test_standardize_text_and_columns():
    df = pd.DataFrame({"City Name": ["  Hanoi ", "PARIS", None], "TotalSales": [1, 2, 3]})
    outcome = apply_steps(df, [CleaningStep("standardize_text"), CleaningStep("standardize_columns")])
    assert list(outcome.frame.columns) == ["city_name", "total_sales"]
    assert outcome.frame["city_name"].tolist()[:2] == ["hanoi", "paris"]
    assert pd.isna(outcome.frame["city_name"].iloc[2])


def test_missing_column_is_skipped(frame):
    outcome = apply_steps(frame, [CleaningStep("drop_column", {"column": "price"}), CleaningStep("explode")])
    assert outcome.applied == []
    assert outcome.skipped == ["drop_column: column 'price' does not exist", "explode: unsupported operation"]
    assert outcome.rows_after == 100
    assert outcome.explanation().startswith("I couldn't apply any cleaning step")


def test_mentioned_columns_match_whole_words(frame):
    assert mentioned_columns("remove outliers from column X", frame) == ["X"]
    assert mentioned_columns("fix the ids", frame) == []


def test_heuristic_plan_for_outliers(frame):
    steps = heuristic_plan("remove outliers from column X", frame)
    assert [s.to_dict() for s in steps] == [{"operation": "remove_outliers", "params": {"columns": ["X"]}}]


def test_heuristic_plan_for_generic_clean(frame):
    ops = [s.operation for s in heuristic_plan("clean this data", frame)]
    assert ops == ["drop_duplicates", "standardize_text", "drop_nulls"]


def test_heuristic_plan_fill_strategy(frame):
    steps = heuristic_plan("fill missing values with the mean", frame)
    assert steps[0].operation == "fill_nulls"
    assert steps[0].params == {"strategy": "mean"}


def test_plan_uses_model_steps(frame):
    plan = {"steps": [
        {"operation": "remove_outliers", "params": {"column": "X"}},
        {"operation": "make_coffee", "params": {}},
        {"operation": "drop_duplicates"},
    ]}
    gw = FakeGateway(["Plan:\n```json\n" + json.dumps(plan) + "\n```"])
    steps = plan_cleaning(gw, frame, "remove outliers in X and duplicates")
    assert [s.operation for s in steps] == ["remove_outliers", "drop_duplicates"]
    assert steps[0].params == {"column": "X"}
    user_prompt = gw.calls[0]["messages"][1]["content"]
    assert "remove outliers in X and duplicates" in user_prompt
    assert '"X"' in user_prompt


def test_unusable_plan_falls_back_to_keywords(frame):
    gw = FakeGateway(["I would remove the outliers."])
    outcome, steps = clean_dataset(gw, frame, "remove outliers from column X")
    assert [s.operation for s in steps] == ["remove_outliers"]
    assert outcome.rows_after == 92


def test_standardize_text_skips_numeric_column(frame):
    outcome = apply_steps(frame, [CleaningStep("standardize_text", {"column": "X"})])
    assert outcome.applied == []
    assert outcome.skipped == ["standardize_text: column 'X' is not text"]
    assert outcome.frame["X"].tolist() == frame["X"].tolist()


def test_standardize_text_keeps_only_text_columns(frame):
    outcome = apply_steps(frame, [CleaningStep("standardize_text", {"columns": ["X", "city"]})])
    assert outcome.applied == ["Standardized text (trimmed whitespace, lowercased) in 'city'"]
    assert outcome.frame["city"].iloc[0] == "hanoi"


@pytest.mark.parametrize("factor", ["1.5x", [1], -2, 0])
def test_bad_outlier_factor_is_skipped(frame, factor):
    outcome = apply_steps(frame, [CleaningStep("remove_outliers", {"factor": factor})])
    assert outcome.rows_after == 100
    assert outcome.skipped == [f"remove_outliers: invalid IQR factor {factor!r}"]


def test_numeric_string_factor_is_accepted(frame):
    outcome = apply_steps(frame, [CleaningStep("remove_outliers", {"column": "X", "factor": "1.5"})])
    assert outcome.rows_after == 92


def test_single_string_columns_param_is_one_column(frame):
    outcome = apply_steps(frame, [CleaningStep("remove_outliers", {"columns": "X"})])
    assert outcome.rows_after == 92
    assert outcome.skipped == []


def test_value_strategy_without_value_is_skipped():
    df = pd.DataFrame({"a": [1.0, np.nan]})
    outcome = apply_steps(df, [CleaningStep("fill_nulls", {"strategy": "value", "column": "a"})])
    assert outcome.skipped == ["fill_nulls: strategy 'value' needs a value"]
    assert outcome.frame["a"].isna().sum() == 1


def test_failing_step_does_not_stop_the_plan(frame, monkeypatch):
    def broken(df, params):
        raise TypeError("Invalid value '['10', '11']' for dtype int64")

    monkeypatch.setitem(OPERATIONS, "broken", broken)
    outcome = apply_steps(frame, [CleaningStep("broken"), CleaningStep("remove_outliers", {"column": "X"})])
    assert outcome.skipped == ["broken: could not be applied with the given parameters"]
    assert outcome.rows_after == 92
    assert "10" not in outcome.explanation().split("Skipped:")[1].split("Rows:")[0]
