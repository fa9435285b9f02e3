"""Unit tests for the timeline assembler.

Tests verify:
- End-to-end assembly from raw source tables
- Burden metrics, new-lesion flags and response markers on the final table
- Cohort restriction, undated-row removal and exclusion rules
"""

import numpy as np
import pandas as pd
import pytest

from recist_timeline.assembler import TimelineAssembler, TimelineResult, build_timeline
from recist_timeline.config import PipelineConfig
from recist_timeline.types import (
    BASELINE_SLD,
    CHANGE_FROM_BASELINE,
    CHANGE_FROM_NADIR,
    DATE,
    HAS_MEASURABLE_AT_BASELINE,
    HAS_NEW_LESION,
    HAS_NON_MEASURABLE_ONLY,
    HAS_NON_TARGET,
    INDICATOR_COLUMNS,
    LONGEST_DIAMETER,
    NADIR,
    OVERALL_RESPONSE,
    PATIENT,
    PCT_CHANGE_FROM_BASELINE,
    PCT_CHANGE_FROM_NADIR,
    SITE,
    SLD,
    TARGET_RESPONSE,
    TIMELINE_COLUMNS,
    VISIT,
    ExclusionRule,
    KeyCardinalityError,
    SourceTables,
)


COHORT = {"0101-001", "0101-002", "0202-003"}


def make_tables() -> SourceTables:
    """Source tables for three cohort patients and one outsider (0303-999)."""
    return SourceTables(
        baseline_measurable=pd.DataFrame([
            ("0101-001", "2021-01-05", 30.0),
            ("0101-001", "2021-01-05", 20.0),
            ("0202-003", "2021-01-10", 25.0),
            ("0303-999", "2021-01-11", 40.0),
        ], columns=[PATIENT, DATE, LONGEST_DIAMETER]),
        baseline_non_measurable=pd.DataFrame([
            ("0101-002", "2021-01-06", "Yes"),
            ("0202-003", "2021-01-10", "No"),
        ], columns=[PATIENT, DATE, HAS_NON_TARGET]),
        post_measurable=pd.DataFrame([
            ("0101-001", 1, "2021-03-01", 40.0),
            ("0101-001", 2, "2021-05-01", 28.0),
            ("0101-001", 2, "2021-05-01", 20.0),
            ("0202-003", 1, "2021-03-10", 30.0),
            ("0202-003", 2, "2021-05-10", 20.0),
            ("0303-999", 1, "2021-03-11", 45.0),
        ], columns=[PATIENT, VISIT, DATE, LONGEST_DIAMETER]),
        post_non_measurable=pd.DataFrame([
            ("0101-002", 1, "2021-03-02"),
            ("0101-002", 2, "2021-05-02"),
            ("0101-002", 3, "2021-07-02"),
            ("0101-002", 5, "2021-11-02"),
        ], columns=[PATIENT, VISIT, DATE]),
        new_lesions=pd.DataFrame([
            ("0101-002", 3, "2021-07-02"),
            ("0101-002", 5, "2021-11-02"),
        ], columns=[PATIENT, VISIT, DATE]),
        responses=pd.DataFrame([
            ("0101-001", 1, "PR", "Partial Response (PR)"),
            ("0101-001", 2, "SD", "Stable Disease (SD)"),
            ("0101-002", 1, None, "Non-CR/Non-PD"),
            ("0101-002", 2, None, "Indeterminate"),
            ("0101-002", 3, None, "Progressive Disease (PD)"),
            ("0101-002", 5, None, "Progressive Disease (PD)"),
            ("0202-003", 1, "SD", "Stable Disease (SD)"),
            ("0202-003", 2, "PR", "Partial Response (PR)"),
            ("0202-003", 4, "PD", "Progressive Disease (PD)"),
            ("0303-999", 1, "PD", "Progressive Disease (PD)"),
        ], columns=[PATIENT, VISIT, TARGET_RESPONSE, OVERALL_RESPONSE]),
    )


def row(table, patient, visit):
    """The single row of ``patient`` at ``visit``."""
    rows = table[(table[PATIENT] == patient) & (table[VISIT] == visit)]
    assert len(rows) == 1
    return rows.iloc[0]


class TestTimelineAssembler:
    """Tests for TimelineAssembler.assemble."""

    def setup_method(self):
        """Set up test fixtures."""
        self.assembler = TimelineAssembler()
        self.result = self.assembler.assemble(make_tables(), COHORT)
        self.table = self.result.table

    def test_returns_timeline_result(self):
        """assemble should return a TimelineResult."""
        assert isinstance(self.result, TimelineResult)
        assert self.result.cohort_size == 3

    def test_output_columns(self):
        """Every canonical column is present, passthrough fields after them."""
        assert list(self.table.columns[:len(TIMELINE_COLUMNS)]) == TIMELINE_COLUMNS
        assert TARGET_RESPONSE in self.table.columns

    def test_visit_counts(self):
        """Each cohort patient keeps its dated visits."""
        counts = self.table.groupby(PATIENT).size().to_dict()
        assert counts == {"0101-001": 3, "0101-002": 5, "0202-003": 3}

    def test_non_cohort_patient_absent(self):
        """Lesion and response data of non-cohort patients never surface."""
        assert "0303-999" not in set(self.table[PATIENT])

    def test_at_most_one_baseline_per_patient(self):
        """No patient has more than one visit-0 row."""
        baseline_counts = self.table[self.table[VISIT] == 0].groupby(PATIENT).size()
        assert (baseline_counts <= 1).all()

    def test_burden_scenario(self):
        """Baseline 50, then 40, then 48."""
        visit0 = row(self.table, "0101-001", 0)
        visit1 = row(self.table, "0101-001", 1)
        visit2 = row(self.table, "0101-001", 2)

        assert visit0[SLD] == pytest.approx(50.0)
        assert visit0[NADIR] == visit0[SLD]
        assert visit0[CHANGE_FROM_BASELINE] == 0

        assert visit1[NADIR] == pytest.approx(40.0)
        assert visit1[CHANGE_FROM_BASELINE] == pytest.approx(-10.0)
        assert visit1[PCT_CHANGE_FROM_BASELINE] == pytest.approx(-20.0)

        assert visit2[SLD] == pytest.approx(48.0)
        assert visit2[NADIR] == pytest.approx(40.0)
        assert visit2[CHANGE_FROM_NADIR] == pytest.approx(8.0)
        assert visit2[PCT_CHANGE_FROM_NADIR] == pytest.approx(20.0)
        assert visit2[BASELINE_SLD] == pytest.approx(50.0)

    def test_non_measurable_only_baseline(self):
        """A patient with only a non-target baseline lesion."""
        visit0 = row(self.table, "0101-002", 0)
        assert pd.isna(visit0[HAS_MEASURABLE_AT_BASELINE])
        assert visit0[HAS_NON_MEASURABLE_ONLY]
        assert np.isnan(visit0[SLD])
        assert visit0[DATE] == pd.Timestamp("2021-01-06")

    def test_measurable_baseline_flags(self):
        """A negative non-target flag does not affect a measurable baseline."""
        visit0 = row(self.table, "0202-003", 0)
        assert visit0[HAS_MEASURABLE_AT_BASELINE]
        assert not visit0[HAS_NON_MEASURABLE_ONLY]

    def test_new_lesion_first_occurrence_only(self):
        """New lesions at visits 3 and 5: only visit 3 is flagged."""
        assert row(self.table, "0101-002", 3)[HAS_NEW_LESION]
        assert not row(self.table, "0101-002", 5)[HAS_NEW_LESION]

    def test_new_lesion_defaults_false(self):
        """Visits without a detection are explicitly False."""
        assert self.table[HAS_NEW_LESION].dtype == bool
        assert self.table[HAS_NEW_LESION].sum() == 1

    def test_response_normalized_with_marker(self):
        """'Progressive Disease (PD)' becomes PD with its visit marker."""
        visit3 = row(self.table, "0101-002", 3)
        assert visit3[OVERALL_RESPONSE] == "PD"
        assert visit3["is_pd"]
        assert visit3["pd_visit"] == 3

    def test_unrecognized_response_passes_through(self):
        """'Indeterminate' stays as-is with every indicator False."""
        visit2 = row(self.table, "0101-002", 2)
        assert visit2[OVERALL_RESPONSE] == "Indeterminate"
        assert not visit2[INDICATOR_COLUMNS].any()

    def test_one_indicator_per_canonical_response(self):
        """Exactly one indicator per row with a canonical response."""
        counts = self.table[INDICATOR_COLUMNS].sum(axis=1)
        canonical = self.table[OVERALL_RESPONSE].isin(["CR", "PR", "SD", "Non-CR/Non-PD", "PD"])
        assert (counts[canonical] == 1).all()
        assert (counts[~canonical] == 0).all()

    def test_undated_response_rows_dropped(self):
        """A response with no lesion assessment behind it has no date and is dropped."""
        patient = self.table[self.table[PATIENT] == "0202-003"]
        assert 4 not in set(patient[VISIT])

    def test_percent_change_property(self):
        """Percent change is undefined without a non-zero baseline, exact otherwise."""
        table = self.table
        defined = table[BASELINE_SLD].notna() & (table[BASELINE_SLD] != 0) & table[SLD].notna()
        expected = 100 * table.loc[defined, CHANGE_FROM_BASELINE] / table.loc[defined, BASELINE_SLD]
        assert (table.loc[defined, PCT_CHANGE_FROM_BASELINE] == expected).all()
        no_baseline = table[BASELINE_SLD].isna() | (table[BASELINE_SLD] == 0)
        assert table.loc[no_baseline, PCT_CHANGE_FROM_BASELINE].isna().all()

    def test_site_code(self):
        """The site is the first four characters of the patient id."""
        assert set(self.table[SITE]) == {"0101", "0202"}

    def test_passthrough_response_field(self):
        """Configured passthrough columns are carried unchanged."""
        assert row(self.table, "0101-001", 1)[TARGET_RESPONSE] == "PR"

    def test_sorted_by_patient_and_visit(self):
        """Rows are ordered by patient then visit."""
        keys = list(zip(self.table[PATIENT], self.table[VISIT]))
        assert keys == sorted(keys)

    def test_summary_text(self):
        """The run summary reports counts and exclusions."""
        text = self.result.summary()
        assert "Cohort patients: 3" in text
        assert "Visits: 11" in text


class TestAssemblerConfiguration:
    """Tests for configuration-dependent behaviour."""

    def test_exclusion_rule_applied(self):
        """A named rule drops the patient's SLD-less rows except keep_visit."""
        config = PipelineConfig(
            exclusions=[ExclusionRule(name="drop-empty", patient="0101-002", keep_visit=2)]
        )
        result = TimelineAssembler(config).assemble(make_tables(), COHORT)
        patient = result.table[result.table[PATIENT] == "0101-002"]

        assert patient[VISIT].tolist() == [2]
        assert result.exclusions[0].count == 4
        # Other patients untouched
        assert (result.table[PATIENT] == "0101-001").sum() == 3

    def test_site_code_length(self):
        """Site code length is configurable."""
        table = build_timeline(make_tables(), COHORT, PipelineConfig(site_code_length=2))
        assert set(table[SITE]) == {"01", "02"}

    def test_cohort_restriction(self):
        """Dropping a patient from the cohort removes all of their rows."""
        table = build_timeline(make_tables(), {"0101-001"})
        assert set(table[PATIENT]) == {"0101-001"}

    def test_empty_cohort(self):
        """An empty cohort gives an empty table with the canonical columns."""
        table = build_timeline(make_tables(), set())
        assert len(table) == 0
        assert list(table.columns[:len(TIMELINE_COLUMNS)]) == TIMELINE_COLUMNS

    def test_duplicate_responses_fail_loudly(self):
        """Two responses for the same visit violate the key contract."""
        tables = make_tables()
        tables.responses = pd.concat([tables.responses, tables.responses.iloc[[0]]])
        with pytest.raises(KeyCardinalityError, match="response assessments"):
            TimelineAssembler().assemble(tables, COHORT)

    def test_from_yaml(self, tmp_path):
        """An assembler can be created from a YAML file."""
        path = tmp_path / "config.yaml"
        path.write_text("site_code_length: 3\n")
        assembler = TimelineAssembler.from_yaml(path)
        assert assembler.config.site_code_length == 3


class TestIrregularSourceRecords:
    """Tests for records the reconcilers cannot key cleanly."""

    def test_missing_visit_index_surfaces(self):
        """A non-target row without a visit index stays in the output."""
        tables = make_tables()
        tables.post_non_measurable = pd.concat([
            tables.post_non_measurable,
            pd.DataFrame([("0101-002", np.nan, "2021-09-02")], columns=[PATIENT, VISIT, DATE]),
        ], ignore_index=True)

        table = TimelineAssembler().assemble(tables, COHORT).table
        undefined = table[table[VISIT].isna()]

        assert len(undefined) == 1
        assert undefined[PATIENT].iloc[0] == "0101-002"
        assert undefined[DATE].iloc[0] == pd.Timestamp("2021-09-02")
        assert np.isnan(undefined[SLD].iloc[0])
        assert not undefined[HAS_NEW_LESION].iloc[0]
        assert not undefined[INDICATOR_COLUMNS].iloc[0].any()
        assert (table[PATIENT] == "0101-002").sum() == 6

    def test_split_visit_nadir_uses_previous_visit(self):
        """The visit after a date-split visit compares with that visit's SLD."""
        tables = make_tables()
        tables.post_non_measurable = pd.concat([
            tables.post_non_measurable,
            pd.DataFrame([("0101-001", 1, "2021-03-09")], columns=[PATIENT, VISIT, DATE]),
        ], ignore_index=True)

        table = TimelineAssembler().assemble(tables, COHORT).table
        patient = table[table[PATIENT] == "0101-001"]

        assert (patient[VISIT] == 1).sum() == 2
        visit2 = row(table, "0101-001", 2)
        assert visit2[NADIR] == pytest.approx(40.0)
        assert visit2[CHANGE_FROM_NADIR] == pytest.approx(8.0)
