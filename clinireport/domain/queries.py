"""Engine-neutral SQL for the quality checks and aggregate reports.

Statements use only JOIN, GROUP BY, SUM(CASE WHEN ...), CAST and
EXTRACT(YEAR FROM ...), which DuckDB and PostgreSQL both accept. Bind
parameters are written as `{param}` and formatted with the store's
placeholder before execution.
"""

from clinireport.domain.schema import (
    PATIENTS,
    SAMPLES,
    SUCCESSFUL_OUTCOME,
    TESTS,
    TREATMENTS,
    VALID_RESULTS,
    AgeGroup,
    ResultValue,
)

_VALID_RESULT_LIST = ", ".join(f"'{value}'" for value in VALID_RESULTS)


# ============================================================================
# Data quality checks
# ============================================================================

NULL_RESULT_COUNT = f"""
SELECT COUNT(*) AS null_results
FROM {TESTS}
WHERE result IS NULL
"""

INVALID_RESULTS = f"""
SELECT *
FROM {TESTS}
WHERE result NOT IN ({_VALID_RESULT_LIST})
   OR result IS NULL
"""

DUPLICATE_PATIENT_CODES = f"""
SELECT CAST(patient_code AS VARCHAR) AS patient_code, COUNT(*) AS occurrences
FROM {PATIENTS}
GROUP BY patient_code
HAVING COUNT(*) > 1
ORDER BY 1
"""

# Formatted per foreign key with table/column/parent names
REFERENTIAL_ISSUES = """
SELECT
    SUM(CASE WHEN c.{column} IS NULL THEN 1 ELSE 0 END) AS missing_keys,
    SUM(CASE WHEN c.{column} IS NOT NULL AND p.{referenced_column} IS NULL THEN 1 ELSE 0 END) AS orphans
FROM {table} c
LEFT JOIN {referenced_table} p ON c.{column} = p.{referenced_column}
"""


# ============================================================================
# Aggregate reports
# ============================================================================

TESTS_PER_PATIENT = f"""
SELECT s.patient_id, COUNT(t.test_id) AS total_tests
FROM {TESTS} t
JOIN {SAMPLES} s ON t.sample_id = s.sample_id
GROUP BY s.patient_id
ORDER BY s.patient_id
"""

OUTCOME_COUNTS = f"""
SELECT p.patient_id,
       SUM(CASE WHEN t.result = '{ResultValue.POSITIVE.value}' THEN 1 ELSE 0 END) AS positive_count,
       SUM(CASE WHEN t.result = '{ResultValue.NEGATIVE.value}' THEN 1 ELSE 0 END) AS negative_count
FROM {TESTS} t
JOIN {SAMPLES} s ON t.sample_id = s.sample_id
JOIN {PATIENTS} p ON s.patient_id = p.patient_id
GROUP BY p.patient_id
ORDER BY p.patient_id
"""

# Age is calendar-year subtraction: year(as_of) - year(dob).
# COUNT(t.patient_id) ignores the NULL rows produced by the left join, so a
# patient without treatments adds 0 to total_treatments.
AGE_GROUP_OUTCOMES = f"""
WITH patient_ages AS (
    SELECT p.patient_id,
           CAST({{param}} AS INTEGER) - CAST(EXTRACT(YEAR FROM CAST(p.dob AS DATE)) AS INTEGER) AS age
    FROM {PATIENTS} p
),
patient_groups AS (
    SELECT patient_id,
           CASE
               WHEN age IS NULL THEN '{AgeGroup.UNKNOWN.value}'
               WHEN age < 30 THEN '{AgeGroup.UNDER_30.value}'
               WHEN age BETWEEN 30 AND 50 THEN '{AgeGroup.FROM_30_TO_50.value}'
               ELSE '{AgeGroup.OVER_50.value}'
           END AS age_group
    FROM patient_ages
)
SELECT g.age_group,
       COUNT(DISTINCT g.patient_id) AS total_patients,
       COUNT(t.patient_id) AS total_treatments,
       SUM(CASE WHEN t.outcome = '{SUCCESSFUL_OUTCOME}' THEN 1 ELSE 0 END) AS successful_treatments,
       CASE
           WHEN COUNT(t.patient_id) = 0 THEN NULL
           ELSE ROUND(SUM(CASE WHEN t.outcome = '{SUCCESSFUL_OUTCOME}' THEN 1 ELSE 0 END) * 100.0
                      / COUNT(t.patient_id), 2)
       END AS success_rate_percent
FROM patient_groups g
LEFT JOIN {TREATMENTS} t ON g.patient_id = t.patient_id
GROUP BY g.age_group
"""


def bind(query: str, placeholder: str) -> str:
    """Substitute the engine's bind marker for `{param}`."""
    return query.replace("{param}", placeholder)
