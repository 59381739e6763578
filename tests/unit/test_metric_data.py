"""
Unit tests -- GetMetricData entry builder and API-mode selection.
"""
from src.cloudwatch.metric_data import (
    build_metric_data_queries,
    build_metric_data_query,
    build_search_expression,
)
from src.cloudwatch.models import (
    CloudWatchQuery,
    GMDApiMode,
    MetricEditorMode,
    MetricQueryType,
)


def _query(**overrides) -> CloudWatchQuery:
    base = dict(
        ref_id="A",
        id="queryA",
        region="us-east-1",
        namespace="AWS/EC2",
        metric_name="CPUUtilization",
        statistic="Average",
        dimensions={"InstanceId": ["i-123"]},
        period=300,
    )
    base.update(overrides)
    return CloudWatchQuery(**base)


# ── Mode selection ───────────────────────────────────────

def test_single_value_builder_is_metric_stat():
    assert _query().gmd_api_mode() == GMDApiMode.METRIC_STAT


def test_multi_value_dimension_is_inferred_search():
    query = _query(dimensions={"InstanceId": ["i-1", "i-2"]})
    assert query.is_multi_value_dimension()
    assert query.gmd_api_mode() == GMDApiMode.INFERRED_SEARCH_EXPRESSION


def test_wildcard_dimension_is_inferred_search():
    assert _query(dimensions={"InstanceId": ["*"]}).gmd_api_mode() == GMDApiMode.INFERRED_SEARCH_EXPRESSION


def test_no_dimensions_without_match_exact_is_inferred_search():
    assert _query(dimensions={}, match_exact=False).gmd_api_mode() == GMDApiMode.INFERRED_SEARCH_EXPRESSION
    assert _query(dimensions={}).gmd_api_mode() == GMDApiMode.METRIC_STAT


def test_raw_editor_is_math_expression():
    query = _query(metric_editor_mode=MetricEditorMode.RAW, expression="SUM(a)")
    assert query.gmd_api_mode() == GMDApiMode.MATH_EXPRESSION


def test_query_type_is_sql_regardless_of_editor():
    for mode in MetricEditorMode:
        query = _query(metric_query_type=MetricQueryType.QUERY, metric_editor_mode=mode)
        assert query.gmd_api_mode() == GMDApiMode.SQL_EXPRESSION


# ── Entries ──────────────────────────────────────────────

def test_metric_stat_entry():
    entry = build_metric_data_query(_query())
    assert entry == {
        "Id": "queryA",
        "ReturnData": True,
        "MetricStat": {
            "Metric": {
                "Namespace": "AWS/EC2",
                "MetricName": "CPUUtilization",
                "Dimensions": [{"Name": "InstanceId", "Value": "i-123"}],
            },
            "Period": 300,
            "Stat": "Average",
        },
    }


def test_math_expression_entry():
    query = _query(metric_editor_mode=MetricEditorMode.RAW, expression="SUM(a)", return_data=False)
    entry = build_metric_data_query(query)
    assert entry == {"Id": "queryA", "ReturnData": False, "Expression": "SUM(a)", "Period": 300}


def test_sql_expression_entry():
    query = _query(metric_query_type=MetricQueryType.QUERY, sql_expression="SELECT 1")
    entry = build_metric_data_query(query)
    assert entry["Expression"] == "SELECT 1"
    assert "MetricStat" not in entry


def test_dynamic_label_alias_becomes_label():
    entry = build_metric_data_query(_query(alias="${PROP('Dim.InstanceId')}"))
    assert entry["Label"] == "${PROP('Dim.InstanceId')}"


def test_plain_alias_is_not_a_label():
    assert "Label" not in build_metric_data_query(_query(alias="cpu"))


def test_explicit_label_wins():
    entry = build_metric_data_query(_query(alias="${LABEL}", label="CPU"))
    assert entry["Label"] == "CPU"


# ── Search expressions ───────────────────────────────────

def test_search_expression_match_exact():
    query = _query(dimensions={"InstanceId": ["i-1", "i-2"], "AutoScalingGroupName": ["asg"]})
    assert build_search_expression(query, "Average") == (
        "REMOVE_EMPTY(SEARCH('{\"AWS/EC2\",\"AutoScalingGroupName\",\"InstanceId\"} "
        "MetricName=\"CPUUtilization\" \"AutoScalingGroupName\"=\"asg\" "
        "\"InstanceId\"=(\"i-1\" OR \"i-2\")', 'Average', 300))"
    )


def test_search_expression_wildcard_not_exact():
    query = _query(dimensions={"InstanceId": ["*"]}, match_exact=False)
    assert build_search_expression(query, "Sum") == (
        "REMOVE_EMPTY(SEARCH('Namespace=\"AWS/EC2\" MetricName=\"CPUUtilization\" "
        "\"InstanceId\"', 'Sum', 300))"
    )


def test_search_expression_escapes_quotes():
    query = _query(dimensions={"Name": ['say "hi"', "x"]})
    assert '\\"hi\\"' in build_search_expression(query, "Average")


def test_inferred_search_entry_uses_expression():
    entry = build_metric_data_query(_query(dimensions={"InstanceId": ["i-1", "i-2"]}))
    assert entry["Expression"].startswith("REMOVE_EMPTY(SEARCH(")
    assert "MetricStat" not in entry


def test_build_many_keeps_order():
    entries = build_metric_data_queries([_query(id="a"), _query(id="b")])
    assert [e["Id"] for e in entries] == ["a", "b"]


def test_search_expression_escapes_single_quotes():
    query = _query(metric_name="It's", dimensions={"Name": ["o'neil", "x"]}, match_exact=False)
    expression = build_search_expression(query, "Average")
    assert expression == (
        "REMOVE_EMPTY(SEARCH('Namespace=\"AWS/EC2\" MetricName=\"It\\'s\" "
        "\"Name\"=(\"o\\'neil\" OR \"x\")', 'Average', 300))"
    )
