import pytest

from rest_ingestor import directives
from rest_ingestor.directives import RuleSet
from rest_ingestor.errors import ConfigurationError, DirectiveError


def rs(transform=(), verify=()):
    return RuleSet(tuple(transform), tuple(verify))


# --- verify_directives -------------------------------------------------------


@pytest.mark.parametrize(
    "directive",
    [
        {"type": "datetime"},
        {"format": "%Y"},
        {"type": None, "format": "%Y"},
    ],
)
def test_verify_rejects_missing_type_or_format(directive):
    with pytest.raises(ConfigurationError, match="must specify a type and format"):
        directives.verify_directives("p", rs(transform=[directive]))


def test_verify_rejects_unknown_transform_type():
    with pytest.raises(ConfigurationError, match="Unsupported transform type 'upper'"):
        directives.verify_directives(
            "p", rs(transform=[{"type": "upper", "format": "x"}])
        )


def test_verify_rejects_datetime_as_verification():
    with pytest.raises(ConfigurationError, match="Unsupported verify type"):
        directives.verify_directives(
            "p", rs(verify=[{"type": "datetime", "format": "%Y"}])
        )


def test_verify_rejects_bad_regex():
    with pytest.raises(ConfigurationError, match="Invalid regex"):
        directives.verify_directives(
            "p", rs(verify=[{"type": "regex", "format": "("}])
        )


def test_verify_accepts_well_formed_rules():
    rules = rs(
        transform=[{"type": "sprintf", "format": "%05d"}],
        verify=[{"type": "regex", "format": "/^\\d+$/"}],
    )
    assert directives.verify_directives("p", rules) is True


# --- rule_set_from_config ------------------------------------------------------


def test_rule_set_normalizes_singular_and_list():
    single = directives.rule_set_from_config(
        "a", {"transform": {"type": "regex", "format": "x"}}
    )
    many = directives.rule_set_from_config(
        "a",
        {
            "transform": [
                {"type": "regex", "format": "x"},
                {"type": "sprintf", "format": "%s"},
            ],
            "verify": {"type": "regex", "format": "y"},
        },
    )
    assert len(single.transform) == 1 and single.verify == ()
    assert len(many.transform) == 2 and len(many.verify) == 1
    assert not RuleSet()


def test_rule_set_rejects_non_object_entries():
    with pytest.raises(ConfigurationError, match="must be an object"):
        directives.rule_set_from_config("a", {"verify": ["^x$"]})


# --- transforms ----------------------------------------------------------------


def test_transforms_compose_left_to_right():
    rules = rs(
        transform=[
            {"type": "regex", "format": "[0-9]+"},
            {"type": "sprintf", "format": "%06d"},
        ]
    )
    assert directives.apply_directives("order-42-b", rules) == "000042"


def test_regex_transform_without_match_returns_input():
    rules = rs(transform=[{"type": "regex", "format": "[0-9]+"}])
    assert directives.apply_directives("abc", rules) == "abc"


def test_datetime_transform_reformats():
    rules = rs(transform=[{"type": "datetime", "format": "%Y%m%d"}])
    assert directives.apply_directives("2024-03-05T10:00:00Z", rules) == "20240305"


def test_datetime_transform_with_input_format():
    rules = rs(
        transform=[
            {"type": "datetime", "format": "%Y-%m-%d", "input_format": "%d/%m/%Y"}
        ]
    )
    assert directives.apply_directives("05/03/2024", rules) == "2024-03-05"


def test_datetime_transform_failure_is_directive_error():
    rules = rs(transform=[{"type": "datetime", "format": "%Y"}])
    with pytest.raises(DirectiveError):
        directives.apply_directives("not a date", rules)


def test_sprintf_coerces_numeric_strings():
    rules = rs(transform=[{"type": "sprintf", "format": "%03d"}])
    assert directives.apply_directives("7", rules) == "007"


def test_sprintf_failure_is_directive_error():
    rules = rs(transform=[{"type": "sprintf", "format": "%d"}])
    with pytest.raises(DirectiveError):
        directives.apply_directives("seven", rules)


# --- verification --------------------------------------------------------------


def test_verify_runs_after_transforms():
    rules = rs(
        transform=[{"type": "sprintf", "format": "%04d"}],
        verify=[{"type": "regex", "format": "^[0-9]{4}$"}],
    )
    assert directives.apply_directives(12, rules) == "0012"


def test_verify_failure_raises_directive_error():
    rules = rs(verify=[{"type": "regex", "format": "/^[a-z]+$/"}])
    with pytest.raises(DirectiveError, match="verification"):
        directives.apply_directives("ABC", rules)


def test_delimited_pattern_flags():
    assert directives.compile_pattern("/^abc$/i").search("ABC")
    assert directives.compile_pattern("^abc$").search("ABC") is None


# --- split_directives ----------------------------------------------------------


def test_split_parameters_keyed_by_name():
    plain, table = directives.split_directives(
        {"a": 1, "b": {"value": "x", "verify": {"type": "regex", "format": "x"}}},
        "value",
    )
    assert plain == {"a": 1, "b": "x"}
    assert set(table) == {"b"}


def test_split_field_map_keyed_by_response_field():
    plain, table = directives.split_directives(
        {"col_name": {"name": "label", "transform": {"type": "regex", "format": "x"}}},
        "name",
        key_by_value=True,
    )
    assert plain == {"col_name": "label"}
    assert set(table) == {"label"}


def test_split_requires_value_key():
    with pytest.raises(ConfigurationError, match="does not specify a 'value' key"):
        directives.split_directives({"a": {"transform": {}}}, "value")


# --- unsupported or broken formats ---------------------------------------------


@pytest.mark.parametrize("fmt", ["%q", "100%", "%s and %s"])
def test_verify_rejects_unusable_sprintf_formats(fmt):
    with pytest.raises(ConfigurationError, match="Invalid sprintf format"):
        directives.verify_directives(
            "p", rs(transform=[{"type": "sprintf", "format": fmt}])
        )


def test_sprintf_bad_conversion_is_directive_error_when_applied():
    rules = rs(transform=[{"type": "sprintf", "format": "%q"}])
    with pytest.raises(DirectiveError, match="Failed sprintf transform"):
        directives.apply_directives("7", rules)


def test_unknown_transform_type_is_fatal_when_applied():
    with pytest.raises(ConfigurationError, match="Unsupported transform type 'upper'"):
        directives.apply_directives(
            "x", rs(transform=[{"type": "upper", "format": "x"}])
        )
    with pytest.raises(ConfigurationError):
        directives.apply_transform("x", {"format": "x"})


def test_unknown_verify_type_is_fatal_when_applied():
    with pytest.raises(ConfigurationError, match="Unsupported verify type 'datetime'"):
        directives.apply_directives(
            "x", rs(verify=[{"type": "datetime", "format": "%Y"}])
        )
