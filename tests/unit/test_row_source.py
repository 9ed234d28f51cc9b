from rest_ingestor.directives import RuleSet
from rest_ingestor.parameters import ParameterBuilder
from rest_ingestor.row_source import RowSourceIterator


def make(fake_endpoint, fake_cursor, capture_log, rows, rules=None):
    ep = fake_endpoint("https://api/x")
    builder = ParameterBuilder(ep, rules, log=capture_log)
    builder.set_parameter("limit", 10)
    return ep, RowSourceIterator(fake_cursor(rows), builder, capture_log)


def test_each_row_becomes_parameters(fake_endpoint, fake_cursor, capture_log):
    ep, it = make(fake_endpoint, fake_cursor, capture_log, [{"id": 1}, {"id": 2}])
    assert it.advance() is True
    assert ep.current_effective_url() == "https://api/x?limit=10&id=1"
    assert it.advance() is True
    assert ep.current_effective_url() == "https://api/x?limit=10&id=2"
    assert it.advance() is False
    assert it.has_next is False
    assert it.rows_read == 2


def test_rows_failing_directives_are_skipped(
    fake_endpoint, fake_cursor, capture_log
):
    rules = {"id": RuleSet(verify=({"type": "regex", "format": "^[0-9]+$"},))}
    ep, it = make(
        fake_endpoint,
        fake_cursor,
        capture_log,
        [{"id": "bad"}, {"id": 5}, {"id": "worse"}],
        rules,
    )
    assert it.advance() is True
    assert ep.current_effective_url().endswith("id=5")
    assert it.advance() is False
    assert it.rows_read == 3
    assert it.rows_skipped == 2


def test_empty_cursor(fake_endpoint, fake_cursor, capture_log):
    _, it = make(fake_endpoint, fake_cursor, capture_log, [])
    assert it.has_next is True
    assert it.advance() is False
    assert it.has_next is False
    assert it.rows_read == 0
