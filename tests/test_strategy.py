import logging

import pytest

from speedster.measurements.errors import ConfigError
from speedster.measurements.models import Strategy
from speedster.measurements.strategy import parse_server_ids, parse_strategy, resolve


def test_unknown_strategy_falls_back_to_single_server_with_warning(caplog):
    with caplog.at_level(logging.WARNING, logger="speedster.measurements.strategy"):
        config = resolve([], 1, "invalid-strategy")

    assert config.strategy is Strategy.SINGLE_SERVER
    assert config.server_ids == ()
    assert "invalid-strategy" in caplog.text


def test_single_server_rejects_more_than_one_pin():
    with pytest.raises(ConfigError, match="single-server.*found 2"):
        resolve(["1", "2"], 2, "single-server")


def test_single_server_accepts_one_pin_for_many_rounds():
    config = resolve("4711", 5, "single-server")

    assert config.server_ids == ("4711",)
    assert config.measurement_count == 5


@pytest.mark.parametrize("server_ids", ["", "1,2,3"])
def test_multi_server_accepts_no_pins_or_one_per_round(server_ids):
    config = resolve(server_ids, 3, "multi-server")

    assert config.strategy is Strategy.MULTI_SERVER
    assert len(config.server_ids) in (0, 3)


def test_multi_server_pin_count_must_match_rounds():
    with pytest.raises(ConfigError) as excinfo:
        resolve("1,2", 3, "multi-server")

    message = str(excinfo.value)
    assert "multi-server" in message
    assert "exactly 3" in message
    assert "found 2" in message


@pytest.mark.parametrize("count", [0, -2])
def test_measurement_count_below_one_is_rejected(count):
    with pytest.raises(ConfigError, match="at least 1"):
        resolve([], count, "single-server")


def test_server_ids_are_trimmed_and_keep_order_and_duplicates():
    assert parse_server_ids(" 30, ,10 ,30,") == ["30", "10", "30"]
    assert parse_server_ids(["  7", "", 8]) == ["7", "8"]
    assert parse_server_ids(4711) == ["4711"]
    assert parse_server_ids(None) == []


def test_duplicate_pins_count_towards_multi_server_cardinality():
    config = resolve("5,5", 2, "multi-server")

    assert config.server_ids == ("5", "5")


def test_strategy_names_are_case_insensitive():
    assert parse_strategy(" Multi-Server ") is Strategy.MULTI_SERVER


def test_passthrough_values_reach_run_config():
    config = resolve(
        "",
        1,
        "single-server",
        skip_upload=True,
        timeout=12.0,
        concurrent_streams=8,
        test_duration=5.0,
    )

    assert config.skip_upload is True
    assert config.skip_download is False
    assert config.timeout == 12.0
    assert config.concurrent_streams == 8
    assert config.test_duration == 5.0


def test_list_entries_are_split_on_commas():
    assert parse_server_ids(["1,2", " 3 ", 4]) == ["1", "2", "3", "4"]


@pytest.mark.parametrize("count", ["3", 2.5, True, None])
def test_measurement_count_must_be_an_integer(count):
    with pytest.raises(ConfigError, match="integer"):
        resolve([], count, "single-server")
