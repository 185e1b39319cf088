import pytest
import yaml

from speedster.config import load_config, parse_duration
from speedster.measurements.errors import ConfigError
from speedster.measurements.models import Strategy


def _write_config(tmp_path, data):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


def test_defaults_without_config_file(app_config, tmp_path):
    run_config = app_config.run_config()

    assert app_config.paths.data_dir == (tmp_path / "data").resolve()
    assert app_config.paths.data_dir.is_dir()
    assert run_config.strategy is Strategy.SINGLE_SERVER
    assert run_config.measurement_count == 1
    assert run_config.server_ids == ()
    assert run_config.timeout == 30.0
    assert app_config.telemetry.service_name == "speedster"


def test_explicit_missing_file_is_an_error(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "missing.yaml"), environ={})


def test_yaml_sections_are_loaded(tmp_path):
    path = _write_config(
        tmp_path,
        {
            "speedtest": {
                "server_ids": [1234, 5678],
                "measurement_count": 2,
                "strategy": "multi-server",
                "timeout": "1m30s",
                "skip_upload": True,
            },
            "scheduler": {"interval_minutes": 15},
            "telemetry": {"enabled": False},
        },
    )

    config = load_config(str(path), environ={})
    run_config = config.run_config()

    assert run_config.server_ids == ("1234", "5678")
    assert run_config.strategy is Strategy.MULTI_SERVER
    assert run_config.timeout == 90.0
    assert run_config.skip_upload is True
    assert config.scheduler.interval_minutes == 15
    assert config.telemetry.enabled is False


def test_environment_overrides_file(tmp_path):
    path = _write_config(tmp_path, {"speedtest": {"measurement_count": 5}})
    environ = {
        "SPEEDTEST_SERVER_ID": " 11, 22 ,33",
        "SPEEDTEST_MEASUREMENT_COUNT": "3",
        "SPEEDTEST_MEASUREMENT_STRATEGY": "multi-server",
        "SPEEDTEST_SKIP_DOWNLOAD": "true",
        "SPEEDTEST_TIMEOUT": "45",
        "SPEEDTEST_TEST_DURATION": "500ms",
        "SPEEDTEST_CONCURRENT_STREAMS": "8",
        "OTEL_SERVICE_NAME": "speedster-home",
        "OTEL_SERVICE_NAMESPACE": "lab",
    }

    config = load_config(str(path), environ=environ)
    run_config = config.run_config()

    assert run_config.server_ids == ("11", "22", "33")
    assert run_config.measurement_count == 3
    assert run_config.skip_download is True
    assert run_config.timeout == 45.0
    assert run_config.test_duration == 0.5
    assert run_config.concurrent_streams == 8
    assert config.telemetry.service_name == "speedster-home"
    assert config.telemetry.service_namespace == "lab"


def test_unparsable_environment_values_keep_defaults(tmp_path, caplog):
    environ = {"SPEEDTEST_MEASUREMENT_COUNT": "many", "SPEEDTEST_TIMEOUT": "soon"}

    config = load_config(str(_write_config(tmp_path, {})), environ=environ)

    assert config.speedtest.measurement_count == 1
    assert config.speedtest.timeout == 30.0
    assert "SPEEDTEST_MEASUREMENT_COUNT" in caplog.text


def test_loader_clamps_count_below_one(tmp_path):
    config = load_config(str(_write_config(tmp_path, {})), environ={"SPEEDTEST_MEASUREMENT_COUNT": "0"})

    assert config.run_config().measurement_count == 1


def test_invalid_combination_raises_config_error(tmp_path):
    environ = {"SPEEDTEST_SERVER_ID": "1,2", "SPEEDTEST_MEASUREMENT_STRATEGY": "single-server"}
    config = load_config(str(_write_config(tmp_path, {})), environ=environ)

    with pytest.raises(ConfigError):
        config.run_config()


@pytest.mark.parametrize(
    "raw, expected",
    [("30s", 30.0), ("1m30s", 90.0), ("500ms", 0.5), ("2h", 7200.0), ("12", 12.0), (7, 7.0)],
)
def test_parse_duration(raw, expected):
    assert parse_duration(raw) == pytest.approx(expected)


@pytest.mark.parametrize("raw", ["", "ten seconds", "5x", "1m trailing"])
def test_parse_duration_rejects_garbage(raw):
    with pytest.raises(ValueError):
        parse_duration(raw)


def test_yaml_numbers_given_as_strings_are_coerced(tmp_path):
    path = _write_config(
        tmp_path,
        {"speedtest": {"measurement_count": "3", "concurrent_streams": "4", "strategy": "multi-server"}},
    )

    run_config = load_config(str(path), environ={}).run_config()

    assert run_config.measurement_count == 3
    assert run_config.concurrent_streams == 4


@pytest.mark.parametrize(
    "section",
    [
        {"measurement_count": "three"},
        {"concurrent_streams": [4]},
        {"timeout": "soon"},
        {"run_deadline": None},
        {"unknown_option": True},
    ],
)
def test_invalid_yaml_values_raise_config_error(tmp_path, section):
    path = _write_config(tmp_path, {"speedtest": section})

    with pytest.raises(ConfigError):
        load_config(str(path), environ={})
