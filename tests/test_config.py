import pytest

from logflow.config import DEFAULTS, get_config
from logflow.errors import InvalidInput
from logflow.timeutil import DEFAULT_TIMEZONE


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    """No stray logflow.yaml or LOGFLOW_CONFIG leaks into these tests."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("LOGFLOW_CONFIG", raising=False)
    return tmp_path


def write_yaml(directory, text, name="logflow.yaml"):
    path = directory / name
    path.write_text(text, encoding="utf-8")
    return path


class TestDefaults:
    def test_defaults_without_file_or_env(self):
        config = get_config(environ={})
        assert config == DEFAULTS

    def test_resolved_open_questions(self):
        config = get_config(environ={})
        assert config["request_timeout_seconds"] == 10.0
        assert config["timezone"] == "Asia/Kolkata"
        assert config["crash_window_minutes"] == 7

    def test_timezone_default_shared_with_time_conversion(self):
        assert DEFAULTS["timezone"] == DEFAULT_TIMEZONE


class TestLayering:
    def test_yaml_overrides_defaults(self, isolated_cwd):
        path = write_yaml(isolated_cwd, "api_base_url: http://logs.internal:9000/\nsidebar_limit: 25\n", "custom.yaml")
        config = get_config(path, environ={})
        assert config["api_base_url"] == "http://logs.internal:9000"
        assert config["sidebar_limit"] == 25

    def test_default_file_in_cwd_is_picked_up(self, isolated_cwd):
        write_yaml(isolated_cwd, "timezone: UTC\n")
        assert get_config(environ={})["timezone"] == "UTC"

    def test_config_env_var_points_at_file(self, isolated_cwd, monkeypatch):
        path = write_yaml(isolated_cwd, "port: 9100\n", "elsewhere.yaml")
        monkeypatch.setenv("LOGFLOW_CONFIG", str(path))
        assert get_config(environ={})["port"] == 9100

    def test_env_overrides_yaml(self, isolated_cwd):
        path = write_yaml(isolated_cwd, "sidebar_poll_seconds: 10\n")
        config = get_config(path, environ={"LOGFLOW_SIDEBAR_POLL_SECONDS": "2.5"})
        assert config["sidebar_poll_seconds"] == 2.5

    def test_env_values_converted(self):
        config = get_config(environ={"LOGFLOW_WEB_PORT": "9000", "LOGFLOW_REQUEST_TIMEOUT_SECONDS": "4"})
        assert config["port"] == 9000
        assert config["request_timeout_seconds"] == 4.0

    def test_empty_yaml_file(self, isolated_cwd):
        path = write_yaml(isolated_cwd, "")
        assert get_config(path, environ={}) == DEFAULTS


class TestValidation:
    def test_unknown_yaml_key(self, isolated_cwd):
        path = write_yaml(isolated_cwd, "api_url: http://typo\n")
        with pytest.raises(InvalidInput, match="api_url"):
            get_config(path, environ={})

    def test_yaml_must_be_mapping(self, isolated_cwd):
        path = write_yaml(isolated_cwd, "- one\n- two\n")
        with pytest.raises(InvalidInput):
            get_config(path, environ={})

    def test_unknown_timezone(self):
        with pytest.raises(InvalidInput, match="timezone"):
            get_config(environ={"LOGFLOW_TIMEZONE": "Nowhere/Special"})

    def test_non_numeric_interval(self):
        with pytest.raises(InvalidInput, match="heartbeat_seconds"):
            get_config(environ={"LOGFLOW_HEARTBEAT_SECONDS": "often"})

    def test_timeout_must_be_positive(self):
        with pytest.raises(InvalidInput):
            get_config(environ={"LOGFLOW_REQUEST_TIMEOUT_SECONDS": "0"})

    def test_missing_explicit_file(self, isolated_cwd):
        with pytest.raises(InvalidInput, match="not found"):
            get_config(isolated_cwd / "absent.yaml", environ={})
