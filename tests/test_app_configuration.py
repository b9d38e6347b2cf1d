import json
from pathlib import Path

import pytest

from modpolicy.configuration.app_configuration import AppConfig, PolicyListConfig
from modpolicy.configuration.batching_settings import BatchingSettings


@pytest.fixture()
def config_path(tmp_path: Path) -> Path:
    return tmp_path / "app_config.yml"


def test_app_config_reload_parses_yaml(config_path: Path) -> None:
    config_path.write_text(
        """
homeserver_url: "https://matrix.example.org/"
request_timeout_seconds: 12
policy_lists:
  - room_id: "!a:example.org"
    ref: "https://matrix.to/#/#a:example.org"
  - room_id: "!b:example.org"
batching:
  poll_interval_seconds: 0.5
  max_wait_seconds: 5
list_sync:
  interval_seconds: 120
""",
        encoding="utf-8",
    )

    config = AppConfig(config_path)

    assert config.homeserver_url == "https://matrix.example.org"
    assert config.request_timeout_seconds == pytest.approx(12.0)
    assert config.policy_lists == [
        PolicyListConfig(room_id="!a:example.org", ref="https://matrix.to/#/#a:example.org"),
        PolicyListConfig(room_id="!b:example.org", ref="!b:example.org"),
    ]
    assert config.batching.poll_interval_seconds == pytest.approx(0.5)
    assert config.batching.max_wait_seconds == pytest.approx(5.0)
    assert config.list_sync_interval == pytest.approx(120.0)


def test_app_config_missing_file_returns_defaults(tmp_path: Path) -> None:
    config = AppConfig(tmp_path / "does_not_exist.yml")

    assert config.data == {}
    assert config.homeserver_url == ""
    assert config.policy_lists == []
    assert config.request_timeout_seconds == pytest.approx(30.0)
    assert config.list_sync_interval == pytest.approx(600.0)
    assert config.batching.poll_interval_seconds == pytest.approx(0.2)
    assert config.batching.max_wait_seconds == pytest.approx(3.0)


def test_app_config_non_mapping_is_ignored(config_path: Path) -> None:
    config_path.write_text("- just\n- a\n- list\n", encoding="utf-8")

    config = AppConfig(config_path)

    assert config.data == {}


def test_app_config_skips_bad_policy_list_entries(config_path: Path) -> None:
    config_path.write_text(
        json.dumps({"policy_lists": [{"ref": "no room"}, "garbage", {"room_id": "!ok:x"}]}),
        encoding="utf-8",
    )

    config = AppConfig(config_path)

    assert [entry.room_id for entry in config.policy_lists] == ["!ok:x"]


def test_app_config_reload_picks_up_changes(config_path: Path) -> None:
    config_path.write_text(json.dumps({"list_sync": {"interval_seconds": 60}}), encoding="utf-8")
    config = AppConfig(config_path)
    assert config.list_sync_interval == pytest.approx(60.0)

    config_path.write_text(json.dumps({"list_sync": {"interval_seconds": 90}}), encoding="utf-8")
    config.reload()

    assert config.list_sync_interval == pytest.approx(90.0)
    assert config.get("missing", "fallback") == "fallback"


def test_batching_settings_guards_bad_values() -> None:
    settings = BatchingSettings({"poll_interval_seconds": -1, "max_wait_seconds": 0.01})

    assert settings.poll_interval_seconds == pytest.approx(0.2)
    assert settings.max_wait_seconds == pytest.approx(0.2)
