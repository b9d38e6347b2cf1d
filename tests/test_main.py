"""Tests for the modpolicy entry point helpers."""

import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from modpolicy import main as main_module
from modpolicy.datatypes.policy_datatypes import ChangeType, ListRuleChange, PolicyRule
from modpolicy.policy.rule_types import RuleKind


class TestResolveBaseDir:
    """Tests for resolve_base_dir."""

    def test_env_variable_wins(self, monkeypatch, tmp_path):
        monkeypatch.setenv("MODPOLICY_HOME", str(tmp_path))

        assert main_module.resolve_base_dir() == tmp_path.resolve()

    def test_frozen_uses_executable_directory(self, monkeypatch, tmp_path):
        monkeypatch.delenv("MODPOLICY_HOME", raising=False)
        monkeypatch.setattr(sys, "frozen", True, raising=False)
        monkeypatch.setattr(sys, "argv", [str(tmp_path / "modpolicy.bin")])

        assert main_module.resolve_base_dir() == tmp_path.resolve()

    def test_source_checkout_uses_repo_root(self, monkeypatch):
        monkeypatch.delenv("MODPOLICY_HOME", raising=False)
        monkeypatch.delattr(sys, "frozen", raising=False)
        monkeypatch.delattr(sys, "compiled", raising=False)

        expected = Path(main_module.__file__).resolve().parents[2]
        assert main_module.resolve_base_dir() == expected


class TestLoadEnvironment:
    """Tests for load_environment."""

    def test_returns_token(self, monkeypatch):
        monkeypatch.setenv("MATRIX_ACCESS_TOKEN", "syt_token")

        with patch.object(main_module, "load_dotenv") as mock_load:
            assert main_module.load_environment() == "syt_token"

        mock_load.assert_called_once()

    def test_missing_token_exits(self, monkeypatch):
        monkeypatch.delenv("MATRIX_ACCESS_TOKEN", raising=False)

        with patch.object(main_module, "load_dotenv"), pytest.raises(SystemExit) as excinfo:
            main_module.load_environment()

        assert excinfo.value.code == 1


def test_log_changes_writes_one_line_per_change():
    policy_list = MagicMock(list_shortcode="coc", room_ref="ref")
    rule = PolicyRule(entity="@spam:x", recommendation="m.ban", reason="spam", kind=RuleKind.USER)
    changes = [
        ListRuleChange(change_type=ChangeType.ADDED, record=MagicMock(), sender="@mod:x", rule=rule),
        ListRuleChange(change_type=ChangeType.REMOVED, record=MagicMock(), sender="@mod:x", rule=rule),
    ]

    with patch.object(main_module.logger, "info") as mock_info:
        main_module.log_changes(policy_list, changes)

    assert mock_info.call_count == 2
    assert mock_info.call_args_list[0].args[1] == "coc"


class TestRun:
    """Tests for the early exits of run()."""

    @pytest.mark.asyncio
    async def test_run_without_homeserver_returns(self):
        config = MagicMock(homeserver_url="", policy_lists=[])

        with patch.object(main_module, "MatrixPolicyStore") as mock_store:
            await main_module.run(config, "token")

        mock_store.assert_not_called()

    @pytest.mark.asyncio
    async def test_run_without_lists_returns(self):
        config = MagicMock(homeserver_url="https://matrix.example.org", policy_lists=[])

        with patch.object(main_module, "MatrixPolicyStore") as mock_store:
            await main_module.run(config, "token")

        mock_store.assert_not_called()
