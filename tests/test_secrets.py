"""Tests for auth token lookup."""

import subprocess
from unittest.mock import patch

import pytest

from obsdash.secrets import (
    TOKEN_ENV_VAR,
    TOKEN_KEYCHAIN_SERVICE,
    AuthTokenMissing,
    read_auth_token,
)

CHECK_OUTPUT = "obsdash.secrets.subprocess.check_output"


class TestReadAuthToken:
    def test_env_skips_keychain(self, monkeypatch):
        monkeypatch.setenv(TOKEN_ENV_VAR, "abc")
        with patch(CHECK_OUTPUT) as check_output:
            assert read_auth_token() == "abc"
        check_output.assert_not_called()

    def test_keychain_entry_for_current_user(self, monkeypatch):
        monkeypatch.setenv("USER", "oncall")
        with patch(CHECK_OUTPUT, return_value="kc-token\n") as check_output:
            assert read_auth_token() == "kc-token"

        cmd = check_output.call_args.args[0]
        assert cmd[:4] == ["security", "find-generic-password", "-s", TOKEN_KEYCHAIN_SERVICE]
        assert cmd[4:] == ["-a", "oncall", "-w"]
        assert check_output.call_args.kwargs["timeout"] == 5

    def test_blank_keychain_output_is_no_token(self):
        with patch(CHECK_OUTPUT, return_value="  \n"):
            assert read_auth_token() == ""

    def test_no_security_tool_is_empty(self):
        with patch(CHECK_OUTPUT, side_effect=FileNotFoundError):
            assert read_auth_token() == ""

    def test_missing_entry_is_empty(self):
        err = subprocess.CalledProcessError(44, "security")
        with patch(CHECK_OUTPUT, side_effect=err):
            assert read_auth_token() == ""

    def test_locked_keychain_times_out(self):
        with patch(CHECK_OUTPUT, side_effect=subprocess.TimeoutExpired("security", 5)):
            assert read_auth_token() == ""

    def test_required_raises_with_hint(self):
        with patch(CHECK_OUTPUT, side_effect=FileNotFoundError):
            with pytest.raises(AuthTokenMissing, match=TOKEN_ENV_VAR):
                read_auth_token(required=True)
