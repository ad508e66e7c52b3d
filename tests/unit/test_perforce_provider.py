"""Unit tests for the Perforce provider (p4 is replaced by a fake runner)."""

from __future__ import annotations

import json
import subprocess
from datetime import UTC, datetime

import pytest

from buildref.core.exceptions import ConfigurationError, PerforceCommandError, ResolutionError
from buildref.providers.perforce_provider import (
    PerforceProvider,
    latest_change,
    validate_ref,
    view_depot_paths,
)
from buildref.types import FileRequest

PORT = "ssl:perforce.example.com:1666"


def _json_lines(*records: dict) -> str:
    return "".join(json.dumps(r) + "\n" for r in records)


class FakeP4:
    """p4 コマンドの応答を引数で切り替える偽ランナー."""

    def __init__(self) -> None:
        self.calls: list[dict] = []
        self.failures: dict[str, int] = {}
        self.client_spec = {
            "Client": "build-template",
            "View0": "//depot/proj/... //build-template/...",
            "View1": "-//depot/proj/docs/... //build-template/docs/...",
            "View2": "+//depot/shared/... //build-template/shared/...",
        }
        self.changes = [
            {"change": "12000", "time": "1709800000"},
            {"change": "12345", "time": "1709820309"},
        ]

    def __call__(self, argv, env=None, input=None, **kwargs) -> subprocess.CompletedProcess:
        self.calls.append({"argv": argv, "env": env, "input": input, "kwargs": kwargs})
        args = [a for a in argv[1:] if a not in ("-Mj", "-Ztag")]
        command = args[0]

        if command in self.failures:
            return subprocess.CompletedProcess(argv, self.failures[command], "", "access denied\n")
        if command == "client":
            return subprocess.CompletedProcess(argv, 0, _json_lines(self.client_spec), "")
        if command == "changes":
            return subprocess.CompletedProcess(argv, 0, _json_lines(*self.changes), "")
        if command == "describe":
            if args[-1] == "404":
                record = {"code": "error", "data": "404 - no such changelist.\n", "severity": 3}
                return subprocess.CompletedProcess(argv, 0, _json_lines(record), "")
            return subprocess.CompletedProcess(
                argv, 0, _json_lines({"change": args[-1], "time": "1709820309"}), ""
            )
        return subprocess.CompletedProcess(argv, 0, "", "")

    def commands(self) -> list[str]:
        return [[a for a in c["argv"][1:] if a not in ("-Mj", "-Ztag")][0] for c in self.calls]


@pytest.fixture
def env() -> dict[str, str]:
    return {
        "PATH": "/usr/bin",
        "PEW_P4USER": "builder",
        "PEW_P4PASS": "hunter2",
        "PEW_P4_CLIENT_TEMPLATE": "build-template",
        "PEW_P4PORT_FINGERPRINT": "AB:CD:EF",
    }


class TestHelpers:
    @pytest.mark.parametrize("ref,expected", [
        ("#head", True),
        ("@12345", True),
        ("@", False),
        ("@12a", False),
        ("main", False),
        ("#have", False),
    ])
    def test_validate_ref(self, ref: str, expected: bool) -> None:
        assert validate_ref(ref) is expected

    def test_view_depot_paths(self) -> None:
        spec = FakeP4().client_spec

        assert view_depot_paths(spec, "#head") == [
            "//depot/proj/...#head",
            "//depot/shared/...#head",
        ]

    def test_view_depot_paths_malformed(self) -> None:
        with pytest.raises(ResolutionError, match="Malformed client view"):
            view_depot_paths({"View0": "//depot/a b/... //client/..."}, "#head")

    def test_latest_change_compares_numerically(self) -> None:
        changes = [{"change": "999"}, {"change": "1000"}, {"other": "x"}]
        assert latest_change(changes) == {"change": "1000"}
        assert latest_change([]) is None


class TestResolve:
    def test_head(self, env) -> None:
        fake = FakeP4()
        provider = PerforceProvider(env=env, runner=fake)

        info = provider.resolve([PORT], "#head", [])

        assert info.commit == "@12345"
        assert info.commit_date == datetime.fromtimestamp(1709820309, tz=UTC)
        assert info.token == "p4ticket"
        assert info.files == []
        assert fake.commands() == ["trust", "login", "client", "changes"]
        assert fake.calls[3]["argv"][-2:] == ["//depot/proj/...#head", "//depot/shared/...#head"]

    def test_changelist_uses_describe(self, env) -> None:
        fake = FakeP4()
        provider = PerforceProvider(env=env, runner=fake)

        info = provider.resolve([PORT], "@12345", [])

        assert info.commit == "@12345"
        assert "changes" not in fake.commands()
        assert fake.calls[-1]["argv"][-3:] == ["describe", "-s", "12345"]

    def test_unknown_changelist(self, env) -> None:
        provider = PerforceProvider(env=env, runner=FakeP4())

        with pytest.raises(ResolutionError, match="no such changelist"):
            provider.resolve([PORT], "@404", [])

    def test_no_changes(self, env) -> None:
        fake = FakeP4()
        fake.changes = []
        provider = PerforceProvider(env=env, runner=fake)

        with pytest.raises(ResolutionError, match="Failed to find a suitable changelist"):
            provider.resolve([PORT], "#head", [])

    def test_password_only_on_stdin(self, env) -> None:
        fake = FakeP4()
        provider = PerforceProvider(env=env, runner=fake)

        provider.resolve([PORT], "#head", [])

        login = fake.calls[1]
        assert login["input"] == "hunter2\n"
        for call in fake.calls:
            assert "hunter2" not in call["argv"]
            assert not any(k.startswith("PEW_") for k in call["env"])
            assert "hunter2" not in call["env"].values()
        assert login["env"]["P4PORT"] == PORT
        assert login["env"]["P4USER"] == "builder"
        assert login["env"]["PATH"] == "/usr/bin"

    def test_plain_tcp_port_skips_trust(self, env) -> None:
        env.pop("PEW_P4PORT_FINGERPRINT")
        fake = FakeP4()
        provider = PerforceProvider(env=env, runner=fake)

        provider.resolve(["perforce.example.com:1666"], "#head", [])

        assert "trust" not in fake.commands()
        assert "p4_trust_port" not in provider.post_state()

    def test_password_registered_as_secret(self, env) -> None:
        provider = PerforceProvider(env=env, runner=FakeP4())

        provider.resolve([PORT], "#head", [])

        assert provider.secrets() == ["hunter2"]

    def test_ssl_port_requires_fingerprint(self, env) -> None:
        env.pop("PEW_P4PORT_FINGERPRINT")
        provider = PerforceProvider(env=env, runner=FakeP4())

        with pytest.raises(ConfigurationError, match="PEW_P4PORT_FINGERPRINT"):
            provider.resolve([PORT], "#head", [])

    def test_login_failure(self, env) -> None:
        fake = FakeP4()
        fake.failures["login"] = 1
        provider = PerforceProvider(env=env, runner=fake)

        with pytest.raises(PerforceCommandError, match="p4 login returned error 1: access denied"):
            provider.resolve([PORT], "#head", [])

        # trust は済んでいるので post 処理で取り消せること
        assert provider.post_state() == {"p4_trust_port": PORT}

    def test_post_state(self, env) -> None:
        provider = PerforceProvider(env=env, runner=FakeP4())

        provider.resolve([PORT], "#head", [])

        assert provider.post_state() == {
            "p4_trust_port": PORT,
            "p4_login_port": PORT,
            "p4_login_user": "builder",
        }

    @pytest.mark.parametrize("ref", ["main", "@", "12345"])
    def test_unsupported_ref(self, env, ref: str) -> None:
        fake = FakeP4()
        provider = PerforceProvider(env=env, runner=fake)

        with pytest.raises(ConfigurationError, match="Unsupported perforce ref"):
            provider.resolve([PORT], ref, [])
        assert fake.calls == []

    def test_files_not_supported(self, env) -> None:
        provider = PerforceProvider(env=env, runner=FakeP4())

        with pytest.raises(ConfigurationError, match="does not support fetching files"):
            provider.resolve([PORT], "#head", [FileRequest("VERSION")])

    def test_single_repository_only(self, env) -> None:
        provider = PerforceProvider(env=env, runner=FakeP4())

        with pytest.raises(ConfigurationError, match="single repository"):
            provider.resolve([PORT, "other:1666"], "#head", [])

    def test_custom_executable(self, env) -> None:
        fake = FakeP4()
        provider = PerforceProvider(env={**env, "PEW_P4_EXECUTABLE": "/opt/p4/bin/p4"}, runner=fake)

        provider.resolve([PORT], "#head", [])

        assert all(c["argv"][0] == "/opt/p4/bin/p4" for c in fake.calls)


class TestCleanup:
    STATE = {"p4_trust_port": PORT, "p4_login_port": PORT, "p4_login_user": "builder"}

    def test_logout_and_untrust(self, env) -> None:
        fake = FakeP4()
        provider = PerforceProvider(env=env, runner=fake)

        result = provider.cleanup(self.STATE)

        assert result.ok
        assert result.actions == ["logged out", "revoked trust"]
        assert [c["argv"][1:] for c in fake.calls] == [["logout"], ["trust", "-d"]]

    def test_failures_become_warnings(self, env) -> None:
        fake = FakeP4()
        fake.failures["logout"] = 1
        provider = PerforceProvider(env=env, runner=fake)

        result = provider.cleanup(self.STATE)

        assert result.actions == ["revoked trust"]
        assert len(result.warnings) == 1
        assert "Failed to logout from P4" in result.warnings[0]

    def test_missing_executable_is_a_warning(self, env) -> None:
        def runner(*args, **kwargs):
            raise FileNotFoundError("p4")

        provider = PerforceProvider(env=env, runner=runner)

        result = provider.cleanup(self.STATE)

        assert result.actions == []
        assert len(result.warnings) == 2

    def test_empty_state(self, env) -> None:
        fake = FakeP4()
        provider = PerforceProvider(env=env, runner=fake)

        result = provider.cleanup({})

        assert result.ok
        assert fake.calls == []
