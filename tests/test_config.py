import pytest

from idebridge.core.config import GatewayConfig, HostConfig, parse_ports
from idebridge.core.constants import DEFAULT_PORTS
from idebridge.core.languages import Language, detect_language


class TestGatewayConfig:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in ("IDEBRIDGE_HOST", "IDEBRIDGE_PORTS", "IDEBRIDGE_PROBE_TIMEOUT", "IDEBRIDGE_CALL_TIMEOUT"):
            monkeypatch.delenv(name, raising=False)
        config = GatewayConfig.from_env()
        assert config.host == "127.0.0.1"
        assert config.ports == DEFAULT_PORTS
        assert len(config.ports) == 13
        assert config.probe_timeout == 1.0

    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("IDEBRIDGE_PORTS", "9000, 9001")
        monkeypatch.setenv("IDEBRIDGE_PROBE_TIMEOUT", "0.5")
        config = GatewayConfig.from_env()
        assert config.ports == (9000, 9001)
        assert config.probe_timeout == 0.5

    def test_bad_values_fall_back(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("IDEBRIDGE_PORTS", "nine-thousand")
        monkeypatch.setenv("IDEBRIDGE_PROBE_TIMEOUT", "-3")
        config = GatewayConfig.from_env()
        assert config.ports == DEFAULT_PORTS
        assert config.probe_timeout == 1.0

    def test_parse_ports_rejects_out_of_range(self) -> None:
        with pytest.raises(ValueError):
            parse_ports("80,70000")


class TestHostConfig:
    def test_timeouts(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("IDEBRIDGE_MOVE_TIMEOUT", "120")
        monkeypatch.delenv("IDEBRIDGE_DEFAULT_TIMEOUT", raising=False)
        config = HostConfig.from_env()
        assert config.default_timeout == 30.0
        assert config.move_timeout == 120.0


class TestLanguages:
    @pytest.mark.parametrize(
        ("path", "language"),
        [
            ("/a/Main.java", Language.JAVA),
            ("/a/build.gradle.kts", Language.KOTLIN),
            ("C:\\web\\app.MJS", Language.JAVASCRIPT),
            ("/a/view.tsx", Language.TYPESCRIPT),
            ("/a/stubs.pyi", Language.PYTHON),
            ("/a/main.go", Language.GO),
            ("/a/lib.rs", Language.RUST),
            ("/a/README", Language.UNKNOWN),
        ],
    )
    def test_detect_language(self, path: str, language: Language) -> None:
        assert detect_language(path) is language

