from pathlib import Path

import pytest

import ollamacode.config as config_module
from ollamacode.config import Config
from ollamacode.exceptions import ConfigurationError


def test_load_prefers_local_config_yaml(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)

    home_cfg = tmp_path / "home_config.yaml"
    home_cfg.write_text("model:\n  model: llama3.2\n", encoding="utf-8")
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", home_cfg)

    local_cfg = tmp_path / "config.yaml"
    local_cfg.write_text(
        (
            "model:\n"
            "  model: qwen2.5-coder:7b\n"
            "  temperature: 0.1\n"
            "agent:\n"
            "  max_iterations: 4\n"
        ),
        encoding="utf-8",
    )

    cfg = Config.load()

    assert cfg.model.model == "qwen2.5-coder:7b"
    assert cfg.model.temperature == 0.1
    assert cfg.agent.max_iterations == 4
    assert cfg.agent.safe_mode is True


def test_load_falls_back_to_default_path_when_no_local(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)

    home_cfg = tmp_path / "home_config.yaml"
    home_cfg.write_text("model:\n  model: mistral\n", encoding="utf-8")
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", home_cfg)

    cfg = Config.load()

    assert cfg.model.model == "mistral"


def test_missing_config_file_means_defaults(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", tmp_path / "absent.yaml")

    cfg = Config.load()

    assert cfg.model.provider == "ollama"
    assert cfg.model.base_url == "http://localhost:11434"
    assert cfg.agent.max_iterations == 10
    assert cfg.agent.auto_approve is False
    assert "echo" in cfg.tools.bash.allowed_commands
    assert cfg.mcp.enabled is False


def test_environment_fills_nested_fields(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", tmp_path / "absent.yaml")
    monkeypatch.setenv("OLLAMACODE_AGENT__AUTO_APPROVE", "true")

    cfg = Config.load()

    assert cfg.agent.auto_approve is True


def test_mcp_servers_are_parsed(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "config.yaml").write_text(
        (
            "mcp:\n"
            "  enabled: true\n"
            "  servers:\n"
            "    fs:\n"
            "      command: npx\n"
            "      args: ['-y', '@modelcontextprotocol/server-filesystem', '/tmp']\n"
        ),
        encoding="utf-8",
    )

    cfg = Config.load()

    assert cfg.mcp.enabled is True
    assert cfg.mcp.servers["fs"].command == "npx"
    assert cfg.mcp.servers["fs"].args[-1] == "/tmp"
    assert cfg.mcp.servers["fs"].env == {}


def test_invalid_yaml_raises_configuration_error(tmp_path: Path):
    bad = tmp_path / "bad.yaml"
    bad.write_text("model: [unclosed\n", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        Config.from_yaml(bad)


def test_non_mapping_root_raises_configuration_error(tmp_path: Path):
    bad = tmp_path / "list.yaml"
    bad.write_text("- one\n- two\n", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        Config.from_yaml(bad)


def test_invalid_field_type_raises_configuration_error(tmp_path: Path):
    bad = tmp_path / "types.yaml"
    bad.write_text("agent:\n  max_iterations: lots\n", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        Config.from_yaml(bad)


def test_save_round_trips_through_yaml(tmp_path: Path):
    cfg = Config()
    cfg.model.model = "phi3"
    target = tmp_path / "nested" / "config.yaml"

    cfg.save(target)

    assert Config.from_yaml(target).model.model == "phi3"
