from pathlib import Path

from buildwright.config import Config, load_config


def test_defaults_when_file_missing(tmp_path):
    config = load_config(tmp_path / "nope.yaml")
    assert config.orchestration.max_attempts == 3
    assert config.agents["judge"].model == "llava:13b"
    assert config.install.command == "npm install"
    assert config.orchestration.ledger_max_events == 5000


def test_yaml_overrides_merge_with_defaults(tmp_path):
    path = tmp_path / "buildwright.yaml"
    path.write_text(
        "agents:\n"
        "  generator:\n"
        "    model: deepseek-coder:33b\n"
        "orchestration:\n"
        "  max_attempts: 5\n"
        "preview:\n"
        "  port: 3000\n"
    )
    config = load_config(path)
    assert config.agents["generator"].model == "deepseek-coder:33b"
    assert config.agents["judge"].model == "llava:13b"
    assert config.install.command == "npm install"
    assert config.orchestration.ledger_max_events == 5000
    assert config.orchestration.max_attempts == 5
    assert config.orchestration.decompose_threshold == 4
    assert config.preview.port == 3000


def test_empty_file_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert load_config(path) == Config()


def test_model_routing_by_step():
    config = Config()
    assert config.agent_for_step("shell").model == "qwen2.5-coder:7b"
    assert config.agent_for_step("module").model == "qwen2.5-coder:14b"
    config.orchestration.use_cheaper_models = False
    assert config.agent_for_step("shell").model == "qwen2.5-coder:14b"


def test_repo_config_file_loads():
    path = Path(__file__).parent.parent / "buildwright.yaml"
    config = load_config(path)
    assert config.preview.command.startswith("npm run dev")
