import pytest

from dreamforge.config import load_config


def test_load_config_interpolates_env(tmp_path, monkeypatch):
    monkeypatch.setenv("DF_TEST_ANTHROPIC_KEY", "sk-test")
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        "environment: development\n"
        "anthropic:\n"
        "  api_key: ${DF_TEST_ANTHROPIC_KEY}\n"
        "vision:\n"
        "  api_key: ${DF_TEST_UNSET_KEY}\n"
        "analytics:\n"
        "  summary_window_days: 14\n"
    )

    config = load_config(config_file, tmp_path / "missing.env")

    assert config.anthropic.api_key == "sk-test"
    assert config.llm_configured
    assert config.exposes_error_details
    assert config.vision.api_key == ""
    assert config.analytics.summary_window_days == 14
    assert config.analytics.cost_per_call_usd == 0.002
    assert config.storage.enabled


def test_llm_disabled_without_key(tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text("anthropic:\n  api_key: ''\n")

    config = load_config(config_file, tmp_path / "missing.env")

    assert not config.llm_configured
    assert config.environment == "production"
    assert not config.exposes_error_details


def test_env_file_is_loaded(tmp_path, monkeypatch):
    # load_dotenv writes os.environ directly; register the name so it is removed afterwards
    monkeypatch.setenv("DF_TEST_MOONDREAM_KEY", "")
    monkeypatch.delenv("DF_TEST_MOONDREAM_KEY")
    env_file = tmp_path / ".env"
    env_file.write_text("DF_TEST_MOONDREAM_KEY=md-from-dotenv\n")
    config_file = tmp_path / "config.yaml"
    config_file.write_text("vision:\n  api_key: ${DF_TEST_MOONDREAM_KEY}\n")

    config = load_config(config_file, env_file)

    assert config.vision.api_key == "md-from-dotenv"


def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml", tmp_path / "missing.env")
