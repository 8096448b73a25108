from issuecadence.env_auth import EnvAuthConfig, EnvironmentAuthManager, create_env_auth_manager


def test_env_auth_config_defaults():
    """Test EnvAuthConfig with defaults."""
    config = EnvAuthConfig()

    assert config.load_dotenv is True
    assert config.dotenv_path is None
    assert config.api_key_var == "LINEAR_API_KEY"
    assert "API_KEY" in config.fallback_vars


def test_no_key_available(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    manager = create_env_auth_manager()
    assert manager.get_api_key() is None
    assert manager.get_auth_status() == {"api_key_present": False, "dotenv_loaded": None}


def test_primary_variable_wins(monkeypatch):
    monkeypatch.setenv("LINEAR_API_KEY", "lin_api_primary")
    monkeypatch.setenv("API_KEY", "lin_api_fallback")
    manager = EnvironmentAuthManager(EnvAuthConfig(load_dotenv=False))
    assert manager.get_api_key() == "lin_api_primary"


def test_fallback_variable(monkeypatch):
    monkeypatch.setenv("API_KEY", "lin_api_fallback")
    manager = EnvironmentAuthManager(EnvAuthConfig(load_dotenv=False))
    assert manager.get_api_key() == "lin_api_fallback"


def test_dotenv_file_is_loaded(tmp_path, monkeypatch):
    # restored to unset on teardown
    monkeypatch.setenv("LINEAR_API_KEY", "placeholder")
    monkeypatch.delenv("LINEAR_API_KEY")
    env_file = tmp_path / "custom.env"
    env_file.write_text("LINEAR_API_KEY=lin_api_from_file\n")
    manager = create_env_auth_manager(dotenv_path=str(env_file))
    assert manager.get_api_key() == "lin_api_from_file"
    assert manager.get_auth_status()["dotenv_loaded"] == str(env_file)


def test_environment_overrides_dotenv(tmp_path, monkeypatch):
    monkeypatch.setenv("LINEAR_API_KEY", "lin_api_env")
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".env").write_text("LINEAR_API_KEY=lin_api_file\n")
    manager = create_env_auth_manager()
    assert manager.get_api_key() == "lin_api_env"
    assert manager.dotenv_loaded is not None
