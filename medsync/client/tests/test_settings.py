from medsync.client.settings import ClientSettings


def test_defaults_without_environment(monkeypatch):
    for name in (
        "MEDSYNC_SERVER_URL",
        "MEDSYNC_SOCKETIO_PATH",
        "MEDSYNC_HANDSHAKE_TIMEOUT",
        "MEDSYNC_REFETCH_DEBOUNCE",
    ):
        monkeypatch.delenv(name, raising=False)
    assert ClientSettings.from_env() == ClientSettings()


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("MEDSYNC_SERVER_URL", "https://clinic.example")
    monkeypatch.setenv("MEDSYNC_HANDSHAKE_TIMEOUT", "5")
    settings = ClientSettings.from_env()
    assert settings.server_url == "https://clinic.example"
    assert settings.handshake_timeout == 5.0
    assert settings.socketio_path == "ws/socket.io"
