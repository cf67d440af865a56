import pytest

import bridgedriver.config as cfg_module


@pytest.fixture(autouse=True)
def _clean_config(monkeypatch):
    """Every test starts from default config with no bridge env vars."""
    for var in ("MCP_BRIDGE_HOST", "TAURI_DEV_HOST", "MCP_BRIDGE_PORT", "BRIDGEDRIVER_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    cfg_module._config = None
    yield
    cfg_module._config = None
