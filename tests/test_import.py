"""Basic import tests: verify the package structure is correct."""


def test_version():
    from bridgedriver._version import __version__
    assert __version__ == "0.1.0"


def test_top_level_imports():
    from bridgedriver import (
        BridgeCommands,
        BridgeError,
        DiscoveryProber,
        DriverConfig,
        Endpoint,
        ScriptRegistry,
        SessionManager,
        SessionStatus,
        TransportClient,
        WindowResolver,
    )
    assert BridgeCommands is not None
    assert SessionManager is not None
    assert TransportClient is not None
    assert issubclass(BridgeError, RuntimeError)


def test_error_hierarchy():
    from bridgedriver import errors

    for name in (
        "BridgeConnectionError",
        "BridgeDisconnectedError",
        "ProtocolError",
        "RequestTimeoutError",
        "CommandError",
        "WindowNotFoundError",
        "InvalidArgumentsError",
    ):
        assert issubclass(getattr(errors, name), errors.BridgeError)
    assert issubclass(errors.InvalidArgumentsError, ValueError)


def test_cli_entry_point():
    from bridgedriver.cli.app import cli, main
    assert callable(main)
    assert "_serve" in cli.commands
