"""Configuration commands for entity graph CLI."""

from cyclopts import App

from entity_graph.config import DEFAULTS, check_value, get_config

config_app = App(name="config", help="Manage configuration")


@config_app.command
def set(key: str, value: str, global_: bool = False) -> None:
    """Set a configuration setting.

    Args:
        key: One of database.path, database.pool_size, database.timeout, keepalive.interval, owner
        value: Configuration value
        global_: If True, set in global config. If False, set in local config.
    """
    if key not in DEFAULTS:
        raise ValueError(f"Unknown configuration key: {key}. Known keys: {', '.join(DEFAULTS)}")
    check_value(key, value)

    config = get_config(use_global=global_)
    config.set(key, value)
    scope = "global" if global_ else "local"
    print(f"Set {key} = {value} ({scope})")


@config_app.command
def unset(key: str, global_: bool = False) -> None:
    """Unset a configuration setting.

    Args:
        key: Configuration key
        global_: If True, unset from global config. If False, unset from local config.
    """
    config = get_config(use_global=global_)
    config.unset(key)
    scope = "global" if global_ else "local"
    print(f"Unset {key} ({scope})")


@config_app.command
def get(key: str, global_: bool = False) -> None:
    """Get the value of a configuration setting, or its default."""
    config = get_config(use_global=global_)
    value = config.get(key)
    if value is not None:
        print(f"{key} = {value}")
    elif DEFAULTS.get(key) is not None:
        print(f"{key} = {DEFAULTS[key]} (default)")
    else:
        print(f"{key} is not set")


@config_app.command(name="list")
def list_config(global_: bool = False) -> None:
    """List every known setting with its effective value.

    Args:
        global_: If True, list global config only. If False, list merged config.
    """
    config = get_config(use_global=global_)
    settings = config.list()

    scope = "Global" if global_ else "Configuration"
    print(f"{scope} settings:\n")
    for key, default in DEFAULTS.items():
        if key in settings:
            print(f"{key} = {settings[key]}")
        elif default is not None:
            print(f"{key} = {default} (default)")
    for key in sorted(k for k in settings if k not in DEFAULTS):
        print(f"{key} = {settings[key]} (unknown)")
