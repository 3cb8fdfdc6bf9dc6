"""MQTT broker tooling: configuration model and JSON API, access control, reload commands, pid file, string hash map and the command line."""

__version__ = "0.1.0"
__all__ = ["__version__"]