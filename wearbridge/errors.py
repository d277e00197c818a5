class WearbridgeError(Exception):
    pass


class ConfigError(WearbridgeError):
    pass


class DecodeError(WearbridgeError):
    pass


class DeviceNotFoundError(WearbridgeError):
    pass


class StaleDataError(WearbridgeError):
    """No notification arrived within the watchdog window."""
