"""
Exception types shared by the exporter.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""


class DeviceError(Exception):
    """A device could not deliver a reading.

    Raised by provider ``fetch()`` implementations for network errors,
    non-success HTTP status codes and unparsable payloads. The scheduler
    treats it as a transient failure and backs the device off.
    """


class SetupError(Exception):
    """The setup directory or overview description is unusable."""
