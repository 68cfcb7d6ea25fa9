class RecordMatchError(RuntimeError):
    pass


class SourceReadError(RecordMatchError):
    """A record source could not be read or is malformed."""


class ConfigError(RecordMatchError):
    """The mapping configuration is missing, malformed or inconsistent."""
