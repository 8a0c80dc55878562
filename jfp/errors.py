class JfpError(Exception):
    """Base class for every error raised by jfp."""

    code = "error"


class StoreError(JfpError):
    code = "database_error"


class StoreOpenError(StoreError):
    """The store file could not be opened, created or migrated."""


class StoreWriteError(StoreError):
    """A single or bulk write failed; the transaction was rolled back."""

    code = "write_error"


class StoreReadError(StoreError):
    pass


class SearchSyntaxError(StoreError):
    """The query is not valid FTS5 syntax."""

    code = "search_error"


class RegistryFetchError(JfpError):
    """Network, timeout, status or payload failure talking to the registry."""

    code = "registry_error"


class CacheIoError(JfpError):
    code = "cache_error"


class ImportParseError(JfpError):
    code = "import_error"

    def __init__(self, line_number, message):
        self.line_number = line_number
        super().__init__(f"line {line_number}: {message}")


class BackupIoError(JfpError):
    code = "backup_error"


class ConfigError(JfpError):
    code = "config_error"
