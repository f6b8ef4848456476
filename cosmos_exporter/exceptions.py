class ExporterError(Exception):
    kind = 'error'


class ConfigError(ExporterError):
    kind = 'config'


class TransportError(ExporterError):
    """Upstream API unreachable or timed out."""
    kind = 'transport'


class DecodeError(ExporterError):
    """Malformed JSON body or unparsable height/timestamp."""
    kind = 'decode'


class FileAccessError(ExporterError):
    kind = 'file_access'


class FileFormatError(ExporterError):
    kind = 'file_format'


class ConnectionTableError(ExporterError):
    kind = 'connection_table'
