class ConfigurationError(Exception):
    """Raised when settings or a suite are unusable; nothing has been probed yet."""
