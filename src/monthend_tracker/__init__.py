"""Month-End Tracker: month-end energy accumulation for metered devices."""

try:
    from importlib.metadata import version as _pkg_version
    __version__ = _pkg_version("monthend-tracker")
except Exception:
    __version__ = "dev"
