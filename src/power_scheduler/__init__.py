"""Power Scheduler: cheapest-hour scheduling for controllable devices."""

try:
    from importlib.metadata import version as _pkg_version
    __version__ = _pkg_version("power-scheduler")
except Exception:
    __version__ = "dev"
