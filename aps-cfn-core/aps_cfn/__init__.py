from aps_cfn.version import __version__  # noqa: F401
