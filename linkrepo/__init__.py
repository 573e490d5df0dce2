"""Link Repository: organize file links in groups and subgroups."""

__version__ = "0.1.0"
