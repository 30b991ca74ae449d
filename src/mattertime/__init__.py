"""mattertime: a work timer that suggests which legal matter to bill."""

__version__ = "0.1.0"
