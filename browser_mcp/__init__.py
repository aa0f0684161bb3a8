"""HTTP tool server driving a single shared Playwright browser session."""

__version__ = "0.1.0"
