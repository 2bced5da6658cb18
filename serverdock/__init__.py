"""ServerDock: remote analytics server connections and gateway worker lifecycle."""

__version__ = "0.1.0"
