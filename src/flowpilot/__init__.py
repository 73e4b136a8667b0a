"""FlowPilot — declarative browser workflow execution with ranked locators."""

__version__ = "0.1.0"
