"""ThinkTwice: reminder and decision-gate engine for pause-before-you-buy."""

__version__ = "0.1.0"
