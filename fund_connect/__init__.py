"""Fund Connect backend: placement agents, investors, funds and messaging."""

__version__ = "1.0.0"
