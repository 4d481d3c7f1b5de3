"""stackplane — dependency-ordered deployment of infrastructure stacks."""

__version__ = "0.1.0"
