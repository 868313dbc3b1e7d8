"""relpipe - build, attach and publish release deliverables from one trigger."""

__version__ = "0.3.0"
