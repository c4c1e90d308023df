"""End-to-end harness for the InstructLab standalone workflow on Kubernetes."""

__version__ = "0.3.0"
