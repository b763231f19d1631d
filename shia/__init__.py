"""S.H.I.A - review service for pre-computed Alzheimer's MRI classification results."""

__version__ = "0.1.0"
