"""Sellerhook - signed webhook ingress for LicenseChain sellers."""

__version__ = "1.0.0"
