"""
Qumulo CSI - volume provisioning for Qumulo clusters.

This package provides the CSI controller service that creates, deletes and
expands directory-backed volumes through the Qumulo REST API.
"""

__version__ = "0.1.0"
__all__ = ["client", "controller", "provisioning", "volume"]
