"""
podship - Safe releases of a compiled service to a rootless Podman host
"""

__version__ = "0.3.0"

from .core import Deployer
from .errors import DeployError

__all__ = ["Deployer", "DeployError"]
