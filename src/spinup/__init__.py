"""spinup - single-host provisioning of isolated database instances."""

__version__ = "0.1.0"
