"""
Construction-time errors
All of them abort the program before anything is applied; none are retried here.
"""


class ProvisioningError(Exception):
    """Base class for errors raised while declaring the stack"""


class ConfigurationError(ProvisioningError):
    """A supplied flag or fixed parameter is malformed"""


class LookupFailure(ProvisioningError):
    """An existing external resource (e.g. a hosted zone) could not be resolved"""


class PermissionScopeError(ProvisioningError):
    """A policy statement has no actions or references an undefined resource scope"""
