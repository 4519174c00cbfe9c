from __future__ import annotations


class ValidatorError(Exception):
    """Base class for errors raised by bpavalidator."""


class ScopeError(ValidatorError):
    """A rule's scope could not be resolved; the rule is skipped for the run."""


class CatalogError(ValidatorError):
    """The rule catalog could not be read or is not a BPA rule document."""


class SnapshotError(ValidatorError):
    """The metadata snapshot could not be read."""


class ConfigError(ValidatorError):
    """A setting read from the environment is malformed."""
