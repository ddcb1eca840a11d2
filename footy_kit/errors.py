from __future__ import annotations

from typing import List, Optional, Tuple


class FootyKitError(Exception):
    """Base class for pipeline errors."""


class ConversionError(FootyKitError, ValueError):
    """Sensor planes could not be turned into an RGB buffer."""


class ModelConfigurationError(FootyKitError, ValueError):
    """A loaded model does not match the tensor contract this pipeline packs/decodes."""


class ModelLoadError(FootyKitError, RuntimeError):
    """
    Every load tier failed.

    `failures` keeps (tier_name, exception) pairs in the order they were tried.
    """

    def __init__(self, message: str, failures: Optional[List[Tuple[str, BaseException]]] = None):
        super().__init__(message)
        self.failures = list(failures or [])


class ModelNotLoadedError(FootyKitError, RuntimeError):
    pass


class InferenceError(FootyKitError, RuntimeError):
    pass
