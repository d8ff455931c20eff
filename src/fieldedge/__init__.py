"""Fieldedge - arthropod response curves from field edges into crops."""

__version__ = "2026.10.18"

from fieldedge.models import MODEL_REGISTRY as MODEL_REGISTRY
from fieldedge.models import FittedModel as FittedModel
from fieldedge.models import ModelSpec as ModelSpec
from fieldedge.posterior import posterior_epred as posterior_epred
