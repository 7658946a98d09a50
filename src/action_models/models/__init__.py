"""Reference models built on the action-model API."""

from .rescorla_wagner import RescorlaWagner, rescorla_wagner_gaussian_report

__all__ = ["RescorlaWagner", "rescorla_wagner_gaussian_report"]
