"""Configuration for wg-tracker."""

from wg_tracker.config.policy import RepoPolicy, load_policy, parse_component
from wg_tracker.config.settings import TrackerSettings

__all__ = ["RepoPolicy", "TrackerSettings", "load_policy", "parse_component"]
